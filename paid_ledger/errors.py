"""
Domain errors for the ledger engine.

Every error raised out of the core derives from LedgerError so callers
can catch the whole family at their boundary.
"""

from typing import Optional
from uuid import UUID


class LedgerError(Exception):
    """Base exception for the ledger engine."""
    pass


class ValidationError(LedgerError):
    """
    Input rejected before anything was written.

    Carries the individual issues so the UI can point at the field.
    """

    def __init__(self, message: str, issues: Optional[list] = None):
        super().__init__(message)
        self.issues = issues or []

    @property
    def fields(self) -> list[str]:
        return [issue.field for issue in self.issues]


class NotFoundError(LedgerError):
    """Referenced obligation, ledger or template does not exist."""

    def __init__(self, entity_type: str, entity_id: UUID):
        super().__init__(f"{entity_type} not found: {entity_id}")
        self.entity_type = entity_type
        self.entity_id = entity_id


class StorageError(LedgerError):
    """Base exception for storage operations."""
    pass


class ConcurrencyConflict(StorageError):
    """
    A transaction lost a commit race.

    Retried by the caller with the same inputs; never shown to the user.
    """
    pass


class StorageUnavailable(StorageError):
    """The backing store failed part-way through a read or write."""
    pass


class GenerationError(LedgerError):
    """Materializing an occurrence failed; the template was left untouched."""

    def __init__(self, template_id: UUID, cause: Exception):
        super().__init__(f"Generation failed for template {template_id}: {cause}")
        self.template_id = template_id
        self.cause = cause
