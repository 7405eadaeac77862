"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for storage operations.
This allows us to:
1. Back the engine with any document store offering transactions
2. Use in-memory storage for testing
3. Keep the ledger and scheduling logic decoupled from persistence

Every entity is scoped by owner_id, then by its own id. The only
cross-owner read is the scheduler's due-template query.

Writes go through transactions. A transaction records the version of
every document it reads and buffers its writes; commit applies all of
the writes or none of them, and fails with ConcurrencyConflict when any
document read has changed since. That compare-and-set is what keeps two
overlapping scheduler ticks from generating the same occurrence twice.
"""

from abc import ABC, abstractmethod
from contextlib import AbstractAsyncContextManager
from datetime import date
from typing import Optional
from uuid import UUID

from paid_ledger.models.audit import AuditEvent
from paid_ledger.models.ledger import Ledger, Obligation, RecurringTemplate


class StorageTransaction(ABC):
    """
    One atomic unit of reads and writes.

    Reads see the transaction's own buffered writes. Writes are not
    visible to anyone else until commit.
    """

    @abstractmethod
    async def get_obligation(
        self, owner_id: str, obligation_id: UUID
    ) -> Optional[Obligation]:
        """Read an obligation and pin its version."""
        pass

    @abstractmethod
    async def get_ledger(self, owner_id: str, ledger_id: UUID) -> Optional[Ledger]:
        """Read a ledger and pin its version."""
        pass

    @abstractmethod
    async def get_template(
        self, owner_id: str, template_id: UUID
    ) -> Optional[RecurringTemplate]:
        """Read a template and pin its version."""
        pass

    @abstractmethod
    async def list_group_members(
        self, owner_id: str, group_id: UUID
    ) -> list[Obligation]:
        """
        Read every obligation whose group_id is `group_id`.

        Each returned member's version is pinned, so a concurrent
        change to any of them aborts the commit.
        """
        pass

    @abstractmethod
    def put_obligation(self, obligation: Obligation) -> None:
        pass

    @abstractmethod
    def put_ledger(self, ledger: Ledger) -> None:
        pass

    @abstractmethod
    def put_template(self, template: RecurringTemplate) -> None:
        pass

    @abstractmethod
    def delete_obligation(self, owner_id: str, obligation_id: UUID) -> None:
        pass

    @abstractmethod
    def delete_ledger(self, owner_id: str, ledger_id: UUID) -> None:
        pass


class LedgerStorageInterface(ABC):
    """
    Abstract interface for obligation, ledger and template storage.

    Any storage implementation (document store, SQL, in-memory)
    must implement these methods.
    """

    @abstractmethod
    async def get_obligation(
        self, owner_id: str, obligation_id: UUID
    ) -> Optional[Obligation]:
        """
        Retrieve an obligation by its ID.

        Returns:
            The obligation if found, None otherwise
        """
        pass

    @abstractmethod
    async def list_obligations(
        self,
        owner_id: str,
        group_id: Optional[UUID] = None,
        ungrouped_only: bool = False,
        is_paid: Optional[bool] = None,
        template_id: Optional[UUID] = None,
    ) -> list[Obligation]:
        """
        List an owner's obligations with optional filters.

        Args:
            owner_id: Whose obligations to list
            group_id: Only members of this ledger
            ungrouped_only: Only obligations with no ledger
            is_paid: Filter by paid state
            template_id: Only instances generated by this template

        Returns:
            Matching obligations, newest first
        """
        pass

    @abstractmethod
    async def get_ledger(self, owner_id: str, ledger_id: UUID) -> Optional[Ledger]:
        """Retrieve a ledger by its ID, or None."""
        pass

    @abstractmethod
    async def list_ledgers(self, owner_id: str) -> list[Ledger]:
        """List an owner's ledgers, newest first."""
        pass

    @abstractmethod
    async def get_template(
        self, owner_id: str, template_id: UUID
    ) -> Optional[RecurringTemplate]:
        """Retrieve a recurring template by its ID, or None."""
        pass

    @abstractmethod
    async def list_templates(
        self,
        owner_id: str,
        active_only: bool = False,
    ) -> list[RecurringTemplate]:
        """List an owner's recurring templates, newest first."""
        pass

    @abstractmethod
    async def list_due_templates(self, as_of: date) -> list[RecurringTemplate]:
        """
        Active templates of every owner whose next occurrence is on or
        before `as_of`, oldest schedule first.

        This is a snapshot; the scheduler re-reads each one inside its
        own transaction before acting on it.
        """
        pass

    @abstractmethod
    def transaction(self) -> AbstractAsyncContextManager[StorageTransaction]:
        """
        Open a transaction.

        Usage:
            async with storage.transaction() as txn:
                ledger = await txn.get_ledger(owner_id, ledger_id)
                txn.put_ledger(ledger.model_copy(update={...}))

        Commits on clean exit. Raises ConcurrencyConflict if a document
        read inside the block changed before commit; nothing is written
        in that case. An exception inside the block discards the writes.
        """
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """
        Get all events for a correlation ID (e.g., one scheduler tick).

        Returns:
            List of related events in chronological order
        """
        pass

    @abstractmethod
    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: UUID,
    ) -> list[AuditEvent]:
        """
        Get all events for a specific entity.

        Returns:
            List of events in chronological order
        """
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """
        Get the most recent audit events.

        Returns:
            List of recent events (newest first)
        """
        pass

