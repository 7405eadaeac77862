"""
Services Package

External collaborators the core talks to:
- storage: document store for obligations, ledgers, templates and audit events
- notifications: reminder composition and dispatch (fire-and-forget)

Import notification services from paid_ledger.services.notifications.
"""

from paid_ledger.services.storage import (
    AuditStorageInterface,
    InMemoryAuditStorage,
    InMemoryLedgerStorage,
    LedgerStorageInterface,
    StorageTransaction,
    run_transactional,
)

__all__ = [
    "AuditStorageInterface",
    "InMemoryAuditStorage",
    "InMemoryLedgerStorage",
    "LedgerStorageInterface",
    "StorageTransaction",
    "run_transactional",
]
