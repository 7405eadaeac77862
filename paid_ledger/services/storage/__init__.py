"""
Storage Services Package

Provides abstract interfaces and concrete implementations for data storage.
Ships an in-memory document store; any backend with transactions can be
plugged in behind the same interface.
"""

from paid_ledger.errors import (
    ConcurrencyConflict,
    StorageError,
    StorageUnavailable,
)
from paid_ledger.services.storage.interface import (
    AuditStorageInterface,
    LedgerStorageInterface,
    StorageTransaction,
)
from paid_ledger.services.storage.memory import (
    InMemoryAuditStorage,
    InMemoryLedgerStorage,
    InMemoryTransaction,
)
from paid_ledger.services.storage.retry import run_transactional

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "LedgerStorageInterface",
    "StorageTransaction",
    # Exceptions
    "ConcurrencyConflict",
    "StorageError",
    "StorageUnavailable",
    # In-memory implementation
    "InMemoryAuditStorage",
    "InMemoryLedgerStorage",
    "InMemoryTransaction",
    # Retry policy
    "run_transactional",
]
