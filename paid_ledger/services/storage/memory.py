"""
In-Memory Storage Implementation

A process-local document store with the same transaction semantics a
hosted document database offers: versioned documents, optimistic
transactions and all-or-nothing commits.

Used by the test-suite and for single-process deployments. Documents
are copied on the way in and on the way out, so callers can never
mutate stored state without a commit.
"""

import asyncio
from contextlib import asynccontextmanager
from datetime import date
from typing import AsyncIterator, Optional, Union
from uuid import UUID

from paid_ledger.errors import ConcurrencyConflict
from paid_ledger.models.audit import AuditEvent
from paid_ledger.models.ledger import Ledger, Obligation, RecurringTemplate
from paid_ledger.services.storage.interface import (
    AuditStorageInterface,
    LedgerStorageInterface,
    StorageTransaction,
)


OBLIGATIONS = "obligations"
LEDGERS = "ledgers"
TEMPLATES = "templates"

Document = Union[Obligation, Ledger, RecurringTemplate]
DocumentKey = tuple[str, str, UUID]  # (collection, owner_id, id)


class InMemoryTransaction(StorageTransaction):
    """
    Optimistic transaction over InMemoryLedgerStorage.

    The first read of each document pins the version seen. Commit
    checks every pinned version under the store lock before applying
    the buffered writes.
    """

    def __init__(self, storage: "InMemoryLedgerStorage"):
        self._storage = storage
        self._read_versions: dict[DocumentKey, int] = {}
        self._writes: dict[DocumentKey, Optional[Document]] = {}

    def _read(self, key: DocumentKey) -> Optional[Document]:
        if key in self._writes:
            pending = self._writes[key]
            return pending.model_copy(deep=True) if pending is not None else None
        version, document = self._storage._snapshot(key)
        self._read_versions.setdefault(key, version)
        return document

    async def get_obligation(
        self, owner_id: str, obligation_id: UUID
    ) -> Optional[Obligation]:
        return self._read((OBLIGATIONS, owner_id, obligation_id))

    async def get_ledger(self, owner_id: str, ledger_id: UUID) -> Optional[Ledger]:
        return self._read((LEDGERS, owner_id, ledger_id))

    async def get_template(
        self, owner_id: str, template_id: UUID
    ) -> Optional[RecurringTemplate]:
        return self._read((TEMPLATES, owner_id, template_id))

    async def list_group_members(
        self, owner_id: str, group_id: UUID
    ) -> list[Obligation]:
        members: dict[UUID, Obligation] = {}
        for key in self._storage._keys(OBLIGATIONS, owner_id):
            if key in self._writes:
                continue
            version, obligation = self._storage._snapshot(key)
            if obligation is not None and obligation.group_id == group_id:
                self._read_versions.setdefault(key, version)
                members[obligation.id] = obligation

        # Read-your-writes
        for key, pending in self._writes.items():
            collection, key_owner, obligation_id = key
            if collection != OBLIGATIONS or key_owner != owner_id:
                continue
            if pending is not None and pending.group_id == group_id:
                members[obligation_id] = pending.model_copy(deep=True)
            else:
                members.pop(obligation_id, None)

        return sorted(members.values(), key=lambda o: o.created_at)

    def put_obligation(self, obligation: Obligation) -> None:
        self._writes[(OBLIGATIONS, obligation.owner_id, obligation.id)] = (
            obligation.model_copy(deep=True)
        )

    def put_ledger(self, ledger: Ledger) -> None:
        self._writes[(LEDGERS, ledger.owner_id, ledger.id)] = ledger.model_copy(deep=True)

    def put_template(self, template: RecurringTemplate) -> None:
        self._writes[(TEMPLATES, template.owner_id, template.id)] = (
            template.model_copy(deep=True)
        )

    def delete_obligation(self, owner_id: str, obligation_id: UUID) -> None:
        self._writes[(OBLIGATIONS, owner_id, obligation_id)] = None

    def delete_ledger(self, owner_id: str, ledger_id: UUID) -> None:
        self._writes[(LEDGERS, owner_id, ledger_id)] = None

    async def commit(self) -> None:
        await self._storage._commit(self._read_versions, self._writes)


class InMemoryLedgerStorage(LedgerStorageInterface):
    """
    Dictionary-backed ledger storage.

    Versions come from a single counter, so a document deleted and
    recreated under the same id never reuses an old version.
    """

    def __init__(self):
        self._records: dict[DocumentKey, tuple[int, Document]] = {}
        self._clock = 0
        self._lock = asyncio.Lock()

    # -- low-level helpers ---------------------------------------------------

    def _snapshot(self, key: DocumentKey) -> tuple[int, Optional[Document]]:
        """Current (version, copy) of a document; version 0 means absent."""
        record = self._records.get(key)
        if record is None:
            return 0, None
        version, document = record
        return version, document.model_copy(deep=True)

    def _keys(self, collection: str, owner_id: Optional[str] = None) -> list[DocumentKey]:
        return [
            key for key in self._records
            if key[0] == collection and (owner_id is None or key[1] == owner_id)
        ]

    def _documents(self, collection: str, owner_id: Optional[str] = None) -> list:
        return [self._snapshot(key)[1] for key in self._keys(collection, owner_id)]

    async def _commit(
        self,
        read_versions: dict[DocumentKey, int],
        writes: dict[DocumentKey, Optional[Document]],
    ) -> None:
        async with self._lock:
            for key, seen_version in read_versions.items():
                record = self._records.get(key)
                current_version = record[0] if record else 0
                if current_version != seen_version:
                    raise ConcurrencyConflict(
                        f"{key[0]} {key[2]} changed since it was read"
                    )

            for key, document in writes.items():
                if document is None:
                    self._records.pop(key, None)
                    continue
                self._clock += 1
                self._records[key] = (self._clock, document.model_copy(deep=True))

    # -- obligations ---------------------------------------------------------

    async def get_obligation(
        self, owner_id: str, obligation_id: UUID
    ) -> Optional[Obligation]:
        return self._snapshot((OBLIGATIONS, owner_id, obligation_id))[1]

    async def list_obligations(
        self,
        owner_id: str,
        group_id: Optional[UUID] = None,
        ungrouped_only: bool = False,
        is_paid: Optional[bool] = None,
        template_id: Optional[UUID] = None,
    ) -> list[Obligation]:
        obligations = []
        for obligation in self._documents(OBLIGATIONS, owner_id):
            if group_id is not None and obligation.group_id != group_id:
                continue
            if ungrouped_only and obligation.group_id is not None:
                continue
            if is_paid is not None and obligation.is_paid != is_paid:
                continue
            if template_id is not None and (
                obligation.recurrence is None
                or obligation.recurrence.template_id != template_id
            ):
                continue
            obligations.append(obligation)

        obligations.sort(key=lambda o: o.created_at, reverse=True)
        return obligations

    # -- ledgers -------------------------------------------------------------

    async def get_ledger(self, owner_id: str, ledger_id: UUID) -> Optional[Ledger]:
        return self._snapshot((LEDGERS, owner_id, ledger_id))[1]

    async def list_ledgers(self, owner_id: str) -> list[Ledger]:
        ledgers = self._documents(LEDGERS, owner_id)
        ledgers.sort(key=lambda g: g.created_at, reverse=True)
        return ledgers

    # -- templates -----------------------------------------------------------

    async def get_template(
        self, owner_id: str, template_id: UUID
    ) -> Optional[RecurringTemplate]:
        return self._snapshot((TEMPLATES, owner_id, template_id))[1]

    async def list_templates(
        self,
        owner_id: str,
        active_only: bool = False,
    ) -> list[RecurringTemplate]:
        templates = [
            t for t in self._documents(TEMPLATES, owner_id)
            if t.is_active or not active_only
        ]
        templates.sort(key=lambda t: t.created_at, reverse=True)
        return templates

    async def list_due_templates(self, as_of: date) -> list[RecurringTemplate]:
        due = [
            t for t in self._documents(TEMPLATES)
            if t.is_active and t.next_occurrence_date <= as_of
        ]
        due.sort(key=lambda t: (t.next_occurrence_date, t.created_at))
        return due

    # -- transactions --------------------------------------------------------

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[InMemoryTransaction]:
        txn = InMemoryTransaction(self)
        yield txn
        await txn.commit()


class InMemoryAuditStorage(AuditStorageInterface):
    """
    In-memory implementation of audit log storage.

    Audit events are append-only.
    """

    def __init__(self):
        self._events: list[AuditEvent] = []

    async def append_event(self, event: AuditEvent) -> bool:
        self._events.append(event.model_copy(deep=True))
        return True

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        events = [e for e in self._events if e.correlation_id == correlation_id]
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: UUID,
    ) -> list[AuditEvent]:
        events = [
            e for e in self._events
            if e.entity_type == entity_type and e.entity_id == entity_id
        ]
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        events = sorted(self._events, key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
