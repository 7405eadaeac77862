"""
Obligation Store

Every mutation of an obligation goes through here.

DESIGN DECISION: A mutation and the reconcile of every ledger it
touches commit in ONE transaction. Moving a $30 debt from ledger A to
ledger B writes the obligation, recomputes A without it and B with it,
and either all three documents land or none do. Concurrent writers to
the same ledger collide on its pinned version and the loser retries
from its first read.

Input is validated before any transaction opens: a rejected request
never writes anything.
"""

from typing import Any, Optional, Union
from uuid import UUID

import structlog

from paid_ledger.audit import AuditLogger
from paid_ledger.config import StorageSettings
from paid_ledger.errors import NotFoundError
from paid_ledger.ledger.aggregator import LedgerAggregator
from paid_ledger.models.audit import AuditEvent, AuditEventBuilder
from paid_ledger.models.ledger import (
    Obligation,
    ObligationCreate,
    ObligationUpdate,
    RecurrenceLink,
    RecurrenceOptions,
    RecurringTemplate,
    SingleObligationFields,
    utcnow,
)
from paid_ledger.recurrence.templates import build_template
from paid_ledger.services.storage import (
    LedgerStorageInterface,
    StorageTransaction,
    run_transactional,
)
from paid_ledger.validation import LedgerValidator


logger = structlog.get_logger()


class ObligationStore:
    """
    Creates, reads and mutates obligations, keeping ledgers consistent.

    Operations that change amount, paid state or membership reconcile
    the old and the new ledger inside the same transaction.
    """

    def __init__(
        self,
        storage: LedgerStorageInterface,
        aggregator: Optional[LedgerAggregator] = None,
        validator: Optional[LedgerValidator] = None,
        audit_logger: Optional[AuditLogger] = None,
        storage_settings: Optional[StorageSettings] = None,
    ):
        self._storage = storage
        self._validator = validator or LedgerValidator()
        self._aggregator = aggregator or LedgerAggregator(
            storage,
            validator=self._validator,
            audit_logger=audit_logger,
            storage_settings=storage_settings,
        )
        self._audit_logger = audit_logger
        self._storage_settings = storage_settings

    async def _audit(self, event: AuditEvent) -> None:
        if self._audit_logger:
            await self._audit_logger.log(event)

    async def _transact(self, operation, *args):
        return await run_transactional(
            operation,
            *args,
            settings=self._storage_settings,
        )

    async def _load(
        self,
        txn: StorageTransaction,
        owner_id: str,
        obligation_id: UUID,
    ) -> Obligation:
        obligation = await txn.get_obligation(owner_id, obligation_id)
        if obligation is None:
            raise NotFoundError("obligation", obligation_id)
        return obligation

    async def _require_ledger(
        self,
        txn: StorageTransaction,
        owner_id: str,
        group_id: Optional[UUID],
    ) -> None:
        if group_id is not None and await txn.get_ledger(owner_id, group_id) is None:
            raise NotFoundError("ledger", group_id)

    async def _reconcile_all(
        self,
        txn: StorageTransaction,
        owner_id: str,
        *group_ids: Optional[UUID],
    ) -> None:
        for group_id in dict.fromkeys(g for g in group_ids if g is not None):
            await self._aggregator.reconcile_in(txn, owner_id, group_id)

    # =========================================================================
    # CREATE
    # =========================================================================

    async def create(
        self,
        owner_id: str,
        data: Union[ObligationCreate, dict[str, Any]],
        recurrence: Optional[Union[RecurrenceOptions, dict[str, Any]]] = None,
        correlation_id: Optional[UUID] = None,
    ) -> Obligation:
        """
        Record a new obligation.

        With recurrence options, a single-obligation template is created
        in the same transaction and this obligation becomes its
        occurrence #0.

        Raises:
            ValidationError: Non-finite or negative amount, missing fields
            NotFoundError: group_id names a ledger that does not exist
        """
        request = self._validator.require(ObligationCreate, data, "obligation")
        options = None
        if recurrence is not None:
            options = self._validator.require(RecurrenceOptions, recurrence, "recurrence")

        obligation, template = await self._transact(
            self._create_once, owner_id, request, options
        )

        logger.info(
            "obligation_created",
            obligation_id=str(obligation.id),
            group_id=str(obligation.group_id) if obligation.group_id else None,
            recurring=template is not None,
        )
        await self._audit(AuditEventBuilder.obligation_created(
            obligation_id=obligation.id,
            owner_id=owner_id,
            debtor_name=obligation.debtor_name,
            amount=obligation.amount,
            group_id=obligation.group_id,
            correlation_id=correlation_id,
        ))
        if template is not None:
            await self._audit(AuditEventBuilder.template_created(
                template_id=template.id,
                owner_id=owner_id,
                subject_kind=template.subject_kind.value,
                frequency=template.frequency.value,
                next_occurrence_date=template.next_occurrence_date,
                correlation_id=correlation_id,
            ))
        return obligation

    async def _create_once(
        self,
        owner_id: str,
        request: ObligationCreate,
        options: Optional[RecurrenceOptions],
    ) -> tuple[Obligation, Optional[RecurringTemplate]]:
        obligation = Obligation(owner_id=owner_id, **request.model_dump())
        template = None

        async with self._storage.transaction() as txn:
            await self._require_ledger(txn, owner_id, obligation.group_id)

            if options is not None:
                fields = SingleObligationFields(**request.model_dump())
                template = build_template(owner_id, fields, options)
                template.generated_instance_ids.append(obligation.id)
                obligation.recurrence = RecurrenceLink(
                    template_id=template.id,
                    instance_index=0,
                )
                txn.put_template(template)

            txn.put_obligation(obligation)
            await self._reconcile_all(txn, owner_id, obligation.group_id)

        return obligation, template

    # =========================================================================
    # READ
    # =========================================================================

    async def get(self, owner_id: str, obligation_id: UUID) -> Obligation:
        obligation = await self._storage.get_obligation(owner_id, obligation_id)
        if obligation is None:
            raise NotFoundError("obligation", obligation_id)
        return obligation

    async def list_obligations(
        self,
        owner_id: str,
        group_id: Optional[UUID] = None,
        ungrouped_only: bool = False,
        is_paid: Optional[bool] = None,
        template_id: Optional[UUID] = None,
    ) -> list[Obligation]:
        """Owner's obligations, newest first."""
        return await self._storage.list_obligations(
            owner_id,
            group_id=group_id,
            ungrouped_only=ungrouped_only,
            is_paid=is_paid,
            template_id=template_id,
        )

    # =========================================================================
    # MUTATIONS
    # =========================================================================

    async def set_paid(
        self,
        owner_id: str,
        obligation_id: UUID,
        paid: bool,
        correlation_id: Optional[UUID] = None,
    ) -> Obligation:
        """Mark paid or unpaid. Setting the current state again is a no-op."""
        obligation, changed = await self._transact(
            self._set_paid_once, owner_id, obligation_id, paid
        )
        if changed:
            await self._audit(AuditEventBuilder.obligation_paid_state(
                obligation_id=obligation_id,
                owner_id=owner_id,
                is_paid=paid,
                correlation_id=correlation_id,
            ))
        return obligation

    async def _set_paid_once(
        self,
        owner_id: str,
        obligation_id: UUID,
        paid: bool,
    ) -> tuple[Obligation, bool]:
        async with self._storage.transaction() as txn:
            obligation = await self._load(txn, owner_id, obligation_id)
            if obligation.is_paid == paid:
                return obligation, False

            now = utcnow()
            obligation = obligation.model_copy(update={
                "is_paid": paid,
                "paid_at": now if paid else None,
                "updated_at": now,
            })
            txn.put_obligation(obligation)
            await self._reconcile_all(txn, owner_id, obligation.group_id)
        return obligation, True

    async def update(
        self,
        owner_id: str,
        obligation_id: UUID,
        changes: Union[ObligationUpdate, dict[str, Any]],
        correlation_id: Optional[UUID] = None,
    ) -> Obligation:
        """
        Change an obligation's own fields.

        Paid state and ledger membership have their own operations.
        """
        request = self._validator.require(ObligationUpdate, changes, "obligation update")
        fields = request.changes()

        obligation = await self._transact(
            self._update_once, owner_id, obligation_id, fields
        )
        if fields:
            await self._audit(AuditEventBuilder.obligation_updated(
                obligation_id=obligation_id,
                owner_id=owner_id,
                changed_fields=sorted(fields),
                correlation_id=correlation_id,
            ))
        return obligation

    async def _update_once(
        self,
        owner_id: str,
        obligation_id: UUID,
        fields: dict[str, Any],
    ) -> Obligation:
        async with self._storage.transaction() as txn:
            current = await self._load(txn, owner_id, obligation_id)
            if not fields:
                return current

            # Re-validate the merged document; explicit None on a required field fails here
            updated = self._validator.require(
                Obligation,
                {**current.model_dump(), **fields, "updated_at": utcnow()},
                "obligation",
            )
            txn.put_obligation(updated)
            if "amount" in fields:
                await self._reconcile_all(txn, owner_id, updated.group_id)
        return updated

    async def delete(
        self,
        owner_id: str,
        obligation_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """
        Delete an obligation and reconcile the ledger it belonged to.

        A template that generated it keeps the id in its history.
        """
        group_id = await self._transact(self._delete_once, owner_id, obligation_id)
        await self._audit(AuditEventBuilder.obligation_deleted(
            obligation_id=obligation_id,
            owner_id=owner_id,
            group_id=group_id,
            correlation_id=correlation_id,
        ))

    async def _delete_once(self, owner_id: str, obligation_id: UUID) -> Optional[UUID]:
        async with self._storage.transaction() as txn:
            obligation = await self._load(txn, owner_id, obligation_id)
            txn.delete_obligation(owner_id, obligation_id)
            await self._reconcile_all(txn, owner_id, obligation.group_id)
        return obligation.group_id

    async def reassign_group(
        self,
        owner_id: str,
        obligation_id: UUID,
        new_group_id: Optional[UUID],
        correlation_id: Optional[UUID] = None,
    ) -> Obligation:
        """
        Move an obligation to another ledger, or out of any (None).

        Both the ledger it left and the one it joined are reconciled.

        Raises:
            NotFoundError: Obligation or target ledger missing
        """
        obligation, old_group_id = await self._transact(
            self._reassign_once, owner_id, obligation_id, new_group_id
        )
        if old_group_id != new_group_id:
            await self._audit(AuditEventBuilder.obligation_reassigned(
                obligation_id=obligation_id,
                owner_id=owner_id,
                old_group_id=old_group_id,
                new_group_id=new_group_id,
                correlation_id=correlation_id,
            ))
        return obligation

    async def _reassign_once(
        self,
        owner_id: str,
        obligation_id: UUID,
        new_group_id: Optional[UUID],
    ) -> tuple[Obligation, Optional[UUID]]:
        async with self._storage.transaction() as txn:
            obligation = await self._load(txn, owner_id, obligation_id)
            old_group_id = obligation.group_id
            if old_group_id == new_group_id:
                return obligation, old_group_id

            await self._require_ledger(txn, owner_id, new_group_id)
            obligation = obligation.model_copy(update={
                "group_id": new_group_id,
                "updated_at": utcnow(),
            })
            txn.put_obligation(obligation)
            await self._reconcile_all(txn, owner_id, old_group_id, new_group_id)
        return obligation, old_group_id
