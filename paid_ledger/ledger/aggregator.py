"""
Ledger Aggregator

Keeps each ledger's cached totals equal to what its members say.

DESIGN DECISION: Aggregates are ALWAYS recomputed from the full member
set. Nothing ever adds a delta to total_amount or paid_amount, and
there is no separate member counter. A reconcile re-reads every member
and overwrites:

    total_amount = sum of member amounts
    paid_amount  = sum of paid member amounts
    is_completed = at least one member and every member paid
    member_ids   = ids of obligations whose group_id is this ledger

Because the result depends only on current member state, reconcile is
idempotent and convergent: running it again heals whatever a crashed
or racing writer left behind.

Reconciliation runs inside the same transaction as the mutation that
triggered it (reconcile_in), or on its own (reconcile). Either way the
ledger's read version is pinned, so two reconciles of the same ledger
cannot both commit a stale view.
"""

from decimal import Decimal
from typing import Any, Optional, Union
from uuid import UUID

import structlog

from paid_ledger.audit import AuditLogger
from paid_ledger.config import StorageSettings
from paid_ledger.errors import NotFoundError, StorageError, ValidationError
from paid_ledger.models.audit import AuditEvent, AuditEventBuilder
from paid_ledger.models.ledger import (
    GroupFields,
    Ledger,
    LedgerWithMembers,
    MemberDefinition,
    Obligation,
    ReceiptBreakdown,
    RecurrenceOptions,
    RecurringTemplate,
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


def compute_aggregate(ledger: Ledger, members: list[Obligation]) -> Ledger:
    """Pure recompute of a ledger's cached fields from its members."""
    total = sum((m.amount for m in members), Decimal("0"))
    paid = sum((m.amount for m in members if m.is_paid), Decimal("0"))
    return ledger.model_copy(update={
        "total_amount": total,
        "paid_amount": paid,
        "is_completed": bool(members) and all(m.is_paid for m in members),
        "member_ids": {m.id for m in members},
    })


def _aggregate_key(ledger: Ledger) -> tuple:
    return (
        ledger.total_amount,
        ledger.paid_amount,
        ledger.is_completed,
        frozenset(ledger.member_ids),
    )


def members_from_obligations(obligations: list[Obligation]) -> list[MemberDefinition]:
    """Snapshot obligations as member blueprints (amounts, names, contacts)."""
    return [
        MemberDefinition(
            debtor_name=o.debtor_name,
            amount=o.amount,
            description=o.description,
            contact_ref=o.contact_ref,
        )
        for o in obligations
    ]


class LedgerAggregator:
    """
    Reconciles ledgers and manages ledger lifecycle.

    GUARANTEES:
    - A committed ledger always matches the members it was computed from
    - A failed reconcile writes nothing; it is retried from scratch
    - Deleting a ledger never leaves a member pointing at it
    """

    def __init__(
        self,
        storage: LedgerStorageInterface,
        validator: Optional[LedgerValidator] = None,
        audit_logger: Optional[AuditLogger] = None,
        storage_settings: Optional[StorageSettings] = None,
    ):
        self._storage = storage
        self._validator = validator or LedgerValidator()
        self._audit_logger = audit_logger
        self._storage_settings = storage_settings

    async def _audit(self, event: AuditEvent) -> None:
        if self._audit_logger:
            await self._audit_logger.log(event)

    # =========================================================================
    # RECONCILIATION
    # =========================================================================

    async def reconcile_in(
        self,
        txn: StorageTransaction,
        owner_id: str,
        group_id: UUID,
    ) -> Optional[Ledger]:
        """
        Recompute a ledger inside an open transaction.

        Sees the transaction's own pending member writes. Writes the
        ledger only when an aggregate field actually changed.

        Returns:
            The reconciled ledger, or None if it does not exist
        """
        ledger = await txn.get_ledger(owner_id, group_id)
        if ledger is None:
            return None

        members = await txn.list_group_members(owner_id, group_id)
        reconciled = compute_aggregate(ledger, members)
        if _aggregate_key(reconciled) == _aggregate_key(ledger):
            return ledger

        reconciled = reconciled.model_copy(update={"updated_at": utcnow()})
        txn.put_ledger(reconciled)
        return reconciled

    async def reconcile(
        self,
        owner_id: str,
        group_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> Optional[Ledger]:
        """
        Recompute a ledger's aggregate from scratch and persist it.

        A missing ledger means there is nothing to do (returns None).
        Storage failures part-way through abandon the whole attempt;
        the attempt is retried, and after the last one the error is
        audited and re-raised.
        """
        try:
            ledger = await run_transactional(
                self._reconcile_once,
                owner_id,
                group_id,
                settings=self._storage_settings,
            )
        except StorageError as e:
            logger.error("reconcile_failed", group_id=str(group_id), error=str(e))
            await self._audit(AuditEventBuilder.reconcile_failed(
                ledger_id=group_id,
                owner_id=owner_id,
                error_message=str(e),
                correlation_id=correlation_id,
            ))
            raise

        if ledger is None:
            logger.debug("reconcile_skipped_missing_ledger", group_id=str(group_id))
            return None

        await self._audit(AuditEventBuilder.ledger_reconciled(
            ledger_id=ledger.id,
            owner_id=owner_id,
            total_amount=ledger.total_amount,
            paid_amount=ledger.paid_amount,
            is_completed=ledger.is_completed,
            member_count=len(ledger.member_ids),
            correlation_id=correlation_id,
        ))
        return ledger

    async def _reconcile_once(self, owner_id: str, group_id: UUID) -> Optional[Ledger]:
        async with self._storage.transaction() as txn:
            return await self.reconcile_in(txn, owner_id, group_id)

    # =========================================================================
    # CREATE
    # =========================================================================

    async def create_group(
        self,
        owner_id: str,
        name: str,
        description: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> Ledger:
        """Create an empty ledger. Empty ledgers are never completed."""
        ledger = self._validator.require(
            Ledger,
            {"owner_id": owner_id, "name": name, "description": description},
            "ledger",
        )
        await run_transactional(
            self._put_new,
            ledger,
            [],
            settings=self._storage_settings,
        )
        await self._audit(AuditEventBuilder.ledger_created(
            ledger_id=ledger.id,
            owner_id=owner_id,
            name=ledger.name,
            member_count=0,
            correlation_id=correlation_id,
        ))
        return ledger

    async def create_group_with_members(
        self,
        owner_id: str,
        breakdown: Union[ReceiptBreakdown, dict[str, Any]],
        correlation_id: Optional[UUID] = None,
    ) -> LedgerWithMembers:
        """
        Create a ledger and one obligation per member in one transaction.

        This is the intake path for a split receipt: the per-person
        amounts are already final when they get here.
        """
        receipt = self._validator.require(ReceiptBreakdown, breakdown, "receipt")

        now = utcnow()
        ledger = Ledger(
            owner_id=owner_id,
            name=receipt.name,
            description=receipt.description,
            created_at=now,
            updated_at=now,
        )
        members = [
            Obligation(
                owner_id=owner_id,
                debtor_name=m.debtor_name,
                amount=m.amount,
                description=m.description or receipt.name,
                contact_ref=m.contact_ref,
                group_id=ledger.id,
                created_at=now,
                updated_at=now,
            )
            for m in receipt.members
        ]
        ledger = compute_aggregate(ledger, members)

        await run_transactional(
            self._put_new,
            ledger,
            members,
            settings=self._storage_settings,
        )

        await self._audit(AuditEventBuilder.ledger_created(
            ledger_id=ledger.id,
            owner_id=owner_id,
            name=ledger.name,
            member_count=len(members),
            correlation_id=correlation_id,
        ))
        for member in members:
            await self._audit(AuditEventBuilder.obligation_created(
                obligation_id=member.id,
                owner_id=owner_id,
                debtor_name=member.debtor_name,
                amount=member.amount,
                group_id=ledger.id,
                correlation_id=correlation_id,
            ))

        return LedgerWithMembers(ledger=ledger, members=members)

    async def _put_new(self, ledger: Ledger, members: list[Obligation]) -> None:
        async with self._storage.transaction() as txn:
            for member in members:
                txn.put_obligation(member)
            txn.put_ledger(ledger)

    # =========================================================================
    # READ
    # =========================================================================

    async def get_group_with_members(
        self,
        owner_id: str,
        group_id: UUID,
    ) -> LedgerWithMembers:
        """A consistent snapshot of a ledger and its members."""
        return await run_transactional(
            self._read_group,
            owner_id,
            group_id,
            settings=self._storage_settings,
        )

    async def _read_group(self, owner_id: str, group_id: UUID) -> LedgerWithMembers:
        async with self._storage.transaction() as txn:
            ledger = await txn.get_ledger(owner_id, group_id)
            if ledger is None:
                raise NotFoundError("ledger", group_id)
            members = await txn.list_group_members(owner_id, group_id)
        return LedgerWithMembers(ledger=ledger, members=members)

    async def list_groups(self, owner_id: str) -> list[Ledger]:
        return await self._storage.list_ledgers(owner_id)

    # =========================================================================
    # DELETE
    # =========================================================================

    async def delete_group(
        self,
        owner_id: str,
        group_id: UUID,
        keep_members: bool,
        correlation_id: Optional[UUID] = None,
    ) -> int:
        """
        Remove a ledger together with its membership.

        keep_members=True detaches each member (group_id set to None,
        nothing else touched); False deletes the members. The ledger row
        goes in the same transaction, so no reconcile is needed after.

        Returns:
            Number of members detached or deleted
        """
        member_count = await run_transactional(
            self._delete_once,
            owner_id,
            group_id,
            keep_members,
            settings=self._storage_settings,
        )

        logger.info(
            "ledger_deleted",
            group_id=str(group_id),
            keep_members=keep_members,
            member_count=member_count,
        )
        await self._audit(AuditEventBuilder.ledger_deleted(
            ledger_id=group_id,
            owner_id=owner_id,
            keep_members=keep_members,
            member_count=member_count,
            correlation_id=correlation_id,
        ))
        return member_count

    async def _delete_once(
        self,
        owner_id: str,
        group_id: UUID,
        keep_members: bool,
    ) -> int:
        async with self._storage.transaction() as txn:
            ledger = await txn.get_ledger(owner_id, group_id)
            if ledger is None:
                raise NotFoundError("ledger", group_id)

            members = await txn.list_group_members(owner_id, group_id)
            now = utcnow()
            for member in members:
                if keep_members:
                    txn.put_obligation(member.model_copy(update={
                        "group_id": None,
                        "updated_at": now,
                    }))
                else:
                    txn.delete_obligation(owner_id, member.id)
            txn.delete_ledger(owner_id, group_id)
        return len(members)

    # =========================================================================
    # RECURRENCE
    # =========================================================================

    async def make_group_recurring(
        self,
        owner_id: str,
        group_id: UUID,
        options: Union[RecurrenceOptions, dict[str, Any]],
        correlation_id: Optional[UUID] = None,
    ) -> RecurringTemplate:
        """
        Turn an existing ledger into the source of a group template.

        The current members are snapshotted into the template. At each
        occurrence the live members of this ledger are cloned if it still
        exists, the snapshot otherwise. This ledger itself is never
        mutated by generation.

        Raises:
            NotFoundError: No such ledger
            ValidationError: Bad schedule, or the ledger already recurs
        """
        schedule = self._validator.require(RecurrenceOptions, options, "recurrence")
        template = await run_transactional(
            self._make_recurring_once,
            owner_id,
            group_id,
            schedule,
            settings=self._storage_settings,
        )

        logger.info(
            "ledger_made_recurring",
            group_id=str(group_id),
            template_id=str(template.id),
        )
        await self._audit(AuditEventBuilder.template_created(
            template_id=template.id,
            owner_id=owner_id,
            subject_kind=template.subject_kind.value,
            frequency=template.frequency.value,
            next_occurrence_date=template.next_occurrence_date,
            correlation_id=correlation_id,
        ))
        return template

    async def _make_recurring_once(
        self,
        owner_id: str,
        group_id: UUID,
        schedule: RecurrenceOptions,
    ) -> RecurringTemplate:
        async with self._storage.transaction() as txn:
            ledger = await txn.get_ledger(owner_id, group_id)
            if ledger is None:
                raise NotFoundError("ledger", group_id)

            if ledger.recurring_template_id is not None:
                existing = await txn.get_template(owner_id, ledger.recurring_template_id)
                if existing is not None and existing.is_active:
                    raise ValidationError(
                        f"Ledger {group_id} already recurs "
                        f"(template {existing.id}); cancel it first"
                    )

            members = await txn.list_group_members(owner_id, group_id)
            fields = GroupFields(
                name=ledger.name,
                description=ledger.description,
                members=members_from_obligations(members),
                source_group_id=ledger.id,
            )
            template = build_template(owner_id, fields, schedule)
            txn.put_template(template)
            txn.put_ledger(ledger.model_copy(update={
                "recurring_template_id": template.id,
                "updated_at": utcnow(),
            }))
        return template
