"""
Recurrence Materializer

Turns one due template into one concrete instance.

DESIGN DECISION: Each template moves through an explicit state machine:

    ACTIVE -> DUE -> ADVANCED

or DUE -> INACTIVE once the end date has been reached.

The whole DUE -> ADVANCED step is ONE transaction:
1. Read the template (pins its version)
2. Confirm it is still due as of today
3. Write the new obligation or ledger (plus members)
4. Append the instance id and advance next_occurrence_date by exactly
   one period from the PREVIOUS scheduled date, never from today

Commit fails if anyone advanced the template in between. The retry
re-reads it, finds it no longer due, and reports a skip. That
compare-and-set is the only de-duplication guard, and it is enough:
an occurrence is generated by at most one committed transaction.

A template that is several periods behind catches up one occurrence per
call. Bounded fan-out beats bulk generation for a job that may overlap
itself.
"""

from datetime import datetime
from typing import Optional
from uuid import UUID

import structlog

from paid_ledger.audit import AuditLogger
from paid_ledger.config import StorageSettings
from paid_ledger.errors import GenerationError
from paid_ledger.ledger.aggregator import (
    LedgerAggregator,
    compute_aggregate,
    members_from_obligations,
)
from paid_ledger.models.audit import AuditEvent, AuditEventBuilder
from paid_ledger.models.ledger import (
    GroupFields,
    Ledger,
    Obligation,
    RecurrenceLink,
    RecurringTemplate,
    SingleObligationFields,
)
from paid_ledger.models.schedule import GenerationOutcome, TemplateState
from paid_ledger.recurrence.calculator import is_past_end, next_occurrence
from paid_ledger.services.storage import (
    LedgerStorageInterface,
    StorageTransaction,
    run_transactional,
)


logger = structlog.get_logger()


class RecurrenceMaterializer:
    """
    Generates the next occurrence of a single template.

    GUARANTEES:
    - At most one instance per scheduled date, however often it is called
    - An instance and the template advance commit together or not at all
    - A failure leaves the template exactly as it was
    """

    def __init__(
        self,
        storage: LedgerStorageInterface,
        aggregator: LedgerAggregator,
        audit_logger: Optional[AuditLogger] = None,
        storage_settings: Optional[StorageSettings] = None,
    ):
        self._storage = storage
        self._aggregator = aggregator
        self._audit_logger = audit_logger
        self._storage_settings = storage_settings

    async def _audit(self, event: AuditEvent) -> None:
        if self._audit_logger:
            await self._audit_logger.log(event)

    async def materialize(
        self,
        owner_id: str,
        template_id: UUID,
        now: datetime,
        correlation_id: Optional[UUID] = None,
    ) -> GenerationOutcome:
        """
        Generate at most one occurrence of a template as of `now`.

        Returns:
            ADVANCED when an instance was committed, INACTIVE when the
            template was retired (or no longer exists), ACTIVE when there
            was nothing due (another writer got there first)

        Raises:
            GenerationError: Generation failed; nothing was written
        """
        try:
            outcome = await run_transactional(
                self._materialize_once,
                owner_id,
                template_id,
                now,
                settings=self._storage_settings,
            )
        except Exception as e:
            logger.error(
                "generation_failed",
                template_id=str(template_id),
                error=str(e),
                error_type=type(e).__name__,
            )
            await self._audit(AuditEventBuilder.generation_failed(
                template_id=template_id,
                owner_id=owner_id,
                error_message=str(e),
                correlation_id=correlation_id,
            ))
            raise GenerationError(template_id, e) from e

        if outcome.state == TemplateState.ADVANCED:
            logger.info(
                "instance_generated",
                template_id=str(template_id),
                instance_id=str(outcome.instance_id),
                instance_index=outcome.instance_index,
                next_occurrence_date=outcome.next_occurrence_date.isoformat(),
            )
            await self._audit(AuditEventBuilder.instance_generated(
                template_id=template_id,
                owner_id=owner_id,
                instance_id=outcome.instance_id,
                instance_index=outcome.instance_index,
                next_occurrence_date=outcome.next_occurrence_date,
                correlation_id=correlation_id,
            ))

        if outcome.retired:
            logger.info("template_retired", template_id=str(template_id))
            await self._audit(AuditEventBuilder.template_retired(
                template_id=template_id,
                owner_id=owner_id,
                end_date=outcome.end_date,
                correlation_id=correlation_id,
            ))

        return outcome

    async def _materialize_once(
        self,
        owner_id: str,
        template_id: UUID,
        now: datetime,
    ) -> GenerationOutcome:
        today = now.date()

        async with self._storage.transaction() as txn:
            template = await txn.get_template(owner_id, template_id)
            if template is None:
                # Nothing to generate from; same as retired
                return GenerationOutcome(
                    template_id=template_id,
                    owner_id=owner_id,
                    state=TemplateState.INACTIVE,
                )

            state = template.state_at(today)
            if state != TemplateState.DUE:
                return GenerationOutcome(
                    template_id=template_id,
                    owner_id=owner_id,
                    state=state,
                    next_occurrence_date=template.next_occurrence_date,
                )

            if is_past_end(template.end_date, today):
                txn.put_template(template.model_copy(update={
                    "is_active": False,
                    "updated_at": now,
                }))
                return GenerationOutcome(
                    template_id=template_id,
                    owner_id=owner_id,
                    state=TemplateState.INACTIVE,
                    next_occurrence_date=template.next_occurrence_date,
                    retired=True,
                    end_date=template.end_date,
                )

            # Generate, then advance
            link = RecurrenceLink(
                template_id=template.id,
                instance_index=template.next_instance_index,
            )
            if isinstance(template.template_fields, GroupFields):
                instance_id = await self._generate_group(txn, template, link, now)
            else:
                instance_id = await self._generate_obligation(txn, template, link, now)

            following = next_occurrence(
                template.frequency,
                template.next_occurrence_date,
                template.day_of_month,
            )
            still_active = not is_past_end(template.end_date, following)
            txn.put_template(template.model_copy(update={
                "generated_instance_ids": [*template.generated_instance_ids, instance_id],
                "last_generated_date": now,
                "next_occurrence_date": following,
                "is_active": still_active,
                "updated_at": now,
            }))

        return GenerationOutcome(
            template_id=template_id,
            owner_id=owner_id,
            state=TemplateState.ADVANCED,
            instance_id=instance_id,
            instance_index=link.instance_index,
            next_occurrence_date=following,
            retired=not still_active,
            end_date=template.end_date,
        )

    async def _generate_obligation(
        self,
        txn: StorageTransaction,
        template: RecurringTemplate,
        link: RecurrenceLink,
        now: datetime,
    ) -> UUID:
        fields: SingleObligationFields = template.template_fields
        group_id = fields.group_id
        if group_id is not None and await txn.get_ledger(template.owner_id, group_id) is None:
            logger.warning(
                "template_ledger_missing",
                template_id=str(template.id),
                group_id=str(group_id),
            )
            group_id = None

        obligation = Obligation(
            owner_id=template.owner_id,
            debtor_name=fields.debtor_name,
            amount=fields.amount,
            description=fields.description,
            contact_ref=fields.contact_ref,
            group_id=group_id,
            recurrence=link,
            created_at=now,
            updated_at=now,
        )
        txn.put_obligation(obligation)
        if group_id is not None:
            await self._aggregator.reconcile_in(txn, template.owner_id, group_id)
        return obligation.id

    async def _generate_group(
        self,
        txn: StorageTransaction,
        template: RecurringTemplate,
        link: RecurrenceLink,
        now: datetime,
    ) -> UUID:
        fields: GroupFields = template.template_fields
        definitions = fields.members
        if fields.source_group_id is not None:
            source = await txn.get_ledger(template.owner_id, fields.source_group_id)
            if source is not None:
                live = await txn.list_group_members(template.owner_id, source.id)
                definitions = members_from_obligations(live)

        ledger = Ledger(
            owner_id=template.owner_id,
            name=fields.name,
            description=fields.description,
            recurrence=link,
            created_at=now,
            updated_at=now,
        )
        members = [
            Obligation(
                owner_id=template.owner_id,
                debtor_name=d.debtor_name,
                amount=d.amount,
                description=d.description,
                contact_ref=d.contact_ref,
                group_id=ledger.id,
                recurrence=link,
                created_at=now,
                updated_at=now,
            )
            for d in definitions
        ]
        for member in members:
            txn.put_obligation(member)
        txn.put_ledger(compute_aggregate(ledger, members))
        return ledger.id
