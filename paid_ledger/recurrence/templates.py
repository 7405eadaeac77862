"""
Recurring Template Management

Creating, reading and cancelling recurring templates. Materializing
occurrences lives in materializer.py; this module only sets schedules up
and tears them down.

DESIGN DECISION: Templates are never deleted. Cancelling flips
is_active, which the scheduler observes on its next read. Occurrences
generated before the cancel are kept.
"""

from datetime import datetime
from typing import Any, Optional, Union
from uuid import UUID

import structlog

from paid_ledger.audit import AuditLogger
from paid_ledger.config import StorageSettings
from paid_ledger.errors import NotFoundError
from paid_ledger.models.audit import AuditEvent, AuditEventBuilder
from paid_ledger.models.ledger import (
    GroupFields,
    RecurrenceOptions,
    RecurringTemplate,
    SingleObligationFields,
    utcnow,
)
from paid_ledger.models.schedule import SubjectKind
from paid_ledger.recurrence.calculator import (
    default_day_of_month,
    first_occurrence,
    is_past_end,
)
from paid_ledger.services.storage import (
    LedgerStorageInterface,
    StorageTransaction,
    run_transactional,
)
from paid_ledger.validation import LedgerValidator


logger = structlog.get_logger()


def build_template(
    owner_id: str,
    template_fields: Union[SingleObligationFields, GroupFields],
    options: RecurrenceOptions,
    now: Optional[datetime] = None,
) -> RecurringTemplate:
    """
    A new template whose first occurrence follows its start date.

    Month-based schedules are anchored on the start day unless the
    options name a different day_of_month.
    """
    now = now or utcnow()
    day_of_month = options.day_of_month or default_day_of_month(
        options.frequency, options.start_date
    )
    first = first_occurrence(options.frequency, options.start_date, day_of_month)

    # Already past its end: stored inactive and never generates
    fires = not is_past_end(options.end_date, first)
    if not fires:
        logger.warning(
            "template_never_fires",
            owner_id=owner_id,
            end_date=options.end_date.isoformat(),
            first_occurrence=first.isoformat(),
        )

    return RecurringTemplate(
        owner_id=owner_id,
        subject_kind=SubjectKind(template_fields.kind),
        template_fields=template_fields,
        frequency=options.frequency,
        start_date=options.start_date,
        end_date=options.end_date,
        day_of_month=day_of_month,
        day_of_week=options.day_of_week,
        next_occurrence_date=first,
        is_active=fires,
        created_at=now,
        updated_at=now,
    )


class RecurrenceService:
    """
    Sets up and cancels recurring series for an owner.

    Every write goes through a transaction, retried on commit races.
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

    def _parse_fields(
        self,
        template_fields: Union[SingleObligationFields, GroupFields, dict[str, Any]],
    ) -> Union[SingleObligationFields, GroupFields]:
        if isinstance(template_fields, dict):
            kind = template_fields.get("kind", SubjectKind.SINGLE_OBLIGATION.value)
            model_cls = GroupFields if kind == SubjectKind.GROUP.value else SingleObligationFields
        else:
            model_cls = type(template_fields)
        return self._validator.require(model_cls, template_fields, "template")

    # =========================================================================
    # CREATE
    # =========================================================================

    async def create_template(
        self,
        owner_id: str,
        template_fields: Union[SingleObligationFields, GroupFields, dict[str, Any]],
        options: Union[RecurrenceOptions, dict[str, Any]],
        correlation_id: Optional[UUID] = None,
    ) -> RecurringTemplate:
        """
        Create a standalone recurring template.

        A single-obligation template may file every occurrence under an
        existing ledger; a group template may name a source ledger whose
        live members are cloned at each occurrence.

        Raises:
            ValidationError: Bad fields or schedule
            NotFoundError: A referenced ledger does not exist
        """
        fields = self._parse_fields(template_fields)
        schedule = self._validator.require(RecurrenceOptions, options, "recurrence")

        template = await run_transactional(
            self._create_once,
            owner_id,
            fields,
            schedule,
            settings=self._storage_settings,
        )

        logger.info(
            "template_created",
            template_id=str(template.id),
            subject_kind=template.subject_kind.value,
            next_occurrence_date=template.next_occurrence_date.isoformat(),
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

    async def _create_once(
        self,
        owner_id: str,
        fields: Union[SingleObligationFields, GroupFields],
        schedule: RecurrenceOptions,
    ) -> RecurringTemplate:
        template = build_template(owner_id, fields, schedule)
        async with self._storage.transaction() as txn:
            if isinstance(fields, SingleObligationFields) and fields.group_id is not None:
                if await txn.get_ledger(owner_id, fields.group_id) is None:
                    raise NotFoundError("ledger", fields.group_id)
            if isinstance(fields, GroupFields) and fields.source_group_id is not None:
                await self._link_source(txn, owner_id, fields.source_group_id, template.id)
            txn.put_template(template)
        return template

    async def _link_source(
        self,
        txn: StorageTransaction,
        owner_id: str,
        source_group_id: UUID,
        template_id: Optional[UUID],
    ) -> None:
        source = await txn.get_ledger(owner_id, source_group_id)
        if source is None:
            raise NotFoundError("ledger", source_group_id)
        txn.put_ledger(source.model_copy(update={
            "recurring_template_id": template_id,
            "updated_at": utcnow(),
        }))

    # =========================================================================
    # READ
    # =========================================================================

    async def get_template(self, owner_id: str, template_id: UUID) -> RecurringTemplate:
        template = await self._storage.get_template(owner_id, template_id)
        if template is None:
            raise NotFoundError("template", template_id)
        return template

    async def list_templates(
        self,
        owner_id: str,
        active_only: bool = False,
    ) -> list[RecurringTemplate]:
        return await self._storage.list_templates(owner_id, active_only=active_only)

    # =========================================================================
    # CANCEL
    # =========================================================================

    async def cancel_template(
        self,
        owner_id: str,
        template_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> RecurringTemplate:
        """
        Stop a series. Already generated occurrences are left alone.

        Cancelling an inactive template is a no-op.
        """
        template, changed = await run_transactional(
            self._cancel_once,
            owner_id,
            template_id,
            settings=self._storage_settings,
        )
        if changed:
            logger.info("template_cancelled", template_id=str(template_id))
            await self._audit(AuditEventBuilder.template_cancelled(
                template_id=template_id,
                owner_id=owner_id,
                correlation_id=correlation_id,
            ))
        return template

    async def _cancel_once(
        self,
        owner_id: str,
        template_id: UUID,
    ) -> tuple[RecurringTemplate, bool]:
        async with self._storage.transaction() as txn:
            template = await txn.get_template(owner_id, template_id)
            if template is None:
                raise NotFoundError("template", template_id)
            if not template.is_active:
                return template, False

            cancelled = template.model_copy(update={
                "is_active": False,
                "updated_at": utcnow(),
            })
            txn.put_template(cancelled)

            fields = template.template_fields
            if isinstance(fields, GroupFields) and fields.source_group_id is not None:
                source = await txn.get_ledger(owner_id, fields.source_group_id)
                if source is not None and source.recurring_template_id == template_id:
                    await self._link_source(txn, owner_id, source.id, None)
        return cancelled, True
