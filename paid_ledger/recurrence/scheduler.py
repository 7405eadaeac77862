"""
Recurrence Scheduler

Periodically finds due templates across all owners and hands each one
to the materializer.

DESIGN DECISION: A tick is safe to run at any time, any number of
times, including overlapping with itself. The due-template query is only
a snapshot; the materializer re-checks every template inside its own
transaction, so a stale snapshot costs a skipped entry, never a
duplicate instance.

Failures are isolated per template. One template that cannot be
generated is reported and left untouched (it stays due and is retried
on the next tick); the rest of the tick carries on.
"""

import asyncio
from datetime import date, datetime
from typing import Optional

import structlog

from paid_ledger.audit import AuditLogger, create_correlation_id
from paid_ledger.config import SchedulerSettings, StorageSettings, get_settings
from paid_ledger.errors import GenerationError
from paid_ledger.models.audit import AuditEventBuilder
from paid_ledger.models.ledger import RecurringTemplate, utcnow
from paid_ledger.models.schedule import GenerationOutcome, TemplateState, TickReport
from paid_ledger.recurrence.calculator import is_past_end, next_occurrence
from paid_ledger.recurrence.materializer import RecurrenceMaterializer
from paid_ledger.services.storage import LedgerStorageInterface, run_transactional


logger = structlog.get_logger()


def backlog(template: RecurringTemplate, today: date) -> int:
    """
    How many occurrences of `template` are due but not yet generated.

    1 is normal for a due template. Anything higher means the scheduler
    fell behind; it will catch up one occurrence per tick.
    """
    if not template.is_active:
        return 0

    count = 0
    occurrence = template.next_occurrence_date
    while occurrence <= today and not is_past_end(template.end_date, occurrence):
        count += 1
        occurrence = next_occurrence(template.frequency, occurrence, template.day_of_month)
    return count


class RecurrenceScheduler:
    """
    Drives materialization on a fixed interval.

    Usage:
        scheduler = RecurrenceScheduler(storage, materializer)
        report = await scheduler.tick()               # one pass
        await scheduler.run_forever(stop_event=stop)  # background loop
    """

    def __init__(
        self,
        storage: LedgerStorageInterface,
        materializer: RecurrenceMaterializer,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[SchedulerSettings] = None,
        storage_settings: Optional[StorageSettings] = None,
    ):
        self._storage = storage
        self._materializer = materializer
        self._audit_logger = audit_logger
        self._settings = settings or get_settings().scheduler
        self._storage_settings = storage_settings

    async def tick(self, now: Optional[datetime] = None) -> TickReport:
        """
        One scheduler pass as of `now` (defaults to the current UTC time).

        Returns:
            TickReport listing what was generated, retired, skipped
            and what failed
        """
        now = now or utcnow()
        today = now.date()
        correlation_id = create_correlation_id()
        report = TickReport(started_at=utcnow())

        due = await run_transactional(
            self._storage.list_due_templates,
            today,
            settings=self._storage_settings,
        )
        logger.info(
            "scheduler_tick_started",
            as_of=today.isoformat(),
            due_templates=len(due),
            correlation_id=str(correlation_id),
        )

        for template in due:
            lag = backlog(template, today)
            if lag > 1:
                logger.warning(
                    "template_backlog",
                    template_id=str(template.id),
                    periods_behind=lag,
                )

            try:
                outcome = await self._materializer.materialize(
                    template.owner_id,
                    template.id,
                    now,
                    correlation_id=correlation_id,
                )
            except GenerationError as e:
                report.failed.append(GenerationOutcome(
                    template_id=template.id,
                    owner_id=template.owner_id,
                    state=TemplateState.DUE,
                    next_occurrence_date=template.next_occurrence_date,
                    error_message=str(e.cause),
                ))
                continue

            if outcome.state == TemplateState.ADVANCED:
                report.generated.append(outcome)
            elif outcome.retired:
                report.retired.append(template.id)
            else:
                report.skipped.append(template.id)

        report.finished_at = utcnow()
        logger.info(
            "scheduler_tick_completed",
            generated=report.generated_count,
            retired=len(report.retired),
            skipped=len(report.skipped),
            failed=len(report.failed),
            correlation_id=str(correlation_id),
        )
        if self._audit_logger:
            await self._audit_logger.log(AuditEventBuilder.tick_completed(
                generated=report.generated_count,
                retired=len(report.retired),
                skipped=len(report.skipped),
                failed=len(report.failed),
                correlation_id=correlation_id,
            ))
        return report

    async def run_forever(
        self,
        interval: Optional[float] = None,
        stop_event: Optional[asyncio.Event] = None,
    ) -> int:
        """
        Tick every `interval` seconds until `stop_event` is set.

        A tick that blows up is logged and audited; the loop keeps going
        so one bad night does not stop every later occurrence.

        Returns:
            Number of ticks run
        """
        if not self._settings.enabled:
            logger.info("scheduler_disabled")
            return 0

        interval = interval or self._settings.interval_seconds
        stop_event = stop_event or asyncio.Event()
        ticks = 0

        logger.info("scheduler_started", interval_seconds=interval)
        while not stop_event.is_set():
            try:
                await self.tick()
            except Exception as e:
                logger.exception("scheduler_tick_crashed", error=str(e))
                if self._audit_logger:
                    await self._audit_logger.log_error(
                        error_type=type(e).__name__,
                        error_message=str(e),
                        details={"component": "scheduler"},
                    )
            ticks += 1

            try:
                await asyncio.wait_for(stop_event.wait(), timeout=interval)
            except asyncio.TimeoutError:
                pass

        logger.info("scheduler_stopped", ticks=ticks)
        return ticks
