"""
Engine Wiring

Builds every service over one storage backend and one audit logger.

Usage:
    engine = create_engine_components()
    obligation = await engine.store.create(owner_id, {"debtor_name": "Sam", "amount": "20"})
    report = await engine.scheduler.tick()
"""

from typing import Optional

from paid_ledger.audit import AuditLogger, configure_logging
from paid_ledger.config import Settings, get_settings
from paid_ledger.ledger import LedgerAggregator, ObligationStore
from paid_ledger.queries import OwnerSummaryQuery
from paid_ledger.recurrence import RecurrenceService
from paid_ledger.recurrence.materializer import RecurrenceMaterializer
from paid_ledger.recurrence.scheduler import RecurrenceScheduler
from paid_ledger.services.notifications import (
    LoggingReminderNotifier,
    ReminderNotifier,
    ReminderService,
)
from paid_ledger.services.storage import (
    AuditStorageInterface,
    InMemoryAuditStorage,
    InMemoryLedgerStorage,
    LedgerStorageInterface,
)
from paid_ledger.validation import LedgerValidator


class LedgerEngine:
    """All engine services, sharing storage, validator and audit logger."""

    def __init__(
        self,
        storage: LedgerStorageInterface,
        audit_logger: AuditLogger,
        notifier: ReminderNotifier,
        settings: Settings,
    ):
        storage_settings = settings.storage
        app_settings = settings.app

        self.storage = storage
        self.audit_logger = audit_logger
        self.validator = LedgerValidator(app_settings)

        self.aggregator = LedgerAggregator(
            storage,
            validator=self.validator,
            audit_logger=audit_logger,
            storage_settings=storage_settings,
        )
        self.store = ObligationStore(
            storage,
            aggregator=self.aggregator,
            validator=self.validator,
            audit_logger=audit_logger,
            storage_settings=storage_settings,
        )
        self.recurrence = RecurrenceService(
            storage,
            validator=self.validator,
            audit_logger=audit_logger,
            storage_settings=storage_settings,
        )
        self.materializer = RecurrenceMaterializer(
            storage,
            self.aggregator,
            audit_logger=audit_logger,
            storage_settings=storage_settings,
        )
        self.scheduler = RecurrenceScheduler(
            storage,
            self.materializer,
            audit_logger=audit_logger,
            settings=settings.scheduler,
            storage_settings=storage_settings,
        )
        self.reminders = ReminderService(
            notifier,
            audit_logger=audit_logger,
            settings=app_settings,
        )
        self.summary = OwnerSummaryQuery(storage)


def create_engine_components(
    ledger_storage: Optional[LedgerStorageInterface] = None,
    audit_storage: Optional[AuditStorageInterface] = None,
    notifier: Optional[ReminderNotifier] = None,
    settings: Optional[Settings] = None,
) -> LedgerEngine:
    """
    Factory function to create all engine components.

    Args:
        ledger_storage: Document store; in-memory if omitted
        audit_storage: Audit persistence; in-memory if omitted
        notifier: Reminder delivery; log-only if omitted
        settings: Defaults to the cached environment settings

    Returns:
        A fully wired LedgerEngine
    """
    settings = settings or get_settings()
    configure_logging(settings.app.log_level)

    return LedgerEngine(
        storage=ledger_storage or InMemoryLedgerStorage(),
        audit_logger=AuditLogger(audit_storage or InMemoryAuditStorage()),
        notifier=notifier or LoggingReminderNotifier(),
        settings=settings,
    )
