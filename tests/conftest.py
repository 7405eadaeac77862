"""Shared fixtures: an in-memory engine with instant retries."""

import pytest
from datetime import date, datetime, timezone
from decimal import Decimal

from paid_ledger.audit import AuditLogger
from paid_ledger.config import AppSettings, SchedulerSettings, StorageSettings
from paid_ledger.ledger import LedgerAggregator, ObligationStore
from paid_ledger.models.ledger import (
    GroupFields,
    MemberDefinition,
    RecurringTemplate,
    SingleObligationFields,
)
from paid_ledger.models.schedule import Frequency, SubjectKind
from paid_ledger.recurrence import RecurrenceService
from paid_ledger.recurrence.materializer import RecurrenceMaterializer
from paid_ledger.recurrence.scheduler import RecurrenceScheduler
from paid_ledger.services.storage import InMemoryAuditStorage, InMemoryLedgerStorage
from paid_ledger.validation import LedgerValidator


OWNER = "owner-1"


def at(year: int, month: int, day: int, hour: int = 9) -> datetime:
    """A UTC instant on the given day."""
    return datetime(year, month, day, hour, tzinfo=timezone.utc)


def single_template(**overrides) -> RecurringTemplate:
    values = dict(
        owner_id=OWNER,
        subject_kind=SubjectKind.SINGLE_OBLIGATION,
        template_fields=SingleObligationFields(debtor_name="Sam", amount=Decimal("50")),
        frequency=Frequency.MONTHLY,
        start_date=date(2024, 1, 15),
        next_occurrence_date=date(2024, 2, 15),
    )
    values.update(overrides)
    return RecurringTemplate(**values)


def group_template(**overrides) -> RecurringTemplate:
    values = dict(
        owner_id=OWNER,
        subject_kind=SubjectKind.GROUP,
        template_fields=GroupFields(
            name="Rent",
            members=[
                MemberDefinition(debtor_name="Alex", amount=Decimal("400")),
                MemberDefinition(debtor_name="Jo", amount=Decimal("350")),
            ],
        ),
        frequency=Frequency.MONTHLY,
        start_date=date(2023, 12, 5),
        next_occurrence_date=date(2024, 1, 5),
    )
    values.update(overrides)
    return RecurringTemplate(**values)


async def save_template(storage, template: RecurringTemplate) -> RecurringTemplate:
    async with storage.transaction() as txn:
        txn.put_template(template)
    return template


@pytest.fixture
def storage_settings():
    return StorageSettings(retry_attempts=3, retry_min_wait=0, retry_max_wait=0)


@pytest.fixture
def app_settings():
    return AppSettings()


@pytest.fixture
def storage():
    return InMemoryLedgerStorage()


@pytest.fixture
def audit_storage():
    return InMemoryAuditStorage()


@pytest.fixture
def audit_logger(audit_storage):
    return AuditLogger(audit_storage)


@pytest.fixture
def validator(app_settings):
    return LedgerValidator(app_settings)


@pytest.fixture
def aggregator(storage, validator, audit_logger, storage_settings):
    return LedgerAggregator(
        storage,
        validator=validator,
        audit_logger=audit_logger,
        storage_settings=storage_settings,
    )


@pytest.fixture
def store(storage, aggregator, validator, audit_logger, storage_settings):
    return ObligationStore(
        storage,
        aggregator=aggregator,
        validator=validator,
        audit_logger=audit_logger,
        storage_settings=storage_settings,
    )


@pytest.fixture
def recurrence(storage, validator, audit_logger, storage_settings):
    return RecurrenceService(
        storage,
        validator=validator,
        audit_logger=audit_logger,
        storage_settings=storage_settings,
    )


@pytest.fixture
def materializer(storage, aggregator, audit_logger, storage_settings):
    return RecurrenceMaterializer(
        storage,
        aggregator,
        audit_logger=audit_logger,
        storage_settings=storage_settings,
    )


@pytest.fixture
def scheduler(storage, materializer, audit_logger, storage_settings):
    return RecurrenceScheduler(
        storage,
        materializer,
        audit_logger=audit_logger,
        settings=SchedulerSettings(interval_seconds=0.01),
        storage_settings=storage_settings,
    )
