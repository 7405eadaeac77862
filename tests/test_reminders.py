"""Tests for reminder composition and dispatch."""

import pytest
from decimal import Decimal

from paid_ledger.config import AppSettings
from paid_ledger.errors import ValidationError
from paid_ledger.models.audit import AuditEventType
from paid_ledger.models.ledger import Obligation
from paid_ledger.services.notifications import (
    LoggingReminderNotifier,
    ReminderNotifier,
    ReminderService,
    compose_reminder,
)

from tests.conftest import OWNER


class FailingNotifier(ReminderNotifier):
    async def send(self, message):
        raise ConnectionError("messaging app not installed")


def _obligation(**overrides) -> Obligation:
    values = dict(owner_id=OWNER, debtor_name="Alex", amount=Decimal("12.5"))
    values.update(overrides)
    return Obligation(**values)


class TestComposeReminder:
    """Tests for the reminder text."""

    def test_with_description(self, app_settings):
        """Test the message names what the money was for."""
        message = compose_reminder(_obligation(description="Pizza night"), settings=app_settings)
        assert message.body == "Hey, just a reminder that you owe me $12.50 for Pizza night."

    def test_without_description(self, app_settings):
        """Test the message without a description."""
        message = compose_reminder(_obligation(), settings=app_settings)
        assert message.body == "Hey, just a reminder that you owe me $12.50."

    def test_pay_link(self, app_settings):
        """Test the pay link appended after a blank line."""
        message = compose_reminder(_obligation(), pay_handle=" alex ", settings=app_settings)
        assert message.body.endswith("\n\nPay here: trypaid.io/alex")

    def test_currency_from_settings(self):
        """Test a configured currency symbol."""
        settings = AppSettings(currency_symbol="€")
        assert "€12.50" in compose_reminder(_obligation(), settings=settings).body

    def test_recipient_is_contact(self, app_settings):
        """Test that the contact reference is the recipient."""
        message = compose_reminder(_obligation(contact_ref="+15550100"), settings=app_settings)
        assert message.recipient == "+15550100"

    def test_paid_obligation_rejected(self, app_settings):
        """Test that nobody is reminded about a settled debt."""
        with pytest.raises(ValidationError):
            compose_reminder(_obligation(is_paid=True), settings=app_settings)


class TestReminderService:
    """Tests for dispatching reminders."""

    async def test_sends_and_audits(self, audit_logger, audit_storage, app_settings):
        """Test a successful dispatch."""
        notifier = LoggingReminderNotifier()
        service = ReminderService(notifier, audit_logger=audit_logger, settings=app_settings)
        obligation = _obligation()

        assert await service.remind(OWNER, obligation) is True

        assert [m.obligation_id for m in notifier.sent] == [obligation.id]
        events = await audit_storage.get_events_by_entity("obligation", obligation.id)
        assert events[-1].event_type == AuditEventType.REMINDER_SENT

    async def test_failed_send_is_absorbed(self, audit_logger, audit_storage, app_settings):
        """Test that a delivery failure returns False instead of raising."""
        service = ReminderService(FailingNotifier(), audit_logger=audit_logger, settings=app_settings)
        obligation = _obligation()

        assert await service.remind(OWNER, obligation) is False

        events = await audit_storage.get_events_by_entity("obligation", obligation.id)
        assert events[-1].event_type == AuditEventType.REMINDER_FAILED
        assert "not installed" in events[-1].error_message
