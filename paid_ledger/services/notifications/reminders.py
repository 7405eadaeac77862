"""
Payment Reminders

Composes the "you owe me" text for an obligation and hands it to a
messaging collaborator.

DESIGN DECISION: Reminders are fire-and-forget. Delivery is not part of
ledger correctness, so a failed send is logged and audited and then
dropped; it never propagates into the calling flow.
"""

from abc import ABC, abstractmethod
from typing import Optional
from uuid import UUID

import structlog

from paid_ledger.audit import AuditLogger
from paid_ledger.config import AppSettings, get_settings
from paid_ledger.errors import ValidationError
from paid_ledger.models.audit import AuditEventBuilder
from paid_ledger.models.ledger import Obligation, ReminderMessage


logger = structlog.get_logger()


def compose_reminder(
    obligation: Obligation,
    pay_handle: Optional[str] = None,
    settings: Optional[AppSettings] = None,
) -> ReminderMessage:
    """
    Build the reminder for an unpaid obligation.

    Example:
        Hey, just a reminder that you owe me $12.50 for Pizza night.

        Pay here: trypaid.io/alex

    Raises:
        ValidationError: The obligation is already paid
    """
    if obligation.is_paid:
        raise ValidationError(f"Obligation {obligation.id} is already paid")

    settings = settings or get_settings().app
    body = (
        f"Hey, just a reminder that you owe me "
        f"{settings.currency_symbol}{obligation.amount:.2f}"
    )
    if obligation.description:
        body += f" for {obligation.description}"
    body += "."

    if pay_handle:
        body += f"\n\nPay here: {settings.pay_link_base_url}/{pay_handle.strip()}"

    return ReminderMessage(
        obligation_id=obligation.id,
        recipient=obligation.contact_ref,
        body=body,
    )


class ReminderNotifier(ABC):
    """
    Delivers a composed reminder (device messaging, SMS, push...).

    Implementations may raise on failure; ReminderService absorbs it.
    """

    @abstractmethod
    async def send(self, message: ReminderMessage) -> None:
        pass


class LoggingReminderNotifier(ReminderNotifier):
    """
    Notifier that only writes the reminder to the structured log.

    Keeps every message it was handed in `sent`, which makes it the
    notifier of choice for tests and local runs.
    """

    def __init__(self):
        self.sent: list[ReminderMessage] = []
        self._logger = structlog.get_logger("paid_ledger.reminders")

    async def send(self, message: ReminderMessage) -> None:
        self.sent.append(message)
        self._logger.info(
            "reminder_dispatched",
            obligation_id=str(message.obligation_id),
            has_recipient=message.recipient is not None,
        )


class ReminderService:
    """Composes and dispatches reminders, auditing the outcome."""

    def __init__(
        self,
        notifier: ReminderNotifier,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[AppSettings] = None,
    ):
        self._notifier = notifier
        self._audit_logger = audit_logger
        self._settings = settings

    async def remind(
        self,
        owner_id: str,
        obligation: Obligation,
        pay_handle: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> bool:
        """
        Send a reminder for `obligation`.

        Returns:
            True if the notifier accepted it, False if delivery failed
        """
        message = compose_reminder(obligation, pay_handle, self._settings)

        try:
            await self._notifier.send(message)
        except Exception as e:
            logger.warning(
                "reminder_failed",
                obligation_id=str(obligation.id),
                error=str(e),
            )
            if self._audit_logger:
                await self._audit_logger.log(AuditEventBuilder.reminder_failed(
                    obligation_id=obligation.id,
                    owner_id=owner_id,
                    error_message=str(e),
                    correlation_id=correlation_id,
                ))
            return False

        if self._audit_logger:
            await self._audit_logger.log(AuditEventBuilder.reminder_sent(
                obligation_id=obligation.id,
                owner_id=owner_id,
                recipient=message.recipient,
                correlation_id=correlation_id,
            ))
        return True
