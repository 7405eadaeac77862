"""
Audit Models for Paid Ledger

Every significant action in the engine is logged for audit purposes.
This provides:
1. Complete traceability of who changed which balance
2. Debugging information when a scheduler tick goes wrong
3. Ability to reconstruct the history of a recurring series

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from paid_ledger.models.ledger import utcnow


class AuditEventType(str, Enum):
    """
    Types of events we audit.

    Every mutation the core performs has its own event type.
    """
    # Obligations
    OBLIGATION_CREATED = "obligation_created"
    OBLIGATION_UPDATED = "obligation_updated"
    OBLIGATION_PAID = "obligation_paid"
    OBLIGATION_UNPAID = "obligation_unpaid"
    OBLIGATION_DELETED = "obligation_deleted"
    OBLIGATION_REASSIGNED = "obligation_reassigned"

    # Ledgers
    LEDGER_CREATED = "ledger_created"
    LEDGER_DELETED = "ledger_deleted"
    LEDGER_RECONCILED = "ledger_reconciled"
    RECONCILE_FAILED = "reconcile_failed"

    # Recurrence
    TEMPLATE_CREATED = "template_created"
    TEMPLATE_CANCELLED = "template_cancelled"
    TEMPLATE_RETIRED = "template_retired"
    INSTANCE_GENERATED = "instance_generated"
    GENERATION_FAILED = "generation_failed"
    SCHEDULER_TICK_COMPLETED = "scheduler_tick_completed"

    # Reminders
    REMINDER_SENT = "reminder_sent"
    REMINDER_FAILED = "reminder_failed"

    # System events
    SYSTEM_ERROR = "system_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    Every significant action creates one of these.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=utcnow,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Scope - whose data is this?
    owner_id: Optional[str] = Field(
        default=None,
        description="Owner the affected entity belongs to"
    )

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'obligation', 'ledger', 'template')"
    )
    entity_id: Optional[UUID] = Field(
        default=None,
        description="ID of the entity this event relates to"
    )

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g., one scheduler tick)"
    )

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    # Error information (if applicable)
    error_message: Optional[str] = None

    is_user_action: bool = Field(
        default=False,
        description="Was this triggered by a user action?"
    )

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "owner_id": self.owner_id,
            "entity_type": self.entity_type,
            "entity_id": str(self.entity_id) if self.entity_id else None,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.obligation_created(obligation_id, owner_id, ...)
        event = AuditEventBuilder.instance_generated(template_id, ...)
    """

    @staticmethod
    def obligation_created(
        obligation_id: UUID,
        owner_id: str,
        debtor_name: str,
        amount: Decimal,
        group_id: Optional[UUID] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.OBLIGATION_CREATED,
            owner_id=owner_id,
            entity_type="obligation",
            entity_id=obligation_id,
            correlation_id=correlation_id,
            description=f"Obligation recorded: {debtor_name} owes {amount}",
            details={
                "debtor_name": debtor_name,
                "amount": str(amount),
                "group_id": str(group_id) if group_id else None,
            },
            is_user_action=True,
        )

    @staticmethod
    def obligation_updated(
        obligation_id: UUID,
        owner_id: str,
        changed_fields: list[str],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.OBLIGATION_UPDATED,
            owner_id=owner_id,
            entity_type="obligation",
            entity_id=obligation_id,
            correlation_id=correlation_id,
            description=f"Obligation updated: {', '.join(changed_fields) or 'no changes'}",
            details={"changed_fields": changed_fields},
            is_user_action=True,
        )

    @staticmethod
    def obligation_paid_state(
        obligation_id: UUID,
        owner_id: str,
        is_paid: bool,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=(
                AuditEventType.OBLIGATION_PAID
                if is_paid
                else AuditEventType.OBLIGATION_UNPAID
            ),
            owner_id=owner_id,
            entity_type="obligation",
            entity_id=obligation_id,
            correlation_id=correlation_id,
            description=f"Obligation marked {'paid' if is_paid else 'unpaid'}",
            is_user_action=True,
        )

    @staticmethod
    def obligation_deleted(
        obligation_id: UUID,
        owner_id: str,
        group_id: Optional[UUID],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.OBLIGATION_DELETED,
            owner_id=owner_id,
            entity_type="obligation",
            entity_id=obligation_id,
            correlation_id=correlation_id,
            description="Obligation deleted",
            details={"group_id": str(group_id) if group_id else None},
            is_user_action=True,
        )

    @staticmethod
    def obligation_reassigned(
        obligation_id: UUID,
        owner_id: str,
        old_group_id: Optional[UUID],
        new_group_id: Optional[UUID],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.OBLIGATION_REASSIGNED,
            owner_id=owner_id,
            entity_type="obligation",
            entity_id=obligation_id,
            correlation_id=correlation_id,
            description="Obligation moved between ledgers",
            details={
                "old_group_id": str(old_group_id) if old_group_id else None,
                "new_group_id": str(new_group_id) if new_group_id else None,
            },
            is_user_action=True,
        )

    @staticmethod
    def ledger_created(
        ledger_id: UUID,
        owner_id: str,
        name: str,
        member_count: int,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.LEDGER_CREATED,
            owner_id=owner_id,
            entity_type="ledger",
            entity_id=ledger_id,
            correlation_id=correlation_id,
            description=f"Ledger created: {name}",
            details={"member_count": member_count},
            is_user_action=True,
        )

    @staticmethod
    def ledger_deleted(
        ledger_id: UUID,
        owner_id: str,
        keep_members: bool,
        member_count: int,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.LEDGER_DELETED,
            owner_id=owner_id,
            entity_type="ledger",
            entity_id=ledger_id,
            correlation_id=correlation_id,
            description=(
                f"Ledger deleted, {member_count} members "
                f"{'detached' if keep_members else 'deleted'}"
            ),
            details={"keep_members": keep_members, "member_count": member_count},
            is_user_action=True,
        )

    @staticmethod
    def ledger_reconciled(
        ledger_id: UUID,
        owner_id: str,
        total_amount: Decimal,
        paid_amount: Decimal,
        is_completed: bool,
        member_count: int,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.LEDGER_RECONCILED,
            severity=AuditSeverity.DEBUG,
            owner_id=owner_id,
            entity_type="ledger",
            entity_id=ledger_id,
            correlation_id=correlation_id,
            description=f"Ledger reconciled: {paid_amount}/{total_amount} paid",
            details={
                "total_amount": str(total_amount),
                "paid_amount": str(paid_amount),
                "is_completed": is_completed,
                "member_count": member_count,
            },
        )

    @staticmethod
    def reconcile_failed(
        ledger_id: UUID,
        owner_id: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECONCILE_FAILED,
            severity=AuditSeverity.ERROR,
            owner_id=owner_id,
            entity_type="ledger",
            entity_id=ledger_id,
            correlation_id=correlation_id,
            description="Ledger reconciliation abandoned",
            error_message=error_message,
        )

    @staticmethod
    def template_created(
        template_id: UUID,
        owner_id: str,
        subject_kind: str,
        frequency: str,
        next_occurrence_date: date,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TEMPLATE_CREATED,
            owner_id=owner_id,
            entity_type="template",
            entity_id=template_id,
            correlation_id=correlation_id,
            description=f"Recurring {subject_kind} created ({frequency})",
            details={
                "subject_kind": subject_kind,
                "frequency": frequency,
                "next_occurrence_date": next_occurrence_date.isoformat(),
            },
            is_user_action=True,
        )

    @staticmethod
    def template_cancelled(
        template_id: UUID,
        owner_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TEMPLATE_CANCELLED,
            owner_id=owner_id,
            entity_type="template",
            entity_id=template_id,
            correlation_id=correlation_id,
            description="Recurring series cancelled",
            is_user_action=True,
        )

    @staticmethod
    def template_retired(
        template_id: UUID,
        owner_id: str,
        end_date: Optional[date],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TEMPLATE_RETIRED,
            owner_id=owner_id,
            entity_type="template",
            entity_id=template_id,
            correlation_id=correlation_id,
            description="Recurring series reached its end date",
            details={"end_date": end_date.isoformat() if end_date else None},
        )

    @staticmethod
    def instance_generated(
        template_id: UUID,
        owner_id: str,
        instance_id: UUID,
        instance_index: int,
        next_occurrence_date: date,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.INSTANCE_GENERATED,
            owner_id=owner_id,
            entity_type="template",
            entity_id=template_id,
            correlation_id=correlation_id,
            description=f"Occurrence #{instance_index} generated",
            details={
                "instance_id": str(instance_id),
                "instance_index": instance_index,
                "next_occurrence_date": next_occurrence_date.isoformat(),
            },
        )

    @staticmethod
    def generation_failed(
        template_id: UUID,
        owner_id: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.GENERATION_FAILED,
            severity=AuditSeverity.ERROR,
            owner_id=owner_id,
            entity_type="template",
            entity_id=template_id,
            correlation_id=correlation_id,
            description="Occurrence generation failed, template left unchanged",
            error_message=error_message,
        )

    @staticmethod
    def tick_completed(
        generated: int,
        retired: int,
        skipped: int,
        failed: int,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SCHEDULER_TICK_COMPLETED,
            severity=AuditSeverity.WARNING if failed else AuditSeverity.INFO,
            correlation_id=correlation_id,
            description=f"Scheduler tick: {generated} generated, {failed} failed",
            details={
                "generated": generated,
                "retired": retired,
                "skipped": skipped,
                "failed": failed,
            },
        )

    @staticmethod
    def reminder_sent(
        obligation_id: UUID,
        owner_id: str,
        recipient: Optional[str],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.REMINDER_SENT,
            owner_id=owner_id,
            entity_type="obligation",
            entity_id=obligation_id,
            correlation_id=correlation_id,
            description="Reminder dispatched",
            details={"has_recipient": recipient is not None},
            is_user_action=True,
        )

    @staticmethod
    def reminder_failed(
        obligation_id: UUID,
        owner_id: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.REMINDER_FAILED,
            severity=AuditSeverity.WARNING,
            owner_id=owner_id,
            entity_type="obligation",
            entity_id=obligation_id,
            correlation_id=correlation_id,
            description="Reminder could not be dispatched",
            error_message=error_message,
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )
