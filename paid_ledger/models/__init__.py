"""
Data Models Package

This package contains all Pydantic models used by the ledger engine.
All data flowing through the system must conform to these schemas.
"""

from paid_ledger.models.ledger import (
    DebtorBalance,
    GroupFields,
    Ledger,
    LedgerWithMembers,
    MemberDefinition,
    Obligation,
    ObligationCreate,
    ObligationUpdate,
    OwnerSummary,
    ReceiptBreakdown,
    RecurrenceLink,
    RecurrenceOptions,
    RecurringTemplate,
    ReminderMessage,
    SingleObligationFields,
    ValidationIssue,
    ValidationResult,
    utcnow,
)
from paid_ledger.models.schedule import (
    Frequency,
    GenerationOutcome,
    SubjectKind,
    TemplateState,
    TickReport,
)
from paid_ledger.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Ledger models
    "DebtorBalance",
    "GroupFields",
    "Ledger",
    "LedgerWithMembers",
    "MemberDefinition",
    "Obligation",
    "ObligationCreate",
    "ObligationUpdate",
    "OwnerSummary",
    "ReceiptBreakdown",
    "RecurrenceLink",
    "RecurrenceOptions",
    "RecurringTemplate",
    "ReminderMessage",
    "SingleObligationFields",
    "ValidationIssue",
    "ValidationResult",
    "utcnow",
    # Schedule models
    "Frequency",
    "GenerationOutcome",
    "SubjectKind",
    "TemplateState",
    "TickReport",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
