"""
Core Data Models for Paid Ledger

These models define the strict schemas for all data flowing through the engine.
They are designed to:
1. Enforce type safety at runtime
2. Provide clear validation error messages
3. Be serializable for storage and logging
4. Support the audit trail

DESIGN DECISION: A Ledger stores only member id references. Its money
fields are a cache that the aggregator overwrites from the members; no
code path ever adds to or subtracts from them.
"""

from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Annotated, Literal, Optional, Union
from uuid import UUID, uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    model_validator,
)

from paid_ledger.models.schedule import Frequency, SubjectKind, TemplateState


def utcnow() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


Money = Annotated[
    Decimal,
    Field(ge=0, decimal_places=2, description="Amount in the owner's currency"),
]


# =============================================================================
# RECURRENCE LINKS
# =============================================================================

class RecurrenceLink(BaseModel):
    """
    Weak back-reference from a generated instance to its template.

    The template owns the list of generated ids; the instance only
    remembers which template produced it and at which position.
    """
    model_config = ConfigDict(frozen=True)

    template_id: UUID
    instance_index: int = Field(ge=0)


# =============================================================================
# OBLIGATION
# =============================================================================

class Obligation(BaseModel):
    """
    A single debt owed by one debtor to the owning user.

    Created by the user or by the materializer. Only mark paid/unpaid,
    field updates and group reassignment mutate it.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    owner_id: str = Field(..., min_length=1)

    debtor_name: str = Field(..., min_length=1, max_length=200)
    amount: Money
    description: Optional[str] = Field(default=None, max_length=1000)
    contact_ref: Optional[str] = Field(
        default=None,
        max_length=100,
        description="Phone number or contact id used for reminders",
    )

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    is_paid: bool = False
    paid_at: Optional[datetime] = None

    group_id: Optional[UUID] = None
    recurrence: Optional[RecurrenceLink] = None

    @model_validator(mode='after')
    def validate_paid_state(self) -> 'Obligation':
        if self.paid_at and not self.is_paid:
            raise ValueError("Unpaid obligation cannot carry a paid_at timestamp")
        return self

    @property
    def outstanding(self) -> Decimal:
        """Amount still owed."""
        return Decimal("0") if self.is_paid else self.amount


# =============================================================================
# LEDGER (GROUP)
# =============================================================================

class Ledger(BaseModel):
    """
    A named collection of obligations with cached aggregate totals.

    Invariant (restored by every reconcile):
        total_amount == sum of member amounts
        paid_amount  == sum of paid member amounts
        is_completed == members non-empty and all paid
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    owner_id: str = Field(..., min_length=1)

    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, max_length=1000)

    total_amount: Money = Decimal("0")
    paid_amount: Money = Decimal("0")
    is_completed: bool = False
    member_ids: set[UUID] = Field(default_factory=set)

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    # Set when this ledger was generated by a Group template
    recurrence: Optional[RecurrenceLink] = None
    # Set when this ledger is the source of a Group template
    recurring_template_id: Optional[UUID] = None

    @property
    def outstanding(self) -> Decimal:
        return self.total_amount - self.paid_amount


class LedgerWithMembers(BaseModel):
    """A ledger together with its current member obligations."""

    ledger: Ledger
    members: list[Obligation] = Field(default_factory=list)


# =============================================================================
# RECURRING TEMPLATES
# =============================================================================

class MemberDefinition(BaseModel):
    """Blueprint for one obligation inside a generated group."""
    model_config = ConfigDict(str_strip_whitespace=True)

    debtor_name: str = Field(..., min_length=1, max_length=200)
    amount: Money
    description: Optional[str] = Field(default=None, max_length=1000)
    contact_ref: Optional[str] = Field(default=None, max_length=100)


class SingleObligationFields(BaseModel):
    """Template fields for a recurring single debt."""
    model_config = ConfigDict(str_strip_whitespace=True)

    kind: Literal["single_obligation"] = "single_obligation"
    debtor_name: str = Field(..., min_length=1, max_length=200)
    amount: Money
    description: Optional[str] = Field(default=None, max_length=1000)
    contact_ref: Optional[str] = Field(default=None, max_length=100)
    group_id: Optional[UUID] = Field(
        default=None,
        description="Existing ledger every occurrence is filed under",
    )


class GroupFields(BaseModel):
    """
    Template fields for a recurring group.

    When source_group_id points at a ledger that still exists, its live
    members are cloned at generation time. Otherwise the members snapshot
    below is used.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    kind: Literal["group"] = "group"
    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, max_length=1000)
    members: list[MemberDefinition] = Field(default_factory=list)
    source_group_id: Optional[UUID] = None


TemplateFields = Annotated[
    Union[SingleObligationFields, GroupFields],
    Field(discriminator="kind"),
]


class RecurrenceOptions(BaseModel):
    """Schedule chosen by the user when opting into recurrence."""

    frequency: Frequency = Frequency.MONTHLY
    start_date: date
    end_date: Optional[date] = None
    day_of_month: Optional[int] = Field(default=None, ge=1, le=31)
    day_of_week: Optional[int] = Field(
        default=None,
        ge=0,
        le=6,
        description="0 is Sunday",
    )

    @model_validator(mode='after')
    def validate_dates(self) -> 'RecurrenceOptions':
        if self.end_date and self.end_date < self.start_date:
            raise ValueError("End date cannot be before start date")
        return self


class RecurringTemplate(BaseModel):
    """
    A schedule that periodically materializes obligations or ledgers.

    Mutated only by the materializer (advancing dates, appending ids) or
    by cancellation. Never deleted; it is the audit history of a series.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    owner_id: str = Field(..., min_length=1)

    subject_kind: SubjectKind
    template_fields: TemplateFields

    frequency: Frequency
    start_date: date
    end_date: Optional[date] = None
    day_of_month: Optional[int] = Field(default=None, ge=1, le=31)
    day_of_week: Optional[int] = Field(default=None, ge=0, le=6)

    is_active: bool = True
    last_generated_date: Optional[datetime] = None
    next_occurrence_date: date
    generated_instance_ids: list[UUID] = Field(default_factory=list)

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @model_validator(mode='after')
    def validate_template(self) -> 'RecurringTemplate':
        """Subject kind must match the fields and dates must be ordered."""
        if self.template_fields.kind != self.subject_kind.value:
            raise ValueError(
                f"Template fields of kind '{self.template_fields.kind}' do not match "
                f"subject kind '{self.subject_kind.value}'"
            )
        if self.end_date and self.end_date < self.start_date:
            raise ValueError("End date cannot be before start date")
        return self

    @property
    def next_instance_index(self) -> int:
        return len(self.generated_instance_ids)

    def state_at(self, today: date) -> TemplateState:
        """Where this template sits in the lifecycle as of `today`."""
        if not self.is_active:
            return TemplateState.INACTIVE
        if self.next_occurrence_date <= today:
            return TemplateState.DUE
        return TemplateState.ACTIVE


# =============================================================================
# INPUT MODELS
# =============================================================================

class ObligationCreate(BaseModel):
    """Request to record a new debt."""
    model_config = ConfigDict(str_strip_whitespace=True)

    debtor_name: str = Field(..., min_length=1, max_length=200)
    amount: Money
    description: Optional[str] = Field(default=None, max_length=1000)
    contact_ref: Optional[str] = Field(default=None, max_length=100)
    group_id: Optional[UUID] = None


class ObligationUpdate(BaseModel):
    """
    Partial update of an obligation's own fields.

    Paid state and group membership have dedicated operations.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    debtor_name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    amount: Optional[Money] = None
    description: Optional[str] = Field(default=None, max_length=1000)
    contact_ref: Optional[str] = Field(default=None, max_length=100)

    def changes(self) -> dict:
        """Only the fields the caller actually set."""
        return self.model_dump(exclude_unset=True)


class ReceiptBreakdown(BaseModel):
    """
    Output of the receipt-splitting collaborator.

    Per-person amounts arrive already split (tax, tip and fees included);
    each entry becomes one obligation inside a new ledger.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, max_length=1000)
    members: list[MemberDefinition] = Field(..., min_length=1)

    @property
    def total(self) -> Decimal:
        return sum((m.amount for m in self.members), Decimal("0"))


# =============================================================================
# VALIDATION MODELS
# =============================================================================

class ValidationIssue(BaseModel):
    """A single validation issue found."""

    field: str = Field(
        ...,
        description="Field with the issue"
    )
    issue_type: str = Field(
        ...,
        description="Type of issue (e.g., 'missing', 'invalid_value', 'out_of_range')"
    )
    message: str = Field(
        ...,
        description="Human-readable description of the issue"
    )
    severity: str = Field(
        ...,
        pattern="^(error|warning|info)$",
        description="Issue severity"
    )


class ValidationResult(BaseModel):
    """
    Result of the two-stage validation.

    Stage 1: Schema validation (types, required fields)
    Stage 2: Semantic validation (finite amounts, limits, references)
    """

    validated_at: datetime = Field(default_factory=utcnow)
    subject: str = Field(
        ...,
        description="What was validated (e.g., 'obligation', 'template')"
    )
    schema_valid: bool
    semantic_valid: bool
    issues: list[ValidationIssue] = Field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return self.schema_valid and self.semantic_valid and not self.has_errors

    @property
    def has_errors(self) -> bool:
        """Check if there are any error-level issues."""
        return any(issue.severity == "error" for issue in self.issues)

    @property
    def error_count(self) -> int:
        """Count error-level issues."""
        return sum(1 for issue in self.issues if issue.severity == "error")


# =============================================================================
# QUERY MODELS
# =============================================================================

class DebtorBalance(BaseModel):
    """Outstanding amount owed by one debtor across all obligations."""

    debtor_name: str
    outstanding: Decimal
    open_obligations: int = Field(ge=0)


class OwnerSummary(BaseModel):
    """
    Headline numbers for one owner.

    Group outstanding is read from the cached aggregates, which the
    aggregator keeps equal to the member sums.
    """

    owner_id: str
    generated_at: datetime = Field(default_factory=utcnow)
    ungrouped_outstanding: Decimal = Decimal("0")
    group_outstanding: Decimal = Decimal("0")
    open_obligation_count: int = 0
    completed_group_count: int = 0
    open_group_count: int = 0
    by_debtor: list[DebtorBalance] = Field(default_factory=list)

    @property
    def total_outstanding(self) -> Decimal:
        return self.ungrouped_outstanding + self.group_outstanding


# =============================================================================
# NOTIFICATION MODELS
# =============================================================================

class ReminderMessage(BaseModel):
    """A reminder ready to hand to a messaging collaborator."""

    obligation_id: UUID
    recipient: Optional[str] = Field(
        default=None,
        description="Contact reference; None means the user picks a recipient",
    )
    body: str = Field(..., min_length=1)
    created_at: datetime = Field(default_factory=utcnow)
