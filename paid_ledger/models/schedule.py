"""
Scheduling Models

Frequencies, the per-template state machine and the report a scheduler
tick produces.
"""

from datetime import date, datetime
from enum import Enum
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field


class Frequency(str, Enum):
    """How often a recurring template produces an occurrence."""
    DAILY = "daily"
    WEEKLY = "weekly"
    BIWEEKLY = "biweekly"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    YEARLY = "yearly"

    @property
    def is_month_based(self) -> bool:
        """Month, quarter and year steps use calendar arithmetic."""
        return self in (Frequency.MONTHLY, Frequency.QUARTERLY, Frequency.YEARLY)

    @property
    def is_week_based(self) -> bool:
        return self in (Frequency.WEEKLY, Frequency.BIWEEKLY)


class SubjectKind(str, Enum):
    """What a recurring template materializes."""
    SINGLE_OBLIGATION = "single_obligation"
    GROUP = "group"


class TemplateState(str, Enum):
    """
    Lifecycle of a template within one scheduler tick.

    ACTIVE -> DUE -> ADVANCED, or straight to INACTIVE. Generating the
    instance happens inside the DUE -> ADVANCED transaction and is never
    stored or reported as a state of its own. The transition is gated
    by a compare-and-set on the template's stored version, so only one
    tick can win it.
    """
    ACTIVE = "active"      # Scheduled, next occurrence still in the future
    DUE = "due"            # next_occurrence_date has elapsed
    ADVANCED = "advanced"  # Instance committed and schedule moved forward
    INACTIVE = "inactive"  # Cancelled or past its end date


class GenerationOutcome(BaseModel):
    """What happened to one template during a tick."""

    template_id: UUID
    owner_id: str
    state: TemplateState
    instance_id: Optional[UUID] = None
    instance_index: Optional[int] = None
    next_occurrence_date: Optional[date] = None
    retired: bool = False
    end_date: Optional[date] = None
    error_message: Optional[str] = None


class TickReport(BaseModel):
    """
    Summary of one scheduler run.

    A template appears in at most one of the lists.
    """

    started_at: datetime
    finished_at: Optional[datetime] = None
    generated: list[GenerationOutcome] = Field(default_factory=list)
    retired: list[UUID] = Field(default_factory=list)
    skipped: list[UUID] = Field(
        default_factory=list,
        description="Templates another writer already advanced",
    )
    failed: list[GenerationOutcome] = Field(default_factory=list)

    @property
    def generated_count(self) -> int:
        return len(self.generated)

    @property
    def has_failures(self) -> bool:
        return len(self.failed) > 0
