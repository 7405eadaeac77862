"""
Recurrence package.

The calculator and template management are exported here. The
materializer and scheduler sit above the ledger package; import them
from paid_ledger.recurrence.materializer and
paid_ledger.recurrence.scheduler.
"""

from paid_ledger.recurrence.calculator import (
    default_day_of_month,
    first_occurrence,
    is_past_end,
    next_occurrence,
    occurrences_between,
)
from paid_ledger.recurrence.templates import RecurrenceService, build_template

__all__ = [
    "RecurrenceService",
    "build_template",
    "default_day_of_month",
    "first_occurrence",
    "is_past_end",
    "next_occurrence",
    "occurrences_between",
]
