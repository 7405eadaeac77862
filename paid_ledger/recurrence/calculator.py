"""
Recurrence Calculator

Pure date arithmetic for recurring templates. No I/O, no clock.

DESIGN DECISION: Month, quarter and year steps use calendar arithmetic
(dateutil.relativedelta), which clamps to the last valid day of the
target month. Jan 31 + 1 month is Feb 29 in a leap year, Feb 28
otherwise, and never Mar 2.

A template may carry a day_of_month anchor. Without it a series that
starts on the 31st would drift (Jan 31 -> Feb 29 -> Mar 29 ...); with it
every step is pinned back to the anchor day and clamped only when the
month is too short (Jan 31 -> Feb 29 -> Mar 31).

The first occurrence is always computed from the template's start date,
never from "now", so the series stays where the user put it.
"""

from datetime import date, timedelta
from typing import Iterator, Optional, Union

from dateutil.relativedelta import relativedelta

from paid_ledger.models.schedule import Frequency


_DAY_STEPS = {
    Frequency.DAILY: 1,
    Frequency.WEEKLY: 7,
    Frequency.BIWEEKLY: 14,
}

_MONTH_STEPS = {
    Frequency.MONTHLY: 1,
    Frequency.QUARTERLY: 3,
    Frequency.YEARLY: 12,
}


def next_occurrence(
    frequency: Union[Frequency, str],
    reference_date: date,
    day_of_month: Optional[int] = None,
) -> date:
    """
    The occurrence after `reference_date`.

    Args:
        frequency: Step size
        reference_date: The previous scheduled date (or the start date)
        day_of_month: Anchor day for month-based steps; ignored otherwise

    Returns:
        A date strictly after reference_date
    """
    frequency = Frequency(frequency)

    if frequency in _DAY_STEPS:
        return reference_date + timedelta(days=_DAY_STEPS[frequency])

    # An absolute day is clamped to the target month's length
    return reference_date + relativedelta(
        months=_MONTH_STEPS[frequency],
        day=day_of_month,
    )


def first_occurrence(
    frequency: Union[Frequency, str],
    start_date: date,
    day_of_month: Optional[int] = None,
) -> date:
    """First scheduled occurrence of a series starting on `start_date`."""
    return next_occurrence(frequency, start_date, day_of_month)


def default_day_of_month(
    frequency: Union[Frequency, str],
    start_date: date,
) -> Optional[int]:
    """Month-based series anchor on their start day unless told otherwise."""
    if Frequency(frequency).is_month_based:
        return start_date.day
    return None


def is_past_end(end_date: Optional[date], occurrence: date) -> bool:
    """
    True when the series has ended by `occurrence`.

    An occurrence falling on the end date itself is not generated.
    """
    return end_date is not None and end_date <= occurrence


def occurrences_between(
    frequency: Union[Frequency, str],
    start: date,
    until: date,
    day_of_month: Optional[int] = None,
) -> Iterator[date]:
    """
    Yield every occurrence after `start` up to and including `until`.

    Used for previews and for measuring how far a template lags.
    """
    current = next_occurrence(frequency, start, day_of_month)
    while current <= until:
        yield current
        current = next_occurrence(frequency, current, day_of_month)
