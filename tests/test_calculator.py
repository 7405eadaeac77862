"""Tests for the recurrence calculator."""

import pytest
from datetime import date

from paid_ledger.models.schedule import Frequency
from paid_ledger.recurrence.calculator import (
    default_day_of_month,
    first_occurrence,
    is_past_end,
    next_occurrence,
    occurrences_between,
)


class TestNextOccurrence:
    """Tests for single-step date arithmetic."""

    @pytest.mark.parametrize("frequency,expected", [
        (Frequency.DAILY, date(2024, 3, 11)),
        (Frequency.WEEKLY, date(2024, 3, 17)),
        (Frequency.BIWEEKLY, date(2024, 3, 24)),
        (Frequency.MONTHLY, date(2024, 4, 10)),
        (Frequency.QUARTERLY, date(2024, 6, 10)),
        (Frequency.YEARLY, date(2025, 3, 10)),
    ])
    def test_step_sizes(self, frequency, expected):
        """Test the increment for every frequency."""
        assert next_occurrence(frequency, date(2024, 3, 10)) == expected

    def test_accepts_frequency_string(self):
        """Test that stored string values work too."""
        assert next_occurrence("weekly", date(2024, 1, 1)) == date(2024, 1, 8)

    def test_month_end_clamps_in_leap_year(self):
        """Test Jan 31 + 1 month = Feb 29 in a leap year."""
        assert next_occurrence(Frequency.MONTHLY, date(2024, 1, 31)) == date(2024, 2, 29)

    def test_month_end_clamps_in_common_year(self):
        """Test Jan 31 + 1 month = Feb 28, never Mar 3."""
        assert next_occurrence(Frequency.MONTHLY, date(2023, 1, 31)) == date(2023, 2, 28)

    def test_quarterly_clamps(self):
        """Test Nov 30 + 3 months = Feb 29."""
        assert next_occurrence(Frequency.QUARTERLY, date(2023, 11, 30)) == date(2024, 2, 29)

    def test_yearly_from_leap_day(self):
        """Test Feb 29 + 1 year = Feb 28."""
        assert next_occurrence(Frequency.YEARLY, date(2024, 2, 29)) == date(2025, 2, 28)

    def test_day_of_month_anchor_restores_month_end(self):
        """Test that an anchored series returns to the 31st after February."""
        feb = next_occurrence(Frequency.MONTHLY, date(2024, 1, 31), day_of_month=31)
        mar = next_occurrence(Frequency.MONTHLY, feb, day_of_month=31)
        assert feb == date(2024, 2, 29)
        assert mar == date(2024, 3, 31)

    def test_unanchored_series_drifts(self):
        """Test that without an anchor the clamped day carries forward."""
        feb = next_occurrence(Frequency.MONTHLY, date(2024, 1, 31))
        assert next_occurrence(Frequency.MONTHLY, feb) == date(2024, 3, 29)

    def test_day_of_month_ignored_for_day_steps(self):
        """Test that an anchor does not change daily or weekly steps."""
        assert next_occurrence(Frequency.WEEKLY, date(2024, 1, 1), day_of_month=20) == date(2024, 1, 8)

    @pytest.mark.parametrize("frequency", list(Frequency))
    @pytest.mark.parametrize("reference", [
        date(2024, 1, 31),
        date(2024, 2, 29),
        date(2023, 12, 31),
        date(2024, 6, 15),
    ])
    def test_always_strictly_after(self, frequency, reference):
        """Test that the result is always after the reference."""
        for anchor in (None, 1, 28, 31):
            assert next_occurrence(frequency, reference, anchor) > reference


class TestScheduleHelpers:
    """Tests for first occurrence, end checks and previews."""

    def test_first_occurrence_anchored_on_start(self):
        """Test that the first occurrence follows the start date."""
        assert first_occurrence(Frequency.MONTHLY, date(2024, 1, 15)) == date(2024, 2, 15)

    def test_default_day_of_month(self):
        """Test that only month-based series get a default anchor."""
        assert default_day_of_month(Frequency.MONTHLY, date(2024, 1, 31)) == 31
        assert default_day_of_month(Frequency.WEEKLY, date(2024, 1, 31)) is None

    def test_is_past_end(self):
        """Test end date comparisons."""
        assert not is_past_end(None, date(2030, 1, 1))
        assert is_past_end(date(2024, 1, 1), date(2024, 1, 5))
        assert is_past_end(date(2024, 1, 5), date(2024, 1, 5))
        assert not is_past_end(date(2024, 1, 6), date(2024, 1, 5))

    def test_occurrences_between(self):
        """Test the preview iterator is exclusive of start, inclusive of until."""
        dates = list(occurrences_between(
            Frequency.WEEKLY, date(2024, 1, 1), date(2024, 1, 22)
        ))
        assert dates == [date(2024, 1, 8), date(2024, 1, 15), date(2024, 1, 22)]

    def test_occurrences_between_empty(self):
        """Test that nothing is yielded when until is before the first step."""
        assert list(occurrences_between(Frequency.MONTHLY, date(2024, 1, 1), date(2024, 1, 31))) == []
