"""Tests for the two-stage validator."""

import pytest
from datetime import date
from decimal import Decimal

from paid_ledger.config import AppSettings
from paid_ledger.errors import ValidationError
from paid_ledger.models.ledger import ObligationCreate, ReceiptBreakdown, RecurrenceOptions
from paid_ledger.validation import LedgerValidator


class TestLedgerValidator:
    """Tests for LedgerValidator."""

    def test_valid_obligation(self, validator):
        """Test a clean payload."""
        model, result = validator.validate(
            ObligationCreate, {"debtor_name": "Sam", "amount": "5"}, "obligation"
        )
        assert model.amount == Decimal("5")
        assert result.is_valid
        assert result.issues == []

    def test_schema_failure_skips_semantics(self, validator):
        """Test that a payload that does not parse reports schema issues only."""
        model, result = validator.validate(ObligationCreate, {"amount": "abc"}, "obligation")
        assert model is None
        assert not result.schema_valid
        assert {i.field for i in result.issues} == {"debtor_name", "amount"}

    def test_large_amount_is_a_warning(self):
        """Test that amounts above the configured limit pass with a warning."""
        validator = LedgerValidator(AppSettings(max_obligation_amount=Decimal("100")))
        model, result = validator.validate(
            ObligationCreate, {"debtor_name": "Sam", "amount": "500"}, "obligation"
        )
        assert model is not None
        assert result.is_valid
        assert result.issues[0].issue_type == "suspicious_value"

    def test_large_member_amount_warning(self):
        """Test the limit applies to each receipt member."""
        validator = LedgerValidator(AppSettings(max_obligation_amount=Decimal("100")))
        _, result = validator.validate(ReceiptBreakdown, {
            "name": "Dinner",
            "members": [{"debtor_name": "A", "amount": "10"}, {"debtor_name": "B", "amount": "250"}],
        }, "receipt")
        assert [i.field for i in result.issues] == ["members.1.amount"]

    def test_ignored_schedule_options(self, validator):
        """Test warnings for day options the frequency does not use."""
        _, result = validator.validate(RecurrenceOptions, {
            "frequency": "daily",
            "start_date": date(2024, 1, 1),
            "day_of_month": 3,
            "day_of_week": 2,
        }, "recurrence")
        assert result.is_valid
        assert {i.field for i in result.issues} == {"day_of_month", "day_of_week"}

    def test_require_raises_domain_error(self, validator):
        """Test that require converts failures to ValidationError."""
        with pytest.raises(ValidationError) as exc_info:
            validator.require(ObligationCreate, {"debtor_name": "Sam", "amount": "-1"}, "obligation")
        assert "rejected" in str(exc_info.value)
        assert exc_info.value.fields == ["amount"]

    def test_require_passes_model_through(self, validator):
        """Test that an already-built model is accepted as is."""
        request = ObligationCreate(debtor_name="Sam", amount=Decimal("5"))
        assert validator.require(ObligationCreate, request, "obligation") is request

    def test_friendly_summary(self, validator):
        """Test the clean summary text."""
        _, result = validator.validate(
            ObligationCreate, {"debtor_name": "Sam", "amount": "5"}, "obligation"
        )
        assert validator.get_user_friendly_summary(result) == "The obligation looks good."
