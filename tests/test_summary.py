"""Tests for the owner summary query."""

from decimal import Decimal

from paid_ledger.queries import OwnerSummaryQuery

from tests.conftest import OWNER


class TestOwnerSummary:
    """Tests for OwnerSummaryQuery.summarize."""

    async def test_empty_owner(self, storage):
        """Test a new user with nothing owed."""
        summary = await OwnerSummaryQuery(storage).summarize(OWNER)
        assert summary.total_outstanding == Decimal("0")
        assert summary.by_debtor == []

    async def test_grouped_and_ungrouped_balances(self, storage, store, aggregator):
        """Test that group and ungrouped outstanding add up."""
        trip = await aggregator.create_group(OWNER, "Trip")
        a = await store.create(OWNER, {"debtor_name": "Alex", "amount": "30", "group_id": trip.id})
        await store.create(OWNER, {"debtor_name": "Jo", "amount": "70", "group_id": trip.id})
        await store.create(OWNER, {"debtor_name": "Alex", "amount": "15"})
        paid = await store.create(OWNER, {"debtor_name": "Sam", "amount": "99"})
        await store.set_paid(OWNER, a.id, True)
        await store.set_paid(OWNER, paid.id, True)

        summary = await OwnerSummaryQuery(storage).summarize(OWNER)

        assert summary.ungrouped_outstanding == Decimal("15")
        assert summary.group_outstanding == Decimal("70")
        assert summary.total_outstanding == Decimal("85")
        assert summary.open_obligation_count == 2
        assert summary.open_group_count == 1
        assert summary.completed_group_count == 0

    async def test_by_debtor_ordering(self, storage, store):
        """Test per-debtor balances, largest first and ties by name."""
        await store.create(OWNER, {"debtor_name": "Jo", "amount": "10"})
        await store.create(OWNER, {"debtor_name": "Alex", "amount": "4"})
        await store.create(OWNER, {"debtor_name": "Alex", "amount": "6"})
        await store.create(OWNER, {"debtor_name": "Sam", "amount": "25"})

        summary = await OwnerSummaryQuery(storage).summarize(OWNER)

        assert [(b.debtor_name, b.outstanding, b.open_obligations) for b in summary.by_debtor] == [
            ("Sam", Decimal("25"), 1),
            ("Alex", Decimal("10"), 2),
            ("Jo", Decimal("10"), 1),
        ]

    async def test_completed_group(self, storage, store, aggregator):
        """Test that a fully paid group counts as completed and owes nothing."""
        dinner = await aggregator.create_group(OWNER, "Dinner")
        member = await store.create(OWNER, {"debtor_name": "Jo", "amount": "20", "group_id": dinner.id})
        await store.set_paid(OWNER, member.id, True)

        summary = await OwnerSummaryQuery(storage).summarize(OWNER)

        assert summary.completed_group_count == 1
        assert summary.group_outstanding == Decimal("0")
