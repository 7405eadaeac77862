"""Tests for ledger reconciliation and ledger lifecycle."""

import pytest
from datetime import date
from decimal import Decimal

from paid_ledger.errors import NotFoundError, StorageUnavailable, ValidationError
from paid_ledger.ledger import LedgerAggregator, compute_aggregate
from paid_ledger.models.audit import AuditEventType
from paid_ledger.models.ledger import Ledger, Obligation
from paid_ledger.models.schedule import SubjectKind
from paid_ledger.services.storage import InMemoryLedgerStorage
from paid_ledger.services.storage.memory import OBLIGATIONS

from tests.conftest import OWNER


class FlakyStorage(InMemoryLedgerStorage):
    """Fails member reads a set number of times, then recovers."""

    def __init__(self, failures: int):
        super().__init__()
        self.failures = failures
        self.armed = False

    def _snapshot(self, key):
        if self.armed and key[0] == OBLIGATIONS and self.failures > 0:
            self.failures -= 1
            raise StorageUnavailable("store went away mid-read")
        return super()._snapshot(key)


async def _corrupt(storage, ledger: Ledger, **fields) -> None:
    """Overwrite cached aggregate fields behind the aggregator's back."""
    async with storage.transaction() as txn:
        txn.put_ledger(ledger.model_copy(update=fields))


class TestComputeAggregate:
    """Tests for the pure recompute."""

    def test_empty_ledger_is_not_completed(self):
        """Test that an empty ledger is never completed."""
        ledger = compute_aggregate(Ledger(owner_id=OWNER, name="G"), [])
        assert ledger.total_amount == Decimal("0")
        assert ledger.is_completed is False

    def test_sums_and_completion(self):
        """Test totals, paid totals and membership."""
        ledger = Ledger(owner_id=OWNER, name="G")
        a = Obligation(owner_id=OWNER, debtor_name="A", amount=30, is_paid=True, group_id=ledger.id)
        b = Obligation(owner_id=OWNER, debtor_name="B", amount=70, group_id=ledger.id)
        result = compute_aggregate(ledger, [a, b])
        assert result.total_amount == Decimal("100")
        assert result.paid_amount == Decimal("30")
        assert result.is_completed is False
        assert result.member_ids == {a.id, b.id}

    def test_ignores_prior_aggregate(self):
        """Test that a wrong cached total has no influence."""
        ledger = Ledger(owner_id=OWNER, name="G", total_amount=Decimal("999"), paid_amount=Decimal("5"))
        member = Obligation(owner_id=OWNER, debtor_name="A", amount=10, group_id=ledger.id)
        result = compute_aggregate(ledger, [member])
        assert result.total_amount == Decimal("10")
        assert result.paid_amount == Decimal("0")


class TestReconcile:
    """Tests for LedgerAggregator.reconcile."""

    async def test_scenario_b_paid_progression(self, aggregator, store):
        """Test $30 + $70 group completing as members are paid."""
        ledger = await aggregator.create_group(OWNER, "Dinner")
        thirty = await store.create(OWNER, {"debtor_name": "A", "amount": "30", "group_id": ledger.id})
        seventy = await store.create(OWNER, {"debtor_name": "B", "amount": "70", "group_id": ledger.id})

        current = await aggregator.reconcile(OWNER, ledger.id)
        assert (current.total_amount, current.paid_amount, current.is_completed) == (
            Decimal("100"), Decimal("0"), False
        )

        await store.set_paid(OWNER, thirty.id, True)
        current = (await aggregator.get_group_with_members(OWNER, ledger.id)).ledger
        assert current.paid_amount == Decimal("30")
        assert current.is_completed is False

        await store.set_paid(OWNER, seventy.id, True)
        current = (await aggregator.get_group_with_members(OWNER, ledger.id)).ledger
        assert current.paid_amount == Decimal("100")
        assert current.is_completed is True

    async def test_reconcile_is_idempotent(self, aggregator, store, storage):
        """Test that two consecutive reconciles give the same ledger."""
        ledger = await aggregator.create_group(OWNER, "G")
        await store.create(OWNER, {"debtor_name": "A", "amount": "12.50", "group_id": ledger.id})
        stored = await storage.get_ledger(OWNER, ledger.id)
        await _corrupt(storage, stored, total_amount=Decimal("1"), member_ids=set())

        first = await aggregator.reconcile(OWNER, ledger.id)
        second = await aggregator.reconcile(OWNER, ledger.id)
        assert first == second
        assert first.total_amount == Decimal("12.50")

    async def test_reconcile_heals_drift(self, aggregator, store, storage):
        """Test that a corrupted aggregate is restored from members."""
        ledger = await aggregator.create_group(OWNER, "G")
        member = await store.create(OWNER, {"debtor_name": "A", "amount": "20", "group_id": ledger.id})
        stored = await storage.get_ledger(OWNER, ledger.id)
        await _corrupt(storage, stored, paid_amount=Decimal("20"), is_completed=True)

        healed = await aggregator.reconcile(OWNER, ledger.id)
        assert healed.paid_amount == Decimal("0")
        assert healed.is_completed is False
        assert healed.member_ids == {member.id}

    async def test_missing_ledger_is_nothing_to_do(self, aggregator):
        """Test that reconciling a deleted ledger returns None."""
        assert await aggregator.reconcile(OWNER, Ledger(owner_id=OWNER, name="x").id) is None

    async def test_partial_failure_is_retried_wholesale(self, storage_settings, audit_logger):
        """Test that a mid-read failure never leaves a partial aggregate."""
        storage = FlakyStorage(failures=1)
        aggregator = LedgerAggregator(storage, audit_logger=audit_logger, storage_settings=storage_settings)
        ledger = await aggregator.create_group(OWNER, "G")
        async with storage.transaction() as txn:
            for amount in ("10", "15"):
                txn.put_obligation(Obligation(owner_id=OWNER, debtor_name="A", amount=amount, group_id=ledger.id))

        storage.armed = True
        reconciled = await aggregator.reconcile(OWNER, ledger.id)
        assert reconciled.total_amount == Decimal("25")
        assert storage.failures == 0

    async def test_persistent_failure_writes_nothing(self, storage_settings, audit_logger, audit_storage):
        """Test that exhausting retries raises and leaves the ledger as it was."""
        storage = FlakyStorage(failures=100)
        aggregator = LedgerAggregator(storage, audit_logger=audit_logger, storage_settings=storage_settings)
        ledger = await aggregator.create_group(OWNER, "G")
        async with storage.transaction() as txn:
            txn.put_obligation(Obligation(owner_id=OWNER, debtor_name="A", amount=10, group_id=ledger.id))

        storage.armed = True
        with pytest.raises(StorageUnavailable):
            await aggregator.reconcile(OWNER, ledger.id)

        storage.armed = False
        assert (await storage.get_ledger(OWNER, ledger.id)).total_amount == Decimal("0")
        events = await audit_storage.get_events_by_entity("ledger", ledger.id)
        assert events[-1].event_type == AuditEventType.RECONCILE_FAILED


class TestLedgerLifecycle:
    """Tests for creating, reading and deleting ledgers."""

    async def test_create_group_with_members(self, aggregator, storage):
        """Test receipt intake creating one ledger and its members atomically."""
        result = await aggregator.create_group_with_members(OWNER, {
            "name": "Pizza night",
            "members": [
                {"debtor_name": "Alex", "amount": "12.40"},
                {"debtor_name": "Jo", "amount": "9.60", "description": "No toppings"},
            ],
        })
        assert result.ledger.total_amount == Decimal("22.00")
        assert result.ledger.member_ids == {m.id for m in result.members}
        assert result.members[0].description == "Pizza night"
        assert result.members[1].description == "No toppings"
        assert await storage.get_ledger(OWNER, result.ledger.id) == result.ledger

    async def test_create_group_rejects_bad_members(self, aggregator, storage):
        """Test that a negative member amount writes nothing."""
        with pytest.raises(ValidationError) as exc_info:
            await aggregator.create_group_with_members(OWNER, {
                "name": "Bad",
                "members": [{"debtor_name": "Alex", "amount": "-1"}],
            })
        assert any("amount" in field for field in exc_info.value.fields)
        assert await storage.list_ledgers(OWNER) == []

    async def test_get_group_with_members_missing(self, aggregator):
        """Test NotFoundError for a missing ledger."""
        with pytest.raises(NotFoundError):
            await aggregator.get_group_with_members(OWNER, Ledger(owner_id=OWNER, name="x").id)

    async def test_list_groups(self, aggregator):
        """Test listing ledgers."""
        await aggregator.create_group(OWNER, "One")
        await aggregator.create_group(OWNER, "Two")
        assert {g.name for g in await aggregator.list_groups(OWNER)} == {"One", "Two"}

    async def test_scenario_d_delete_keeping_members(self, aggregator, store, storage):
        """Test that keep_members detaches members and leaves amounts alone."""
        ledger = await aggregator.create_group(OWNER, "Trip")
        a = await store.create(OWNER, {"debtor_name": "A", "amount": "30", "group_id": ledger.id})
        b = await store.create(OWNER, {"debtor_name": "B", "amount": "70", "group_id": ledger.id})

        count = await aggregator.delete_group(OWNER, ledger.id, keep_members=True)

        assert count == 2
        assert await storage.get_ledger(OWNER, ledger.id) is None
        for original in (a, b):
            kept = await storage.get_obligation(OWNER, original.id)
            assert kept.group_id is None
            assert kept.amount == original.amount

    async def test_scenario_d_delete_with_members(self, aggregator, store, storage):
        """Test that keep_members=False removes the members."""
        ledger = await aggregator.create_group(OWNER, "Trip")
        a = await store.create(OWNER, {"debtor_name": "A", "amount": "30", "group_id": ledger.id})
        b = await store.create(OWNER, {"debtor_name": "B", "amount": "70", "group_id": ledger.id})

        await aggregator.delete_group(OWNER, ledger.id, keep_members=False)

        assert await storage.get_obligation(OWNER, a.id) is None
        assert await storage.get_obligation(OWNER, b.id) is None
        assert await storage.get_ledger(OWNER, ledger.id) is None

    async def test_delete_missing_group(self, aggregator):
        """Test NotFoundError when deleting a missing ledger."""
        with pytest.raises(NotFoundError):
            await aggregator.delete_group(OWNER, Ledger(owner_id=OWNER, name="x").id, keep_members=True)


class TestMakeGroupRecurring:
    """Tests for turning a ledger into a group template source."""

    async def test_snapshots_members(self, aggregator, store, storage):
        """Test that the template snapshots members and links the ledger."""
        ledger = await aggregator.create_group(OWNER, "Rent", description="Flat 4")
        await store.create(OWNER, {"debtor_name": "Alex", "amount": "400", "group_id": ledger.id})

        template = await aggregator.make_group_recurring(
            OWNER, ledger.id, {"frequency": "monthly", "start_date": date(2024, 1, 1)}
        )

        assert template.subject_kind == SubjectKind.GROUP
        assert template.template_fields.source_group_id == ledger.id
        assert [m.debtor_name for m in template.template_fields.members] == ["Alex"]
        assert template.next_occurrence_date == date(2024, 2, 1)
        assert (await storage.get_ledger(OWNER, ledger.id)).recurring_template_id == template.id

    async def test_rejects_second_active_template(self, aggregator):
        """Test that a ledger recurs at most once at a time."""
        ledger = await aggregator.create_group(OWNER, "Rent")
        options = {"start_date": date(2024, 1, 1)}
        await aggregator.make_group_recurring(OWNER, ledger.id, options)
        with pytest.raises(ValidationError):
            await aggregator.make_group_recurring(OWNER, ledger.id, options)

    async def test_allowed_again_after_cancel(self, aggregator, recurrence, storage):
        """Test that cancelling frees the ledger to recur again."""
        ledger = await aggregator.create_group(OWNER, "Rent")
        options = {"start_date": date(2024, 1, 1)}
        first = await aggregator.make_group_recurring(OWNER, ledger.id, options)
        await recurrence.cancel_template(OWNER, first.id)
        assert (await storage.get_ledger(OWNER, ledger.id)).recurring_template_id is None

        second = await aggregator.make_group_recurring(OWNER, ledger.id, options)
        assert second.id != first.id
