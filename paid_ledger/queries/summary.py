"""
Owner Summary Queries

DESIGN DECISION: Summaries are DETERMINISTIC reads of stored data.
Group balances come from the cached ledger aggregates, which the
aggregator keeps equal to the member sums; ungrouped balances come from
the obligations themselves. Nothing is estimated.
"""

from collections import defaultdict
from decimal import Decimal

from paid_ledger.models.ledger import DebtorBalance, OwnerSummary
from paid_ledger.services.storage import LedgerStorageInterface


class OwnerSummaryQuery:
    """
    Headline numbers for the home screen.

    total outstanding = unpaid ungrouped obligations
                      + (total - paid) over every ledger
    """

    def __init__(self, storage: LedgerStorageInterface):
        self._storage = storage

    async def summarize(self, owner_id: str) -> OwnerSummary:
        obligations = await self._storage.list_obligations(owner_id)
        ledgers = await self._storage.list_ledgers(owner_id)

        unpaid = [o for o in obligations if not o.is_paid]
        ungrouped = sum(
            (o.amount for o in unpaid if o.group_id is None),
            Decimal("0"),
        )
        grouped = sum((g.outstanding for g in ledgers), Decimal("0"))

        return OwnerSummary(
            owner_id=owner_id,
            ungrouped_outstanding=ungrouped,
            group_outstanding=grouped,
            open_obligation_count=len(unpaid),
            completed_group_count=sum(1 for g in ledgers if g.is_completed),
            open_group_count=sum(1 for g in ledgers if not g.is_completed),
            by_debtor=self._by_debtor(unpaid),
        )

    def _by_debtor(self, unpaid) -> list[DebtorBalance]:
        """Outstanding per debtor, largest first."""
        totals: dict[str, Decimal] = defaultdict(Decimal)
        counts: dict[str, int] = defaultdict(int)
        for obligation in unpaid:
            totals[obligation.debtor_name] += obligation.amount
            counts[obligation.debtor_name] += 1

        balances = [
            DebtorBalance(
                debtor_name=name,
                outstanding=totals[name],
                open_obligations=counts[name],
            )
            for name in totals
        ]
        balances.sort(key=lambda b: (-b.outstanding, b.debtor_name))
        return balances
