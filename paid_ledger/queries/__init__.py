"""Query package."""

from paid_ledger.queries.summary import OwnerSummaryQuery

__all__ = ["OwnerSummaryQuery"]
