"""Ledger package: obligations and their aggregated ledgers."""

from paid_ledger.ledger.aggregator import LedgerAggregator, compute_aggregate
from paid_ledger.ledger.store import ObligationStore

__all__ = ["LedgerAggregator", "ObligationStore", "compute_aggregate"]
