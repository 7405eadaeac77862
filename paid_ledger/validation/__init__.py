"""Input validation package."""

from paid_ledger.validation.validator import LedgerValidator

__all__ = ["LedgerValidator"]
