"""
Paid Ledger - Source Package

Recurring obligation scheduler and ledger consistency engine for
tracking money other people owe you.

DESIGN PRINCIPLES:
1. Group totals are always recomputed from members, never incremented
2. Schedules are anchored to the start date, never to "now"
3. One occurrence per template per tick, committed atomically
4. Every mutation is auditable
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Paid Ledger Team"
