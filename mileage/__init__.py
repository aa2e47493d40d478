"""
Mileage Engine - Source Package

Rule-based mileage accrual and goal-viability engine for a
personal/couple finance tracker.

DESIGN PRINCIPLES:
1. Miles are derived from spending, never typed in after the fact
2. The ledger is append-only; progress is recomputed from it
3. Always round down - the ledger never over-credits
4. Program balances and rule-derived miles are never summed
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Mileage Engine Team"
