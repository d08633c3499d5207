"""
Finance Tracker - Core Package

The core of a personal finance tracker: expenses, accounts, debts and
loans, transfers, budget goals and point-in-time financial reports.

DESIGN PRINCIPLES:
1. Derived totals are computed from snapshots, never stored
2. Mirrored allocations keep account balances and debt amounts in step
3. Fail visibly: partial writes are reported, never swallowed
4. Every balance-touching mutation is auditable
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Finance Tracker Team"
