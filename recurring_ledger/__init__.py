"""
Recurring Ledger - Source Package

Recurring expenses and incomes for a personal finance ledger: decide when
each occurrence is due, record it exactly once, advance the schedule, and
end the series when it runs past its end date.

DESIGN PRINCIPLES:
1. The engine is pure: it decides, the caller persists
2. One call, one period: catch-up is always explicit
3. At most one ledger entry per (series, due date)
4. Every step is auditable
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Recurring Ledger Team"
