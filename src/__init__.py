"""
Church Books - Source Package

The reconciliation core of a church finance app: liabilities, the income
entries derived from loans, and the running balances of the accounts that
money flows through.

DESIGN PRINCIPLES:
1. A loan is recorded once and mirrored exactly once as income
2. Balances only move through signed deltas
3. Primary writes fail loudly, secondary effects fail visibly (warnings)
4. Every step must be auditable
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Church Books Team"
