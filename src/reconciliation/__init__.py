"""
Reconciliation Package

Keeps loan liabilities and their derived income entries consistent, and
repairs entries written before the structured link existed.
"""

from src.reconciliation.accounts import (
    AccountHintProvider,
    AccountResolver,
    StaticAccountHints,
)
from src.reconciliation.backfill import LoanIncomeBackfill
from src.reconciliation.categories import (
    CategoryResolver,
    loan_category_resolver,
    payment_category_resolver,
)
from src.reconciliation.correlation import LinkedIncomeFinder, strategy_filters
from src.reconciliation.engine import LiabilityIncomeReconciler
from src.reconciliation.errors import CategoryResolutionError, ReconciliationError
from src.reconciliation.locks import KeyedLock

__all__ = [
    # Engine
    "LiabilityIncomeReconciler",
    "LoanIncomeBackfill",
    # Collaborators
    "AccountHintProvider",
    "AccountResolver",
    "CategoryResolver",
    "KeyedLock",
    "LinkedIncomeFinder",
    "StaticAccountHints",
    "loan_category_resolver",
    "payment_category_resolver",
    "strategy_filters",
    # Exceptions
    "CategoryResolutionError",
    "ReconciliationError",
]
