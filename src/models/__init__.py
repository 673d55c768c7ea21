"""
Data Models Package

This package contains all Pydantic models used by the reconciliation core.
Every record read from or written to the store passes through these schemas.
"""

from src.models.finance import (
    Account,
    AccountTransaction,
    AccountType,
    BalanceOperation,
    Category,
    ExpenditureCategory,
    ExpenditureEntry,
    IncomeCategory,
    IncomeEntry,
    LiabilityEntry,
    LiabilityStatus,
    TransactionType,
    loan_description,
    normalize_is_loan,
    parse_payment_details,
)
from src.models.reconciliation import (
    AppliedDelta,
    BackfillItem,
    BackfillReport,
    CorrelationStrategy,
    MutationResult,
    PaymentResult,
    ReconciliationAction,
    ReconciliationResult,
)
from src.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Finance models
    "Account",
    "AccountTransaction",
    "AccountType",
    "BalanceOperation",
    "Category",
    "ExpenditureCategory",
    "ExpenditureEntry",
    "IncomeCategory",
    "IncomeEntry",
    "LiabilityEntry",
    "LiabilityStatus",
    "TransactionType",
    "loan_description",
    "normalize_is_loan",
    "parse_payment_details",
    # Reconciliation results
    "AppliedDelta",
    "BackfillItem",
    "BackfillReport",
    "CorrelationStrategy",
    "MutationResult",
    "PaymentResult",
    "ReconciliationAction",
    "ReconciliationResult",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
