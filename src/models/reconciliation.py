"""
Result models for the reconciliation and liability flows.

CRITICAL: A flow can succeed while leaving balances stale. Those partial
successes are reported in ``warnings`` rather than raised, so callers can
show a secondary notice next to the primary success message.
"""

from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from src.models.finance import (
    BalanceOperation,
    ExpenditureEntry,
    LiabilityEntry,
    TransactionType,
)


class ReconciliationAction(str, Enum):
    SKIPPED = "skipped"        # not a loan
    CREATED = "created"        # new derived income entry
    UPDATED = "updated"        # existing entry brought in line
    UNCHANGED = "unchanged"    # existing entry already consistent


class CorrelationStrategy(str, Enum):
    """How an existing income entry was matched to its liability."""
    PAYMENT_DETAILS = "payment_details"
    DESCRIPTION_LIABILITY_ID = "description_liability_id"
    DESCRIPTION_CREDITOR = "description_creditor"


class AppliedDelta(BaseModel):
    """A ledger delta that was successfully applied."""

    account_id: str
    amount: Decimal
    operation: BalanceOperation
    transaction_type: TransactionType

    @property
    def signed_amount(self) -> Decimal:
        sign = self.transaction_type.sign
        if self.operation == BalanceOperation.DELETE:
            sign = -sign
        return self.amount * sign


class ReconciliationResult(BaseModel):
    """Outcome of reconciling one liability with its derived income entry."""

    liability_id: Optional[str] = None
    action: ReconciliationAction
    income_entry_id: Optional[str] = None
    matched_by: Optional[CorrelationStrategy] = None
    changed_fields: list[str] = Field(default_factory=list)
    deltas: list[AppliedDelta] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)

    @property
    def balance_may_be_stale(self) -> bool:
        return bool(self.warnings)


class MutationResult(BaseModel):
    """Outcome of a liability create/update/delete."""

    liability: LiabilityEntry
    reconciliation: Optional[ReconciliationResult] = None
    warnings: list[str] = Field(default_factory=list)


class PaymentResult(MutationResult):
    """Outcome of a liability payment."""

    expenditure: ExpenditureEntry


class BackfillItem(BaseModel):
    liability_id: str
    status: str = Field(..., pattern="^(repaired|unchanged|missing|error)$")
    income_entry_id: Optional[str] = None
    message: str = ""


class BackfillReport(BaseModel):
    items: list[BackfillItem] = Field(default_factory=list)

    def count(self, status: str) -> int:
        return sum(1 for item in self.items if item.status == status)
