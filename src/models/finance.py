"""
Core Data Models for the Church Books

These models define the schemas for every record the reconciliation flows
read or write. They are designed to:
1. Normalise what the hosted store hands back (strings for booleans,
   JSON text for nested bags, text for amounts)
2. Enforce the liability invariants at construction time
3. Be serializable back to the store with ``model_dump(mode="json")``

DESIGN DECISION: Money is Decimal, never float. Balances are running
aggregates and float drift would accumulate over a congregation's lifetime.
"""

import json
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)


LOAN_DESCRIPTION_PREFIX = "Loan from "
LIABILITY_ID_MARKER = "Liability ID: "
LIABILITY_SOURCE = "liability"


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class LiabilityStatus(str, Enum):
    """Repayment status of a liability. UNPAID is the 'open' state."""
    UNPAID = "unpaid"
    PARTIAL = "partial"
    PAID = "paid"


class TransactionType(str, Enum):
    """What kind of money movement a ledger delta represents."""
    INCOME = "income"
    EXPENDITURE = "expenditure"
    TRANSFER_IN = "transfer_in"
    TRANSFER_OUT = "transfer_out"

    @property
    def sign(self) -> int:
        """+1 for money coming into an account, -1 for money leaving it."""
        if self in (TransactionType.INCOME, TransactionType.TRANSFER_IN):
            return 1
        return -1


class BalanceOperation(str, Enum):
    """
    Lifecycle event of the entry behind a ledger delta.

    CREATE applies the entry's effect, DELETE reverses it, UPDATE applies
    the difference between the new and old amount.
    """
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class AccountType(str, Enum):
    CASH = "cash"
    BANK = "bank"
    MOBILE_MONEY = "mobile_money"
    OTHER = "other"


# =============================================================================
# NORMALISATION HELPERS
# =============================================================================

def normalize_is_loan(value: Any) -> bool:
    """
    Coerce a stored loan flag to bool.

    The store may hand back "true"/"false" text. Only the word "true"
    (any case) counts as a loan; "false", "yes", "" and None do not.
    """
    if isinstance(value, str):
        return value.strip().lower() == "true"
    return bool(value)


def parse_payment_details(value: Any) -> dict[str, Any]:
    """Parse a payment_details bag. Missing or malformed bags become {}."""
    if value is None or value == "":
        return {}
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except ValueError:
            return {}
    return dict(value) if isinstance(value, dict) else {}


def loan_description(creditor_name: str) -> str:
    return f"{LOAN_DESCRIPTION_PREFIX}{creditor_name}"


# =============================================================================
# CATEGORIES & ACCOUNTS
# =============================================================================

class Category(BaseModel):
    """Income or expenditure category."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: Optional[str] = None
    name: str = Field(default="", max_length=200)
    description: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator("name", mode="before")
    @classmethod
    def none_name_to_empty(cls, v: Any) -> Any:
        return "" if v is None else v


class IncomeCategory(Category):
    pass


class ExpenditureCategory(Category):
    pass


class Account(BaseModel):
    """A money-holding bucket with a running balance."""

    id: Optional[str] = None
    name: str = ""
    account_type: AccountType = AccountType.OTHER
    account_number: Optional[str] = None
    bank_name: Optional[str] = None
    description: Optional[str] = None
    is_default: bool = False
    balance: Decimal = Decimal("0")
    opening_balance: Decimal = Decimal("0")
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator("balance", "opening_balance", mode="before")
    @classmethod
    def none_to_zero(cls, v: Any) -> Any:
        return Decimal("0") if v is None or v == "" else v


# =============================================================================
# LIABILITY
# =============================================================================

class LiabilityEntry(BaseModel):
    """
    A debt obligation.

    amount_remaining is always derived from total_amount - amount_paid;
    whatever the store holds for it is overwritten on validation.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: Optional[str] = None
    date: date
    creditor_name: str = Field(..., min_length=1, max_length=200)
    category_id: Optional[str] = None
    details: Optional[str] = None

    total_amount: Decimal = Field(..., ge=0)
    amount_paid: Decimal = Field(default=Decimal("0"), ge=0)
    amount_remaining: Decimal = Decimal("0")

    due_date: Optional[date] = None
    status: LiabilityStatus = LiabilityStatus.UNPAID
    last_payment_date: Optional[date] = None

    is_loan: bool = False
    account_id: Optional[str] = None
    payment_method: Optional[str] = None

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator("is_loan", mode="before")
    @classmethod
    def coerce_is_loan(cls, v: Any) -> bool:
        return normalize_is_loan(v)

    @field_validator("amount_paid", "amount_remaining", mode="before")
    @classmethod
    def none_to_zero(cls, v: Any) -> Any:
        return Decimal("0") if v is None or v == "" else v

    @field_validator("account_id", "payment_method", "category_id", mode="before")
    @classmethod
    def blank_to_none(cls, v: Any) -> Any:
        return None if v == "" else v

    @model_validator(mode="after")
    def derive_remaining(self) -> "LiabilityEntry":
        self.amount_remaining = self.total_amount - self.amount_paid
        return self

    def with_payment(self, amount: Decimal, payment_date: date) -> "LiabilityEntry":
        """Return a copy with a payment applied and status recomputed."""
        if amount <= 0:
            raise ValueError("Payment amount must be positive")

        paid = self.amount_paid + amount
        status = LiabilityStatus.PAID if paid >= self.total_amount else LiabilityStatus.PARTIAL
        return LiabilityEntry.model_validate({
            **self.model_dump(),
            "amount_paid": paid,
            "status": status,
            "last_payment_date": payment_date,
        })

    def to_record(self) -> dict[str, Any]:
        """Store representation, without server-managed fields."""
        return self.model_dump(
            mode="json",
            exclude={"id", "created_at", "updated_at"},
        )


# =============================================================================
# INCOME & EXPENDITURE
# =============================================================================

class IncomeEntry(BaseModel):
    """
    A recorded inflow.

    Loan-derived entries carry ``payment_details = {source: "liability",
    liability_id}`` and a "Loan from {creditor}" description.
    """

    id: Optional[str] = None
    date: date
    category_id: Optional[str] = None
    description: Optional[str] = None
    amount: Decimal = Field(..., ge=0)
    payment_method: str = "other"
    account_id: Optional[str] = None
    member_id: Optional[str] = None
    payment_details: dict[str, Any] = Field(default_factory=dict)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator("payment_details", mode="before")
    @classmethod
    def coerce_payment_details(cls, v: Any) -> dict[str, Any]:
        return parse_payment_details(v)

    @field_validator("payment_method", mode="before")
    @classmethod
    def default_payment_method(cls, v: Any) -> Any:
        return "other" if v is None or v == "" else v

    @field_validator("account_id", "category_id", mode="before")
    @classmethod
    def blank_to_none(cls, v: Any) -> Any:
        return None if v == "" else v

    @property
    def linked_liability_id(self) -> Optional[str]:
        value = self.payment_details.get("liability_id")
        return str(value) if value else None

    @property
    def created_sort_key(self) -> datetime:
        """created_at as an aware datetime; missing timestamps sort last."""
        if self.created_at is None:
            return datetime.min.replace(tzinfo=timezone.utc)
        if self.created_at.tzinfo is None:
            return self.created_at.replace(tzinfo=timezone.utc)
        return self.created_at


class ExpenditureEntry(BaseModel):
    """A recorded outflow. Liability payments set liability_payment."""

    id: Optional[str] = None
    date: date
    category_id: Optional[str] = None
    description: str = ""
    amount: Decimal = Field(..., ge=0)
    recipient: Optional[str] = None
    payment_method: str = "other"
    account_id: Optional[str] = None
    liability_payment: bool = False
    liability_id: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator("liability_payment", mode="before")
    @classmethod
    def coerce_flag(cls, v: Any) -> bool:
        return normalize_is_loan(v)

    @field_validator("account_id", mode="before")
    @classmethod
    def blank_to_none(cls, v: Any) -> Any:
        return None if v == "" else v


class AccountTransaction(BaseModel):
    """Journal row written for every applied ledger delta."""

    id: Optional[str] = None
    account_id: str
    transaction_type: TransactionType
    operation: BalanceOperation
    amount: Decimal
    signed_delta: Decimal
    balance_after: Decimal
    reference_table: Optional[str] = None
    reference_id: Optional[str] = None
    created_at: Optional[datetime] = None
