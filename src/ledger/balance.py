"""
Account Balance Ledger

Applies signed adjustments to an account's running balance in response to
income, expenditure and transfer events.

DESIGN DECISION: Callers never set an absolute balance. They describe what
happened to the entry behind the money (created, updated, deleted) and its
type, and the ledger works out the sign:

    income / transfer_in       create: +amount   delete: -amount
    expenditure / transfer_out create: -amount   delete: +amount
    update (any type)          sign * (amount - old_amount)

Every applied delta is journalled in the account transactions table, so a
balance can be rebuilt from opening_balance + journal at any time.

TRADEOFFS:
- Read-modify-write on the balance without locking; concurrent writers to
  the same account can lose an update. recalculate_balance() repairs it.
- Balance write and journal write are separate calls.
"""

from decimal import Decimal
from typing import Optional
from uuid import UUID

import structlog

from src.audit import AuditLogger
from src.config import get_settings
from src.models.finance import (
    Account,
    AccountTransaction,
    BalanceOperation,
    TransactionType,
)
from src.services.storage import RecordFilter, RecordStoreInterface, StorageError


logger = structlog.get_logger(__name__)


class LedgerError(Exception):
    """A balance adjustment could not be applied."""
    pass


def signed_delta(
    amount: Decimal,
    operation: BalanceOperation,
    transaction_type: TransactionType,
    old_amount: Decimal = Decimal("0"),
) -> Decimal:
    """Net change to the balance for one entry event."""
    sign = transaction_type.sign
    if operation == BalanceOperation.CREATE:
        return amount * sign
    if operation == BalanceOperation.DELETE:
        return -amount * sign
    return (amount - old_amount) * sign


class AccountBalanceLedger:
    """Running balance per account, mutated only through signed deltas."""

    def __init__(
        self,
        store: RecordStoreInterface,
        audit_logger: Optional[AuditLogger] = None,
        accounts_table: Optional[str] = None,
        journal_table: Optional[str] = None,
    ):
        tables = get_settings().record_store
        self._store = store
        self._audit_logger = audit_logger
        self._accounts_table = accounts_table or tables.accounts_table
        self._journal_table = journal_table or tables.account_transactions_table

    async def _load_account(self, account_id: str) -> Account:
        try:
            record = await self._store.get(self._accounts_table, account_id)
        except StorageError as e:
            raise LedgerError(f"Failed to read account {account_id}: {e}") from e
        if record is None:
            raise LedgerError(f"Account not found: {account_id}")
        return Account.model_validate(record)

    async def get_balance(self, account_id: str) -> Decimal:
        """Current balance of an account."""
        account = await self._load_account(account_id)
        return account.balance

    async def apply_delta(
        self,
        account_id: Optional[str],
        amount: Decimal,
        operation: BalanceOperation,
        transaction_type: TransactionType,
        old_amount: Decimal = Decimal("0"),
        reference_table: Optional[str] = None,
        reference_id: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> Optional[Decimal]:
        """
        Adjust an account balance for one entry event.

        Args:
            account_id: Account to adjust. None is a no-op.
            amount: Entry amount (non-negative)
            operation: What happened to the entry
            transaction_type: Kind of money movement
            old_amount: Previous amount, only used by UPDATE
            reference_table: Table of the entry behind the delta
            reference_id: Id of the entry behind the delta

        Returns:
            The new balance, or None when no account was given

        Raises:
            LedgerError: If the account is missing or the store fails
        """
        if not account_id:
            return None

        amount = Decimal(amount)
        old_amount = Decimal(old_amount)
        if amount < 0 or old_amount < 0:
            raise ValueError("Ledger amounts must be non-negative; use the operation to reverse")

        operation = BalanceOperation(operation)
        transaction_type = TransactionType(transaction_type)
        delta = signed_delta(amount, operation, transaction_type, old_amount)

        account = await self._load_account(account_id)
        new_balance = account.balance + delta

        try:
            await self._store.update(
                self._accounts_table,
                account_id,
                {"balance": str(new_balance)},
            )
            journal = AccountTransaction(
                account_id=account_id,
                transaction_type=transaction_type,
                operation=operation,
                amount=amount,
                signed_delta=delta,
                balance_after=new_balance,
                reference_table=reference_table,
                reference_id=reference_id,
            )
            await self._store.insert(
                self._journal_table,
                journal.model_dump(mode="json", exclude={"id", "created_at"}),
            )
        except StorageError as e:
            raise LedgerError(f"Failed to update balance of {account_id}: {e}") from e

        logger.info(
            "ledger_delta_applied",
            account_id=account_id,
            operation=operation.value,
            transaction_type=transaction_type.value,
            signed_delta=str(delta),
            balance=str(new_balance),
        )
        if self._audit_logger:
            await self._audit_logger.log_ledger_delta_applied(
                account_id=account_id,
                signed_delta=delta,
                balance_after=new_balance,
                correlation_id=correlation_id,
            )
        return new_balance

    async def journal(self, account_id: str) -> list[AccountTransaction]:
        """Journal rows for an account, oldest first."""
        try:
            records = await self._store.select(
                self._journal_table,
                [RecordFilter.eq("account_id", account_id)],
            )
        except StorageError as e:
            raise LedgerError(f"Failed to read journal of {account_id}: {e}") from e
        return [AccountTransaction.model_validate(record) for record in records]

    async def recalculate_balance(self, account_id: str) -> Decimal:
        """
        Rebuild a balance from opening_balance plus every journalled delta.

        Use after a crash between balance and journal writes, or when two
        writers raced on the same account.
        """
        account = await self._load_account(account_id)
        entries = await self.journal(account_id)
        balance = account.opening_balance + sum(
            (entry.signed_delta for entry in entries), Decimal("0")
        )

        try:
            await self._store.update(
                self._accounts_table,
                account_id,
                {"balance": str(balance)},
            )
        except StorageError as e:
            raise LedgerError(f"Failed to write balance of {account_id}: {e}") from e

        logger.info(
            "ledger_balance_recalculated",
            account_id=account_id,
            previous=str(account.balance),
            balance=str(balance),
        )
        return balance
