"""
Liability to Income Reconciliation Engine

A loan is both a liability (we owe the creditor) and income (the money
arrived in one of our accounts). This engine keeps exactly one derived
income entry per loan liability and keeps the account ledger in step with
it.

FLOW:
1. Guard: not a loan -> no-op
2. Lock the liability id (concurrent calls would both create an entry)
3. Correlate: find the existing derived entry (see correlation.py)
4a. None found -> create it, credit the funding account
4b. Found -> diff, update if anything differs, then apply the
    compensating balance deltas for whichever case applies:
      account changed   reverse old amount on old, credit new amount on new
      amount changed    one delta of the difference on the same account
      account assigned  credit the new amount
      account removed   reverse the old amount

INVARIANT: over a liability's lifetime the net of all deltas issued here
equals its current total_amount on its current account, and zero on every
other account.

FAILURE SEMANTICS:
- Store failures while finding, categorising or writing the income entry
  raise ReconciliationError, and so does a malformed linked entry.
- Ledger failures after the entry is written do NOT roll the entry back.
  They are logged and returned as warnings (balance may be stale).
"""

from decimal import Decimal
from typing import Optional, Union
from uuid import UUID

import structlog
from pydantic import ValidationError

from src.audit import AuditLogger
from src.config import get_settings
from src.ledger import AccountBalanceLedger, LedgerError
from src.models.finance import (
    LIABILITY_SOURCE,
    BalanceOperation,
    IncomeEntry,
    LiabilityEntry,
    TransactionType,
    loan_description,
)
from src.models.reconciliation import (
    AppliedDelta,
    CorrelationStrategy,
    ReconciliationAction,
    ReconciliationResult,
)
from src.reconciliation.accounts import AccountHintProvider, AccountResolver
from src.reconciliation.categories import CategoryResolver, loan_category_resolver
from src.reconciliation.correlation import LinkedIncomeFinder
from src.reconciliation.errors import ReconciliationError
from src.reconciliation.locks import KeyedLock
from src.services.storage import RecordStoreInterface, StorageError


logger = structlog.get_logger(__name__)

CREATE_BALANCE_WARNING = "Loan recorded but account balance may not be accurate"
UPDATE_BALANCE_WARNING = "Loan updated but account balance may not be accurate"


class LiabilityIncomeReconciler:
    """
    Keeps the derived income entry of a loan liability consistent.

    Safe to call repeatedly: a second call with unchanged input writes
    nothing and applies no delta.
    """

    def __init__(
        self,
        store: RecordStoreInterface,
        ledger: AccountBalanceLedger,
        audit_logger: Optional[AuditLogger] = None,
        category_resolver: Optional[CategoryResolver] = None,
        account_hints: Optional[AccountHintProvider] = None,
        locks: Optional[KeyedLock] = None,
    ):
        settings = get_settings()
        self._config = settings.reconciliation
        self._table = settings.record_store.income_table

        self._store = store
        self._ledger = ledger
        self._audit_logger = audit_logger
        self._categories = category_resolver or loan_category_resolver(store, audit_logger)
        self._accounts = AccountResolver(store, account_hints)
        self._finder = LinkedIncomeFinder(store, self._table)

        if locks is None and self._config.serialize_per_liability:
            locks = KeyedLock()
        self._locks = locks

    async def reconcile(
        self,
        liability: Union[LiabilityEntry, dict],
        correlation_id: Optional[UUID] = None,
    ) -> ReconciliationResult:
        """
        Bring the derived income entry of a loan liability in line.

        Args:
            liability: The just-written liability (model or store record)
            correlation_id: Ties audit events to the triggering mutation

        Returns:
            What was done, which deltas were applied, and any warnings

        Raises:
            ReconciliationError: If the income entry could not be found,
                categorised, created or updated
            ValueError: If a loan liability has no id
        """
        if isinstance(liability, dict):
            liability = LiabilityEntry.model_validate(liability)

        if not liability.is_loan:
            logger.debug("reconciliation_skipped", liability_id=liability.id)
            return ReconciliationResult(
                liability_id=liability.id,
                action=ReconciliationAction.SKIPPED,
            )

        if not liability.id:
            raise ValueError("Cannot reconcile a loan liability without an id")

        if self._locks is None:
            return await self._reconcile_loan(liability, correlation_id)

        async with self._locks.hold(liability.id):
            return await self._reconcile_loan(liability, correlation_id)

    async def _reconcile_loan(
        self,
        liability: LiabilityEntry,
        correlation_id: Optional[UUID],
    ) -> ReconciliationResult:
        try:
            existing, strategy = await self._finder.find(liability)
        except StorageError as e:
            raise ReconciliationError(
                f"Failed to look up income entry for liability {liability.id}: {e}",
                liability.id,
            ) from e
        except ValidationError as e:
            raise ReconciliationError(
                f"Linked income entry for liability {liability.id} is malformed: {e}",
                liability.id,
            ) from e

        if existing is None:
            return await self._create(liability, correlation_id)
        return await self._update(liability, existing, strategy, correlation_id)

    # -------------------------------------------------------------------------
    # Create
    # -------------------------------------------------------------------------

    async def _create(
        self,
        liability: LiabilityEntry,
        correlation_id: Optional[UUID],
    ) -> ReconciliationResult:
        category_id = await self._categories.resolve()
        account_id = await self._accounts.resolve(liability)

        entry = IncomeEntry(
            date=liability.date,
            amount=liability.total_amount,
            category_id=category_id,
            description=loan_description(liability.creditor_name),
            payment_method=liability.payment_method or self._config.default_payment_method,
            account_id=account_id,
            payment_details={
                "source": LIABILITY_SOURCE,
                "liability_id": liability.id,
            },
        )

        try:
            record = await self._store.insert(
                self._table,
                entry.model_dump(mode="json", exclude={"id", "created_at", "updated_at"}),
            )
        except StorageError as e:
            raise ReconciliationError(
                f"Failed to create income entry for liability {liability.id}: {e}",
                liability.id,
            ) from e

        created = IncomeEntry.model_validate(record)
        logger.info(
            "loan_income_created",
            liability_id=liability.id,
            income_entry_id=created.id,
            account_id=account_id,
            amount=str(created.amount),
        )
        if self._audit_logger:
            await self._audit_logger.log_income_entry_changed(
                income_entry_id=created.id,
                action="created",
                liability_id=liability.id,
                correlation_id=correlation_id,
            )

        result = ReconciliationResult(
            liability_id=liability.id,
            action=ReconciliationAction.CREATED,
            income_entry_id=created.id,
        )
        if account_id:
            await self._apply_delta(
                result, account_id, liability.total_amount,
                BalanceOperation.CREATE, created.id, correlation_id,
            )
        return result

    # -------------------------------------------------------------------------
    # Update
    # -------------------------------------------------------------------------

    def _diff(
        self,
        liability: LiabilityEntry,
        existing: IncomeEntry,
        account_id: Optional[str],
    ) -> tuple[list[str], dict]:
        """Changed field names and the repaired payment_details bag."""
        changed = []
        if existing.amount != liability.total_amount:
            changed.append("amount")
        if existing.date != liability.date:
            changed.append("date")
        if existing.description != loan_description(liability.creditor_name):
            changed.append("description")
        if liability.payment_method and existing.payment_method != liability.payment_method:
            changed.append("payment_method")
        if liability.account_id and account_id != existing.account_id:
            changed.append("account_id")

        details = dict(existing.payment_details)
        if existing.linked_liability_id != str(liability.id):
            # Self-heals legacy entries found by description only
            details.update(source=LIABILITY_SOURCE, liability_id=liability.id)
            changed.append("payment_details")
        return changed, details

    async def _update(
        self,
        liability: LiabilityEntry,
        existing: IncomeEntry,
        strategy: Optional[CorrelationStrategy],
        correlation_id: Optional[UUID],
    ) -> ReconciliationResult:
        account_id = await self._accounts.resolve(liability)
        changed, details = self._diff(liability, existing, account_id)

        result = ReconciliationResult(
            liability_id=liability.id,
            action=ReconciliationAction.UNCHANGED,
            income_entry_id=existing.id,
            matched_by=strategy,
        )
        if not changed:
            logger.debug(
                "loan_income_unchanged",
                liability_id=liability.id,
                income_entry_id=existing.id,
            )
            if self._audit_logger:
                await self._audit_logger.log_reconciliation_unchanged(
                    liability_id=liability.id,
                    correlation_id=correlation_id,
                )
            return result

        patch = {
            "amount": str(liability.total_amount),
            "date": liability.date.isoformat(),
            "description": loan_description(liability.creditor_name),
            "payment_method": (
                liability.payment_method
                or existing.payment_method
                or self._config.default_payment_method
            ),
            "account_id": account_id,
            "payment_details": details,
        }
        try:
            await self._store.update(self._table, existing.id, patch)
        except StorageError as e:
            raise ReconciliationError(
                f"Failed to update income entry {existing.id}: {e}",
                liability.id,
            ) from e

        result.action = ReconciliationAction.UPDATED
        result.changed_fields = changed
        logger.info(
            "loan_income_updated",
            liability_id=liability.id,
            income_entry_id=existing.id,
            matched_by=strategy.value if strategy else None,
            changed_fields=changed,
        )
        if self._audit_logger:
            await self._audit_logger.log_income_entry_changed(
                income_entry_id=existing.id,
                action="updated",
                liability_id=liability.id,
                changed_fields=changed,
                correlation_id=correlation_id,
            )

        await self._compensate(
            result,
            old_account=existing.account_id,
            new_account=account_id,
            old_amount=existing.amount,
            new_amount=liability.total_amount,
            income_entry_id=existing.id,
            correlation_id=correlation_id,
        )
        return result

    async def _compensate(
        self,
        result: ReconciliationResult,
        old_account: Optional[str],
        new_account: Optional[str],
        old_amount: Decimal,
        new_amount: Decimal,
        income_entry_id: str,
        correlation_id: Optional[UUID],
    ) -> None:
        """Apply exactly the deltas that move the old contribution to the new one."""
        if old_account and new_account and old_account != new_account:
            await self._apply_delta(
                result, old_account, old_amount,
                BalanceOperation.DELETE, income_entry_id, correlation_id,
            )
            await self._apply_delta(
                result, new_account, new_amount,
                BalanceOperation.CREATE, income_entry_id, correlation_id,
            )
        elif old_account and new_account:
            difference = new_amount - old_amount
            if difference:
                operation = (
                    BalanceOperation.CREATE if difference > 0 else BalanceOperation.DELETE
                )
                await self._apply_delta(
                    result, new_account, abs(difference),
                    operation, income_entry_id, correlation_id,
                )
        elif new_account:
            await self._apply_delta(
                result, new_account, new_amount,
                BalanceOperation.CREATE, income_entry_id, correlation_id,
            )
        elif old_account:
            await self._apply_delta(
                result, old_account, old_amount,
                BalanceOperation.DELETE, income_entry_id, correlation_id,
            )

    async def _apply_delta(
        self,
        result: ReconciliationResult,
        account_id: str,
        amount: Decimal,
        operation: BalanceOperation,
        income_entry_id: str,
        correlation_id: Optional[UUID],
    ) -> bool:
        try:
            await self._ledger.apply_delta(
                account_id,
                amount,
                operation,
                TransactionType.INCOME,
                reference_table=self._table,
                reference_id=income_entry_id,
                correlation_id=correlation_id,
            )
        except LedgerError as e:
            logger.warning(
                "loan_balance_update_failed",
                liability_id=result.liability_id,
                account_id=account_id,
                operation=operation.value,
                amount=str(amount),
                error=str(e),
            )
            warning = (
                CREATE_BALANCE_WARNING
                if result.action == ReconciliationAction.CREATED
                else UPDATE_BALANCE_WARNING
            )
            result.warnings.append(f"{warning} ({account_id}: {e})")
            if self._audit_logger:
                await self._audit_logger.log_ledger_delta_failed(
                    account_id=account_id,
                    amount=amount,
                    error_message=str(e),
                    correlation_id=correlation_id,
                )
            return False

        result.deltas.append(AppliedDelta(
            account_id=account_id,
            amount=amount,
            operation=operation,
            transaction_type=TransactionType.INCOME,
        ))
        return True
