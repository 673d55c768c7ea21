"""
Main Orchestrator for the Church Books

This module ties together all the components and defines the
end-to-end liability flows:
1. Create / update (write liability -> reconcile loan income)
2. Payment (update liability -> expenditure entry -> balance -> reconcile)
3. Delete (cascade linked expenditure and loan income, reverse balances)

DESIGN DECISION: The liability write is the primary step; everything that
follows is secondary.
- A primary failure propagates (nothing was saved)
- A secondary failure is returned as a warning next to the saved liability
- Every step is audited under one correlation id
"""

from datetime import date
from decimal import Decimal
from typing import Optional, Union
from uuid import UUID

import structlog

from src.audit import AuditLogger, create_correlation_id
from src.config import get_settings
from src.ledger import AccountBalanceLedger, LedgerError
from src.models.finance import (
    BalanceOperation,
    ExpenditureEntry,
    LiabilityEntry,
    TransactionType,
)
from src.models.reconciliation import MutationResult, PaymentResult
from src.reconciliation import (
    AccountHintProvider,
    CategoryResolver,
    KeyedLock,
    LiabilityIncomeReconciler,
    LinkedIncomeFinder,
    LoanIncomeBackfill,
    ReconciliationError,
    payment_category_resolver,
)
from src.services.storage import (
    GoogleSheetsClient,
    GoogleSheetsRecordStore,
    InMemoryRecordStore,
    NotFoundError,
    RecordFilter,
    RecordStoreAuditStorage,
    RecordStoreInterface,
)


logger = structlog.get_logger(__name__)

RECONCILIATION_WARNING = "Liability saved, but related income entry failed to update"
PAYMENT_BALANCE_WARNING = "Payment recorded but account balance may not be accurate"
DELETE_BALANCE_WARNING = "Liability deleted but account balance may not be accurate"


class LiabilityService:
    """
    Orchestrates liability mutations.

    Flow for every mutation:
    1. Primary write to the liabilities table
    2. Side effects (expenditure entry, balance deltas)
    3. Loan income reconciliation

    Steps 2 and 3 never undo step 1.
    """

    def __init__(
        self,
        store: RecordStoreInterface,
        ledger: AccountBalanceLedger,
        reconciler: Optional[LiabilityIncomeReconciler] = None,
        payment_categories: Optional[CategoryResolver] = None,
        audit_logger: Optional[AuditLogger] = None,
        locks: Optional[KeyedLock] = None,
        account_hints: Optional[AccountHintProvider] = None,
    ):
        tables = get_settings().record_store
        self._store = store
        self._ledger = ledger
        self._audit_logger = audit_logger
        self._account_hints = account_hints
        self._reconciler = reconciler or LiabilityIncomeReconciler(
            store, ledger, audit_logger=audit_logger,
            account_hints=account_hints, locks=locks,
        )
        self._payment_categories = payment_categories or payment_category_resolver(
            store, audit_logger,
        )
        self._locks = locks
        self._liabilities_table = tables.liabilities_table
        self._income_table = tables.income_table
        self._expenditure_table = tables.expenditure_table
        self._finder = LinkedIncomeFinder(store, self._income_table)

    async def _load(self, liability_id: str) -> LiabilityEntry:
        record = await self._store.get(self._liabilities_table, liability_id)
        if record is None:
            raise NotFoundError(f"Liability not found: {liability_id}")
        return LiabilityEntry.model_validate(record)

    async def _remember_account(self, liability: LiabilityEntry) -> None:
        if self._account_hints and liability.account_id:
            await self._account_hints.remember(liability.id, liability.account_id)

    async def _reconcile(
        self,
        liability: LiabilityEntry,
        result: MutationResult,
        correlation_id: UUID,
    ) -> None:
        """Secondary step: mirror a loan into income, never raising."""
        if not liability.is_loan:
            return
        try:
            outcome = await self._reconciler.reconcile(liability, correlation_id)
        except ReconciliationError as e:
            logger.error(
                "liability_reconciliation_failed",
                liability_id=liability.id,
                error=str(e),
            )
            result.warnings.append(RECONCILIATION_WARNING)
            if self._audit_logger:
                await self._audit_logger.log_reconciliation_failed(
                    liability_id=liability.id,
                    error_message=str(e),
                    correlation_id=correlation_id,
                )
            return

        result.reconciliation = outcome
        result.warnings.extend(outcome.warnings)

    async def create(
        self,
        entry: Union[LiabilityEntry, dict],
        correlation_id: Optional[UUID] = None,
    ) -> MutationResult:
        """
        Record a new liability.

        Raises:
            StorageError: If the liability itself could not be written
        """
        correlation_id = correlation_id or create_correlation_id()
        if isinstance(entry, dict):
            entry = LiabilityEntry.model_validate(entry)

        record = await self._store.insert(self._liabilities_table, entry.to_record())
        saved = LiabilityEntry.model_validate(record)
        logger.info("liability_created", liability_id=saved.id, is_loan=saved.is_loan)

        if self._audit_logger:
            await self._audit_logger.log_liability_saved(
                liability_id=saved.id,
                action="created",
                creditor_name=saved.creditor_name,
                correlation_id=correlation_id,
            )

        await self._remember_account(saved)
        result = MutationResult(liability=saved)
        await self._reconcile(saved, result, correlation_id)
        return result

    async def update(
        self,
        entry: Union[LiabilityEntry, dict],
        correlation_id: Optional[UUID] = None,
    ) -> MutationResult:
        """
        Overwrite an existing liability.

        Raises:
            ValueError: If the entry has no id
            NotFoundError: If no liability has that id
            StorageError: If the write failed
        """
        correlation_id = correlation_id or create_correlation_id()
        if isinstance(entry, dict):
            entry = LiabilityEntry.model_validate(entry)
        if not entry.id:
            raise ValueError("Cannot update a liability without an id")

        record = await self._store.update(
            self._liabilities_table, entry.id, entry.to_record(),
        )
        saved = LiabilityEntry.model_validate(record)
        logger.info("liability_updated", liability_id=saved.id, is_loan=saved.is_loan)

        if self._audit_logger:
            await self._audit_logger.log_liability_saved(
                liability_id=saved.id,
                action="updated",
                creditor_name=saved.creditor_name,
                correlation_id=correlation_id,
            )

        await self._remember_account(saved)
        result = MutationResult(liability=saved)
        await self._reconcile(saved, result, correlation_id)
        return result

    async def make_payment(
        self,
        liability_id: str,
        amount: Decimal,
        payment_date: date,
        payment_method: str,
        account_id: Optional[str] = None,
        description: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> PaymentResult:
        """
        Record a payment towards a liability.

        The payment is booked as an expenditure entry in the "Liability
        Payment" category and, when an account is given, debited from it.

        Raises:
            ValueError: If amount is not positive
            NotFoundError: If the liability doesn't exist
            CategoryResolutionError: If no expenditure category is usable
            StorageError: If the liability or expenditure write failed
        """
        correlation_id = correlation_id or create_correlation_id()
        amount = Decimal(amount)
        if amount <= 0:
            raise ValueError("Payment amount must be positive")

        liability = await self._load(liability_id)
        paid = liability.with_payment(amount, payment_date)
        category_id = await self._payment_categories.resolve()

        record = await self._store.update(
            self._liabilities_table,
            liability_id,
            {
                "amount_paid": str(paid.amount_paid),
                "amount_remaining": str(paid.amount_remaining),
                "status": paid.status.value,
                "last_payment_date": payment_date.isoformat(),
            },
        )
        saved = LiabilityEntry.model_validate(record)

        expenditure = ExpenditureEntry(
            date=payment_date,
            category_id=category_id,
            description=description or f"Payment for {liability.creditor_name}",
            amount=amount,
            recipient=liability.creditor_name,
            payment_method=payment_method or get_settings().reconciliation.default_payment_method,
            account_id=account_id,
            liability_payment=True,
            liability_id=liability_id,
        )
        expenditure_record = await self._store.insert(
            self._expenditure_table,
            expenditure.model_dump(mode="json", exclude={"id", "created_at", "updated_at"}),
        )
        expenditure = ExpenditureEntry.model_validate(expenditure_record)
        logger.info(
            "liability_payment_recorded",
            liability_id=liability_id,
            expenditure_id=expenditure.id,
            amount=str(amount),
            status=saved.status.value,
        )

        result = PaymentResult(liability=saved, expenditure=expenditure)
        if account_id:
            try:
                await self._ledger.apply_delta(
                    account_id,
                    amount,
                    BalanceOperation.CREATE,
                    TransactionType.EXPENDITURE,
                    reference_table=self._expenditure_table,
                    reference_id=expenditure.id,
                    correlation_id=correlation_id,
                )
            except LedgerError as e:
                logger.warning(
                    "payment_balance_update_failed",
                    liability_id=liability_id,
                    account_id=account_id,
                    error=str(e),
                )
                result.warnings.append(PAYMENT_BALANCE_WARNING)
                if self._audit_logger:
                    await self._audit_logger.log_ledger_delta_failed(
                        account_id=account_id,
                        amount=amount,
                        error_message=str(e),
                        correlation_id=correlation_id,
                    )

        if self._audit_logger:
            await self._audit_logger.log_payment_recorded(
                liability_id=liability_id,
                amount=amount,
                expenditure_id=expenditure.id,
                correlation_id=correlation_id,
            )

        await self._reconcile(saved, result, correlation_id)
        return result

    async def delete(
        self,
        liability_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> MutationResult:
        """
        Delete a liability and everything derived from it.

        CASCADE:
        1. Expenditure entries recorded as payments of this liability
        2. For loans, every income entry any correlation strategy links to it
        3. The liability itself

        Balance effects of the deleted entries are reversed; a failed
        reversal is a warning, not an error.
        """
        correlation_id = correlation_id or create_correlation_id()
        if self._locks is None:
            return await self._delete(liability_id, correlation_id)
        async with self._locks.hold(liability_id):
            return await self._delete(liability_id, correlation_id)

    async def _delete(self, liability_id: str, correlation_id: UUID) -> MutationResult:
        liability = await self._load(liability_id)
        result = MutationResult(liability=liability)

        payments = [
            ExpenditureEntry.model_validate(record)
            for record in await self._store.select(
                self._expenditure_table,
                [RecordFilter.eq("liability_id", liability_id)],
            )
        ]
        if payments:
            await self._store.delete(
                self._expenditure_table,
                [RecordFilter.in_("id", [payment.id for payment in payments])],
            )
            for payment in payments:
                await self._reverse(
                    result, payment.account_id, payment.amount,
                    TransactionType.EXPENDITURE, self._expenditure_table,
                    payment.id, correlation_id,
                )

        if liability.is_loan:
            incomes = await self._finder.find_all(liability)
            if incomes:
                await self._store.delete(
                    self._income_table,
                    [RecordFilter.in_("id", [income.id for income in incomes])],
                )
            for income in incomes:
                await self._reverse(
                    result, income.account_id, income.amount,
                    TransactionType.INCOME, self._income_table,
                    income.id, correlation_id,
                )
                if self._audit_logger:
                    await self._audit_logger.log_income_entry_changed(
                        income_entry_id=income.id,
                        action="deleted",
                        liability_id=liability_id,
                        correlation_id=correlation_id,
                    )

        await self._store.delete(
            self._liabilities_table,
            [RecordFilter.eq("id", liability_id)],
        )
        logger.info(
            "liability_deleted",
            liability_id=liability_id,
            payments_deleted=len(payments),
        )
        if self._audit_logger:
            await self._audit_logger.log_liability_saved(
                liability_id=liability_id,
                action="deleted",
                creditor_name=liability.creditor_name,
                correlation_id=correlation_id,
            )
        return result

    async def _reverse(
        self,
        result: MutationResult,
        account_id: Optional[str],
        amount: Decimal,
        transaction_type: TransactionType,
        reference_table: str,
        reference_id: str,
        correlation_id: UUID,
    ) -> None:
        if not account_id:
            return
        try:
            await self._ledger.apply_delta(
                account_id,
                amount,
                BalanceOperation.DELETE,
                transaction_type,
                reference_table=reference_table,
                reference_id=reference_id,
                correlation_id=correlation_id,
            )
        except LedgerError as e:
            logger.warning(
                "delete_balance_update_failed",
                account_id=account_id,
                reference_id=reference_id,
                error=str(e),
            )
            result.warnings.append(DELETE_BALANCE_WARNING)
            if self._audit_logger:
                await self._audit_logger.log_ledger_delta_failed(
                    account_id=account_id,
                    amount=amount,
                    error_message=str(e),
                    correlation_id=correlation_id,
                )


class AppComponents:
    """Everything a caller needs, wired to one store."""

    def __init__(
        self,
        store: RecordStoreInterface,
        audit_logger: AuditLogger,
        ledger: AccountBalanceLedger,
        reconciler: LiabilityIncomeReconciler,
        liabilities: LiabilityService,
        backfill: LoanIncomeBackfill,
    ):
        self.store = store
        self.audit_logger = audit_logger
        self.ledger = ledger
        self.reconciler = reconciler
        self.liabilities = liabilities
        self.backfill = backfill


def create_record_store() -> RecordStoreInterface:
    """Build the backend named by RECORD_STORE_BACKEND."""
    backend = get_settings().record_store.backend
    if backend == "google_sheets":
        return GoogleSheetsRecordStore(GoogleSheetsClient())
    return InMemoryRecordStore()


def create_app_components(
    store: Optional[RecordStoreInterface] = None,
    account_hints: Optional[AccountHintProvider] = None,
    persist_audit: bool = True,
) -> AppComponents:
    """
    Factory function to create all application components.

    Args:
        store: Record store to use. Built from settings when omitted.
        account_hints: Remembered account choices. Updated whenever a
                       liability is saved with an account, and read as the
                       last-resort source of a loan's funding account
        persist_audit: Whether audit events are written to the store.
                       Set to False to keep them in the local log only.

    Returns:
        The wired components, sharing one store and one lock table
    """
    settings = get_settings()
    store = store or create_record_store()

    if persist_audit:
        audit_logger = AuditLogger(
            RecordStoreAuditStorage(store, settings.record_store.audit_table)
        )
    else:
        audit_logger = AuditLogger()  # Local-only logging

    locks = KeyedLock() if settings.reconciliation.serialize_per_liability else None
    ledger = AccountBalanceLedger(store, audit_logger)
    reconciler = LiabilityIncomeReconciler(
        store,
        ledger,
        audit_logger=audit_logger,
        account_hints=account_hints,
        locks=locks,
    )
    liabilities = LiabilityService(
        store,
        ledger,
        reconciler=reconciler,
        audit_logger=audit_logger,
        locks=locks,
    )
    backfill = LoanIncomeBackfill(store, ledger, audit_logger=audit_logger, locks=locks)

    return AppComponents(
        store=store,
        audit_logger=audit_logger,
        ledger=ledger,
        reconciler=reconciler,
        liabilities=liabilities,
        backfill=backfill,
    )
