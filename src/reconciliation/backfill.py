"""
Loan Income Backfill

One pass over every loan liability that upgrades its derived income entry
to the current linking scheme:

- payment_details.liability_id missing -> written, so later lookups use the
  structured link instead of description matching
- entry has no account but the liability does -> assigned, and the loan
  amount credited to that account

Each liability produces one BackfillItem. Failures are recorded on the item
and the pass moves on.
"""

from contextlib import nullcontext
from typing import Optional

import structlog
from pydantic import ValidationError

from src.audit import AuditLogger
from src.config import get_settings
from src.ledger import AccountBalanceLedger, LedgerError
from src.models.finance import (
    LIABILITY_SOURCE,
    BalanceOperation,
    LiabilityEntry,
    TransactionType,
    normalize_is_loan,
)
from src.models.reconciliation import BackfillItem, BackfillReport
from src.reconciliation.correlation import LinkedIncomeFinder
from src.reconciliation.locks import KeyedLock
from src.services.storage import RecordStoreInterface, StorageError


logger = structlog.get_logger(__name__)


class LoanIncomeBackfill:
    def __init__(
        self,
        store: RecordStoreInterface,
        ledger: AccountBalanceLedger,
        audit_logger: Optional[AuditLogger] = None,
        locks: Optional[KeyedLock] = None,
    ):
        tables = get_settings().record_store
        self._store = store
        self._ledger = ledger
        self._audit_logger = audit_logger
        self._locks = locks
        self._liabilities_table = tables.liabilities_table
        self._income_table = tables.income_table
        self._finder = LinkedIncomeFinder(store, self._income_table)

    async def run(self) -> BackfillReport:
        """
        Repair every loan liability's income entry.

        Raises:
            StorageError: Only if the liability list itself can't be read
        """
        records = await self._store.select(self._liabilities_table)
        loans = [record for record in records if normalize_is_loan(record.get("is_loan"))]

        report = BackfillReport()
        for record in loans:
            try:
                liability = LiabilityEntry.model_validate(record)
            except ValidationError as e:
                logger.warning("backfill_invalid_liability", liability_id=record.get("id"), error=str(e))
                item = BackfillItem(
                    liability_id=str(record.get("id") or ""),
                    status="error",
                    message=f"invalid liability row: {e}",
                )
            else:
                lock = self._locks.hold(liability.id) if self._locks else nullcontext()
                async with lock:
                    item = await self._repair(liability)
            report.items.append(item)
            if item.status == "error" and self._audit_logger:
                await self._audit_logger.log_error(
                    error_type="backfill_item_failed",
                    error_message=item.message,
                    details={"liability_id": item.liability_id},
                )

        logger.info(
            "backfill_completed",
            loans=len(loans),
            repaired=report.count("repaired"),
            missing=report.count("missing"),
            errors=report.count("error"),
        )
        if self._audit_logger:
            await self._audit_logger.log_backfill_completed(
                repaired=report.count("repaired"),
                missing=report.count("missing"),
                errors=report.count("error"),
            )
        return report

    async def _repair(self, liability: LiabilityEntry) -> BackfillItem:
        try:
            entry, strategy = await self._finder.find(liability)
        except (StorageError, ValidationError) as e:
            logger.warning("backfill_lookup_failed", liability_id=liability.id, error=str(e))
            return BackfillItem(liability_id=liability.id, status="error", message=str(e))

        if entry is None:
            return BackfillItem(liability_id=liability.id, status="missing")

        patch = {}
        if entry.linked_liability_id != str(liability.id):
            details = dict(entry.payment_details)
            details.update(source=LIABILITY_SOURCE, liability_id=liability.id)
            patch["payment_details"] = details

        assign_account = not entry.account_id and bool(liability.account_id)
        if assign_account:
            patch["account_id"] = liability.account_id

        if not patch:
            return BackfillItem(
                liability_id=liability.id,
                status="unchanged",
                income_entry_id=entry.id,
            )

        try:
            await self._store.update(self._income_table, entry.id, patch)
        except StorageError as e:
            logger.warning(
                "backfill_update_failed",
                liability_id=liability.id,
                income_entry_id=entry.id,
                error=str(e),
            )
            return BackfillItem(
                liability_id=liability.id,
                status="error",
                income_entry_id=entry.id,
                message=str(e),
            )

        message = f"repaired {', '.join(sorted(patch))} (matched by {strategy.value})"
        if assign_account:
            try:
                await self._ledger.apply_delta(
                    liability.account_id,
                    entry.amount,
                    BalanceOperation.CREATE,
                    TransactionType.INCOME,
                    reference_table=self._income_table,
                    reference_id=entry.id,
                )
            except LedgerError as e:
                logger.warning(
                    "backfill_balance_update_failed",
                    liability_id=liability.id,
                    account_id=liability.account_id,
                    error=str(e),
                )
                message += f"; account balance may not be accurate: {e}"

        logger.info(
            "backfill_repaired",
            liability_id=liability.id,
            income_entry_id=entry.id,
            fields=sorted(patch),
        )
        return BackfillItem(
            liability_id=liability.id,
            status="repaired",
            income_entry_id=entry.id,
            message=message,
        )
