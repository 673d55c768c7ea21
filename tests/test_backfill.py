"""Tests for the loan income backfill pass."""

import asyncio
from decimal import Decimal

from src.audit import AuditLogger
from src.reconciliation import LoanIncomeBackfill
from src.services.storage import RecordStoreAuditStorage, StorageError


def seed_legacy_books(store):
    async def seed():
        await store.insert("liability_entries", {
            "id": "L1", "date": "2024-01-15", "creditor_name": "Acme Bank",
            "total_amount": "5000", "is_loan": "true", "account_id": "A1",
        })
        await store.insert("liability_entries", {
            "id": "L2", "date": "2024-02-01", "creditor_name": "Grace Trust",
            "total_amount": "800", "is_loan": True,
        })
        await store.insert("liability_entries", {
            "id": "L3", "date": "2024-02-10", "creditor_name": "Office Supplies Ltd",
            "total_amount": "120", "is_loan": "false",
        })
        # Written before entries carried the liability id or an account
        await store.insert("income_entries", {
            "id": "old-income", "date": "2024-01-15",
            "description": "Loan from Acme Bank", "amount": "5000",
        })

    asyncio.run(seed())


class TestLoanIncomeBackfill:
    """Repairs legacy loan income entries."""

    def test_repairs_link_and_account(self, store, ledger, balance_of):
        seed_legacy_books(store)
        report = asyncio.run(LoanIncomeBackfill(store, ledger).run())

        by_liability = {item.liability_id: item for item in report.items}
        assert set(by_liability) == {"L1", "L2"}
        assert by_liability["L1"].status == "repaired"
        assert by_liability["L1"].income_entry_id == "old-income"
        assert by_liability["L2"].status == "missing"

        entry = store.dump("income_entries")[0]
        assert entry["payment_details"] == {"source": "liability", "liability_id": "L1"}
        assert entry["account_id"] == "A1"
        assert balance_of("A1") == Decimal("5000")

    def test_second_run_changes_nothing(self, store, ledger, balance_of):
        seed_legacy_books(store)
        backfill = LoanIncomeBackfill(store, ledger)
        asyncio.run(backfill.run())
        report = asyncio.run(backfill.run())

        assert report.count("repaired") == 0
        assert report.count("unchanged") == 1
        assert balance_of("A1") == Decimal("5000")

    def test_ledger_failure_noted_on_item(self, store, ledger):
        seed_legacy_books(store)
        asyncio.run(store.update("liability_entries", "L1", {"account_id": "closed-account"}))

        report = asyncio.run(LoanIncomeBackfill(store, ledger).run())
        item = next(item for item in report.items if item.liability_id == "L1")
        assert item.status == "repaired"
        assert "account balance may not be accurate" in item.message

    def test_completion_is_audited(self, store, ledger):
        seed_legacy_books(store)
        audit_logger = AuditLogger(RecordStoreAuditStorage(store))
        asyncio.run(LoanIncomeBackfill(store, ledger, audit_logger=audit_logger).run())

        events = [row for row in store.dump("audit_events") if row["event_type"] == "backfill_completed"]
        assert len(events) == 1
        assert events[0]["details"] == {"repaired": 1, "missing": 1, "errors": 0}

    def test_item_errors_are_collected(self, store, ledger):
        seed_legacy_books(store)
        # A negative total never validates as a liability
        asyncio.run(store.insert("liability_entries", {
            "id": "L9", "date": "2024-03-01", "creditor_name": "Broken Row",
            "total_amount": "-5", "is_loan": True,
        }))

        async def broken_update(table, record_id, patch):
            raise StorageError("income sheet is protected")

        store.update = broken_update
        audit_logger = AuditLogger(RecordStoreAuditStorage(store))
        report = asyncio.run(LoanIncomeBackfill(store, ledger, audit_logger=audit_logger).run())

        assert report.count("error") == 2
        assert report.count("missing") == 1
        broken = next(item for item in report.items if item.liability_id == "L9")
        assert broken.status == "error"
        assert broken.message.startswith("invalid liability row")
        event_types = [row["event_type"] for row in store.dump("audit_events")]
        assert "system_error" in event_types
