"""
Tests for the Church Books models

Test strategy:
1. Unit tests for individual components (models, normalisation helpers)
2. Integration tests for flows against the in-memory store
3. No real API calls in tests
"""

import pytest
from datetime import date, datetime, timezone
from decimal import Decimal
from uuid import uuid4

from src.models.finance import (
    Account,
    BalanceOperation,
    Category,
    ExpenditureEntry,
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
    ReconciliationAction,
    ReconciliationResult,
)
from src.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)


class TestNormalisation:
    """Tests for values coming back from the store as text."""

    @pytest.mark.parametrize("value", [True, "true", "TRUE", " True "])
    def test_is_loan_truthy(self, value):
        assert normalize_is_loan(value) is True

    @pytest.mark.parametrize("value", [False, None, "false", "FALSE", "yes", "1", ""])
    def test_is_loan_falsy(self, value):
        assert normalize_is_loan(value) is False

    def test_payment_details_from_json_string(self):
        assert parse_payment_details('{"liability_id": "L1"}') == {"liability_id": "L1"}

    def test_payment_details_malformed_is_empty(self):
        """Malformed JSON must not raise."""
        assert parse_payment_details("{not json") == {}
        assert parse_payment_details("[1, 2]") == {}
        assert parse_payment_details(None) == {}

    def test_loan_description(self):
        assert loan_description("Acme Bank") == "Loan from Acme Bank"


class TestLiabilityEntry:
    """Tests for the liability model."""

    def test_remaining_is_derived(self):
        """Whatever the store holds, remaining = total - paid."""
        entry = LiabilityEntry(
            date=date(2024, 1, 15),
            creditor_name="Acme Bank",
            total_amount=Decimal("5000"),
            amount_paid=Decimal("1500"),
            amount_remaining=Decimal("99"),
        )
        assert entry.amount_remaining == Decimal("3500")

    def test_store_record_is_normalised(self):
        entry = LiabilityEntry.model_validate({
            "id": "L1",
            "date": "2024-01-15",
            "creditor_name": "  Acme Bank  ",
            "total_amount": "5000",
            "amount_paid": "",
            "is_loan": "TRUE",
            "account_id": "",
        })
        assert entry.creditor_name == "Acme Bank"
        assert entry.is_loan is True
        assert entry.account_id is None
        assert entry.amount_paid == Decimal("0")

    def test_rejects_negative_total(self):
        with pytest.raises(ValueError):
            LiabilityEntry(date=date(2024, 1, 1), creditor_name="X", total_amount=Decimal("-1"))

    def test_partial_payment(self):
        entry = LiabilityEntry(
            date=date(2024, 1, 15),
            creditor_name="Acme Bank",
            total_amount=Decimal("5000"),
        )
        paid = entry.with_payment(Decimal("2000"), date(2024, 2, 1))
        assert paid.amount_paid == Decimal("2000")
        assert paid.amount_remaining == Decimal("3000")
        assert paid.status == LiabilityStatus.PARTIAL
        assert paid.last_payment_date == date(2024, 2, 1)
        # Original untouched
        assert entry.amount_paid == Decimal("0")

    def test_full_payment_marks_paid(self):
        entry = LiabilityEntry(
            date=date(2024, 1, 15),
            creditor_name="Acme Bank",
            total_amount=Decimal("5000"),
            amount_paid=Decimal("4000"),
        )
        paid = entry.with_payment(Decimal("1000"), date(2024, 3, 1))
        assert paid.status == LiabilityStatus.PAID
        assert paid.amount_remaining == Decimal("0")

    def test_payment_must_be_positive(self):
        entry = LiabilityEntry(date=date(2024, 1, 15), creditor_name="A", total_amount=Decimal("10"))
        with pytest.raises(ValueError):
            entry.with_payment(Decimal("0"), date(2024, 1, 16))

    def test_to_record_excludes_server_fields(self):
        entry = LiabilityEntry(
            id="L1",
            date=date(2024, 1, 15),
            creditor_name="Acme Bank",
            total_amount=Decimal("5000"),
        )
        record = entry.to_record()
        assert "id" not in record
        assert "created_at" not in record
        assert record["total_amount"] == "5000"
        assert record["date"] == "2024-01-15"


class TestIncomeEntry:
    """Tests for the income model."""

    def test_defaults_payment_method(self):
        entry = IncomeEntry(date=date(2024, 1, 1), amount=Decimal("1"), payment_method=None)
        assert entry.payment_method == "other"

    def test_linked_liability_id(self):
        entry = IncomeEntry.model_validate({
            "date": "2024-01-01",
            "amount": "5000",
            "payment_details": '{"source": "liability", "liability_id": "L1"}',
        })
        assert entry.linked_liability_id == "L1"

    def test_unlinked_entry(self):
        entry = IncomeEntry(date=date(2024, 1, 1), amount=Decimal("1"), payment_details="oops")
        assert entry.payment_details == {}
        assert entry.linked_liability_id is None

    def test_created_sort_key_handles_missing_and_naive(self):
        missing = IncomeEntry(date=date(2024, 1, 1), amount=Decimal("1"))
        naive = IncomeEntry(
            date=date(2024, 1, 1), amount=Decimal("1"), created_at=datetime(2024, 1, 1, 12),
        )
        aware = IncomeEntry(
            date=date(2024, 1, 1), amount=Decimal("1"),
            created_at=datetime(2024, 1, 2, tzinfo=timezone.utc),
        )
        ordered = sorted([aware, missing, naive], key=lambda e: e.created_sort_key)
        assert ordered == [missing, naive, aware]


class TestOtherRecords:
    """Tests for accounts, categories and expenditure."""

    def test_account_blank_balance_is_zero(self):
        account = Account.model_validate({"id": "A1", "name": "Main", "balance": ""})
        assert account.balance == Decimal("0")
        assert account.opening_balance == Decimal("0")

    def test_category_none_name(self):
        assert Category.model_validate({"id": "c1", "name": None}).name == ""

    def test_expenditure_flag_from_text(self):
        entry = ExpenditureEntry.model_validate({
            "date": "2024-01-01",
            "amount": "100",
            "liability_payment": "true",
        })
        assert entry.liability_payment is True


class TestReconciliationModels:
    """Tests for result models."""

    def test_transaction_sign(self):
        assert TransactionType.INCOME.sign == 1
        assert TransactionType.TRANSFER_IN.sign == 1
        assert TransactionType.EXPENDITURE.sign == -1
        assert TransactionType.TRANSFER_OUT.sign == -1

    def test_applied_delta_signed_amount(self):
        credit = AppliedDelta(
            account_id="A1", amount=Decimal("50"),
            operation=BalanceOperation.CREATE, transaction_type=TransactionType.INCOME,
        )
        reversal = AppliedDelta(
            account_id="A1", amount=Decimal("50"),
            operation=BalanceOperation.DELETE, transaction_type=TransactionType.INCOME,
        )
        assert credit.signed_amount == Decimal("50")
        assert reversal.signed_amount == Decimal("-50")

    def test_result_stale_flag(self):
        result = ReconciliationResult(liability_id="L1", action=ReconciliationAction.CREATED)
        assert result.balance_may_be_stale is False
        result.warnings.append("balance")
        assert result.balance_may_be_stale is True

    def test_backfill_report_counts(self):
        report = BackfillReport(items=[
            BackfillItem(liability_id="L1", status="repaired"),
            BackfillItem(liability_id="L2", status="missing"),
            BackfillItem(liability_id="L3", status="repaired"),
        ])
        assert report.count("repaired") == 2
        assert report.count("error") == 0

    def test_backfill_item_rejects_unknown_status(self):
        with pytest.raises(ValueError):
            BackfillItem(liability_id="L1", status="fixed")


class TestAuditModels:
    """Tests for audit-related models."""

    def test_audit_event_creation(self):
        event = AuditEvent(
            event_type=AuditEventType.LIABILITY_CREATED,
            description="Liability created",
        )
        assert event.event_type == AuditEventType.LIABILITY_CREATED
        assert event.severity == AuditSeverity.INFO
        assert event.timestamp.tzinfo is not None

    def test_audit_event_to_log_dict(self):
        event = AuditEvent(
            event_type=AuditEventType.INCOME_ENTRY_CREATED,
            description="Loan income entry created",
            details={"liability_id": "L1"},
        )
        log_dict = event.to_log_dict()
        assert "event_id" in log_dict
        assert log_dict["event_type"] == "income_entry_created"
        assert log_dict["details"]["liability_id"] == "L1"

    def test_builder_liability_saved(self):
        correlation_id = uuid4()
        event = AuditEventBuilder.liability_saved(
            liability_id="L1",
            action="updated",
            creditor_name="Acme Bank",
            correlation_id=correlation_id,
        )
        assert event.event_type == AuditEventType.LIABILITY_UPDATED
        assert event.entity_id == "L1"
        assert event.correlation_id == correlation_id
        assert event.is_user_action is True

    def test_builder_ledger_delta_failed_is_warning(self):
        event = AuditEventBuilder.ledger_delta_failed(
            account_id="A1",
            amount=Decimal("5000"),
            error_message="Account not found: A1",
        )
        assert event.severity == AuditSeverity.WARNING
        assert event.details["amount"] == "5000"

    def test_builder_reconciliation_failed_message(self):
        event = AuditEventBuilder.reconciliation_failed(
            liability_id="L1",
            error_message="boom",
        )
        assert event.description == "Liability saved, but related income entry failed to update"
        assert event.severity == AuditSeverity.ERROR


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
