"""Tests for get-or-create category resolution."""

import asyncio

import pytest

from src.reconciliation import (
    CategoryResolutionError,
    loan_category_resolver,
    payment_category_resolver,
)
from src.services.storage import InMemoryRecordStore, StorageError


class InsertFailingStore(InMemoryRecordStore):
    async def insert(self, table, record):
        raise StorageError("sheet is read-only")


class SelectFailingStore(InMemoryRecordStore):
    async def select(self, table, filters=None):
        raise StorageError("quota exceeded")


class TestLoanCategoryResolver:
    """Tests for the default loan income category."""

    def test_reuses_keyword_match(self):
        store = InMemoryRecordStore({"income_categories": [
            {"id": "c1", "name": "Tithes"},
            {"id": "c2", "name": "Short-term BORROWING"},
        ]})
        assert asyncio.run(loan_category_resolver(store).resolve()) == "c2"

    def test_creates_loans_category_once(self):
        """The created category matches next time, so no duplicates."""
        store = InMemoryRecordStore({"income_categories": [{"id": "c1", "name": "Offerings"}]})
        resolver = loan_category_resolver(store)

        async def scenario():
            return await resolver.resolve(), await resolver.resolve()

        first, second = asyncio.run(scenario())
        assert first == second
        names = [row["name"] for row in store.dump("income_categories")]
        assert names == ["Offerings", "Loans"]
        created = store.dump("income_categories")[1]
        assert created["description"] == "Income from loans and borrowed funds"

    def test_insert_failure_falls_back_to_first(self):
        store = InsertFailingStore({"income_categories": [
            {"id": "c1", "name": "Offerings"},
            {"id": "c2", "name": "Tithes"},
        ]})
        assert asyncio.run(loan_category_resolver(store).resolve()) == "c1"

    def test_insert_failure_with_no_categories(self):
        with pytest.raises(CategoryResolutionError):
            asyncio.run(loan_category_resolver(InsertFailingStore()).resolve())

    def test_read_failure(self):
        with pytest.raises(CategoryResolutionError):
            asyncio.run(loan_category_resolver(SelectFailingStore()).resolve())


class TestPaymentCategoryResolver:
    """Tests for the liability payment expenditure category."""

    def test_exact_name_only(self):
        store = InMemoryRecordStore({"expenditure_categories": [
            {"id": "e1", "name": "Liability Payments and Fees"},
        ]})
        category_id = asyncio.run(payment_category_resolver(store).resolve())
        assert category_id != "e1"
        names = [row["name"] for row in store.dump("expenditure_categories")]
        assert "Liability Payment" in names

    def test_reuses_existing(self):
        store = InMemoryRecordStore({"expenditure_categories": [
            {"id": "e1", "name": "Utilities"},
            {"id": "e2", "name": "Liability Payment"},
        ]})
        assert asyncio.run(payment_category_resolver(store).resolve()) == "e2"
