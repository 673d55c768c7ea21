"""
Shared fixtures.

Every test runs against InMemoryRecordStore seeded with two accounts:
A1 "General Fund" and A2 "Building Fund", both starting at zero.
"""

import asyncio
from decimal import Decimal

import pytest

from src.config import get_settings
from src.ledger import AccountBalanceLedger
from src.models.finance import LiabilityEntry
from src.reconciliation import LiabilityIncomeReconciler
from src.services.storage import InMemoryRecordStore


LIABILITY_DEFAULTS = {
    "id": "L1",
    "date": "2024-01-15",
    "creditor_name": "Acme Bank",
    "total_amount": "5000",
    "is_loan": True,
}


@pytest.fixture(autouse=True)
def fresh_settings():
    """Settings are cached; make sure no test leaks env overrides into another."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def store():
    return InMemoryRecordStore({
        "accounts": [
            {"id": "A1", "name": "General Fund", "account_type": "bank",
             "balance": "0", "opening_balance": "0"},
            {"id": "A2", "name": "Building Fund", "account_type": "bank",
             "balance": "0", "opening_balance": "0"},
        ],
    })


@pytest.fixture
def ledger(store):
    return AccountBalanceLedger(store)


@pytest.fixture
def reconciler(store, ledger):
    return LiabilityIncomeReconciler(store, ledger)


@pytest.fixture
def put_liability(store):
    """Insert or overwrite a liability row and return it as a model."""
    def _put(**fields) -> LiabilityEntry:
        record = {**LIABILITY_DEFAULTS, **fields}

        async def _write():
            if await store.get("liability_entries", record["id"]) is None:
                return await store.insert("liability_entries", record)
            return await store.update("liability_entries", record["id"], record)

        return LiabilityEntry.model_validate(asyncio.run(_write()))
    return _put


@pytest.fixture
def balance_of(store):
    def _balance(account_id: str) -> Decimal:
        for row in store.dump("accounts"):
            if row["id"] == account_id:
                return Decimal(str(row["balance"]))
        raise KeyError(account_id)
    return _balance
