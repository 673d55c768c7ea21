"""
In-Memory Storage Implementation

Used by the test suite and for local experiments. Behaves like the hosted
backend from the caller's point of view: records are copied on the way in and
out, ids are generated on insert, and every call yields to the event loop so
interleaving between concurrent flows is realistic.
"""

import asyncio
import copy
from datetime import datetime, timezone
from typing import Any, Optional
from uuid import uuid4

from src.services.storage.filters import RecordFilter, matches
from src.services.storage.interface import (
    DuplicateError,
    NotFoundError,
    RecordStoreInterface,
    StorageError,
)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class InMemoryRecordStore(RecordStoreInterface):
    """Dict-of-tables record store. Insertion order is preserved."""

    def __init__(self, tables: Optional[dict[str, list[dict[str, Any]]]] = None):
        self._tables: dict[str, dict[str, dict[str, Any]]] = {}
        for table, rows in (tables or {}).items():
            for row in rows:
                record = copy.deepcopy(row)
                record.setdefault("id", str(uuid4()))
                self._table(table)[str(record["id"])] = record

    def _table(self, table: str) -> dict[str, dict[str, Any]]:
        return self._tables.setdefault(table, {})

    async def select(
        self,
        table: str,
        filters: Optional[list[RecordFilter]] = None,
    ) -> list[dict[str, Any]]:
        await asyncio.sleep(0)
        rows = self._table(table).values()
        return [copy.deepcopy(row) for row in rows if matches(row, filters or [])]

    async def get(self, table: str, record_id: str) -> Optional[dict[str, Any]]:
        await asyncio.sleep(0)
        row = self._table(table).get(str(record_id))
        return copy.deepcopy(row) if row is not None else None

    async def insert(self, table: str, record: dict[str, Any]) -> dict[str, Any]:
        await asyncio.sleep(0)
        row = copy.deepcopy(record)
        if not row.get("id"):
            row["id"] = str(uuid4())
        row["id"] = str(row["id"])
        if not row.get("created_at"):
            row["created_at"] = _now()

        rows = self._table(table)
        if row["id"] in rows:
            raise DuplicateError(f"Duplicate id in {table}: {row['id']}")
        rows[row["id"]] = row
        return copy.deepcopy(row)

    async def update(
        self,
        table: str,
        record_id: str,
        patch: dict[str, Any],
    ) -> dict[str, Any]:
        await asyncio.sleep(0)
        rows = self._table(table)
        row = rows.get(str(record_id))
        if row is None:
            raise NotFoundError(f"Record not found in {table}: {record_id}")

        changes = copy.deepcopy(patch)
        changes.pop("id", None)
        row.update(changes)
        row["updated_at"] = _now()
        return copy.deepcopy(row)

    async def delete(self, table: str, filters: list[RecordFilter]) -> int:
        await asyncio.sleep(0)
        if not filters:
            raise StorageError(f"Refusing to delete from {table} without filters")

        rows = self._table(table)
        doomed = [key for key, row in rows.items() if matches(row, filters)]
        for key in doomed:
            del rows[key]
        return len(doomed)

    def dump(self, table: str) -> list[dict[str, Any]]:
        """Synchronous snapshot of a table, handy for assertions."""
        return [copy.deepcopy(row) for row in self._table(table).values()]
