"""
Record filters shared by every storage backend.

Backends without server-side querying (Sheets, memory) evaluate filters in
Python with ``matches``. Field names may be dotted paths into JSON bags,
e.g. ``payment_details.liability_id``. A bag stored as a JSON string is
parsed on the fly; a malformed one simply does not match.
"""

import json
from typing import Any

from pydantic import BaseModel, Field


_MISSING = object()


class RecordFilter(BaseModel):
    """A single predicate on a record field."""

    field: str = Field(..., min_length=1)
    op: str = Field(..., pattern="^(eq|like|ilike|in)$")
    value: Any = None

    @classmethod
    def eq(cls, field: str, value: Any) -> "RecordFilter":
        return cls(field=field, op="eq", value=value)

    @classmethod
    def like(cls, field: str, value: str) -> "RecordFilter":
        """Case-sensitive substring match."""
        return cls(field=field, op="like", value=value)

    @classmethod
    def ilike(cls, field: str, value: str) -> "RecordFilter":
        """Case-insensitive substring match."""
        return cls(field=field, op="ilike", value=value)

    @classmethod
    def in_(cls, field: str, values: list) -> "RecordFilter":
        return cls(field=field, op="in", value=list(values))


def resolve_path(record: dict, path: str) -> Any:
    """Walk a dotted path through nested dicts and JSON strings."""
    current: Any = record
    for part in path.split("."):
        if isinstance(current, str):
            try:
                current = json.loads(current)
            except ValueError:
                return _MISSING
        if not isinstance(current, dict) or part not in current:
            return _MISSING
        current = current[part]
    return current


def _as_comparable(value: Any) -> Any:
    # Sheets hands everything back as text; compare scalars by string form
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return value


def matches(record: dict, filters: list[RecordFilter]) -> bool:
    """True when the record satisfies every filter."""
    for flt in filters:
        actual = resolve_path(record, flt.field)
        if actual is _MISSING or actual is None:
            if flt.op == "eq" and flt.value is None:
                continue
            return False

        if flt.op == "eq":
            if actual != flt.value and _as_comparable(actual) != _as_comparable(flt.value):
                return False
        elif flt.op == "like":
            if str(flt.value) not in str(actual):
                return False
        elif flt.op == "ilike":
            if str(flt.value).lower() not in str(actual).lower():
                return False
        elif flt.op == "in":
            if actual not in flt.value:
                return False
    return True
