"""
Tests for the storage layer.

Only the in-memory backend and the pure Sheets cell codec run here; the
Sheets client itself needs credentials and is not exercised.
"""

import asyncio

import pytest

from src.models.audit import AuditEventBuilder, AuditEventType
from src.services.storage import (
    DuplicateError,
    InMemoryRecordStore,
    NotFoundError,
    RecordFilter,
    RecordStoreAuditStorage,
    StorageError,
    matches,
)
from src.services.storage.google_sheets import decode_cell, encode_cell


class TestFilters:
    """Tests for RecordFilter evaluation."""

    def test_dotted_path_into_dict(self):
        record = {"payment_details": {"liability_id": "L1"}}
        assert matches(record, [RecordFilter.eq("payment_details.liability_id", "L1")])
        assert not matches(record, [RecordFilter.eq("payment_details.liability_id", "L2")])

    def test_dotted_path_into_json_string(self):
        record = {"payment_details": '{"liability_id": "L1"}'}
        assert matches(record, [RecordFilter.eq("payment_details.liability_id", "L1")])

    def test_malformed_json_does_not_match(self):
        record = {"payment_details": "{broken"}
        assert not matches(record, [RecordFilter.eq("payment_details.liability_id", "L1")])

    def test_like_is_case_sensitive(self):
        record = {"description": "Loan from Acme Bank"}
        assert matches(record, [RecordFilter.like("description", "Loan from Acme")])
        assert not matches(record, [RecordFilter.like("description", "loan from acme")])

    def test_ilike_is_case_insensitive(self):
        record = {"description": "LOAN FROM ACME BANK"}
        assert matches(record, [RecordFilter.ilike("description", "loan from acme")])

    def test_in(self):
        assert matches({"id": "b"}, [RecordFilter.in_("id", ["a", "b"])])
        assert not matches({"id": "c"}, [RecordFilter.in_("id", ["a", "b"])])

    def test_eq_none_matches_missing(self):
        assert matches({}, [RecordFilter.eq("account_id", None)])
        assert not matches({}, [RecordFilter.eq("account_id", "A1")])

    def test_numbers_compare_with_text(self):
        """Sheets returns numbers as text."""
        assert matches({"amount": "5000"}, [RecordFilter.eq("amount", 5000)])

    def test_unknown_op_rejected(self):
        with pytest.raises(ValueError):
            RecordFilter(field="id", op="gt", value=1)


class TestInMemoryRecordStore:
    """Tests for the in-memory backend."""

    def test_insert_assigns_id_and_created_at(self):
        store = InMemoryRecordStore()
        record = asyncio.run(store.insert("things", {"name": "a"}))
        assert record["id"]
        assert record["created_at"]
        assert store.dump("things") == [record]

    def test_insert_duplicate_id(self):
        store = InMemoryRecordStore({"things": [{"id": "x"}]})
        with pytest.raises(DuplicateError):
            asyncio.run(store.insert("things", {"id": "x"}))

    def test_returned_records_are_copies(self):
        store = InMemoryRecordStore({"things": [{"id": "x", "tags": ["a"]}]})
        record = asyncio.run(store.get("things", "x"))
        record["tags"].append("b")
        assert store.dump("things")[0]["tags"] == ["a"]

    def test_get_missing_is_none(self):
        assert asyncio.run(InMemoryRecordStore().get("things", "nope")) is None

    def test_update_patches_and_stamps(self):
        store = InMemoryRecordStore({"things": [{"id": "x", "name": "a", "n": 1}]})
        record = asyncio.run(store.update("things", "x", {"name": "b", "id": "y"}))
        assert record["id"] == "x"
        assert record["name"] == "b"
        assert record["n"] == 1
        assert record["updated_at"]

    def test_update_missing_raises(self):
        with pytest.raises(NotFoundError):
            asyncio.run(InMemoryRecordStore().update("things", "x", {"a": 1}))

    def test_not_found_is_storage_error(self):
        assert issubclass(NotFoundError, StorageError)

    def test_select_with_filters(self):
        store = InMemoryRecordStore({"things": [
            {"id": "1", "kind": "a"},
            {"id": "2", "kind": "b"},
            {"id": "3", "kind": "a"},
        ]})
        rows = asyncio.run(store.select("things", [RecordFilter.eq("kind", "a")]))
        assert [row["id"] for row in rows] == ["1", "3"]

    def test_delete_returns_count(self):
        store = InMemoryRecordStore({"things": [{"id": "1"}, {"id": "2"}, {"id": "3"}]})
        deleted = asyncio.run(store.delete("things", [RecordFilter.in_("id", ["1", "3"])]))
        assert deleted == 2
        assert [row["id"] for row in store.dump("things")] == ["2"]

    def test_delete_without_filters_refused(self):
        store = InMemoryRecordStore({"things": [{"id": "1"}]})
        with pytest.raises(StorageError):
            asyncio.run(store.delete("things", []))
        assert len(store.dump("things")) == 1


class TestSheetsCellCodec:
    """Tests for converting record values to and from sheet text."""

    def test_encode(self):
        assert encode_cell(None) == ""
        assert encode_cell(True) == "true"
        assert encode_cell({"liability_id": "L1"}) == '{"liability_id": "L1"}'
        assert encode_cell("5000") == "5000"

    def test_decode(self):
        assert decode_cell("") is None
        assert decode_cell('{"liability_id": "L1"}') == {"liability_id": "L1"}
        assert decode_cell("{not json") == "{not json"
        assert decode_cell("Loan from Acme Bank") == "Loan from Acme Bank"


class TestRecordStoreAuditStorage:
    """Tests for audit persistence on a record store."""

    def test_append_and_read_back(self):
        store = InMemoryRecordStore()
        storage = RecordStoreAuditStorage(store)
        event = AuditEventBuilder.liability_saved(
            liability_id="L1", action="created", creditor_name="Acme Bank",
        )

        async def scenario():
            await storage.append_event(event)
            return await storage.get_events_by_entity("liability", "L1")

        events = asyncio.run(scenario())
        assert len(events) == 1
        assert events[0].event_id == event.event_id
        assert events[0].event_type == AuditEventType.LIABILITY_CREATED
