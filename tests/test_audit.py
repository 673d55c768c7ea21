"""Tests for the audit logger."""

import asyncio

from src.audit import AuditLogger, create_correlation_id
from src.models.audit import AuditEventBuilder
from src.services.storage import InMemoryRecordStore, RecordStoreAuditStorage


class BrokenAuditStorage(RecordStoreAuditStorage):
    async def append_event(self, event):
        raise RuntimeError("audit sheet unavailable")


class TestAuditLogger:
    """Audit logging never breaks the flow it observes."""

    def test_local_only_logging_succeeds(self):
        logger = AuditLogger()
        event = AuditEventBuilder.category_created("c1", "income_categories", "Loans")
        assert asyncio.run(logger.log(event)) is True

    def test_persists_to_store(self):
        store = InMemoryRecordStore()
        logger = AuditLogger(RecordStoreAuditStorage(store))
        asyncio.run(logger.log_liability_saved("L1", "created", "Acme Bank"))

        rows = store.dump("audit_events")
        assert len(rows) == 1
        assert rows[0]["event_type"] == "liability_created"
        assert rows[0]["entity_id"] == "L1"

    def test_storage_failure_is_swallowed(self):
        logger = AuditLogger(BrokenAuditStorage(InMemoryRecordStore()))
        event = AuditEventBuilder.system_error("test", "boom")
        assert asyncio.run(logger.log(event)) is False

    def test_recent_events_newest_first(self):
        store = InMemoryRecordStore()
        storage = RecordStoreAuditStorage(store)
        logger = AuditLogger(storage)

        async def scenario():
            await logger.log_liability_saved("L1", "created", "Acme Bank")
            await logger.log_liability_saved("L1", "updated", "Acme Bank")
            return await storage.get_recent_events(limit=1)

        events = asyncio.run(scenario())
        assert len(events) == 1
        assert events[0].event_type.value == "liability_updated"

    def test_correlation_ids_are_unique(self):
        assert create_correlation_id() != create_correlation_id()
