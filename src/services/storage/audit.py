"""
Audit storage on top of any record store.

Audit events go to their own table in whatever backend holds the books,
so the audit trail sits next to the data it describes.
"""

from src.models.audit import AuditEvent
from src.services.storage.filters import RecordFilter
from src.services.storage.interface import (
    AuditStorageInterface,
    RecordStoreInterface,
    StorageError,
)


class RecordStoreAuditStorage(AuditStorageInterface):
    """Append-only audit log kept in a record-store table."""

    def __init__(self, store: RecordStoreInterface, table: str = "audit_events"):
        self._store = store
        self._table = table

    async def append_event(self, event: AuditEvent) -> bool:
        """Append an audit event."""
        record = event.model_dump(mode="json")
        record["id"] = record.pop("event_id")
        await self._store.insert(self._table, record)
        return True

    def _to_event(self, record: dict) -> AuditEvent:
        data = dict(record)
        data["event_id"] = data.pop("id")
        data.pop("created_at", None)
        data.pop("updated_at", None)
        return AuditEvent.model_validate(data)

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
        """Get events by entity."""
        try:
            records = await self._store.select(
                self._table,
                [
                    RecordFilter.eq("entity_type", entity_type),
                    RecordFilter.eq("entity_id", str(entity_id)),
                ],
            )
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")

        events = [self._to_event(record) for record in records]
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        """Get recent events."""
        records = await self._store.select(self._table)
        events = [self._to_event(record) for record in records]

        # Sort newest first
        events.sort(key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
