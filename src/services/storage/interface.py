"""
Abstract Storage Interface

DESIGN DECISION: Every read and write goes through a generic record store.
The finance tables (liabilities, income, accounts, categories) live in a
hosted backend we do not control, so business logic only ever sees:
1. select by table + filters
2. insert / update / delete by table
3. structured errors

This allows us to:
1. Swap Google Sheets for a real database later
2. Use in-memory storage for testing
3. Keep reconciliation logic decoupled from the backend

Records are plain JSON-compatible dicts. Models are validated on the way in
and dumped with ``model_dump(mode="json")`` on the way out.
"""

from abc import ABC, abstractmethod
from typing import Any, Optional

from src.models.audit import AuditEvent
from src.services.storage.filters import RecordFilter


class RecordStoreInterface(ABC):
    """
    Abstract interface for table-oriented record storage.

    Any storage implementation (Google Sheets, PostgreSQL, etc.)
    must implement these methods.
    """

    @abstractmethod
    async def select(
        self,
        table: str,
        filters: Optional[list[RecordFilter]] = None,
    ) -> list[dict[str, Any]]:
        """
        Return every record of a table matching all filters.

        Args:
            table: Table name
            filters: Filters combined with AND. None returns all rows.

        Returns:
            List of matching records (copies, safe to mutate)

        Raises:
            StorageError: If the read fails
        """
        pass

    @abstractmethod
    async def get(self, table: str, record_id: str) -> Optional[dict[str, Any]]:
        """
        Retrieve a single record by id.

        Returns:
            The record if found, None otherwise
        """
        pass

    @abstractmethod
    async def insert(self, table: str, record: dict[str, Any]) -> dict[str, Any]:
        """
        Insert a record.

        Assigns ``id`` and ``created_at`` when the record lacks them.

        Returns:
            The stored record

        Raises:
            StorageError: If insert fails
            DuplicateError: If the id already exists
        """
        pass

    @abstractmethod
    async def update(
        self,
        table: str,
        record_id: str,
        patch: dict[str, Any],
    ) -> dict[str, Any]:
        """
        Merge ``patch`` into an existing record and set ``updated_at``.

        Returns:
            The updated record

        Raises:
            StorageError: If update fails
            NotFoundError: If record doesn't exist
        """
        pass

    @abstractmethod
    async def delete(self, table: str, filters: list[RecordFilter]) -> int:
        """
        Delete every record matching all filters.

        An empty filter list is refused to avoid wiping a table by accident.

        Returns:
            Number of deleted records
        """
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
        """
        Get all events for a specific entity, in chronological order.
        """
        pass

    @abstractmethod
    async def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        """
        Get the most recent audit events (newest first).
        """
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class DuplicateError(StorageError):
    """Attempted to insert a duplicate entity."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass
