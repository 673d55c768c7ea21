"""
Storage Services Package

Provides the abstract record-store interface and concrete implementations.
Google Sheets is the hosted backend; the in-memory store backs the tests.
"""

from src.services.storage.interface import (
    AuditStorageInterface,
    ConnectionError,
    DuplicateError,
    NotFoundError,
    RecordStoreInterface,
    StorageError,
)
from src.services.storage.filters import RecordFilter, matches
from src.services.storage.memory import InMemoryRecordStore
from src.services.storage.audit import RecordStoreAuditStorage
from src.services.storage.google_sheets import (
    GoogleSheetsClient,
    GoogleSheetsRecordStore,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "RecordStoreInterface",
    # Filters
    "RecordFilter",
    "matches",
    # Exceptions
    "ConnectionError",
    "DuplicateError",
    "NotFoundError",
    "StorageError",
    # Implementations
    "GoogleSheetsClient",
    "GoogleSheetsRecordStore",
    "InMemoryRecordStore",
    "RecordStoreAuditStorage",
]
