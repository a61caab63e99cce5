"""Services package."""

from moneytrackr.services.storage import (
    BackendConnectionError,
    GoogleSheetsBackend,
    GoogleSheetsClient,
    InMemoryBackend,
    JsonFileLocalStore,
    LocalStore,
    MemoryLocalStore,
    NotFoundError,
    PersistenceBackend,
    ProtectedBackupError,
    StorageError,
)

__all__ = [
    "BackendConnectionError",
    "GoogleSheetsBackend",
    "GoogleSheetsClient",
    "InMemoryBackend",
    "JsonFileLocalStore",
    "LocalStore",
    "MemoryLocalStore",
    "NotFoundError",
    "PersistenceBackend",
    "ProtectedBackupError",
    "StorageError",
]
