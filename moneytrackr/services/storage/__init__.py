"""
Storage Services Package

Provides the abstract persistence interface, the Google Sheets and
in-memory backends, and the local key-value fallback store.
"""

from moneytrackr.services.storage.interface import (
    ALL_TABLES,
    GOALS_TABLE,
    RESTORE_POINTS_TABLE,
    SECURITY_LOGS_TABLE,
    SETTINGS_TABLE,
    SNAPSHOTS_TABLE,
    TRANSACTIONS_TABLE,
    BackendConnectionError,
    Filter,
    FilterOp,
    NotFoundError,
    Order,
    PersistenceBackend,
    ProtectedBackupError,
    StorageError,
    apply_query,
    asc,
    desc,
    eq,
    gte,
    lt,
    lte,
    neq,
)
from moneytrackr.services.storage.google_sheets import (
    GoogleSheetsBackend,
    GoogleSheetsClient,
)
from moneytrackr.services.storage.local import (
    GOALS_ENTITY,
    SETTINGS_ENTITY,
    TRANSACTIONS_ENTITY,
    JsonFileLocalStore,
    LocalStore,
    MemoryLocalStore,
    read_finance_state,
    storage_key,
    write_finance_state,
)
from moneytrackr.services.storage.memory import InMemoryBackend

__all__ = [
    # Interface
    "PersistenceBackend",
    "Filter",
    "FilterOp",
    "Order",
    "apply_query",
    "asc",
    "desc",
    "eq",
    "gte",
    "lt",
    "lte",
    "neq",
    # Tables
    "ALL_TABLES",
    "GOALS_TABLE",
    "RESTORE_POINTS_TABLE",
    "SECURITY_LOGS_TABLE",
    "SETTINGS_TABLE",
    "SNAPSHOTS_TABLE",
    "TRANSACTIONS_TABLE",
    # Exceptions
    "BackendConnectionError",
    "NotFoundError",
    "ProtectedBackupError",
    "StorageError",
    # Implementations
    "GoogleSheetsBackend",
    "GoogleSheetsClient",
    "InMemoryBackend",
    "JsonFileLocalStore",
    "LocalStore",
    "MemoryLocalStore",
    "read_finance_state",
    "storage_key",
    "write_finance_state",
    # Local entity names
    "GOALS_ENTITY",
    "SETTINGS_ENTITY",
    "TRANSACTIONS_ENTITY",
]
