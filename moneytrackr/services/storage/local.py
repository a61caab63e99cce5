"""
Local key-value fallback store.

A flat string-keyed store whose values are JSON documents, used when no
remote session exists or the backend is not configured, and as the
offline mirror of the finance data. Values are stored serialized, so
every ``get`` returns a fresh copy.

Finance data lives under ``finance_<entity>_<user_id>``, or
``finance_<entity>`` for the anonymous local-only session.
"""

import json
import os
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Optional

import structlog


logger = structlog.get_logger(__name__)


TRANSACTIONS_ENTITY = "transactions"
GOALS_ENTITY = "goals"
SETTINGS_ENTITY = "settings"


def storage_key(entity: str, user_id: Optional[str] = None) -> str:
    """Local-store key for one finance entity list/object."""
    if user_id:
        return f"finance_{entity}_{user_id}"
    return f"finance_{entity}"


def read_finance_state(store: "LocalStore", user_id: Optional[str] = None) -> dict[str, Any]:
    """The whole local finance state as ``{transactions, goals, settings}``."""
    return {
        TRANSACTIONS_ENTITY: store.get(storage_key(TRANSACTIONS_ENTITY, user_id), []),
        GOALS_ENTITY: store.get(storage_key(GOALS_ENTITY, user_id), []),
        SETTINGS_ENTITY: store.get(storage_key(SETTINGS_ENTITY, user_id), {}),
    }


def write_finance_state(
    store: "LocalStore",
    state: dict[str, Any],
    user_id: Optional[str] = None,
) -> None:
    """Overwrite each entity present in ``state``; absent entities are left alone."""
    for entity in (TRANSACTIONS_ENTITY, GOALS_ENTITY, SETTINGS_ENTITY):
        if state.get(entity) is not None:
            store.set(storage_key(entity, user_id), state[entity])


class LocalStore(ABC):
    """Key-value store of JSON values."""

    @abstractmethod
    def _read(self, key: str) -> Optional[str]:
        pass

    @abstractmethod
    def _write(self, key: str, raw: str) -> None:
        pass

    @abstractmethod
    def remove(self, key: str) -> None:
        pass

    @abstractmethod
    def clear(self) -> None:
        pass

    @abstractmethod
    def keys(self) -> list[str]:
        pass

    def get(self, key: str, default: Any = None) -> Any:
        raw = self._read(key)
        if raw is None:
            return default
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("local_store_corrupt_value", key=key)
            return default

    def set(self, key: str, value: Any) -> None:
        self._write(key, json.dumps(value, ensure_ascii=False))

    def __contains__(self, key: str) -> bool:
        return self._read(key) is not None


class MemoryLocalStore(LocalStore):
    """Process-local store, for tests and ephemeral sessions."""

    def __init__(self):
        self._data: dict[str, str] = {}

    def _read(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def _write(self, key: str, raw: str) -> None:
        self._data[key] = raw

    def remove(self, key: str) -> None:
        self._data.pop(key, None)

    def clear(self) -> None:
        self._data.clear()

    def keys(self) -> list[str]:
        return list(self._data)


class JsonFileLocalStore(LocalStore):
    """
    Store persisted to a single JSON file.

    The file is rewritten atomically (temp file + ``os.replace``) after
    every change. A missing or corrupt file starts an empty store.
    """

    def __init__(self, path: Path):
        self._path = Path(path)
        self._data: dict[str, str] = self._load()

    def _load(self) -> dict[str, str]:
        try:
            with open(self._path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            return {}
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("local_store_unreadable", path=str(self._path), error=str(e))
            return {}
        if not isinstance(data, dict):
            return {}
        return {str(k): v for k, v in data.items() if isinstance(v, str)}

    def _flush(self) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self._path.with_suffix(".tmp")
        try:
            with open(tmp, "w", encoding="utf-8") as f:
                json.dump(self._data, f, ensure_ascii=False)
            os.replace(tmp, self._path)
        except OSError:
            tmp.unlink(missing_ok=True)
            raise

    def _read(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def _write(self, key: str, raw: str) -> None:
        self._data[key] = raw
        self._flush()

    def remove(self, key: str) -> None:
        if self._data.pop(key, None) is not None:
            self._flush()

    def clear(self) -> None:
        self._data.clear()
        self._flush()

    def keys(self) -> list[str]:
        return list(self._data)
