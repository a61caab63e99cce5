"""
In-memory backend.

Keeps every table as a list of dicts in process memory. Used for tests
and for running the application against a throwaway remote store.
"""

import copy
from typing import Optional, Sequence
from uuid import uuid4

from moneytrackr.services.storage.interface import (
    Filter,
    Order,
    PersistenceBackend,
    apply_query,
)


class InMemoryBackend(PersistenceBackend):
    """Dict-of-lists implementation of the persistence contract."""

    def __init__(self):
        self._tables: dict[str, list[dict]] = {}

    def _table(self, table: str) -> list[dict]:
        return self._tables.setdefault(table, [])

    def rows(self, table: str) -> list[dict]:
        """Copy of every stored row, in insertion order."""
        return copy.deepcopy(self._table(table))

    async def select(
        self,
        table: str,
        filters: Sequence[Filter] = (),
        order: Sequence[Order] = (),
        row_range: Optional[tuple[int, int]] = None,
    ) -> list[dict]:
        return copy.deepcopy(apply_query(self._table(table), filters, order, row_range))

    async def count(self, table: str, filters: Sequence[Filter] = ()) -> int:
        return len(apply_query(self._table(table), filters))

    async def insert(self, table: str, row: dict) -> dict:
        stored = copy.deepcopy(row)
        if not stored.get("id"):
            stored["id"] = str(uuid4())
        self._table(table).append(stored)
        return copy.deepcopy(stored)

    async def update(self, table: str, filters: Sequence[Filter], patch: dict) -> int:
        updated = 0
        for row in self._table(table):
            if all(f.matches(row) for f in filters):
                row.update(copy.deepcopy(patch))
                updated += 1
        return updated

    async def delete(self, table: str, filters: Sequence[Filter]) -> int:
        rows = self._table(table)
        kept = [row for row in rows if not all(f.matches(row) for f in filters)]
        deleted = len(rows) - len(kept)
        self._tables[table] = kept
        return deleted
