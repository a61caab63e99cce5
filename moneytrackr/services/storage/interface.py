"""
Abstract Persistence Interface

The stores talk to the remote backend through a deliberately small,
table-oriented contract: select / count / insert / update / delete with
simple column filters. Any backend (Google Sheets, a hosted Postgres, an
in-memory dict for tests) implements these five coroutines.

Rows are plain dicts keyed by snake_case column names whose values are
JSON-compatible. Backends return copies; mutating a returned row never
changes stored data.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable, Optional, Sequence


# Tables consumed by the stores
TRANSACTIONS_TABLE = "transactions"
GOALS_TABLE = "goals"
SETTINGS_TABLE = "user_settings"
SNAPSHOTS_TABLE = "data_snapshots"
RESTORE_POINTS_TABLE = "restore_points"
SECURITY_LOGS_TABLE = "security_logs"

ALL_TABLES = (
    TRANSACTIONS_TABLE,
    GOALS_TABLE,
    SETTINGS_TABLE,
    SNAPSHOTS_TABLE,
    RESTORE_POINTS_TABLE,
    SECURITY_LOGS_TABLE,
)


class FilterOp(str, Enum):
    EQ = "eq"
    NEQ = "neq"
    LT = "lt"
    LTE = "lte"
    GT = "gt"
    GTE = "gte"


@dataclass(frozen=True)
class Filter:
    """A single ``column <op> value`` condition. Filters are ANDed."""

    column: str
    op: FilterOp
    value: Any

    def matches(self, row: dict) -> bool:
        actual = row.get(self.column)
        if self.op is FilterOp.EQ:
            return actual == self.value
        if self.op is FilterOp.NEQ:
            return actual != self.value
        if actual is None:
            return False
        if self.op is FilterOp.LT:
            return actual < self.value
        if self.op is FilterOp.LTE:
            return actual <= self.value
        if self.op is FilterOp.GT:
            return actual > self.value
        return actual >= self.value


@dataclass(frozen=True)
class Order:
    column: str
    descending: bool = False


def eq(column: str, value: Any) -> Filter:
    return Filter(column, FilterOp.EQ, value)


def neq(column: str, value: Any) -> Filter:
    return Filter(column, FilterOp.NEQ, value)


def lt(column: str, value: Any) -> Filter:
    return Filter(column, FilterOp.LT, value)


def lte(column: str, value: Any) -> Filter:
    return Filter(column, FilterOp.LTE, value)


def gte(column: str, value: Any) -> Filter:
    return Filter(column, FilterOp.GTE, value)


def desc(column: str) -> Order:
    return Order(column, descending=True)


def asc(column: str) -> Order:
    return Order(column)


def apply_query(
    rows: Iterable[dict],
    filters: Sequence[Filter] = (),
    order: Sequence[Order] = (),
    row_range: Optional[tuple[int, int]] = None,
) -> list[dict]:
    """
    Filter, sort and slice rows in Python.

    ``row_range`` is an inclusive ``(start, end)`` pair of positions in
    the ordered result. Sorting applies the orderings last-to-first so
    the first ordering is the primary key; missing values sort first.
    """
    result = [row for row in rows if all(f.matches(row) for f in filters)]

    for ordering in reversed(order):
        result.sort(
            key=lambda r: (r.get(ordering.column) is not None, r.get(ordering.column)),
            reverse=ordering.descending,
        )

    if row_range is not None:
        start, end = row_range
        result = result[start:end + 1]

    return result


class PersistenceBackend(ABC):
    """
    Abstract interface for the remote store.

    Any implementation (Google Sheets, PostgreSQL, in-memory) must
    implement these methods. Implementations raise StorageError (or a
    subclass) on failure; they never return partial results silently.
    """

    @abstractmethod
    async def select(
        self,
        table: str,
        filters: Sequence[Filter] = (),
        order: Sequence[Order] = (),
        row_range: Optional[tuple[int, int]] = None,
    ) -> list[dict]:
        """
        Read rows.

        Args:
            table: Table name
            filters: Conditions every returned row satisfies
            order: Orderings, primary first
            row_range: Inclusive (start, end) slice of the ordered result

        Returns:
            Matching rows as dicts

        Raises:
            StorageError: If the read fails
        """
        pass

    @abstractmethod
    async def count(self, table: str, filters: Sequence[Filter] = ()) -> int:
        """Number of rows matching all filters."""
        pass

    @abstractmethod
    async def insert(self, table: str, row: dict) -> dict:
        """
        Insert a row.

        The backend assigns ``id`` when the row has none.

        Returns:
            The stored row, including its id
        """
        pass

    @abstractmethod
    async def update(self, table: str, filters: Sequence[Filter], patch: dict) -> int:
        """
        Apply ``patch`` to every row matching ``filters``.

        Returns:
            Number of rows updated (0 when nothing matched)
        """
        pass

    @abstractmethod
    async def delete(self, table: str, filters: Sequence[Filter]) -> int:
        """
        Delete every row matching ``filters``.

        Returns:
            Number of rows deleted
        """
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in the current user's scope."""
    pass


class BackendConnectionError(StorageError):
    """Could not connect to the storage backend."""
    pass


class ProtectedBackupError(StorageError):
    """Attempted to delete an automatic backup."""
    pass
