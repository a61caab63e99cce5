"""
Finance Data Store

Owns the in-memory transactions, goals and settings of one session and
persists every change either to the remote backend or, when no
authenticated session or configured backend exists, to the local store.

The local keys always hold the complete state of the session. A remote
load writes every row of the user to them, and each mutation is merged
into the stored list by id. ``transactions`` in memory is only the
loaded pages, so it is never written back wholesale. The history store
reads (and restores into) those same keys.

Failure semantics:
    Remote path: the backend call happens first. On failure ``error`` is
    set, the failure is logged and a StorageError propagates; in-memory
    state is untouched.
    Local path: in-memory state changes first, then the mirror is
    written. A failed local write is not rolled back.
"""

import time
from dataclasses import dataclass
from datetime import date
from typing import Any, Awaitable, Callable, Optional, TypeVar

import structlog
from pydantic import ValidationError

from moneytrackr.models.base import CamelModel, utc_now
from moneytrackr.models.finance import (
    Goal,
    GoalCreate,
    GoalStatus,
    GoalUpdate,
    ProfileSettings,
    SettingsUpdate,
    Transaction,
    TransactionCreate,
    TransactionUpdate,
    UserSettings,
    merge_settings,
)
from moneytrackr.models.history import EntityType, SnapshotOperation
from moneytrackr.session import UserSession
from moneytrackr.services.storage.interface import (
    GOALS_TABLE,
    SETTINGS_TABLE,
    TRANSACTIONS_TABLE,
    NotFoundError,
    PersistenceBackend,
    StorageError,
    desc,
    eq,
)
from moneytrackr.services.storage.local import (
    GOALS_ENTITY,
    SETTINGS_ENTITY,
    TRANSACTIONS_ENTITY,
    LocalStore,
    storage_key,
)
from moneytrackr.store import analytics


logger = structlog.get_logger(__name__)

T = TypeVar("T")

DEFAULT_PAGE_SIZE = 50

_TRANSACTION_ORDER = [desc("date"), desc("time"), desc("id")]

MutationListener = Callable[
    [SnapshotOperation, EntityType, Optional[str], Any],
    Awaitable[None],
]


class GoalStateError(ValueError):
    """Illegal goal status transition."""
    pass


@dataclass(frozen=True)
class _Collection:
    """Where one entity list lives: remote table, local key and model."""

    table: str
    entity: str
    entity_type: EntityType
    model: type


_TRANSACTIONS = _Collection(TRANSACTIONS_TABLE, TRANSACTIONS_ENTITY, EntityType.TRANSACTION, Transaction)
_GOALS = _Collection(GOALS_TABLE, GOALS_ENTITY, EntityType.GOAL, Goal)


def _transaction_sort_key(t: Transaction) -> tuple:
    return (t.date, t.time, t.id)


class FinanceStore:
    """
    Transactions, goals and settings for the current session.

    Construct once per application session, then call ``initialize()``
    (or ``set_session()`` whenever the signed-in user changes).
    """

    def __init__(
        self,
        local_store: LocalStore,
        backend: Optional[PersistenceBackend] = None,
        session: Optional[UserSession] = None,
        page_size: int = DEFAULT_PAGE_SIZE,
        default_currency: str = "USD",
    ):
        self._local = local_store
        self._backend = backend
        self.session = session or UserSession.anonymous()
        self.page_size = page_size
        self.default_currency = default_currency

        self.transactions: list[Transaction] = []
        self.goals: list[Goal] = []
        self.settings = self._default_settings()
        self.error: Optional[str] = None
        self.loading = False
        self.has_more_transactions = False

        self._listeners: list[MutationListener] = []
        self._last_local_id = 0

    # =========================================================================
    # SESSION / LOADING
    # =========================================================================

    @property
    def user_id(self) -> Optional[str]:
        return self.session.user_id

    @property
    def uses_remote(self) -> bool:
        """True when writes go to the backend rather than the local store."""
        return self._backend is not None and self.session.is_authenticated

    def add_listener(self, listener: MutationListener) -> None:
        """Register a coroutine called after every successful mutation."""
        self._listeners.append(listener)

    async def set_session(self, session: UserSession) -> None:
        self.session = session
        await self.initialize()

    async def initialize(self) -> None:
        """
        Load the session's data.

        Remote first when possible; any remote failure falls back to the
        local mirror so the store is always usable.
        """
        self.loading = True
        self.error = None
        try:
            if self.uses_remote:
                try:
                    await self._load_remote()
                    logger.info(
                        "finance_data_loaded",
                        source="remote",
                        user_id=self.user_id,
                        transactions=len(self.transactions),
                        goals=len(self.goals),
                    )
                    return
                except Exception as e:
                    logger.warning(
                        "remote_load_failed_using_local",
                        user_id=self.user_id,
                        error=str(e),
                    )
            self._load_local()
            logger.info(
                "finance_data_loaded",
                source="local",
                user_id=self.user_id,
                transactions=len(self.transactions),
                goals=len(self.goals),
            )
        finally:
            self.loading = False

    async def _load_remote(self) -> None:
        owner = [eq("user_id", self.user_id)]
        settings = await self._fetch_settings()
        goal_rows = await self._backend.select(GOALS_TABLE, owner, order=[desc("created_at")])
        transaction_rows = await self._backend.select(TRANSACTIONS_TABLE, owner, order=_TRANSACTION_ORDER)

        self.settings = settings
        self.goals = [Goal.model_validate(row) for row in goal_rows]
        self._mirror_all([Transaction.model_validate(row) for row in transaction_rows])
        await self.load_transactions(0)

    async def _fetch_settings(self) -> UserSettings:
        rows = await self._backend.select(SETTINGS_TABLE, [eq("user_id", self.user_id)])
        if rows:
            return UserSettings.model_validate(rows[0])

        settings = self._default_settings()
        await self._backend.insert(SETTINGS_TABLE, {"user_id": self.user_id, **settings.to_row()})
        logger.info("default_settings_created", user_id=self.user_id)
        return settings

    def _default_settings(self) -> UserSettings:
        return UserSettings(profile=ProfileSettings(currency=self.default_currency))

    def _load_local(self) -> None:
        self.transactions = sorted(
            self._read_local_list(_TRANSACTIONS),
            key=_transaction_sort_key,
            reverse=True,
        )
        self.goals = self._read_local_list(_GOALS)

        raw_settings = self._local.get(self._key(SETTINGS_ENTITY))
        try:
            self.settings = UserSettings.model_validate(raw_settings) if raw_settings else self._default_settings()
        except ValidationError as e:
            logger.warning("local_settings_invalid", error=str(e))
            self.settings = self._default_settings()
        self.has_more_transactions = False

    def _read_local_list(self, collection: _Collection) -> list:
        items = []
        for raw in self._local.get(self._key(collection.entity), []):
            try:
                items.append(collection.model.model_validate(raw))
            except ValidationError as e:
                # Skip malformed entries
                logger.warning("local_entry_invalid", entity=collection.entity, error=str(e))
        return items

    async def reload_from_local(self) -> None:
        """
        Drop all cached state and re-read it from the local mirror.

        Used after a restore rewrote the local keys. With a remote
        session the restored state then replaces the user's rows.
        """
        self.transactions = []
        self.goals = []
        self.settings = self._default_settings()
        self._load_local()

        if self.uses_remote:
            await self._remote("push restored data", self._replace_remote_state())
        logger.info("finance_data_reloaded", user_id=self.user_id, pushed=self.uses_remote)

    async def _replace_remote_state(self) -> None:
        # Rows are matched by id: kept rows are rewritten in place and
        # only rows missing from the restored state are deleted.
        await self._replace_remote_rows(_TRANSACTIONS, self.transactions)
        await self._replace_remote_rows(_GOALS, self.goals)
        await self._save_remote_settings(self.settings)

    async def _replace_remote_rows(self, collection: _Collection, items: list) -> None:
        owner = [eq("user_id", self.user_id)]
        restored = {item.id for item in items}

        for row in await self._backend.select(collection.table, owner):
            if row.get("id") not in restored:
                await self._backend.delete(collection.table, [eq("id", row["id"]), *owner])

        for item in items:
            row = {**item.to_row(), "user_id": self.user_id}
            matched = await self._backend.update(collection.table, [eq("id", item.id), *owner], row)
            if matched == 0:
                await self._backend.insert(collection.table, row)

        logger.debug("remote_rows_replaced", entity=collection.entity, count=len(items))

    # =========================================================================
    # INTERNALS
    # =========================================================================

    def _key(self, entity: str) -> str:
        return storage_key(entity, self.user_id)

    def _mirror_all(self, transactions: list[Transaction]) -> None:
        """Overwrite the local keys with a complete state."""
        self._local.set(self._key(TRANSACTIONS_ENTITY), [t.to_local() for t in transactions])
        self._local.set(self._key(GOALS_ENTITY), [g.to_local() for g in self.goals])
        self._mirror_settings()

    def _mirror_settings(self) -> None:
        self._local.set(self._key(SETTINGS_ENTITY), self.settings.to_local())

    def _mirror_item(self, collection: _Collection, item: Any = None, removed_id: Optional[str] = None) -> None:
        """Merge one created, updated or removed entity into the stored list."""
        key = self._key(collection.entity)
        stored = self._local.get(key, [])

        if removed_id is not None:
            stored = [raw for raw in stored if raw.get("id") != removed_id]
        else:
            index = next((n for n, raw in enumerate(stored) if raw.get("id") == item.id), None)
            if index is None:
                stored.insert(0, item.to_local())
            else:
                stored[index] = item.to_local()

        self._local.set(key, stored)

    def _find_local(self, collection: _Collection, entity_id: str) -> Any:
        return next((i for i in self._read_local_list(collection) if i.id == entity_id), None)

    def _next_local_id(self) -> str:
        """Millisecond timestamp id, bumped to stay strictly increasing."""
        now_ms = int(time.time() * 1000)
        self._last_local_id = max(now_ms, self._last_local_id + 1)
        return str(self._last_local_id)

    async def _remote(self, action: str, operation: Awaitable[T]) -> T:
        """Await a backend operation, recording and wrapping any failure."""
        try:
            return await operation
        except Exception as e:
            self.error = f"Failed to {action}: {e}"
            logger.error("remote_operation_failed", action=action, user_id=self.user_id, error=str(e))
            if isinstance(e, StorageError):
                raise
            raise StorageError(self.error) from e

    async def _notify(
        self,
        operation: SnapshotOperation,
        entity_type: EntityType,
        entity_id: Optional[str],
        data: Any,
    ) -> None:
        for listener in self._listeners:
            try:
                await listener(operation, entity_type, entity_id, data)
            except Exception as e:
                logger.error(
                    "mutation_listener_failed",
                    operation=operation.value,
                    entity_type=entity_type.value,
                    entity_id=entity_id,
                    error=str(e),
                )

    def _items(self, collection: _Collection) -> list:
        return self.transactions if collection is _TRANSACTIONS else self.goals

    def _set_items(self, collection: _Collection, items: list) -> None:
        if collection is _TRANSACTIONS:
            self.transactions = items
        else:
            self.goals = items

    def _not_found(self, collection: _Collection, entity_id: str) -> NotFoundError:
        self.error = f"{collection.entity_type.value.capitalize()} not found: {entity_id}"
        logger.warning("entity_not_found", entity=collection.entity, entity_id=entity_id, user_id=self.user_id)
        return NotFoundError(self.error)

    async def _create(self, collection: _Collection, fields: dict) -> Any:
        if self.uses_remote:
            row = await self._remote(
                f"add {collection.entity_type.value}",
                self._backend.insert(collection.table, {**fields, "user_id": self.user_id}),
            )
            item = collection.model.model_validate(row)
        else:
            item = collection.model.model_validate({**fields, "id": self._next_local_id()})

        self._set_items(collection, [item] + self._items(collection))
        self._mirror_item(collection, item)
        logger.info(
            "entity_created",
            entity=collection.entity,
            entity_id=item.id,
            source="remote" if self.uses_remote else "local",
        )
        await self._notify(SnapshotOperation.CREATE, collection.entity_type, item.id, item.to_local())
        return item

    async def _update(self, collection: _Collection, entity_id: str, patch: CamelModel) -> Any:
        changes = patch.model_dump(mode="json", exclude_unset=True)
        current = next((i for i in self._items(collection) if i.id == entity_id), None)

        if self.uses_remote:
            owned = [eq("id", entity_id), eq("user_id", self.user_id)]
            if current is None:
                rows = await self._remote(
                    f"update {collection.entity_type.value}",
                    self._backend.select(collection.table, owned),
                )
                if not rows:
                    raise self._not_found(collection, entity_id)
                current = collection.model.model_validate(rows[0])

            updated = collection.model.model_validate({**current.to_row(), **changes})
            matched = await self._remote(
                f"update {collection.entity_type.value}",
                self._backend.update(collection.table, owned, changes),
            )
            if matched == 0:
                raise self._not_found(collection, entity_id)
        else:
            if current is None:
                # Not in the loaded pages
                current = self._find_local(collection, entity_id)
            if current is None:
                raise self._not_found(collection, entity_id)
            updated = collection.model.model_validate({**current.to_row(), **changes})

        self._set_items(
            collection,
            [updated if i.id == entity_id else i for i in self._items(collection)],
        )
        self._mirror_item(collection, updated)
        logger.info("entity_updated", entity=collection.entity, entity_id=entity_id, fields=sorted(changes))
        await self._notify(SnapshotOperation.UPDATE, collection.entity_type, entity_id, updated.to_local())
        return updated

    async def _delete(self, collection: _Collection, entity_id: str) -> bool:
        existing = next((i for i in self._items(collection) if i.id == entity_id), None)
        if existing is None:
            existing = self._find_local(collection, entity_id)

        deleted = 0
        if self.uses_remote:
            deleted = await self._remote(
                f"delete {collection.entity_type.value}",
                self._backend.delete(
                    collection.table,
                    [eq("id", entity_id), eq("user_id", self.user_id)],
                ),
            )

        if existing is None and deleted == 0:
            logger.debug("delete_of_unknown_entity", entity=collection.entity, entity_id=entity_id)
            return False

        self._set_items(collection, [i for i in self._items(collection) if i.id != entity_id])
        self._mirror_item(collection, removed_id=entity_id)
        logger.info("entity_deleted", entity=collection.entity, entity_id=entity_id)
        await self._notify(
            SnapshotOperation.DELETE,
            collection.entity_type,
            entity_id,
            existing.to_local() if existing else None,
        )
        return True

    # =========================================================================
    # TRANSACTIONS
    # =========================================================================

    async def add_transaction(self, fields: TransactionCreate) -> Transaction:
        """
        Record a transaction and put it at the head of the list.

        The currency defaults to the profile currency.
        """
        data = fields.to_row()
        data["currency"] = fields.currency or self.settings.profile.currency
        return await self._create(_TRANSACTIONS, data)

    async def update_transaction(self, transaction_id: str, patch: TransactionUpdate) -> Transaction:
        """
        Apply a partial update.

        Raises:
            NotFoundError: If the id is not in the current user's scope
        """
        return await self._update(_TRANSACTIONS, transaction_id, patch)

    async def delete_transaction(self, transaction_id: str) -> bool:
        """Delete by id. Unknown ids are a no-op returning False."""
        return await self._delete(_TRANSACTIONS, transaction_id)

    async def load_transactions(self, page: int = 0, page_size: Optional[int] = None) -> list[Transaction]:
        """
        Load one page ordered by date, time and id, newest first.

        Page 0 replaces the loaded list; later pages append to it.
        """
        page_size = page_size or self.page_size
        start = page * page_size
        end = start + page_size - 1

        if self.uses_remote:
            owner = [eq("user_id", self.user_id)]
            rows = await self._remote(
                "load transactions",
                self._backend.select(
                    TRANSACTIONS_TABLE,
                    owner,
                    order=_TRANSACTION_ORDER,
                    row_range=(start, end),
                ),
            )
            total = await self._remote("count transactions", self._backend.count(TRANSACTIONS_TABLE, owner))
            items = [Transaction.model_validate(row) for row in rows]
        else:
            ordered = sorted(self._read_local_list(_TRANSACTIONS), key=_transaction_sort_key, reverse=True)
            total = len(ordered)
            items = ordered[start:end + 1]

        if page == 0:
            self.transactions = items
        else:
            known = {t.id for t in self.transactions}
            self.transactions = self.transactions + [t for t in items if t.id not in known]

        self.has_more_transactions = start + len(items) < total
        logger.debug("transactions_page_loaded", page=page, count=len(items), total=total)
        return items

    # =========================================================================
    # GOALS
    # =========================================================================

    async def add_goal(self, fields: GoalCreate) -> Goal:
        data = fields.to_row()
        data["currency"] = fields.currency or self.settings.profile.currency
        data["created_at"] = utc_now().isoformat()
        return await self._create(_GOALS, data)

    async def update_goal(self, goal_id: str, patch: GoalUpdate) -> Goal:
        """
        Apply a partial update.

        Reaching or passing the target does not complete a goal; only
        ``complete_goal`` does.

        Raises:
            NotFoundError: If the id is not in the current user's scope
        """
        return await self._update(_GOALS, goal_id, patch)

    async def delete_goal(self, goal_id: str) -> bool:
        return await self._delete(_GOALS, goal_id)

    def _get_goal(self, goal_id: str) -> Goal:
        goal = next((g for g in self.goals if g.id == goal_id), None)
        if goal is None:
            raise self._not_found(_GOALS, goal_id)
        return goal

    async def toggle_goal_status(self, goal_id: str) -> Goal:
        """
        Pause an active goal or resume a paused one.

        Raises:
            GoalStateError: If the goal is already completed
        """
        goal = self._get_goal(goal_id)
        if goal.status == GoalStatus.COMPLETED:
            raise GoalStateError(f"Goal {goal_id} is completed and cannot be paused or resumed")

        new_status = GoalStatus.PAUSED if goal.status == GoalStatus.ACTIVE else GoalStatus.ACTIVE
        return await self.update_goal(goal_id, GoalUpdate(status=new_status))

    async def complete_goal(self, goal_id: str) -> Goal:
        """Mark a goal completed and fill it to its target."""
        goal = self._get_goal(goal_id)
        if goal.status == GoalStatus.COMPLETED:
            return goal
        return await self.update_goal(
            goal_id,
            GoalUpdate(status=GoalStatus.COMPLETED, current_amount=goal.target_amount),
        )

    # =========================================================================
    # SETTINGS
    # =========================================================================

    async def _save_remote_settings(self, settings: UserSettings) -> None:
        owner = [eq("user_id", self.user_id)]
        matched = await self._backend.update(SETTINGS_TABLE, owner, settings.to_row())
        if matched == 0:
            await self._backend.insert(SETTINGS_TABLE, {"user_id": self.user_id, **settings.to_row()})

    async def update_settings(self, patch: SettingsUpdate) -> UserSettings:
        """Merge a partial update group by group; omitted fields keep their values."""
        merged = merge_settings(self.settings, patch)

        if self.uses_remote:
            await self._remote("update settings", self._save_remote_settings(merged))

        self.settings = merged
        self._mirror_settings()
        logger.info("settings_updated", user_id=self.user_id)
        await self._notify(SnapshotOperation.UPDATE, EntityType.SETTINGS, None, merged.to_local())
        return merged

    def clear_error(self) -> None:
        self.error = None

    # =========================================================================
    # ANALYTICS
    # =========================================================================

    def get_total_income(self) -> float:
        return analytics.total_income(self.transactions)

    def get_total_expenses(self) -> float:
        return analytics.total_expenses(self.transactions)

    def get_net_worth(self) -> float:
        return analytics.net_worth(self.transactions)

    def get_category_totals(self) -> dict[str, float]:
        return analytics.category_totals(self.transactions)

    def get_largest_transaction_amount(self) -> float:
        return analytics.largest_transaction_amount(self.transactions)

    def get_unique_categories_count(self) -> int:
        return analytics.unique_categories_count(self.transactions)

    def get_total_transactions_count(self) -> int:
        return len(self.transactions)

    def get_daily_average_expense(self) -> float:
        return analytics.daily_average_expense(self.transactions)

    def get_recent_change(self, kind: analytics.ChangeKind, today: Optional[date] = None) -> analytics.RecentChange:
        return analytics.recent_change(self.transactions, kind, today)

    def get_goal_progress(self, goal: Goal, today: Optional[date] = None) -> analytics.GoalProgress:
        return analytics.goal_progress(goal, self.transactions, today)
