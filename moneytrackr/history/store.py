"""
Snapshot/History Store

Mirrors every finance mutation into an append-only ``data_snapshots``
table and manages restore points (backups) of the whole local state.

Snapshot rows are only ever inserted or deleted (retention cleanup);
nothing updates one. Restores rewrite the local finance keys and then
call the registered reload hooks so the finance store re-reads them.

Without an authenticated session, a configured backend, or while
offline, ``sync_to_cloud`` appends the change to an offline queue in the
local store. ``force_sync`` replays that queue.
"""

import uuid
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Optional, TypeVar

import structlog

from moneytrackr.history.integrity import (
    current_device_info,
    generate_checksum,
    payload_size,
)
from moneytrackr.models.base import ensure_utc, utc_now
from moneytrackr.models.history import (
    DataRestorePoint,
    DataSnapshot,
    DeviceInfo,
    EntityType,
    HistoryFilter,
    SnapshotMetadata,
    SnapshotOperation,
    StorageStats,
    SyncStatus,
)
from moneytrackr.session import UserSession
from moneytrackr.services.storage.interface import (
    RESTORE_POINTS_TABLE,
    SNAPSHOTS_TABLE,
    NotFoundError,
    PersistenceBackend,
    ProtectedBackupError,
    StorageError,
    desc,
    eq,
    gte,
    lt,
    lte,
    neq,
)
from moneytrackr.services.storage.local import (
    GOALS_ENTITY,
    SETTINGS_ENTITY,
    TRANSACTIONS_ENTITY,
    LocalStore,
    read_finance_state,
    storage_key,
    write_finance_state,
)


logger = structlog.get_logger(__name__)

T = TypeVar("T")

OFFLINE_QUEUE_KEY = "offline_sync_queue"

DEFAULT_STORAGE_QUOTA = 100 * 1024 * 1024
DEFAULT_CACHE_LIMIT = 100
DEFAULT_QUERY_LIMIT = 1000

ReloadHook = Callable[[], Awaitable[None]]

_ENTITY_KEYS = {
    EntityType.TRANSACTION: TRANSACTIONS_ENTITY,
    EntityType.GOAL: GOALS_ENTITY,
}


def _iso(value: datetime) -> str:
    """Fixed-width UTC ISO string so stored timestamps compare as text."""
    return ensure_utc(value).isoformat(timespec="microseconds")


def _version(now: datetime) -> int:
    return int(now.timestamp() * 1000)


class HistoryStore:
    """
    Audit trail, backups and restore for one session.

    Args:
        local_store: Holds the finance keys and the offline queue
        backend: Remote store; None keeps everything queued locally
        session: Whose history this is
        storage_quota: Bytes reported as the quota in storage stats
        cache_limit: Snapshots kept in ``data_history``
        query_limit: Maximum snapshots returned by ``get_data_history``
    """

    def __init__(
        self,
        local_store: LocalStore,
        backend: Optional[PersistenceBackend] = None,
        session: Optional[UserSession] = None,
        storage_quota: int = DEFAULT_STORAGE_QUOTA,
        cache_limit: int = DEFAULT_CACHE_LIMIT,
        query_limit: int = DEFAULT_QUERY_LIMIT,
        device_info: Optional[DeviceInfo] = None,
    ):
        self._local = local_store
        self._backend = backend
        self.session = session or UserSession.anonymous()
        self.storage_quota = storage_quota
        self._cache_limit = cache_limit
        self._query_limit = query_limit
        self._device_info = device_info or current_device_info()

        self.sync_status = SyncStatus.IDLE
        self.last_sync_time: Optional[datetime] = None
        self.data_history: list[DataSnapshot] = []
        self.restore_points: list[DataRestorePoint] = []
        self.storage_used = 0

        self._reload_hooks: list[ReloadHook] = []

    # =========================================================================
    # SESSION
    # =========================================================================

    @property
    def user_id(self) -> Optional[str]:
        return self.session.user_id

    @property
    def has_remote(self) -> bool:
        return self._backend is not None and self.session.is_authenticated

    @property
    def can_sync(self) -> bool:
        return self.has_remote and self.session.is_online

    def add_reload_hook(self, hook: ReloadHook) -> None:
        """Register a coroutine run after a restore rewrote the local state."""
        self._reload_hooks.append(hook)

    async def set_session(self, session: UserSession) -> None:
        self.session = session
        self.data_history = []
        self.restore_points = []
        self.storage_used = 0
        if self.has_remote:
            await self.refresh()

    async def refresh(self) -> None:
        """Reload history, restore points and storage stats from the backend."""
        await self.load_data_history()
        await self.load_restore_points()
        await self.get_storage_stats()

    def _require_remote(self, action: str) -> None:
        if not self.has_remote:
            raise StorageError(f"Cannot {action}: no authenticated session with a configured backend")

    def _owned(self, record_id: str) -> list:
        return [eq("id", record_id), eq("user_id", self.user_id)]

    async def _call(self, action: str, operation: Awaitable[T]) -> T:
        try:
            return await operation
        except Exception as e:
            logger.error("history_operation_failed", action=action, user_id=self.user_id, error=str(e))
            if isinstance(e, StorageError):
                raise
            raise StorageError(f"Failed to {action}: {e}") from e

    # =========================================================================
    # LOADING
    # =========================================================================

    async def load_data_history(self) -> list[DataSnapshot]:
        """Refresh the cache of the most recent snapshots. Failures are logged."""
        if not self.has_remote:
            return self.data_history
        try:
            rows = await self._backend.select(
                SNAPSHOTS_TABLE,
                [eq("user_id", self.user_id)],
                order=[desc("timestamp")],
                row_range=(0, self._cache_limit - 1),
            )
            self.data_history = [DataSnapshot.model_validate(row) for row in rows]
        except Exception as e:
            logger.error("history_load_failed", user_id=self.user_id, error=str(e))
        return self.data_history

    async def load_restore_points(self) -> list[DataRestorePoint]:
        """Refresh the restore point listing. Failures are logged."""
        if not self.has_remote:
            return self.restore_points
        try:
            rows = await self._backend.select(
                RESTORE_POINTS_TABLE,
                [eq("user_id", self.user_id)],
                order=[desc("timestamp")],
            )
            self.restore_points = [DataRestorePoint.model_validate(row) for row in rows]
        except Exception as e:
            logger.error("restore_points_load_failed", user_id=self.user_id, error=str(e))
        return self.restore_points

    # =========================================================================
    # SYNC
    # =========================================================================

    @property
    def offline_queue(self) -> list[dict]:
        return self._local.get(OFFLINE_QUEUE_KEY, [])

    def _queue_offline(
        self,
        data: Any,
        operation: SnapshotOperation,
        entity_type: EntityType,
        entity_id: Optional[str],
        description: Optional[str],
    ) -> None:
        queue = self.offline_queue
        queue.append({
            "data": data,
            "operation": operation.value,
            "entityType": entity_type.value,
            "entityId": entity_id,
            "description": description,
            "queuedAt": _iso(utc_now()),
        })
        self._local.set(OFFLINE_QUEUE_KEY, queue)
        logger.info(
            "sync_queued_offline",
            operation=operation.value,
            entity_type=entity_type.value,
            entity_id=entity_id,
            queue_length=len(queue),
        )

    async def _previous_data(self, entity_type: EntityType, entity_id: Optional[str]) -> Any:
        """``new_data`` of the latest snapshot of the same entity, if any."""
        if not entity_id:
            return None
        try:
            rows = await self._backend.select(
                SNAPSHOTS_TABLE,
                [
                    eq("user_id", self.user_id),
                    eq("entity_type", entity_type.value),
                    eq("entity_id", entity_id),
                ],
                order=[desc("timestamp")],
                row_range=(0, 0),
            )
        except Exception as e:
            logger.warning("previous_data_lookup_failed", entity_id=entity_id, error=str(e))
            return None
        return rows[0].get("new_data") if rows else None

    def _build_snapshot(
        self,
        data: Any,
        operation: SnapshotOperation,
        entity_type: EntityType,
        entity_id: Optional[str],
        description: Optional[str],
        previous_data: Any,
    ) -> DataSnapshot:
        now = utc_now()
        if not description:
            description = f"{operation.value} {entity_type.value}"
            if entity_id:
                description += f" ({entity_id})"

        return DataSnapshot(
            id=str(uuid.uuid4()),
            user_id=self.user_id,
            timestamp=now,
            version=_version(now),
            operation=operation,
            entity_type=entity_type,
            entity_id=entity_id,
            previous_data=previous_data,
            new_data=data,
            change_description=description,
            device_info=self._device_info,
            metadata=SnapshotMetadata(
                size=payload_size(data),
                checksum=generate_checksum(data),
            ),
        )

    async def sync_to_cloud(
        self,
        data: Any,
        operation: SnapshotOperation,
        entity_type: EntityType,
        entity_id: Optional[str] = None,
        description: Optional[str] = None,
    ) -> Optional[DataSnapshot]:
        """
        Record one change as a snapshot.

        Returns:
            The stored snapshot, or None when the change was queued offline

        Raises:
            StorageError: If the backend rejects the snapshot
        """
        if not self.can_sync:
            self._queue_offline(data, operation, entity_type, entity_id, description)
            return None

        self.sync_status = SyncStatus.SYNCING
        try:
            previous = None
            if operation == SnapshotOperation.UPDATE:
                previous = await self._previous_data(entity_type, entity_id)
            snapshot = self._build_snapshot(data, operation, entity_type, entity_id, description, previous)

            row = snapshot.to_row()
            row["timestamp"] = _iso(snapshot.timestamp)
            await self._backend.insert(SNAPSHOTS_TABLE, row)
        except Exception as e:
            self.sync_status = SyncStatus.ERROR
            logger.error(
                "sync_failed",
                operation=operation.value,
                entity_type=entity_type.value,
                entity_id=entity_id,
                error=str(e),
            )
            if isinstance(e, StorageError):
                raise
            raise StorageError(f"Failed to sync {entity_type.value}: {e}") from e

        self.last_sync_time = utc_now()
        self.sync_status = SyncStatus.IDLE
        logger.info(
            "snapshot_recorded",
            snapshot_id=snapshot.id,
            operation=operation.value,
            entity_type=entity_type.value,
            size=snapshot.metadata.size,
        )

        await self.get_storage_stats()
        await self.load_data_history()
        return snapshot

    async def record_mutation(
        self,
        operation: SnapshotOperation,
        entity_type: EntityType,
        entity_id: Optional[str],
        data: Any,
    ) -> None:
        """Finance store listener: snapshot one mutation."""
        await self.sync_to_cloud(data, operation, entity_type, entity_id)

    async def force_sync(self) -> bool:
        """
        Replay the offline queue, then snapshot the whole local state.

        Entries that fail to replay stay queued. Errors are logged, not
        raised.

        Returns:
            True when the queue drained and the full sync was recorded
        """
        if not self.can_sync:
            logger.info("force_sync_skipped", user_id=self.user_id, online=self.session.is_online)
            return False

        try:
            queue = self.offline_queue
            self._local.set(OFFLINE_QUEUE_KEY, [])

            failed = []
            for entry in queue:
                try:
                    await self.sync_to_cloud(
                        entry.get("data"),
                        SnapshotOperation(entry["operation"]),
                        EntityType(entry["entityType"]),
                        entry.get("entityId"),
                        entry.get("description"),
                    )
                except Exception as e:
                    logger.warning("offline_entry_replay_failed", queued_at=entry.get("queuedAt"), error=str(e))
                    failed.append(entry)

            if failed:
                self._local.set(OFFLINE_QUEUE_KEY, failed + self.offline_queue)

            await self.sync_to_cloud(
                read_finance_state(self._local, self.user_id),
                SnapshotOperation.BULK_UPDATE,
                EntityType.FULL_BACKUP,
                description="Full sync",
            )
            logger.info("force_sync_completed", replayed=len(queue) - len(failed), failed=len(failed))
            return not failed
        except Exception as e:
            logger.error("force_sync_failed", user_id=self.user_id, error=str(e))
            return False

    # =========================================================================
    # HISTORY QUERIES
    # =========================================================================

    async def get_data_history(self, filters: Optional[HistoryFilter] = None) -> list[DataSnapshot]:
        """
        Query snapshots from the backend, newest first.

        Date, type, operation and entity filters run in the backend; the
        text search runs over the returned rows. Failures are logged and
        return an empty list.
        """
        if not self.has_remote:
            return []
        filters = filters or HistoryFilter()

        conditions = [eq("user_id", self.user_id)]
        if filters.start_date:
            conditions.append(gte("timestamp", _iso(filters.start_date)))
        if filters.end_date:
            conditions.append(lte("timestamp", _iso(filters.end_date)))
        if filters.entity_type:
            conditions.append(eq("entity_type", filters.entity_type.value))
        if filters.operation:
            conditions.append(eq("operation", filters.operation.value))
        if filters.entity_id:
            conditions.append(eq("entity_id", filters.entity_id))

        try:
            rows = await self._backend.select(
                SNAPSHOTS_TABLE,
                conditions,
                order=[desc("timestamp")],
                row_range=(0, self._query_limit - 1),
            )
        except Exception as e:
            logger.error("history_query_failed", user_id=self.user_id, error=str(e))
            return []

        snapshots = [DataSnapshot.model_validate(row) for row in rows]
        if filters.search_query:
            snapshots = [s for s in snapshots if s.matches_text(filters.search_query)]
        return snapshots

    def search_history(self, query: str) -> list[DataSnapshot]:
        """Search the cached history by description, payload or entity type."""
        needle = query.lower()
        return [
            s for s in self.data_history
            if s.matches_text(query) or needle in s.entity_type.value
        ]

    def filter_history(self, history_filter: HistoryFilter) -> list[DataSnapshot]:
        return [s for s in self.data_history if history_filter.matches(s)]

    # =========================================================================
    # BACKUPS
    # =========================================================================

    async def _insert_restore_point(
        self,
        description: str,
        is_auto_backup: bool,
        now: Optional[datetime] = None,
    ) -> DataRestorePoint:
        self._require_remote("create a backup")
        now = ensure_utc(now or utc_now())
        state = read_finance_state(self._local, self.user_id)

        point = DataRestorePoint(
            id=str(uuid.uuid4()),
            timestamp=now,
            description=description,
            data_size=payload_size(state),
            version=_version(now),
            is_auto_backup=is_auto_backup,
        )
        row = point.to_row()
        row.update(timestamp=_iso(now), user_id=self.user_id, data=state)

        await self._call("create backup", self._backend.insert(RESTORE_POINTS_TABLE, row))
        logger.info(
            "backup_created",
            backup_id=point.id,
            auto=is_auto_backup,
            size=point.data_size,
        )
        await self.load_restore_points()
        return point

    async def create_backup(self, description: Optional[str] = None) -> str:
        """
        Capture the whole local state.

        A backup created without a description is an automatic backup.

        Returns:
            The new backup id
        """
        label = description or f"Backup {utc_now():%Y-%m-%d %H:%M:%S}"
        point = await self._insert_restore_point(label, is_auto_backup=not description)
        return point.id

    async def create_restore_point(self, description: str) -> DataRestorePoint:
        """Named, user-created backup."""
        return await self._insert_restore_point(description, is_auto_backup=False)

    async def get_backups(self) -> list[DataRestorePoint]:
        return list(await self.load_restore_points())

    async def ensure_daily_backup(self, now: Optional[datetime] = None) -> Optional[str]:
        """
        Create today's automatic backup unless one exists.

        Days are UTC calendar days.

        Returns:
            The new backup id, or None when no backup was needed or possible
        """
        if not self.has_remote:
            return None

        now = ensure_utc(now or utc_now())
        await self.load_restore_points()
        autos = [rp for rp in self.restore_points if rp.is_auto_backup]
        latest = max(autos, key=lambda rp: rp.timestamp, default=None)
        if latest and latest.timestamp.date() == now.date():
            return None

        point = await self._insert_restore_point(
            f"Auto-backup {now.date().isoformat()}",
            is_auto_backup=True,
            now=now,
        )
        return point.id

    async def delete_backup(self, backup_id: str) -> None:
        """
        Permanently delete a user-created backup.

        Raises:
            NotFoundError: If the backup does not exist for this user
            ProtectedBackupError: If it is an automatic backup
        """
        self._require_remote("delete a backup")
        rows = await self._call(
            "delete backup",
            self._backend.select(RESTORE_POINTS_TABLE, self._owned(backup_id)),
        )
        if not rows:
            raise NotFoundError(f"Backup not found: {backup_id}")
        if rows[0].get("is_auto_backup"):
            raise ProtectedBackupError(f"Automatic backup {backup_id} cannot be deleted")

        await self._call("delete backup", self._backend.delete(RESTORE_POINTS_TABLE, self._owned(backup_id)))
        logger.info("backup_deleted", backup_id=backup_id)
        await self.load_restore_points()

    # =========================================================================
    # RESTORE
    # =========================================================================

    async def _reload(self) -> None:
        for hook in self._reload_hooks:
            await hook()

    async def restore_from_backup(self, backup_id: str) -> None:
        """
        Overwrite the local finance state with a backup, then reload.

        Raises:
            NotFoundError: If the backup does not exist for this user
        """
        self._require_remote("restore a backup")
        rows = await self._call(
            "restore backup",
            self._backend.select(RESTORE_POINTS_TABLE, self._owned(backup_id)),
        )
        if not rows:
            raise NotFoundError(f"Backup not found: {backup_id}")
        row = rows[0]

        write_finance_state(self._local, row.get("data") or {}, self.user_id)
        logger.info("backup_restored", backup_id=backup_id)

        await self.sync_to_cloud(
            {"restoredFromBackup": backup_id, "timestamp": row.get("timestamp")},
            SnapshotOperation.UPDATE,
            EntityType.FULL_BACKUP,
            description=f"Restored from backup: {row.get('description', '')}",
        )
        await self._reload()

    def _apply_snapshot(self, snapshot: DataSnapshot) -> None:
        if snapshot.entity_type == EntityType.FULL_BACKUP:
            if isinstance(snapshot.new_data, dict):
                write_finance_state(self._local, snapshot.new_data, self.user_id)
            return

        if snapshot.entity_type == EntityType.SETTINGS:
            if snapshot.new_data is not None:
                self._local.set(storage_key(SETTINGS_ENTITY, self.user_id), snapshot.new_data)
            return

        key = storage_key(_ENTITY_KEYS[snapshot.entity_type], self.user_id)
        items = self._local.get(key, [])
        if snapshot.operation == SnapshotOperation.DELETE or snapshot.new_data is None:
            items = [i for i in items if i.get("id") != snapshot.entity_id]
        else:
            index = next((n for n, i in enumerate(items) if i.get("id") == snapshot.entity_id), None)
            if index is None:
                items.append(snapshot.new_data)
            else:
                items[index] = snapshot.new_data
        self._local.set(key, items)

    async def restore_from_snapshot(self, snapshot_id: str) -> None:
        """
        Restore the state a snapshot recorded.

        Full-backup snapshots overwrite the local state; entity snapshots
        replace or insert (or, for deletes, remove) one item; settings
        snapshots replace the settings object.

        Raises:
            NotFoundError: If the snapshot does not exist for this user
        """
        self._require_remote("restore a snapshot")
        rows = await self._call(
            "restore snapshot",
            self._backend.select(SNAPSHOTS_TABLE, self._owned(snapshot_id)),
        )
        if not rows:
            raise NotFoundError(f"Snapshot not found: {snapshot_id}")
        snapshot = DataSnapshot.model_validate(rows[0])

        self._apply_snapshot(snapshot)
        logger.info(
            "snapshot_restored",
            snapshot_id=snapshot_id,
            entity_type=snapshot.entity_type.value,
            entity_id=snapshot.entity_id,
        )

        await self.sync_to_cloud(
            {"restoredFrom": snapshot_id, "timestamp": _iso(snapshot.timestamp)},
            SnapshotOperation.UPDATE,
            EntityType.FULL_BACKUP,
            description=f"Restored from snapshot: {snapshot.change_description}",
        )
        await self._reload()

    # =========================================================================
    # STORAGE MANAGEMENT
    # =========================================================================

    async def get_storage_stats(self) -> StorageStats:
        """Bytes used by this user's snapshots, total and per entity type."""
        if not self.has_remote:
            return StorageStats(quota=self.storage_quota)
        try:
            rows = await self._backend.select(SNAPSHOTS_TABLE, [eq("user_id", self.user_id)])
        except Exception as e:
            logger.error("storage_stats_failed", user_id=self.user_id, error=str(e))
            return StorageStats(quota=self.storage_quota)

        breakdown: dict[str, int] = {}
        for row in rows:
            size = (row.get("metadata") or {}).get("size", 0)
            entity_type = row.get("entity_type", "unknown")
            breakdown[entity_type] = breakdown.get(entity_type, 0) + size

        self.storage_used = sum(breakdown.values())
        return StorageStats(used=self.storage_used, quota=self.storage_quota, breakdown=breakdown)

    async def cleanup_old_versions(self, older_than_days: int, now: Optional[datetime] = None) -> int:
        """
        Delete snapshots older than the cutoff. Full-backup snapshots are kept.

        Returns:
            Number of snapshots deleted
        """
        self._require_remote("clean up history")
        cutoff = ensure_utc(now or utc_now()) - timedelta(days=older_than_days)
        deleted = await self._call(
            "clean up history",
            self._backend.delete(
                SNAPSHOTS_TABLE,
                [
                    eq("user_id", self.user_id),
                    lt("timestamp", _iso(cutoff)),
                    neq("entity_type", EntityType.FULL_BACKUP.value),
                ],
            ),
        )
        logger.info("old_versions_cleaned", deleted=deleted, cutoff=_iso(cutoff))
        await self.load_data_history()
        await self.get_storage_stats()
        return deleted
