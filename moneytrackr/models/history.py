"""
History Models for MoneyTrackr

Every mutation of a transaction, goal or the settings is recorded as a
DataSnapshot. Snapshots are append-only: the model is frozen and nothing
in the system updates a stored snapshot row.

Restore points (backups) capture the whole local state at one moment.
"""

import json
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import ConfigDict, Field, field_validator

from moneytrackr.models.base import CamelModel, ensure_utc, utc_now


class SnapshotOperation(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    BULK_UPDATE = "bulk_update"


class EntityType(str, Enum):
    TRANSACTION = "transaction"
    GOAL = "goal"
    SETTINGS = "settings"
    FULL_BACKUP = "full_backup"


class SyncStatus(str, Enum):
    """State of the history store's connection to the remote backend."""
    IDLE = "idle"
    SYNCING = "syncing"
    ERROR = "error"


class SnapshotSyncStatus(str, Enum):
    """Delivery status recorded on a single snapshot."""
    PENDING = "pending"
    SYNCED = "synced"
    FAILED = "failed"


class DeviceInfo(CamelModel):
    model_config = ConfigDict(frozen=True)

    user_agent: str
    platform: str
    session_id: str


class SnapshotMetadata(CamelModel):
    model_config = ConfigDict(frozen=True)

    size: int = Field(..., ge=0, description="UTF-8 byte length of the serialized payload")
    checksum: str = Field(
        ...,
        description="Non-cryptographic rolling hash of the payload, for integrity display only"
    )
    sync_status: SnapshotSyncStatus = SnapshotSyncStatus.SYNCED


class DataSnapshot(CamelModel):
    """
    One entry of the audit trail.

    ``entity_id`` is a soft reference to a transaction or goal id. It may
    be absent (settings, full backups) and may dangle once the entity has
    been deleted.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    user_id: str
    timestamp: datetime = Field(default_factory=utc_now)
    version: int = Field(..., description="Epoch milliseconds at creation")
    operation: SnapshotOperation
    entity_type: EntityType
    entity_id: Optional[str] = None
    previous_data: Optional[Any] = None
    new_data: Optional[Any] = None
    change_description: str
    device_info: DeviceInfo
    metadata: SnapshotMetadata

    @field_validator('timestamp')
    @classmethod
    def normalize_timestamp(cls, v: datetime) -> datetime:
        return ensure_utc(v)

    def matches_text(self, needle: str) -> bool:
        """Case-insensitive substring match on description and payload."""
        needle = needle.lower()
        return (
            needle in self.change_description.lower()
            or needle in json.dumps(self.new_data, ensure_ascii=False).lower()
        )


class DataRestorePoint(CamelModel):
    """A backup listing entry. The captured payload stays in the backend row."""

    id: str
    timestamp: datetime = Field(default_factory=utc_now)
    description: str
    data_size: int = Field(..., ge=0)
    version: int
    is_auto_backup: bool = False

    @field_validator('timestamp')
    @classmethod
    def normalize_timestamp(cls, v: datetime) -> datetime:
        return ensure_utc(v)


class HistoryFilter(CamelModel):
    """Criteria shared by remote history queries and in-memory filtering."""

    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    entity_type: Optional[EntityType] = None
    operation: Optional[SnapshotOperation] = None
    entity_id: Optional[str] = None
    search_query: Optional[str] = None

    @field_validator('start_date', 'end_date')
    @classmethod
    def normalize_bounds(cls, v: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(v) if v else v

    def matches(self, snapshot: DataSnapshot) -> bool:
        if self.start_date and snapshot.timestamp < self.start_date:
            return False
        if self.end_date and snapshot.timestamp > self.end_date:
            return False
        if self.entity_type and snapshot.entity_type != self.entity_type:
            return False
        if self.operation and snapshot.operation != self.operation:
            return False
        if self.entity_id and snapshot.entity_id != self.entity_id:
            return False
        if self.search_query and not snapshot.matches_text(self.search_query):
            return False
        return True


class StorageStats(CamelModel):
    used: int = 0
    quota: int
    breakdown: dict[str, int] = Field(default_factory=dict)
