"""
Data Models Package

This package contains all Pydantic models used in MoneyTrackr.
All data flowing through the stores must conform to these schemas.
"""

from moneytrackr.models.account import (
    DataRequest,
    DataRequestStatus,
    DataRequestType,
    Notification,
    NotificationType,
    PrivacySettings,
    PrivacySettingsUpdate,
)
from moneytrackr.models.audit import (
    PasswordStrength,
    SecurityEventType,
    SecurityLogEntry,
    SecuritySettings,
)
from moneytrackr.models.finance import (
    EXPENSE_CATEGORIES,
    INCOME_CATEGORIES,
    AppearanceSettings,
    AppearanceUpdate,
    FontSize,
    Goal,
    GoalCategory,
    GoalCreate,
    GoalPriority,
    GoalStatus,
    GoalUpdate,
    Layout,
    NotificationPreferences,
    NotificationPreferencesUpdate,
    PrivacyPreferences,
    PrivacyPreferencesUpdate,
    ProfileSettings,
    ProfileUpdate,
    SettingsUpdate,
    Transaction,
    TransactionCreate,
    TransactionType,
    TransactionUpdate,
    UserSettings,
    merge_settings,
)
from moneytrackr.models.history import (
    DataRestorePoint,
    DataSnapshot,
    DeviceInfo,
    EntityType,
    HistoryFilter,
    SnapshotMetadata,
    SnapshotOperation,
    SnapshotSyncStatus,
    StorageStats,
    SyncStatus,
)

__all__ = [
    # Finance models
    "EXPENSE_CATEGORIES",
    "INCOME_CATEGORIES",
    "AppearanceSettings",
    "AppearanceUpdate",
    "FontSize",
    "Goal",
    "GoalCategory",
    "GoalCreate",
    "GoalPriority",
    "GoalStatus",
    "GoalUpdate",
    "Layout",
    "NotificationPreferences",
    "NotificationPreferencesUpdate",
    "PrivacyPreferences",
    "PrivacyPreferencesUpdate",
    "ProfileSettings",
    "ProfileUpdate",
    "SettingsUpdate",
    "Transaction",
    "TransactionCreate",
    "TransactionType",
    "TransactionUpdate",
    "UserSettings",
    "merge_settings",
    # History models
    "DataRestorePoint",
    "DataSnapshot",
    "DeviceInfo",
    "EntityType",
    "HistoryFilter",
    "SnapshotMetadata",
    "SnapshotOperation",
    "SnapshotSyncStatus",
    "StorageStats",
    "SyncStatus",
    # Account models
    "DataRequest",
    "DataRequestStatus",
    "DataRequestType",
    "Notification",
    "NotificationType",
    "PrivacySettings",
    "PrivacySettingsUpdate",
    # Audit models
    "PasswordStrength",
    "SecurityEventType",
    "SecurityLogEntry",
    "SecuritySettings",
]
