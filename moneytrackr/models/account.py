"""
Account Models for MoneyTrackr

In-app notifications and the privacy preferences / data-subject requests
that back the privacy centre.
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import Field

from moneytrackr.models.base import CamelModel, utc_now


# =============================================================================
# NOTIFICATIONS
# =============================================================================

class NotificationType(str, Enum):
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"
    INFO = "info"


class Notification(CamelModel):
    id: str
    type: NotificationType
    title: str = Field(..., min_length=1, max_length=100)
    message: str = Field(..., max_length=500)
    timestamp: datetime = Field(default_factory=utc_now)
    read: bool = False


# =============================================================================
# PRIVACY
# =============================================================================

class PrivacySettings(CamelModel):
    """Consent flags and retention policy. Separate from UserSettings.privacy."""

    cookie_consent: bool = False
    analytics_consent: bool = False
    marketing_consent: bool = False
    data_processing_consent: bool = True
    third_party_sharing: bool = False
    data_retention_period: int = Field(
        default=365,
        ge=1,
        description="Days data is retained"
    )
    auto_data_deletion: bool = False


class PrivacySettingsUpdate(CamelModel):
    cookie_consent: Optional[bool] = None
    analytics_consent: Optional[bool] = None
    marketing_consent: Optional[bool] = None
    data_processing_consent: Optional[bool] = None
    third_party_sharing: Optional[bool] = None
    data_retention_period: Optional[int] = Field(default=None, ge=1)
    auto_data_deletion: Optional[bool] = None


class DataRequestType(str, Enum):
    EXPORT = "export"
    DELETE = "delete"
    RECTIFY = "rectify"


class DataRequestStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    REJECTED = "rejected"


class DataRequest(CamelModel):
    """A data-subject request (export, deletion or rectification)."""

    id: str
    type: DataRequestType
    status: DataRequestStatus = DataRequestStatus.PENDING
    request_date: datetime = Field(default_factory=utc_now)
    completed_date: Optional[datetime] = None
    details: str = ""
