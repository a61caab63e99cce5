"""
Security Audit Models for MoneyTrackr

Account-level events (logins, settings changes, exports) are kept in a
capped security log the user can review and export. Data mutations are
tracked separately by the history store.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import Field

from moneytrackr.models.base import CamelModel, utc_now


class SecurityEventType(str, Enum):
    """Types of account events we record."""
    LOGIN = "login"
    LOGOUT = "logout"
    FAILED_LOGIN = "failed_login"
    PASSWORD_CHANGE = "password_change"
    SETTINGS_CHANGE = "settings_change"
    DATA_EXPORT = "data_export"


class SecurityLogEntry(CamelModel):
    """A single security log entry."""

    id: str = Field(..., description="Unique entry identifier")
    type: SecurityEventType
    timestamp: datetime = Field(
        default_factory=utc_now,
        description="When the event occurred (UTC)"
    )
    details: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None

    def to_log_dict(self) -> dict[str, Any]:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "entry_id": self.id,
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.type.value,
            "details": self.details,
            "ip_address": self.ip_address,
            "user_agent": self.user_agent,
        }


class PasswordStrength(CamelModel):
    score: int = Field(..., ge=0, le=5)
    feedback: list[str] = Field(default_factory=list)

    @property
    def is_strong(self) -> bool:
        return self.score >= 4


class SecuritySettings(CamelModel):
    """Account security toggles, persisted locally."""

    two_factor_enabled: bool = False
    session_timeout: int = Field(
        default=30,
        ge=1,
        description="Minutes of inactivity before the session expires"
    )
    encryption_enabled: bool = True
