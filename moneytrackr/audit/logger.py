"""
Security Audit Log

Account events (logins, settings changes, exports) are recorded so the
user can review what happened to their account.

The security log:
- Always logs through structlog
- Keeps the newest entries in the local store under ``security_logs``
- Also appends to the remote ``security_logs`` table when a session and
  backend exist; a failed remote write is logged, never raised
"""

import json
import re
import uuid
from datetime import date
from pathlib import Path
from typing import Optional

import structlog
from pydantic import ValidationError

from moneytrackr.models.audit import (
    PasswordStrength,
    SecurityEventType,
    SecurityLogEntry,
    SecuritySettings,
)
from moneytrackr.session import UserSession
from moneytrackr.services.storage.interface import SECURITY_LOGS_TABLE, PersistenceBackend
from moneytrackr.services.storage.local import LocalStore


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


SECURITY_LOGS_KEY = "security_logs"
SECURITY_SETTINGS_KEY = "security_settings"
DEFAULT_LOG_LIMIT = 100


def check_password_strength(password: str) -> PasswordStrength:
    """
    Score a password from 0 to 5.

    One point each for: at least 8 characters, a lowercase letter, an
    uppercase letter, a digit, and any other character. Feedback lists
    what is missing.
    """
    checks = (
        (len(password) >= 8, "Use at least 8 characters"),
        (re.search(r"[a-z]", password) is not None, "Include lowercase letters"),
        (re.search(r"[A-Z]", password) is not None, "Include uppercase letters"),
        (re.search(r"[0-9]", password) is not None, "Include numbers"),
        (re.search(r"[^a-zA-Z0-9]", password) is not None, "Include special characters"),
    )
    return PasswordStrength(
        score=sum(1 for passed, _ in checks if passed),
        feedback=[message for passed, message in checks if not passed],
    )


class SecurityAuditLog:
    """
    Central security logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. The local store, capped to the newest ``limit`` entries
    3. The remote backend, when a signed-in session has one
    """

    def __init__(
        self,
        local_store: LocalStore,
        backend: Optional[PersistenceBackend] = None,
        session: Optional[UserSession] = None,
        limit: int = DEFAULT_LOG_LIMIT,
    ):
        self._local = local_store
        self._backend = backend
        self.session = session or UserSession.anonymous()
        self._limit = limit
        self._logger = structlog.get_logger(__name__)

        self.entries: list[SecurityLogEntry] = self._load_entries()
        self.settings = self._load_settings()

    def _load_entries(self) -> list[SecurityLogEntry]:
        entries = []
        for raw in self._local.get(SECURITY_LOGS_KEY, []):
            try:
                entries.append(SecurityLogEntry.model_validate(raw))
            except ValidationError as e:
                self._logger.warning("security_log_entry_invalid", error=str(e))
        return entries[:self._limit]

    def _load_settings(self) -> SecuritySettings:
        raw = self._local.get(SECURITY_SETTINGS_KEY)
        try:
            return SecuritySettings.model_validate(raw) if raw else SecuritySettings()
        except ValidationError as e:
            self._logger.warning("security_settings_invalid", error=str(e))
            return SecuritySettings()

    def _save_entries(self) -> None:
        self._local.set(SECURITY_LOGS_KEY, [e.to_local() for e in self.entries])

    def _save_settings(self) -> None:
        self._local.set(SECURITY_SETTINGS_KEY, self.settings.to_local())

    async def log(
        self,
        event_type: SecurityEventType,
        details: str,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> SecurityLogEntry:
        """
        Record a security event.

        Always logs locally. Persists to the backend if available.
        """
        entry = SecurityLogEntry(
            id=str(uuid.uuid4()),
            type=event_type,
            details=details,
            ip_address=ip_address,
            user_agent=user_agent,
        )

        log_dict = entry.to_log_dict()
        if event_type == SecurityEventType.FAILED_LOGIN:
            self._logger.warning("security_event", **log_dict)
        else:
            self._logger.info("security_event", **log_dict)

        self.entries = [entry] + self.entries[:self._limit - 1]
        self._save_entries()

        if self._backend is not None and self.session.is_authenticated:
            try:
                await self._backend.insert(
                    SECURITY_LOGS_TABLE,
                    {**entry.to_row(), "user_id": self.session.user_id},
                )
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "security_log_storage_failed",
                    error=str(e),
                    entry_id=entry.id,
                )

        return entry

    async def log_login(self, ip_address: Optional[str] = None, user_agent: Optional[str] = None) -> None:
        await self.log(SecurityEventType.LOGIN, "Successful login", ip_address, user_agent)

    async def log_logout(self) -> None:
        await self.log(SecurityEventType.LOGOUT, "Signed out")

    async def log_failed_login(self, email: str, ip_address: Optional[str] = None) -> None:
        await self.log(SecurityEventType.FAILED_LOGIN, f"Failed login attempt for {email}", ip_address)

    async def log_password_change(self) -> None:
        await self.log(SecurityEventType.PASSWORD_CHANGE, "Password changed")

    async def log_settings_change(self, details: str) -> None:
        await self.log(SecurityEventType.SETTINGS_CHANGE, details)

    # =========================================================================
    # SECURITY SETTINGS
    # =========================================================================

    async def toggle_two_factor(self) -> bool:
        enabled = not self.settings.two_factor_enabled
        self.settings = self.settings.model_copy(update={"two_factor_enabled": enabled})
        self._save_settings()
        await self.log_settings_change(f"Two-factor authentication {'enabled' if enabled else 'disabled'}")
        return enabled

    async def set_session_timeout(self, minutes: int) -> None:
        self.settings = SecuritySettings.model_validate({**self.settings.to_row(), "session_timeout": minutes})
        self._save_settings()
        await self.log_settings_change(f"Session timeout updated to {minutes} minutes")

    async def toggle_encryption(self) -> bool:
        enabled = not self.settings.encryption_enabled
        self.settings = self.settings.model_copy(update={"encryption_enabled": enabled})
        self._save_settings()
        await self.log_settings_change(f"Data encryption {'enabled' if enabled else 'disabled'}")
        return enabled

    # =========================================================================
    # MAINTENANCE
    # =========================================================================

    async def clear(self) -> None:
        """Drop all entries. The clearing itself is recorded."""
        self.entries = []
        self._save_entries()
        await self.log_settings_change("Security logs cleared")

    async def export(self, directory: Path, today: Optional[date] = None) -> Path:
        """
        Write the log to ``security_logs_<YYYY-MM-DD>.json``.

        Returns:
            Path of the written file
        """
        today = today or date.today()
        directory = Path(directory)
        directory.mkdir(parents=True, exist_ok=True)
        path = directory / f"security_logs_{today.isoformat()}.json"

        with open(path, "w", encoding="utf-8") as f:
            json.dump([e.to_local() for e in self.entries], f, indent=2, ensure_ascii=False)

        await self.log(SecurityEventType.DATA_EXPORT, "Security logs exported")
        return path

    def check_password_strength(self, password: str) -> PasswordStrength:
        return check_password_strength(password)
