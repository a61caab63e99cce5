"""
Privacy Manager

Consent flags, data-subject requests (export, deletion, rectification)
and the files the privacy centre produces. Everything is persisted in
the local store:

    privacy_settings       PrivacySettings
    data_requests          list of DataRequest, newest first
    cookie_consent_given   set once the user answered the cookie banner

Exports are pretty-printed JSON written into the export directory.
"""

import json
import uuid
from datetime import date
from pathlib import Path
from typing import Any, Optional

import structlog
from pydantic import ValidationError

from moneytrackr.models.account import (
    DataRequest,
    DataRequestStatus,
    DataRequestType,
    PrivacySettings,
    PrivacySettingsUpdate,
)
from moneytrackr.models.base import utc_now
from moneytrackr.session import UserSession
from moneytrackr.services.storage.local import LocalStore, read_finance_state


logger = structlog.get_logger(__name__)

PRIVACY_SETTINGS_KEY = "privacy_settings"
DATA_REQUESTS_KEY = "data_requests"
COOKIE_CONSENT_KEY = "cookie_consent_given"

PRIVACY_CONTACT = "privacy@moneytrackr.app"


class PrivacyManager:
    """Consent state, data requests and privacy exports for one session."""

    def __init__(
        self,
        local_store: LocalStore,
        export_directory: Path,
        session: Optional[UserSession] = None,
    ):
        self._local = local_store
        self.export_directory = Path(export_directory)
        self.session = session or UserSession.anonymous()

        self.settings = self._load_settings()
        self.data_requests = self._load_requests()

    def _load_settings(self) -> PrivacySettings:
        raw = self._local.get(PRIVACY_SETTINGS_KEY)
        try:
            return PrivacySettings.model_validate(raw) if raw else PrivacySettings()
        except ValidationError as e:
            logger.warning("privacy_settings_invalid", error=str(e))
            return PrivacySettings()

    def _load_requests(self) -> list[DataRequest]:
        requests = []
        for raw in self._local.get(DATA_REQUESTS_KEY, []):
            try:
                requests.append(DataRequest.model_validate(raw))
            except ValidationError as e:
                logger.warning("data_request_invalid", error=str(e))
        return requests

    def _save_settings(self) -> None:
        self._local.set(PRIVACY_SETTINGS_KEY, self.settings.to_local())

    def _save_requests(self) -> None:
        self._local.set(DATA_REQUESTS_KEY, [r.to_local() for r in self.data_requests])

    @property
    def show_cookie_banner(self) -> bool:
        return COOKIE_CONSENT_KEY not in self._local

    def update_privacy_settings(self, patch: PrivacySettingsUpdate) -> PrivacySettings:
        changes = patch.model_dump(exclude_unset=True, exclude_none=True)
        self.settings = PrivacySettings.model_validate({**self.settings.model_dump(), **changes})
        self._save_settings()
        logger.info("privacy_settings_updated", fields=sorted(changes))
        return self.settings

    # =========================================================================
    # DATA REQUESTS
    # =========================================================================

    def _add_request(self, request_type: DataRequestType, details: str) -> DataRequest:
        request = DataRequest(id=str(uuid.uuid4()), type=request_type, details=details)
        self.data_requests = [request] + self.data_requests
        self._save_requests()
        logger.info("data_request_created", request_id=request.id, type=request_type.value)
        return request

    def _complete_request(self, request_id: str) -> None:
        self.data_requests = [
            r.model_copy(update={"status": DataRequestStatus.COMPLETED, "completed_date": utc_now()})
            if r.id == request_id else r
            for r in self.data_requests
        ]
        self._save_requests()

    def _write_json(self, filename: str, payload: Any) -> Path:
        self.export_directory.mkdir(parents=True, exist_ok=True)
        path = self.export_directory / filename
        with open(path, "w", encoding="utf-8") as f:
            json.dump(payload, f, indent=2, ensure_ascii=False)
        return path

    def request_data_export(self, today: Optional[date] = None) -> Path:
        """
        Export everything stored for this user and complete the request.

        Writes ``my_data_export_<YYYY-MM-DD>.json`` holding transactions,
        goals, settings and the privacy settings.

        Returns:
            Path of the written file
        """
        request = self._add_request(DataRequestType.EXPORT, "User requested data export")

        payload = read_finance_state(self._local, self.session.user_id)
        payload["privacySettings"] = self.settings.to_local()

        today = today or date.today()
        path = self._write_json(f"my_data_export_{today.isoformat()}.json", payload)
        self._complete_request(request.id)
        logger.info("data_exported", request_id=request.id, path=str(path))
        return path

    def request_data_deletion(self, reason: str) -> DataRequest:
        return self._add_request(DataRequestType.DELETE, reason)

    def request_data_rectification(self, details: str) -> DataRequest:
        return self._add_request(DataRequestType.RECTIFY, details)

    def build_privacy_report(self) -> dict[str, Any]:
        return {
            "dataCollected": {
                "transactions": "Financial transaction data",
                "goals": "Financial goal information",
                "settings": "User preferences and settings",
            },
            "dataUsage": {
                "purpose": "Personal finance tracking and management",
                "sharing": (
                    "Limited third-party sharing enabled"
                    if self.settings.third_party_sharing
                    else "No third-party sharing"
                ),
                "retention": f"Data retained for {self.settings.data_retention_period} days",
            },
            "rights": {
                "access": "You can export your data at any time",
                "rectification": "You can request corrections to your data",
                "erasure": "You can request deletion of your data",
                "portability": "Your data is exportable in JSON format",
            },
            "contact": PRIVACY_CONTACT,
        }

    def generate_privacy_report(self, today: Optional[date] = None) -> Path:
        """Write ``privacy_report_<YYYY-MM-DD>.json`` and return its path."""
        today = today or date.today()
        return self._write_json(f"privacy_report_{today.isoformat()}.json", self.build_privacy_report())

    def clear_all_data(self) -> None:
        """Wipe the whole local store and reset privacy state to defaults."""
        self._local.clear()
        self.settings = PrivacySettings()
        self.data_requests = []
        logger.warning("local_data_cleared", user_id=self.session.user_id)

    # =========================================================================
    # COOKIE CONSENT
    # =========================================================================

    def _record_consent(self, settings: PrivacySettings) -> None:
        self.settings = settings
        self._save_settings()
        self._local.set(COOKIE_CONSENT_KEY, True)

    def accept_all_cookies(self) -> None:
        self._record_consent(self.settings.model_copy(update={
            "cookie_consent": True,
            "analytics_consent": True,
            "marketing_consent": True,
        }))

    def reject_all_cookies(self) -> None:
        self._record_consent(self.settings.model_copy(update={
            "cookie_consent": False,
            "analytics_consent": False,
            "marketing_consent": False,
        }))

    def customize_cookies(self, patch: PrivacySettingsUpdate) -> None:
        changes = patch.model_dump(exclude_unset=True, exclude_none=True)
        self._record_consent(PrivacySettings.model_validate({**self.settings.model_dump(), **changes}))
