"""
Application wiring for MoneyTrackr

This module ties together all the components of one application
session:

1. Finance store mutations are mirrored into the history store
2. History restores reload the finance store from the local mirror
3. The background scheduler drives auto-sync, daily backups and
   exchange-rate refresh

The session (who is signed in, whether the backend is reachable) is
passed in explicitly and can be swapped with ``set_session``; nothing
here is a module-level singleton.
"""

from datetime import datetime
from typing import Optional

import structlog

from moneytrackr.audit import SecurityAuditLog
from moneytrackr.config import AppSettings, Settings, get_settings, is_backend_configured
from moneytrackr.currency import CurrencyConverter
from moneytrackr.history import HistoryStore
from moneytrackr.models.account import Notification
from moneytrackr.notifications import NotificationCenter
from moneytrackr.privacy import PrivacyManager
from moneytrackr.scheduler import BackgroundScheduler
from moneytrackr.services.storage import (
    GoogleSheetsBackend,
    GoogleSheetsClient,
    JsonFileLocalStore,
    LocalStore,
    PersistenceBackend,
)
from moneytrackr.session import UserSession
from moneytrackr.store import FinanceStore


logger = structlog.get_logger(__name__)


class FinanceApp:
    """
    Every component of one application session.

    Construct, then ``await start()``; ``await close()`` at shutdown.
    """

    def __init__(
        self,
        local_store: LocalStore,
        backend: Optional[PersistenceBackend] = None,
        settings: Optional[AppSettings] = None,
        session: Optional[UserSession] = None,
    ):
        self.settings = settings or AppSettings()
        self.session = session or UserSession.anonymous()
        self.backend = backend

        self.finance = FinanceStore(
            local_store,
            backend,
            self.session,
            default_currency=self.settings.default_currency,
        )
        self.history = HistoryStore(
            local_store,
            backend,
            self.session,
            storage_quota=self.settings.storage_quota_bytes,
            cache_limit=self.settings.history_cache_limit,
            query_limit=self.settings.history_query_limit,
        )
        self.converter = CurrencyConverter(local_store)
        self.notifications = NotificationCenter(local_store)
        self.privacy = PrivacyManager(local_store, self.settings.export_path, self.session)
        self.security = SecurityAuditLog(
            local_store,
            backend,
            self.session,
            limit=self.settings.security_log_limit,
        )
        self.scheduler = BackgroundScheduler(
            self.history,
            self.converter,
            auto_sync_interval=self.settings.auto_sync_interval_seconds,
            backup_check_interval=self.settings.backup_check_interval_seconds,
            rate_refresh_interval=self.settings.rate_refresh_interval_seconds,
        )

        self.finance.add_listener(self.history.record_mutation)
        self.history.add_reload_hook(self.finance.reload_from_local)

    async def start(self, run_scheduler: bool = True) -> None:
        """Load the session's data and start background jobs."""
        await self.finance.initialize()
        if self.history.has_remote:
            await self.history.refresh()
        if run_scheduler:
            self.scheduler.start()
        logger.info(
            "app_started",
            user_id=self.session.user_id,
            remote=self.backend is not None,
            environment=self.settings.app_environment,
        )

    async def set_session(self, session: UserSession) -> None:
        """Switch to another user (sign-in, sign-out) and reload everything."""
        previous = self.session
        self.session = session
        self.privacy.session = session
        self.security.session = session
        await self.finance.set_session(session)
        await self.history.set_session(session)

        if session.is_authenticated and session.user_id != previous.user_id:
            await self.security.log_login()
        elif previous.is_authenticated and not session.is_authenticated:
            await self.security.log_logout()

    def refresh_notifications(self, now: Optional[datetime] = None) -> list[Notification]:
        """Generate alerts from the current goals and transactions."""
        return self.notifications.generate_financial_notifications(
            self.finance.goals,
            self.finance.transactions,
            self.converter.current_currency,
            now,
        )

    async def clear_all_data(self) -> None:
        """
        Wipe the local store and drop every in-memory copy of it.

        Remote rows are kept; a signed-in session reloads them.
        """
        self.privacy.clear_all_data()
        self.notifications.notifications = []
        self.security.entries = []
        await self.finance.initialize()
        logger.info("app_data_cleared", user_id=self.session.user_id, remote=self.finance.uses_remote)

    async def close(self) -> None:
        await self.scheduler.stop()
        logger.info("app_closed", user_id=self.session.user_id)


def create_app_components(
    use_storage: bool = True,
    settings: Optional[Settings] = None,
    session: Optional[UserSession] = None,
) -> FinanceApp:
    """
    Factory function to create all application components.

    Args:
        use_storage: Whether to use the Google Sheets backend when it is
                    configured. Set to False to run on the local store only.
        settings: Settings to use; defaults to the cached settings
        session: Initial session; defaults to the anonymous session

    Returns:
        The wired, not yet started, application
    """
    settings = settings or get_settings()
    app_settings = settings.app

    backend = None
    if use_storage and is_backend_configured(settings):
        try:
            backend = GoogleSheetsBackend(GoogleSheetsClient(settings.google_sheets))
        except Exception as e:
            # Storage not configured - continue on the local store
            logger.warning("remote_storage_unavailable", error=str(e))
            backend = None

    local_store = JsonFileLocalStore(app_settings.local_store_file)
    return FinanceApp(local_store, backend, app_settings, session)
