"""
Background Scheduler

Periodic jobs that run for the lifetime of an application session:

- auto-sync: full sync of local state, only while online and signed in
- backup check: creates the day's automatic backup (also runs at start)
- rate refresh: refreshes the exchange-rate table

Each job is an asyncio task on the running loop. A failing run is
logged and the job keeps its schedule.
"""

import asyncio
from typing import Awaitable, Callable

import structlog

from moneytrackr.currency.converter import CurrencyConverter
from moneytrackr.history.store import HistoryStore


logger = structlog.get_logger(__name__)

Job = Callable[[], Awaitable[object]]


class BackgroundScheduler:
    def __init__(
        self,
        history: HistoryStore,
        converter: CurrencyConverter,
        auto_sync_interval: float = 300.0,
        backup_check_interval: float = 3600.0,
        rate_refresh_interval: float = 300.0,
    ):
        self._history = history
        self._converter = converter
        self.auto_sync_interval = auto_sync_interval
        self.backup_check_interval = backup_check_interval
        self.rate_refresh_interval = rate_refresh_interval
        self._tasks: list[asyncio.Task] = []

    @property
    def is_running(self) -> bool:
        return any(not t.done() for t in self._tasks)

    async def _auto_sync(self) -> None:
        if self._history.can_sync:
            await self._history.force_sync()

    async def _backup_check(self) -> None:
        await self._history.ensure_daily_backup()

    async def _rate_refresh(self) -> None:
        await self._converter.refresh_rates()

    async def _every(self, name: str, interval: float, job: Job, run_at_start: bool = False) -> None:
        if not run_at_start:
            await asyncio.sleep(interval)
        while True:
            try:
                await job()
            except Exception as e:
                logger.error("scheduled_job_failed", job=name, error=str(e))
            await asyncio.sleep(interval)

    def start(self) -> None:
        """Start all jobs. Must be called from a running event loop."""
        if self.is_running:
            return
        self._tasks = [
            asyncio.create_task(self._every("auto_sync", self.auto_sync_interval, self._auto_sync)),
            asyncio.create_task(
                self._every("backup_check", self.backup_check_interval, self._backup_check, run_at_start=True)
            ),
            asyncio.create_task(self._every("rate_refresh", self.rate_refresh_interval, self._rate_refresh)),
        ]
        logger.info("scheduler_started", jobs=len(self._tasks))

    async def stop(self) -> None:
        """Cancel every job and wait for them to finish."""
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        logger.info("scheduler_stopped")
