from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from datetime import datetime, timedelta

from app.core.clients.usage import fetch_usage
from app.core.config.settings import get_settings
from app.core.usage.aggregator import NoCredentialsError
from app.core.utils.time import utcnow
from app.db.session import open_session
from app.modules.credentials.repository import CredentialsRepository
from app.modules.usage.cache import get_usage_view_cache
from app.modules.usage.service import UsageService

logger = logging.getLogger(__name__)


class UsageRefreshScheduler:
    """Periodically recompute the cached aggregate view.

    The countdown restarts on ``start`` and ``reset``. An interval of zero
    keeps the scheduler stopped.
    """

    def __init__(self, refresh: Callable[[], Awaitable[object]], interval_seconds: float = 0.0) -> None:
        self._refresh = refresh
        self._interval_seconds = max(interval_seconds, 0.0)
        self._task: asyncio.Task[None] | None = None
        self._next_run_at: datetime | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def interval_seconds(self) -> float:
        return self._interval_seconds

    @property
    def next_run_at(self) -> datetime | None:
        return self._next_run_at if self.running else None

    async def start(self, interval_seconds: float | None = None) -> None:
        if interval_seconds is not None:
            if interval_seconds <= 0:
                raise ValueError("interval_seconds must be positive")
            self._interval_seconds = interval_seconds
        await self.stop()
        if self._interval_seconds <= 0:
            return
        self._next_run_at = utcnow() + timedelta(seconds=self._interval_seconds)
        self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        task = self._task
        self._task = None
        self._next_run_at = None
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def reset(self) -> None:
        if self.running:
            await self.start()

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self._interval_seconds)
            try:
                await self._refresh()
            except NoCredentialsError:
                logger.info("Auto refresh skipped: no credentials stored")
            except Exception:
                logger.exception("Auto refresh failed")
            self._next_run_at = utcnow() + timedelta(seconds=self._interval_seconds)


async def refresh_usage_view() -> None:
    settings = get_settings()
    async with open_session() as session:
        service = UsageService(
            CredentialsRepository(session),
            fetch_usage,
            get_usage_view_cache(),
            concurrency=settings.usage_fetch_concurrency,
            display_timezone=settings.display_timezone,
        )
        await service.refresh()


_usage_scheduler: UsageRefreshScheduler | None = None


def get_usage_scheduler() -> UsageRefreshScheduler:
    global _usage_scheduler
    if _usage_scheduler is None:
        _usage_scheduler = UsageRefreshScheduler(
            refresh_usage_view,
            interval_seconds=get_settings().auto_refresh_interval_seconds,
        )
    return _usage_scheduler
