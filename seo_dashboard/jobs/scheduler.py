"""
Periodic job scheduler

An asyncio loop started on app startup. Every tick it runs:
- the keyword tracking trigger once per hour (at :00 UTC)
- the local scan trigger once per day at 06:00 UTC
"""

import asyncio
import logging
from datetime import datetime
from typing import Optional

from .keyword_tracking import trigger_scheduled_keyword_tracking
from .local_seo import trigger_scheduled_scans

logger = logging.getLogger(__name__)

TICK_SECONDS = 60
DAILY_SCAN_HOUR = 6


class Scheduler:
    """Runs the hourly and daily triggers from a background task."""

    def __init__(self, tick_seconds: int = TICK_SECONDS):
        self._tick_seconds = tick_seconds
        self._task: Optional[asyncio.Task] = None
        self._running = False
        self._last_hourly: Optional[datetime] = None
        self._last_daily: Optional[datetime] = None

    @property
    def running(self) -> bool:
        return self._running

    def hourly_due(self, now: datetime) -> bool:
        slot = now.replace(minute=0, second=0, microsecond=0)
        return self._last_hourly is None or self._last_hourly < slot

    def daily_due(self, now: datetime) -> bool:
        if now.hour < DAILY_SCAN_HOUR:
            return False
        slot = now.replace(hour=DAILY_SCAN_HOUR, minute=0, second=0, microsecond=0)
        return self._last_daily is None or self._last_daily < slot

    async def tick(self, now: Optional[datetime] = None) -> None:
        """Run whichever triggers are due at `now` (UTC)."""
        now = now or datetime.utcnow()

        if self.hourly_due(now):
            self._last_hourly = now
            try:
                await trigger_scheduled_keyword_tracking()
            except Exception as e:
                logger.error(f"Scheduled keyword tracking trigger failed: {e}")

        if self.daily_due(now):
            self._last_daily = now
            try:
                await trigger_scheduled_scans()
            except Exception as e:
                logger.error(f"Scheduled local scan trigger failed: {e}")

    async def start(self) -> None:
        if self._running:
            logger.warning("Scheduler already running")
            return

        self._running = True

        async def loop():
            while self._running:
                await self.tick()
                await asyncio.sleep(self._tick_seconds)

        self._task = asyncio.create_task(loop())
        logger.info(f"Scheduler started (tick: {self._tick_seconds}s)")

    async def stop(self) -> None:
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("Scheduler stopped")


scheduler = Scheduler()
