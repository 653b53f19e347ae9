"""
Clock synchronization against the boundary's authoritative time.

Everything time-dependent reads ``now()`` from one of these clocks, never
the device clock directly.
"""
import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable, Optional

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class ClockSynchronizer:
    def __init__(
        self,
        fetch_server_time: Callable[[], Awaitable[datetime]],
        local_clock: Callable[[], datetime] = utcnow,
        interval: float = 300.0,
    ) -> None:
        self._fetch = fetch_server_time
        self._local_clock = local_clock
        self.interval = interval
        self._offset = timedelta(0)
        self._stale = True
        self._last_synced_at: Optional[datetime] = None
        self._task: Optional[asyncio.Task] = None

    @property
    def offset(self) -> timedelta:
        return self._offset

    @property
    def is_stale(self) -> bool:
        return self._stale

    @property
    def last_synced_at(self) -> Optional[datetime]:
        return self._last_synced_at

    def now(self) -> datetime:
        return _as_utc(self._local_clock()) + self._offset

    async def sync(self) -> bool:
        """Fetch one authoritative timestamp and store the offset.

        Returns False when the fetch fails; the previous offset is kept.
        """
        try:
            authoritative = _as_utc(await self._fetch())
        except Exception as e:
            self._stale = True
            logger.warning("Server time sync failed, keeping offset %s: %s", self._offset, e)
            return False
        local_at_fetch = _as_utc(self._local_clock())
        self._offset = authoritative - local_at_fetch
        self._stale = False
        self._last_synced_at = authoritative
        logger.debug("Clock offset is now %s", self._offset)
        return True

    async def _run(self, immediate: bool) -> None:
        if not immediate:
            await asyncio.sleep(self.interval)
        while True:
            await self.sync()
            await asyncio.sleep(self.interval)

    def start(self, immediate: bool = True) -> asyncio.Task:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._run(immediate), name="clock-sync")
        return self._task

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass


class FixedClock:
    """A clock that only moves when told to."""

    def __init__(self, instant: datetime) -> None:
        self._now = _as_utc(instant)

    def now(self) -> datetime:
        return self._now

    def set(self, instant: datetime) -> None:
        self._now = _as_utc(instant)

    def advance(self, delta: timedelta) -> None:
        self._now = self._now + delta
