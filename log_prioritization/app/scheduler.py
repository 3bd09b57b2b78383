# log_prioritization/app/scheduler.py
from __future__ import annotations

import asyncio
import logging
from datetime import datetime, time, timedelta
from typing import Awaitable, Callable, Optional, Protocol, Set
from zoneinfo import ZoneInfo

from log_prioritization.models.base import utcnow

logger = logging.getLogger(__name__)

Job = Callable[[], Awaitable[object]]


class Rescheduler(Protocol):
    def schedule(self, job: Job, delay: timedelta) -> None: ...


class NoopRescheduler:
    """Default: failed runs simply wait for the next daily trigger."""

    def schedule(self, job: Job, delay: timedelta) -> None:
        logger.info(
            "No rescheduler configured; not retrying in %d minutes",
            delay.total_seconds() // 60,
        )


class AsyncioRescheduler:
    """
    Re-run a job on the running event loop after a delay. Failures of the
    re-run are logged; the re-run may itself reschedule.
    """

    def __init__(self) -> None:
        self._pending: Set[asyncio.TimerHandle] = set()
        self._tasks: Set[asyncio.Task] = set()

    def schedule(self, job: Job, delay: timedelta) -> None:
        loop = asyncio.get_running_loop()
        handle: Optional[asyncio.TimerHandle] = None

        def _fire() -> None:
            self._pending.discard(handle)
            task = loop.create_task(self._run(job))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

        handle = loop.call_later(delay.total_seconds(), _fire)
        self._pending.add(handle)
        logger.info("Scheduled retry in %.0f seconds", delay.total_seconds())

    @staticmethod
    async def _run(job: Job) -> None:
        try:
            await job()
        except Exception:
            logger.exception("Rescheduled run failed")

    @property
    def pending(self) -> int:
        return len(self._pending)

    def cancel_all(self) -> None:
        for handle in self._pending:
            handle.cancel()
        self._pending.clear()
        for task in self._tasks:
            task.cancel()


def next_run_after(now: datetime, run_at: time, tz: ZoneInfo) -> datetime:
    """The next wall-clock `run_at` in `tz` strictly after `now`."""
    local_now = now.astimezone(tz)
    candidate = datetime.combine(local_now.date(), run_at, tzinfo=tz)
    if candidate <= local_now:
        candidate = datetime.combine(
            local_now.date() + timedelta(days=1), run_at, tzinfo=tz
        )
    return candidate


class DailyScheduler:
    """Invoke `job` once a day at `run_at` local time in `tz`."""

    def __init__(
        self,
        job: Job,
        run_at: time,
        tz: ZoneInfo,
        clock: Callable[[], datetime] = utcnow,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.job = job
        self.run_at = run_at
        self.tz = tz
        self.clock = clock
        self.sleep = sleep
        self._last_target: Optional[datetime] = None

    def next_target(self, now: datetime) -> datetime:
        # a sleep that wakes slightly early must not pick the same slot again
        after = max(now, self._last_target) if self._last_target else now
        return next_run_after(after, self.run_at, self.tz)

    def seconds_until_next_run(self) -> float:
        now = self.clock()
        return max(0.0, (self.next_target(now) - now).total_seconds())

    async def run_once(self) -> None:
        now = self.clock()
        target = self.next_target(now)
        delay = max(0.0, (target - now).total_seconds())
        logger.info("Next daily analysis in %.0f seconds", delay)
        await self.sleep(delay)
        self._last_target = target
        try:
            await self.job()
        except Exception:
            # retries are the rescheduler's business; keep the daily loop alive
            logger.exception("Daily analysis run failed")

    async def run_forever(self) -> None:
        while True:
            await self.run_once()
