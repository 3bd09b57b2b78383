"""Tests for daily triggering and delayed re-runs."""

import asyncio
from datetime import time, timedelta
from zoneinfo import ZoneInfo

import pytest

from log_prioritization.app.scheduler import (
    AsyncioRescheduler,
    DailyScheduler,
    NoopRescheduler,
    next_run_after,
)

from factories import dt

UTC = ZoneInfo("UTC")


class TestNextRunAfter:
    def test_later_today(self):
        assert next_run_after(dt(2024, 1, 15, 0, 30), time(1), UTC) == dt(2024, 1, 15, 1)

    def test_already_passed_means_tomorrow(self):
        assert next_run_after(dt(2024, 1, 15, 1, 0), time(1), UTC) == dt(2024, 1, 16, 1)

    def test_uses_local_wall_clock(self):
        # 01:00 in New York is 06:00 UTC in winter
        nxt = next_run_after(dt(2024, 1, 15, 3), time(1), ZoneInfo("America/New_York"))
        assert nxt == dt(2024, 1, 15, 6)


class TestDailyScheduler:
    @pytest.mark.asyncio
    async def test_sleeps_until_run_time_then_runs_job(self):
        slept = []
        ran = []

        async def fake_sleep(seconds):
            slept.append(seconds)

        async def job():
            ran.append(True)

        scheduler = DailyScheduler(
            job, time(1), UTC, clock=lambda: dt(2024, 1, 15, 0, 59), sleep=fake_sleep
        )
        await scheduler.run_once()

        assert slept == [60.0]
        assert ran == [True]

    @pytest.mark.asyncio
    async def test_failed_job_does_not_stop_the_loop(self, caplog):
        async def fake_sleep(seconds):
            pass

        async def job():
            raise RuntimeError("analysis down")

        scheduler = DailyScheduler(
            job, time(1), UTC, clock=lambda: dt(2024, 1, 15), sleep=fake_sleep
        )
        await scheduler.run_once()

        assert "Daily analysis run failed" in caplog.text

    @pytest.mark.asyncio
    async def test_early_wakeup_does_not_rerun_same_slot(self):
        # the clock stays a few ms short of 01:00, as after a sleep that woke early
        slept = []
        ran = []

        async def fake_sleep(seconds):
            slept.append(seconds)

        async def job():
            ran.append(True)

        scheduler = DailyScheduler(
            job,
            time(1),
            UTC,
            clock=lambda: dt(2024, 1, 15, 0, 59, 59, 995000),
            sleep=fake_sleep,
        )
        await scheduler.run_once()
        await scheduler.run_once()

        assert ran == [True, True]
        assert slept[0] == pytest.approx(0.005)
        assert slept[1] == pytest.approx(86400.005)


class TestReschedulers:
    @pytest.mark.asyncio
    async def test_asyncio_rescheduler_runs_job_after_delay(self):
        done = asyncio.Event()

        async def job():
            done.set()

        rescheduler = AsyncioRescheduler()
        rescheduler.schedule(job, timedelta(milliseconds=10))
        assert rescheduler.pending == 1

        await asyncio.wait_for(done.wait(), timeout=1)
        assert rescheduler.pending == 0

    @pytest.mark.asyncio
    async def test_cancel_all_drops_pending_runs(self):
        ran = []

        async def job():
            ran.append(True)

        rescheduler = AsyncioRescheduler()
        rescheduler.schedule(job, timedelta(milliseconds=20))
        rescheduler.cancel_all()
        await asyncio.sleep(0.05)

        assert ran == []
        assert rescheduler.pending == 0

    @pytest.mark.asyncio
    async def test_failing_rerun_is_logged(self, caplog):
        async def job():
            raise ConnectionError("still down")

        rescheduler = AsyncioRescheduler()
        rescheduler.schedule(job, timedelta(0))
        await asyncio.sleep(0.05)

        assert "Rescheduled run failed" in caplog.text

    def test_noop_rescheduler_never_runs_job(self, caplog):
        caplog.set_level("INFO")
        calls = []
        NoopRescheduler().schedule(lambda: calls.append(1), timedelta(minutes=30))
        assert calls == []
        assert "not retrying in 30 minutes" in caplog.text
