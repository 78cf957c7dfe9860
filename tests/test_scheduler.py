"""Tests for the daily trigger."""

import asyncio
from contextlib import suppress
from datetime import datetime
from unittest.mock import AsyncMock, MagicMock
from zoneinfo import ZoneInfo

import pytest
from structlog.testing import capture_logs

from tipnaden.config import Settings
from tipnaden.models import CityResult, CrawlResult
from tipnaden.pipeline import CrawlInProgressError
from tipnaden.scheduler import run_daily, scheduled_crawl, seconds_until_next_run, start_scheduler

PRAGUE = ZoneInfo("Europe/Prague")


class StopLoop(Exception):
    pass


class TestSecondsUntilNextRun:
    @pytest.mark.parametrize(
        "now, expected",
        [
            (datetime(2025, 5, 23, 2, 0, tzinfo=PRAGUE), 3600),
            (datetime(2025, 5, 23, 3, 0, tzinfo=PRAGUE), 24 * 3600),
            (datetime(2025, 5, 23, 4, 30, tzinfo=PRAGUE), 22.5 * 3600),
        ],
    )
    def test_next_occurrence(self, now, expected):
        assert seconds_until_next_run(now, 3, 0) == expected

    def test_spring_forward_night_is_shorter(self):
        # clocks jump from 02:00 to 03:00 on 30 March 2025
        now = datetime(2025, 3, 29, 4, 0, tzinfo=PRAGUE)
        assert seconds_until_next_run(now, 3, 0) == 22 * 3600


class TestScheduledCrawl:
    @pytest.mark.asyncio
    async def test_logs_summary(self):
        result = CrawlResult()
        result.add(CityResult(city="praha", scraped=3, saved=2))
        runner = MagicMock()
        runner.run = AsyncMock(return_value=result)

        with capture_logs() as logs:
            await scheduled_crawl(runner)

        [done] = [e for e in logs if e["event"] == "scheduled_crawl_completed"]
        assert done["cities"] == {"praha": 2}
        assert done["total_saved"] == 2

    @pytest.mark.asyncio
    async def test_skips_when_a_run_is_active(self):
        runner = MagicMock()
        runner.run = AsyncMock(side_effect=CrawlInProgressError("busy"))

        with capture_logs() as logs:
            await scheduled_crawl(runner)

        assert "scheduled_crawl_skipped" in [e["event"] for e in logs]

    @pytest.mark.asyncio
    async def test_fatal_errors_are_only_logged(self):
        runner = MagicMock()
        runner.run = AsyncMock(side_effect=RuntimeError("browser failed to launch"))

        with capture_logs() as logs:
            await scheduled_crawl(runner)

        [failed] = [e for e in logs if e["event"] == "scheduled_crawl_failed"]
        assert failed["log_level"] == "error"
        assert failed["error"] == "browser failed to launch"


class TestRunDaily:
    @pytest.mark.asyncio
    async def test_sleeps_then_runs_each_day(self):
        job = AsyncMock()
        delays = []

        async def sleep(seconds):
            delays.append(seconds)
            if len(delays) == 3:
                raise StopLoop

        with pytest.raises(StopLoop):
            await run_daily(
                job,
                hour=3,
                minute=0,
                tz=PRAGUE,
                clock=lambda tz: datetime(2025, 5, 23, 2, 0, tzinfo=tz),
                sleep=sleep,
            )

        assert delays == [3600, 3600, 3600]
        assert job.await_count == 2

    @pytest.mark.asyncio
    async def test_start_scheduler_returns_named_task(self):
        task = start_scheduler(Settings(schedule_hour=3), MagicMock())

        assert task.get_name() == "daily-crawl"
        assert not task.done()

        task.cancel()
        with suppress(asyncio.CancelledError):
            await task
