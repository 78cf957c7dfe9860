"""Fire the crawl once a day at a fixed local time."""

import asyncio
from datetime import datetime, timedelta, timezone, tzinfo
from typing import Awaitable, Callable, Optional
from zoneinfo import ZoneInfo

import structlog

from tipnaden.config import Settings, settings as default_settings
from tipnaden.pipeline import CrawlInProgressError, CrawlRunner, runner as default_runner

logger = structlog.get_logger(__name__, component="scheduler")


def seconds_until_next_run(now: datetime, hour: int, minute: int) -> float:
    """Seconds from ``now`` to the next ``hour:minute`` (tomorrow if already past)."""
    target = now.replace(hour=hour, minute=minute, second=0, microsecond=0)
    if target <= now:
        target += timedelta(days=1)
    # Same-tzinfo subtraction is wall-clock time and would ignore DST shifts
    return (target.astimezone(timezone.utc) - now.astimezone(timezone.utc)).total_seconds()


async def scheduled_crawl(runner: Optional[CrawlRunner] = None) -> None:
    """
    The daily job. There is no caller to report to, so every outcome
    (including a fatal one) ends up in the log only.
    """
    runner = runner or default_runner
    logger.info("scheduled_crawl_started")
    try:
        result = await runner.run()
    except CrawlInProgressError:
        logger.warning("scheduled_crawl_skipped", reason="crawl already in progress")
        return
    except Exception as e:
        logger.error("scheduled_crawl_failed", error=str(e), error_type=type(e).__name__)
        return

    logger.info(
        "scheduled_crawl_completed",
        total_scraped=result.total_scraped,
        total_saved=result.total_saved,
        cities={c.city: c.saved for c in result.cities},
    )


async def run_daily(
    job: Callable[[], Awaitable[None]],
    *,
    hour: int,
    minute: int,
    tz: tzinfo,
    clock: Callable[[tzinfo], datetime] = datetime.now,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> None:
    """Run ``job`` every day at ``hour:minute`` in ``tz``, until cancelled."""
    while True:
        delay = seconds_until_next_run(clock(tz), hour, minute)
        logger.info("next_run_scheduled", in_seconds=round(delay), at=f"{hour:02d}:{minute:02d}")
        await sleep(delay)
        await job()


def start_scheduler(
    config: Settings | None = None, runner: Optional[CrawlRunner] = None
) -> asyncio.Task:
    config = config or default_settings
    logger.info(
        "scheduler_started",
        at=f"{config.schedule_hour:02d}:{config.schedule_minute:02d}",
        timezone=config.schedule_timezone,
        cities=config.city_list,
        per_city_limit=config.per_city_limit,
    )
    return asyncio.create_task(
        run_daily(
            lambda: scheduled_crawl(runner),
            hour=config.schedule_hour,
            minute=config.schedule_minute,
            tz=ZoneInfo(config.schedule_timezone),
        ),
        name="daily-crawl",
    )
