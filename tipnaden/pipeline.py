"""Full scraping pipeline: crawl city listings, normalize tiles, save events to MongoDB."""

import asyncio
import sys
from datetime import datetime, timezone
from typing import Awaitable, Callable, Optional, Sequence

import structlog
from pydantic import ValidationError
from structlog.typing import FilteringBoundLogger

from tipnaden.browser import BrowserSession
from tipnaden.config import Settings, settings as default_settings
from tipnaden.db import MongoStore, close_db, init_db
from tipnaden.extractor import scrape_city
from tipnaden.log import configure_logging
from tipnaden.models import CityResult, CrawlResult, RawTile, ScrapedEvent
from tipnaden.normalizer import normalize_tile
from tipnaden.writer import DocumentStore, EventWriter

logger = structlog.get_logger(__name__)

ScrapeFn = Callable[[BrowserSession, str, int], Awaitable[list[RawTile]]]
NormalizeFn = Callable[[RawTile, str], ScrapedEvent]


class CrawlInProgressError(RuntimeError):
    """A crawl run is already active in this process."""


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------


class CrawlOrchestrator:
    """
    Drives one crawl run: cities are processed strictly one after another,
    sharing a single browser session that is closed however the run ends.

    Failures inside a city are recorded on that city's result and the run
    moves on. Anything raised outside the per-city handler aborts the run,
    after the browser has been closed.
    """

    def __init__(
        self,
        store: DocumentStore,
        *,
        session_factory: Callable[[], BrowserSession] = BrowserSession,
        scrape: Optional[ScrapeFn] = None,
        normalize: NormalizeFn = normalize_tile,
        writer: Optional[EventWriter] = None,
        city_pause_seconds: Optional[float] = None,
        log: Optional[FilteringBoundLogger] = None,
    ):
        self.session_factory = session_factory
        self.scrape = scrape or scrape_city
        self.normalize = normalize
        self.writer = writer or EventWriter(store)
        self.city_pause_seconds = (
            default_settings.city_pause_seconds
            if city_pause_seconds is None
            else city_pause_seconds
        )
        self.log = (log or logger).bind(component="orchestrator")
        self._cancelled = asyncio.Event()

    def cancel(self) -> None:
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    async def run(self, cities: Sequence[str], per_city_limit: int) -> CrawlResult:
        result = CrawlResult()
        self.log.info("crawl_started", cities=list(cities), per_city_limit=per_city_limit)

        async with self.session_factory() as session:
            await session.open()

            for index, city in enumerate(cities):
                if self.cancelled:
                    result.cancelled = True
                    self.log.warning("crawl_cancelled", remaining=list(cities[index:]))
                    break
                if index > 0:
                    await self._pause()
                    if self.cancelled:
                        result.cancelled = True
                        self.log.warning("crawl_cancelled", remaining=list(cities[index:]))
                        break

                city_result = await self._crawl_city(session, city, per_city_limit)
                result.add(city_result)

        result.finished_at = datetime.now(timezone.utc)
        self.log.info(
            "crawl_completed",
            total_scraped=result.total_scraped,
            total_saved=result.total_saved,
            cancelled=result.cancelled,
        )
        return result

    async def _crawl_city(
        self, session: BrowserSession, city: str, per_city_limit: int
    ) -> CityResult:
        city_result = CityResult(city=city)
        log = self.log.bind(city=city)
        log.info("city_started")

        try:
            tiles = await self.scrape(session, city, per_city_limit)
            events = self._normalize_all(tiles, city, log)
            city_result.scraped = len(events)

            stats = await self.writer.save_events(events)
            city_result.saved = stats.saved
            city_result.duplicates = stats.duplicates
            city_result.failed = stats.failed + stats.config_errors
        except Exception as e:
            city_result.error = str(e) or type(e).__name__
            log.error("city_failed", error=city_result.error, error_type=type(e).__name__)

        log.info(
            "city_finished",
            scraped=city_result.scraped,
            saved=city_result.saved,
            duplicates=city_result.duplicates,
        )
        return city_result

    def _normalize_all(
        self, tiles: list[RawTile], city: str, log: FilteringBoundLogger
    ) -> list[ScrapedEvent]:
        events = []
        for tile in tiles:
            try:
                events.append(self.normalize(tile, city))
            except ValidationError as e:
                log.warning("tile_rejected", title=tile.title, link=tile.link, error=str(e))
        return events

    async def _pause(self) -> None:
        """Politeness delay between cities; returns early on cancel."""
        if self.city_pause_seconds <= 0:
            return
        try:
            await asyncio.wait_for(self._cancelled.wait(), timeout=self.city_pause_seconds)
        except asyncio.TimeoutError:
            pass


# ---------------------------------------------------------------------------
# Single-run guard shared by the scheduler and the API
# ---------------------------------------------------------------------------


class CrawlRunner:
    """
    Allows at most one crawl run at a time in this process.

    A second trigger while a run is active is rejected with
    CrawlInProgressError rather than queued.
    """

    def __init__(
        self,
        orchestrator_factory: Optional[Callable[[], CrawlOrchestrator]] = None,
        config: Settings | None = None,
    ):
        self.settings = config or default_settings
        self.orchestrator_factory = orchestrator_factory or self._default_orchestrator
        self._active: Optional[CrawlOrchestrator] = None
        self._finished: Optional[asyncio.Event] = None
        self.last_result: Optional[CrawlResult] = None
        self.last_error: Optional[str] = None

    def _default_orchestrator(self) -> CrawlOrchestrator:
        return CrawlOrchestrator(
            MongoStore(),
            session_factory=lambda: BrowserSession(self.settings),
            scrape=lambda session, city, limit: scrape_city(session, city, limit, self.settings),
            city_pause_seconds=self.settings.city_pause_seconds,
        )

    @property
    def running(self) -> bool:
        return self._active is not None

    def cancel(self) -> bool:
        if self._active is None:
            return False
        self._active.cancel()
        return True

    async def shutdown(self, timeout: Optional[float] = None) -> None:
        """Cancel the active run, if any, and wait for it to wind down."""
        finished = self._finished
        if not self.cancel() or finished is None:
            return
        logger.info("crawl_shutdown_waiting", timeout=timeout)
        try:
            await asyncio.wait_for(finished.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning("crawl_shutdown_timeout", timeout=timeout)

    async def run(
        self,
        cities: Optional[Sequence[str]] = None,
        per_city_limit: Optional[int] = None,
    ) -> CrawlResult:
        if self._active is not None:
            raise CrawlInProgressError("A crawl run is already in progress")

        orchestrator = self.orchestrator_factory()
        self._active = orchestrator
        self._finished = finished = asyncio.Event()
        try:
            result = await orchestrator.run(
                list(cities) if cities is not None else self.settings.city_list,
                per_city_limit if per_city_limit is not None else self.settings.per_city_limit,
            )
        except Exception as e:
            self.last_error = str(e) or type(e).__name__
            logger.error("crawl_failed", error=self.last_error, error_type=type(e).__name__)
            raise
        finally:
            self._active = None
            finished.set()

        self.last_result = result
        self.last_error = None
        return result


runner = CrawlRunner()


async def run_crawl(
    cities: Optional[Sequence[str]] = None, per_city_limit: Optional[int] = None
) -> CrawlResult:
    """Run one crawl through the process-wide runner."""
    return await runner.run(cities, per_city_limit)


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------


def _parse_main_args() -> tuple[list[str], int | None]:
    """Return (cities, limit)."""
    cities: list[str] = []
    limit: int | None = None

    i = 1
    while i < len(sys.argv):
        a = sys.argv[i]
        if a == "--limit":
            if i + 1 < len(sys.argv) and sys.argv[i + 1].isdigit():
                limit = max(1, int(sys.argv[i + 1]))
                i += 2
                continue
            i += 1
            continue
        if a.startswith("--limit="):
            try:
                limit = max(1, int(a.split("=", 1)[1]))
            except ValueError:
                pass
            i += 1
            continue
        if not a.startswith("--"):
            cities.append(a.lower())
        i += 1

    return cities, limit


async def main() -> None:
    """CLI entry point: ``python -m tipnaden.pipeline [city ...] [--limit N]``."""
    configure_logging()
    cities, limit = _parse_main_args()

    await init_db()
    try:
        result = await run_crawl(cities or None, limit)
    finally:
        await close_db()

    print(f"\n{'=' * 60}")
    for city in result.cities:
        status = f"ERROR: {city.error}" if city.error else "ok"
        print(f"  {city.city:<12} scraped {city.scraped:>3}  saved {city.saved:>3}  {status}")
    print(f"Done. Total scraped: {result.total_scraped}, saved: {result.total_saved}")


if __name__ == "__main__":
    asyncio.run(main())
