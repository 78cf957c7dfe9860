"""FastAPI app exposing the scraper's operational endpoints and running the daily job."""

import asyncio
import re
import secrets
from contextlib import asynccontextmanager, suppress
from datetime import datetime, timezone
from typing import Optional

import structlog
from fastapi import Depends, FastAPI, Header, HTTPException, Query

from tipnaden.config import settings
from tipnaden.db import EVENTS, MongoStore, close_db, init_db
from tipnaden.log import configure_logging
from tipnaden.models import SourcePlatform
from tipnaden.pipeline import CrawlInProgressError, CrawlRunner, runner
from tipnaden.scheduler import start_scheduler
from tipnaden.writer import DocumentStore

logger = structlog.get_logger(__name__)

CITY_RE = re.compile(r"^[a-zA-ZáéíóúýčďěňřšťžůÁÉÍÓÚÝČĎĚŇŘŠŤŽŮ]+$")


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    await init_db()
    scheduler_task = start_scheduler() if settings.scheduler_enabled else None
    yield
    # A scheduled run executes inside the scheduler task and writes through
    # the shared client, so it is stopped before either goes away
    await runner.shutdown(settings.shutdown_timeout_seconds)
    if scheduler_task is not None:
        scheduler_task.cancel()
        with suppress(asyncio.CancelledError):
            await scheduler_task
    await close_db()


app = FastAPI(title="TipNaDen Scraper API", lifespan=lifespan)


# ── Dependencies ────────────────────────────────────────────


def get_runner() -> CrawlRunner:
    return runner


def get_store() -> DocumentStore:
    return MongoStore()


def require_admin(x_admin_token: Optional[str] = Header(None)) -> None:
    """Check the ``X-Admin-Token`` header when an admin token is configured."""
    if not settings.admin_token:
        return
    if not x_admin_token or not secrets.compare_digest(x_admin_token, settings.admin_token):
        raise HTTPException(status_code=401, detail="Invalid or missing admin token")


# ── Health / status ─────────────────────────────────────────


@app.get("/health")
async def health():
    return {"status": "ok", "time": datetime.now(timezone.utc).isoformat()}


@app.get("/scraper/status")
async def scraper_status(
    store: DocumentStore = Depends(get_store),
    crawl_runner: CrawlRunner = Depends(get_runner),
):
    """Event counts by origin plus the state of the crawl runner."""
    total = await store.count_documents(EVENTS, {})
    scraped = await store.count_documents(
        EVENTS, {"source.platform": SourcePlatform.SCRAPED_WEB.value}
    )
    last = crawl_runner.last_result
    return {
        "success": True,
        "data": {
            "totalEvents": total,
            "scrapedEvents": scraped,
            "manualEvents": total - scraped,
            "running": crawl_runner.running,
            "lastRun": last.model_dump(by_alias=True, mode="json") if last else None,
            "lastError": crawl_runner.last_error,
        },
    }


# ── Triggers ────────────────────────────────────────────────


async def _run(crawl_runner: CrawlRunner, cities: Optional[list[str]], limit: Optional[int]):
    try:
        result = await crawl_runner.run(cities, limit)
    except CrawlInProgressError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except Exception as e:
        logger.error("manual_crawl_failed", error=str(e), error_type=type(e).__name__)
        raise HTTPException(
            status_code=500,
            detail={"error": "Scraper run failed", "details": str(e)},
        )
    return result


@app.post("/scraper/run", dependencies=[Depends(require_admin)])
async def run_city(
    city: str = Query("praha", min_length=1, max_length=50, description="City slug on the source site"),
    limit: int = Query(settings.manual_default_limit, ge=1, le=100),
    crawl_runner: CrawlRunner = Depends(get_runner),
):
    """Scrape a single city now."""
    if not CITY_RE.match(city):
        raise HTTPException(status_code=422, detail="City must contain only letters")
    city = city.lower()
    logger.info("manual_city_crawl_triggered", city=city, limit=limit)

    result = await _run(crawl_runner, [city], limit)
    return {
        "success": True,
        "message": f"Scraped {result.total_scraped} and saved {result.total_saved} events for {city}",
        "data": {
            "city": city,
            "scraped": result.total_scraped,
            "saved": result.total_saved,
        },
    }


@app.post("/scraper/run-job", dependencies=[Depends(require_admin)])
async def run_job(crawl_runner: CrawlRunner = Depends(get_runner)):
    """Run the full daily job (all configured cities) now."""
    logger.info("manual_crawl_job_triggered")
    result = await _run(crawl_runner, None, None)
    return {
        "success": True,
        "message": "Manual scraper job completed",
        "data": result.model_dump(by_alias=True, mode="json"),
    }


@app.post("/scraper/cancel", dependencies=[Depends(require_admin)])
async def cancel_run(crawl_runner: CrawlRunner = Depends(get_runner)):
    """Stop the active run before its next city."""
    cancelled = crawl_runner.cancel()
    return {"success": True, "data": {"cancelled": cancelled}}
