"""Headless browser session used to load JavaScript-rendered listing pages."""

import base64
from datetime import datetime
from pathlib import Path
from typing import Any

import structlog
from crawl4ai import AsyncWebCrawler, BrowserConfig, CacheMode, CrawlerRunConfig

from tipnaden.config import Settings, settings as default_settings

logger = structlog.get_logger(__name__, component="browser")

NO_SANDBOX_ARGS = ["--no-sandbox", "--disable-setuid-sandbox"]


class FetchError(RuntimeError):
    """The browser could not load a page."""


class BrowserSession:
    """
    Owns one headless Chromium process for the duration of a crawl run.

    ``open()`` is idempotent and ``close()`` never raises, so the session can
    be released from a ``finally`` block (or ``async with``) no matter how far
    the run got.
    """

    def __init__(self, config: Settings | None = None):
        self.settings = config or default_settings
        self._crawler: AsyncWebCrawler | None = None

    @property
    def is_open(self) -> bool:
        return self._crawler is not None

    def _browser_config(self) -> BrowserConfig:
        return BrowserConfig(
            headless=True,
            text_mode=False,
            user_agent=self.settings.user_agent,
            extra_args=list(NO_SANDBOX_ARGS) if self.settings.browser_no_sandbox else [],
            verbose=False,
        )

    def _run_config(self) -> CrawlerRunConfig:
        run_config_kw: dict[str, Any] = {
            "cache_mode": CacheMode.BYPASS,
            "wait_until": "networkidle",
            "page_timeout": self.settings.page_timeout_ms,
            "delay_before_return_html": self.settings.settle_delay_seconds,
        }
        if self.settings.debug_mode:
            run_config_kw["screenshot"] = True
        return CrawlerRunConfig(**run_config_kw)

    async def open(self) -> None:
        if self._crawler is not None:
            return
        logger.info("browser_starting", no_sandbox=self.settings.browser_no_sandbox)
        crawler = AsyncWebCrawler(config=self._browser_config())
        try:
            await crawler.start()
        except Exception:
            # A half-started browser may still hold a child process
            try:
                await crawler.close()
            except Exception as e:
                logger.error("browser_close_failed", error=str(e))
            raise
        self._crawler = crawler

    async def close(self) -> None:
        crawler, self._crawler = self._crawler, None
        if crawler is None:
            return
        try:
            await crawler.close()
            logger.info("browser_closed")
        except Exception as e:
            logger.error("browser_close_failed", error=str(e))

    async def fetch_html(self, url: str) -> str:
        """Load ``url``, wait for the network to settle and return the rendered HTML."""
        await self.open()
        result = await self._crawler.arun(url=url, config=self._run_config())

        if not result.success:
            raise FetchError(f"Crawl failed for {url}: {result.error_message}")

        if self.settings.debug_mode and result.screenshot:
            self._save_screenshot(url, result.screenshot)

        return result.html or ""

    def _save_screenshot(self, url: str, screenshot_b64: str) -> None:
        debug_dir = Path(self.settings.debug_dir)
        debug_dir.mkdir(parents=True, exist_ok=True)
        name = "".join(c if c.isalnum() else "_" for c in url.split("://", 1)[-1])[:80]
        path = debug_dir / f"{name}_{datetime.now():%Y%m%d%H%M%S}.png"
        try:
            path.write_bytes(base64.b64decode(screenshot_b64))
            logger.debug("screenshot_saved", path=str(path))
        except (OSError, ValueError) as e:
            logger.warning("screenshot_failed", error=str(e))

    async def __aenter__(self) -> "BrowserSession":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()
