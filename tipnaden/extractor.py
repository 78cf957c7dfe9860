"""Find event tiles on a rendered GoOut listing page and pull raw fields out of them."""

from typing import Optional, Protocol
from urllib.parse import urljoin

import structlog
from bs4 import BeautifulSoup, Tag

from tipnaden.config import Settings, settings as default_settings
from tipnaden.models import RawTile

logger = structlog.get_logger(__name__, component="extractor")

# Most specific first; the anchor pattern is the catch-all when the markup changes.
TILE_SELECTORS: tuple[str, ...] = (
    ".event-card",
    ".event",
    "[data-event]",
    "article",
    ".card",
    'a[href*="/akce/"]',
)

TITLE_SELECTOR = 'h1, h2, h3, h4, .title, [class*="title"]'
DATE_SELECTOR = 'time, .date, [class*="date"]'
VENUE_SELECTOR = '[class*="venue"], [class*="place"]'
PRICE_SELECTOR = '[class*="price"]'

FALLBACK_TITLE_LENGTH = 100
HTML_PREVIEW_LENGTH = 1000


class PageFetcher(Protocol):
    async def fetch_html(self, url: str) -> str: ...


def city_listing_url(city: str, config: Settings | None = None) -> str:
    base = (config or default_settings).source_base_url.rstrip("/")
    return f"{base}/{city}/akce/"


# ---------------------------------------------------------------------------
# Pure HTML helpers
# ---------------------------------------------------------------------------


def _text(el: Tag) -> str:
    return " ".join(el.get_text(" ", strip=True).split())


def _first_text(tile: Tag, selector: str) -> str:
    el = tile.select_one(selector)
    return _text(el) if el is not None else ""


def _image_url(tile: Tag, base_url: str) -> Optional[str]:
    img = tile.find("img")
    if img is None:
        return None
    for attr in ("src", "data-src"):
        value = (img.get(attr) or "").strip()
        if value and not value.startswith("data:"):
            return urljoin(base_url, value)
    return None


def discover_tiles(soup: BeautifulSoup) -> tuple[Optional[str], list[Tag]]:
    """Return the first selector in ``TILE_SELECTORS`` that matches, with its matches."""
    for selector in TILE_SELECTORS:
        tiles = soup.select(selector)
        logger.debug("selector_tested", selector=selector, matches=len(tiles))
        if tiles:
            return selector, tiles
    return None, []


def parse_tile(tile: Tag, base_url: str) -> Optional[RawTile]:
    """
    Extract raw fields from one tile element.

    Returns None when the tile has no usable title or link, or when its
    markup cannot be read at all; one bad tile never affects the others.
    """
    try:
        title = _first_text(tile, TITLE_SELECTOR)
        if not title:
            title = _text(tile)[:FALLBACK_TITLE_LENGTH].strip()

        link_el = tile.find("a", href=True) or tile
        href = (link_el.get("href") or "").strip()

        if not title or not href:
            return None

        tile_text = _text(tile)

        return RawTile(
            title=title,
            link=urljoin(base_url, href),
            image_url=_image_url(tile, base_url),
            date_text=_first_text(tile, DATE_SELECTOR) or tile_text,
            tile_text=tile_text,
            venue_name=_first_text(tile, VENUE_SELECTOR) or None,
            price_text=_first_text(tile, PRICE_SELECTOR) or None,
        )
    except Exception as e:
        logger.warning("tile_parse_failed", error=str(e))
        return None


def extract_tiles(
    html: str, base_url: str, limit: int
) -> tuple[Optional[str], list[RawTile]]:
    """
    Parse up to ``limit`` valid tiles from ``html`` in document order.

    Returns the selector that matched (None if none did) and the tiles.
    """
    soup = BeautifulSoup(html, "html.parser")
    selector, elements = discover_tiles(soup)

    tiles: list[RawTile] = []
    for element in elements:
        if len(tiles) >= limit:
            break
        tile = parse_tile(element, base_url)
        if tile is not None:
            tiles.append(tile)
    return selector, tiles


# ---------------------------------------------------------------------------
# Per-city scrape
# ---------------------------------------------------------------------------


async def scrape_city(
    session: PageFetcher,
    city: str,
    limit: int,
    config: Settings | None = None,
) -> list[RawTile]:
    """
    Load the listing page for ``city`` and return its raw tiles.

    Navigation errors, timeouts and pages without any known tile pattern all
    yield an empty list so the crawl can move on to the next city.
    """
    url = city_listing_url(city, config)
    log = logger.bind(city=city, url=url)
    log.info("city_page_loading")

    try:
        html = await session.fetch_html(url)
        log.debug("city_page_loaded", html_length=len(html))

        selector, tiles = extract_tiles(html, url, limit)
    except Exception as e:
        log.error("city_page_failed", error=str(e), error_type=type(e).__name__)
        return []

    if selector is None:
        log.warning(
            "no_tile_selector_matched",
            html_length=len(html),
            html_preview=html[:HTML_PREVIEW_LENGTH],
        )
        return []

    log.info("tiles_extracted", selector=selector, tiles=len(tiles))
    return tiles
