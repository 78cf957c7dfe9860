"""Turn raw tile text into typed event values: dates, categories, cities, slugs, prices."""

import hashlib
import re
import unicodedata
from datetime import datetime, timedelta
from typing import Mapping, Optional, Sequence
from zoneinfo import ZoneInfo

from tipnaden.models import (
    DEFAULT_CATEGORY,
    DEFAULT_TIMEZONE,
    UNKNOWN_CITY,
    UNKNOWN_REGION,
    UNKNOWN_VENUE,
    CategoryName,
    RawTile,
    ScrapedEvent,
)

SOURCE_TZ = ZoneInfo(DEFAULT_TIMEZONE)

FALLBACK_DAYS_AHEAD = 7
EVENT_HOUR = 20
SLUG_MAX_LENGTH = 50
EMPTY_SLUG = "udalost"

# ---------------------------------------------------------------------------
# Dates
# ---------------------------------------------------------------------------

# Genitive ("18. října") is what listings print; nominative is accepted too.
MONTHS: dict[str, int] = {
    "ledna": 1, "února": 2, "března": 3, "dubna": 4,
    "května": 5, "června": 6, "července": 7, "srpna": 8,
    "září": 9, "října": 10, "listopadu": 11, "prosince": 12,
    "leden": 1, "únor": 2, "březen": 3, "duben": 4,
    "květen": 5, "červen": 6, "červenec": 7, "srpen": 8,
    "říjen": 10, "listopad": 11, "prosinec": 12,
}

_DAY_MONTH_RE = re.compile(r"(\d{1,2})\.\s*([^\W\d_]+)")


def _now() -> datetime:
    return datetime.now(SOURCE_TZ)


def match_date(text: str, now: Optional[datetime] = None) -> Optional[datetime]:
    """
    Resolve ``"<day>. <month-name>"`` text to a concrete start time, or None.

    The first match with a known Czech month name wins and is placed in the
    current year at 20:00; dates already behind today roll over to next
    year.
    """
    if now is None:
        now = _now()

    for match in _DAY_MONTH_RE.finditer(text or ""):
        month = MONTHS.get(match.group(2).lower())
        if month is None:
            continue
        day = int(match.group(1))
        try:
            start = now.replace(
                month=month, day=day, hour=EVENT_HOUR, minute=0, second=0, microsecond=0
            )
            if start.date() < now.date():
                start = start.replace(year=now.year + 1)
        except ValueError:
            # e.g. "31. února", or 29 Feb rolled into a common year
            continue
        return start
    return None


def fallback_date(now: Optional[datetime] = None) -> datetime:
    return (now or _now()) + timedelta(days=FALLBACK_DAYS_AHEAD)


def parse_date(text: str, now: Optional[datetime] = None) -> datetime:
    """Like ``match_date``, but text without a usable date resolves to one week from ``now``."""
    if now is None:
        now = _now()
    return match_date(text, now) or fallback_date(now)


# ---------------------------------------------------------------------------
# Categories
# ---------------------------------------------------------------------------

CategoryRules = Sequence[tuple[CategoryName, Sequence[str]]]

DEFAULT_CATEGORY_RULES: CategoryRules = (
    (
        CategoryName.CONCERTS,
        (
            "tour", "koncert", "show", "harlej", "floyd", "rybičky", "dyk",
            "quartet", "invasion", "hudba", "music",
        ),
    ),
    (CategoryName.THEATER, ("divadl", "theatre", "prohlíd")),
    (CategoryName.SPORTS, ("sport", "hokej", "fotbal")),
    (CategoryName.FESTIVALS, ("festival",)),
    (CategoryName.FILM, ("film", "kino")),
    (CategoryName.EXHIBITIONS, ("výstav", "exhibition", "expozice", "museum")),
)


def classify_title(title: str, rules: CategoryRules = DEFAULT_CATEGORY_RULES) -> CategoryName:
    """Return the first category whose keywords occur in ``title``, else UNCLASSIFIED."""
    lower = title.lower()
    for category, keywords in rules:
        if any(keyword in lower for keyword in keywords):
            return category
    return CategoryName.UNCLASSIFIED


def infer_category(title: str, rules: CategoryRules = DEFAULT_CATEGORY_RULES) -> CategoryName:
    category = classify_title(title, rules)
    return DEFAULT_CATEGORY if category is CategoryName.UNCLASSIFIED else category


# ---------------------------------------------------------------------------
# Cities and regions
# ---------------------------------------------------------------------------

REGIONS: dict[str, str] = {
    "Praha": "Hlavní město Praha",
    "Brno": "Jihomoravský kraj",
    "Ostrava": "Moravskoslezský kraj",
    "Plzeň": "Plzeňský kraj",
    "Liberec": "Liberecký kraj",
    "Olomouc": "Olomoucký kraj",
}


def canonicalize_city(city: Optional[str]) -> str:
    city = (city or "").strip()
    if not city:
        return UNKNOWN_CITY
    return city[0].upper() + city[1:]


def region_for_city(city: str, regions: Mapping[str, str] = REGIONS) -> str:
    return regions.get(city, UNKNOWN_REGION)


# ---------------------------------------------------------------------------
# Slugs
# ---------------------------------------------------------------------------


def slugify(text: str, max_length: int = SLUG_MAX_LENGTH) -> str:
    """ASCII, lowercase, hyphen-separated form of ``text``."""
    decomposed = unicodedata.normalize("NFD", text.lower())
    ascii_text = "".join(c for c in decomposed if not unicodedata.combining(c))
    slug = re.sub(r"[^a-z0-9\s-]", "", ascii_text)
    slug = re.sub(r"\s+", "-", slug.strip())
    slug = re.sub(r"-+", "-", slug)
    slug = slug[:max_length].strip("-")
    return slug or EMPTY_SLUG


def build_slug(title: str, start_date: datetime) -> str:
    """``<title slug>-<YYYY-MM-DD>``; deterministic for a given title and date."""
    return f"{slugify(title)}-{start_date.date().isoformat()}"


def suffix_slug(slug: str, source_url: str) -> str:
    """Disambiguate ``slug`` with a short, stable hash of the event's source URL."""
    digest = hashlib.sha1(source_url.encode("utf-8")).hexdigest()[:6]
    return f"{slug}-{digest}"


# ---------------------------------------------------------------------------
# Prices
# ---------------------------------------------------------------------------

_FREE_RE = re.compile(r"\b(zdarma|free|vstup volný)\b", re.IGNORECASE)
# "1 290" groups thousands with a space; "99,50" uses a decimal comma
_AMOUNT = r"\d+(?:[ \u00a0]\d{3})*(?:[.,]\d+)?"
_AMOUNT_RE = re.compile(_AMOUNT)
_RANGE_END_RE = re.compile(rf"\s*[-–]\s*({_AMOUNT})")


def _amount(text: str) -> float:
    return float(re.sub(r"[ \u00a0]", "", text).replace(",", "."))


def parse_price(text: Optional[str]) -> tuple[Optional[float], Optional[float], bool]:
    """
    Return ``(price_from, price_to, is_free)`` from price text.

    The first amount in the text is the price, wherever the currency sits:
    ``"od 350 Kč"``, ``"Kč 350"`` and ``"Vstupné 350"`` all give 350. An
    amount followed by ``- <amount>`` is a range. Text with a free marker,
    or with no amount at all, is free: listings that show no price are
    mostly open events.
    """
    if not text or _FREE_RE.search(text):
        return None, None, True

    match = _AMOUNT_RE.search(text)
    if not match:
        return None, None, True
    price_from = _amount(match.group(0))

    price_to = None
    range_end = _RANGE_END_RE.match(text, match.end())
    if range_end:
        high = _amount(range_end.group(1))
        if high > price_from:
            price_to = high
    return price_from, price_to, False


# ---------------------------------------------------------------------------
# Tile -> ScrapedEvent
# ---------------------------------------------------------------------------


def describe(title: str) -> str:
    return f"Událost z Goout.net - {title}"


def normalize_tile(
    tile: RawTile,
    city: str,
    *,
    now: Optional[datetime] = None,
    rules: CategoryRules = DEFAULT_CATEGORY_RULES,
) -> ScrapedEvent:
    if now is None:
        now = _now()
    # The date element may hold only "Dnes" while the tile text carries the date
    start_date = match_date(tile.date_text, now) or match_date(tile.tile_text, now)
    price_from, price_to, is_free = parse_price(tile.price_text)
    return ScrapedEvent(
        title=tile.title,
        description=describe(tile.title),
        source_url=tile.link,
        image_url=tile.image_url or None,
        start_date=start_date or fallback_date(now),
        date_is_fallback=start_date is None,
        category_name=infer_category(tile.title, rules),
        venue_name=tile.venue_name or UNKNOWN_VENUE,
        venue_address="",
        city=canonicalize_city(city),
        price=price_from,
        price_to=price_to,
        is_free=is_free,
    )
