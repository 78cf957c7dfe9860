import re
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Literal, Optional

from bson import ObjectId
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

_URL_RE = re.compile(r"^https?://.+")
_SLUG_RE = re.compile(r"^[a-z0-9-]+$")

UNKNOWN_VENUE = "Neznámé místo"
UNKNOWN_CITY = "Neznámé"
UNKNOWN_REGION = "Jiný kraj"
UNKNOWN_ADDRESS = "Adresa neuvedena"
DEFAULT_COUNTRY = "Česká republika"
DEFAULT_TIMEZONE = "Europe/Prague"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _check_url(value: Optional[str]) -> Optional[str]:
    if value is not None and not _URL_RE.match(value):
        raise ValueError(f"not an absolute http(s) URL: {value!r}")
    return value


class CategoryName(str, Enum):
    """Closed taxonomy of categories the scraper can assign."""

    CONCERTS = "Koncerty"
    THEATER = "Divadla"
    SPORTS = "Sport"
    FESTIVALS = "Festivaly"
    FILM = "Film"
    EXHIBITIONS = "Výstavy"

    UNCLASSIFIED = "Nezařazeno"
    """No keyword group matched. Never stored; resolved to DEFAULT_CATEGORY."""


DEFAULT_CATEGORY = CategoryName.EXHIBITIONS


class SourcePlatform(str, Enum):
    FACEBOOK = "facebook"
    EVENTBRITE = "eventbrite"
    SCRAPED_WEB = "scraped_web"
    MANUAL = "manual"
    API = "api"


class EventStatus(str, Enum):
    ACTIVE = "active"
    CANCELLED = "cancelled"
    POSTPONED = "postponed"
    SOLD_OUT = "sold_out"


class VenueType(str, Enum):
    ARENA = "arena"
    THEATER = "theater"
    CLUB = "club"
    OUTDOOR = "outdoor"
    ONLINE = "online"
    OTHER = "other"


# ---------------------------------------------------------------------------
# Scrape-time models
# ---------------------------------------------------------------------------


class RawTile(BaseModel):
    """Fields pulled out of one event tile on a listing page."""

    title: str
    link: str = Field(..., description="Absolute URL of the event detail page")
    image_url: Optional[str] = None
    date_text: str = Field("", description="Text of the tile's date element")
    tile_text: str = Field("", description="All text of the tile, scanned when date_text has no date")
    venue_name: Optional[str] = None
    price_text: Optional[str] = None


class ScrapedEvent(BaseModel):
    """A tile normalized into platform values, ready for the writer."""

    model_config = ConfigDict(frozen=True)

    title: str
    description: str
    source_url: str
    image_url: Optional[str] = None
    start_date: datetime
    date_is_fallback: bool = False  # start_date is the one-week placeholder
    category_name: CategoryName = DEFAULT_CATEGORY
    venue_name: str = UNKNOWN_VENUE
    venue_address: str = ""
    city: str = UNKNOWN_CITY
    price: Optional[float] = None
    price_to: Optional[float] = None
    is_free: bool = True

    @field_validator("source_url")
    @classmethod
    def _source_url_is_absolute(cls, v: str) -> str:
        return _check_url(v)


# ---------------------------------------------------------------------------
# Stored documents (camelCase on disk, shared with the public API)
# ---------------------------------------------------------------------------


class _Document(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        arbitrary_types_allowed=True,
        use_enum_values=True,
    )

    def to_document(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class EventDateTime(_Document):
    start: datetime
    end: Optional[datetime] = None
    is_multi_day: bool = False
    timezone: str = DEFAULT_TIMEZONE


class EventPricing(_Document):
    is_free: bool = False
    currency: Literal["CZK", "EUR", "USD"] = "CZK"
    price_from: Optional[float] = Field(None, ge=0)
    price_to: Optional[float] = Field(None, ge=0)

    @model_validator(mode="after")
    def _consistent_prices(self) -> "EventPricing":
        if self.is_free:
            self.price_from = None
            self.price_to = None
            return self
        if self.price_from is None:
            raise ValueError("price is required for paid events")
        if self.price_to is not None and self.price_to < self.price_from:
            raise ValueError("price_to must be greater than price_from")
        return self


class EventMedia(_Document):
    main_image: Optional[str] = None
    gallery: list[str] = Field(default_factory=list)

    @field_validator("main_image")
    @classmethod
    def _main_image_is_absolute(cls, v: Optional[str]) -> Optional[str]:
        return _check_url(v)


class EventOrganizer(_Document):
    name: str = Field(..., min_length=1, max_length=200)
    website: Optional[str] = None


class EventSource(_Document):
    platform: SourcePlatform
    source_id: Optional[str] = None
    source_url: str
    last_synced: datetime = Field(default_factory=_utcnow)

    @field_validator("source_url")
    @classmethod
    def _source_url_is_absolute(cls, v: str) -> str:
        return _check_url(v)


class EventSEO(_Document):
    slug: str = Field(..., min_length=1)
    meta_title: Optional[str] = Field(None, max_length=60)
    meta_description: Optional[str] = Field(None, max_length=160)

    @field_validator("slug")
    @classmethod
    def _slug_charset(cls, v: str) -> str:
        if not _SLUG_RE.match(v):
            raise ValueError("slug can only contain lowercase letters, numbers and hyphens")
        return v


class EventStats(_Document):
    views: int = 0
    favorites: int = 0
    shares: int = 0


class Event(_Document):
    """An event document as stored in the ``events`` collection."""

    title: str = Field(..., min_length=1, max_length=200)
    description: str = Field(..., max_length=5000)
    short_description: Optional[str] = Field(None, max_length=300)
    category: ObjectId
    tags: list[str] = Field(default_factory=list)
    date_time: EventDateTime
    location: ObjectId
    pricing: EventPricing
    media: EventMedia = Field(default_factory=EventMedia)
    organizer: EventOrganizer
    source: EventSource
    status: EventStatus = EventStatus.ACTIVE
    seo: EventSEO
    stats: EventStats = Field(default_factory=EventStats)
    is_published: bool = True
    is_featured: bool = False
    published_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)


class LocationVenue(_Document):
    type: VenueType = VenueType.OTHER
    capacity: Optional[int] = Field(None, ge=0)
    website: Optional[str] = None


class Location(_Document):
    """A venue in the ``locations`` collection."""

    name: str = Field(..., min_length=1, max_length=200)
    address: str = Field(..., min_length=1, max_length=300)
    city: str = Field(..., min_length=1, max_length=100)
    region: str = Field(..., min_length=1, max_length=100)
    postal_code: Optional[str] = None
    country: str = DEFAULT_COUNTRY
    coordinates: Optional[dict[str, float]] = None
    venue: LocationVenue = Field(default_factory=LocationVenue)
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)


class Category(_Document):
    """A category in the ``categories`` collection (seeded, never scraped)."""

    name: str = Field(..., min_length=1, max_length=100)
    slug: str
    description: Optional[str] = Field(None, max_length=500)
    icon: Optional[str] = None
    color: Optional[str] = None
    is_active: bool = True
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)


# ---------------------------------------------------------------------------
# Run results
# ---------------------------------------------------------------------------


class CityResult(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    city: str
    scraped: int = 0
    saved: int = 0
    duplicates: int = 0
    failed: int = 0
    error: Optional[str] = None


class CrawlResult(BaseModel):
    """Tally of one crawl run; the return value of the orchestrator."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    total_scraped: int = 0
    total_saved: int = 0
    cities: list[CityResult] = Field(default_factory=list)
    cancelled: bool = False
    started_at: datetime = Field(default_factory=_utcnow)
    finished_at: Optional[datetime] = None

    def add(self, city: CityResult) -> None:
        self.cities.append(city)
        self.total_scraped += city.scraped
        self.total_saved += city.saved
