"""Persist normalized events: resolve category/location references, dedupe by slug, insert."""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Iterable, Mapping, Optional, Protocol

import structlog
from bson import ObjectId
from pydantic import ValidationError
from pymongo.errors import DuplicateKeyError

from tipnaden.db import CATEGORIES, EVENTS, LOCATIONS
from tipnaden.models import (
    DEFAULT_CATEGORY,
    UNKNOWN_ADDRESS,
    Event,
    EventDateTime,
    EventMedia,
    EventOrganizer,
    EventPricing,
    EventSEO,
    EventSource,
    Location,
    ScrapedEvent,
    SourcePlatform,
)
from tipnaden.normalizer import REGIONS, build_slug, region_for_city, suffix_slug

logger = structlog.get_logger(__name__, component="writer")

ORGANIZER_NAME = "Goout.net"
META_TITLE_LENGTH = 60
META_DESCRIPTION_LENGTH = 160


class DocumentStore(Protocol):
    async def find_one(self, collection: str, filter: dict[str, Any]) -> Optional[dict]: ...

    async def insert_one(self, collection: str, document: dict[str, Any]) -> dict: ...

    async def create(self, collection: str, document: dict[str, Any]) -> dict: ...

    async def count_documents(self, collection: str, filter: dict[str, Any]) -> int: ...


class MissingDefaultCategoryError(LookupError):
    """The default category is not in the store; the categories were never seeded."""


class _AlreadyStored(Exception):
    pass


@dataclass
class SaveStats:
    saved: int = 0
    duplicates: int = 0
    failed: int = 0
    config_errors: int = 0


class EventWriter:
    """Writes ScrapedEvents one by one, in order, skipping ones already stored."""

    def __init__(self, store: DocumentStore, *, regions: Mapping[str, str] = REGIONS):
        self.store = store
        self.regions = regions

    async def save_events(self, events: Iterable[ScrapedEvent]) -> SaveStats:
        events = list(events)
        stats = SaveStats()
        logger.info("saving_events", count=len(events))

        for event in events:
            log = logger.bind(title=event.title, source_url=event.source_url)
            try:
                slug = await self._save_one(event)
            except _AlreadyStored as e:
                stats.duplicates += 1
                log.debug("event_duplicate_skipped", slug=str(e))
            except MissingDefaultCategoryError as e:
                stats.config_errors += 1
                log.error("default_category_missing", error=str(e), hint="run `python -m tipnaden.seed`")
            except ValidationError as e:
                stats.failed += 1
                log.error("event_invalid", errors=e.errors(include_url=False))
            except Exception as e:
                stats.failed += 1
                log.error("event_save_failed", error=str(e), error_type=type(e).__name__)
            else:
                stats.saved += 1
                log.info("event_saved", slug=slug, category=event.category_name.value)

        logger.info(
            "events_saved",
            saved=stats.saved,
            duplicates=stats.duplicates,
            failed=stats.failed,
            config_errors=stats.config_errors,
        )
        return stats

    # -----------------------------------------------------------------------

    async def _save_one(self, event: ScrapedEvent) -> str:
        category = await self._resolve_category(event.category_name.value)
        location = await self._resolve_location(event)
        slug = await self._unique_slug(event)

        doc = self._build_event(event, category["_id"], location["_id"], slug).to_document()
        try:
            await self.store.insert_one(EVENTS, doc)
        except DuplicateKeyError:
            # Another writer stored the same slug between our check and insert
            raise _AlreadyStored(slug)
        return slug

    async def _resolve_category(self, name: str) -> dict:
        category = await self.store.find_one(CATEGORIES, {"name": name})
        if category is not None:
            return category

        logger.warning("category_not_found", category=name, fallback=DEFAULT_CATEGORY.value)
        category = await self.store.find_one(CATEGORIES, {"name": DEFAULT_CATEGORY.value})
        if category is None:
            raise MissingDefaultCategoryError(
                f'Default category "{DEFAULT_CATEGORY.value}" not found'
            )
        return category

    async def _resolve_location(self, event: ScrapedEvent) -> dict:
        location = await self.store.find_one(
            LOCATIONS, {"name": event.venue_name, "city": event.city}
        )
        if location is not None:
            return location

        new_location = Location(
            name=event.venue_name,
            address=event.venue_address or UNKNOWN_ADDRESS,
            city=event.city,
            region=region_for_city(event.city, self.regions),
        )
        logger.info("location_created", name=event.venue_name, city=event.city)
        return await self.store.create(LOCATIONS, new_location.to_document())

    async def _unique_slug(self, event: ScrapedEvent) -> str:
        """
        Pick the slug for ``event`` or raise _AlreadyStored.

        A slug held by the same source URL means the event was scraped before.
        A slug held by a different source URL is a distinct event with the
        same title and day, which gets the URL-hash suffixed slug instead.
        An event without a real date has a slug that moves with the crawl
        day, so it is matched on its source URL first.
        """
        if event.date_is_fallback:
            existing = await self.store.find_one(
                EVENTS,
                {"source.platform": SourcePlatform.SCRAPED_WEB.value, "source.sourceUrl": event.source_url},
            )
            if existing is not None:
                raise _AlreadyStored((existing.get("seo") or {}).get("slug", event.source_url))

        slug = build_slug(event.title, event.start_date)
        existing = await self.store.find_one(EVENTS, {"seo.slug": slug})
        if existing is None:
            return slug
        if _source_url(existing) == event.source_url:
            raise _AlreadyStored(slug)

        suffixed = suffix_slug(slug, event.source_url)
        if await self.store.find_one(EVENTS, {"seo.slug": suffixed}) is not None:
            raise _AlreadyStored(suffixed)
        return suffixed

    def _build_event(
        self, event: ScrapedEvent, category_id: ObjectId, location_id: ObjectId, slug: str
    ) -> Event:
        now = datetime.now(timezone.utc)
        return Event(
            title=event.title,
            description=event.description,
            short_description=event.description[:META_DESCRIPTION_LENGTH],
            category=category_id,
            tags=[event.category_name.value.lower()],
            date_time=EventDateTime(start=event.start_date),
            location=location_id,
            pricing=EventPricing(
                is_free=event.is_free,
                price_from=None if event.is_free else event.price,
                price_to=None if event.is_free else event.price_to,
            ),
            media=EventMedia(main_image=event.image_url, gallery=[]),
            organizer=EventOrganizer(name=ORGANIZER_NAME),
            source=EventSource(
                platform=SourcePlatform.SCRAPED_WEB,
                source_url=event.source_url,
                last_synced=now,
            ),
            seo=EventSEO(
                slug=slug,
                meta_title=event.title[:META_TITLE_LENGTH],
                meta_description=event.description[:META_DESCRIPTION_LENGTH],
            ),
            published_at=now,
            created_at=now,
            updated_at=now,
        )


def _source_url(doc: dict) -> Optional[str]:
    return (doc.get("source") or {}).get("sourceUrl")
