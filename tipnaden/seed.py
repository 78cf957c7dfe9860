"""Seed the lookup collections the scraper reads: categories and well-known locations."""

import asyncio
import sys
from datetime import datetime, timezone

from tipnaden.db import CATEGORIES, LOCATIONS, close_db, get_db, init_db
from tipnaden.models import Category, CategoryName, Location, LocationVenue, VenueType
from tipnaden.normalizer import slugify

DEFAULT_CATEGORIES: list[Category] = [
    Category(name=name, slug=slugify(name), description=description, icon=icon, color=color)
    for name, description, icon, color in (
        (CategoryName.CONCERTS.value, "Hudební koncerty všech žánrů", "music", "#FF6B6B"),
        (CategoryName.THEATER.value, "Divadelní představení a muzikály", "theater", "#4ECDC4"),
        (CategoryName.SPORTS.value, "Sportovní události a zápasy", "sports", "#45B7D1"),
        (CategoryName.EXHIBITIONS.value, "Umělecké výstavy a galerie", "palette", "#96CEB4"),
        ("Vzdělávání", "Přednášky, workshopy a kurzy", "school", "#FFEAA7"),
        (CategoryName.FESTIVALS.value, "Hudební a kulturní festivaly", "festival", "#DDA0DD"),
        (CategoryName.FILM.value, "Filmové projekce a premiéry", "movie", "#FFB6C1"),
        ("Gastro", "Gastronomické události a degustace", "restaurant", "#F0AD4E"),
    )
]

DEFAULT_LOCATIONS: list[Location] = [
    Location(
        name="O2 Arena", address="Českomoravská 2345/17", city="Praha",
        region="Hlavní město Praha", postal_code="190 00",
        coordinates={"latitude": 50.1036, "longitude": 14.5206},
        venue=LocationVenue(type=VenueType.ARENA, capacity=18000, website="https://www.o2arena.cz"),
    ),
    Location(
        name="Národní divadlo", address="Národní 2", city="Praha",
        region="Hlavní město Praha", postal_code="110 00",
        coordinates={"latitude": 50.0811, "longitude": 14.4137},
        venue=LocationVenue(
            type=VenueType.THEATER, capacity=1500, website="https://www.narodni-divadlo.cz"
        ),
    ),
    Location(
        name="Janáčkovo divadlo", address="Rooseveltova 1", city="Brno",
        region="Jihomoravský kraj", postal_code="602 00",
        coordinates={"latitude": 49.1925, "longitude": 16.6070},
        venue=LocationVenue(type=VenueType.THEATER, capacity=1155, website="https://www.ndbrno.cz"),
    ),
    Location(
        name="Dolní Vítkovice", address="Ruská 2993/37", city="Ostrava",
        region="Moravskoslezský kraj", postal_code="703 00",
        coordinates={"latitude": 49.8164, "longitude": 18.2765},
        venue=LocationVenue(
            type=VenueType.OUTDOOR, capacity=25000, website="https://www.dolnivitkovice.cz"
        ),
    ),
]


async def _upsert(collection: str, docs: list[dict], key: list[str]) -> tuple[int, int]:
    """Insert new documents and refresh existing ones matched on ``key``."""
    db = get_db()
    saved = 0
    updated = 0
    for doc in docs:
        created_at = doc.pop("createdAt")
        doc["updatedAt"] = datetime.now(timezone.utc)
        result = await db[collection].update_one(
            {k: doc[k] for k in key},
            {"$set": doc, "$setOnInsert": {"createdAt": created_at}},
            upsert=True,
        )
        if result.upserted_id:
            saved += 1
        else:
            updated += 1
    return saved, updated


async def seed_categories() -> tuple[int, int]:
    docs = [c.to_document() for c in DEFAULT_CATEGORIES]
    return await _upsert(CATEGORIES, docs, ["name"])


async def seed_locations() -> tuple[int, int]:
    docs = [loc.to_document() for loc in DEFAULT_LOCATIONS]
    return await _upsert(LOCATIONS, docs, ["name", "city"])


async def main() -> None:
    """CLI: ``python -m tipnaden.seed [categories|locations|all]``."""
    what = sys.argv[1] if len(sys.argv) > 1 else "all"
    if what not in ("categories", "locations", "all"):
        print("Usage: python -m tipnaden.seed [categories|locations|all]")
        sys.exit(1)

    try:
        await init_db()
        if what in ("categories", "all"):
            saved, updated = await seed_categories()
            print(f"Categories: {saved} new, {updated} already existed (updated).")
        if what in ("locations", "all"):
            saved, updated = await seed_locations()
            print(f"Locations: {saved} new, {updated} already existed (updated).")
    finally:
        await close_db()


if __name__ == "__main__":
    asyncio.run(main())
