"""CLI for inspecting and cleaning up scraped events."""

import asyncio
import sys
from datetime import datetime, timezone
from typing import Any, Iterable

from bson import ObjectId

from tipnaden.db import CATEGORIES, EVENTS, close_db, get_db
from tipnaden.models import DEFAULT_CATEGORY, SourcePlatform
from tipnaden.normalizer import infer_category

SCRAPED_FILTER = {"source.platform": SourcePlatform.SCRAPED_WEB.value}


def plan_category_updates(
    events: Iterable[dict[str, Any]], category_ids: dict[str, ObjectId]
) -> list[tuple[ObjectId, ObjectId, str]]:
    """
    Re-run category inference on stored events.

    Returns ``(event_id, category_id, category_name)`` for every event whose
    inferred category differs from the stored one. Inferred categories that
    are not in ``category_ids`` fall back to the default category.
    """
    updates = []
    for event in events:
        name = infer_category(event.get("title", "")).value
        if name not in category_ids:
            name = DEFAULT_CATEGORY.value
        category_id = category_ids.get(name)
        if category_id is None or category_id == event.get("category"):
            continue
        updates.append((event["_id"], category_id, name))
    return updates


async def show_stats() -> None:
    db = get_db()
    total = await db[EVENTS].count_documents({})
    scraped = await db[EVENTS].count_documents(SCRAPED_FILTER)
    print(f"  Events total:    {total}")
    print(f"  Scraped (web):   {scraped}")
    print(f"  Other sources:   {total - scraped}")

    pipeline = [
        {"$match": SCRAPED_FILTER},
        {"$group": {"_id": "$category", "count": {"$sum": 1}}},
    ]
    by_category = await db[EVENTS].aggregate(pipeline).to_list(None)
    if not by_category:
        return
    names = {
        c["_id"]: c["name"]
        for c in await db[CATEGORIES].find(
            {"_id": {"$in": [row["_id"] for row in by_category]}}
        ).to_list(None)
    }
    print("\n  Scraped events by category:")
    for row in sorted(by_category, key=lambda r: -r["count"]):
        print(f"    {names.get(row['_id'], row['_id'])!s:<20} {row['count']}")


async def clear_scraped(*, assume_yes: bool = False) -> None:
    """Delete events that came from the scraper; manual and API events are kept."""
    db = get_db()
    count = await db[EVENTS].count_documents(SCRAPED_FILTER)
    if count == 0:
        print("No scraped events to delete.")
        return

    if not assume_yes:
        answer = input(f"Delete {count} scraped events? [y/N] ").strip().lower()
        if answer != "y":
            print("Cancelled.")
            return

    result = await db[EVENTS].delete_many(SCRAPED_FILTER)
    print(f"Deleted {result.deleted_count} events.")


async def reassign_categories() -> None:
    db = get_db()
    categories = await db[CATEGORIES].find().to_list(None)
    category_ids = {c["name"]: c["_id"] for c in categories}
    if DEFAULT_CATEGORY.value not in category_ids:
        print(f'Default category "{DEFAULT_CATEGORY.value}" not found. Run `python -m tipnaden.seed` first.')
        return

    events = await db[EVENTS].find(SCRAPED_FILTER, {"title": 1, "category": 1}).to_list(None)
    updates = plan_category_updates(events, category_ids)

    now = datetime.now(timezone.utc)
    for event_id, category_id, name in updates:
        await db[EVENTS].update_one(
            {"_id": event_id},
            {"$set": {"category": category_id, "tags": [name.lower()], "updatedAt": now}},
        )
    print(f"Checked {len(events)} scraped events, reassigned {len(updates)}.")


async def main() -> None:
    args = sys.argv[1:]

    try:
        if not args or args[0] == "stats":
            await show_stats()
        elif args[0] == "clear-scraped":
            await clear_scraped(assume_yes="--yes" in args)
        elif args[0] == "reassign-categories":
            await reassign_categories()
        else:
            print("Usage:")
            print("  python -m tipnaden.maintenance stats")
            print("  python -m tipnaden.maintenance clear-scraped [--yes]")
            print("  python -m tipnaden.maintenance reassign-categories")
    finally:
        await close_db()


if __name__ == "__main__":
    asyncio.run(main())
