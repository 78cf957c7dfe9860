"""Verify MongoDB connectivity, create indexes and show what the scraper has stored."""

import asyncio

from tipnaden.db import CATEGORIES, EVENTS, LOCATIONS, close_db, get_client, get_db, init_db


async def main() -> None:
    client = get_client()
    db = get_db()

    result = await client.admin.command("ping")
    print(f"MongoDB ping: {result}")

    await init_db()
    print("Indexes created.")

    collections = await db.list_collection_names()
    print(f"Collections in '{db.name}': {collections}")
    for name in (CATEGORIES, LOCATIONS, EVENTS):
        print(f"  {name:<12} {await db[name].count_documents({})}")

    await close_db()
    print("Done.")


if __name__ == "__main__":
    asyncio.run(main())
