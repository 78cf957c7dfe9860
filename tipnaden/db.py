from datetime import datetime, timezone
from typing import Any, Optional

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase

from tipnaden.config import settings

EVENTS = "events"
CATEGORIES = "categories"
LOCATIONS = "locations"

_client: AsyncIOMotorClient | None = None


def get_client() -> AsyncIOMotorClient:
    global _client
    if _client is None:
        _client = AsyncIOMotorClient(settings.mongodb_uri, tz_aware=True)
    return _client


def get_db() -> AsyncIOMotorDatabase:
    return get_client()[settings.mongodb_db]


async def init_db() -> None:
    """Create indexes for the events, categories and locations collections."""
    db = get_db()

    # Events: the SEO slug is the deduplication key for scraped events
    await db[EVENTS].create_index("seo.slug", unique=True)
    await db[EVENTS].create_index([("source.platform", 1), ("source.sourceUrl", 1)])
    await db[EVENTS].create_index(
        [("dateTime.start", 1), ("status", 1), ("isPublished", 1)]
    )

    await db[CATEGORIES].create_index("name", unique=True)
    await db[LOCATIONS].create_index([("name", 1), ("city", 1)])


async def close_db() -> None:
    global _client
    if _client is not None:
        _client.close()
        _client = None


class MongoStore:
    """Document-collection operations the scraper needs, backed by Motor."""

    def __init__(self, db: Optional[AsyncIOMotorDatabase] = None):
        self.db = db if db is not None else get_db()

    async def find_one(self, collection: str, filter: dict[str, Any]) -> Optional[dict]:
        return await self.db[collection].find_one(filter)

    async def insert_one(self, collection: str, document: dict[str, Any]) -> dict:
        doc = dict(document)
        result = await self.db[collection].insert_one(doc)
        doc["_id"] = result.inserted_id
        return doc

    async def create(self, collection: str, document: dict[str, Any]) -> dict:
        """Insert with ``createdAt``/``updatedAt`` stamped if missing."""
        now = datetime.now(timezone.utc)
        doc = {"createdAt": now, "updatedAt": now, **document}
        return await self.insert_one(collection, doc)

    async def count_documents(self, collection: str, filter: dict[str, Any]) -> int:
        return await self.db[collection].count_documents(filter)
