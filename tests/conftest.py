"""Shared fixtures: an in-memory document store and a fake browser session."""

import copy
from collections import defaultdict
from datetime import datetime, timezone
from typing import Any, Optional

import pytest
from bson import ObjectId
from pymongo.errors import DuplicateKeyError

from tipnaden.db import CATEGORIES, EVENTS
from tipnaden.models import CategoryName
from tipnaden.normalizer import SOURCE_TZ


def _lookup(doc: dict, dotted_key: str) -> Any:
    value: Any = doc
    for part in dotted_key.split("."):
        if not isinstance(value, dict) or part not in value:
            return None
        value = value[part]
    return value


class FakeStore:
    """Store interface over plain lists; ``seo.slug`` is unique like the Mongo index."""

    def __init__(self):
        self.collections: dict[str, list[dict]] = defaultdict(list)

    def docs(self, collection: str) -> list[dict]:
        return self.collections[collection]

    def _matches(self, doc: dict, filter: dict[str, Any]) -> bool:
        return all(_lookup(doc, key) == value for key, value in filter.items())

    async def find_one(self, collection: str, filter: dict[str, Any]) -> Optional[dict]:
        for doc in self.collections[collection]:
            if self._matches(doc, filter):
                return copy.deepcopy(doc)
        return None

    async def insert_one(self, collection: str, document: dict[str, Any]) -> dict:
        if collection == EVENTS:
            slug = _lookup(document, "seo.slug")
            if any(_lookup(d, "seo.slug") == slug for d in self.collections[EVENTS]):
                raise DuplicateKeyError(f"E11000 duplicate key error: seo.slug {slug!r}")
        doc = copy.deepcopy(document)
        doc.setdefault("_id", ObjectId())
        self.collections[collection].append(doc)
        return copy.deepcopy(doc)

    async def create(self, collection: str, document: dict[str, Any]) -> dict:
        now = datetime.now(timezone.utc)
        return await self.insert_one(collection, {"createdAt": now, "updatedAt": now, **document})

    async def count_documents(self, collection: str, filter: dict[str, Any]) -> int:
        return sum(1 for doc in self.collections[collection] if self._matches(doc, filter))


class FakeSession:
    """Stands in for BrowserSession; serves canned HTML keyed by URL fragment."""

    def __init__(self, pages: Optional[dict[str, str]] = None, *, fail_open: bool = False):
        self.pages = pages or {}
        self.fail_open = fail_open
        self.open_calls = 0
        self.close_calls = 0
        self.fetched: list[str] = []

    async def open(self) -> None:
        self.open_calls += 1
        if self.fail_open:
            raise RuntimeError("browser failed to launch")

    async def close(self) -> None:
        self.close_calls += 1

    async def fetch_html(self, url: str) -> str:
        self.fetched.append(url)
        for fragment, html in self.pages.items():
            if fragment in url:
                if isinstance(html, Exception):
                    raise html
                return html
        return "<html><body></body></html>"

    async def __aenter__(self) -> "FakeSession":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()


def seed_categories(store: FakeStore, names=None) -> dict[str, ObjectId]:
    names = names or [c.value for c in CategoryName if c is not CategoryName.UNCLASSIFIED]
    ids = {}
    for name in names:
        _id = ObjectId()
        store.docs(CATEGORIES).append({"_id": _id, "name": name})
        ids[name] = _id
    return ids


def listing_page(*tiles: str) -> str:
    return f"<html><body><main>{''.join(tiles)}</main></body></html>"


def event_card(title: str, href: str, extra: str = "") -> str:
    return f'<div class="event-card"><h3>{title}</h3><a href="{href}">Detail</a>{extra}</div>'


@pytest.fixture
def store():
    """Store with every category seeded."""
    s = FakeStore()
    seed_categories(s)
    return s


@pytest.fixture
def empty_store():
    return FakeStore()


@pytest.fixture
def fixed_now():
    return datetime(2025, 5, 23, 12, 0, tzinfo=SOURCE_TZ)
