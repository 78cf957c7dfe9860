"""Tests for the maintenance CLI: category plan, stats, cleanup and reassignment."""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest
from bson import ObjectId

from tipnaden import maintenance
from tipnaden.db import CATEGORIES, EVENTS
from tipnaden.maintenance import SCRAPED_FILTER, plan_category_updates


def cursor(docs):
    c = MagicMock()
    c.to_list = AsyncMock(return_value=docs)
    return c


@pytest.fixture
def events():
    collection = MagicMock()
    collection.count_documents = AsyncMock(return_value=3)
    collection.delete_many = AsyncMock(return_value=SimpleNamespace(deleted_count=3))
    collection.update_one = AsyncMock()
    return collection


@pytest.fixture
def categories():
    return MagicMock()


@pytest.fixture
def db(monkeypatch, events, categories):
    collections = {EVENTS: events, CATEGORIES: categories}
    monkeypatch.setattr(maintenance, "get_db", lambda: collections)
    return collections


def test_only_changed_categories_are_planned():
    ids = {"Koncerty": ObjectId(), "Výstavy": ObjectId()}
    events = [
        {"_id": 1, "title": "Rock Tour 2025", "category": ids["Výstavy"]},
        {"_id": 2, "title": "Výstava Mucha", "category": ids["Výstavy"]},
        {"_id": 3, "title": "Koncert Lucie", "category": ids["Koncerty"]},
    ]

    assert plan_category_updates(events, ids) == [(1, ids["Koncerty"], "Koncerty")]


def test_unseeded_category_falls_back_to_default():
    ids = {"Koncerty": ObjectId(), "Výstavy": ObjectId()}
    events = [{"_id": 1, "title": "Hokej: Sparta - Kometa", "category": ids["Koncerty"]}]

    assert plan_category_updates(events, ids) == [(1, ids["Výstavy"], "Výstavy")]


def test_no_default_category_means_no_updates():
    events = [{"_id": 1, "title": "Modern Art Expo", "category": None}]

    assert plan_category_updates(events, {"Koncerty": ObjectId()}) == []


class TestClearScraped:
    @pytest.mark.asyncio
    async def test_deletes_only_scraped_events(self, db, events, monkeypatch, capsys):
        monkeypatch.setattr("builtins.input", lambda prompt: "y")

        await maintenance.clear_scraped()

        events.count_documents.assert_awaited_once_with(SCRAPED_FILTER)
        events.delete_many.assert_awaited_once_with({"source.platform": "scraped_web"})
        assert "Deleted 3 events." in capsys.readouterr().out

    @pytest.mark.asyncio
    async def test_declined_prompt_deletes_nothing(self, db, events, monkeypatch, capsys):
        monkeypatch.setattr("builtins.input", lambda prompt: "n")

        await maintenance.clear_scraped()

        events.delete_many.assert_not_awaited()
        assert "Cancelled." in capsys.readouterr().out

    @pytest.mark.asyncio
    async def test_assume_yes_skips_prompt(self, db, events, monkeypatch):
        def no_prompt(prompt):
            raise AssertionError("prompted despite --yes")

        monkeypatch.setattr("builtins.input", no_prompt)

        await maintenance.clear_scraped(assume_yes=True)

        events.delete_many.assert_awaited_once_with(SCRAPED_FILTER)

    @pytest.mark.asyncio
    async def test_nothing_to_delete(self, db, events, capsys):
        events.count_documents.return_value = 0

        await maintenance.clear_scraped(assume_yes=True)

        events.delete_many.assert_not_awaited()
        assert "No scraped events to delete." in capsys.readouterr().out


class TestReassignCategories:
    @pytest.mark.asyncio
    async def test_updates_only_changed_scraped_events(self, db, events, categories, capsys):
        ids = {"Koncerty": ObjectId(), "Výstavy": ObjectId()}
        categories.find = MagicMock(
            return_value=cursor([{"_id": _id, "name": name} for name, _id in ids.items()])
        )
        events.find = MagicMock(
            return_value=cursor(
                [
                    {"_id": 1, "title": "Rock Tour 2025", "category": ids["Výstavy"]},
                    {"_id": 2, "title": "Koncert Lucie", "category": ids["Koncerty"]},
                ]
            )
        )

        await maintenance.reassign_categories()

        events.find.assert_called_once_with(SCRAPED_FILTER, {"title": 1, "category": 1})
        events.update_one.assert_awaited_once()
        filter, update = events.update_one.await_args.args
        assert filter == {"_id": 1}
        assert set(update["$set"]) == {"category", "tags", "updatedAt"}
        assert update["$set"]["category"] == ids["Koncerty"]
        assert update["$set"]["tags"] == ["koncerty"]
        assert "reassigned 1" in capsys.readouterr().out

    @pytest.mark.asyncio
    async def test_missing_default_category(self, db, events, categories, capsys):
        categories.find = MagicMock(return_value=cursor([{"_id": ObjectId(), "name": "Koncerty"}]))
        events.find = MagicMock()

        await maintenance.reassign_categories()

        events.find.assert_not_called()
        events.update_one.assert_not_awaited()
        assert "not found" in capsys.readouterr().out


@pytest.mark.asyncio
async def test_show_stats(db, events, categories, capsys):
    koncerty, vystavy = ObjectId(), ObjectId()
    events.count_documents = AsyncMock(side_effect=[10, 7])
    events.aggregate = MagicMock(
        return_value=cursor([{"_id": vystavy, "count": 2}, {"_id": koncerty, "count": 5}])
    )
    categories.find = MagicMock(
        return_value=cursor([{"_id": koncerty, "name": "Koncerty"}, {"_id": vystavy, "name": "Výstavy"}])
    )

    await maintenance.show_stats()

    out = capsys.readouterr().out
    assert "Events total:    10" in out
    assert "Scraped (web):   7" in out
    assert "Other sources:   3" in out
    assert out.index("Koncerty") < out.index("Výstavy")
    [pipeline] = events.aggregate.call_args.args
    assert pipeline[0] == {"$match": SCRAPED_FILTER}


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "argv, target, kwargs",
    [
        (["maintenance"], "show_stats", {}),
        (["maintenance", "clear-scraped", "--yes"], "clear_scraped", {"assume_yes": True}),
        (["maintenance", "reassign-categories"], "reassign_categories", {}),
    ],
)
async def test_main_dispatches_and_closes_db(monkeypatch, argv, target, kwargs):
    command = AsyncMock()
    close_db = AsyncMock()
    monkeypatch.setattr(maintenance, target, command)
    monkeypatch.setattr(maintenance, "close_db", close_db)
    monkeypatch.setattr("sys.argv", argv)

    await maintenance.main()

    command.assert_awaited_once_with(**kwargs)
    close_db.assert_awaited_once_with()
