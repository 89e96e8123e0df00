import asyncio
from typing import Optional

import pytest

from hn_timeline.fetching import ItemFetcher
from hn_timeline.storage import MemoryStore


class FakeHNClient:
    """In-memory stand-in for HNClient that records every request."""

    def __init__(self, items=None, top_ids=None):
        self.items: dict[int, dict] = dict(items or {})
        self.top_ids: list[int] = list(top_ids or [])
        self.calls: list[int] = []
        self.top_calls = 0
        self.in_flight = 0
        self.max_in_flight = 0
        self.gate: Optional[asyncio.Event] = None
        self.listing_error: Optional[Exception] = None
        self.closed = False

    def add(self, *items: dict) -> None:
        for item in items:
            self.items[item["id"]] = item

    async def list_top_ids(self) -> list[int]:
        self.top_calls += 1
        if self.listing_error is not None:
            raise self.listing_error
        return list(self.top_ids)

    async def get_item(self, item_id: int):
        self.calls.append(item_id)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.gate is not None:
                await self.gate.wait()
            else:
                await asyncio.sleep(0)
            return self.items.get(item_id)
        finally:
            self.in_flight -= 1

    async def close(self) -> None:
        self.closed = True


def make_story_item(story_id: int, kids=None, **overrides) -> dict:
    item = {
        "id": story_id,
        "type": "story",
        "title": f"Story {story_id}",
        "by": "alice",
        "time": 1700000000 + story_id,
        "score": 10,
        "url": f"https://www.example.com/{story_id}",
        "kids": list(kids or []),
    }
    item.update(overrides)
    return item


def make_comment_item(comment_id: int, parent: int, kids=None, **overrides) -> dict:
    item = {
        "id": comment_id,
        "type": "comment",
        "by": "bob",
        "time": 1700000100 + comment_id,
        "text": f"<p>Comment {comment_id}</p>",
        "parent": parent,
        "kids": list(kids or []),
    }
    item.update(overrides)
    return item


@pytest.fixture
def fake_client():
    return FakeHNClient()


@pytest.fixture
def fetcher(fake_client):
    return ItemFetcher(fake_client)


@pytest.fixture
def memory_store():
    return MemoryStore()


@pytest.fixture
def story_item():
    return make_story_item


@pytest.fixture
def comment_item():
    return make_comment_item
