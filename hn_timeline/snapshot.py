from __future__ import annotations

import json
import time
from typing import Callable, Optional

from hn_timeline.client import HNClient, UpstreamError
from hn_timeline.constants import (
    DEFAULT_STORY_LIMIT,
    FEED_STORAGE_KEY,
    MAX_PERSISTED_COMMENTS,
    MAX_PERSISTED_STORIES,
    SNAPSHOT_TTL_MS,
    TOP_STORIES_FETCH_CONCURRENCY,
)
from hn_timeline.fetching import ItemFetcher
from hn_timeline.logging_config import get_logger
from hn_timeline.mappers import to_story
from hn_timeline.models import (
    Comment,
    HNItem,
    Snapshot,
    SnapshotDict,
    Story,
    merge_comments_by_id,
)
from hn_timeline.storage import KeyValueStore
from hn_timeline.traversal import StoryRootIndex

logger = get_logger(__name__)


def now_ms() -> float:
    return time.time() * 1000


class SnapshotCache:
    """
    Latest top stories plus sampled comments, in memory and in a persistent store.

    Both tiers carry `captured_at` (epoch ms) for TTL checks. Persisted data is
    validated on read; anything unreadable counts as no snapshot at all.
    """

    def __init__(
        self,
        fetcher: ItemFetcher,
        client: HNClient,
        store: KeyValueStore,
        roots: StoryRootIndex,
        storage_key: str = FEED_STORAGE_KEY,
        max_stories: int = MAX_PERSISTED_STORIES,
        max_comments: int = MAX_PERSISTED_COMMENTS,
        clock: Callable[[], float] = now_ms,
    ) -> None:
        self.fetcher = fetcher
        self.client = client
        self.store = store
        self.roots = roots
        self.storage_key = storage_key
        self.max_stories = max_stories
        self.max_comments = max_comments
        self.clock = clock
        self._snapshot: Optional[Snapshot] = None

    def _read_persisted(self) -> Optional[Snapshot]:
        try:
            raw = self.store.get(self.storage_key)
        except Exception as e:
            logger.warning("snapshot-storage-read-failed", error=str(e))
            return None
        if not raw:
            return None
        try:
            data = json.loads(raw)
            if not isinstance(data, dict):
                return None
            if not isinstance(data.get("stories"), list) or not isinstance(
                data.get("comments"), list
            ):
                return None
            captured_at = data.get("captured_at")
            if isinstance(captured_at, bool) or not isinstance(captured_at, (int, float)):
                return None
            if not data["stories"]:
                return None
            snapshot = Snapshot.from_dict(
                SnapshotDict(
                    stories=data["stories"][: self.max_stories],
                    comments=data["comments"][: self.max_comments],
                    captured_at=captured_at,
                )
            )
        except (ValueError, TypeError, KeyError, AttributeError) as e:
            logger.debug("snapshot-persisted-malformed", error=str(e))
            return None
        return snapshot

    def _persist(self, snapshot: Snapshot) -> None:
        capped = Snapshot(
            stories=snapshot.stories,
            comments=snapshot.comments[: self.max_comments],
            captured_at=snapshot.captured_at,
        )
        try:
            self.store.set(self.storage_key, json.dumps(capped.to_dict()))
        except Exception as e:
            logger.warning("snapshot-storage-write-failed", error=str(e))

    def get(self) -> Optional[Snapshot]:
        """The memory snapshot if there is one, else the persisted one."""
        if self._snapshot is not None and self._snapshot.stories:
            if len(self._snapshot.comments) > self.max_comments:
                self._snapshot.comments = self._snapshot.comments[: self.max_comments]
            return self._snapshot
        persisted = self._read_persisted()
        if persisted is not None:
            self._snapshot = persisted
        return persisted

    def set(self, snapshot: Snapshot) -> Snapshot:
        self._snapshot = snapshot
        self._persist(snapshot)
        return snapshot

    def reset(self) -> None:
        """Drop the memory tier. The persisted tier is left as is."""
        self._snapshot = None

    def age_ms(self) -> Optional[float]:
        snapshot = self.get()
        if snapshot is None:
            return None
        return self.clock() - snapshot.captured_at

    def is_fresh(self, max_age_ms: float) -> bool:
        snapshot = self._snapshot
        return bool(
            snapshot
            and snapshot.stories
            and self.clock() - snapshot.captured_at < max_age_ms
        )

    def merge_comments(self, comments: list[Comment]) -> Optional[Snapshot]:
        current = self.get()
        if current is None:
            return None
        merged = merge_comments_by_id(current.comments, comments[: self.max_comments])
        return self.set(
            Snapshot(
                stories=current.stories,
                comments=merged[: self.max_comments],
                captured_at=self.clock(),
            )
        )

    async def _fetch_top_stories(self, limit: int) -> tuple[list[Story], list[HNItem]]:
        ids = (await self.client.list_top_ids())[:limit]
        items = await self.fetcher.fetch_items(ids, TOP_STORIES_FETCH_CONCURRENCY)
        stories: list[Story] = []
        story_items: list[HNItem] = []
        for item in items:
            story = to_story(item)
            if story:
                stories.append(story)
                story_items.append(item)
        return stories, story_items

    async def get_top_stories(
        self,
        story_limit: int = DEFAULT_STORY_LIMIT,
        max_age_ms: float = SNAPSHOT_TTL_MS,
        force_refresh: bool = False,
        should_commit: Optional[Callable[[], bool]] = None,
    ) -> Snapshot:
        """
        Serve the cached snapshot while fresh, otherwise fetch a new one.

        `should_commit` is consulted once the fetch returns; when it says no,
        the fetched snapshot is returned but neither the cache nor the root
        index is touched.
        """
        if self._snapshot is None and not force_refresh:
            self.get()
        cached = self._snapshot
        if not force_refresh and cached is not None and self.is_fresh(max_age_ms):
            logger.debug(
                "topstories-cache-hit",
                story_count=len(cached.stories),
                cache_age_ms=self.clock() - cached.captured_at,
            )
            return cached

        stories, story_items = await self._fetch_top_stories(story_limit)
        if not stories:
            raise UpstreamError(
                "Hacker News returned an empty top stories payload. This can "
                "happen during upstream outages or rate limiting."
            )

        story_ids = {story.id for story in stories}
        previous = [] if force_refresh or self._snapshot is None else self._snapshot.comments
        reusable = [c for c in previous if c.story_id in story_ids]
        snapshot = Snapshot(
            stories=stories,
            comments=reusable[: self.max_comments],
            captured_at=self.clock(),
        )
        if should_commit is not None and not should_commit():
            logger.debug("topstories-stale", story_count=len(stories))
            return snapshot

        self.roots.replace(story_items)
        self.set(snapshot)
        logger.debug(
            "topstories-fetched",
            story_count=len(snapshot.stories),
            reusable_comments=len(snapshot.comments),
        )
        return snapshot
