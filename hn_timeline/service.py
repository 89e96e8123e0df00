from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Callable, Optional, Sequence

from hn_timeline.client import HNClient
from hn_timeline.config import Settings
from hn_timeline.constants import (
    FEED_PRIME_STORY_LIMIT,
    MAX_COMMENT_ROUTE_PREFETCHES,
    MAX_STORY_ROUTE_PREFETCHES,
    PREFETCH_STORY_BATCH_SIZE,
)
from hn_timeline.context import get_story_thread, resolve_comment_context
from hn_timeline.fetching import ItemFetcher
from hn_timeline.generation import RunGeneration
from hn_timeline.logging_config import get_logger
from hn_timeline.mixer import mix_feed
from hn_timeline.models import (
    Comment,
    CommentBatch,
    CommentContext,
    FeedEntry,
    Snapshot,
    Story,
    StoryThread,
    StoryThreadPage,
    merge_comments_by_id,
)
from hn_timeline.preview import PreviewCache, PreviewFetcher, StoryPreview
from hn_timeline.snapshot import SnapshotCache, now_ms
from hn_timeline.storage import FileStore, KeyValueStore, MemoryStore
from hn_timeline.traversal import (
    FeedCommentStream,
    StoryRootIndex,
    StoryThreadSessions,
    sample_story_comments,
)

logger = get_logger(__name__)


class FeedService:
    """
    Entry point for feeds, threads and comment context.

    Owns every piece of shared mutable state (item cache, snapshot cache,
    sessions, run generation), so separate instances never interfere.
    """

    def __init__(
        self,
        client: Optional[HNClient] = None,
        settings: Optional[Settings] = None,
        store: Optional[KeyValueStore] = None,
        preview_fetcher: Optional[PreviewFetcher] = None,
        clock: Callable[[], float] = now_ms,
    ) -> None:
        self.settings = settings or Settings()
        self.client = client or HNClient()
        self.store: KeyValueStore = store if store is not None else MemoryStore()
        self.fetcher = ItemFetcher(self.client)
        self.roots = StoryRootIndex(self.fetcher)
        self.snapshots = SnapshotCache(
            self.fetcher,
            self.client,
            self.store,
            self.roots,
            max_stories=self.settings.max_persisted_stories,
            max_comments=self.settings.max_persisted_comments,
            clock=clock,
        )
        self.feed_comments = FeedCommentStream(self.fetcher, self.roots)
        self.threads = StoryThreadSessions(self.fetcher)
        self.runs = RunGeneration()
        self.previews = preview_fetcher or PreviewFetcher(PreviewCache(self.store))
        self._story_prefetches: set[int] = set()
        self._comment_prefetches: set[int] = set()
        self._background: set[asyncio.Task] = set()

    @classmethod
    def from_settings(cls, settings: Settings) -> FeedService:
        """Build a service persisting to the configured cache directory."""
        return cls(settings=settings, store=FileStore(Path(settings.cache_dir)))

    # Snapshot

    async def get_top_stories_snapshot(
        self,
        story_limit: Optional[int] = None,
        max_age_ms: Optional[float] = None,
        force_refresh: bool = False,
        run_id: Optional[int] = None,
    ) -> Snapshot:
        """Top stories, committed to the cache only while `run_id` is current."""
        if run_id is None:
            run_id = self.runs.current
        return await self.snapshots.get_top_stories(
            story_limit=story_limit or self.settings.story_limit,
            max_age_ms=self.settings.snapshot_ttl_ms if max_age_ms is None else max_age_ms,
            force_refresh=force_refresh,
            should_commit=lambda: self.runs.is_current(run_id),
        )

    def get_persisted_snapshot(self) -> Optional[Snapshot]:
        return self.snapshots.get()

    def get_feed_cache_age_ms(self) -> Optional[float]:
        return self.snapshots.age_ms()

    async def get_feed_snapshot(
        self,
        story_limit: Optional[int] = None,
        max_comments_per_story: Optional[int] = None,
        max_age_ms: Optional[float] = None,
    ) -> Snapshot:
        """
        Top stories plus a small breadth-first comment sample from each.

        A zero `max_age_ms` forces a refresh and starts a new run, so batches
        loaded for earlier runs are discarded. Nothing is committed if the run
        is superseded while this is loading.
        """
        per_story = max_comments_per_story or self.settings.max_comments_per_story
        if max_age_ms is None:
            max_age_ms = self.settings.full_snapshot_ttl_ms
        forced = max_age_ms == 0
        run_id = self.runs.advance() if forced else self.runs.current

        stories_snapshot = await self.get_top_stories_snapshot(
            story_limit=story_limit,
            max_age_ms=max_age_ms,
            force_refresh=forced,
            run_id=run_id,
        )
        if self.runs.is_current(run_id):
            await self.roots.ensure([story.id for story in stories_snapshot.stories])
        if not self.runs.is_current(run_id):
            logger.debug("feed-snapshot-stale", run_id=run_id, current=self.runs.current)
            return stories_snapshot
        # Roots are all known here, so priming commits without yielding.
        await self.feed_comments.prime(stories_snapshot.stories, reset=forced)

        sampled = await asyncio.gather(
            *(
                sample_story_comments(
                    self.fetcher,
                    story,
                    self.roots.get(story.id)[: per_story * 2],
                    per_story,
                    self.settings.thread_concurrency,
                )
                for story in stories_snapshot.stories
            )
        )
        comments = merge_comments_by_id(
            stories_snapshot.comments,
            [comment for story_comments in sampled for comment in story_comments],
        )
        snapshot = Snapshot(
            stories=stories_snapshot.stories,
            comments=comments[: self.settings.max_persisted_comments],
            captured_at=self.snapshots.clock(),
        )
        if not self.runs.is_current(run_id):
            logger.debug("feed-snapshot-stale", run_id=run_id, current=self.runs.current)
            return snapshot
        return self.snapshots.set(snapshot)

    async def get_mixed_feed(
        self,
        seed: int,
        story_ratio: Optional[float] = None,
        max_age_ms: Optional[float] = None,
    ) -> list[FeedEntry]:
        snapshot = await self.get_feed_snapshot(max_age_ms=max_age_ms)
        ratio = self.settings.story_ratio if story_ratio is None else story_ratio
        return mix_feed(snapshot.stories, snapshot.comments, seed, ratio)

    def update_feed_cache_comments(self, comments: list[Comment]) -> Optional[Snapshot]:
        return self.snapshots.merge_comments(comments)

    # Feed comment stream

    async def prime_feed_comments(
        self,
        stories: Sequence[Story],
        reset: bool = False,
        story_ids: Optional[Sequence[int]] = None,
    ) -> None:
        await self.feed_comments.prime(stories, reset=reset, story_ids=story_ids)

    async def next_feed_comment_batch(
        self,
        batch_size: Optional[int] = None,
        concurrency: Optional[int] = None,
    ) -> CommentBatch:
        return await self.feed_comments.next_batch(
            batch_size=batch_size or self.settings.feed_batch_size,
            concurrency=concurrency or self.settings.feed_concurrency,
        )

    def start_run(self) -> int:
        return self.runs.advance()

    async def load_comment_batch(
        self,
        run_id: int,
        batch_size: Optional[int] = None,
        concurrency: Optional[int] = None,
    ) -> Optional[CommentBatch]:
        """
        Pull the next comment batch on behalf of `run_id`.

        Returns None, committing nothing, when the run was superseded while the
        batch was loading. Otherwise the comments are merged into the cache.
        """
        if not self.runs.is_current(run_id):
            return None
        batch = await self.next_feed_comment_batch(batch_size, concurrency)
        if not self.runs.is_current(run_id):
            logger.debug("comment-batch-stale", run_id=run_id, current=self.runs.current)
            return None
        if batch.comments:
            self.update_feed_cache_comments(batch.comments)
        return batch

    async def refresh(self, story_limit: Optional[int] = None) -> tuple[int, Snapshot]:
        """
        Force a new snapshot and comment session; results of earlier runs go stale.

        If a newer run starts while this one is loading, the session it set up
        is left alone.
        """
        run_id = self.runs.advance()
        snapshot = await self.get_top_stories_snapshot(
            story_limit=story_limit, force_refresh=True, run_id=run_id
        )
        if self.runs.is_current(run_id):
            await self.roots.ensure(
                [story.id for story in snapshot.stories[:FEED_PRIME_STORY_LIMIT]]
            )
        if not self.runs.is_current(run_id):
            logger.debug("refresh-stale", run_id=run_id, current=self.runs.current)
            return run_id, snapshot
        await self.feed_comments.prime(snapshot.stories, reset=True)
        return run_id, snapshot

    # Threads and context

    async def get_story_thread_page(
        self,
        story_id: int,
        batch_size: Optional[int] = None,
        concurrency: Optional[int] = None,
        reset: bool = False,
    ) -> Optional[StoryThreadPage]:
        return await self.threads.get_page(
            story_id,
            batch_size=batch_size or self.settings.thread_batch_size,
            concurrency=concurrency or self.settings.thread_concurrency,
            reset=reset,
        )

    async def get_story_thread(
        self, story_id: int, max_comments: Optional[int] = None
    ) -> Optional[StoryThread]:
        return await get_story_thread(
            self.threads,
            story_id,
            max_comments or self.settings.story_thread_max_comments,
            self.settings.thread_batch_size,
        )

    def get_story_thread_warm_count(self, story_id: int) -> int:
        return self.threads.warm_count(story_id)

    async def get_comment_context(self, comment_id: int) -> Optional[CommentContext]:
        return await resolve_comment_context(
            self.fetcher,
            self.threads,
            comment_id,
            max_hops=self.settings.ancestor_max_hops,
            max_comments=self.settings.context_thread_max_comments,
        )

    async def get_story_preview(self, url: str, host: Optional[str]) -> StoryPreview:
        return await self.previews.fetch(url, host)

    # Prefetch

    def _spawn(self, coro, on_done: Callable[[asyncio.Task], None]) -> asyncio.Task:
        task = asyncio.ensure_future(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        task.add_done_callback(on_done)
        return task

    def prefetch_story_route(self, story_id: int) -> Optional[asyncio.Task]:
        if story_id in self._story_prefetches:
            logger.debug("prefetch-story-skip-already-prefetched", story_id=story_id)
            return None
        if len(self._story_prefetches) >= MAX_STORY_ROUTE_PREFETCHES:
            logger.debug(
                "prefetch-story-skip-budget-exceeded",
                story_id=story_id,
                budget=MAX_STORY_ROUTE_PREFETCHES,
            )
            return None
        self._story_prefetches.add(story_id)
        logger.debug("prefetch-story-start", story_id=story_id)

        def done(task: asyncio.Task) -> None:
            if task.cancelled():
                return
            if task.exception() is not None:
                logger.warning(
                    "prefetch-story-failed", story_id=story_id, error=str(task.exception())
                )
                return
            page = task.result()
            logger.debug(
                "prefetch-story-done",
                story_id=story_id,
                has_result=page is not None,
                comment_count=len(page.comments) if page else 0,
            )

        return self._spawn(
            self.threads.get_page(story_id, batch_size=PREFETCH_STORY_BATCH_SIZE), done
        )

    def prefetch_comment_route(self, comment_id: int, story_id: int) -> Optional[asyncio.Task]:
        """Warm only the comment item; the thread loads when the route is opened."""
        if comment_id in self._comment_prefetches:
            logger.debug(
                "prefetch-comment-skip-already-prefetched",
                comment_id=comment_id,
                story_id=story_id,
            )
            return None
        if len(self._comment_prefetches) >= MAX_COMMENT_ROUTE_PREFETCHES:
            logger.debug(
                "prefetch-comment-skip-budget-exceeded",
                comment_id=comment_id,
                story_id=story_id,
                budget=MAX_COMMENT_ROUTE_PREFETCHES,
            )
            return None
        self._comment_prefetches.add(comment_id)
        logger.debug("prefetch-comment-start", comment_id=comment_id, story_id=story_id)

        def done(task: asyncio.Task) -> None:
            if task.cancelled():
                return
            if task.exception() is not None:
                logger.warning(
                    "prefetch-comment-failed",
                    comment_id=comment_id,
                    error=str(task.exception()),
                )
                return
            logger.debug(
                "prefetch-comment-item-done",
                comment_id=comment_id,
                has_item=task.result() is not None,
            )

        return self._spawn(self.fetcher.fetch_item(comment_id), done)

    # Lifecycle

    def reset(self) -> int:
        """Drop sessions, the memory snapshot and prefetch bookkeeping."""
        self.feed_comments.reset()
        self.threads.reset()
        self.snapshots.reset()
        self._story_prefetches.clear()
        self._comment_prefetches.clear()
        return self.runs.advance()

    async def aclose(self) -> None:
        tasks = list(self._background)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        await self.client.close()
        await self.previews.close()
