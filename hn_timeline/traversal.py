"""
Breadth-first comment traversal.

Two session kinds walk comment trees with an explicit FIFO queue instead of
recursion:

- `FeedCommentStream` interleaves several stories' trees to sample comments
  for the feed. It de-duplicates with a seen set.
- `StoryThreadSessions` pages through one story's whole tree. Every id is
  enqueued once by its discovering parent, tracked in a depth map.

In both, a child's depth is its parent's depth + 1, recorded when the child is
discovered. Items of one chunk are fetched concurrently and may complete in
any order; depth never depends on completion order.
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from typing import Iterable, Optional, Sequence

from hn_timeline.constants import (
    FEED_BATCH_SIZE,
    FEED_CONCURRENCY,
    FEED_PRIME_STORY_LIMIT,
    ROOT_HYDRATION_CONCURRENCY,
    THREAD_BATCH_SIZE,
    THREAD_CONCURRENCY,
)
from hn_timeline.fetching import ItemFetcher
from hn_timeline.logging_config import get_logger
from hn_timeline.mappers import to_comment, to_story
from hn_timeline.models import (
    Comment,
    CommentBatch,
    HNItem,
    QueueEntry,
    Story,
    StoryThreadPage,
)

logger = get_logger(__name__)


def story_key(stories: Iterable[Story]) -> str:
    return ",".join(str(story.id) for story in stories)


class StoryRootIndex:
    """Root comment ids per story id, shared by the snapshot cache and the feed stream."""

    def __init__(self, fetcher: ItemFetcher) -> None:
        self.fetcher = fetcher
        self._roots: dict[int, list[int]] = {}

    def __contains__(self, story_id: int) -> bool:
        return story_id in self._roots

    def get(self, story_id: int) -> list[int]:
        return self._roots.get(story_id, [])

    def replace(self, items: Iterable[HNItem]) -> None:
        self._roots.clear()
        for item in items:
            self._roots[item["id"]] = list(item.get("kids") or [])

    def clear(self) -> None:
        self._roots.clear()

    async def ensure(
        self,
        story_ids: Sequence[int],
        concurrency: int = ROOT_HYDRATION_CONCURRENCY,
    ) -> None:
        missing = [sid for sid in story_ids if sid not in self._roots]
        if not missing:
            logger.debug("roots-ready", story_count=len(story_ids))
            return

        logger.debug("roots-hydration-start", missing_story_ids=missing)
        for item in await self.fetcher.fetch_items(missing, concurrency):
            self._roots[item["id"]] = list(item.get("kids") or [])
        # Unavailable stories still get an entry so they are not re-fetched.
        for sid in missing:
            self._roots.setdefault(sid, [])
        logger.debug("roots-hydration-done", hydrated=len(missing))


@dataclass
class FeedCommentSession:
    story_key: str
    story_by_id: dict[int, Story]
    queue: deque[QueueEntry]
    seen_comment_ids: set[int] = field(default_factory=set)
    exhausted: bool = False


class FeedCommentStream:
    """Cross-story comment sampling session."""

    def __init__(self, fetcher: ItemFetcher, roots: StoryRootIndex) -> None:
        self.fetcher = fetcher
        self.roots = roots
        self.session: Optional[FeedCommentSession] = None

    def reset(self) -> None:
        self.session = None

    async def prime(
        self,
        stories: Sequence[Story],
        reset: bool = False,
        story_ids: Optional[Sequence[int]] = None,
        story_limit: int = FEED_PRIME_STORY_LIMIT,
    ) -> None:
        """
        Make sure the roots of the target stories are known, then rebuild the
        queue unless the live session already covers the same story list.

        Re-priming with an unchanged story list keeps the session (and its
        position) unless `reset` is set.
        """
        target_ids = (
            list(story_ids)
            if story_ids
            else [story.id for story in stories[:story_limit]]
        )
        await self.roots.ensure(target_ids)

        key = story_key(stories)
        if not reset and self.session is not None and self.session.story_key == key:
            return

        targets = set(target_ids)
        queue: deque[QueueEntry] = deque()
        for story in stories:
            if story.id not in targets:
                continue
            for root_id in self.roots.get(story.id):
                queue.append(QueueEntry(story.id, root_id, 0))

        self.session = FeedCommentSession(
            story_key=key,
            story_by_id={story.id: story for story in stories},
            queue=queue,
            exhausted=not queue,
        )
        logger.debug(
            "prime-feed-comment-session",
            story_count=len(stories),
            target_story_count=len(target_ids),
            queue_size=len(queue),
            reset=reset,
        )

    async def next_batch(
        self,
        batch_size: int = FEED_BATCH_SIZE,
        concurrency: int = FEED_CONCURRENCY,
    ) -> CommentBatch:
        session = self.session
        if session is None:
            logger.warning("comment-batch-no-session")
            return CommentBatch()

        comments: list[Comment] = []
        while session.queue and len(comments) < batch_size:
            chunk = [
                session.queue.popleft()
                for _ in range(min(max(1, concurrency), len(session.queue)))
            ]
            items = await self.fetcher.fetch_chunk([e.comment_id for e in chunk])

            for index, (entry, item) in enumerate(zip(chunk, items)):
                if len(comments) >= batch_size:
                    # Batch is full: hand the rest of the chunk back, in order.
                    session.queue.extendleft(reversed(chunk[index:]))
                    break
                if item is None or entry.comment_id in session.seen_comment_ids:
                    continue
                story = session.story_by_id.get(entry.story_id)
                if story is None:
                    continue

                session.seen_comment_ids.add(entry.comment_id)
                comment = to_comment(item, story, entry.depth)
                if comment:
                    comments.append(comment)
                for kid in item.get("kids") or []:
                    if kid not in session.seen_comment_ids:
                        session.queue.append(
                            QueueEntry(entry.story_id, kid, entry.depth + 1)
                        )

        session.exhausted = not session.queue
        logger.debug(
            "comment-batch-result",
            requested_batch_size=batch_size,
            returned_comments=len(comments),
            remaining_queue=len(session.queue),
            has_more=not session.exhausted,
        )
        return CommentBatch(comments=comments, has_more=not session.exhausted)


@dataclass
class StoryThreadSession:
    story: Story
    queue: deque[int]
    depth_by_id: dict[int, int]
    comments: list[Comment] = field(default_factory=list)

    @classmethod
    def seed(cls, story: Story, root_ids: Sequence[int]) -> StoryThreadSession:
        unique_ids = list(dict.fromkeys(root_ids))
        return cls(
            story=story,
            queue=deque(unique_ids),
            depth_by_id={rid: 0 for rid in unique_ids},
        )

    @property
    def has_more(self) -> bool:
        return bool(self.queue)

    async def drain(
        self, fetcher: ItemFetcher, limit: int, concurrency: int
    ) -> list[Comment]:
        """Advance the walk until `limit` new comments are mapped or the queue empties."""
        added: list[Comment] = []
        while self.queue and len(added) < limit:
            chunk = [
                self.queue.popleft()
                for _ in range(min(max(1, concurrency), len(self.queue)))
            ]
            items = await fetcher.fetch_chunk(chunk)

            for index, (comment_id, item) in enumerate(zip(chunk, items)):
                if len(added) >= limit:
                    self.queue.extendleft(reversed(chunk[index:]))
                    break
                if item is None:
                    continue
                depth = self.depth_by_id.get(comment_id, 0)
                comment = to_comment(item, self.story, depth)
                if comment:
                    self.comments.append(comment)
                    added.append(comment)
                for kid in item.get("kids") or []:
                    if kid not in self.depth_by_id:
                        self.depth_by_id[kid] = depth + 1
                        self.queue.append(kid)
        return added


class StoryThreadSessions:
    """Resumable per-story pagination, keyed by story id."""

    def __init__(self, fetcher: ItemFetcher) -> None:
        self.fetcher = fetcher
        self._sessions: dict[int, StoryThreadSession] = {}

    def reset(self) -> None:
        self._sessions.clear()

    def warm_count(self, story_id: int) -> int:
        session = self._sessions.get(story_id)
        return len(session.comments) if session else 0

    async def _create(self, story_id: int) -> Optional[StoryThreadSession]:
        item = await self.fetcher.fetch_item(story_id)
        if not item:
            return None
        story = to_story(item)
        if not story:
            return None
        return StoryThreadSession.seed(story, item.get("kids") or [])

    async def get_page(
        self,
        story_id: int,
        batch_size: int = THREAD_BATCH_SIZE,
        concurrency: int = THREAD_CONCURRENCY,
        reset: bool = False,
    ) -> Optional[StoryThreadPage]:
        if reset:
            self._sessions.pop(story_id, None)

        session = self._sessions.get(story_id)
        if session is None:
            session = await self._create(story_id)
            if session is None:
                logger.debug("thread-session-unavailable", story_id=story_id)
                return None
            self._sessions[story_id] = session

        added = await session.drain(self.fetcher, batch_size, concurrency)
        logger.debug(
            "thread-page",
            story_id=story_id,
            added=len(added),
            total=len(session.comments),
            has_more=session.has_more,
        )
        return StoryThreadPage(
            story=session.story,
            comments=list(session.comments),
            has_more=session.has_more,
        )


async def sample_story_comments(
    fetcher: ItemFetcher,
    story: Story,
    root_ids: Sequence[int],
    max_comments: int,
    concurrency: int = THREAD_CONCURRENCY,
) -> list[Comment]:
    """One-shot bounded breadth-first sample of a story's comments."""
    session = StoryThreadSession.seed(story, root_ids)
    return await session.drain(fetcher, max_comments, concurrency)
