from __future__ import annotations

from typing import Optional

from hn_timeline.constants import (
    ANCESTOR_MAX_HOPS,
    CONTEXT_THREAD_MAX_COMMENTS,
    STORY_THREAD_MAX_COMMENTS,
    THREAD_BATCH_SIZE,
)
from hn_timeline.fetching import ItemFetcher
from hn_timeline.logging_config import get_logger
from hn_timeline.models import CommentContext, HNItem, StoryThread
from hn_timeline.traversal import StoryThreadSessions

logger = get_logger(__name__)


async def get_story_thread(
    sessions: StoryThreadSessions,
    story_id: int,
    max_comments: int = STORY_THREAD_MAX_COMMENTS,
    batch_size: int = THREAD_BATCH_SIZE,
) -> Optional[StoryThread]:
    """Load a story's thread from scratch, page by page, up to `max_comments`."""
    page = await sessions.get_page(
        story_id, batch_size=min(max_comments, batch_size), reset=True
    )
    if page is None:
        return None

    while page.has_more and len(page.comments) < max_comments:
        next_page = await sessions.get_page(
            story_id, batch_size=min(batch_size, max_comments - len(page.comments))
        )
        if next_page is None:
            return None
        page = next_page

    return StoryThread(story=page.story, comments=page.comments[:max_comments])


async def resolve_comment_context(
    fetcher: ItemFetcher,
    sessions: StoryThreadSessions,
    comment_id: int,
    max_hops: int = ANCESTOR_MAX_HOPS,
    max_comments: int = CONTEXT_THREAD_MAX_COMMENTS,
) -> Optional[CommentContext]:
    """
    Walk a comment's parent links up to its story and load that story's thread.

    Returns None when the comment is unavailable, the chain breaks, or no story
    is reached within `max_hops` non-story ancestors (cyclic or malformed data).
    """
    selected = await fetcher.fetch_item(comment_id)
    if not selected or selected.get("type") != "comment":
        return None

    cursor = selected.get("parent")
    hops = 0
    story_id: Optional[int] = None
    parents: list[HNItem] = []

    while cursor and hops < max_hops:
        parent = await fetcher.fetch_item(cursor)
        if not parent:
            break
        parents.append(parent)
        if parent.get("type") == "story":
            story_id = parent["id"]
            break
        cursor = parent.get("parent")
        hops += 1

    if story_id is None:
        logger.debug("comment-context-not-found", comment_id=comment_id, hops=hops)
        return None

    thread = await get_story_thread(sessions, story_id, max_comments)
    if thread is None:
        return None
    return CommentContext(selected_id=comment_id, thread=thread, parents=parents)
