"""Conversion of raw Firebase items into validated entities."""

from __future__ import annotations

from typing import Optional

from hn_timeline.models import Comment, HNItem, Story
from hn_timeline.url_utils import parse_host


def to_story(item: HNItem) -> Optional[Story]:
    if item.get("type") != "story":
        return None
    title = item.get("title")
    by = item.get("by")
    created = item.get("time")
    if not title or not by or not created:
        return None

    url = item.get("url") or None
    descendants = item.get("descendants")
    if descendants is None:
        descendants = len(item.get("kids") or [])

    return Story(
        id=item["id"],
        title=title,
        url=url,
        host=parse_host(url) if url else None,
        by=by,
        score=item.get("score") or 0,
        time=created,
        comment_count=descendants,
    )


def to_comment(item: HNItem, story: Story, depth: int) -> Optional[Comment]:
    """Map a comment item found under `story` at `depth`.

    Deleted and dead comments, and any missing author, time, text or parent,
    yield None.
    """
    if item.get("type") != "comment" or item.get("deleted") or item.get("dead"):
        return None
    by = item.get("by")
    created = item.get("time")
    text = item.get("text")
    parent = item.get("parent")
    if not by or not created or not text or not parent:
        return None

    return Comment(
        id=item["id"],
        by=by,
        time=created,
        text_html=text,
        parent_id=parent,
        story_id=story.id,
        story_title=story.title,
        depth=depth,
    )
