"""Typed data models for the HN timeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal, Optional, TypedDict

HNItemType = Literal["job", "story", "comment", "poll", "pollopt"]


class HNItem(TypedDict, total=False):
    """Raw item as served by the Firebase API. Only `id` is always present."""

    id: int
    deleted: bool
    type: HNItemType
    by: str
    time: int
    text: str
    dead: bool
    parent: int
    poll: int
    kids: list[int]
    url: str
    score: int
    title: str
    parts: list[int]
    descendants: int


class StoryDict(TypedDict):
    """Serialized Story payload for caching and API boundaries."""

    id: int
    title: str
    url: Optional[str]
    host: Optional[str]
    by: str
    score: int
    time: int
    comment_count: int


class CommentDict(TypedDict):
    """Serialized Comment payload for caching and API boundaries."""

    id: int
    by: str
    time: int
    text_html: str
    parent_id: int
    story_id: int
    story_title: str
    depth: int


class SnapshotDict(TypedDict):
    stories: list[StoryDict]
    comments: list[CommentDict]
    captured_at: float


@dataclass(frozen=True)
class Story:
    """A Hacker News story, validated from a raw item."""

    id: int
    title: str
    url: Optional[str]
    host: Optional[str]
    by: str
    score: int
    time: int
    comment_count: int = 0

    @classmethod
    def from_dict(cls, d: StoryDict) -> Story:
        """Create Story from dict (e.g., from cache/API response)."""
        return cls(
            id=int(d["id"]),
            title=str(d["title"]),
            url=d.get("url"),
            host=d.get("host"),
            by=str(d["by"]),
            score=int(d.get("score", 0)),
            time=int(d["time"]),
            comment_count=int(d.get("comment_count", 0)),
        )

    def to_dict(self) -> StoryDict:
        """Serialize to dict for caching."""
        return {
            "id": self.id,
            "title": self.title,
            "url": self.url,
            "host": self.host,
            "by": self.by,
            "score": self.score,
            "time": self.time,
            "comment_count": self.comment_count,
        }


@dataclass(frozen=True)
class Comment:
    """A comment positioned in its story's tree.

    `depth` is the distance from the traversal root (root comments are 0).
    `story_title` is carried along so a comment can be shown on its own.
    """

    id: int
    by: str
    time: int
    text_html: str
    parent_id: int
    story_id: int
    story_title: str
    depth: int

    @classmethod
    def from_dict(cls, d: CommentDict) -> Comment:
        return cls(
            id=int(d["id"]),
            by=str(d["by"]),
            time=int(d["time"]),
            text_html=str(d["text_html"]),
            parent_id=int(d["parent_id"]),
            story_id=int(d["story_id"]),
            story_title=str(d["story_title"]),
            depth=int(d["depth"]),
        )

    def to_dict(self) -> CommentDict:
        return {
            "id": self.id,
            "by": self.by,
            "time": self.time,
            "text_html": self.text_html,
            "parent_id": self.parent_id,
            "story_id": self.story_id,
            "story_title": self.story_title,
            "depth": self.depth,
        }


@dataclass
class Snapshot:
    """Latest top stories plus sampled comments, stamped in epoch milliseconds."""

    stories: list[Story]
    comments: list[Comment]
    captured_at: float

    @classmethod
    def from_dict(cls, d: SnapshotDict) -> Snapshot:
        return cls(
            stories=[Story.from_dict(s) for s in d["stories"]],
            comments=[Comment.from_dict(c) for c in d["comments"]],
            captured_at=float(d["captured_at"]),
        )

    def to_dict(self) -> SnapshotDict:
        return {
            "stories": [s.to_dict() for s in self.stories],
            "comments": [c.to_dict() for c in self.comments],
            "captured_at": self.captured_at,
        }


@dataclass(frozen=True)
class QueueEntry:
    """One pending comment in a breadth-first walk."""

    story_id: int
    comment_id: int
    depth: int


@dataclass
class FeedEntry:
    """A single slot of the mixed feed, either a story or a comment."""

    id: str
    kind: Literal["story", "comment"]
    story: Optional[Story] = None
    comment: Optional[Comment] = None

    @classmethod
    def for_story(cls, story: Story) -> FeedEntry:
        return cls(id=f"story-{story.id}", kind="story", story=story)

    @classmethod
    def for_comment(cls, comment: Comment) -> FeedEntry:
        return cls(id=f"comment-{comment.id}", kind="comment", comment=comment)

    def to_dict(self) -> dict[str, object]:
        payload: dict[str, object] = {"id": self.id, "kind": self.kind}
        if self.story is not None:
            payload["story"] = self.story.to_dict()
        if self.comment is not None:
            payload["comment"] = self.comment.to_dict()
        return payload


@dataclass
class CommentBatch:
    comments: list[Comment] = field(default_factory=list)
    has_more: bool = False

    def to_dict(self) -> dict[str, object]:
        return {
            "comments": [c.to_dict() for c in self.comments],
            "has_more": self.has_more,
        }


@dataclass
class StoryThreadPage:
    """A page of a story's thread. `comments` is cumulative, not just the new batch."""

    story: Story
    comments: list[Comment]
    has_more: bool

    def to_dict(self) -> dict[str, object]:
        return {
            "story": self.story.to_dict(),
            "comments": [c.to_dict() for c in self.comments],
            "has_more": self.has_more,
        }


@dataclass
class StoryThread:
    story: Story
    comments: list[Comment]

    def to_dict(self) -> dict[str, object]:
        return {
            "story": self.story.to_dict(),
            "comments": [c.to_dict() for c in self.comments],
        }


@dataclass
class CommentContext:
    """A comment with its owning story's thread and the raw parent chain.

    `parents` runs from the direct parent up to (and including) the story.
    """

    selected_id: int
    thread: StoryThread
    parents: list[HNItem]

    def to_dict(self) -> dict[str, object]:
        return {
            "selected_id": self.selected_id,
            "thread": self.thread.to_dict(),
            "parents": [dict(p) for p in self.parents],
        }


def merge_comments_by_id(current: list[Comment], incoming: list[Comment]) -> list[Comment]:
    """Append comments from `incoming` whose id is not already present."""
    if not incoming:
        return current
    seen = {c.id for c in current}
    merged = list(current)
    for comment in incoming:
        if comment.id not in seen:
            merged.append(comment)
            seen.add(comment.id)
    return merged
