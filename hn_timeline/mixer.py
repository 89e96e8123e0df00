"""Deterministic interleaving of stories and comments into one feed."""

from __future__ import annotations

import math
from typing import Callable, Sequence, TypeVar

from hn_timeline.constants import DEFAULT_STORY_RATIO, LCG_MODULUS, LCG_MULTIPLIER
from hn_timeline.models import Comment, FeedEntry, Story

T = TypeVar("T")


def seeded_random(seed: int) -> Callable[[], float]:
    """Park-Miller generator yielding floats in [0, 1). Same seed, same sequence."""
    # fmod keeps the sign of the seed, so negative seeds stay distinct from
    # their positive counterparts.
    state = int(math.fmod(seed, LCG_MODULUS))
    if state <= 0:
        state += LCG_MODULUS - 1

    def random() -> float:
        nonlocal state
        state = (state * LCG_MULTIPLIER) % LCG_MODULUS
        return (state - 1) / (LCG_MODULUS - 1)

    return random


def shuffle(values: Sequence[T], random: Callable[[], float]) -> list[T]:
    arr = list(values)
    for i in range(len(arr) - 1, 0, -1):
        j = math.floor(random() * (i + 1))
        arr[i], arr[j] = arr[j], arr[i]
    return arr


def mix_feed(
    stories: Sequence[Story],
    comments: Sequence[Comment],
    seed: int,
    story_ratio: float = DEFAULT_STORY_RATIO,
) -> list[FeedEntry]:
    """
    Shuffle both pools, then draw from them until both are empty.

    Each step takes a story with probability `story_ratio` while stories
    remain, and is forced onto whichever pool is non-empty once the other runs
    out. Draw order is fixed (story shuffle, comment shuffle, then one draw per
    step while stories remain), so the output depends only on the inputs and
    the seed.
    """
    random = seeded_random(seed)
    story_pool = shuffle(stories, random)
    comment_pool = shuffle(comments, random)
    story_pool.reverse()
    comment_pool.reverse()
    output: list[FeedEntry] = []

    while story_pool or comment_pool:
        pick_story = (bool(story_pool) and random() < story_ratio) or not comment_pool
        if pick_story and story_pool:
            output.append(FeedEntry.for_story(story_pool.pop()))
            continue
        if comment_pool:
            output.append(FeedEntry.for_comment(comment_pool.pop()))

    return output
