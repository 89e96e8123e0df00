import pytest

from hn_timeline.mappers import to_story
from hn_timeline.traversal import (
    FeedCommentStream,
    StoryRootIndex,
    StoryThreadSessions,
    sample_story_comments,
    story_key,
)


@pytest.fixture
def two_stories(fake_client, story_item, comment_item):
    fake_client.add(
        story_item(1, kids=[10, 11]),
        story_item(2, kids=[20]),
        comment_item(10, parent=1, kids=[12]),
        comment_item(11, parent=1),
        comment_item(12, parent=10),
        comment_item(20, parent=2),
    )
    return [to_story(fake_client.items[1]), to_story(fake_client.items[2])]


@pytest.fixture
def stream(fetcher):
    return FeedCommentStream(fetcher, StoryRootIndex(fetcher))


def test_story_key(two_stories):
    assert story_key(two_stories) == "1,2"
    assert story_key([]) == ""


class TestStoryRootIndex:
    @pytest.mark.asyncio
    async def test_ensure_fetches_only_missing(self, fake_client, fetcher, story_item):
        fake_client.add(story_item(1, kids=[5, 6]), story_item(2, kids=[7]))
        roots = StoryRootIndex(fetcher)
        roots.replace([story_item(1, kids=[5, 6])])

        await roots.ensure([1, 2])

        assert fake_client.calls == [2]
        assert roots.get(1) == [5, 6]
        assert roots.get(2) == [7]

    @pytest.mark.asyncio
    async def test_unavailable_story_gets_empty_roots(self, fake_client, fetcher):
        roots = StoryRootIndex(fetcher)
        await roots.ensure([404])
        assert 404 in roots
        assert roots.get(404) == []

        await roots.ensure([404])
        assert fake_client.calls == [404]


class TestFeedCommentStream:
    @pytest.mark.asyncio
    async def test_no_session_returns_empty_batch(self, stream):
        batch = await stream.next_batch()
        assert batch.comments == []
        assert batch.has_more is False

    @pytest.mark.asyncio
    async def test_breadth_first_across_stories(self, stream, two_stories):
        await stream.prime(two_stories)
        batch = await stream.next_batch(batch_size=10, concurrency=6)

        assert [c.id for c in batch.comments] == [10, 11, 20, 12]
        assert {c.id: c.depth for c in batch.comments} == {10: 0, 11: 0, 20: 0, 12: 1}
        assert {c.id: c.story_id for c in batch.comments} == {10: 1, 11: 1, 20: 2, 12: 1}
        assert batch.has_more is False

    @pytest.mark.asyncio
    async def test_full_batch_requeues_rest_of_chunk(self, stream, two_stories):
        await stream.prime(two_stories)

        first = await stream.next_batch(batch_size=2, concurrency=6)
        assert [c.id for c in first.comments] == [10, 11]
        assert first.has_more is True

        second = await stream.next_batch(batch_size=2, concurrency=6)
        assert [c.id for c in second.comments] == [20, 12]
        assert second.has_more is False

    @pytest.mark.asyncio
    async def test_comment_reachable_twice_is_emitted_once(
        self, fake_client, stream, story_item, comment_item
    ):
        fake_client.add(
            story_item(1, kids=[10, 11]),
            comment_item(10, parent=1, kids=[12]),
            comment_item(11, parent=1, kids=[12]),
            comment_item(12, parent=10),
        )
        await stream.prime([to_story(fake_client.items[1])])
        batch = await stream.next_batch(batch_size=10)

        assert [c.id for c in batch.comments] == [10, 11, 12]

    @pytest.mark.asyncio
    async def test_skips_unavailable_and_invalid_but_follows_kids(
        self, fake_client, stream, story_item, comment_item
    ):
        fake_client.add(
            story_item(1, kids=[10, 11, 404]),
            comment_item(10, parent=1, kids=[13], deleted=True),
            comment_item(11, parent=1),
            comment_item(13, parent=10),
        )
        await stream.prime([to_story(fake_client.items[1])])
        batch = await stream.next_batch(batch_size=10)

        assert [c.id for c in batch.comments] == [11, 13]
        assert batch.comments[1].depth == 1

    @pytest.mark.asyncio
    async def test_exhausted_session_is_idempotent(self, fake_client, stream, two_stories):
        await stream.prime(two_stories)
        await stream.next_batch(batch_size=10)
        calls = list(fake_client.calls)

        for _ in range(2):
            batch = await stream.next_batch(batch_size=10)
            assert batch.comments == []
            assert batch.has_more is False
        assert fake_client.calls == calls

    @pytest.mark.asyncio
    async def test_prime_with_same_stories_keeps_position(self, stream, two_stories):
        await stream.prime(two_stories)
        session = stream.session
        await stream.next_batch(batch_size=2)

        await stream.prime(two_stories)
        assert stream.session is session

        batch = await stream.next_batch(batch_size=10)
        assert [c.id for c in batch.comments] == [20, 12]

    @pytest.mark.asyncio
    async def test_prime_with_reset_starts_over(self, stream, two_stories):
        await stream.prime(two_stories)
        await stream.next_batch(batch_size=10)

        await stream.prime(two_stories, reset=True)
        batch = await stream.next_batch(batch_size=10)
        assert [c.id for c in batch.comments] == [10, 11, 20, 12]

    @pytest.mark.asyncio
    async def test_prime_targets_story_ids(self, stream, two_stories):
        await stream.prime(two_stories, story_ids=[2])
        batch = await stream.next_batch(batch_size=10)
        assert [c.id for c in batch.comments] == [20]

    @pytest.mark.asyncio
    async def test_prime_respects_story_limit(self, stream, two_stories):
        await stream.prime(two_stories, story_limit=1)
        batch = await stream.next_batch(batch_size=10)
        assert [c.story_id for c in batch.comments] == [1, 1, 1]

    @pytest.mark.asyncio
    async def test_prime_without_comments_is_exhausted(self, fake_client, stream, story_item):
        fake_client.add(story_item(1))
        await stream.prime([to_story(fake_client.items[1])])
        assert stream.session.exhausted is True

    @pytest.mark.asyncio
    async def test_reset_drops_session(self, stream, two_stories):
        await stream.prime(two_stories)
        stream.reset()
        assert stream.session is None


class TestStoryThreadSessions:
    @pytest.fixture
    def thread_items(self, fake_client, story_item, comment_item):
        fake_client.add(
            story_item(100, kids=[1, 2]),
            comment_item(1, parent=100, kids=[3]),
            comment_item(2, parent=100),
            comment_item(3, parent=1),
        )

    @pytest.mark.asyncio
    async def test_pages_are_cumulative(self, fetcher, thread_items):
        sessions = StoryThreadSessions(fetcher)

        first = await sessions.get_page(100, batch_size=2)
        assert [c.id for c in first.comments] == [1, 2]
        assert first.has_more is True

        second = await sessions.get_page(100, batch_size=2)
        assert [c.id for c in second.comments] == [1, 2, 3]
        assert second.comments[2].depth == 1
        assert second.has_more is False
        assert sessions.warm_count(100) == 3

    @pytest.mark.asyncio
    async def test_reset_page_starts_over(self, fetcher, thread_items):
        sessions = StoryThreadSessions(fetcher)
        await sessions.get_page(100, batch_size=10)

        page = await sessions.get_page(100, batch_size=1, reset=True)
        assert [c.id for c in page.comments] == [1]

    @pytest.mark.asyncio
    async def test_repeated_root_ids_emit_once(
        self, fake_client, fetcher, story_item, comment_item
    ):
        fake_client.add(
            story_item(200, kids=[1, 2, 1]),
            comment_item(1, parent=200),
            comment_item(2, parent=200),
        )
        sessions = StoryThreadSessions(fetcher)

        page = await sessions.get_page(200, batch_size=10)

        assert [c.id for c in page.comments] == [1, 2]
        assert page.has_more is False

    @pytest.mark.asyncio
    async def test_unknown_story_is_none(self, fake_client, fetcher, comment_item):
        fake_client.add(comment_item(5, parent=1))
        sessions = StoryThreadSessions(fetcher)

        assert await sessions.get_page(404) is None
        assert await sessions.get_page(5) is None
        assert sessions.warm_count(404) == 0

    @pytest.mark.asyncio
    async def test_reset_clears_all_sessions(self, fetcher, thread_items):
        sessions = StoryThreadSessions(fetcher)
        await sessions.get_page(100)
        sessions.reset()
        assert sessions.warm_count(100) == 0


@pytest.mark.asyncio
async def test_sample_story_comments_is_bounded(fake_client, fetcher, story_item, comment_item):
    fake_client.add(
        story_item(1, kids=[10, 11, 12]),
        *(comment_item(i, parent=1) for i in (10, 11, 12)),
    )
    story = to_story(fake_client.items[1])

    comments = await sample_story_comments(fetcher, story, [10, 11, 12], max_comments=2)

    assert [c.id for c in comments] == [10, 11]
