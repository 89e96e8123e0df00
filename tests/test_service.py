import asyncio

import pytest

from hn_timeline.config import Settings
from hn_timeline.service import FeedService
from hn_timeline.storage import FileStore, MemoryStore


@pytest.fixture
def seeded_client(fake_client, story_item, comment_item):
    fake_client.top_ids = [1, 2]
    fake_client.add(
        story_item(1, kids=[10, 11]),
        story_item(2, kids=[20]),
        comment_item(10, parent=1, kids=[12]),
        comment_item(11, parent=1),
        comment_item(12, parent=10),
        comment_item(20, parent=2),
    )
    return fake_client


@pytest.fixture
def service(seeded_client):
    return FeedService(client=seeded_client, store=MemoryStore())


@pytest.mark.asyncio
async def test_feed_snapshot_samples_each_story(service):
    snapshot = await service.get_feed_snapshot()

    assert [s.id for s in snapshot.stories] == [1, 2]
    assert [c.id for c in snapshot.comments] == [10, 11, 12, 20]
    assert service.get_persisted_snapshot() is snapshot


@pytest.mark.asyncio
async def test_feed_snapshot_respects_per_story_limit(service):
    snapshot = await service.get_feed_snapshot(max_comments_per_story=1)
    assert [c.id for c in snapshot.comments] == [10, 20]


@pytest.mark.asyncio
async def test_feed_snapshot_zero_age_forces_refresh(service, seeded_client):
    await service.get_feed_snapshot()
    await service.get_feed_snapshot()
    assert seeded_client.top_calls == 1

    await service.get_feed_snapshot(max_age_ms=0)
    assert seeded_client.top_calls == 2


@pytest.mark.asyncio
async def test_mixed_feed_is_deterministic(service):
    first = await service.get_mixed_feed(seed=7)
    second = await service.get_mixed_feed(seed=7)

    assert [e.id for e in first] == [e.id for e in second]
    assert sorted(e.id for e in first) == sorted(
        ["story-1", "story-2", "comment-10", "comment-11", "comment-12", "comment-20"]
    )


@pytest.mark.asyncio
async def test_comment_batch_for_current_run_is_merged(service):
    snapshot = await service.get_top_stories_snapshot()
    run_id = service.start_run()
    await service.prime_feed_comments(snapshot.stories)

    batch = await service.load_comment_batch(run_id, batch_size=2)

    assert [c.id for c in batch.comments] == [10, 11]
    assert batch.has_more is True
    assert [c.id for c in service.get_persisted_snapshot().comments] == [10, 11]


@pytest.mark.asyncio
async def test_comment_batch_for_stale_run_is_discarded(service, seeded_client):
    snapshot = await service.get_top_stories_snapshot()
    run_id = service.start_run()
    await service.prime_feed_comments(snapshot.stories)

    seeded_client.gate = asyncio.Event()
    pending = asyncio.ensure_future(service.load_comment_batch(run_id))
    await asyncio.sleep(0)
    service.start_run()
    seeded_client.gate.set()

    assert await pending is None
    assert service.get_persisted_snapshot().comments == []


@pytest.mark.asyncio
async def test_superseded_run_does_not_fetch(service, seeded_client):
    run_id = service.start_run()
    service.start_run()
    assert await service.load_comment_batch(run_id) is None
    assert seeded_client.calls == []


@pytest.mark.asyncio
async def test_forced_feed_supersedes_earlier_runs(service):
    await service.get_feed_snapshot()
    run_id = service.start_run()

    await service.get_mixed_feed(seed=1, max_age_ms=0)

    assert service.runs.current == run_id + 1
    assert await service.load_comment_batch(run_id) is None
    batch = await service.load_comment_batch(service.runs.current)
    assert [c.id for c in batch.comments] == [10, 11, 20, 12]


@pytest.mark.asyncio
async def test_reset_during_feed_snapshot_commits_nothing(service, seeded_client):
    seeded_client.gate = asyncio.Event()
    pending = asyncio.ensure_future(service.get_feed_snapshot(max_age_ms=10**9))
    await asyncio.sleep(0)

    service.reset()
    seeded_client.gate.set()
    snapshot = await pending

    assert [s.id for s in snapshot.stories] == [1, 2]
    assert service.snapshots._snapshot is None
    assert service.store.data == {}
    assert service.feed_comments.session is None


@pytest.mark.asyncio
async def test_superseded_refresh_leaves_session_alone(service, seeded_client):
    seeded_client.gate = asyncio.Event()
    pending = asyncio.ensure_future(service.refresh())
    await asyncio.sleep(0)

    service.reset()
    seeded_client.gate.set()
    run_id, snapshot = await pending

    assert not service.runs.is_current(run_id)
    assert [s.id for s in snapshot.stories] == [1, 2]
    assert service.feed_comments.session is None
    assert service.get_persisted_snapshot() is None


@pytest.mark.asyncio
async def test_refresh_forces_new_snapshot_and_session(service, seeded_client):
    await service.get_top_stories_snapshot()
    old_run = service.runs.current

    run_id, snapshot = await service.refresh()

    assert run_id == old_run + 1
    assert seeded_client.top_calls == 2
    assert [s.id for s in snapshot.stories] == [1, 2]
    batch = await service.load_comment_batch(run_id)
    assert [c.id for c in batch.comments] == [10, 11, 20, 12]


@pytest.mark.asyncio
async def test_update_feed_cache_comments(service):
    await service.get_top_stories_snapshot()
    page = await service.get_story_thread_page(1)

    updated = service.update_feed_cache_comments(page.comments)

    assert [c.id for c in updated.comments] == [10, 11, 12]
    assert service.get_feed_cache_age_ms() == pytest.approx(0, abs=1000)


@pytest.mark.asyncio
async def test_thread_and_context(service):
    thread = await service.get_story_thread(1)
    assert [c.id for c in thread.comments] == [10, 11, 12]

    context = await service.get_comment_context(12)
    assert [p["id"] for p in context.parents] == [10, 1]
    assert service.get_story_thread_warm_count(1) == 3


@pytest.mark.asyncio
async def test_story_prefetch_budget_and_dedup(service):
    tasks = [service.prefetch_story_route(story_id) for story_id in (1, 2, 3, 4, 5)]

    assert all(t is not None for t in tasks[:4])
    assert tasks[4] is None
    assert service.prefetch_story_route(1) is None

    await asyncio.gather(*tasks[:4])
    assert service.get_story_thread_warm_count(1) == 3
    assert service.get_story_thread_warm_count(2) == 1


@pytest.mark.asyncio
async def test_comment_prefetch_budget(service, seeded_client):
    tasks = [service.prefetch_comment_route(i, 1) for i in range(100, 109)]

    assert sum(t is not None for t in tasks) == 8
    assert tasks[8] is None
    await asyncio.gather(*(t for t in tasks if t is not None))
    assert sorted(seeded_client.calls) == list(range(100, 108))


@pytest.mark.asyncio
async def test_reset_clears_sessions_and_budgets(service):
    await service.get_story_thread_page(1)
    for story_id in range(1, 5):
        service.prefetch_story_route(story_id)
    old_run = service.runs.current

    new_run = service.reset()

    assert new_run == old_run + 1
    assert service.get_story_thread_warm_count(1) == 0
    assert service.feed_comments.session is None
    task = service.prefetch_story_route(1)
    assert task is not None
    await task


@pytest.mark.asyncio
async def test_aclose_closes_clients(service, seeded_client):
    await service.aclose()
    assert seeded_client.closed is True


@pytest.mark.asyncio
async def test_aclose_waits_for_cancelled_prefetches(service, seeded_client):
    seeded_client.gate = asyncio.Event()
    task = service.prefetch_story_route(1)
    await asyncio.sleep(0)

    await service.aclose()

    assert task.done()
    assert task.cancelled()
    assert not service._background
    seeded_client.gate.set()
    await asyncio.sleep(0)


def test_from_settings_uses_file_store(tmp_path):
    service = FeedService.from_settings(Settings(cache_dir=str(tmp_path)))
    assert isinstance(service.store, FileStore)
    assert service.store.directory == tmp_path
