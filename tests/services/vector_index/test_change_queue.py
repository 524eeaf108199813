import asyncio

from shared.models.config import IndexerSettings
from shared.models.profile import FieldConfig, IndexingProfile
from shared.models.queue import QueueAction, QueueOrigin, QueueStatus
from shared.storage.StateStore import StateStore
from shared.storage.repositories import SUPERSEDED
from services.vector_index.ChangeQueue import ChangeQueue


class Clock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


async def _open(helper_config, clock, **settings):
    state = StateStore(helper_config, ":memory:")
    await state.open()
    profile = await state.profiles.save(IndexingProfile(
        record_type="article", collection_name="article_vectors", fields={"title": FieldConfig()},
    ))
    values = {"debounce_seconds": 5, "retry_after": 10}
    values.update(settings)
    queue = ChangeQueue(helper_config, state.queue, IndexerSettings(**values), clock=clock)
    return state, profile, queue


def test_changes_inside_debounce_window_collapse(helper_config):
    clock = Clock()

    async def scenario():
        state, profile, queue = await _open(helper_config, clock)
        first = await queue.enqueue(profile, "article", "1", QueueAction.UPDATE)
        clock.now += 2
        second = await queue.enqueue(profile, "article", "1", QueueAction.UPDATE)
        # another action is a separate unit of work
        delete = await queue.enqueue(profile, "article", "1", QueueAction.DELETE)
        items = await queue.pending_items()
        counters = await state.profiles.get(profile.id)
        await state.close()
        return first, second, delete, items, counters

    first, second, delete, items, counters = asyncio.run(scenario())
    assert first is not None and first.status == QueueStatus.PENDING
    assert second is None
    assert delete is not None
    assert [item.action for item in items] == [QueueAction.UPDATE, QueueAction.DELETE]
    assert counters.pending_count == 2


def test_change_after_window_supersedes_pending_item(helper_config):
    clock = Clock()

    async def scenario():
        state, profile, queue = await _open(helper_config, clock)
        first = await queue.enqueue(profile, "article", "1", QueueAction.UPDATE)
        clock.now += 6
        second = await queue.enqueue(profile, "article", "1", QueueAction.UPDATE, QueueOrigin.MANUAL)
        old = await state.queue.get(first.id)
        items = await queue.pending_items()
        counters = await state.profiles.get(profile.id)
        await state.close()
        return first, second, old, items, counters

    first, second, old, items, counters = asyncio.run(scenario())
    assert second.id != first.id
    assert second.origin == QueueOrigin.MANUAL
    assert old.status == QueueStatus.COMPLETED
    assert old.last_error == SUPERSEDED
    assert [item.id for item in items] == [second.id]
    assert counters.pending_count == 1


def test_change_while_processing_requests_rerun(helper_config):
    clock = Clock()

    async def scenario():
        state, profile, queue = await _open(helper_config, clock)
        await queue.enqueue(profile, "article", "1", QueueAction.UPDATE)
        claimed = await queue.claim_next()
        covering = await queue.enqueue(profile, "article", "1", QueueAction.UPDATE)
        done = await queue.mark_completed(claimed)
        counters = await state.profiles.get(profile.id)
        await state.close()
        return claimed, covering, done, counters

    claimed, covering, done, counters = asyncio.run(scenario())
    assert claimed.status == QueueStatus.PROCESSING
    assert claimed.attempts == 1
    assert covering.id == claimed.id
    assert covering.rerun_requested
    # the rerun puts the item back with a fresh attempt budget
    assert done.status == QueueStatus.PENDING
    assert done.attempts == 0
    assert not done.rerun_requested
    assert counters.indexed_count == 1
    assert counters.pending_count == 1


def test_retry_backoff_and_terminal_failure(helper_config):
    clock = Clock()

    async def scenario():
        state, profile, queue = await _open(helper_config, clock)
        await queue.enqueue(profile, "article", "1", QueueAction.INDEX)
        claimed = await queue.claim_next()
        retried = await queue.mark_retry(claimed, "boom")
        too_early = await queue.claim_next()
        clock.now += 10
        again = await queue.claim_next()
        failed = await queue.mark_failed(again, "boom again")
        failed_twice = await queue.mark_failed(again, "boom again")
        counters = await state.profiles.get(profile.id)
        counts = await queue.status_counts(profile)
        await state.close()
        return retried, too_early, again, failed, failed_twice, counters, counts

    retried, too_early, again, failed, failed_twice, counters, counts = asyncio.run(scenario())
    assert retried.status == QueueStatus.PENDING
    assert retried.available_at == 1010.0
    assert too_early is None
    assert again.attempts == 2
    assert failed.status == QueueStatus.FAILED
    assert failed_twice is None
    assert counters.failed_count == 1
    assert counters.pending_count == 0
    assert counts["failed"] == 1


def test_retry_delay_doubles(helper_config):
    queue = ChangeQueue(helper_config, repo=None, settings=IndexerSettings(retry_after=60))

    assert [queue.retry_delay(n) for n in (1, 2, 3)] == [60, 120, 240]


def test_release_stale_processing_items(helper_config):
    clock = Clock()

    async def scenario():
        state, profile, queue = await _open(helper_config, clock)
        await queue.enqueue(profile, "article", "1", QueueAction.INDEX)
        await queue.claim_next()
        fresh = await queue.release_stale(600)
        clock.now += 601
        stale = await queue.release_stale(600)
        items = await queue.pending_items()
        await state.close()
        return fresh, stale, items

    fresh, stale, items = asyncio.run(scenario())
    assert fresh == 0
    assert stale == 1
    assert len(items) == 1


def test_released_holder_can_not_close_the_reclaimed_item(helper_config):
    clock = Clock()

    async def scenario():
        state, profile, queue = await _open(helper_config, clock)
        await queue.enqueue(profile, "article", "1", QueueAction.INDEX)
        slow = await queue.claim_next()
        clock.now += 601
        released = await queue.release_stale(600)
        current = await queue.claim_next()
        late = [
            await queue.mark_completed(slow),
            await queue.mark_retry(slow, "late"),
            await queue.mark_failed(slow, "late"),
        ]
        still_processing = await state.queue.get(current.id)
        before = await state.profiles.get(profile.id)
        done = await queue.mark_completed(current)
        after = await state.profiles.get(profile.id)
        await state.close()
        return slow, released, current, late, still_processing, before, done, after

    slow, released, current, late, still_processing, before, done, after = asyncio.run(scenario())
    assert released == 1
    assert current.id == slow.id
    assert current.attempts == 2
    assert current.claim_token and current.claim_token != slow.claim_token
    assert late == [None, None, None]
    assert still_processing.status == QueueStatus.PROCESSING
    assert (before.pending_count, before.indexed_count, before.failed_count) == (1, 0, 0)
    assert done.status == QueueStatus.COMPLETED
    assert (after.pending_count, after.indexed_count) == (0, 1)
