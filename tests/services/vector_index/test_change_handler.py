import asyncio

import httpx
import pytest

from shared.errors import ProfileNotFoundError
from shared.models.events import ChangeEvent, ChangeKind
from shared.models.queue import QueueAction


def _event(record_type, record_id, kind=ChangeKind.UPDATED, changed_fields=None):
    return ChangeEvent(record_type=record_type, record_id=record_id, event=kind, changed_fields=changed_fields)


async def _registered(make_engine, **settings):
    engine = make_engine(**settings)
    await engine.start(boot_clients=False)
    await engine.indexing.generate_profile("article")
    await engine.registry.register("article")
    return engine


def test_direct_changes(make_engine):
    async def scenario():
        engine = await _registered(make_engine)
        dispatch = engine.registry.dispatch
        results = {
            "created": await dispatch(_event("article", 3, ChangeKind.CREATED)),
            "title": await dispatch(_event("article", 1, changed_fields=["title"])),
            "repeat": await dispatch(_event("article", 1, changed_fields=["body"])),
            "unwatched": await dispatch(_event("article", 2, changed_fields=["updated_at"])),
            "unknown": await dispatch(_event("article", 2)),
            "deleted": await dispatch(_event("article", 4, ChangeKind.DELETED)),
        }
        await engine.close()
        return results

    results = asyncio.run(scenario())
    assert results["created"][0].action == QueueAction.INDEX
    assert results["created"][0].queued
    assert results["title"][0].action == QueueAction.UPDATE
    assert results["repeat"][0].debounced
    assert results["unwatched"] == []
    # no change set means the record may have changed
    assert results["unknown"][0].queued
    assert results["deleted"][0].action == QueueAction.DELETE


def test_disabled_event_kinds(make_engine):
    async def scenario():
        engine = await _registered(make_engine, index_on_update=False, delete_on_delete=False, index_on_create=False)
        results = [
            await engine.registry.dispatch(_event("article", 1, kind))
            for kind in (ChangeKind.CREATED, ChangeKind.UPDATED, ChangeKind.DELETED)
        ]
        await engine.close()
        return results

    assert asyncio.run(scenario()) == [[], [], []]


def test_related_changes_reindex_parents(make_engine):
    async def scenario():
        engine = await _registered(make_engine)
        dispatch = engine.registry.dispatch
        results = {
            "author": await dispatch(_event("author", 7, changed_fields=["name"])),
            "author_unwatched": await dispatch(_event("author", 8, changed_fields=["company_id"])),
            "company": await dispatch(_event("company", 1, changed_fields=["name"])),
            "tag": await dispatch(_event("tag", 2, ChangeKind.DELETED)),
            "unwatched_type": await dispatch(_event("counter", 1)),
        }
        await engine.close()
        return results

    results = asyncio.run(scenario())
    author = results["author"]
    assert [(r.record_type, r.record_id, r.action, r.related_path) for r in author] == [
        ("article", "1", QueueAction.UPDATE, "author")
    ]
    assert results["author_unwatched"] == []
    company = results["company"]
    assert sorted(r.record_id for r in company) == ["1", "2"]
    assert {r.related_path for r in company} == {"author.company"}
    # article 1 already has an open update from the author change
    assert [r.debounced for r in company if r.record_id == "1"] == [True]
    assert [r.record_id for r in results["tag"]] == ["1"]
    assert results["unwatched_type"] == []


def test_registry_lifecycle(make_engine):
    async def scenario():
        engine = await _registered(make_engine)
        registry = engine.registry
        before = (registry.registered_types(), registry.handler_count("article"), registry.handler_count("company"), registry.handler_count())

        assert await registry.unregister("article")
        after = await registry.dispatch(_event("author", 7))
        profile = await engine.state.profiles.get_by_type("article")
        watchers = await engine.state.watchers.list_for_profile(profile.id, enabled_only=True)
        with pytest.raises(ProfileNotFoundError):
            await registry.register("article")
        missing = await registry.unregister("tag")
        await engine.close()
        return before, after, profile, watchers, missing, registry.is_registered("article")

    before, after, profile, watchers, missing, registered = asyncio.run(scenario())
    assert before == (["article"], 1, 1, 4)
    assert after == []
    assert not profile.enabled
    assert watchers == []
    assert missing is False
    assert registered is False


def test_register_all_on_start(make_engine, tmp_path):
    state_db = str(tmp_path / "state.sqlite3")

    async def scenario():
        engine = make_engine(state_db=state_db)
        await engine.start(boot_clients=False)
        await engine.indexing.generate_profile("article")
        await engine.indexing.generate_profile("author")
        before = engine.registry.registered_types()
        await engine.close()

        # a new process picks up every saved profile
        restarted = make_engine(state_db=state_db)
        await restarted.start(boot_clients=False)
        after = restarted.registry.registered_types()
        await restarted.close()
        return before, after

    before, after = asyncio.run(scenario())
    assert before == []
    assert after == ["article", "author"]


def test_inline_dispatch_indexes_immediately(make_engine, rag_client):
    async def scenario():
        engine = await _registered(make_engine, queue_enabled=False)
        ok = await engine.registry.dispatch(_event("article", 1, changed_fields=["title"]))
        rag_client.fail_upserts = 1
        failed = await engine.registry.dispatch(_event("article", 2, changed_fields=["title"]))
        items = await engine.state.queue.list_items()
        await engine.close()
        return engine.registry.strategy.name(), ok, failed, items

    strategy, ok, failed, items = asyncio.run(scenario())
    assert strategy == "inline"
    assert ok[0].outcome.points == 6
    assert not ok[0].queued
    assert "article#2" in failed[0].error
    assert items == []


def test_failing_handler_does_not_stop_the_others(make_engine, record_store):
    async def unreachable(*args, **kwargs):
        raise httpx.ConnectError("record store down")

    record_store.find_parents = unreachable

    async def scenario():
        engine = await _registered(make_engine)
        await engine.indexing.generate_profile("author")
        await engine.registry.register("author")
        results = await engine.registry.dispatch(_event("author", 7, changed_fields=["name"]))
        queued = await engine.state.queue.list_items(record_type="author", record_id="7")
        await engine.close()
        return results, queued

    results, queued = asyncio.run(scenario())
    failed = [r for r in results if r.error]
    assert len(failed) == 1
    assert "record store down" in failed[0].error
    own = [r for r in results if r.record_type == "author" and r.queued]
    assert [(r.record_id, r.action) for r in own] == [("7", QueueAction.UPDATE)]
    assert [item.record_id for item in queued] == ["7"]
