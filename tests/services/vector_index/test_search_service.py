import asyncio

import pytest

from shared.clients.rag.models.VectorPoint import ScoredPoint, make_point_id
from shared.errors import ProfileNotFoundError
from services.vector_index.SearchService import collapse_scores


def _hit(record_id, score):
    return ScoredPoint(id=f"{record_id}-{score}", score=score, payload={"record_id": record_id})


def test_collapse_keeps_best_chunk_per_record():
    points = [_hit("1", 0.9), _hit("1", 0.4), _hit("2", 0.6), ScoredPoint(id="x", score=0.99)]

    assert collapse_scores(points) == {"1": 0.9, "2": 0.6}
    assert list(collapse_scores(points)) == ["1", "2"]
    assert collapse_scores(points, exclude_id="1") == {"2": 0.6}


async def _indexed(make_engine, rag_client):
    engine = make_engine(queue_enabled=False)
    await engine.start(boot_clients=False)
    await engine.indexing.generate_profile("article")
    await engine.indexing.backfill("article")
    rag_client.fixed_scores = {
        make_point_id("article", "1", 0): 0.9,
        make_point_id("article", "1", 1): 0.5,
        make_point_id("article", "2", 0): 0.6,
    }
    return engine


def test_search_ranks_records(make_engine, rag_client):
    async def scenario():
        engine = await _indexed(make_engine, rag_client)
        search = engine.search
        results = {
            "all": await search.search("article", "vector search"),
            "threshold": await search.search("article", "vector search", threshold=0.7),
            "limit": await search.search("article", "vector search", limit=1),
            "filtered": await search.search("article", "vector search", filters={"status": "draft"}),
            "ids": await search.search_ids("article", "vector search"),
        }
        await engine.close()
        return results

    results = asyncio.run(scenario())
    hits = results["all"].hits
    assert [(hit.record_id, hit.score) for hit in hits] == [("1", 0.9), ("2", 0.6)]
    assert hits[0].record["title"] == "Vector search in practice"
    assert results["all"].total == 2
    assert [hit.record_id for hit in results["threshold"].hits] == ["1"]
    assert [hit.record_id for hit in results["limit"].hits] == ["1"]
    assert [hit.record_id for hit in results["filtered"].hits] == ["2"]
    assert results["ids"] == ["1", "2"]


def test_search_drops_deleted_records(make_engine, rag_client, record_store):
    async def scenario():
        engine = await _indexed(make_engine, rag_client)
        record_store.remove("article", 2)
        with_records = await engine.search.search("article", "queue")
        without = await engine.search.search("article", "queue", with_records=False)
        await engine.close()
        return with_records, without

    with_records, without = asyncio.run(scenario())
    assert [hit.record_id for hit in with_records.hits] == ["1"]
    assert [hit.record_id for hit in without.hits] == ["1", "2"]
    assert all(hit.record is None for hit in without.hits)


def test_deleted_top_hit_does_not_shrink_the_limit(make_engine, rag_client, record_store):
    async def scenario():
        engine = await _indexed(make_engine, rag_client)
        record_store.remove("article", 1)
        result = await engine.search.search("article", "vector search", limit=1)
        await engine.close()
        return result

    result = asyncio.run(scenario())
    assert [(hit.record_id, hit.score) for hit in result.hits] == [("2", 0.6)]
    assert result.total == 1


def test_find_similar_excludes_the_record(make_engine, rag_client):
    async def scenario():
        engine = await _indexed(make_engine, rag_client)
        similar = await engine.search.find_similar("article", 1)
        unknown = await engine.search.find_similar("article", 99)
        await engine.close()
        return similar, unknown

    similar, unknown = asyncio.run(scenario())
    assert [hit.record_id for hit in similar.hits] == ["2"]
    assert unknown.hits == []


def test_stats_and_overview(make_engine, rag_client):
    async def scenario():
        engine = await _indexed(make_engine, rag_client)
        stats = await engine.search.stats("article")
        overview = await engine.search.overview()
        with pytest.raises(ProfileNotFoundError):
            await engine.search.stats("tag")
        with pytest.raises(ProfileNotFoundError):
            await engine.search.search("tag", "python")
        await engine.close()
        return stats, overview

    stats, overview = asyncio.run(scenario())
    assert stats.collection_name == "article_vectors"
    assert stats.indexed_count == 2
    assert stats.failed_count == 0
    assert stats.points_count == 11
    assert stats.vector_size == 8
    assert stats.queue["pending"] == 0
    assert [s.record_type for s in overview] == ["article"]
