import asyncio

import pytest

from shared.errors import ClientRequestError, EmbeddingProviderError
from shared.helper.HelperConfig import HelperConfig
from services.vector_index.EmbeddingService import EmbeddingCache, EmbeddingService


def _service(logger, embed_client, sleeps=None, cache=None, **env):
    async def fake_sleep(seconds):
        if sleeps is not None:
            sleeps.append(seconds)

    config = HelperConfig(logger=logger, overrides={k.upper(): str(v) for k, v in env.items()})
    return EmbeddingService(config, embed_client, sleep=fake_sleep, cache=cache)


def test_order_batching_and_blank_filtering(logger, embed_client):
    service = _service(logger, embed_client, embed_batch_size=2)
    texts = ["one", "  ", "two", "", "three"]

    vectors = asyncio.run(service.embed(texts))

    assert vectors == [embed_client.vector_for(t) for t in ("one", "two", "three")]
    assert embed_client.calls == [["one", "two"], ["three"]]


def test_retries_with_exponential_backoff(logger, embed_client):
    sleeps = []
    embed_client.fail_times = 2
    service = _service(logger, embed_client, sleeps=sleeps)

    assert asyncio.run(service.embed_single("hello")) == embed_client.vector_for("hello")
    assert sleeps == [2, 4]
    assert service.stats()["provider_calls"] == 3


def test_gives_up_after_max_retries(logger, embed_client):
    sleeps = []
    embed_client.fail_times = 10
    service = _service(logger, embed_client, sleeps=sleeps, embed_max_retries=3)

    with pytest.raises(EmbeddingProviderError) as exc_info:
        asyncio.run(service.embed(["hello"]))

    assert exc_info.value.attempts == 3
    assert isinstance(exc_info.value.last_error, ClientRequestError)
    assert sleeps == [2, 4]


def test_count_mismatch_is_retried(logger, embed_client):
    original = embed_client.do_embed
    answers = {"calls": 0}

    async def short_then_ok(texts):
        answers["calls"] += 1
        vectors = await original(texts)
        return vectors[:-1] if answers["calls"] == 1 else vectors

    embed_client.do_embed = short_then_ok
    service = _service(logger, embed_client)

    assert len(asyncio.run(service.embed(["a", "b"]))) == 2
    assert answers["calls"] == 2


def test_cache_only_embeds_misses(logger, embed_client):
    service = _service(logger, embed_client, embed_cache_enabled="true")

    asyncio.run(service.embed(["cached"]))
    asyncio.run(service.embed(["cached", "fresh"]))

    assert embed_client.calls == [["cached"], ["fresh"]]
    stats = service.stats()
    assert stats["cache_hits"] == 1
    assert stats["cache_misses"] == 2
    assert stats["cache_size"] == 2


def test_cache_key_depends_on_model_and_dimensions(logger, embed_client):
    service = _service(logger, embed_client)
    key = service.cache_key("text")

    assert key.startswith("vector_embedding:")
    embed_client.embed_dimensions = 16
    assert service.cache_key("text") != key


def test_cache_entries_expire():
    now = {"t": 0.0}
    cache = EmbeddingCache(ttl=10, clock=lambda: now["t"])
    cache.put("k", [1.0])

    assert cache.get("k") == [1.0]
    now["t"] = 10.0
    assert cache.get("k") is None
    assert len(cache) == 0


def test_helpers(logger, embed_client):
    service = _service(logger, embed_client)

    assert EmbeddingService.cosine_similarity([1, 0], [1, 0]) == pytest.approx(1.0)
    assert EmbeddingService.cosine_similarity([1, 0], [0, 1]) == pytest.approx(0.0)
    assert EmbeddingService.cosine_similarity([0, 0], [1, 1]) == 0.0
    with pytest.raises(ValueError):
        EmbeddingService.cosine_similarity([1], [1, 2])

    estimate = service.estimate_cost(["x" * 4000])
    assert estimate["estimated_tokens"] == 1000
    assert estimate["estimated_cost_usd"] == 0.0001
    assert asyncio.run(service.test_connection())
