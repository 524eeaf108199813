import asyncio
import json

import httpx
import pytest

from shared.clients.embed.EmbedClientManager import EmbedClientManager
from shared.errors import ClientRequestError
from shared.helper.HelperConfig import HelperConfig


def _client(logger, **overrides):
    return EmbedClientManager(HelperConfig(logger=logger, overrides=overrides)).get_client()


def _embed(client, handler, texts):
    requests: list[httpx.Request] = []

    def recording(request):
        requests.append(request)
        return handler(request)

    async def scenario():
        await client.boot(transport=httpx.MockTransport(recording))
        try:
            return await client.do_embed(texts)
        finally:
            await client.close()

    return asyncio.run(scenario()), requests


@pytest.fixture
def openai_client(logger):
    return _client(
        logger,
        EMBED_ENGINE="openai",
        EMBED_MODEL="text-embedding-3-small",
        EMBED_DIMENSIONS="3",
        EMBED_OPENAI_API_KEY="sk-test",
    )


def test_openai_orders_vectors_by_index(openai_client):
    def handler(request):
        return httpx.Response(200, json={"data": [
            {"index": 1, "embedding": [0.0, 1.0, 0.0]},
            {"index": 0, "embedding": [1.0, 0.0, 0.0]},
        ]})

    vectors, requests = _embed(openai_client, handler, ["first", "second"])
    assert vectors == [[1.0, 0.0, 0.0], [0.0, 1.0, 0.0]]
    request = requests[0]
    assert str(request.url) == "https://api.openai.com/v1/embeddings"
    assert request.headers["Authorization"] == "Bearer sk-test"
    assert json.loads(request.content) == {
        "model": "text-embedding-3-small",
        "input": ["first", "second"],
        "encoding_format": "float",
        "dimensions": 3,
    }
    assert openai_client.get_model_identifier() == "openai:text-embedding-3-small"


def test_openai_errors(openai_client):
    with pytest.raises(ClientRequestError) as exc_info:
        _embed(openai_client, lambda request: httpx.Response(429, text="rate limited"), "text")
    assert exc_info.value.status_code == 429

    with pytest.raises(ValueError):
        _embed(openai_client, lambda request: httpx.Response(200, json={"data": []}), "text")


def test_ollama_client(logger):
    client = _client(logger, EMBED_ENGINE="ollama", EMBED_MODEL="nomic-embed-text", EMBED_OLLAMA_BASE_URL="http://ollama.test")

    vectors, requests = _embed(client, lambda request: httpx.Response(200, json={"embeddings": [[0.5, 0.5]]}), "hello")
    assert vectors == [[0.5, 0.5]]
    assert requests[0].url.path == "/api/embed"
    assert json.loads(requests[0].content) == {"model": "nomic-embed-text", "input": ["hello"]}
    assert "Authorization" not in requests[0].headers

    with pytest.raises(ValueError):
        _embed(client, lambda request: httpx.Response(200, json={"embeddings": []}), "hello")


def test_configuration_errors(logger):
    with pytest.raises(ValueError):
        _client(logger, EMBED_ENGINE="word2vec", EMBED_MODEL="x")
    # ollama needs a base url
    with pytest.raises(ValueError):
        _client(logger, EMBED_ENGINE="ollama", EMBED_MODEL="x")
    with pytest.raises(ValueError):
        _client(logger, EMBED_ENGINE="openai")
