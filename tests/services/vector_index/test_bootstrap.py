import asyncio
import logging

import httpx
import pytest

from shared.clients.rag.RAGClientManager import RAGClientManager
from shared.clients.records.http.RecordStoreHttp import RecordStoreHttp
from shared.errors import BackendUnavailableError
from shared.helper.HelperConfig import HelperConfig
from shared.models.config import IndexerSettings
from services.vector_index.bootstrap import build_engine


def _config(logger) -> HelperConfig:
    return HelperConfig(logger=logger, overrides={
        "EMBED_MODEL": "fake-embed",
        "RAG_QDRANT_BASE_URL": "http://qdrant.test",
        "RECORDS_HTTP_BASE_URL": "http://records.test",
    })


def _check(engine, transports: dict) -> None:
    """Boot the given clients on mock transports and run the startup healthcheck."""

    async def scenario():
        await engine.state.open()
        for client, transport in transports.items():
            await client.boot(transport=transport)
        try:
            await engine.check_backends()
        finally:
            for client in transports:
                await client.close()
            await engine.state.close()

    asyncio.run(scenario())


def test_unhealthy_vector_store_is_fatal(logger, record_store, embed_client):
    config = _config(logger)
    rag_manager = RAGClientManager(config)
    engine = build_engine(config, IndexerSettings(state_db=":memory:"), record_store, embed_client, rag_manager)

    with pytest.raises(BackendUnavailableError) as excinfo:
        _check(engine, {rag_manager.get_client("qdrant"): httpx.MockTransport(lambda request: httpx.Response(503))})
    assert excinfo.value.engine == "qdrant"
    assert "status 503" in str(excinfo.value)


def test_unreachable_record_store_only_warns(logger, embed_client, caplog):
    config = _config(logger)
    rag_manager = RAGClientManager(config)
    records = RecordStoreHttp(config)
    engine = build_engine(config, IndexerSettings(state_db=":memory:"), records, embed_client, rag_manager)
    calls = {"records": 0}

    def records_handler(request: httpx.Request) -> httpx.Response:
        # the schema loads during boot, afterwards the store goes away
        calls["records"] += 1
        if calls["records"] == 1:
            return httpx.Response(200, json={"types": []})
        raise httpx.ConnectError("connection refused", request=request)

    with caplog.at_level(logging.WARNING):
        _check(engine, {
            rag_manager.get_client("qdrant"): httpx.MockTransport(lambda request: httpx.Response(200)),
            records: httpx.MockTransport(records_handler),
        })

    assert calls["records"] == 2
    assert any("Record store 'http' is not reachable" in record.getMessage() for record in caplog.records)
