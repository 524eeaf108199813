import logging
import math
import sys
import zlib
from pathlib import Path
from typing import Any

import pytest

# Add project root to sys.path for imports
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from shared.clients.rag.models.VectorPoint import ScoredPoint, ScrollResult, VectorPoint
from shared.clients.records.memory.RecordStoreMemory import RecordStoreMemory
from shared.errors import ClientRequestError, VectorStoreDeleteError, VectorStoreWriteError
from shared.helper.HelperConfig import HelperConfig
from shared.models.config import IndexerSettings
from shared.models.schema import AccessorDescriptor, AccessorKind, FieldDescriptor, RecordTypeDescriptor
from services.vector_index.bootstrap import build_engine

DIMENSIONS = 8


##########################################
################ FAKES ###################
##########################################

class FakeEmbedClient:
    """Deterministic embeddings; texts in ``vectors`` get fixed vectors, the rest a hash-derived one."""

    def __init__(self, dimensions: int = DIMENSIONS):
        self.embed_model = "fake-embed"
        self.embed_dimensions = dimensions
        self.vectors: dict[str, list[float]] = {}
        self.calls: list[list[str]] = []
        self.fail_times = 0
        self.booted = False

    def get_engine_name(self) -> str:
        return "fake"

    def get_model_identifier(self) -> str:
        return f"fake:{self.embed_model}"

    def vector_for(self, text: str) -> list[float]:
        if text in self.vectors:
            return self.vectors[text]
        seed = zlib.crc32(text.encode("utf-8"))
        return [((seed >> (i * 3)) % 17 + 1) / 17 for i in range(self.embed_dimensions)]

    async def do_embed(self, texts: list[str] | str) -> list[list[float]]:
        texts = [texts] if isinstance(texts, str) else list(texts)
        self.calls.append(texts)
        if self.fail_times > 0:
            self.fail_times -= 1
            raise ClientRequestError("http://embed.test/v1/embeddings", 503, "unavailable")
        return [self.vector_for(text) for text in texts]

    async def boot(self, transport=None) -> None:
        self.booted = True

    async def close(self) -> None:
        self.booted = False


def _cosine(a: list[float], b: list[float]) -> float:
    dot = sum(x * y for x, y in zip(a, b))
    norm = math.sqrt(sum(x * x for x in a)) * math.sqrt(sum(y * y for y in b))
    return dot / norm if norm else 0.0


def _matches(payload: dict, conditions: dict[str, Any] | None) -> bool:
    return all(payload.get(key) == value for key, value in (conditions or {}).items())


class FakeRAGClient:
    """In-memory vector store with the RAGClientInterface surface the engine uses."""

    def __init__(self):
        self.collections: dict[str, dict] = {}
        self.field_indexes: dict[str, dict[str, str]] = {}
        self.upsert_calls = 0
        self.fail_upserts = 0
        self.fail_deletes = 0
        self.deleted_ids: list[str] = []
        self.fixed_scores: dict[str, float] | None = None

    def get_engine_name(self) -> str:
        return "qdrant"

    async def boot(self, transport=None) -> None:
        pass

    async def close(self) -> None:
        pass

    def points(self, collection: str) -> dict[str, dict]:
        return self.collections.get(collection, {}).get("points", {})

    async def do_existence_check(self, collection: str) -> bool:
        return collection in self.collections

    async def do_ensure_collection(self, collection: str, vector_size: int) -> bool:
        if collection in self.collections:
            return False
        self.collections[collection] = {"size": vector_size, "points": {}}
        return True

    async def do_ensure_field_index(self, collection: str, field_name: str, declared_type: str) -> None:
        self.field_indexes.setdefault(collection, {})[field_name] = declared_type

    async def do_upsert_points(self, collection: str, points: list[VectorPoint]) -> None:
        self.upsert_calls += 1
        if self.fail_upserts > 0:
            self.fail_upserts -= 1
            raise VectorStoreWriteError(f"upsert into '{collection}' failed")
        for point in points:
            self.collections[collection]["points"][point.id] = {
                "id": point.id,
                "vector": point.vector,
                "payload": point.payload.model_dump(),
            }

    async def do_delete_points_by_filter(self, collection: str, conditions: dict[str, Any]) -> None:
        if self.fail_deletes > 0:
            self.fail_deletes -= 1
            raise VectorStoreDeleteError(f"delete in '{collection}' failed")
        stored = self.points(collection)
        for point_id in [pid for pid, p in stored.items() if _matches(p["payload"], conditions)]:
            del stored[point_id]

    async def do_delete_points_by_ids(self, collection: str, point_ids: list[str]) -> None:
        self.deleted_ids.extend(point_ids)
        stored = self.points(collection)
        for point_id in point_ids:
            stored.pop(point_id, None)

    async def do_search(self, collection: str, vector: list[float], limit: int, threshold: float | None = None, conditions: dict[str, Any] | None = None) -> list[ScoredPoint]:
        hits = []
        for point in self.points(collection).values():
            if not _matches(point["payload"], conditions):
                continue
            if self.fixed_scores is not None:
                score = self.fixed_scores.get(point["id"], 0.0)
            else:
                score = _cosine(vector, point["vector"])
            if threshold is not None and score < threshold:
                continue
            hits.append(ScoredPoint(id=point["id"], score=score, payload=point["payload"]))
        hits.sort(key=lambda hit: hit.score, reverse=True)
        return hits[:limit]

    async def do_scroll_all(self, collection: str, conditions: dict[str, Any], with_payload=True, with_vector=False) -> ScrollResult:
        result = []
        for point in self.points(collection).values():
            if not _matches(point["payload"], conditions):
                continue
            item = {"id": point["id"]}
            if with_payload:
                item["payload"] = point["payload"]
            if with_vector:
                item["vector"] = point["vector"]
            result.append(item)
        return ScrollResult(result=result, status="ok", time=0)

    async def do_collection_info(self, collection: str) -> dict | None:
        if collection not in self.collections:
            return None
        return {
            "points_count": len(self.points(collection)),
            "vector_size": self.collections[collection]["size"],
            "indexed_fields": sorted(self.field_indexes.get(collection, {})),
        }


class FakeRAGManager:
    def __init__(self, client: FakeRAGClient):
        self.client = client

    def get_clients(self) -> list[FakeRAGClient]:
        return [self.client]

    def get_client(self, engine: str) -> FakeRAGClient:
        if engine != self.client.get_engine_name():
            raise ValueError(f"RAG engine '{engine}' is not configured.")
        return self.client


##########################################
############### SCHEMA ###################
##########################################

def blog_descriptors() -> list[RecordTypeDescriptor]:
    """article -> author -> company, article -> tags, and a self-referencing category."""
    return [
        RecordTypeDescriptor(
            name="article",
            fields=[
                FieldDescriptor(name="id", storage_type="integer"),
                FieldDescriptor(name="title", storage_type="varchar(255)"),
                FieldDescriptor(name="body", storage_type="longtext"),
                FieldDescriptor(name="status", storage_type="enum"),
                FieldDescriptor(name="author_id", storage_type="integer"),
                FieldDescriptor(name="created_at", storage_type="datetime"),
            ],
            accessors=[
                AccessorDescriptor(name="author", related_type="author", kind=AccessorKind.TO_ONE, inverse="articles"),
                AccessorDescriptor(name="tags", related_type="tag", kind=AccessorKind.TO_MANY),
                AccessorDescriptor(name="word_count", kind=AccessorKind.SCALAR),
                AccessorDescriptor(name="getSlug", related_type="article"),
            ],
        ),
        RecordTypeDescriptor(
            name="author",
            fields=[
                FieldDescriptor(name="id", storage_type="integer"),
                FieldDescriptor(name="name", storage_type="varchar(255)"),
                FieldDescriptor(name="company_id", storage_type="integer"),
            ],
            accessors=[
                AccessorDescriptor(name="company", related_type="company", kind=AccessorKind.TO_ONE),
            ],
        ),
        RecordTypeDescriptor(
            name="company",
            fields=[
                FieldDescriptor(name="id", storage_type="integer"),
                FieldDescriptor(name="name", storage_type="varchar(255)"),
            ],
        ),
        RecordTypeDescriptor(
            name="tag",
            fields=[
                FieldDescriptor(name="id", storage_type="integer"),
                FieldDescriptor(name="name", storage_type="varchar(64)"),
            ],
        ),
        RecordTypeDescriptor(
            name="category",
            fields=[
                FieldDescriptor(name="id", storage_type="integer"),
                FieldDescriptor(name="name", storage_type="varchar(255)"),
            ],
            accessors=[
                AccessorDescriptor(name="parent", related_type="category", kind=AccessorKind.TO_ONE),
            ],
        ),
        RecordTypeDescriptor(
            name="counter",
            fields=[
                FieldDescriptor(name="id", storage_type="integer"),
                FieldDescriptor(name="value", storage_type="integer"),
            ],
        ),
    ]


##########################################
############### FIXTURES #################
##########################################

@pytest.fixture
def logger() -> logging.Logger:
    return logging.getLogger("vector_sync.tests")


@pytest.fixture
def helper_config(logger) -> HelperConfig:
    return HelperConfig(logger=logger, overrides={
        "API_SERVER_API_KEY": "test-key",
        "EMBED_MODEL": "fake-embed",
        "EMBED_DIMENSIONS": str(DIMENSIONS),
    })


@pytest.fixture
def record_store(helper_config) -> RecordStoreMemory:
    store = RecordStoreMemory(helper_config, blog_descriptors())
    store.put("company", 1, {"name": "Acme Publishing"})
    store.put("author", 7, {"name": "A. Writer", "company_id": 1}, {"company": 1})
    store.put("author", 8, {"name": "B. Critic", "company_id": 1}, {"company": 1})
    store.put("tag", 1, {"name": "python"})
    store.put("tag", 2, {"name": "search"})
    store.put(
        "article", 1,
        {"title": "Vector search in practice", "body": "Embeddings map text to vectors. Similar texts end up close.", "status": "published", "author_id": 7},
        {"author": 7, "tags": [1, 2]},
    )
    store.put(
        "article", 2,
        {"title": "Queue design", "body": "A durable queue survives restarts. Workers claim items atomically.", "status": "draft", "author_id": 8},
        {"author": 8, "tags": [1]},
    )
    return store


@pytest.fixture
def embed_client() -> FakeEmbedClient:
    return FakeEmbedClient()


@pytest.fixture
def rag_client() -> FakeRAGClient:
    return FakeRAGClient()


@pytest.fixture
def make_engine(helper_config, record_store, embed_client, rag_client):
    """Factory for an unstarted engine on an in-memory state database."""

    def _make(**settings):
        values = {"state_db": ":memory:", "retry_after": 0, "debounce_seconds": 5}
        values.update(settings)
        return build_engine(
            helper_config,
            settings=IndexerSettings(**values),
            record_store=record_store,
            embed_client=embed_client,
            rag_manager=FakeRAGManager(rag_client),
        )

    return _make
