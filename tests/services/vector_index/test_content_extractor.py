import asyncio
import math
from datetime import datetime

from shared.models.content import MAIN_SOURCE
from shared.models.profile import FieldConfig, IndexingProfile, RelationshipConfig
from shared.models.schema import AccessorKind, Record
from services.vector_index.ChunkingService import ChunkingService
from services.vector_index.ContentExtractor import ContentExtractor


def _article_profile(**overrides) -> IndexingProfile:
    values = dict(
        record_type="article",
        collection_name="article_vectors",
        fields={
            "title": FieldConfig(weight=2.0),
            "body": FieldConfig(weight=1.0, chunk=True, chunk_size=1000, chunk_overlap=200),
        },
        metadata_fields=["id", "status", "created_at"],
        filters={"author_id": "integer"},
        relationships={
            "author": RelationshipConfig(related_type="author", depth=1, fields=["name"]),
            "tags": RelationshipConfig(related_type="tag", kind=AccessorKind.TO_MANY, depth=1, fields=["name"]),
            "author.company": RelationshipConfig(related_type="company", depth=2, fields=["name"]),
        },
        eager_load_map=["author", "tags", "author.company"],
    )
    values.update(overrides)
    return IndexingProfile(**values)


def _body(length: int = 2500) -> str:
    sentence = "The quick brown fox jumps over the lazy dog again. "
    return (sentence * (length // len(sentence) + 1))[:length]


def test_scenario_body_and_author(helper_config, record_store):
    profile = IndexingProfile(
        record_type="article",
        collection_name="article_vectors",
        fields={"body": FieldConfig(weight=1.0, chunk=True, chunk_size=1000, chunk_overlap=200)},
        relationships={"author": RelationshipConfig(related_type="author", depth=1, fields=["name"], weight=0.7)},
        eager_load_map=["author"],
    )
    author = Record(record_type="author", id=7, attributes={"name": "A. Writer"})
    article = Record(record_type="article", id=1, attributes={"body": _body()}, relations={"author": author})

    items = ContentExtractor(helper_config).extract(article, profile)
    author_items = [i for i in items if i.source == "author"]
    body_items = [i for i in items if i.field == "body"]

    assert len(author_items) == 1
    assert author_items[0].text == "A. Writer"
    assert author_items[0].weight == 0.7
    assert not author_items[0].chunk
    assert len(body_items) == 1 and body_items[0].chunk

    chunks = ChunkingService().chunk(body_items[0].text, body_items[0].chunk_size, body_items[0].chunk_overlap)
    assert 3 <= len(chunks) <= math.ceil(2500 / (1000 - 200))


async def _fetch(store, record_id, profile):
    return await store.fetch("article", record_id, profile.eager_load_map)


def test_extract_order_and_weights(helper_config, record_store):
    profile = _article_profile()
    record = asyncio.run(_fetch(record_store, 1, profile))
    items = ContentExtractor(helper_config).extract(record, profile)

    assert [(i.source, i.field) for i in items] == [
        (MAIN_SOURCE, "title"),
        (MAIN_SOURCE, "body"),
        ("author", "name"),
        ("tags", "name"),
        ("tags", "name"),
        ("author.company", "name"),
    ]
    assert [i.weight for i in items] == [2.0, 1.0, 0.7, 0.7, 0.7, 0.5]
    assert [i.text for i in items if i.source == "tags"] == ["python", "search"]
    assert items[-1].text == "Acme Publishing"


def test_missing_relation_and_empty_fields_contribute_nothing(helper_config):
    profile = _article_profile()
    record = Record(
        record_type="article",
        id=3,
        attributes={"title": "Lonely", "body": "   "},
        relations={"author": None, "tags": []},
    )
    items = ContentExtractor(helper_config).extract(record, profile)

    assert [(i.source, i.field) for i in items] == [(MAIN_SOURCE, "title")]


def test_disabled_relationship_is_not_extracted(helper_config, record_store):
    profile = _article_profile(relationships={
        "author": RelationshipConfig(related_type="author", depth=1, fields=["name"], enabled=False),
    }, eager_load_map=["author"])
    record = asyncio.run(_fetch(record_store, 1, profile))

    assert all(i.source == MAIN_SOURCE for i in ContentExtractor(helper_config).extract(record, profile))


def test_failing_field_is_skipped(helper_config):
    class Broken:
        def __str__(self):
            raise RuntimeError("cannot render")

    profile = _article_profile()
    record = Record(record_type="article", id=4, attributes={"title": Broken(), "body": "Readable body."})
    items = ContentExtractor(helper_config).extract(record, profile)

    assert [i.field for i in items] == ["body"]


def test_structured_values_are_serialised(helper_config):
    profile = _article_profile(fields={"title": FieldConfig()})
    record = Record(record_type="article", id=5, attributes={"title": {"de": "Hallo"}})

    assert ContentExtractor(helper_config).extract(record, profile)[0].text == '{"de": "Hallo"}'


def test_extract_metadata(helper_config):
    profile = _article_profile()
    record = Record(
        record_type="article",
        id=9,
        attributes={"status": "published", "created_at": datetime(2024, 5, 1, 12, 0), "author_id": 7},
    )

    assert ContentExtractor(helper_config).extract_metadata(record, profile) == {
        "id": "9",
        "status": "published",
        "created_at": "2024-05-01T12:00:00",
        "author_id": 7,
    }


def test_summary_helpers(helper_config):
    profile = _article_profile()
    record = Record(record_type="article", id=1, attributes={"title": "T", "body": "Body text here."})
    extractor = ContentExtractor(helper_config)
    items = extractor.extract(record, profile)

    assert extractor.total_text_size(items) == 16
    assert extractor.has_sufficient_content(items)
    assert not extractor.has_sufficient_content(items, min_size=100)
    assert extractor.content_summary(items) == {
        "items": 2, "chunked_items": 1, "total_size": 16, "sources": {MAIN_SOURCE: 2},
    }
