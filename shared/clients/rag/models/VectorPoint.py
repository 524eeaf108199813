"""Points as they are stored in a vector store, and what comes back from it."""

import uuid
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

TEXT_PREVIEW_LENGTH = 200


def make_point_id(record_type: str, record_id: str, chunk_index: int) -> str:
    """Deterministic point id for one chunk of a record.

    The same (record type, record id, chunk index) always yields the same id,
    so re-syncing a record overwrites its points instead of duplicating them.
    """
    return str(uuid.uuid5(uuid.NAMESPACE_OID, f"{record_type}:{record_id}:{chunk_index}"))


class PointPayload(BaseModel):
    """Payload stored alongside each vector.

    The fixed attributes identify the chunk. Metadata fields of the indexing
    profile are carried as extra attributes and land flat in the payload so
    they can be used as filters.

    Attributes:
        record_type:  Type of the owning record, e.g. "article".
        record_id:    Id of the owning record, always a string.
        chunk_index:  Zero-based position of the chunk within the record.
        source:       "main" for the record itself, otherwise the relationship path.
        field:        Field the chunk was taken from.
        weight:       Field weight from the indexing profile.
        text_preview: First 200 characters of the chunk text.
    """

    model_config = ConfigDict(extra="allow")

    record_type: str
    record_id: str
    chunk_index: int
    source: str
    field: str
    weight: float
    text_preview: str


class VectorPoint(BaseModel):
    id: str
    vector: list[float]
    payload: PointPayload

    def to_backend(self) -> dict[str, Any]:
        return {"id": self.id, "vector": self.vector, "payload": self.payload.model_dump()}


class ScoredPoint(BaseModel):
    """A single nearest-neighbour hit returned by a RAG backend."""

    id: str
    score: float
    payload: dict[str, Any] = Field(default_factory=dict)
    vector: list[float] | None = None


class ScrollResult(BaseModel):
    """Points collected from one or more scroll pages.

    ``next_page_offset`` is the cursor of the following page and is None once
    the last page has been read, which is always the case after ``do_scroll_all``.
    """

    result: list[dict]
    status: str
    time: float
    next_page_offset: str | int | None = None
