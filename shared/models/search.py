"""Results of the search executor."""

from typing import Any

from pydantic import BaseModel, Field


class SearchHit(BaseModel):
    """One record matched by a search, scored by its best chunk."""

    record_id: str
    score: float
    record: dict[str, Any] | None = None


class SearchResult(BaseModel):
    record_type: str
    query: str | None = None
    hits: list[SearchHit] = Field(default_factory=list)
    total: int = 0


class ProfileStats(BaseModel):
    """Counters of one indexing profile plus the live state of its collection and queue."""

    record_type: str
    collection_name: str
    enabled: bool
    indexed_count: int
    pending_count: int
    failed_count: int
    last_indexed_at: float | None = None
    points_count: int | None = None
    vector_size: int | None = None
    queue: dict[str, int] = Field(default_factory=dict)
