"""Indexing profiles and relationship watchers.

A profile is the contract between analysis and indexing: which fields of a
record type are embedded, with which weight and chunking, which relationship
paths contribute text, and which payload fields are filterable.
"""

from enum import Enum

from pydantic import BaseModel, Field, field_validator, model_validator

from shared.models.schema import AccessorKind

# default relationship weights when the profile does not set one
DEPTH_ONE_WEIGHT = 0.7
DEEP_WEIGHT = 0.5


class FieldConfig(BaseModel):
    weight: float = Field(default=1.0, ge=0)
    chunk: bool = False
    chunk_size: int | None = Field(default=None, gt=0)
    chunk_overlap: int | None = Field(default=None, ge=0)

    @model_validator(mode="after")
    def _check_overlap(self) -> "FieldConfig":
        if self.chunk_size is not None and self.chunk_overlap is not None and self.chunk_overlap >= self.chunk_size:
            raise ValueError("chunk_overlap must be smaller than chunk_size")
        return self


class RelationshipConfig(BaseModel):
    """Configuration of one relationship path.

    Attributes:
        related_type: Record type at the end of the path.
        kind:         Kind of the last hop.
        depth:        Number of hops, 1 for a direct relation.
        fields:       Fields of the related record that are embedded (and watched).
        weight:       Explicit weight; None falls back to 0.7 at depth 1 and 0.5 deeper.
        enabled:      Disabled paths are kept in the profile but not extracted.
    """

    related_type: str
    kind: AccessorKind = AccessorKind.TO_ONE
    depth: int = Field(default=1, ge=1)
    fields: list[str] = Field(default_factory=list)
    weight: float | None = Field(default=None, ge=0)
    enabled: bool = True

    @property
    def effective_weight(self) -> float:
        if self.weight is not None:
            return self.weight
        return DEPTH_ONE_WEIGHT if self.depth == 1 else DEEP_WEIGHT


class ProfileOptions(BaseModel):
    embedding_model: str | None = None
    embedding_dimensions: int | None = None
    batch_size: int = Field(default=100, ge=1)


class IndexingProfile(BaseModel):
    id: int | None = None
    record_type: str
    collection_name: str
    enabled: bool = True
    driver: str = "qdrant"
    fields: dict[str, FieldConfig] = Field(default_factory=dict)
    metadata_fields: list[str] = Field(default_factory=list)
    filters: dict[str, str] = Field(default_factory=dict)
    relationships: dict[str, RelationshipConfig] = Field(default_factory=dict)
    eager_load_map: list[str] = Field(default_factory=list)
    max_relationship_depth: int = Field(default=3, ge=0)
    options: ProfileOptions = Field(default_factory=ProfileOptions)

    # counters, mutated only by the indexing pipeline
    indexed_count: int = 0
    pending_count: int = 0
    failed_count: int = 0
    last_indexed_at: float | None = None

    @field_validator("eager_load_map")
    @classmethod
    def _dedupe_paths(cls, v: list[str]) -> list[str]:
        return list(dict.fromkeys(v))

    @model_validator(mode="after")
    def _check_relationships(self) -> "IndexingProfile":
        for path, rel in self.relationships.items():
            if path not in self.eager_load_map:
                raise ValueError(f"Relationship '{path}' is missing from eager_load_map")
            if rel.depth > self.max_relationship_depth:
                raise ValueError(
                    f"Relationship '{path}' has depth {rel.depth}, max is {self.max_relationship_depth}"
                )
            if len(path.split(".")) != rel.depth:
                raise ValueError(f"Relationship '{path}' declares depth {rel.depth}")
        return self

    def watched_fields(self) -> set[str]:
        """Fields whose change makes a record stale: embedded, metadata and filter fields."""
        return set(self.fields) | set(self.metadata_fields) | set(self.filters)

    def enabled_relationships(self) -> dict[str, RelationshipConfig]:
        return {path: rel for path, rel in self.relationships.items() if rel.enabled}


class WatcherAction(str, Enum):
    REINDEX_PARENT = "reindex_parent"
    IGNORE = "ignore"


class RelationshipWatcher(BaseModel):
    """Makes changes on a related record type re-index the owning parent records."""

    id: int | None = None
    profile_id: int | None = None
    parent_type: str
    related_type: str
    relationship_name: str = ""
    kind: AccessorKind = AccessorKind.TO_ONE
    path: str
    depth: int = Field(ge=1)
    watch_fields: list[str] = Field(default_factory=list)
    on_change_action: WatcherAction = WatcherAction.REINDEX_PARENT
    enabled: bool = True

    @model_validator(mode="after")
    def _check_path(self) -> "RelationshipWatcher":
        hops = self.path.split(".")
        if any(not hop.strip() for hop in hops):
            raise ValueError(f"Watcher path '{self.path}' contains an empty relation name")
        if len(hops) != self.depth:
            raise ValueError(f"Watcher path '{self.path}' has {len(hops)} hops but depth {self.depth}")
        if not self.relationship_name:
            self.relationship_name = hops[-1]
        elif self.relationship_name != hops[-1]:
            raise ValueError(f"Watcher relationship_name '{self.relationship_name}' is not the last hop of '{self.path}'")
        return self

    def watches(self, changed_fields: list[str] | None) -> bool:
        """True if the change touches a watched field. An empty watch list watches everything."""
        if not self.watch_fields or changed_fields is None:
            return True
        return bool(set(self.watch_fields) & set(changed_fields))
