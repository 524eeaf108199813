from enum import Enum

from pydantic import BaseModel, Field

from shared.models.profile import IndexingProfile
from shared.models.schema import AccessorKind


class FieldClass(str, Enum):
    TEXT = "text"
    METADATA = "metadata"
    STRUCTURED = "structured"
    OTHER = "other"


class FieldAnalysis(BaseModel):
    name: str
    storage_type: str
    classification: FieldClass
    weight: float = 1.0
    chunk: bool = False
    chunk_size: int = 500
    estimated_capacity: int | None = None


class RelationshipInfo(BaseModel):
    """One discovered relationship path.

    Attributes:
        path:        Full dotted path from the root type, e.g. "author.company".
        name:        Last hop of the path.
        parent_type: Type the last hop starts from.
        related_type: Type the path ends at.
        kind:        Kind of the last hop.
        depth:       Number of hops.
        fields:      Text fields of the related type.
    """

    path: str
    name: str
    parent_type: str
    related_type: str
    kind: AccessorKind
    depth: int
    fields: list[str] = Field(default_factory=list)
    enabled: bool = True


class RelationshipAnalysis(BaseModel):
    relationships: dict[str, RelationshipInfo] = Field(default_factory=dict)
    eager_load_map: list[str] = Field(default_factory=list)


class RecommendationLevel(str, Enum):
    SUCCESS = "success"
    INFO = "info"
    WARNING = "warning"


class Recommendation(BaseModel):
    level: RecommendationLevel
    message: str


class Analysis(BaseModel):
    record_type: str
    total_fields: int = 0
    fields: list[str] = Field(default_factory=list)
    text_fields: dict[str, FieldAnalysis] = Field(default_factory=dict)
    metadata_fields: list[str] = Field(default_factory=list)
    filters: dict[str, str] = Field(default_factory=dict)
    relationships: RelationshipAnalysis = Field(default_factory=RelationshipAnalysis)
    recommendations: list[Recommendation] = Field(default_factory=list)
    suggested_profile: IndexingProfile | None = None
