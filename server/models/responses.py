from pydantic import BaseModel, Field

from shared.models.analysis import Analysis
from shared.models.search import ProfileStats
from services.vector_index.DispatchStrategy import DispatchResult


class ChangeEventResponse(BaseModel):
    record_type: str
    record_id: str
    results: list[DispatchResult] = Field(default_factory=list)


class ProfileResponse(BaseModel):
    analysis: Analysis
    summary: str
    saved: bool
    registered: bool = False


class StatusResponse(BaseModel):
    strategy: str
    registered_types: list[str]
    profiles: list[ProfileStats]
