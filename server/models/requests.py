from typing import Any

from pydantic import BaseModel, Field

from shared.models.events import ChangeKind
from shared.models.queue import QueueAction


class ChangeEventRequest(BaseModel):
    record_id: str | int
    event: ChangeKind
    changed_fields: list[str] | None = None


class IndexRequest(BaseModel):
    """Manual index request. Without ids every record of the type is backfilled."""

    ids: list[str | int] | None = None
    action: QueueAction = QueueAction.INDEX


class SearchRequest(BaseModel):
    query: str = Field(min_length=1)
    limit: int | None = Field(default=None, ge=1)
    threshold: float | None = None
    filters: dict[str, Any] | None = None
    with_records: bool = True


class ProfileRequest(BaseModel):
    max_depth: int | None = Field(default=None, ge=0)
    save: bool = True
