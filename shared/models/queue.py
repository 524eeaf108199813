from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_validator


class QueueAction(str, Enum):
    INDEX = "index"
    UPDATE = "update"
    DELETE = "delete"


class QueueStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class QueueOrigin(str, Enum):
    CHANGE_EVENT = "change-event"
    MANUAL = "manual"
    BACKFILL = "backfill"


class QueueItem(BaseModel):
    """One unit of indexing work.

    Attributes:
        related_path:     Relationship path whose change triggered the item, None for direct changes.
        available_at:     Epoch seconds before which a retried item is not claimable.
        rerun_requested:  Set when a change arrives while the item is processing;
                          the item then returns to pending instead of completing.
        claim_token:      Issued by a claim. Leaving processing requires the token of the
                          current claim, so a holder whose item was released as stale
                          can not close it.
    """

    id: int | None = None
    profile_id: int
    record_type: str
    record_id: str
    action: QueueAction
    related_path: str | None = None
    origin: QueueOrigin = QueueOrigin.CHANGE_EVENT
    status: QueueStatus = QueueStatus.PENDING
    attempts: int = 0
    claim_token: str | None = None
    last_error: str | None = None
    available_at: float = 0.0
    rerun_requested: bool = False
    created_at: float = 0.0
    updated_at: float = 0.0
    processed_at: float | None = None

    @field_validator("record_id", mode="before")
    @classmethod
    def _id_to_str(cls, v: Any) -> str:
        return str(v)


class IndexLogStatus(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"


class IndexLogEntry(BaseModel):
    """Audit log row of a completed or failed sync attempt."""

    id: int | None = None
    profile_id: int | None = None
    record_type: str
    record_id: str | None = None
    action: str
    records_processed: int = 0
    chunks_created: int = 0
    embeddings_generated: int = 0
    duration_seconds: float = 0.0
    status: IndexLogStatus = IndexLogStatus.SUCCESS
    error_message: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: float = 0.0
