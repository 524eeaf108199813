from enum import Enum
from typing import Any

from pydantic import BaseModel, field_validator


class ChangeKind(str, Enum):
    CREATED = "created"
    UPDATED = "updated"
    DELETED = "deleted"


class ChangeEvent(BaseModel):
    """A create/update/delete notification from the record store.

    ``changed_fields`` is only meaningful for updates. None means the notifier
    does not know which fields changed, an empty list means none did.
    """

    record_type: str
    record_id: str
    event: ChangeKind
    changed_fields: list[str] | None = None

    @field_validator("record_id", mode="before")
    @classmethod
    def _id_to_str(cls, v: Any) -> str:
        return str(v)
