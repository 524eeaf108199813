"""Declarative record schema supplied by the record store adapters.

Instead of discovering relations at runtime, every record store describes its
types up front: the stored fields with their storage type, and the accessors
that lead to related types.
"""

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_validator


class AccessorKind(str, Enum):
    TO_ONE = "to_one"
    TO_MANY = "to_many"
    # computed values that do not lead to another record type
    SCALAR = "scalar"


class FieldDescriptor(BaseModel):
    name: str
    storage_type: str

    @field_validator("storage_type")
    @classmethod
    def _lower(cls, v: str) -> str:
        return v.strip().lower()


class AccessorDescriptor(BaseModel):
    """A named way to reach related records from a record.

    Attributes:
        name:         Accessor name, becomes one hop of a relationship path.
        related_type: Record type the accessor yields. Empty for scalar accessors.
        kind:         to_one, to_many or scalar.
        parameters:   Names of arguments the accessor needs. Accessors with
                      parameters cannot be eager-loaded and are skipped.
        inverse:      Accessor on the related type pointing back, if any.
    """

    name: str
    related_type: str = ""
    kind: AccessorKind = AccessorKind.TO_ONE
    parameters: list[str] = Field(default_factory=list)
    inverse: str | None = None


class RecordTypeDescriptor(BaseModel):
    name: str
    fields: list[FieldDescriptor] = Field(default_factory=list)
    accessors: list[AccessorDescriptor] = Field(default_factory=list)

    def field(self, name: str) -> FieldDescriptor | None:
        return next((f for f in self.fields if f.name == name), None)

    def accessor(self, name: str) -> AccessorDescriptor | None:
        return next((a for a in self.accessors if a.name == name), None)


class Record(BaseModel):
    """A single record as returned by a record store.

    ``relations`` only contains the accessors that were eager-loaded: a missing
    key means "not loaded", a ``None`` value means "loaded, but empty".
    """

    record_type: str
    id: str
    attributes: dict[str, Any] = Field(default_factory=dict)
    relations: dict[str, "Record | list[Record] | None"] = Field(default_factory=dict)

    @field_validator("id", mode="before")
    @classmethod
    def _id_to_str(cls, v: Any) -> str:
        return str(v)

    def related(self, accessor: str) -> "list[Record]":
        """Loaded related records of one accessor as a list (empty if none or not loaded)."""
        value = self.relations.get(accessor)
        if value is None:
            return []
        if isinstance(value, list):
            return value
        return [value]


Record.model_rebuild()
