"""Field classification heuristics.

Given a record type from the record store's descriptor table, decides for
every field whether it carries embeddable text, filterable metadata, or
opaque structured data, and suggests weight and chunking for text fields.
"""

from shared.clients.records.RecordStoreInterface import RecordStoreInterface
from shared.models.analysis import FieldAnalysis, FieldClass
from shared.models.schema import FieldDescriptor

TEXT_TYPES = ("text", "mediumtext", "longtext", "string", "varchar", "char")
LARGE_TEXT_TYPES = ("longtext", "mediumtext")

TITLE_NAMES = ("title", "name", "subject", "headline")
SUMMARY_NAMES = ("summary", "excerpt", "abstract", "intro")
BODY_NAMES = ("body", "content", "text", "description", "message")
NOTES_NAMES = ("notes", "comments", "remarks")
TAG_NAMES = ("tags", "keywords", "labels", "categories")

STRUCTURED_NAMES = ("data", "metadata", "payload", "config", "settings", "options")
COMMON_METADATA = ("id", "created_at", "updated_at", "deleted_at")
FLAG_PREFIXES = ("is_", "has_", "can_")
FILTERABLE_NAMES = ("category", "tag", "label", "priority")


def _is_status_like(name: str) -> bool:
    return name in ("status", "type") or name.endswith("_status") or name.endswith("_type")


class SchemaInspector:
    def __init__(self, record_store: RecordStoreInterface):
        self._record_store = record_store

    ##########################################
    ############### HEURISTICS ###############
    ##########################################

    @staticmethod
    def is_text_type(storage_type: str) -> bool:
        storage_type = storage_type.lower()
        return any(text_type in storage_type for text_type in TEXT_TYPES)

    @staticmethod
    def suggest_weight(name: str, storage_type: str = "") -> float:
        """Suggest a field weight from its name, in priority order:
        title-like 2.0, summary-like 1.5, body-like 1.0, notes-like 0.7, tag-like 0.5, else 1.0."""
        name = name.lower()
        if name in TITLE_NAMES:
            return 2.0
        if name in SUMMARY_NAMES:
            return 1.5
        if name in BODY_NAMES:
            return 1.0
        if name in NOTES_NAMES:
            return 0.7
        if name in TAG_NAMES:
            return 0.5
        return 1.0

    @staticmethod
    def should_chunk(name: str, storage_type: str) -> bool:
        name = name.lower()
        storage_type = storage_type.lower()
        if any(t in storage_type for t in LARGE_TEXT_TYPES):
            return True
        if name in BODY_NAMES:
            return True
        # text column with a body-like name, e.g. "body_html", "text_raw"
        return "text" in storage_type and any(part in name for part in ("body", "content", "text"))

    @staticmethod
    def suggest_chunk_size(storage_type: str) -> int:
        storage_type = storage_type.lower()
        if "longtext" in storage_type:
            return 1500
        if "mediumtext" in storage_type:
            return 1000
        if "text" in storage_type:
            return 800
        return 500

    @staticmethod
    def estimate_capacity(storage_type: str) -> int | None:
        """Maximum number of characters a storage type holds, None if unknown."""
        storage_type = storage_type.lower()
        if "longtext" in storage_type:
            return 4294967295
        if "mediumtext" in storage_type:
            return 16777215
        if "text" in storage_type:
            return 65535
        if "varchar" in storage_type or "string" in storage_type:
            return 255
        return None

    @staticmethod
    def is_structured(name: str, storage_type: str) -> bool:
        return "json" in storage_type.lower() or name.lower() in STRUCTURED_NAMES

    @staticmethod
    def should_be_metadata(name: str, storage_type: str) -> bool:
        name = name.lower()
        storage_type = storage_type.lower()
        if name in COMMON_METADATA or name.endswith("_id"):
            return True
        if "bool" in storage_type or "tinyint(1)" in storage_type:
            return True
        if any(t in storage_type for t in ("int", "decimal", "float", "double", "numeric")):
            return True
        return "date" in storage_type or "time" in storage_type

    def classify(self, field: FieldDescriptor) -> FieldClass:
        # structured wins over text so json stored in a text column is not embedded
        if self.is_structured(field.name, field.storage_type):
            return FieldClass.STRUCTURED
        if self.is_text_type(field.storage_type):
            return FieldClass.TEXT
        if self.should_be_metadata(field.name, field.storage_type):
            return FieldClass.METADATA
        return FieldClass.OTHER

    ##########################################
    ############### INSPECTION ###############
    ##########################################

    def inspect(self, record_type: str) -> dict[str, FieldAnalysis]:
        """Analyse every field of a record type.

        Raises:
            UnknownTypeError: If the record type is not in the descriptor table.
        """
        descriptor = self._record_store.describe(record_type)
        return {
            field.name: FieldAnalysis(
                name=field.name,
                storage_type=field.storage_type,
                classification=self.classify(field),
                weight=self.suggest_weight(field.name, field.storage_type),
                chunk=self.should_chunk(field.name, field.storage_type),
                chunk_size=self.suggest_chunk_size(field.storage_type),
                estimated_capacity=self.estimate_capacity(field.storage_type),
            )
            for field in descriptor.fields
        }

    def text_fields(self, record_type: str) -> list[str]:
        return [
            name for name, analysis in self.inspect(record_type).items()
            if analysis.classification == FieldClass.TEXT
        ]

    def identify_metadata_fields(self, record_type: str, text_fields: list[str]) -> list[str]:
        """Fields stored in the payload but never embedded: ids, timestamps,
        foreign keys, flags and status/type fields, in descriptor order."""
        descriptor = self._record_store.describe(record_type)
        metadata = []
        for field in descriptor.fields:
            name = field.name.lower()
            if field.name in text_fields:
                continue
            if (
                name in COMMON_METADATA
                or name.endswith("_id")
                or name.startswith(FLAG_PREFIXES)
                or _is_status_like(name)
            ):
                metadata.append(field.name)
        return metadata

    def suggest_filters(self, record_type: str) -> dict[str, str]:
        """Payload fields worth a filter index, with their declared type."""
        descriptor = self._record_store.describe(record_type)
        filters: dict[str, str] = {}
        for field in descriptor.fields:
            name = field.name.lower()
            if name.endswith("_id"):
                filters[field.name] = "integer"
            elif "bool" in field.storage_type or name.startswith(("is_", "has_")):
                filters[field.name] = "boolean"
            elif _is_status_like(name) or name in FILTERABLE_NAMES:
                filters[field.name] = "keyword"
        return filters
