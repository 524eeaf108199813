"""Pulls embeddable text and payload metadata out of an eager-loaded record.

The record must have been fetched with the profile's eager-load plan; the
extractor only walks relations that are already materialized and never
talks to the record store itself.
"""

import json
from datetime import date, datetime
from typing import Any

from shared.errors import ExtractionFieldError
from shared.helper.HelperConfig import HelperConfig
from shared.models.config import IndexerSettings
from shared.models.content import MAIN_SOURCE, ContentItem
from shared.models.profile import IndexingProfile
from shared.models.schema import Record


class ContentExtractor:
    def __init__(self, helper_config: HelperConfig, settings: IndexerSettings | None = None):
        self.logging = helper_config.get_logger()
        self.settings = settings or IndexerSettings()

    ##########################################
    ################ FIELDS ##################
    ##########################################

    @staticmethod
    def _read_text(record: Record, field: str) -> str | None:
        try:
            value = record.attributes.get(field)
            if value is None:
                return None
            if isinstance(value, (dict, list)):
                return json.dumps(value, ensure_ascii=False, default=str)
            if isinstance(value, (datetime, date)):
                return value.isoformat()
            return str(value)
        except Exception as e:
            raise ExtractionFieldError(record.record_type, field, e) from e

    def _field_text(self, record: Record, field: str) -> str | None:
        try:
            text = self._read_text(record, field)
        except ExtractionFieldError as e:
            self.logging.warning("%s, skipping field", e)
            return None
        if text is None or not text.strip():
            return None
        return text

    ##########################################
    ############### EXTRACTION ###############
    ##########################################

    def extract(self, record: Record, profile: IndexingProfile) -> list[ContentItem]:
        """Collect the text of a record and its enabled relationship paths.

        Root fields come first in profile order, followed by one item per
        configured field per related record of every enabled path. Relationship
        items are never chunked.

        Args:
            record (Record): The record, loaded with ``profile.eager_load_map``.
            profile (IndexingProfile): The profile of the record's type.

        Returns:
            list[ContentItem]: The extracted items; empty values are skipped.
        """
        items: list[ContentItem] = []

        for field, config in profile.fields.items():
            text = self._field_text(record, field)
            if text is None:
                continue
            items.append(ContentItem(
                source=MAIN_SOURCE,
                field=field,
                text=text,
                weight=config.weight,
                chunk=config.chunk,
                chunk_size=config.chunk_size or self.settings.chunk_size,
                chunk_overlap=config.chunk_overlap if config.chunk_overlap is not None else self.settings.chunk_overlap,
            ))

        for path, rel in profile.enabled_relationships().items():
            for related in self.navigate(record, path):
                for field in rel.fields:
                    text = self._field_text(related, field)
                    if text is None:
                        continue
                    items.append(ContentItem(
                        source=path,
                        field=field,
                        text=text,
                        weight=rel.effective_weight,
                        chunk=False,
                    ))

        return items

    @staticmethod
    def navigate(record: Record, path: str) -> list[Record]:
        """Follow a dotted path through loaded relations. To-many hops are flattened."""
        current = [record]
        for hop in path.split("."):
            next_level: list[Record] = []
            for item in current:
                next_level.extend(item.related(hop))
            if not next_level:
                return []
            current = next_level
        return current

    def extract_metadata(self, record: Record, profile: IndexingProfile) -> dict[str, Any]:
        """Payload values of the profile's metadata and filter fields.

        Dates become ISO strings, scalars, lists and dicts are kept as-is,
        anything else is stringified. Missing or None values are left out.
        """
        metadata: dict[str, Any] = {}
        for field in dict.fromkeys([*profile.metadata_fields, *profile.filters]):
            if field == "id":
                value = record.id
            else:
                value = record.attributes.get(field)
            if value is None:
                continue
            if isinstance(value, (datetime, date)):
                metadata[field] = value.isoformat()
            elif isinstance(value, (bool, int, float, str, list, dict)):
                metadata[field] = value
            else:
                metadata[field] = str(value)
        return metadata

    ##########################################
    ################ SUMMARY #################
    ##########################################

    @staticmethod
    def total_text_size(items: list[ContentItem]) -> int:
        return sum(len(item.text) for item in items)

    def has_sufficient_content(self, items: list[ContentItem], min_size: int = 10) -> bool:
        return self.total_text_size(items) >= min_size

    @staticmethod
    def content_summary(items: list[ContentItem]) -> dict:
        sources: dict[str, int] = {}
        for item in items:
            sources[item.source] = sources.get(item.source, 0) + 1
        return {
            "items": len(items),
            "chunked_items": sum(1 for item in items if item.chunk),
            "total_size": sum(len(item.text) for item in items),
            "sources": sources,
        }
