import json
import pathlib
from typing import Any

from shared.clients.records.RecordStoreInterface import RecordStoreInterface, split_paths
from shared.helper.HelperConfig import HelperConfig
from shared.models.schema import AccessorKind, Record, RecordTypeDescriptor


class RecordStoreMemory(RecordStoreInterface):
    """In-process record store.

    Records are kept as attribute dicts plus links (accessor → related id or ids).
    The descriptor table and initial records can be passed in directly or loaded
    from the JSON fixture named by ``RECORDS_MEMORY_FIXTURE``::

        {
          "types":   [{"name": "article", "fields": [...], "accessors": [...]}],
          "records": {"article": [{"id": 1, "title": "...", "_links": {"author": 7}}]}
        }
    """

    def __init__(self, helper_config: HelperConfig, descriptors: list[RecordTypeDescriptor] | None = None):
        self.logging = helper_config.get_logger()
        self._descriptors: dict[str, RecordTypeDescriptor] = {}
        self._rows: dict[str, dict[str, dict[str, Any]]] = {}
        self._links: dict[str, dict[str, dict[str, str | list[str] | None]]] = {}

        for descriptor in descriptors or []:
            self.register_type(descriptor)

        fixture = helper_config.get_string_val("RECORDS_MEMORY_FIXTURE", default="")
        if fixture:
            self.load_fixture(fixture)

    ##########################################
    ################ GETTER ##################
    ##########################################

    def get_engine_name(self) -> str:
        return "memory"

    def descriptors(self) -> dict[str, RecordTypeDescriptor]:
        return self._descriptors

    ##########################################
    ################ WRITES ##################
    ##########################################

    def register_type(self, descriptor: RecordTypeDescriptor) -> None:
        self._descriptors[descriptor.name] = descriptor
        self._rows.setdefault(descriptor.name, {})
        self._links.setdefault(descriptor.name, {})

    def put(self, record_type: str, record_id: Any, attributes: dict[str, Any], links: dict[str, Any] | None = None) -> None:
        """Insert or replace a record. Links not given are kept from the previous version."""
        self.describe(record_type)
        record_id = str(record_id)
        self._rows[record_type][record_id] = dict(attributes)
        current = self._links[record_type].setdefault(record_id, {})
        for accessor, target in (links or {}).items():
            if isinstance(target, (list, tuple)):
                current[accessor] = [str(t) for t in target]
            else:
                current[accessor] = None if target is None else str(target)

    def remove(self, record_type: str, record_id: Any) -> None:
        record_id = str(record_id)
        self._rows.get(record_type, {}).pop(record_id, None)
        self._links.get(record_type, {}).pop(record_id, None)

    def load_fixture(self, path: str) -> None:
        data = json.loads(pathlib.Path(path).read_text(encoding="utf-8"))
        for raw in data.get("types", []):
            self.register_type(RecordTypeDescriptor.model_validate(raw))
        for record_type, rows in data.get("records", {}).items():
            for row in rows:
                row = dict(row)
                links = row.pop("_links", {})
                record_id = row.pop("id")
                self.put(record_type, record_id, row, links)
        self.logging.info("Loaded record fixture %s (%d types)", path, len(self._descriptors))

    ##########################################
    ############### REQUESTS #################
    ##########################################

    def _materialize(self, record_type: str, record_id: str, eager_paths: list[str]) -> Record | None:
        attributes = self._rows.get(record_type, {}).get(record_id)
        if attributes is None:
            return None
        descriptor = self.describe(record_type)
        links = self._links[record_type].get(record_id, {})
        relations: dict[str, Record | list[Record] | None] = {}

        for accessor_name, sub_paths in split_paths(eager_paths).items():
            accessor = descriptor.accessor(accessor_name)
            if accessor is None or accessor.kind == AccessorKind.SCALAR:
                continue
            target = links.get(accessor_name)
            if accessor.kind == AccessorKind.TO_MANY:
                ids = target if isinstance(target, list) else ([target] if target else [])
                related = [self._materialize(accessor.related_type, rid, sub_paths) for rid in ids]
                relations[accessor_name] = [r for r in related if r is not None]
            else:
                single = target[0] if isinstance(target, list) and target else target
                relations[accessor_name] = (
                    self._materialize(accessor.related_type, single, sub_paths) if single else None
                )

        return Record(record_type=record_type, id=record_id, attributes=dict(attributes), relations=relations)

    async def fetch(self, record_type: str, record_id: str, eager_paths: list[str] | None = None) -> Record | None:
        self.describe(record_type)
        return self._materialize(record_type, str(record_id), eager_paths or [])

    async def list_ids(self, record_type: str) -> list[str]:
        self.describe(record_type)
        return list(self._rows.get(record_type, {}).keys())

    async def find_parents(self, parent_type: str, path: str, related_type: str, related_id: str) -> list[str]:
        # follows links rather than rows, so a related record that was just removed is still found
        related_id = str(related_id)
        parents = []
        for parent_id in list(self._rows.get(parent_type, {}).keys()):
            current_type, current_ids = parent_type, [parent_id]
            for hop in path.split("."):
                accessor = self.describe(current_type).accessor(hop)
                if accessor is None or accessor.kind == AccessorKind.SCALAR:
                    current_ids = []
                    break
                next_ids: list[str] = []
                for cid in current_ids:
                    target = self._links[current_type].get(cid, {}).get(hop)
                    if isinstance(target, list):
                        next_ids.extend(target)
                    elif target:
                        next_ids.append(target)
                current_type, current_ids = accessor.related_type, next_ids
            if current_type == related_type and related_id in current_ids:
                parents.append(parent_id)
        return parents
