"""Relationship discovery over the record store's descriptor table.

Walks the relation accessors of a record type breadth-first and returns one
RelationshipInfo per dotted path plus the eager-load plan, i.e. the set of
paths that must be materialized together with a record so extraction never
issues one fetch per relationship.
"""

import re
from collections import deque

from shared.clients.records.RecordStoreInterface import RecordStoreInterface
from shared.errors import UnknownTypeError
from shared.helper.HelperConfig import HelperConfig
from shared.models.analysis import RelationshipAnalysis, RelationshipInfo
from shared.models.schema import AccessorDescriptor, AccessorKind
from services.vector_index.SchemaInspector import SchemaInspector

# lifecycle and reflection helpers that are never relations, whatever the adapter declares
SKIP_ACCESSORS = {
    "boot", "booted", "fresh", "refresh", "replicate", "save", "delete",
    "to_dict", "to_json", "to_array", "json_serialize",
    "new_query", "new_collection", "new_instance", "query",
}
SKIP_PREFIX = re.compile(r"^(get|set|is|has|scope)(_|[A-Z])")


class RelationshipGraphBuilder:
    def __init__(
        self,
        helper_config: HelperConfig,
        record_store: RecordStoreInterface,
        inspector: SchemaInspector | None = None,
        traverse_self_relations: bool = True,
    ):
        self.logging = helper_config.get_logger()
        self._record_store = record_store
        self._inspector = inspector or SchemaInspector(record_store)
        self._traverse_self_relations = traverse_self_relations

    ##########################################
    ############### ANALYSIS #################
    ##########################################

    @staticmethod
    def should_skip(accessor: AccessorDescriptor) -> bool:
        """Accessors that can not be eager-loaded as a relation."""
        if accessor.kind == AccessorKind.SCALAR or not accessor.related_type:
            return True
        if accessor.parameters:
            return True
        name = accessor.name
        if name.startswith("_") or name in SKIP_ACCESSORS:
            return True
        return bool(SKIP_PREFIX.match(name))

    def analyze(self, record_type: str, max_depth: int = 3) -> RelationshipAnalysis:
        """Discover all relationship paths of a record type up to ``max_depth`` hops.

        Each (type, depth) node is expanded at most once, which bounds the work on
        cyclic graphs while still allowing the same type at different depths.

        Raises:
            UnknownTypeError: If the root type is not in the descriptor table.
        """
        self._record_store.describe(record_type)

        relationships: dict[str, RelationshipInfo] = {}
        eager_load_map: list[str] = []
        visited: set[tuple[str, int]] = set()
        text_field_cache: dict[str, list[str]] = {}
        queue: deque[tuple[str, int, str]] = deque([(record_type, 0, "")])

        while queue:
            current_type, depth, prefix = queue.popleft()
            if depth >= max_depth or (current_type, depth) in visited:
                continue
            visited.add((current_type, depth))

            try:
                descriptor = self._record_store.describe(current_type)
            except UnknownTypeError:
                self.logging.warning("Skipping relations of undescribed type '%s'", current_type)
                continue

            for accessor in descriptor.accessors:
                if self.should_skip(accessor):
                    continue
                related_type = accessor.related_type
                if related_type not in text_field_cache:
                    try:
                        text_field_cache[related_type] = self._inspector.text_fields(related_type)
                    except UnknownTypeError:
                        self.logging.warning(
                            "Accessor '%s.%s' points to undescribed type '%s', skipping",
                            current_type, accessor.name, related_type,
                        )
                        continue

                path = f"{prefix}.{accessor.name}" if prefix else accessor.name
                if path in relationships:
                    continue
                relationships[path] = RelationshipInfo(
                    path=path,
                    name=accessor.name,
                    parent_type=current_type,
                    related_type=related_type,
                    kind=accessor.kind,
                    depth=depth + 1,
                    fields=list(text_field_cache[related_type]),
                )
                eager_load_map.append(path)

                if related_type != current_type or self._traverse_self_relations:
                    queue.append((related_type, depth + 1, path))

        self.logging.debug(
            "Discovered %d relationships for '%s' (max depth %d)", len(relationships), record_type, max_depth
        )
        return RelationshipAnalysis(relationships=relationships, eager_load_map=list(dict.fromkeys(eager_load_map)))

    ##########################################
    ################ HELPERS #################
    ##########################################

    @staticmethod
    def relationships_at_depth(relationships: dict[str, RelationshipInfo], depth: int) -> dict[str, RelationshipInfo]:
        return {path: rel for path, rel in relationships.items() if rel.depth == depth}

    @classmethod
    def shallow(cls, relationships: dict[str, RelationshipInfo]) -> dict[str, RelationshipInfo]:
        return cls.relationships_at_depth(relationships, 1)

    @staticmethod
    def deep(relationships: dict[str, RelationshipInfo]) -> dict[str, RelationshipInfo]:
        return {path: rel for path, rel in relationships.items() if rel.depth > 1}

    @staticmethod
    def eager_load_paths(relationships: dict[str, RelationshipInfo]) -> list[str]:
        """Eager-load plan of the enabled relationships only."""
        return list(dict.fromkeys(path for path, rel in relationships.items() if rel.enabled))

    @staticmethod
    def statistics(relationships: dict[str, RelationshipInfo]) -> dict:
        by_depth: dict[int, int] = {}
        by_kind: dict[str, int] = {}
        for rel in relationships.values():
            by_depth[rel.depth] = by_depth.get(rel.depth, 0) + 1
            by_kind[rel.kind.value] = by_kind.get(rel.kind.value, 0) + 1
        return {
            "total": len(relationships),
            "by_depth": dict(sorted(by_depth.items())),
            "by_kind": by_kind,
            "with_text_fields": sum(1 for rel in relationships.values() if rel.fields),
            "max_depth": max((rel.depth for rel in relationships.values()), default=0),
        }

    @staticmethod
    def format_tree(relationships: dict[str, RelationshipInfo]) -> str:
        """Render the relationship paths as an indented tree, one line per path."""
        lines = []
        for path in sorted(relationships):
            rel = relationships[path]
            indent = "  " * (rel.depth - 1)
            fields = f" [{', '.join(rel.fields)}]" if rel.fields else ""
            lines.append(f"{indent}- {rel.name} ({rel.kind.value} {rel.related_type}){fields}")
        return "\n".join(lines)
