from abc import ABC, abstractmethod

from shared.errors import UnknownTypeError
from shared.models.schema import Record, RecordTypeDescriptor


def split_paths(paths: list[str]) -> dict[str, list[str]]:
    """Group dotted relationship paths by their first hop.

    ["author", "author.company", "tags"] -> {"author": ["company"], "tags": []}
    """
    tree: dict[str, list[str]] = {}
    for path in paths:
        head, _, rest = path.partition(".")
        if not head:
            continue
        children = tree.setdefault(head, [])
        if rest and rest not in children:
            children.append(rest)
    return tree


class RecordStoreInterface(ABC):
    """Narrow contract of the store that owns the records being indexed.

    Every adapter supplies a declarative descriptor table (fields with storage
    types and relation accessors per record type) instead of letting the engine
    discover relations at runtime.
    """

    ##########################################
    ################ GETTER ##################
    ##########################################

    @abstractmethod
    def get_engine_name(self) -> str:
        pass

    @abstractmethod
    def descriptors(self) -> dict[str, RecordTypeDescriptor]:
        """Returns the descriptor table, keyed by record type."""
        pass

    def record_types(self) -> list[str]:
        return list(self.descriptors().keys())

    def describe(self, record_type: str) -> RecordTypeDescriptor:
        """Returns the descriptor of one record type.

        Raises:
            UnknownTypeError: If the type is not in the descriptor table.
        """
        descriptor = self.descriptors().get(record_type)
        if descriptor is None:
            raise UnknownTypeError(record_type)
        return descriptor

    ##########################################
    ############### REQUESTS #################
    ##########################################

    async def boot(self) -> None:
        """Acquire connections. No-op for stores without any."""

    async def close(self) -> None:
        """Release connections. No-op for stores without any."""

    @abstractmethod
    async def fetch(self, record_type: str, record_id: str, eager_paths: list[str] | None = None) -> Record | None:
        """Fetch one record with all ``eager_paths`` materialized in a single call.

        Returns:
            Record | None: The record, or None if it does not exist.
        """
        pass

    @abstractmethod
    async def list_ids(self, record_type: str) -> list[str]:
        """Returns the ids of all records of a type."""
        pass

    @abstractmethod
    async def find_parents(self, parent_type: str, path: str, related_type: str, related_id: str) -> list[str]:
        """Inverse lookup of a relationship path.

        Returns the ids of all ``parent_type`` records that reach the record
        ``related_type#related_id`` by following ``path``.
        """
        pass
