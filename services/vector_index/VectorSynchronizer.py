"""Writes the chunk vectors of one record into the profile's collection.

Every sync first deletes all points of the record (by payload filter) and then
upserts one point per chunk under a deterministic id. Deleting first removes
points left over from a previous sync with more chunks; the deterministic ids
make a repeated upsert overwrite instead of duplicate. Both entry points may
be called any number of times for the same record. When the filtered delete
fails, the ids of the chunk indexes following the new chunk count are deleted
instead.
"""

from typing import Any

import httpx

from shared.clients.rag.RAGClientInterface import RAGClientInterface
from shared.clients.rag.RAGClientManager import RAGClientManager
from shared.clients.rag.models.VectorPoint import TEXT_PREVIEW_LENGTH, PointPayload, VectorPoint, make_point_id
from shared.errors import ClientRequestError, VectorStoreDeleteError, VectorStoreWriteError
from shared.helper.HelperConfig import HelperConfig
from shared.models.config import IndexerSettings
from shared.models.content import Chunk
from shared.models.profile import IndexingProfile
from shared.models.schema import Record

# payload fields every collection is filtered on
IDENTITY_INDEXES = {"record_type": "keyword", "record_id": "keyword"}

# chunk indexes past the new count that are deleted by id when the filtered delete fails
ORPHAN_SWEEP = 256


class VectorSynchronizer:
    def __init__(self, helper_config: HelperConfig, rag_manager: RAGClientManager, settings: IndexerSettings | None = None):
        self.logging = helper_config.get_logger()
        self.rag_manager = rag_manager
        self.settings = settings or IndexerSettings()
        # collections whose field indexes were ensured by this process
        self._prepared: set[tuple[str, str]] = set()

    def client_for(self, profile: IndexingProfile) -> RAGClientInterface:
        return self.rag_manager.get_client(profile.driver)

    @staticmethod
    def identity_filter(record_type: str, record_id: str) -> dict[str, Any]:
        return {"record_type": record_type, "record_id": str(record_id)}

    ##########################################
    ############### COLLECTION ###############
    ##########################################

    async def ensure_collection(self, profile: IndexingProfile, vector_size: int) -> None:
        """Create the collection and its payload indexes if absent.

        Raises:
            VectorStoreWriteError: If the collection can not be created.
        """
        client = self.client_for(profile)
        key = (client.get_engine_name(), profile.collection_name)
        created = await client.do_ensure_collection(profile.collection_name, vector_size)
        if key in self._prepared and not created:
            return

        indexes = {**IDENTITY_INDEXES, **profile.filters}
        for field_name, declared_type in indexes.items():
            try:
                await client.do_ensure_field_index(profile.collection_name, field_name, declared_type)
            except VectorStoreWriteError as e:
                # filtered deletes may fail without the index; the sync still proceeds
                self.logging.warning(
                    "Could not create payload index '%s' on '%s': %s", field_name, profile.collection_name, e
                )
        self._prepared.add(key)

    ##########################################
    ################# SYNC ###################
    ##########################################

    def build_points(self, record: Record, chunks: list[Chunk], vectors: list[list[float]], metadata: dict[str, Any]) -> list[VectorPoint]:
        if len(chunks) != len(vectors):
            raise ValueError(f"Got {len(vectors)} vectors for {len(chunks)} chunks")
        points = []
        for index, (chunk, vector) in enumerate(zip(chunks, vectors)):
            payload = PointPayload(**{
                **metadata,
                "record_type": record.record_type,
                "record_id": record.id,
                "chunk_index": index,
                "source": chunk.source,
                "field": chunk.field,
                "weight": chunk.weight,
                "text_preview": chunk.text[:TEXT_PREVIEW_LENGTH],
            })
            points.append(VectorPoint(
                id=make_point_id(record.record_type, record.id, index),
                vector=vector,
                payload=payload,
            ))
        return points

    async def sync(
        self,
        profile: IndexingProfile,
        record: Record,
        chunks: list[Chunk],
        vectors: list[list[float]],
        metadata: dict[str, Any] | None = None,
    ) -> int:
        """Replace all points of ``record`` with one point per chunk.

        A record without chunks ends up with no points.

        Returns:
            int: Number of points written.

        Raises:
            ValueError: If chunks and vectors differ in length.
            VectorStoreWriteError: If collection creation or an upsert fails.
        """
        points = self.build_points(record, chunks, vectors, metadata or {})
        if not points:
            await self.remove(profile, record.record_type, record.id)
            return 0

        await self.ensure_collection(profile, len(vectors[0]))
        client = self.client_for(profile)

        try:
            await client.do_delete_points_by_filter(
                profile.collection_name, self.identity_filter(record.record_type, record.id)
            )
        except VectorStoreDeleteError as e:
            self.logging.warning(
                "Could not delete old points of %s#%s before upsert, deleting trailing chunk ids instead: %s",
                record.record_type, record.id, e,
            )
            await self.remove_trailing(profile, record, len(points))

        batch_size = self.settings.upsert_batch_size
        for start in range(0, len(points), batch_size):
            await client.do_upsert_points(profile.collection_name, points[start:start + batch_size])

        self.logging.debug(
            "Synced %d points for %s#%s into '%s'", len(points), record.record_type, record.id, profile.collection_name
        )
        return len(points)

    async def remove(self, profile: IndexingProfile, record_type: str, record_id: str) -> None:
        """Delete all points of a record. A missing collection is not an error.

        Raises:
            VectorStoreDeleteError: If the backend rejects the delete.
        """
        client = self.client_for(profile)
        try:
            exists = await client.do_existence_check(profile.collection_name)
        except (ClientRequestError, httpx.HTTPError) as e:
            raise VectorStoreDeleteError(f"Could not check collection '{profile.collection_name}': {e}") from e
        if not exists:
            self.logging.debug("Collection '%s' does not exist, nothing to remove", profile.collection_name)
            return
        await client.do_delete_points_by_filter(profile.collection_name, self.identity_filter(record_type, record_id))
        self.logging.debug("Removed points of %s#%s from '%s'", record_type, record_id, profile.collection_name)

    async def remove_trailing(self, profile: IndexingProfile, record: Record, keep: int) -> None:
        """Delete the points of chunk indexes ``keep`` to ``keep + ORPHAN_SWEEP`` by id.

        Used when the filtered delete failed. Points of the first ``keep`` chunks
        are overwritten by the following upsert; ids past the sweep survive.
        """
        stale = [make_point_id(record.record_type, record.id, index) for index in range(keep, keep + ORPHAN_SWEEP)]
        try:
            await self.client_for(profile).do_delete_points_by_ids(profile.collection_name, stale)
        except VectorStoreDeleteError as e:
            self.logging.warning("Could not delete trailing points of %s#%s either: %s", record.record_type, record.id, e)
