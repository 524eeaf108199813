"""Semantic search over indexed records.

A record is stored as one point per chunk, so raw hits are collapsed to one
score per record (its best chunk) before ranking and resolving.
"""

import asyncio
from typing import Any

import httpx

from shared.clients.records.RecordStoreInterface import RecordStoreInterface
from shared.clients.rag.models.VectorPoint import ScoredPoint
from shared.errors import ProfileNotFoundError, VectorIndexerError
from shared.helper.HelperConfig import HelperConfig
from shared.models.config import IndexerSettings
from shared.models.profile import IndexingProfile
from shared.models.search import ProfileStats, SearchHit, SearchResult
from shared.storage.StateStore import StateStore
from services.vector_index.EmbeddingService import EmbeddingService
from services.vector_index.VectorSynchronizer import VectorSynchronizer

# neighbours fetched per requested result, to survive the per-record collapse
OVERFETCH = 3


def collapse_scores(points: list[ScoredPoint], exclude_id: str | None = None) -> dict[str, float]:
    """Best score per record id, highest first."""
    best: dict[str, float] = {}
    for point in points:
        record_id = point.payload.get("record_id")
        if record_id is None:
            continue
        record_id = str(record_id)
        if record_id == exclude_id:
            continue
        if record_id not in best or point.score > best[record_id]:
            best[record_id] = point.score
    return dict(sorted(best.items(), key=lambda kv: kv[1], reverse=True))


class SearchService:
    def __init__(
        self,
        helper_config: HelperConfig,
        state: StateStore,
        record_store: RecordStoreInterface,
        embedder: EmbeddingService,
        synchronizer: VectorSynchronizer,
        settings: IndexerSettings | None = None,
    ):
        self.logging = helper_config.get_logger()
        self.state = state
        self.record_store = record_store
        self.embedder = embedder
        self.synchronizer = synchronizer
        self.settings = settings or IndexerSettings()

    async def _profile(self, record_type: str) -> IndexingProfile:
        profile = await self.state.profiles.get_by_type(record_type)
        if profile is None or not profile.enabled:
            raise ProfileNotFoundError(f"No enabled indexing profile for '{record_type}'")
        return profile

    def _limit(self, limit: int | None) -> int:
        return max(1, min(limit or self.settings.search_limit, self.settings.search_max_limit))

    async def _resolve(self, record_type: str, scores: dict[str, float], with_records: bool) -> list[SearchHit]:
        if not with_records:
            return [SearchHit(record_id=record_id, score=score) for record_id, score in scores.items()]

        semaphore = asyncio.Semaphore(10)

        async def fetch(record_id: str):
            async with semaphore:
                return await self.record_store.fetch(record_type, record_id)

        records = await asyncio.gather(*(fetch(record_id) for record_id in scores))
        hits = []
        for (record_id, score), record in zip(scores.items(), records):
            if record is None:
                # points of a deleted record that were not removed yet
                self.logging.debug("Search hit %s#%s no longer exists, dropping it", record_type, record_id)
                continue
            hits.append(SearchHit(record_id=record_id, score=score, record={"id": record.id, **record.attributes}))
        return hits

    ##########################################
    ################ SEARCH ##################
    ##########################################

    async def search(
        self,
        record_type: str,
        query: str,
        limit: int | None = None,
        threshold: float | None = None,
        filters: dict[str, Any] | None = None,
        with_records: bool = True,
    ) -> SearchResult:
        """Rank records of a type by similarity to ``query``.

        Raises:
            ProfileNotFoundError: If the type has no enabled profile.
            EmbeddingProviderError: If the query can not be embedded.
            VectorStoreSearchError: If the vector store query fails.
        """
        profile = await self._profile(record_type)
        limit = self._limit(limit)
        threshold = self.settings.search_threshold if threshold is None else threshold

        vector = await self.embedder.embed_single(query)
        if not vector:
            return SearchResult(record_type=record_type, query=query)

        client = self.synchronizer.client_for(profile)
        points = await client.do_search(
            profile.collection_name,
            vector,
            limit * OVERFETCH,
            threshold,
            {**(filters or {}), "record_type": record_type},
        )
        scores = collapse_scores(points)
        # deleted records drop out before the cut so the limit still fills
        hits = (await self._resolve(record_type, scores, with_records))[:limit]
        self.logging.debug("Search on '%s' returned %d points, %d records", record_type, len(points), len(hits))
        return SearchResult(record_type=record_type, query=query, hits=hits, total=len(hits))

    async def search_ids(self, record_type: str, query: str, limit: int | None = None, threshold: float | None = None, filters: dict[str, Any] | None = None) -> list[str]:
        result = await self.search(record_type, query, limit, threshold, filters, with_records=False)
        return [hit.record_id for hit in result.hits]

    async def find_similar(
        self,
        record_type: str,
        record_id: str,
        limit: int | None = None,
        threshold: float | None = None,
        with_records: bool = True,
    ) -> SearchResult:
        """Records closest to an indexed record, seeded by its own stored vectors.

        The record itself is never part of the result. A record without points
        yields an empty result.
        """
        profile = await self._profile(record_type)
        limit = self._limit(limit)
        threshold = self.settings.search_threshold if threshold is None else threshold
        record_id = str(record_id)

        client = self.synchronizer.client_for(profile)
        own = await client.do_scroll_all(
            profile.collection_name,
            self.synchronizer.identity_filter(record_type, record_id),
            with_payload=False,
            with_vector=True,
        )
        vectors = [point["vector"] for point in own.result if point.get("vector")]
        if not vectors:
            return SearchResult(record_type=record_type)

        # own chunks come back as well, fetch enough to still fill the limit
        fetch_limit = limit * OVERFETCH + len(vectors)
        results = await asyncio.gather(*(
            client.do_search(profile.collection_name, vector, fetch_limit, threshold, {"record_type": record_type})
            for vector in vectors
        ))
        points = [point for batch in results for point in batch]
        scores = collapse_scores(points, exclude_id=record_id)
        hits = (await self._resolve(record_type, scores, with_records))[:limit]
        return SearchResult(record_type=record_type, hits=hits, total=len(hits))

    ##########################################
    ################# STATS ##################
    ##########################################

    async def stats(self, record_type: str) -> ProfileStats:
        """Counters of a profile plus live collection and queue state.

        Raises:
            ProfileNotFoundError: If no profile (enabled or not) exists for the type.
        """
        profile = await self.state.profiles.get_by_type(record_type)
        if profile is None:
            raise ProfileNotFoundError(f"No indexing profile for '{record_type}'")

        info = None
        try:
            info = await self.synchronizer.client_for(profile).do_collection_info(profile.collection_name)
        except (VectorIndexerError, ValueError, httpx.HTTPError) as e:
            self.logging.warning("Could not read collection '%s': %s", profile.collection_name, e)

        return ProfileStats(
            record_type=profile.record_type,
            collection_name=profile.collection_name,
            enabled=profile.enabled,
            indexed_count=profile.indexed_count,
            pending_count=profile.pending_count,
            failed_count=profile.failed_count,
            last_indexed_at=profile.last_indexed_at,
            points_count=(info or {}).get("points_count"),
            vector_size=(info or {}).get("vector_size"),
            queue=await self.state.queue.status_counts(profile.id),
        )

    async def overview(self) -> list[ProfileStats]:
        profiles = await self.state.profiles.list_profiles()
        return [await self.stats(profile.record_type) for profile in profiles]
