"""Queue consumer and the extract → chunk → embed → sync pipeline.

Each claimed queue item is processed on its own: a failure is recorded on that
item (retry or terminal) and never affects other items. Several workers, in
this process or others, may consume the same queue since claims are exclusive.
"""

import asyncio
import time

from pydantic import BaseModel

from shared.clients.records.RecordStoreInterface import RecordStoreInterface
from shared.errors import (
    EmbeddingProviderError,
    IndexingError,
    ProfileNotFoundError,
    RecordNotFoundError,
)
from shared.helper.HelperConfig import HelperConfig
from shared.models.config import IndexerSettings
from shared.models.content import Chunk, ContentItem
from shared.models.profile import IndexingProfile
from shared.models.queue import IndexLogEntry, IndexLogStatus, QueueAction, QueueItem
from shared.storage.StateStore import StateStore
from services.vector_index.ChangeQueue import ChangeQueue
from services.vector_index.ChunkingService import ChunkingService
from services.vector_index.ContentExtractor import ContentExtractor
from services.vector_index.EmbeddingService import EmbeddingService
from services.vector_index.VectorSynchronizer import VectorSynchronizer

# items left in processing longer than this are assumed orphaned by a crashed worker
STALE_PROCESSING_SECONDS = 600


class IndexOutcome(BaseModel):
    found: bool = True
    chunks: int = 0
    embeddings: int = 0
    points: int = 0


class IndexWorker:
    def __init__(
        self,
        helper_config: HelperConfig,
        state: StateStore,
        queue: ChangeQueue,
        record_store: RecordStoreInterface,
        extractor: ContentExtractor,
        chunker: ChunkingService,
        embedder: EmbeddingService,
        synchronizer: VectorSynchronizer,
        settings: IndexerSettings | None = None,
    ):
        self.logging = helper_config.get_logger()
        self.state = state
        self.queue = queue
        self.record_store = record_store
        self.extractor = extractor
        self.chunker = chunker
        self.embedder = embedder
        self.synchronizer = synchronizer
        self.settings = settings or IndexerSettings()

    ##########################################
    ############### PIPELINE #################
    ##########################################

    def build_chunks(self, items: list[ContentItem]) -> list[Chunk]:
        """Expand chunkable items, keep the rest whole. Blank pieces are dropped."""
        chunks: list[Chunk] = []
        for item in items:
            if item.chunk:
                pieces = self.chunker.chunk(
                    item.text,
                    item.chunk_size or self.settings.chunk_size,
                    item.chunk_overlap if item.chunk_overlap is not None else self.settings.chunk_overlap,
                )
            else:
                pieces = [item.text]
            chunks.extend(
                Chunk(text=piece, source=item.source, field=item.field, weight=item.weight)
                for piece in pieces if piece.strip()
            )
        return chunks

    async def index_record(self, profile: IndexingProfile, record_type: str, record_id: str) -> IndexOutcome:
        """Re-derive and re-sync all points of one record.

        Raises:
            RecordNotFoundError: If the record no longer exists.
            EmbeddingProviderError: If embedding fails after all retries.
            VectorStoreWriteError: If the collection or the upsert fails.
        """
        record = await self.record_store.fetch(record_type, record_id, profile.eager_load_map)
        if record is None:
            raise RecordNotFoundError(record_type, record_id)

        chunks = self.build_chunks(self.extractor.extract(record, profile))
        if not chunks:
            self.logging.info("%s#%s has no content, removing its points", record_type, record_id)
            await self.synchronizer.remove(profile, record_type, record_id)
            return IndexOutcome()

        vectors = await self.embedder.embed([chunk.text for chunk in chunks])
        if len(vectors) != len(chunks):
            raise EmbeddingProviderError(f"Got {len(vectors)} embeddings for {len(chunks)} chunks of {record_type}#{record_id}")

        metadata = self.extractor.extract_metadata(record, profile)
        points = await self.synchronizer.sync(profile, record, chunks, vectors, metadata)
        return IndexOutcome(chunks=len(chunks), embeddings=len(vectors), points=points)

    async def execute(self, profile: IndexingProfile, record_type: str, record_id: str, action: QueueAction) -> IndexOutcome:
        """Run one action. A record that vanished before indexing is a successful no-op."""
        if action == QueueAction.DELETE:
            await self.synchronizer.remove(profile, record_type, record_id)
            return IndexOutcome()
        try:
            return await self.index_record(profile, record_type, record_id)
        except RecordNotFoundError:
            self.logging.info("%s#%s no longer exists, nothing to index", record_type, record_id)
            return IndexOutcome(found=False)

    ##########################################
    ############### AUDIT LOG ################
    ##########################################

    async def _audit(
        self,
        profile_id: int | None,
        record_type: str,
        record_id: str,
        action: QueueAction,
        started: float,
        outcome: IndexOutcome | None = None,
        error: str | None = None,
        metadata: dict | None = None,
    ) -> None:
        outcome = outcome or IndexOutcome(found=False)
        await self.state.logs.add(IndexLogEntry(
            profile_id=profile_id,
            record_type=record_type,
            record_id=record_id,
            action=action.value,
            records_processed=1 if outcome.found and error is None else 0,
            chunks_created=outcome.chunks,
            embeddings_generated=outcome.embeddings,
            duration_seconds=round(time.perf_counter() - started, 4),
            status=IndexLogStatus.FAILED if error else IndexLogStatus.SUCCESS,
            error_message=error,
            metadata=metadata or {},
        ))

    ##########################################
    ################ QUEUE ###################
    ##########################################

    async def process(self, item: QueueItem) -> QueueItem | None:
        """Run a claimed item and move it to completed, pending (retry) or failed."""
        started = time.perf_counter()
        meta = {"origin": item.origin.value, "attempt": item.attempts, "related_path": item.related_path}

        profile = await self.state.profiles.get(item.profile_id)
        if profile is None:
            self.logging.error("Queue item %d references missing profile %d", item.id, item.profile_id)
            return await self.queue.mark_failed(item, f"Profile {item.profile_id} not found")
        if not profile.enabled:
            self.logging.info("Profile for '%s' is disabled, skipping item %d", profile.record_type, item.id)
            return await self.queue.mark_completed(item, indexed=False)

        try:
            outcome = await self.execute(profile, item.record_type, item.record_id, item.action)
        except Exception as e:
            error = f"{e.__class__.__name__}: {e}"
            if item.attempts < self.settings.max_attempts:
                self.logging.warning(
                    "Attempt %d/%d of %s %s#%s failed, retrying later: %s",
                    item.attempts, self.settings.max_attempts, item.action.value, item.record_type, item.record_id, error,
                )
                return await self.queue.mark_retry(item, error)
            self.logging.error(
                "%s of %s#%s failed after %d attempts: %s",
                item.action.value, item.record_type, item.record_id, item.attempts, error,
            )
            failed = await self.queue.mark_failed(item, error)
            if failed is not None:
                await self._audit(profile.id, item.record_type, item.record_id, item.action, started, error=error, metadata=meta)
            return failed

        indexed = item.action != QueueAction.DELETE and outcome.found
        completed = await self.queue.mark_completed(item, indexed=indexed)
        if completed is None:
            self.logging.warning("Queue item %d was released while processing, leaving it to its new holder", item.id)
        await self._audit(
            profile.id, item.record_type, item.record_id, item.action, started, outcome,
            metadata={**meta, "points": outcome.points, "missing": not outcome.found},
        )
        self.logging.info(
            "%s of %s#%s done: %d chunks, %d points",
            item.action.value, item.record_type, item.record_id, outcome.chunks, outcome.points,
        )
        return completed

    async def run_once(self) -> int:
        """Claim up to ``worker_concurrency`` items and process them concurrently.

        Returns:
            int: Number of items processed.
        """
        items: list[QueueItem] = []
        for _ in range(self.settings.worker_concurrency):
            item = await self.queue.claim_next()
            if item is None:
                break
            items.append(item)
        if not items:
            return 0

        results = await asyncio.gather(*(self.process(item) for item in items), return_exceptions=True)
        for item, result in zip(items, results):
            if isinstance(result, Exception):
                self.logging.error("Unexpected error while processing queue item %d: %s", item.id, result)
        return len(items)

    async def _consume(self, slot: int, stop_event: asyncio.Event) -> None:
        while not stop_event.is_set():
            item = await self.queue.claim_next()
            if item is None:
                try:
                    await asyncio.wait_for(stop_event.wait(), timeout=self.settings.poll_interval)
                except asyncio.TimeoutError:
                    pass
                continue
            try:
                await self.process(item)
            except Exception as e:
                # storage errors while recording the outcome; the item stays processing until released as stale
                self.logging.error("Worker slot %d failed on queue item %d: %s", slot, item.id, e)

    async def run(self, stop_event: asyncio.Event) -> None:
        """Consume the queue with ``worker_concurrency`` independent slots until ``stop_event`` is set."""
        await self.queue.release_stale(STALE_PROCESSING_SECONDS)
        self.logging.info("Index worker started with %d slots", self.settings.worker_concurrency)
        await asyncio.gather(*(
            self._consume(slot, stop_event) for slot in range(self.settings.worker_concurrency)
        ))
        self.logging.info("Index worker stopped")

    ##########################################
    ############# SYNCHRONOUS ################
    ##########################################

    async def index_now(self, record_type: str, record_id: str, action: QueueAction = QueueAction.INDEX) -> IndexOutcome:
        """Index or delete a record immediately, bypassing the queue.

        Raises:
            ProfileNotFoundError: If no enabled profile exists for the type.
            IndexingError: If the pipeline fails; carries the cause and the record identity.
        """
        profile = await self.state.profiles.get_by_type(record_type)
        if profile is None or not profile.enabled:
            raise ProfileNotFoundError(f"No enabled indexing profile for '{record_type}'")

        started = time.perf_counter()
        try:
            outcome = await self.execute(profile, record_type, str(record_id), action)
        except Exception as e:
            error = f"{e.__class__.__name__}: {e}"
            await self.state.profiles.record_outcome(profile.id, failed=1)
            await self._audit(profile.id, record_type, str(record_id), action, started, error=error, metadata={"origin": "manual"})
            raise IndexingError(record_type, str(record_id), action.value, e) from e

        indexed = action != QueueAction.DELETE and outcome.found
        await self.state.profiles.record_outcome(profile.id, indexed=1 if indexed else 0)
        await self._audit(profile.id, record_type, str(record_id), action, started, outcome, metadata={"origin": "manual"})
        return outcome
