"""Profile generation, manual index requests and backfills.

Generation runs the analyzer and persists the suggested profile together with
its relationship watchers. Index requests and backfills hand their work to the
configured dispatch strategy, so they are queued or processed inline exactly
like change events.
"""

import asyncio

from pydantic import BaseModel, Field

from shared.clients.records.RecordStoreInterface import RecordStoreInterface
from shared.errors import IndexingError, ProfileNotFoundError
from shared.helper.HelperConfig import HelperConfig
from shared.models.analysis import Analysis
from shared.models.config import IndexerSettings
from shared.models.profile import IndexingProfile, RelationshipWatcher
from shared.models.queue import QueueAction, QueueOrigin
from shared.storage.StateStore import StateStore
from services.vector_index.DispatchStrategy import DispatchResult, DispatchStrategy
from services.vector_index.ModelAnalyzer import ModelAnalyzer

BACKFILL_CONCURRENCY = 5  # max parallel submissions during a backfill


class IndexRequestSummary(BaseModel):
    record_type: str
    requested: int = 0
    queued: int = 0
    debounced: int = 0
    processed: int = 0
    failed: int = 0
    errors: list[str] = Field(default_factory=list)


class IndexingService:
    def __init__(
        self,
        helper_config: HelperConfig,
        state: StateStore,
        record_store: RecordStoreInterface,
        analyzer: ModelAnalyzer,
        strategy: DispatchStrategy,
        settings: IndexerSettings | None = None,
    ):
        self.logging = helper_config.get_logger()
        self.state = state
        self.record_store = record_store
        self.analyzer = analyzer
        self.strategy = strategy
        self.settings = settings or IndexerSettings()

    ##########################################
    ########### PROFILE GENERATION ###########
    ##########################################

    async def generate_profile(self, record_type: str, max_depth: int | None = None, save: bool = True) -> Analysis:
        """Analyse a type and (optionally) persist the suggested profile and watchers.

        Raises:
            UnknownTypeError: If the type is not in the descriptor table.
            NotIndexableError: If the type has no text field of its own.
        """
        self.analyzer.require_indexable(record_type)
        depth = self.settings.max_relationship_depth if max_depth is None else max_depth
        analysis = self.analyzer.analyze(record_type, depth)
        if save and analysis.suggested_profile is not None:
            saved, _ = await self.save_profile(analysis.suggested_profile)
            analysis.suggested_profile = saved
        return analysis

    async def save_profile(self, profile: IndexingProfile) -> tuple[IndexingProfile, list[RelationshipWatcher]]:
        """Persist a profile and regenerate its relationship watchers."""
        saved = await self.state.profiles.save(profile)
        watchers = await self.state.watchers.replace_for_profile(saved.id, self.analyzer.build_watchers(saved))
        self.logging.info(
            "Saved profile for '%s' (collection '%s', %d fields, %d watchers)",
            saved.record_type, saved.collection_name, len(saved.fields), len(watchers),
        )
        return saved, watchers

    async def _profile(self, record_type: str) -> IndexingProfile:
        profile = await self.state.profiles.get_by_type(record_type)
        if profile is None or not profile.enabled:
            raise ProfileNotFoundError(f"No enabled indexing profile for '{record_type}'")
        return profile

    ##########################################
    ############ INDEX REQUESTS ##############
    ##########################################

    async def _submit_many(
        self,
        profile: IndexingProfile,
        ids: list[str],
        action: QueueAction,
        origin: QueueOrigin,
    ) -> IndexRequestSummary:
        summary = IndexRequestSummary(record_type=profile.record_type, requested=len(ids))
        semaphore = asyncio.Semaphore(BACKFILL_CONCURRENCY)

        async def _submit(record_id: str) -> DispatchResult:
            async with semaphore:
                return await self.strategy.submit(profile, profile.record_type, record_id, action, origin)

        results = await asyncio.gather(*(_submit(record_id) for record_id in ids), return_exceptions=True)
        for record_id, result in zip(ids, results):
            if isinstance(result, IndexingError):
                summary.failed += 1
                summary.errors.append(str(result))
            elif isinstance(result, Exception):
                raise result
            elif result.queued:
                summary.queued += 1
            elif result.debounced:
                summary.debounced += 1
            else:
                summary.processed += 1
        return summary

    async def request_index(
        self,
        record_type: str,
        ids: list[str],
        action: QueueAction = QueueAction.INDEX,
    ) -> IndexRequestSummary:
        """Manual index (or delete) request for explicit ids."""
        profile = await self._profile(record_type)
        ids = list(dict.fromkeys(str(i) for i in ids))
        summary = await self._submit_many(profile, ids, action, QueueOrigin.MANUAL)
        self.logging.info(
            "Manual %s of %d %s records: %d queued, %d processed, %d failed",
            action.value, len(ids), record_type, summary.queued, summary.processed, summary.failed,
        )
        return summary

    async def backfill(self, record_type: str, ids: list[str] | None = None) -> IndexRequestSummary:
        """Index every record of a type (or the given subset) with origin backfill."""
        profile = await self._profile(record_type)
        if ids is None:
            ids = await self.record_store.list_ids(record_type)
        ids = list(dict.fromkeys(str(i) for i in ids))
        summary = await self._submit_many(profile, ids, QueueAction.INDEX, QueueOrigin.BACKFILL)
        self.logging.info(
            "Backfill of '%s': %d records, %d queued, %d already queued, %d processed, %d failed",
            record_type, len(ids), summary.queued, summary.debounced, summary.processed, summary.failed,
        )
        return summary
