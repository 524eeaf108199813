"""Durable work list of (record, action) pairs.

Thin policy layer over QueueRepo: applies the debounce window and the retry
backoff from IndexerSettings, and reads the time from an injectable clock.
"""

import time
from typing import Callable

from shared.helper.HelperConfig import HelperConfig
from shared.models.config import IndexerSettings
from shared.models.profile import IndexingProfile
from shared.models.queue import QueueAction, QueueItem, QueueOrigin, QueueStatus
from shared.storage.repositories import QueueRepo


class ChangeQueue:
    def __init__(
        self,
        helper_config: HelperConfig,
        repo: QueueRepo,
        settings: IndexerSettings | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self.logging = helper_config.get_logger()
        self.repo = repo
        self.settings = settings or IndexerSettings()
        self.clock = clock

    ##########################################
    ################ ENQUEUE #################
    ##########################################

    async def enqueue(
        self,
        profile: IndexingProfile,
        record_type: str,
        record_id: str,
        action: QueueAction,
        origin: QueueOrigin = QueueOrigin.CHANGE_EVENT,
        related_path: str | None = None,
    ) -> QueueItem | None:
        """Queue work for a record unless an open item already covers it.

        Returns:
            QueueItem | None: The new or covering item, None when debounced.
        """
        item, created = await self.repo.enqueue(
            profile_id=profile.id,
            record_type=record_type,
            record_id=str(record_id),
            action=action,
            origin=origin,
            related_path=related_path,
            debounce_seconds=self.settings.debounce_seconds,
            now=self.clock(),
        )
        if item is None:
            self.logging.debug("Debounced %s of %s#%s", action.value, record_type, record_id)
        elif created:
            self.logging.debug("Queued %s of %s#%s (item %d, %s)", action.value, record_type, record_id, item.id, origin.value)
        return item

    ##########################################
    ################# CLAIM ##################
    ##########################################

    async def claim_next(self) -> QueueItem | None:
        return await self.repo.claim_next(now=self.clock())

    async def claim(self, item_id: int) -> QueueItem | None:
        return await self.repo.claim(item_id, now=self.clock())

    ##########################################
    ############## TRANSITIONS ###############
    ##########################################

    def retry_delay(self, attempts: int) -> float:
        """Seconds before an item that failed ``attempts`` times becomes claimable again."""
        return self.settings.retry_after * (2 ** max(attempts - 1, 0))

    async def mark_completed(self, item: QueueItem, indexed: bool = True) -> QueueItem | None:
        return await self.repo.mark_completed(item, indexed=indexed, now=self.clock())

    async def mark_retry(self, item: QueueItem, error: str) -> QueueItem | None:
        now = self.clock()
        return await self.repo.mark_retry(item, error, available_at=now + self.retry_delay(item.attempts), now=now)

    async def mark_failed(self, item: QueueItem, error: str) -> QueueItem | None:
        return await self.repo.mark_failed(item, error, now=self.clock())

    async def release_stale(self, older_than_seconds: float) -> int:
        now = self.clock()
        released = await self.repo.release_stale(now - older_than_seconds, now=now)
        if released:
            self.logging.warning("Released %d stale processing items back to pending", released)
        return released

    ##########################################
    ################# READS ##################
    ##########################################

    async def pending_items(self, record_type: str | None = None, limit: int = 100) -> list[QueueItem]:
        return await self.repo.list_items(status=QueueStatus.PENDING, record_type=record_type, limit=limit)

    async def status_counts(self, profile: IndexingProfile | None = None) -> dict[str, int]:
        return await self.repo.status_counts(profile.id if profile else None)
