"""Routing of indexing work: through the durable queue, or inline.

The strategy is picked once at startup from VECTOR_QUEUE_ENABLED; change
handlers and the API only ever talk to a DispatchStrategy.
"""

from abc import ABC, abstractmethod

from pydantic import BaseModel

from shared.helper.HelperConfig import HelperConfig
from shared.models.config import IndexerSettings
from shared.models.profile import IndexingProfile
from shared.models.queue import QueueAction, QueueItem, QueueOrigin
from services.vector_index.ChangeQueue import ChangeQueue
from services.vector_index.IndexWorker import IndexOutcome, IndexWorker


class DispatchResult(BaseModel):
    """What happened to one unit of work handed to a strategy.

    Attributes:
        queued:    True if the work was left in the queue for a worker.
        debounced: True if an open queue item already covered the change.
        item:      The queue item covering the work, if queued.
        outcome:   Result of inline processing.
        error:     Failure summary of inline processing.
    """

    record_type: str
    record_id: str
    action: QueueAction
    related_path: str | None = None
    queued: bool = False
    debounced: bool = False
    item: QueueItem | None = None
    outcome: IndexOutcome | None = None
    error: str | None = None


class DispatchStrategy(ABC):
    @abstractmethod
    async def submit(
        self,
        profile: IndexingProfile,
        record_type: str,
        record_id: str,
        action: QueueAction,
        origin: QueueOrigin = QueueOrigin.CHANGE_EVENT,
        related_path: str | None = None,
    ) -> DispatchResult:
        pass

    @abstractmethod
    def name(self) -> str:
        pass


class QueuedDispatch(DispatchStrategy):
    """Leaves the work in the queue; workers pick it up."""

    def __init__(self, queue: ChangeQueue):
        self.queue = queue

    def name(self) -> str:
        return "queued"

    async def submit(self, profile, record_type, record_id, action, origin=QueueOrigin.CHANGE_EVENT, related_path=None) -> DispatchResult:
        item = await self.queue.enqueue(profile, record_type, str(record_id), action, origin, related_path)
        return DispatchResult(
            record_type=record_type,
            record_id=str(record_id),
            action=action,
            related_path=related_path,
            queued=item is not None,
            debounced=item is None,
            item=item,
        )


class InlineDispatch(DispatchStrategy):
    """Processes the work immediately in the caller's task.

    Raises:
        IndexingError: From submit(), if processing fails.
    """

    def __init__(self, worker: IndexWorker):
        self.worker = worker

    def name(self) -> str:
        return "inline"

    async def submit(self, profile, record_type, record_id, action, origin=QueueOrigin.CHANGE_EVENT, related_path=None) -> DispatchResult:
        outcome = await self.worker.index_now(record_type, str(record_id), action)
        return DispatchResult(
            record_type=record_type,
            record_id=str(record_id),
            action=action,
            related_path=related_path,
            outcome=outcome,
        )


def select_strategy(helper_config: HelperConfig, settings: IndexerSettings, queue: ChangeQueue, worker: IndexWorker) -> DispatchStrategy:
    strategy = QueuedDispatch(queue) if settings.queue_enabled else InlineDispatch(worker)
    helper_config.get_logger().info("Indexing work is dispatched %s", strategy.name())
    return strategy
