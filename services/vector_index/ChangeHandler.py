"""Translate record change notifications into indexing work."""

from shared.clients.records.RecordStoreInterface import RecordStoreInterface
from shared.helper.HelperConfig import HelperConfig
from shared.models.config import IndexerSettings
from shared.models.events import ChangeEvent, ChangeKind
from shared.models.profile import IndexingProfile, RelationshipWatcher, WatcherAction
from shared.models.queue import QueueAction, QueueOrigin
from services.vector_index.DispatchStrategy import DispatchResult, DispatchStrategy

ACTION_FOR_EVENT = {
    ChangeKind.CREATED: QueueAction.INDEX,
    ChangeKind.UPDATED: QueueAction.UPDATE,
    ChangeKind.DELETED: QueueAction.DELETE,
}


class ChangeHandler:
    """Handles changes of the records a profile indexes directly."""

    def __init__(self, helper_config: HelperConfig, profile: IndexingProfile, dispatch: DispatchStrategy, settings: IndexerSettings | None = None):
        self.logging = helper_config.get_logger()
        self.profile = profile
        self.dispatch = dispatch
        self.settings = settings or IndexerSettings()

    @property
    def record_type(self) -> str:
        return self.profile.record_type

    def touches_watched_field(self, changed_fields: list[str] | None) -> bool:
        # unknown change set counts as changed
        if changed_fields is None:
            return True
        return bool(self.profile.watched_fields() & set(changed_fields))

    async def handle(self, event: ChangeEvent) -> list[DispatchResult]:
        if event.event == ChangeKind.CREATED and not self.settings.index_on_create:
            return []
        if event.event == ChangeKind.DELETED and not self.settings.delete_on_delete:
            return []
        if event.event == ChangeKind.UPDATED:
            if not self.settings.index_on_update:
                return []
            if not self.touches_watched_field(event.changed_fields):
                self.logging.debug(
                    "Update of %s#%s touches no indexed field, ignoring", event.record_type, event.record_id
                )
                return []
        action = ACTION_FOR_EVENT[event.event]

        result = await self.dispatch.submit(self.profile, event.record_type, event.record_id, action, QueueOrigin.CHANGE_EVENT)
        return [result]


class RelationshipChangeHandler:
    """Re-indexes the owning parents when a record along a watched path changes.

    One instance per RelationshipWatcher. It is registered on the watcher's
    related type and always enqueues ``update`` for the parent profile, never
    for the changed record itself.
    """

    def __init__(
        self,
        helper_config: HelperConfig,
        watcher: RelationshipWatcher,
        profile: IndexingProfile,
        record_store: RecordStoreInterface,
        dispatch: DispatchStrategy,
    ):
        self.logging = helper_config.get_logger()
        self.watcher = watcher
        self.profile = profile
        self.record_store = record_store
        self.dispatch = dispatch

    @property
    def record_type(self) -> str:
        return self.watcher.related_type

    async def handle(self, event: ChangeEvent) -> list[DispatchResult]:
        if not self.watcher.enabled or self.watcher.on_change_action == WatcherAction.IGNORE:
            return []
        if event.event == ChangeKind.UPDATED and not self.watcher.watches(event.changed_fields):
            return []

        parent_ids = await self.record_store.find_parents(
            self.profile.record_type, self.watcher.path, self.watcher.related_type, event.record_id
        )
        if not parent_ids:
            return []
        self.logging.debug(
            "%s of %s#%s affects %d %s records via '%s'",
            event.event.value, event.record_type, event.record_id, len(parent_ids), self.profile.record_type, self.watcher.path,
        )

        results = []
        for parent_id in parent_ids:
            results.append(await self.dispatch.submit(
                self.profile,
                self.profile.record_type,
                parent_id,
                QueueAction.UPDATE,
                QueueOrigin.CHANGE_EVENT,
                related_path=self.watcher.path,
            ))
        return results
