"""Process-wide table of which record types are watched, and by whom.

Lifecycle: register_all() once on service start registers every enabled
profile with its enabled watchers; unregister() disables a profile and its
watchers in storage and drops their handlers; clear() on shutdown.
"""

from shared.clients.records.RecordStoreInterface import RecordStoreInterface
from shared.errors import ProfileNotFoundError
from shared.helper.HelperConfig import HelperConfig
from shared.models.config import IndexerSettings
from shared.models.events import ChangeEvent
from shared.storage.StateStore import StateStore
from services.vector_index.ChangeHandler import ACTION_FOR_EVENT, ChangeHandler, RelationshipChangeHandler
from services.vector_index.DispatchStrategy import DispatchResult, DispatchStrategy


class ObserverRegistry:
    def __init__(
        self,
        helper_config: HelperConfig,
        state: StateStore,
        record_store: RecordStoreInterface,
        dispatch: DispatchStrategy,
        settings: IndexerSettings | None = None,
    ):
        self.helper_config = helper_config
        self.logging = helper_config.get_logger()
        self.state = state
        self.record_store = record_store
        self.strategy = dispatch
        self.settings = settings or IndexerSettings()

        # changed record type -> handlers; a profile's handlers may sit under several types
        self._handlers: dict[str, list[ChangeHandler | RelationshipChangeHandler]] = {}
        self._registered: set[str] = set()

    ##########################################
    ############## REGISTRATION ##############
    ##########################################

    async def register_all(self) -> list[str]:
        profiles = await self.state.profiles.list_profiles(enabled_only=True)
        for profile in profiles:
            await self.register(profile.record_type)
        self.logging.info("Registered change handlers for %d record types", len(self._registered))
        return self.registered_types()

    async def register(self, record_type: str) -> int:
        """(Re)register the handlers of one profile.

        Returns:
            int: Number of handlers registered.

        Raises:
            ProfileNotFoundError: If no enabled profile exists for the type.
        """
        profile = await self.state.profiles.get_by_type(record_type)
        if profile is None or not profile.enabled:
            raise ProfileNotFoundError(f"No enabled indexing profile for '{record_type}'")

        self._drop_handlers(record_type)
        handlers: list[ChangeHandler | RelationshipChangeHandler] = [
            ChangeHandler(self.helper_config, profile, self.strategy, self.settings)
        ]
        if self.settings.watch_relationships:
            for watcher in await self.state.watchers.list_for_profile(profile.id, enabled_only=True):
                handlers.append(RelationshipChangeHandler(
                    self.helper_config, watcher, profile, self.record_store, self.strategy
                ))

        for handler in handlers:
            self._handlers.setdefault(handler.record_type, []).append(handler)
        self._registered.add(record_type)
        self.logging.debug("Registered %d handlers for '%s'", len(handlers), record_type)
        return len(handlers)

    async def unregister(self, record_type: str) -> bool:
        """Stop watching a profile and mark it and its watchers disabled.

        Returns:
            bool: False if no profile exists for the type.
        """
        self._drop_handlers(record_type)
        self._registered.discard(record_type)
        profile = await self.state.profiles.get_by_type(record_type)
        if profile is None:
            return False
        await self.state.profiles.set_enabled(record_type, False)
        await self.state.watchers.set_enabled_for_profile(profile.id, False)
        self.logging.info("Stopped watching '%s'", record_type)
        return True

    def _drop_handlers(self, record_type: str) -> None:
        for changed_type in list(self._handlers):
            kept = [h for h in self._handlers[changed_type] if h.profile.record_type != record_type]
            if kept:
                self._handlers[changed_type] = kept
            else:
                del self._handlers[changed_type]

    def is_registered(self, record_type: str) -> bool:
        return record_type in self._registered

    def registered_types(self) -> list[str]:
        return sorted(self._registered)

    def handler_count(self, changed_type: str | None = None) -> int:
        if changed_type is not None:
            return len(self._handlers.get(changed_type, []))
        return sum(len(handlers) for handlers in self._handlers.values())

    def clear(self) -> None:
        self._handlers.clear()
        self._registered.clear()

    ##########################################
    ################ DISPATCH ################
    ##########################################

    async def dispatch(self, event: ChangeEvent) -> list[DispatchResult]:
        """Hand a change to every handler registered for its record type.

        A failing handler is logged and reported in its result; the other
        handlers still run.
        """
        results: list[DispatchResult] = []
        for handler in list(self._handlers.get(event.record_type, [])):
            try:
                results.extend(await handler.handle(event))
            except Exception as e:
                self.logging.error(
                    "Handler for '%s' failed on %s of %s#%s: %s",
                    handler.profile.record_type, event.event.value, event.record_type, event.record_id, e,
                )
                results.append(DispatchResult(
                    record_type=event.record_type,
                    record_id=event.record_id,
                    action=ACTION_FOR_EVENT[event.event],
                    error=str(e),
                ))
        return results
