"""Wiring of the indexing engine.

build_engine() resolves settings and clients from the environment and
connects every service; the API server and the worker runner both start
from here. Tests pass their own record store, embed client and RAG manager.
"""

import httpx

from shared.clients.ClientInterface import ClientInterface
from shared.clients.embed.EmbedClientInterface import EmbedClientInterface
from shared.clients.embed.EmbedClientManager import EmbedClientManager
from shared.clients.rag.RAGClientManager import RAGClientManager
from shared.clients.records.RecordStoreInterface import RecordStoreInterface
from shared.clients.records.RecordStoreManager import RecordStoreManager
from shared.errors import BackendUnavailableError
from shared.helper.HelperConfig import HelperConfig
from shared.models.config import IndexerSettings
from shared.storage.StateStore import StateStore
from services.vector_index.ChangeQueue import ChangeQueue
from services.vector_index.ChunkingService import ChunkingService
from services.vector_index.ContentExtractor import ContentExtractor
from services.vector_index.DispatchStrategy import select_strategy
from services.vector_index.EmbeddingService import EmbeddingService
from services.vector_index.IndexingService import IndexingService
from services.vector_index.IndexWorker import IndexWorker
from services.vector_index.ModelAnalyzer import ModelAnalyzer
from services.vector_index.ObserverRegistry import ObserverRegistry
from services.vector_index.SearchService import SearchService
from services.vector_index.VectorSynchronizer import VectorSynchronizer


class IndexEngine:
    """All services of one process, sharing a single state store."""

    def __init__(
        self,
        helper_config: HelperConfig,
        settings: IndexerSettings,
        record_store: RecordStoreInterface,
        embed_client: EmbedClientInterface,
        rag_manager: RAGClientManager,
    ):
        self.helper_config = helper_config
        self.logging = helper_config.get_logger()
        self.settings = settings
        self.record_store = record_store
        self.embed_client = embed_client
        self.rag_manager = rag_manager

        self.state = StateStore(helper_config, settings.state_db)
        self.analyzer = ModelAnalyzer(helper_config, record_store)
        self.chunker = ChunkingService()
        self.extractor = ContentExtractor(helper_config, settings)
        self.embedder = EmbeddingService(helper_config, embed_client)
        self.synchronizer = VectorSynchronizer(helper_config, rag_manager, settings)

        # repositories exist only after open(); services below read them lazily through self.state
        self.queue: ChangeQueue | None = None
        self.worker: IndexWorker | None = None
        self.registry: ObserverRegistry | None = None
        self.indexing: IndexingService | None = None
        self.search: SearchService | None = None
        self._clients_booted = False

    def clients(self) -> list:
        return [self.record_store, self.embed_client, *self.rag_manager.get_clients()]

    async def start(self, boot_clients: bool = True, register: bool = True) -> "IndexEngine":
        """Open the state store, boot the clients and register the change handlers.

        Args:
            boot_clients (bool): Boot the HTTP clients. Tests hand in booted fakes.
            register (bool): Register the handlers of every enabled profile.
        """
        await self.state.open()
        if boot_clients:
            self.logging.info("Booting all clients...")
            for client in self.clients():
                await client.boot()
            self._clients_booted = True
            self.logging.info("All clients booted successfully.")

        self.queue = ChangeQueue(self.helper_config, self.state.queue, self.settings)
        self.worker = IndexWorker(
            self.helper_config,
            self.state,
            self.queue,
            self.record_store,
            self.extractor,
            self.chunker,
            self.embedder,
            self.synchronizer,
            self.settings,
        )
        strategy = select_strategy(self.helper_config, self.settings, self.queue, self.worker)
        self.registry = ObserverRegistry(self.helper_config, self.state, self.record_store, strategy, self.settings)
        self.indexing = IndexingService(self.helper_config, self.state, self.record_store, self.analyzer, strategy, self.settings)
        self.search = SearchService(self.helper_config, self.state, self.record_store, self.embedder, self.synchronizer, self.settings)

        if register:
            await self.registry.register_all()
        return self

    async def check_backends(self) -> None:
        """Healthcheck every HTTP backend after booting.

        An unreachable record store is only logged; queue items fail and are
        retried until it is back. Embeddings and vector stores are required.

        Raises:
            BackendUnavailableError: If the embed client or a RAG client is unhealthy.
        """
        for client in self.clients():
            if not isinstance(client, ClientInterface):
                continue
            try:
                response = await client.do_healthcheck()
                reason = None if response.is_success else f"status {response.status_code}"
            except httpx.HTTPError as e:
                reason = f"{e.__class__.__name__}: {e}"
            if reason is None:
                self.logging.debug("%s backend '%s' is healthy", client.get_client_type(), client.get_engine_name())
            elif client is self.record_store:
                self.logging.warning("Record store '%s' is not reachable (%s), indexing will retry.", client.get_engine_name(), reason)
            else:
                raise BackendUnavailableError(client.get_client_type(), client.get_engine_name(), reason)

    async def close(self) -> None:
        if self.registry is not None:
            self.registry.clear()
        if self._clients_booted:
            self.logging.info("Shutting down, closing all clients...")
            for client in self.clients():
                await client.close()
            self._clients_booted = False
        await self.state.close()


def build_engine(
    helper_config: HelperConfig,
    settings: IndexerSettings | None = None,
    record_store: RecordStoreInterface | None = None,
    embed_client: EmbedClientInterface | None = None,
    rag_manager: RAGClientManager | None = None,
) -> IndexEngine:
    """Create an engine; anything not passed in is resolved from the environment.

    Raises:
        ValueError: If a configured engine is unknown or a setting is invalid.
    """
    return IndexEngine(
        helper_config=helper_config,
        settings=settings or IndexerSettings.from_helper_config(helper_config),
        record_store=record_store or RecordStoreManager(helper_config).get_store(),
        embed_client=embed_client or EmbedClientManager(helper_config).get_client(),
        rag_manager=rag_manager or RAGClientManager(helper_config),
    )
