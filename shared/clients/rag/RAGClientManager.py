from shared.clients.rag.RAGClientInterface import RAGClientInterface
from shared.helper.HelperConfig import HelperConfig
from shared.helper.engine_loader import load_engine_class


class RAGClientManager:
    """Holds one vector store client per engine listed in ``RAG_ENGINES``.

    Indexing profiles name their driver (e.g. "qdrant"); ``get_client`` maps
    that name to the configured client.
    """

    def __init__(self, helper_config: HelperConfig):
        self.helper_config = helper_config
        self.logging = helper_config.get_logger()
        engines = helper_config.get_list_val("RAG_ENGINES", default=["qdrant"])
        if not engines:
            raise ValueError("RAG_ENGINES does not name any vector store engine.")
        self.clients: list[RAGClientInterface] = []
        for engine in engines:
            client_class = load_engine_class("rag", "RAGClient", engine)
            self.clients.append(client_class(helper_config=helper_config))
            self.logging.debug("Vector store client ready for engine %s", engine)

    def get_clients(self) -> list[RAGClientInterface]:
        return self.clients

    def get_client(self, engine: str) -> RAGClientInterface:
        """
        Raises:
            ValueError: If no client for the engine is configured.
        """
        by_name = {client.get_engine_name(): client for client in self.clients}
        try:
            return by_name[engine.lower()]
        except KeyError:
            raise ValueError(f"RAG engine '{engine}' is not configured. Configured: {sorted(by_name)}")
