from shared.clients.embed.EmbedClientInterface import EmbedClientInterface
from shared.helper.HelperConfig import HelperConfig
from shared.helper.engine_loader import load_engine_class


class EmbedClientManager:
    """Builds the single embedding client selected by ``EMBED_ENGINE``."""

    def __init__(self, helper_config: HelperConfig):
        self.helper_config = helper_config
        self.logging = helper_config.get_logger()
        engine = helper_config.get_string_val("EMBED_ENGINE")
        client_class = load_engine_class("embed", "EmbedClient", engine)
        self.client: EmbedClientInterface = client_class(helper_config=helper_config)
        self.logging.debug("Embedding client ready for engine %s (model %s)", engine, self.client.embed_model)

    def get_client(self) -> EmbedClientInterface:
        return self.client
