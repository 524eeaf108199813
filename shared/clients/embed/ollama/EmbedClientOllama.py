from shared.clients.embed.EmbedClientInterface import EmbedClientInterface
from shared.helper.HelperConfig import HelperConfig
from shared.models.config import EnvConfig


class EmbedClientOllama(EmbedClientInterface):
    """Client for a local Ollama server (``POST /api/embed``).

    The model alone decides the vector size, ``EMBED_DIMENSIONS`` is not sent.
    """

    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)
        self._base_url = self.get_config_val("BASE_URL", val_type="string")
        self._api_key = self.get_config_val("API_KEY", default="", val_type="string")

    def _get_engine_name(self) -> str:
        return "Ollama"

    def _get_required_config(self) -> list[EnvConfig]:
        # an API key is only needed behind an authenticating proxy
        return [EnvConfig(env_key="BASE_URL", val_type="string", default=None)]

    def _get_auth_header(self) -> dict:
        return {"Authorization": f"Bearer {self._api_key}"} if self._api_key else {}

    def _get_base_url(self) -> str:
        return self._base_url

    def _get_endpoint_healthcheck(self) -> str:
        # the root answers "Ollama is running"
        return ""

    def get_endpoint_embedding(self) -> str:
        return "/api/embed"

    def get_embed_payload(self, texts: list[str]) -> dict:
        return {"model": self.embed_model, "input": texts}

    def extract_embeddings_from_response(self, response_data: dict) -> list[list[float]]:
        embeddings = response_data.get("embeddings") or []
        if not embeddings or any(not vector for vector in embeddings):
            raise ValueError(f"Ollama answered without embeddings (keys: {sorted(response_data)}).")
        return embeddings
