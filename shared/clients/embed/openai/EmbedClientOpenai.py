from shared.clients.embed.EmbedClientInterface import EmbedClientInterface
from shared.helper.HelperConfig import HelperConfig
from shared.models.config import EnvConfig

DEFAULT_BASE_URL = "https://api.openai.com"


class EmbedClientOpenai(EmbedClientInterface):
    """Client for OpenAI-compatible ``/v1/embeddings`` endpoints.

    ``EMBED_DIMENSIONS`` is forwarded as ``dimensions`` for models that can
    shorten their vectors (text-embedding-3-*).
    """

    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)
        self._base_url = self.get_config_val("BASE_URL", default=DEFAULT_BASE_URL, val_type="string")
        self._api_key = self.get_config_val("API_KEY", val_type="string")

    def _get_engine_name(self) -> str:
        return "Openai"

    def _get_required_config(self) -> list[EnvConfig]:
        return [
            EnvConfig(env_key="BASE_URL", val_type="string", default=DEFAULT_BASE_URL),
            EnvConfig(env_key="API_KEY", val_type="string", default=None),
        ]

    def _get_auth_header(self) -> dict:
        return {"Authorization": f"Bearer {self._api_key}"}

    def _get_base_url(self) -> str:
        return self._base_url

    def _get_endpoint_healthcheck(self) -> str:
        return "/v1/models"

    def get_endpoint_embedding(self) -> str:
        return "/v1/embeddings"

    def get_embed_payload(self, texts: list[str]) -> dict:
        payload = {"model": self.embed_model, "input": texts, "encoding_format": "float"}
        if self.embed_dimensions:
            payload["dimensions"] = self.embed_dimensions
        return payload

    def extract_embeddings_from_response(self, response_data: dict) -> list[list[float]]:
        # entries carry an index; the API does not promise input order
        data = response_data.get("data")
        if not data:
            raise ValueError(f"OpenAI answered without embeddings (keys: {sorted(response_data)}).")
        embeddings = [item.get("embedding") for item in sorted(data, key=lambda item: item.get("index", 0))]
        if any(not embedding for embedding in embeddings):
            raise ValueError("OpenAI answered with an empty embedding.")
        return embeddings
