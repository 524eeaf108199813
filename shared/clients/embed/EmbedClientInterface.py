from abc import abstractmethod

from shared.clients.ClientInterface import ClientInterface
from shared.helper.HelperConfig import HelperConfig


class EmbedClientInterface(ClientInterface):
    """An embedding backend turning texts into vectors.

    ``EMBED_MODEL`` is required. ``EMBED_DIMENSIONS`` is optional and only sent
    to backends whose models can shorten their vectors.
    """

    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)
        self.embed_model: str = helper_config.get_string_val("EMBED_MODEL")
        self.embed_dimensions: int | None = int(helper_config.get_number_val("EMBED_DIMENSIONS", default=0)) or None

    def _get_client_type(self) -> str:
        return "embed"

    def get_model_identifier(self) -> str:
        """Engine and model, e.g. "openai:text-embedding-3-small"; part of every cache key."""
        return f"{self.get_engine_name()}:{self.embed_model}"

    ##########################################
    ############### BACKEND ##################
    ##########################################

    @abstractmethod
    def get_endpoint_embedding(self) -> str:
        pass

    @abstractmethod
    def get_embed_payload(self, texts: list[str]) -> dict:
        pass

    @abstractmethod
    def extract_embeddings_from_response(self, response_data: dict) -> list[list[float]]:
        """Vectors in input order.

        Raises:
            ValueError: If the body carries no usable embeddings.
        """
        pass

    ##########################################
    ############### REQUESTS #################
    ##########################################

    async def do_embed(self, texts: list[str] | str) -> list[list[float]]:
        """
        Raises:
            ClientRequestError: If the backend answers with an error status.
            ValueError: If the answer contains no valid embeddings.
        """
        batch = [texts] if isinstance(texts, str) else list(texts)
        response = await self.do_request(
            method="POST",
            endpoint=self.get_endpoint_embedding(),
            json=self.get_embed_payload(batch),
            raise_on_error=True,
        )
        return self.extract_embeddings_from_response(response.json())
