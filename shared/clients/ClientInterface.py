from abc import ABC, abstractmethod
from typing import Any

import httpx
from httpx._types import QueryParamTypes, RequestContent

from shared.errors import ClientRequestError
from shared.helper.HelperConfig import HelperConfig
from shared.models.config import EnvConfig


class ClientInterface(ABC):
    """Base for every HTTP backend the engine talks to.

    A concrete client is identified by its type ("rag", "embed", "records")
    and its engine ("qdrant", "openai", ...). Both make up the prefix of its
    settings, e.g. ``RAG_QDRANT_BASE_URL``. All required settings are checked
    on construction so that a misconfigured engine fails at startup.
    """

    def __init__(self, helper_config: HelperConfig):
        self.logging = helper_config.get_logger()
        self._helper_config = helper_config
        self._readers = {
            "string": helper_config.get_string_val,
            "number": helper_config.get_number_val,
            "bool": helper_config.get_bool_val,
            "list": helper_config.get_list_val,
        }
        self.timeout = helper_config.get_number_val(f"{self.get_client_type().upper()}_TIMEOUT", default=30.0)
        self._client: httpx.AsyncClient | None = None
        self.validate_full_configuration()

    ##########################################
    ############### IDENTITY #################
    ##########################################

    def get_client_type(self) -> str:
        return self._get_client_type().lower()

    def get_engine_name(self) -> str:
        return self._get_engine_name().lower()

    @abstractmethod
    def _get_client_type(self) -> str:
        pass

    @abstractmethod
    def _get_engine_name(self) -> str:
        pass

    ##########################################
    ################ CONFIG ##################
    ##########################################

    @abstractmethod
    def _get_required_config(self) -> list[EnvConfig]:
        """Settings that must resolve for this client to work."""
        pass

    def validate_full_configuration(self) -> None:
        """
        Raises:
            ValueError: If a required setting is missing or cannot be parsed.
        """
        for config in self._get_required_config():
            self.get_config_val(raw_key=config.env_key, default=config.default, val_type=config.val_type)

    def _get_config_key_name(self, raw_key: str) -> str:
        return "_".join((self.get_client_type(), self.get_engine_name(), raw_key)).upper()

    def get_config_val(self, raw_key: str, default: Any = None, val_type: str = "string") -> Any:
        """Read ``<TYPE>_<ENGINE>_<raw_key>`` as ``val_type`` (string, number, bool or list)."""
        reader = self._readers.get(val_type)
        if reader is None:
            raise ValueError(
                f"Unsupported value type '{val_type}' for '{raw_key}' of {self.get_client_type()} client '{self.get_engine_name()}'."
            )
        return reader(self._get_config_key_name(raw_key), default=default)

    ##########################################
    ############### BACKEND ##################
    ##########################################

    @abstractmethod
    def _get_auth_header(self) -> dict:
        """Headers authenticating against the backend; empty when no key is configured."""
        pass

    @abstractmethod
    def _get_base_url(self) -> str:
        pass

    @abstractmethod
    def _get_endpoint_healthcheck(self) -> str:
        pass

    def _build_url(self, endpoint: str) -> str:
        path = endpoint.strip().lstrip("/")
        base = self._get_base_url().rstrip("/")
        return f"{base}/{path}" if path else base

    ##########################################
    ############### LIFECYCLE ################
    ##########################################

    async def boot(self, transport: httpx.AsyncBaseTransport | None = None) -> None:
        """Open the HTTP client. Tests pass an ``httpx.MockTransport``."""
        self._client = httpx.AsyncClient(timeout=self.timeout, transport=transport)

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    ##########################################
    ############### REQUESTS #################
    ##########################################

    async def do_healthcheck(self) -> httpx.Response:
        return await self.do_request(method="GET", endpoint=self._get_endpoint_healthcheck())

    async def do_request(
        self,
        method: str = "GET",
        content: RequestContent | None = None,
        json: dict | list | None = None,
        params: QueryParamTypes | None = None,
        endpoint: str = "",
        additional_headers: dict | None = None,
        raise_on_error: bool = False,
    ) -> httpx.Response:
        """Send one request to the backend.

        ``content`` wins over ``json`` when both are given. Transport failures
        (timeouts, refused connections) surface as ``httpx.HTTPError``.

        Raises:
            RuntimeError: If ``boot()`` has not been called.
            ClientRequestError: If ``raise_on_error`` is set and the status is 300 or above.
        """
        if self._client is None:
            raise RuntimeError(f"{self.get_client_type()} client '{self.get_engine_name()}' is not booted.")

        url = self._build_url(endpoint)
        headers = {**self._get_auth_header(), **(additional_headers or {})}
        body: dict[str, Any] = {}
        if content is not None:
            body["content"] = content
        elif json is not None:
            body["json"] = json

        response = await self._client.request(method, url, headers=headers, params=params, timeout=self.timeout, **body)

        if raise_on_error and response.status_code >= 300:
            self.logging.error("%s %s returned %d: %s", method, url, response.status_code, response.text[:500])
            raise ClientRequestError(url, response.status_code, response.text)
        return response
