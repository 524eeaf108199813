from typing import Any

from shared.clients.ClientInterface import ClientInterface
from shared.clients.records.RecordStoreInterface import RecordStoreInterface
from shared.errors import ClientRequestError
from shared.helper.HelperConfig import HelperConfig
from shared.models.config import EnvConfig
from shared.models.schema import Record, RecordTypeDescriptor


class RecordStoreHttp(ClientInterface, RecordStoreInterface):
    """Record store reached over a small JSON REST contract.

    - ``GET /schema``                                → {"types": [descriptor, ...]}
    - ``GET /records/{type}/{id}?include=a,a.b``     → {"id", "attributes", "relations"}
    - ``GET /records/{type}``                        → {"ids": [...]}
    - ``GET /records/{type}/parents?path&related_type&related_id`` → {"ids": [...]}

    The descriptor table is read once in boot().
    """

    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)
        self._base_url = self.get_config_val("BASE_URL", val_type="string")
        self._api_key = self.get_config_val("API_KEY", default="", val_type="string")
        self._descriptors: dict[str, RecordTypeDescriptor] = {}

    ##########################################
    ############### IDENTITY #################
    ##########################################

    def _get_client_type(self) -> str:
        return "records"

    def _get_engine_name(self) -> str:
        return "Http"

    def descriptors(self) -> dict[str, RecordTypeDescriptor]:
        return self._descriptors

    def _get_required_config(self) -> list[EnvConfig]:
        return [EnvConfig(env_key="BASE_URL", val_type="string", default=None)]

    def _get_auth_header(self) -> dict:
        return {"Authorization": f"Bearer {self._api_key}"} if self._api_key else {}

    ##########################################
    ############### ENDPOINTS ################
    ##########################################

    def _get_base_url(self) -> str:
        return self._base_url

    def _get_endpoint_healthcheck(self) -> str:
        return "/schema"

    def _get_endpoint_schema(self) -> str:
        return "/schema"

    def _get_endpoint_record(self, record_type: str, record_id: str) -> str:
        return f"/records/{record_type}/{record_id}"

    def _get_endpoint_ids(self, record_type: str) -> str:
        return f"/records/{record_type}"

    def _get_endpoint_parents(self, parent_type: str) -> str:
        return f"/records/{parent_type}/parents"

    ##########################################
    ########### RESPONSE PARSER ##############
    ##########################################

    def _parse_record(self, record_type: str, raw: dict) -> Record:
        relations: dict[str, Any] = {}
        descriptor = self._descriptors.get(record_type)
        for name, value in (raw.get("relations") or {}).items():
            accessor = descriptor.accessor(name) if descriptor else None
            related_type = accessor.related_type if accessor else name
            if value is None:
                relations[name] = None
            elif isinstance(value, list):
                relations[name] = [self._parse_record(related_type, item) for item in value]
            else:
                relations[name] = self._parse_record(related_type, value)
        return Record(
            record_type=record_type,
            id=raw.get("id"),
            attributes=raw.get("attributes") or {},
            relations=relations,
        )

    ##########################################
    ############### REQUESTS #################
    ##########################################

    async def boot(self, transport=None) -> None:
        await super().boot(transport=transport)
        response = await self.do_request(method="GET", endpoint=self._get_endpoint_schema(), raise_on_error=True)
        types = [RecordTypeDescriptor.model_validate(raw) for raw in response.json().get("types", [])]
        self._descriptors = {descriptor.name: descriptor for descriptor in types}
        self.logging.info("Loaded %d record types from %s", len(self._descriptors), self._base_url)

    async def fetch(self, record_type: str, record_id: str, eager_paths: list[str] | None = None) -> Record | None:
        self.describe(record_type)
        params = {"include": ",".join(eager_paths)} if eager_paths else None
        response = await self.do_request(method="GET", endpoint=self._get_endpoint_record(record_type, str(record_id)), params=params)
        if response.status_code == 404:
            return None
        if response.status_code >= 300:
            raise ClientRequestError(str(response.request.url), response.status_code, response.text)
        return self._parse_record(record_type, response.json())

    async def list_ids(self, record_type: str) -> list[str]:
        self.describe(record_type)
        response = await self.do_request(method="GET", endpoint=self._get_endpoint_ids(record_type), raise_on_error=True)
        return [str(i) for i in response.json().get("ids", [])]

    async def find_parents(self, parent_type: str, path: str, related_type: str, related_id: str) -> list[str]:
        response = await self.do_request(
            method="GET",
            endpoint=self._get_endpoint_parents(parent_type),
            params={"path": path, "related_type": related_type, "related_id": str(related_id)},
            raise_on_error=True,
        )
        return [str(i) for i in response.json().get("ids", [])]
