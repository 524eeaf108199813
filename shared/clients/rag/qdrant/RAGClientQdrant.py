from typing import Any

from shared.clients.rag.RAGClientInterface import RAGClientInterface
from shared.clients.rag.models.VectorPoint import ScoredPoint, ScrollResult
from shared.helper.HelperConfig import HelperConfig
from shared.models.config import EnvConfig

# declared filter type -> qdrant payload schema
_FIELD_SCHEMAS = {
    "integer": "integer",
    "float": "float",
    "boolean": "bool",
    "keyword": "keyword",
}


class RAGClientQdrant(RAGClientInterface):
    """Qdrant over its REST API. ``RAG_QDRANT_API_KEY`` is sent as the ``api-key`` header when set."""

    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)
        self._base_url = self.get_config_val("BASE_URL", val_type="string")
        self._api_key = self.get_config_val("API_KEY", default="", val_type="string")

    def _get_engine_name(self) -> str:
        return "Qdrant"

    def _get_required_config(self) -> list[EnvConfig]:
        return [EnvConfig(env_key="BASE_URL", val_type="string", default=None)]

    def _get_auth_header(self) -> dict:
        return {"api-key": self._api_key} if self._api_key else {}

    ##########################################
    ############### ENDPOINTS ################
    ##########################################

    def _get_base_url(self) -> str:
        return self._base_url

    def _get_endpoint_healthcheck(self) -> str:
        return "/healthz"

    def _get_endpoint_collection(self, collection: str) -> str:
        return f"/collections/{collection}"

    def _get_endpoint_check_collection_existence(self, collection: str) -> str:
        return f"{self._get_endpoint_collection(collection)}/exists"

    def _get_endpoint_field_index(self, collection: str) -> str:
        return f"{self._get_endpoint_collection(collection)}/index"

    def _get_endpoint_points(self, collection: str) -> str:
        return f"{self._get_endpoint_collection(collection)}/points"

    def _get_endpoint_delete_points(self, collection: str) -> str:
        return f"{self._get_endpoint_points(collection)}/delete"

    def _get_endpoint_search(self, collection: str) -> str:
        return f"{self._get_endpoint_points(collection)}/search"

    def _get_endpoint_scroll(self, collection: str) -> str:
        return f"{self._get_endpoint_points(collection)}/scroll"

    def _get_endpoint_count(self, collection: str) -> str:
        return f"{self._get_endpoint_points(collection)}/count"

    ##########################################
    ################ BODIES ##################
    ##########################################

    def build_match_filters(self, conditions: dict[str, Any]) -> list[dict]:
        return [{"key": key, "match": {"value": value}} for key, value in conditions.items()]

    def get_create_collection_payload(self, vector_size: int) -> dict:
        return {"vectors": {"size": vector_size, "distance": "Cosine"}}

    def get_field_index_payload(self, field_name: str, declared_type: str) -> dict:
        return {"field_name": field_name, "field_schema": _FIELD_SCHEMAS.get(declared_type, "keyword")}

    def get_delete_payload(self, filters: list[dict]) -> dict:
        return {"filter": {"must": filters}}

    def get_delete_by_ids_payload(self, point_ids: list[str]) -> dict:
        return {"points": point_ids}

    def get_search_payload(self, vector: list[float], limit: int, threshold: float | None, filters: list[dict]) -> dict:
        body: dict = {"vector": vector, "limit": limit, "with_payload": True}
        if threshold is not None:
            body["score_threshold"] = threshold
        if filters:
            body["filter"] = {"must": filters}
        return body

    def get_scroll_payload(self, filters: list[dict], with_payload: bool | list | dict, with_vector: bool | list, limit: int | None = None, offset: str | int | None = None) -> dict:
        body = {"filter": {"must": filters}, "limit": limit, "with_payload": with_payload, "with_vector": with_vector}
        if offset is not None:
            body["offset"] = offset
        return body

    def get_count_payload(self, filters: list[dict]) -> dict:
        return {"filter": {"must": filters}, "exact": True} if filters else {"exact": True}

    ##########################################
    ################ PARSERS #################
    ##########################################

    def extract_search_results(self, raw_response: dict) -> list[ScoredPoint]:
        return [
            ScoredPoint(
                id=str(hit.get("id")),
                score=float(hit.get("score", 0.0)),
                payload=hit.get("payload") or {},
                vector=hit.get("vector"),
            )
            for hit in raw_response.get("result", [])
        ]

    def extract_scroll_page(self, raw_response: dict) -> ScrollResult:
        page = raw_response.get("result") or {}
        return ScrollResult(
            result=page.get("points", []),
            status=raw_response.get("status", "ok"),
            time=raw_response.get("time", 0),
            next_page_offset=page.get("next_page_offset"),
        )

    def extract_collection_info(self, raw_response: dict) -> dict:
        result = raw_response.get("result", {})
        vectors = result.get("config", {}).get("params", {}).get("vectors", {})
        return {
            "points_count": result.get("points_count") or 0,
            "vector_size": vectors.get("size") if isinstance(vectors, dict) else None,
            "indexed_fields": sorted((result.get("payload_schema") or {}).keys()),
        }
