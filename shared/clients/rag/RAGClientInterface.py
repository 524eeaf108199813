from abc import abstractmethod
from typing import Any
import json
import math

import httpx
from shared.clients.rag.models.VectorPoint import ScoredPoint, ScrollResult, VectorPoint
from shared.clients.ClientInterface import ClientInterface
from shared.errors import (
    ClientRequestError,
    VectorStoreDeleteError,
    VectorStoreSearchError,
    VectorStoreWriteError,
)

SCROLL_PAGE_SIZE = 1000


class RAGClientInterface(ClientInterface):
    """A vector store backend.

    Each indexing profile writes to its own collection, so every operation
    takes the collection name. Backend failures surface as the
    ``VectorStore*Error`` matching the operation.
    """

    def _get_client_type(self) -> str:
        return "rag"

    ##########################################
    ############### ENDPOINTS ################
    ##########################################

    @abstractmethod
    def _get_endpoint_collection(self, collection: str) -> str:
        """Create and describe a collection."""
        pass

    @abstractmethod
    def _get_endpoint_check_collection_existence(self, collection: str) -> str:
        pass

    @abstractmethod
    def _get_endpoint_field_index(self, collection: str) -> str:
        pass

    @abstractmethod
    def _get_endpoint_points(self, collection: str) -> str:
        """Upsert points."""
        pass

    @abstractmethod
    def _get_endpoint_delete_points(self, collection: str) -> str:
        pass

    @abstractmethod
    def _get_endpoint_search(self, collection: str) -> str:
        pass

    @abstractmethod
    def _get_endpoint_scroll(self, collection: str) -> str:
        pass

    @abstractmethod
    def _get_endpoint_count(self, collection: str) -> str:
        pass

    ##########################################
    ################ BODIES ##################
    ##########################################

    @abstractmethod
    def build_match_filters(self, conditions: dict[str, Any]) -> list[dict]:
        """One backend clause per payload key; all of them must hold."""
        pass

    @abstractmethod
    def get_create_collection_payload(self, vector_size: int) -> dict:
        pass

    @abstractmethod
    def get_field_index_payload(self, field_name: str, declared_type: str) -> dict:
        """``declared_type`` is one of "integer", "float", "boolean" or "keyword"."""
        pass

    @abstractmethod
    def get_delete_payload(self, filters: list[dict]) -> dict:
        pass

    @abstractmethod
    def get_delete_by_ids_payload(self, point_ids: list[str]) -> dict:
        pass

    @abstractmethod
    def get_search_payload(self, vector: list[float], limit: int, threshold: float | None, filters: list[dict]) -> dict:
        pass

    @abstractmethod
    def get_scroll_payload(self, filters: list[dict], with_payload: bool | list | dict, with_vector: bool | list, limit: int | None = None, offset: str | int | None = None) -> dict:
        """``offset`` is the cursor handed out with the previous page."""
        pass

    @abstractmethod
    def get_count_payload(self, filters: list[dict]) -> dict:
        pass

    ##########################################
    ################ PARSERS #################
    ##########################################

    @abstractmethod
    def extract_search_results(self, raw_response: dict) -> list[ScoredPoint]:
        pass

    @abstractmethod
    def extract_scroll_page(self, raw_response: dict) -> ScrollResult:
        pass

    @abstractmethod
    def extract_collection_info(self, raw_response: dict) -> dict:
        """``{"points_count": int, "vector_size": int | None, "indexed_fields": list[str]}``"""
        pass

    ##########################################
    ############### REQUESTS #################
    ##########################################

    async def _send_json(self, error_cls: type[Exception], method: str, endpoint: str, body: dict, params: dict | None = None) -> httpx.Response:
        """Send a JSON body and translate every failure into ``error_cls``."""
        try:
            return await self.do_request(
                method=method,
                content=json.dumps(body),
                endpoint=endpoint,
                params=params,
                additional_headers={"Content-Type": "application/json"},
                raise_on_error=True,
            )
        except (ClientRequestError, httpx.HTTPError) as e:
            raise error_cls(f"{self.get_engine_name()} {method} {endpoint} failed: {e}") from e

    async def do_existence_check(self, collection: str) -> bool:
        """False only when the backend says the collection is absent.

        Raises:
            ClientRequestError: If the backend answers with any other error status.
            httpx.HTTPError: On transport failures.
        """
        endpoint = self._get_endpoint_check_collection_existence(collection)
        resp = await self.do_request(method="GET", endpoint=endpoint)
        if resp.status_code == 404:
            return False
        if resp.status_code >= 300:
            raise ClientRequestError(self._build_url(endpoint), resp.status_code, resp.text)
        return bool(resp.json().get("result", {}).get("exists"))

    async def do_ensure_collection(self, collection: str, vector_size: int) -> bool:
        """Create the collection (cosine distance) unless it exists; an existing one is left untouched.

        Returns:
            bool: Whether this call created it.

        Raises:
            VectorStoreWriteError: If the check or the creation fails.
        """
        try:
            exists = await self.do_existence_check(collection)
        except (ClientRequestError, httpx.HTTPError) as e:
            raise VectorStoreWriteError(f"Could not check collection '{collection}': {e}") from e
        if exists:
            return False
        await self._send_json(
            VectorStoreWriteError, "PUT",
            self._get_endpoint_collection(collection),
            self.get_create_collection_payload(vector_size),
        )
        self.logging.info("Created %s collection '%s' with vector size %d", self.get_engine_name(), collection, vector_size)
        return True

    async def do_ensure_field_index(self, collection: str, field_name: str, declared_type: str) -> None:
        """Index a payload field; repeating the call for an indexed field is harmless."""
        await self._send_json(
            VectorStoreWriteError, "PUT",
            self._get_endpoint_field_index(collection),
            self.get_field_index_payload(field_name, declared_type),
            params={"wait": "true"},
        )

    async def do_upsert_points(self, collection: str, points: list[VectorPoint]) -> httpx.Response:
        """Write points, replacing those whose id already exists.

        Raises:
            VectorStoreWriteError: If the backend rejects the batch.
        """
        return await self._send_json(
            VectorStoreWriteError, "PUT",
            self._get_endpoint_points(collection),
            {"points": [point.to_backend() for point in points]},
            params={"wait": "true"},
        )

    async def do_delete_points_by_filter(self, collection: str, conditions: dict[str, Any]) -> None:
        """
        Raises:
            VectorStoreDeleteError: If the backend rejects the request.
        """
        await self._send_json(
            VectorStoreDeleteError, "POST",
            self._get_endpoint_delete_points(collection),
            self.get_delete_payload(self.build_match_filters(conditions)),
            params={"wait": "true"},
        )

    async def do_delete_points_by_ids(self, collection: str, point_ids: list[str]) -> None:
        """
        Raises:
            VectorStoreDeleteError: If the backend rejects the request.
        """
        if not point_ids:
            return
        await self._send_json(
            VectorStoreDeleteError, "POST",
            self._get_endpoint_delete_points(collection),
            self.get_delete_by_ids_payload(point_ids),
            params={"wait": "true"},
        )

    async def do_search(self, collection: str, vector: list[float], limit: int, threshold: float | None = None, conditions: dict[str, Any] | None = None) -> list[ScoredPoint]:
        """Nearest neighbours of ``vector``, best first.

        Raises:
            VectorStoreSearchError: If the backend rejects the query.
        """
        resp = await self._send_json(
            VectorStoreSearchError, "POST",
            self._get_endpoint_search(collection),
            self.get_search_payload(vector, limit, threshold, self.build_match_filters(conditions or {})),
        )
        return self.extract_search_results(resp.json())

    async def do_scroll(self, collection: str, conditions: dict[str, Any], with_payload: bool | list | dict = True, with_vector: bool | list = False, limit: int | None = None, offset: str | int | None = None) -> ScrollResult:
        resp = await self._send_json(
            VectorStoreSearchError, "POST",
            self._get_endpoint_scroll(collection),
            self.get_scroll_payload(self.build_match_filters(conditions), with_payload, with_vector, limit, offset),
        )
        return self.extract_scroll_page(resp.json())

    async def do_scroll_all(self, collection: str, conditions: dict[str, Any], with_payload: bool | list | dict = True, with_vector: bool | list = False) -> ScrollResult:
        """Every point matching ``conditions``, read page by page."""
        expected = await self.do_count(collection, conditions)
        pages = max(1, math.ceil(expected / SCROLL_PAGE_SIZE))
        points: list[dict] = []
        offset: str | int | None = None
        page = 0
        while page == 0 or offset:
            page += 1
            result = await self.do_scroll(collection, conditions, with_payload, with_vector, SCROLL_PAGE_SIZE, offset)
            points.extend(result.result)
            self.logging.debug("Scrolled %s/%s page %d of ~%d (%d of %d points)", self.get_engine_name(), collection, page, pages, len(points), expected)
            offset = result.next_page_offset
        return ScrollResult(result=points, status="ok", time=0)

    async def do_count(self, collection: str, conditions: dict[str, Any] | None = None) -> int:
        resp = await self._send_json(
            VectorStoreSearchError, "POST",
            self._get_endpoint_count(collection),
            self.get_count_payload(self.build_match_filters(conditions or {})),
        )
        return resp.json().get("result", {}).get("count", 0)

    async def do_collection_info(self, collection: str) -> dict | None:
        """Size and indexed fields of a collection, None if it does not exist."""
        resp = await self.do_request(method="GET", endpoint=self._get_endpoint_collection(collection))
        if resp.status_code == 404:
            return None
        if resp.status_code >= 300:
            raise VectorStoreSearchError(f"Could not read collection '{collection}': status {resp.status_code}")
        return self.extract_collection_info(resp.json())
