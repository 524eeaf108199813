from fastapi import APIRouter, Depends, Query, Request

from server.dependencies.auth import verify_api_key
from server.dependencies.errors import to_http_error
from server.models.requests import SearchRequest
from shared.errors import VectorIndexerError
from shared.models.search import SearchResult

router = APIRouter(tags=["search"], dependencies=[Depends(verify_api_key)])


@router.post("/search/{record_type}")
async def search_records(request: Request, record_type: str, body: SearchRequest) -> SearchResult:
    """Semantic search over the indexed records of one type.

    Returns:
        SearchResult: Records ranked by the score of their best chunk.
    """
    request.app.state.logging.info("Search on '%s': %r", record_type, body.query[:80])
    try:
        return await request.app.state.engine.search.search(
            record_type,
            body.query,
            limit=body.limit,
            threshold=body.threshold,
            filters=body.filters,
            with_records=body.with_records,
        )
    except VectorIndexerError as e:
        raise to_http_error(e)


@router.get("/similar/{record_type}/{record_id}")
async def similar_records(
    request: Request,
    record_type: str,
    record_id: str,
    limit: int | None = Query(default=None, ge=1),
    threshold: float | None = None,
) -> SearchResult:
    """Records closest to an already indexed record, the record itself excluded."""
    try:
        return await request.app.state.engine.search.find_similar(record_type, record_id, limit, threshold)
    except VectorIndexerError as e:
        raise to_http_error(e)
