from fastapi import APIRouter, Depends, Request

from server.dependencies.auth import verify_api_key
from server.dependencies.errors import to_http_error
from server.models.requests import IndexRequest, ProfileRequest
from server.models.responses import ProfileResponse
from services.vector_index.IndexingService import IndexRequestSummary
from shared.errors import ProfileNotFoundError, VectorIndexerError

router = APIRouter(tags=["index"], dependencies=[Depends(verify_api_key)])


@router.post("/index/{record_type}")
async def index_records(request: Request, record_type: str, body: IndexRequest) -> IndexRequestSummary:
    """Index (or delete) the given ids, or backfill the whole type when no ids are given."""
    indexing = request.app.state.engine.indexing
    try:
        if body.ids is None:
            return await indexing.backfill(record_type)
        return await indexing.request_index(record_type, [str(i) for i in body.ids], body.action)
    except VectorIndexerError as e:
        raise to_http_error(e)


@router.post("/profiles/{record_type}")
async def generate_profile(request: Request, record_type: str, body: ProfileRequest) -> ProfileResponse:
    """Analyse a record type and, unless ``save`` is false, store and watch the suggested profile."""
    engine = request.app.state.engine
    try:
        analysis = await engine.indexing.generate_profile(record_type, body.max_depth, body.save)
        registered = False
        if body.save:
            await engine.registry.register(record_type)
            registered = True
    except VectorIndexerError as e:
        raise to_http_error(e)
    return ProfileResponse(
        analysis=analysis,
        summary=engine.analyzer.summary(analysis),
        saved=body.save,
        registered=registered,
    )


@router.delete("/profiles/{record_type}")
async def disable_profile(request: Request, record_type: str) -> dict:
    """Stop watching a type. The profile and its watchers stay stored, disabled."""
    if not await request.app.state.engine.registry.unregister(record_type):
        raise to_http_error(ProfileNotFoundError(f"No indexing profile for '{record_type}'"))
    return {"status": "disabled", "record_type": record_type}
