from fastapi import APIRouter, Depends, Request

from server.dependencies.auth import verify_api_key
from server.dependencies.errors import to_http_error
from server.models.responses import StatusResponse
from shared.errors import VectorIndexerError
from shared.models.search import ProfileStats

router = APIRouter(prefix="/status", tags=["status"], dependencies=[Depends(verify_api_key)])


@router.get("")
async def status_overview(request: Request) -> StatusResponse:
    engine = request.app.state.engine
    return StatusResponse(
        strategy=engine.registry.strategy.name(),
        registered_types=engine.registry.registered_types(),
        profiles=await engine.search.overview(),
    )


@router.get("/{record_type}")
async def status_profile(request: Request, record_type: str) -> ProfileStats:
    """Counters, queue state and collection size of one profile."""
    try:
        return await request.app.state.engine.search.stats(record_type)
    except VectorIndexerError as e:
        raise to_http_error(e)
