from fastapi import APIRouter, Depends, HTTPException, Request

from server.dependencies.auth import verify_api_key
from server.models.requests import ChangeEventRequest
from server.models.responses import ChangeEventResponse
from shared.models.events import ChangeEvent

router = APIRouter(prefix="/events", tags=["events"], dependencies=[Depends(verify_api_key)])


@router.post("/{record_type}")
async def record_changed(request: Request, record_type: str, body: ChangeEventRequest) -> ChangeEventResponse:
    """Accept a change notification from the record store.

    The event is handed to every handler registered for the type: the
    profile's own handler and any relationship watcher whose related type it is.

    Args:
        request (Request): FastAPI request (provides app.state.engine).
        record_type (str): Type of the changed record.
        body (ChangeEventRequest): Record id, kind of change and changed fields.

    Returns:
        ChangeEventResponse: One dispatch result per unit of work created.

    Raises:
        HTTPException: 404 if the record type is unknown to the record store.
    """
    engine = request.app.state.engine
    if record_type not in engine.record_store.descriptors():
        raise HTTPException(status_code=404, detail=f"Unknown record type '{record_type}'")

    event = ChangeEvent(
        record_type=record_type,
        record_id=body.record_id,
        event=body.event,
        changed_fields=body.changed_fields,
    )
    request.app.state.logging.debug("Change event %s for %s#%s", event.event.value, record_type, event.record_id)
    results = await engine.registry.dispatch(event)
    return ChangeEventResponse(record_type=record_type, record_id=event.record_id, results=results)
