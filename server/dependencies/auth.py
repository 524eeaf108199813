import secrets

from fastapi import Header, HTTPException, Request


async def verify_api_key(request: Request, x_api_key: str = Header(...)) -> None:
    """Reject requests whose ``X-Api-Key`` differs from ``API_SERVER_API_KEY``."""
    expected = request.app.state.helper_config.get_string_val("API_SERVER_API_KEY")
    if not secrets.compare_digest(x_api_key.encode("utf-8"), expected.encode("utf-8")):
        raise HTTPException(status_code=401, detail="Invalid or missing API key")
