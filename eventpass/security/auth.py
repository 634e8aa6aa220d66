import hmac
import re
from typing import Optional
from fastapi import Header, HTTPException, status
from eventpass.config import API_KEY

_ACTOR_ID = re.compile(r"^[a-zA-Z0-9_-]{1,50}$")

_UNAUTHORIZED = HTTPException(
    status_code=status.HTTP_401_UNAUTHORIZED,
    detail={"error": {"code": "UNAUTHORIZED", "message": "Invalid or missing API key"}},
)


async def require_api_key(x_api_key: Optional[str] = Header(None, alias="X-API-Key")) -> str:
    """Verify the API key with a constant-time comparison."""
    if not x_api_key or not hmac.compare_digest(x_api_key.encode(), API_KEY.encode()):
        raise _UNAUTHORIZED
    return x_api_key


async def get_actor_id(x_actor_id: Optional[str] = Header(None, alias="X-Actor-ID")) -> Optional[str]:
    """Id of the user or organizer acting through the calling app, recorded on status changes."""
    if x_actor_id is None:
        return None
    if not _ACTOR_ID.match(x_actor_id):
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={"error": {"code": "INVALID_ACTOR_ID", "message": "X-Actor-ID is malformed"}},
        )
    return x_actor_id
