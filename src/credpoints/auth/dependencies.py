"""FastAPI identity dependencies."""

from __future__ import annotations

import jwt
from fastapi import Depends, HTTPException, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from credpoints.auth.jwt import Actor, verify_token

_bearer = HTTPBearer()


async def get_current_actor(
    credentials: HTTPAuthorizationCredentials = Security(_bearer),
) -> Actor:
    """Verify the bearer token and return the caller. Raises 401 on failure."""
    try:
        return verify_token(credentials.credentials)
    except jwt.InvalidTokenError as e:
        raise HTTPException(status_code=401, detail=str(e)) from e


async def get_current_advisor(actor: Actor = Depends(get_current_actor)) -> Actor:
    """Same as get_current_actor but requires the advisor role."""
    if not actor.is_advisor:
        raise HTTPException(status_code=403, detail="This endpoint is only for advisors")
    return actor
