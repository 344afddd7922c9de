"""
Access-token handling for the external identity provider.

The provider issues signed JWTs whose ``sub`` is the user id and whose
``role`` claim is ``staff`` or ``advisor``. This service only verifies
them; ``create_access_token`` exists for development and tests.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Literal

import jwt

from credpoints.config import get_settings

Role = Literal["staff", "advisor"]
VALID_ROLES = ("staff", "advisor")


@dataclass(frozen=True)
class Actor:
    """The authenticated caller."""

    id: str
    role: str

    @property
    def is_staff(self) -> bool:
        return self.role == "staff"

    @property
    def is_advisor(self) -> bool:
        return self.role == "advisor"


def create_access_token(user_id: str, role: Role) -> str:
    """
    Create a signed access token.

    Args:
        user_id: The user's id (``sub`` claim).
        role: ``staff`` or ``advisor``.

    Returns:
        Encoded JWT string.
    """
    settings = get_settings()
    now = datetime.now(timezone.utc)
    payload: dict[str, Any] = {
        "sub": user_id,
        "role": role,
        "iat": now,
        "exp": now + timedelta(minutes=settings.jwt_access_token_expire_minutes),
        "iss": settings.jwt_issuer,
        "type": "access",
    }
    return jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def verify_token(token: str) -> Actor:
    """
    Verify an access token and return the actor it identifies.

    Raises:
        jwt.InvalidTokenError: Signature, expiry, issuer, type or role is wrong.
    """
    settings = get_settings()
    payload = jwt.decode(
        token,
        settings.jwt_secret_key,
        algorithms=[settings.jwt_algorithm],
        issuer=settings.jwt_issuer,
        options={"require": ["sub", "exp", "iss"]},
    )
    if payload.get("type") != "access":
        raise jwt.InvalidTokenError("Expected access token")
    if payload.get("role") not in VALID_ROLES:
        raise jwt.InvalidTokenError("Token carries no valid role")
    return Actor(id=str(payload["sub"]), role=payload["role"])
