"""Tests for access-token verification."""

from datetime import datetime, timedelta, timezone

import jwt
import pytest

from credpoints.auth.jwt import Actor, create_access_token, verify_token
from credpoints.config import get_settings


def _encode(**overrides):
    settings = get_settings()
    now = datetime.now(timezone.utc)
    payload = {
        "sub": "user-1",
        "role": "staff",
        "iat": now,
        "exp": now + timedelta(minutes=5),
        "iss": settings.jwt_issuer,
        "type": "access",
    }
    payload.update(overrides)
    return jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


class TestAccessToken:
    def test_create_and_verify(self):
        token = create_access_token("user-1", "advisor")
        actor = verify_token(token)
        assert actor == Actor(id="user-1", role="advisor")
        assert actor.is_advisor
        assert not actor.is_staff

    def test_expired_rejected(self):
        token = _encode(exp=datetime.now(timezone.utc) - timedelta(minutes=1))
        with pytest.raises(jwt.ExpiredSignatureError):
            verify_token(token)

    def test_wrong_type_rejected(self):
        with pytest.raises(jwt.InvalidTokenError, match="Expected access token"):
            verify_token(_encode(type="refresh"))

    def test_unknown_role_rejected(self):
        with pytest.raises(jwt.InvalidTokenError, match="no valid role"):
            verify_token(_encode(role="admin"))

    def test_wrong_issuer_rejected(self):
        with pytest.raises(jwt.InvalidIssuerError):
            verify_token(_encode(iss="someone-else"))

    def test_tampered_signature_rejected(self):
        token = create_access_token("user-1", "staff")
        forged = jwt.encode(jwt.decode(token, options={"verify_signature": False}), "other-secret", algorithm="HS256")
        with pytest.raises(jwt.InvalidSignatureError):
            verify_token(forged)
