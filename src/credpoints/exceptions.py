"""Typed error hierarchy for the request lifecycle.

Every error carries a machine-readable ``code``, the HTTP status the API
renders it with, and a human-readable message that clients show directly.

    CredPointsError
    +-- ValidationError       malformed input, nothing written
    +-- NotFoundError         referenced request/user/class missing
    +-- InvalidStateError     transition not allowed from the current status
    +-- AuthorizationError    caller is not the expected actor
    +-- DependencyFailure     a store failed after the status write committed
"""

from __future__ import annotations

from typing import Any


class CredPointsError(Exception):
    """Base exception for all lifecycle errors."""

    code: str = "CREDPOINTS_ERROR"
    status_code: int = 400

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """Serialize for API error responses."""
        return {"detail": self.message, "code": self.code}


class ValidationError(CredPointsError):
    """Input failed validation. Callers re-prompt; never retried automatically."""

    code = "VALIDATION_ERROR"
    status_code = 422


class NotFoundError(CredPointsError):
    """A referenced entity does not exist."""

    code = "NOT_FOUND"
    status_code = 404


class InvalidStateError(CredPointsError):
    """The request's current status does not permit the transition."""

    code = "INVALID_STATE"
    status_code = 409

    def __init__(self, message: str, current_status: str | None = None) -> None:
        self.current_status = current_status
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        if self.current_status is not None:
            data["current_status"] = self.current_status
        return data


class AuthorizationError(CredPointsError):
    """The caller is not allowed to perform the operation."""

    code = "NOT_AUTHORIZED"
    status_code = 403


class DependencyFailure(CredPointsError):
    """The transition committed but one or more downstream steps did not.

    The request is in its new status; ``pending_steps`` lists the side
    effects the repair pass will complete.
    """

    code = "DEPENDENCY_FAILURE"
    status_code = 202

    def __init__(self, message: str, request_id: str, pending_steps: list[str]) -> None:
        self.request_id = request_id
        self.pending_steps = pending_steps
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["request_id"] = self.request_id
        data["pending_steps"] = list(self.pending_steps)
        data["degraded"] = True
        return data
