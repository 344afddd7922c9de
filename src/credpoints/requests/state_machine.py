"""Work request state machine.

State progression: pending -> approved | rejected | correction
                   correction -> pending (resubmission)
approved and rejected are terminal.
"""

from __future__ import annotations

from enum import Enum

from credpoints.db.models import WorkRequest
from credpoints.exceptions import InvalidStateError, ValidationError


class RequestStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    CORRECTION = "correction"


VALID_TRANSITIONS: dict[str, list[str]] = {
    RequestStatus.PENDING.value: [
        RequestStatus.APPROVED.value,
        RequestStatus.REJECTED.value,
        RequestStatus.CORRECTION.value,
    ],
    RequestStatus.CORRECTION.value: [RequestStatus.PENDING.value],
    RequestStatus.APPROVED.value: [],
    RequestStatus.REJECTED.value: [],
}

TERMINAL_STATES = frozenset(s for s, targets in VALID_TRANSITIONS.items() if not targets)


def validate_transition(current_status: str, target_status: str) -> None:
    """Raise InvalidStateError if ``current_status`` cannot move to ``target_status``."""
    valid = VALID_TRANSITIONS.get(current_status, [])
    if target_status not in valid:
        raise InvalidStateError(
            f"Cannot move a {current_status} request to {target_status}",
            current_status=current_status,
        )


def check_request_invariants(request: WorkRequest) -> None:
    """Validate the nullable fields against the status before a write."""
    if request.requested_points is None or request.requested_points <= 0:
        raise ValidationError("Requested points must be positive")
    is_approved = request.status == RequestStatus.APPROVED.value
    if is_approved != (request.approved_points is not None):
        raise ValidationError("approved_points must be set exactly when the request is approved")
    is_pending = request.status == RequestStatus.PENDING.value
    if is_pending != (request.responded_at is None):
        raise ValidationError("responded_at must be unset exactly when the request is pending")
