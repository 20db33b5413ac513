"""Error taxonomy for the escalation lifecycle."""

from __future__ import annotations

from fastapi import status

if hasattr(status, "HTTP_422_UNPROCESSABLE_CONTENT"):
    _HTTP_422 = status.HTTP_422_UNPROCESSABLE_CONTENT
else:  # pragma: no cover - fallback for older Starlette builds
    _HTTP_422 = status.HTTP_422_UNPROCESSABLE_ENTITY


class EscalationError(Exception):
    """Base class for escalation lifecycle failures.

    Every subclass is recoverable: the caller re-loads the record and retries the
    operation the current state allows.
    """

    status_code: int = status.HTTP_400_BAD_REQUEST
    detail: str = "escalation_error"

    def __init__(self, detail: str | None = None) -> None:
        super().__init__(detail or self.detail)
        if detail:
            self.detail = detail


class EscalationNotFound(EscalationError):
    status_code = status.HTTP_404_NOT_FOUND
    detail = "escalation_not_found"


class InvalidTransition(EscalationError):
    """The record's status does not permit the requested operation."""

    status_code = status.HTTP_409_CONFLICT
    detail = "invalid_transition"


class AlreadyAssigned(EscalationError):
    """Another actor already claimed the record."""

    status_code = status.HTTP_409_CONFLICT
    detail = "already_assigned"


class NotOwner(EscalationError):
    """Only the assigned actor may resolve the record."""

    status_code = status.HTTP_403_FORBIDDEN
    detail = "not_owner"


class EmptyResolution(EscalationError):
    status_code = _HTTP_422
    detail = "empty_resolution"


class EmptyNote(EscalationError):
    status_code = _HTTP_422
    detail = "empty_note"


class RecordClosed(EscalationError):
    """The notes journal is frozen once the record is resolved."""

    status_code = status.HTTP_409_CONFLICT
    detail = "record_closed"


class InvariantViolation(EscalationError):
    """A stored record breaks the entity invariants."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    detail = "invariant_violation"

    def __init__(self, reason: str) -> None:
        super().__init__()
        self.reason = reason


class ConditionFailed(Exception):
    """Raised by repositories when a conditional write's guard no longer holds.

    Never surfaced to callers of the coordinator; it is translated into one of the
    lifecycle errors above.
    """

    def __init__(self, escalation_id: str) -> None:
        super().__init__(escalation_id)
        self.escalation_id = escalation_id


__all__ = [
    "AlreadyAssigned",
    "ConditionFailed",
    "EmptyNote",
    "EmptyResolution",
    "EscalationError",
    "EscalationNotFound",
    "InvalidTransition",
    "InvariantViolation",
    "NotOwner",
    "RecordClosed",
]
