"""Escalation record entity and its value types."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional
from uuid import uuid4

from peerline.escalations.domain.errors import InvariantViolation


class EscalationLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class EscalationStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in-progress"
    RESOLVED = "resolved"


class NoteKind(str, Enum):
    ANNOTATION = "annotation"
    RESOLUTION = "resolution"


RESOLUTION_MARKER = "Resolution:"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid4())


@dataclass(frozen=True, slots=True)
class EscalationNote:
    """One immutable entry of a record's notes journal."""

    note_id: str
    author_id: str
    created_at: datetime
    text: str
    kind: NoteKind = NoteKind.ANNOTATION


@dataclass(frozen=True, slots=True)
class EscalationRecord:
    """A flagged post tracked from detection through resolution.

    Records are values: lifecycle operations return a new record instead of
    mutating this one, so a failed operation can never leave a half-applied state.
    """

    escalation_id: str
    content_ref: str
    level: EscalationLevel
    reason: str
    detected_at: datetime
    status: EscalationStatus = EscalationStatus.PENDING
    assigned_to: Optional[str] = None
    resolved_at: Optional[datetime] = None
    notes: tuple[EscalationNote, ...] = field(default_factory=tuple)

    @classmethod
    def new(
        cls,
        *,
        content_ref: str,
        level: EscalationLevel | str,
        reason: str,
        detected_at: datetime | None = None,
        escalation_id: str | None = None,
    ) -> "EscalationRecord":
        """Build the initial pending record handed over by the detector."""
        if not content_ref or not content_ref.strip():
            raise ValueError("content_ref_required")
        if not reason or not reason.strip():
            raise ValueError("reason_required")
        return cls(
            escalation_id=escalation_id or new_id(),
            content_ref=content_ref.strip(),
            level=EscalationLevel(level),
            reason=reason.strip(),
            detected_at=detected_at or utcnow(),
        )

    @property
    def is_resolved(self) -> bool:
        return self.status is EscalationStatus.RESOLVED

    def check_invariants(self) -> None:
        if self.status is EscalationStatus.PENDING and self.assigned_to is not None:
            raise InvariantViolation("pending_record_has_assignee")
        if self.status is not EscalationStatus.PENDING and self.assigned_to is None:
            raise InvariantViolation("claimed_record_missing_assignee")
        if (self.resolved_at is not None) != self.is_resolved:
            raise InvariantViolation("resolved_at_mismatch")
        if self.resolved_at is not None and self.resolved_at < self.detected_at:
            raise InvariantViolation("resolved_before_detected")


__all__ = [
    "EscalationLevel",
    "EscalationNote",
    "EscalationRecord",
    "EscalationStatus",
    "NoteKind",
    "RESOLUTION_MARKER",
    "new_id",
    "utcnow",
]
