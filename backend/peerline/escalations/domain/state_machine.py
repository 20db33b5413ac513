"""Legal escalation transitions: pending -> in-progress -> resolved.

Each function validates against the record it is given and returns a new record;
nothing here performs I/O. ``resolved`` is terminal, and a record must be claimed
before it can be resolved so every closed escalation has one accountable actor.
"""

from __future__ import annotations

import dataclasses
from datetime import datetime

from peerline.escalations.domain.errors import (
    AlreadyAssigned,
    EmptyResolution,
    InvalidTransition,
    NotOwner,
)
from peerline.escalations.domain.journal import append_note
from peerline.escalations.domain.models import (
    RESOLUTION_MARKER,
    EscalationRecord,
    EscalationStatus,
    NoteKind,
)

TRANSITIONS: dict[EscalationStatus, frozenset[EscalationStatus]] = {
    EscalationStatus.PENDING: frozenset({EscalationStatus.IN_PROGRESS}),
    EscalationStatus.IN_PROGRESS: frozenset({EscalationStatus.RESOLVED}),
    EscalationStatus.RESOLVED: frozenset(),
}


def can_transition(current: EscalationStatus, target: EscalationStatus) -> bool:
    return target in TRANSITIONS[current]


def assign(record: EscalationRecord, actor: str) -> EscalationRecord:
    if record.status is EscalationStatus.IN_PROGRESS:
        # Ownership is fixed once claimed, including for the current owner.
        raise AlreadyAssigned()
    if not can_transition(record.status, EscalationStatus.IN_PROGRESS):
        raise InvalidTransition()
    return dataclasses.replace(record, status=EscalationStatus.IN_PROGRESS, assigned_to=actor)


def resolve(
    record: EscalationRecord,
    actor: str,
    resolution_note: str,
    *,
    now: datetime,
) -> EscalationRecord:
    if not can_transition(record.status, EscalationStatus.RESOLVED):
        raise InvalidTransition()
    if record.assigned_to != actor:
        raise NotOwner()
    cleaned = (resolution_note or "").strip()
    if not cleaned:
        raise EmptyResolution()
    resolved_at = max(now, record.detected_at)
    closed = append_note(
        record,
        author_id=actor,
        text=f"{RESOLUTION_MARKER} {cleaned}",
        now=resolved_at,
        kind=NoteKind.RESOLUTION,
    )
    return dataclasses.replace(closed, status=EscalationStatus.RESOLVED, resolved_at=resolved_at)


__all__ = ["TRANSITIONS", "assign", "can_transition", "resolve"]
