"""Escalation endpoints for counselors and analytics consumers."""

from __future__ import annotations

from datetime import datetime
from typing import Literal, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query, status
from pydantic import BaseModel, Field

from peerline.escalations.domain.container import get_coordinator
from peerline.escalations.domain.coordinator import EscalationCoordinator
from peerline.escalations.domain.models import EscalationNote, EscalationRecord
from peerline.escalations.domain.response_time import format_elapsed

# EscalationError propagates to the handler registered in peerline.main.
router = APIRouter(prefix="/api/escalations/v1", tags=["escalations"])

LevelLiteral = Literal["low", "medium", "high", "critical"]
StatusLiteral = Literal["pending", "in-progress", "resolved"]


class NoteOut(BaseModel):
    note_id: str
    author_id: str
    kind: Literal["annotation", "resolution"]
    text: str
    created_at: datetime

    @classmethod
    def from_model(cls, note: EscalationNote) -> "NoteOut":
        return cls(
            note_id=note.note_id,
            author_id=note.author_id,
            kind=note.kind.value,
            text=note.text,
            created_at=note.created_at,
        )


class EscalationOut(BaseModel):
    escalation_id: str
    content_ref: str
    level: LevelLiteral
    reason: str
    status: StatusLiteral
    assigned_to: str | None
    detected_at: datetime
    resolved_at: datetime | None
    elapsed_seconds: int
    elapsed_display: str
    notes: list[NoteOut]

    @classmethod
    def from_model(cls, record: EscalationRecord, *, coordinator: EscalationCoordinator) -> "EscalationOut":
        elapsed = coordinator.elapsed_time(record)
        return cls(
            escalation_id=record.escalation_id,
            content_ref=record.content_ref,
            level=record.level.value,
            reason=record.reason,
            status=record.status.value,
            assigned_to=record.assigned_to,
            detected_at=record.detected_at,
            resolved_at=record.resolved_at,
            elapsed_seconds=int(elapsed.total_seconds()),
            elapsed_display=format_elapsed(elapsed),
            notes=[NoteOut.from_model(note) for note in record.notes],
        )


class ResolvedOut(BaseModel):
    escalation_id: str
    level: LevelLiteral
    detected_at: datetime
    resolved_at: datetime


class OpenEscalationIn(BaseModel):
    content_ref: str = Field(..., min_length=1, description="Flagged post reference")
    level: LevelLiteral
    reason: str = Field(..., min_length=1)


class AnnotateIn(BaseModel):
    text: str


class ResolveIn(BaseModel):
    resolution_note: str


def get_coordinator_dep() -> EscalationCoordinator:
    return get_coordinator()


def _actor(x_user_id: Optional[str] = Header(default=None, alias="X-User-Id")) -> str:
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="actor_required")
    return x_user_id.strip()


@router.post("", response_model=EscalationOut, status_code=status.HTTP_201_CREATED)
async def open_escalation(
    body: OpenEscalationIn,
    coordinator: EscalationCoordinator = Depends(get_coordinator_dep),
) -> EscalationOut:
    try:
        record = await coordinator.open_escalation(
            content_ref=body.content_ref,
            level=body.level,
            reason=body.reason,
        )
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    return EscalationOut.from_model(record, coordinator=coordinator)


@router.get("", response_model=list[EscalationOut])
async def list_escalations(
    *,
    status_filter: StatusLiteral | None = Query(default=None, alias="status"),
    assigned_to: str | None = Query(default=None),
    level: LevelLiteral | None = Query(default=None),
    coordinator: EscalationCoordinator = Depends(get_coordinator_dep),
) -> list[EscalationOut]:
    records = await coordinator.list_escalations(status=status_filter, assigned_to=assigned_to, level=level)
    return [EscalationOut.from_model(record, coordinator=coordinator) for record in records]


@router.get("/resolved", response_model=list[ResolvedOut])
async def list_resolved(
    since: datetime = Query(...),
    coordinator: EscalationCoordinator = Depends(get_coordinator_dep),
) -> list[ResolvedOut]:
    records = await coordinator.list_resolved(since)
    return [
        ResolvedOut(
            escalation_id=record.escalation_id,
            level=record.level.value,
            detected_at=record.detected_at,
            resolved_at=record.resolved_at,
        )
        for record in records
        if record.resolved_at is not None
    ]


@router.get("/{escalation_id}", response_model=EscalationOut)
async def get_escalation(
    escalation_id: str,
    coordinator: EscalationCoordinator = Depends(get_coordinator_dep),
) -> EscalationOut:
    record = await coordinator.load(escalation_id)
    return EscalationOut.from_model(record, coordinator=coordinator)


@router.post("/{escalation_id}/assign", response_model=EscalationOut)
async def assign_escalation(
    escalation_id: str,
    actor: str = Depends(_actor),
    coordinator: EscalationCoordinator = Depends(get_coordinator_dep),
) -> EscalationOut:
    record = await coordinator.assign(escalation_id, actor)
    return EscalationOut.from_model(record, coordinator=coordinator)


@router.post("/{escalation_id}/notes", response_model=EscalationOut)
async def annotate_escalation(
    escalation_id: str,
    body: AnnotateIn,
    actor: str = Depends(_actor),
    coordinator: EscalationCoordinator = Depends(get_coordinator_dep),
) -> EscalationOut:
    record = await coordinator.annotate(escalation_id, actor, body.text)
    return EscalationOut.from_model(record, coordinator=coordinator)


@router.post("/{escalation_id}/resolve", response_model=EscalationOut)
async def resolve_escalation(
    escalation_id: str,
    body: ResolveIn,
    actor: str = Depends(_actor),
    coordinator: EscalationCoordinator = Depends(get_coordinator_dep),
) -> EscalationOut:
    record = await coordinator.resolve(escalation_id, actor, body.resolution_note)
    return EscalationOut.from_model(record, coordinator=coordinator)
