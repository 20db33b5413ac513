"""Append-only notes journal attached to an escalation record."""

from __future__ import annotations

import dataclasses
from datetime import datetime

from peerline.escalations.domain.errors import EmptyNote, RecordClosed
from peerline.escalations.domain.models import EscalationNote, EscalationRecord, NoteKind, new_id


def append_note(
    record: EscalationRecord,
    *,
    author_id: str,
    text: str,
    now: datetime,
    kind: NoteKind = NoteKind.ANNOTATION,
) -> EscalationRecord:
    """Return a copy of ``record`` with one more journal entry at the end."""
    note = EscalationNote(note_id=new_id(), author_id=author_id, created_at=now, text=text, kind=kind)
    return dataclasses.replace(record, notes=record.notes + (note,))


def annotate(record: EscalationRecord, actor: str, text: str, *, now: datetime) -> EscalationRecord:
    if record.is_resolved:
        raise RecordClosed()
    cleaned = (text or "").strip()
    if not cleaned:
        raise EmptyNote()
    return append_note(record, author_id=actor, text=cleaned, now=now)


def merge_notes(
    stored: tuple[EscalationNote, ...],
    incoming: tuple[EscalationNote, ...],
) -> tuple[EscalationNote, ...]:
    """Append the incoming entries the stored journal has not seen yet.

    Existing entries are kept as stored; entries are matched by ``note_id``.
    """
    known = {note.note_id for note in stored}
    fresh = tuple(note for note in incoming if note.note_id not in known)
    return stored + fresh


__all__ = ["annotate", "append_note", "merge_notes"]
