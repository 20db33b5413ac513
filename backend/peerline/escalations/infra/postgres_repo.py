"""PostgreSQL-backed repository for escalation records."""

from __future__ import annotations

from collections import defaultdict
from datetime import datetime
from typing import Any, Iterable, Mapping, Optional, Sequence
from uuid import UUID

import asyncpg

from peerline.escalations.domain.errors import ConditionFailed, InvariantViolation
from peerline.escalations.domain.models import (
    EscalationLevel,
    EscalationNote,
    EscalationRecord,
    EscalationStatus,
    NoteKind,
)
from peerline.escalations.domain.repository import EscalationRepository

ESCALATION_SCHEMA = """
CREATE TABLE IF NOT EXISTS escalation (
    id UUID PRIMARY KEY,
    content_ref TEXT NOT NULL,
    level TEXT NOT NULL CHECK (level IN ('low', 'medium', 'high', 'critical')),
    reason TEXT NOT NULL,
    status TEXT NOT NULL DEFAULT 'pending' CHECK (status IN ('pending', 'in-progress', 'resolved')),
    assigned_to TEXT,
    detected_at TIMESTAMPTZ NOT NULL DEFAULT now(),
    resolved_at TIMESTAMPTZ,
    CONSTRAINT escalation_assignee_matches_status CHECK ((status = 'pending') = (assigned_to IS NULL)),
    CONSTRAINT escalation_resolved_at_matches_status CHECK ((status = 'resolved') = (resolved_at IS NOT NULL)),
    CONSTRAINT escalation_resolved_after_detected CHECK (resolved_at IS NULL OR resolved_at >= detected_at)
);
CREATE INDEX IF NOT EXISTS escalation_status_detected_idx ON escalation (status, detected_at DESC);
CREATE INDEX IF NOT EXISTS escalation_resolved_at_idx ON escalation (resolved_at) WHERE resolved_at IS NOT NULL;

CREATE TABLE IF NOT EXISTS escalation_note (
    id UUID PRIMARY KEY,
    escalation_id UUID NOT NULL REFERENCES escalation (id),
    seq BIGSERIAL,
    author_id TEXT NOT NULL,
    kind TEXT NOT NULL DEFAULT 'annotation' CHECK (kind IN ('annotation', 'resolution')),
    body TEXT NOT NULL,
    created_at TIMESTAMPTZ NOT NULL
);
CREATE INDEX IF NOT EXISTS escalation_note_escalation_seq_idx ON escalation_note (escalation_id, seq);
"""

_COLUMNS = "id, content_ref, level, reason, status, assigned_to, detected_at, resolved_at"

_NOTE_INSERT = """
INSERT INTO escalation_note (id, escalation_id, author_id, kind, body, created_at)
VALUES ($1, $2, $3, $4, $5, $6)
ON CONFLICT (id) DO NOTHING
"""


def _to_uuid(value: Any) -> UUID | None:
    if value is None:
        return None
    try:
        return UUID(str(value))
    except (ValueError, TypeError, AttributeError):
        return None


async def ensure_schema(pool: asyncpg.Pool) -> None:
    await pool.execute(ESCALATION_SCHEMA)


class PostgresEscalationRepository(EscalationRepository):
    """Persists escalation records using asyncpg."""

    def __init__(self, pool: asyncpg.Pool) -> None:
        self.pool = pool

    async def insert(self, record: EscalationRecord) -> EscalationRecord:
        async with self.pool.acquire() as conn:
            async with conn.transaction():
                await conn.execute(
                    f"""
                    INSERT INTO escalation ({_COLUMNS})
                    VALUES ($1, $2, $3, $4, $5, $6, $7, $8)
                    """,
                    record.escalation_id,
                    record.content_ref,
                    record.level.value,
                    record.reason,
                    record.status.value,
                    record.assigned_to,
                    record.detected_at,
                    record.resolved_at,
                )
                await _insert_notes(conn, record)
        return record

    async def load(self, escalation_id: str) -> EscalationRecord | None:
        if _to_uuid(escalation_id) is None:
            return None
        async with self.pool.acquire() as conn:
            return await _load(conn, escalation_id)

    async def save(
        self,
        record: EscalationRecord,
        *,
        expected_status: EscalationStatus,
        expected_assignee: Optional[str] = None,
    ) -> EscalationRecord:
        query = """
        UPDATE escalation
        SET status = $2,
            assigned_to = $3,
            resolved_at = $4
        WHERE id = $1
          AND status = $5
          AND ($6::text IS NULL OR assigned_to = $6::text)
        RETURNING id
        """
        async with self.pool.acquire() as conn:
            async with conn.transaction():
                row = await conn.fetchrow(
                    query,
                    record.escalation_id,
                    record.status.value,
                    record.assigned_to,
                    record.resolved_at,
                    expected_status.value,
                    expected_assignee,
                )
                if row is None:
                    raise ConditionFailed(record.escalation_id)
                await _insert_notes(conn, record)
                stored = await _load(conn, record.escalation_id)
        if stored is None:
            raise InvariantViolation("saved_record_missing")
        return stored

    async def list_resolved(self, since: datetime) -> list[EscalationRecord]:
        query = f"""
        SELECT {_COLUMNS}
        FROM escalation
        WHERE status = 'resolved' AND resolved_at >= $1
        ORDER BY resolved_at ASC
        """
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(query, since)
            return await _hydrate(conn, rows)

    async def list_escalations(
        self,
        *,
        status: Optional[EscalationStatus] = None,
        assigned_to: Optional[str] = None,
        level: Optional[EscalationLevel] = None,
    ) -> list[EscalationRecord]:
        conditions: list[str] = []
        params: list[object] = []
        if status is not None:
            params.append(status.value)
            conditions.append(f"status = ${len(params)}")
        if assigned_to is not None:
            params.append(assigned_to)
            conditions.append(f"assigned_to = ${len(params)}")
        if level is not None:
            params.append(level.value)
            conditions.append(f"level = ${len(params)}")
        where_clause = f"WHERE {' AND '.join(conditions)}" if conditions else ""
        query = f"""
            SELECT {_COLUMNS}
            FROM escalation
            {where_clause}
            ORDER BY detected_at DESC
        """
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(query, *params)
            return await _hydrate(conn, rows)


async def _insert_notes(conn: asyncpg.Connection, record: EscalationRecord) -> None:
    if not record.notes:
        return
    await conn.executemany(
        _NOTE_INSERT,
        [
            (note.note_id, record.escalation_id, note.author_id, note.kind.value, note.text, note.created_at)
            for note in record.notes
        ],
    )


async def _load(conn: asyncpg.Connection, escalation_id: str) -> EscalationRecord | None:
    row = await conn.fetchrow(f"SELECT {_COLUMNS} FROM escalation WHERE id = $1", escalation_id)
    if row is None:
        return None
    records = await _hydrate(conn, [row])
    return records[0]


async def _hydrate(conn: asyncpg.Connection, rows: Sequence[Mapping[str, Any]]) -> list[EscalationRecord]:
    if not rows:
        return []
    ids = [str(row["id"]) for row in rows]
    note_rows = await conn.fetch(
        """
        SELECT id, escalation_id, author_id, kind, body, created_at
        FROM escalation_note
        WHERE escalation_id = ANY($1::uuid[])
        ORDER BY seq ASC
        """,
        ids,
    )
    notes = _group_notes(note_rows)
    return [_record_from_row(row, notes.get(str(row["id"]), ())) for row in rows]


def _group_notes(rows: Iterable[Mapping[str, Any]]) -> dict[str, tuple[EscalationNote, ...]]:
    grouped: dict[str, list[EscalationNote]] = defaultdict(list)
    for row in rows:
        grouped[str(row["escalation_id"])].append(
            EscalationNote(
                note_id=str(row["id"]),
                author_id=str(row["author_id"]),
                created_at=row["created_at"],
                text=str(row["body"]),
                kind=NoteKind(row["kind"]),
            )
        )
    return {key: tuple(value) for key, value in grouped.items()}


def _record_from_row(row: Mapping[str, Any], notes: tuple[EscalationNote, ...]) -> EscalationRecord:
    return EscalationRecord(
        escalation_id=str(row["id"]),
        content_ref=str(row["content_ref"]),
        level=EscalationLevel(row["level"]),
        reason=str(row["reason"]),
        status=EscalationStatus(row["status"]),
        assigned_to=str(row["assigned_to"]) if row["assigned_to"] is not None else None,
        detected_at=row["detected_at"],
        resolved_at=row["resolved_at"],
        notes=notes,
    )


__all__ = ["ESCALATION_SCHEMA", "PostgresEscalationRepository", "ensure_schema"]
