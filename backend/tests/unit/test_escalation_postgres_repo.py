from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from typing import Any
from uuid import UUID

import pytest

from peerline.escalations.domain import journal, state_machine
from peerline.escalations.domain.errors import ConditionFailed, InvariantViolation
from peerline.escalations.domain.models import EscalationRecord, EscalationStatus, NoteKind
from peerline.escalations.infra.postgres_repo import PostgresEscalationRepository

T0 = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


class FakePool:
    """Lightweight asyncpg.Pool stand-in holding escalation and note rows."""

    def __init__(self) -> None:
        self.escalations: dict[str, dict[str, Any]] = {}
        self.notes: list[dict[str, Any]] = []
        self.queries: list[tuple[str, tuple[object, ...]]] = []
        self.drop_after_update = False

    @asynccontextmanager
    async def acquire(self):
        yield FakeConnection(self)


class FakeConnection:
    def __init__(self, pool: FakePool) -> None:
        self._pool = pool

    def transaction(self):
        @asynccontextmanager
        async def _transaction():
            yield

        return _transaction()

    async def execute(self, query: str, *params: object) -> str:
        self._pool.queries.append((query, params))
        if "INSERT INTO escalation (" in query:
            keys = ["id", "content_ref", "level", "reason", "status", "assigned_to", "detected_at", "resolved_at"]
            row = dict(zip(keys, params))
            self._pool.escalations[str(row["id"])] = row
            return "INSERT 0 1"
        raise NotImplementedError(query)

    async def executemany(self, query: str, rows: list[tuple[object, ...]]) -> None:
        assert "ON CONFLICT (id) DO NOTHING" in query
        seen = {note["id"] for note in self._pool.notes}
        for note_id, escalation_id, author_id, kind, body, created_at in rows:
            if note_id in seen:
                continue
            seen.add(note_id)
            self._pool.notes.append(
                {
                    "id": note_id,
                    "escalation_id": escalation_id,
                    "author_id": author_id,
                    "kind": kind,
                    "body": body,
                    "created_at": created_at,
                }
            )

    async def fetchrow(self, query: str, *params: object) -> dict[str, Any] | None:
        self._pool.queries.append((query, params))
        if "UPDATE escalation" in query:
            escalation_id, status, assigned_to, resolved_at, expected_status, expected_assignee = params
            row = self._pool.escalations.get(str(escalation_id))
            if row is None or row["status"] != expected_status:
                return None
            if expected_assignee is not None and row["assigned_to"] != expected_assignee:
                return None
            row.update(status=status, assigned_to=assigned_to, resolved_at=resolved_at)
            if self._pool.drop_after_update:
                del self._pool.escalations[str(escalation_id)]
            return {"id": row["id"]}
        if "FROM escalation WHERE id = $1" in query:
            row = self._pool.escalations.get(str(params[0]))
            return dict(row) if row is not None else None
        raise NotImplementedError(query)

    async def fetch(self, query: str, *params: object) -> list[dict[str, Any]]:
        self._pool.queries.append((query, params))
        if "FROM escalation_note" in query:
            ids = set(params[0])  # type: ignore[arg-type]
            return [dict(note) for note in self._pool.notes if note["escalation_id"] in ids]
        rows = [dict(row) for row in self._pool.escalations.values()]
        if "status = 'resolved'" in query:
            since = params[0]
            rows = [row for row in rows if row["status"] == "resolved" and row["resolved_at"] >= since]
            return sorted(rows, key=lambda row: row["resolved_at"])
        return sorted(rows, key=lambda row: row["detected_at"], reverse=True)


def _record(**kwargs: Any) -> EscalationRecord:
    return EscalationRecord.new(
        content_ref="post-11",
        level="high",
        reason="mentions of self harm",
        detected_at=kwargs.pop("detected_at", T0),
        **kwargs,
    )


@pytest.mark.asyncio
async def test_insert_then_load_round_trips_record_and_notes() -> None:
    pool = FakePool()
    repo = PostgresEscalationRepository(pool)  # type: ignore[arg-type]
    record = journal.annotate(_record(), "mod-1", "flagged by keyword scan", now=T0)

    await repo.insert(record)
    loaded = await repo.load(record.escalation_id)

    assert loaded == record
    assert UUID(loaded.escalation_id)


@pytest.mark.asyncio
async def test_load_rejects_non_uuid_ids_without_querying() -> None:
    pool = FakePool()
    repo = PostgresEscalationRepository(pool)  # type: ignore[arg-type]

    assert await repo.load("not-a-uuid") is None
    assert pool.queries == []


@pytest.mark.asyncio
async def test_save_with_stale_status_raises_condition_failed() -> None:
    pool = FakePool()
    repo = PostgresEscalationRepository(pool)  # type: ignore[arg-type]
    record = await repo.insert(_record())
    await repo.save(state_machine.assign(record, "alice"), expected_status=EscalationStatus.PENDING)

    with pytest.raises(ConditionFailed) as excinfo:
        await repo.save(state_machine.assign(record, "carol"), expected_status=EscalationStatus.PENDING)

    assert excinfo.value.escalation_id == record.escalation_id
    update_query, update_params = [entry for entry in pool.queries if "UPDATE escalation" in entry[0]][-1]
    assert "RETURNING id" in update_query
    assert update_params[1:] == ("in-progress", "carol", None, "pending", None)
    assert (await repo.load(record.escalation_id)).assigned_to == "alice"


@pytest.mark.asyncio
async def test_resolve_save_requires_assignee_and_appends_notes() -> None:
    pool = FakePool()
    repo = PostgresEscalationRepository(pool)  # type: ignore[arg-type]
    record = await repo.insert(_record())
    claimed = await repo.save(state_machine.assign(record, "alice"), expected_status=EscalationStatus.PENDING)
    noted = await repo.save(
        journal.annotate(claimed, "alice", "called", now=T0 + timedelta(minutes=5)),
        expected_status=EscalationStatus.IN_PROGRESS,
    )
    closed = state_machine.resolve(noted, "alice", "handed over", now=T0 + timedelta(hours=1))

    with pytest.raises(ConditionFailed):
        await repo.save(closed, expected_status=EscalationStatus.IN_PROGRESS, expected_assignee="bob")

    stored = await repo.save(closed, expected_status=EscalationStatus.IN_PROGRESS, expected_assignee="alice")

    assert stored.status is EscalationStatus.RESOLVED
    assert stored.resolved_at == T0 + timedelta(hours=1)
    assert [note.kind for note in stored.notes] == [NoteKind.ANNOTATION, NoteKind.RESOLUTION]
    assert len(pool.notes) == 2


@pytest.mark.asyncio
async def test_list_escalations_builds_numbered_filters() -> None:
    pool = FakePool()
    repo = PostgresEscalationRepository(pool)  # type: ignore[arg-type]

    await repo.list_escalations(status=EscalationStatus.PENDING, assigned_to="alice")

    query, params = pool.queries[-1]
    assert "status = $1" in query
    assert "assigned_to = $2" in query
    assert "ORDER BY detected_at DESC" in query
    assert params == ("pending", "alice")


@pytest.mark.asyncio
async def test_list_resolved_returns_oldest_resolution_first() -> None:
    pool = FakePool()
    repo = PostgresEscalationRepository(pool)  # type: ignore[arg-type]
    first = await repo.insert(_record())
    second = await repo.insert(_record(detected_at=T0 + timedelta(minutes=10)))
    for record, resolved_at in ((second, T0 + timedelta(hours=1)), (first, T0 + timedelta(hours=2))):
        claimed = await repo.save(state_machine.assign(record, "alice"), expected_status=EscalationStatus.PENDING)
        await repo.save(
            state_machine.resolve(claimed, "alice", "done", now=resolved_at),
            expected_status=EscalationStatus.IN_PROGRESS,
            expected_assignee="alice",
        )

    resolved = await repo.list_resolved(T0)

    assert [record.escalation_id for record in resolved] == [second.escalation_id, first.escalation_id]
    assert all(len(record.notes) == 1 for record in resolved)


@pytest.mark.asyncio
async def test_save_raises_when_row_disappears_after_update() -> None:
    pool = FakePool()
    repo = PostgresEscalationRepository(pool)  # type: ignore[arg-type]
    record = await repo.insert(_record())
    pool.drop_after_update = True

    with pytest.raises(InvariantViolation):
        await repo.save(state_machine.assign(record, "alice"), expected_status=EscalationStatus.PENDING)
