"""Persistence contract for escalation records."""

from __future__ import annotations

import asyncio
import dataclasses
from dataclasses import dataclass, field
from datetime import datetime
from typing import MutableMapping, Optional, Protocol

from peerline.escalations.domain.errors import ConditionFailed
from peerline.escalations.domain.journal import merge_notes
from peerline.escalations.domain.models import EscalationLevel, EscalationRecord, EscalationStatus


class EscalationRepository(Protocol):
    """Abstract persistence layer for the escalation lifecycle."""

    async def insert(self, record: EscalationRecord) -> EscalationRecord:
        """Persist a freshly detected record."""

    async def load(self, escalation_id: str) -> EscalationRecord | None:
        """Return the stored record or ``None`` when the id is unknown."""

    async def save(
        self,
        record: EscalationRecord,
        *,
        expected_status: EscalationStatus,
        expected_assignee: Optional[str] = None,
    ) -> EscalationRecord:
        """Write ``record``'s mutable state if the stored row still matches.

        The write only applies when the stored status equals ``expected_status``
        (and the stored assignee equals ``expected_assignee`` when given); otherwise
        :class:`ConditionFailed` is raised and nothing is written. Journal entries
        the store has not seen are appended; stored entries are never rewritten.
        Returns the record as stored after the write.
        """

    async def list_resolved(self, since: datetime) -> list[EscalationRecord]:
        """Resolved records with ``resolved_at >= since``, oldest resolution first."""

    async def list_escalations(
        self,
        *,
        status: Optional[EscalationStatus] = None,
        assigned_to: Optional[str] = None,
        level: Optional[EscalationLevel] = None,
    ) -> list[EscalationRecord]:
        """Records matching the filters, most recently detected first."""


@dataclass
class InMemoryEscalationRepository(EscalationRepository):
    """Simple repository with in-memory state for local development and tests."""

    records: MutableMapping[str, EscalationRecord] = field(default_factory=dict)
    _lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False)

    async def insert(self, record: EscalationRecord) -> EscalationRecord:
        async with self._lock:
            if record.escalation_id in self.records:
                raise ValueError(f"duplicate escalation id: {record.escalation_id}")
            self.records[record.escalation_id] = record
        return record

    async def load(self, escalation_id: str) -> EscalationRecord | None:
        return self.records.get(escalation_id)

    async def save(
        self,
        record: EscalationRecord,
        *,
        expected_status: EscalationStatus,
        expected_assignee: Optional[str] = None,
    ) -> EscalationRecord:
        async with self._lock:
            stored = self.records.get(record.escalation_id)
            if stored is None or stored.status is not expected_status:
                raise ConditionFailed(record.escalation_id)
            if expected_assignee is not None and stored.assigned_to != expected_assignee:
                raise ConditionFailed(record.escalation_id)
            # content_ref, level, reason and detected_at are never taken from the caller.
            updated = dataclasses.replace(
                stored,
                status=record.status,
                assigned_to=record.assigned_to,
                resolved_at=record.resolved_at,
                notes=merge_notes(stored.notes, record.notes),
            )
            self.records[record.escalation_id] = updated
        return updated

    async def list_resolved(self, since: datetime) -> list[EscalationRecord]:
        resolved = [
            record
            for record in self.records.values()
            if record.resolved_at is not None and record.resolved_at >= since
        ]
        resolved.sort(key=lambda record: record.resolved_at)  # type: ignore[arg-type, return-value]
        return resolved

    async def list_escalations(
        self,
        *,
        status: Optional[EscalationStatus] = None,
        assigned_to: Optional[str] = None,
        level: Optional[EscalationLevel] = None,
    ) -> list[EscalationRecord]:
        results = list(self.records.values())
        if status is not None:
            results = [record for record in results if record.status is status]
        if assigned_to is not None:
            results = [record for record in results if record.assigned_to == assigned_to]
        if level is not None:
            results = [record for record in results if record.level is level]
        results.sort(key=lambda record: record.detected_at, reverse=True)
        return results


__all__ = ["EscalationRepository", "InMemoryEscalationRepository"]
