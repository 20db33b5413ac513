"""Lifecycle orchestration for escalation records."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, AsyncIterator, Callable, Mapping, Optional, Protocol

from peerline.escalations.domain import journal, state_machine
from peerline.escalations.domain.errors import (
    AlreadyAssigned,
    ConditionFailed,
    EscalationError,
    EscalationNotFound,
    InvalidTransition,
)
from peerline.escalations.domain.models import (
    EscalationLevel,
    EscalationRecord,
    EscalationStatus,
    utcnow,
)
from peerline.escalations.domain.repository import EscalationRepository
from peerline.escalations.domain.response_time import elapsed_time
from peerline.obs import metrics as obs_metrics

logger = logging.getLogger(__name__)


class EventStream(Protocol):
    async def xadd(self, name: str, fields: Mapping[str, Any]) -> Any:
        ...


def _require_actor(actor: str | None) -> str:
    cleaned = (actor or "").strip()
    if not cleaned:
        raise ValueError("actor_required")
    return cleaned


@dataclass
class EscalationCoordinator:
    """Single entry point for escalation reads and lifecycle transitions.

    Every mutating call is one load of the current record and one conditioned
    write. Authorization is the caller's job; only state and ownership rules are
    enforced here.
    """

    repository: EscalationRepository
    redis: EventStream | None = None
    event_stream: str = "escalations:events"
    clock: Callable[[], datetime] = utcnow

    async def load(self, escalation_id: str) -> EscalationRecord:
        record = await self.repository.load(escalation_id)
        if record is None:
            raise EscalationNotFound()
        record.check_invariants()
        return record

    async def open_escalation(
        self,
        *,
        content_ref: str,
        level: EscalationLevel | str,
        reason: str,
    ) -> EscalationRecord:
        record = EscalationRecord.new(
            content_ref=content_ref,
            level=level,
            reason=reason,
            detected_at=self.clock(),
        )
        stored = await self.repository.insert(record)
        obs_metrics.ESC_OPENED_TOTAL.labels(level=stored.level.value).inc()
        logger.info(
            "escalation opened",
            extra={"escalation_id": stored.escalation_id, "level": stored.level.value},
        )
        await self._publish("opened", stored, actor_id=None)
        return stored

    async def assign(self, escalation_id: str, actor: str) -> EscalationRecord:
        actor = _require_actor(actor)
        async with self._operation("assign", escalation_id, actor):
            record = await self.load(escalation_id)
            claimed = state_machine.assign(record, actor)
            try:
                stored = await self.repository.save(claimed, expected_status=EscalationStatus.PENDING)
            except ConditionFailed:
                current = await self._reload_after_conflict("assign", escalation_id)
                raise (InvalidTransition() if current.is_resolved else AlreadyAssigned()) from None
        await self._committed("assigned", stored, actor)
        return stored

    async def annotate(self, escalation_id: str, actor: str, text: str) -> EscalationRecord:
        actor = _require_actor(actor)
        async with self._operation("annotate", escalation_id, actor):
            record = await self.load(escalation_id)
            while True:
                annotated = journal.annotate(record, actor, text, now=self.clock())
                try:
                    stored = await self.repository.save(annotated, expected_status=record.status)
                    break
                except ConditionFailed:
                    # Status only moves forward; journal.annotate raises RecordClosed once resolved.
                    record = await self._reload_after_conflict("annotate", escalation_id)
        await self._committed("annotated", stored, actor)
        return stored

    async def resolve(self, escalation_id: str, actor: str, resolution_note: str) -> EscalationRecord:
        actor = _require_actor(actor)
        async with self._operation("resolve", escalation_id, actor):
            record = await self.load(escalation_id)
            closed = state_machine.resolve(record, actor, resolution_note, now=self.clock())
            try:
                stored = await self.repository.save(
                    closed,
                    expected_status=EscalationStatus.IN_PROGRESS,
                    expected_assignee=actor,
                )
            except ConditionFailed:
                await self._reload_after_conflict("resolve", escalation_id)
                raise InvalidTransition() from None
        obs_metrics.ESC_RESPONSE_SECONDS.labels(level=stored.level.value).observe(
            elapsed_time(stored, now=self.clock()).total_seconds()
        )
        await self._committed("resolved", stored, actor)
        return stored

    def elapsed_time(self, record: EscalationRecord) -> timedelta:
        return elapsed_time(record, now=self.clock())

    async def list_escalations(
        self,
        *,
        status: EscalationStatus | str | None = None,
        assigned_to: Optional[str] = None,
        level: EscalationLevel | str | None = None,
    ) -> list[EscalationRecord]:
        return await self.repository.list_escalations(
            status=EscalationStatus(status) if status is not None else None,
            assigned_to=assigned_to,
            level=EscalationLevel(level) if level is not None else None,
        )

    async def list_resolved(self, since: datetime) -> list[EscalationRecord]:
        if since.tzinfo is None:
            since = since.replace(tzinfo=timezone.utc)
        return await self.repository.list_resolved(since)

    @asynccontextmanager
    async def _operation(self, operation: str, escalation_id: str, actor: str) -> AsyncIterator[None]:
        try:
            yield
        except EscalationError as exc:
            obs_metrics.ESC_REJECTIONS_TOTAL.labels(operation=operation, error=exc.detail).inc()
            logger.info(
                "escalation operation rejected",
                extra={
                    "operation": operation,
                    "escalation_id": escalation_id,
                    "actor_id": actor,
                    "error": exc.detail,
                },
            )
            raise

    async def _reload_after_conflict(self, operation: str, escalation_id: str) -> EscalationRecord:
        obs_metrics.ESC_CONFLICTS_TOTAL.labels(operation=operation).inc()
        logger.warning(
            "conditional escalation write lost a race",
            extra={"operation": operation, "escalation_id": escalation_id},
        )
        return await self.load(escalation_id)

    async def _committed(self, transition: str, record: EscalationRecord, actor: str) -> None:
        obs_metrics.ESC_TRANSITIONS_TOTAL.labels(transition=transition).inc()
        logger.info(
            "escalation %s",
            transition,
            extra={
                "escalation_id": record.escalation_id,
                "actor_id": actor,
                "status": record.status.value,
                "journal_size": len(record.notes),
            },
        )
        await self._publish(transition, record, actor_id=actor)

    async def _publish(self, event: str, record: EscalationRecord, *, actor_id: str | None) -> None:
        if self.redis is None:
            return
        fields = {
            "escalation_id": record.escalation_id,
            "event": event,
            "level": record.level.value,
            "status": record.status.value,
            "actor_id": actor_id,
        }
        try:
            await self.redis.xadd(self.event_stream, fields)
        except Exception:  # noqa: BLE001 - the transition is already committed
            obs_metrics.ESC_EVENT_PUBLISH_FAILURES.inc()
            logger.exception(
                "failed to publish escalation event",
                extra={"escalation_id": record.escalation_id, "event": event},
            )


__all__ = ["EscalationCoordinator", "EventStream"]
