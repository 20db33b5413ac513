"""Lightweight service container shared by escalation modules."""

from __future__ import annotations

from datetime import datetime
from typing import Callable, Optional

import asyncpg
from redis.asyncio import Redis

from peerline.escalations.domain.coordinator import EscalationCoordinator, EventStream
from peerline.escalations.domain.models import utcnow
from peerline.escalations.domain.repository import EscalationRepository, InMemoryEscalationRepository
from peerline.escalations.infra.postgres_repo import PostgresEscalationRepository, ensure_schema
from peerline.infra.redis import RedisProxy, redis_client
from peerline.settings import settings

_repository: EscalationRepository = InMemoryEscalationRepository()
_events: Optional[EventStream] = None
_clock: Callable[[], datetime] = utcnow
_coordinator = EscalationCoordinator(repository=_repository, event_stream=settings.escalation_event_stream)


def configure(
    *,
    repository: Optional[EscalationRepository] = None,
    events: Optional[EventStream] = None,
    event_stream: Optional[str] = None,
    clock: Optional[Callable[[], datetime]] = None,
) -> EscalationCoordinator:
    global _repository, _events, _clock, _coordinator
    if repository is not None:
        _repository = repository
    if events is not None:
        _events = events
    if clock is not None:
        _clock = clock
    _coordinator = EscalationCoordinator(
        repository=_repository,
        redis=_events,
        event_stream=event_stream or settings.escalation_event_stream,
        clock=_clock,
    )
    return _coordinator


async def configure_postgres(
    pool: asyncpg.Pool,
    redis_conn: Redis | RedisProxy | None = None,
    *,
    create_schema: bool = True,
) -> EscalationCoordinator:
    if create_schema:
        await ensure_schema(pool)
    events: Optional[EventStream] = None
    if redis_conn is not None:
        events = redis_conn if isinstance(redis_conn, RedisProxy) else RedisProxy(redis_conn)
    return configure(repository=PostgresEscalationRepository(pool), events=events)


def default_event_stream() -> Optional[EventStream]:
    return redis_client if settings.escalation_events_enabled else None


def reset() -> EscalationCoordinator:
    """Restore the in-memory defaults (used between tests)."""
    global _repository, _events, _clock
    _repository = InMemoryEscalationRepository()
    _events = None
    _clock = utcnow
    return configure()


def get_coordinator() -> EscalationCoordinator:
    return _coordinator


__all__ = ["configure", "configure_postgres", "default_event_stream", "get_coordinator", "reset"]
