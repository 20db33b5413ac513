"""Derived response-time metric for escalation records."""

from __future__ import annotations

from datetime import datetime, timedelta

from peerline.escalations.domain.models import EscalationRecord


def elapsed_time(record: EscalationRecord, *, now: datetime) -> timedelta:
    """Time since detection, frozen at ``resolved_at`` once the record is closed."""
    if record.resolved_at is not None:
        return record.resolved_at - record.detected_at
    return now - record.detected_at


def format_elapsed(delta: timedelta) -> str:
    """Render a duration as whole hours and minutes, e.g. ``"3h 0m"``."""
    total_minutes = max(0, int(delta.total_seconds() // 60))
    hours, minutes = divmod(total_minutes, 60)
    return f"{hours}h {minutes}m"


__all__ = ["elapsed_time", "format_elapsed"]
