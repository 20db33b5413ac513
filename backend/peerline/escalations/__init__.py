"""Escalation lifecycle package integration helpers exposed to the application."""

from peerline.escalations.api import router
from peerline.escalations.domain.container import configure, configure_postgres, get_coordinator

__all__ = ["router", "configure", "configure_postgres", "get_coordinator"]
