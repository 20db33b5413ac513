"""HTTP surface for the escalation lifecycle."""

from peerline.escalations.api.escalations import router

__all__ = ["router"]
