"""FastAPI application entrypoint."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from starlette.responses import Response

from peerline import escalations
from peerline.escalations.domain import container
from peerline.escalations.domain.errors import EscalationError
from peerline.infra import postgres
from peerline.infra.redis import redis_client
from peerline.obs import init as obs_init
from peerline.settings import settings

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
	events = container.default_event_stream()
	if settings.escalation_store == "postgres":
		pool = await postgres.init_pool()
		await escalations.configure_postgres(pool, redis_client if events is not None else None)
	else:
		escalations.configure(events=events)
	logger.info("escalation store ready", extra={"store": settings.escalation_store})
	try:
		yield
	finally:
		await postgres.close_pool()


def create_app() -> FastAPI:
	application = FastAPI(title="Peerline escalations", lifespan=lifespan)
	obs_init(application)
	application.include_router(escalations.router)

	@application.exception_handler(EscalationError)
	async def escalation_error_handler(request: Request, exc: EscalationError):  # type: ignore[override]
		request_id = getattr(request.state, "request_id", None)
		return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail, "request_id": request_id})

	@application.get("/health/live")
	async def live() -> dict[str, str]:
		return {"status": "ok"}

	@application.get("/metrics")
	async def metrics() -> Response:
		return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)

	return application


app = create_app()
