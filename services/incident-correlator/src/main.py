"""
TicketLink - Incident Correlator Main Application
=================================================

FastAPI application entry point for the incident correlator.

Responsibilities:
- Run the correlation loop on a fixed interval in the background
- Expose the active incidents and the audit trail
- Expose health and readiness endpoints
"""

import asyncio
import uuid
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from src.api.routes import router as api_router
from src.clients.zendesk import ZendeskTicketStore
from src.config import get_settings
from src.core.correlation_loop import CorrelationLoop
from src.core.incident_registry import IncidentRegistry

from shared.utils.logging import get_logger, set_correlation_id, setup_logging

settings = get_settings()

setup_logging(
    service_name=settings.service_name,
    log_level=settings.log_level,
    json_output=settings.log_json
)

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """
    Application lifespan manager.

    Startup builds the store, registry and loop and starts polling;
    shutdown cancels polling and closes the store client.
    """
    mode = "LIVE" if settings.live_mode else "DRY-RUN (read-only)"
    logger.info(
        f"Starting {settings.service_name} v{settings.service_version} in {mode} mode",
        extra={"version": settings.service_version, "live_mode": settings.live_mode}
    )

    if not settings.zendesk_configured():
        logger.warning("Zendesk credentials missing, cycles will fail until configured")

    store = ZendeskTicketStore.from_settings(settings)
    loop = CorrelationLoop(
        store,
        registry=IncidentRegistry(),
        candidate_window_minutes=settings.candidate_window_minutes,
        event_limit=settings.recent_event_limit,
    )
    app.state.correlation_loop = loop

    polling_task = None
    if settings.polling_enabled:
        polling_task = asyncio.create_task(loop.run_forever(settings.poll_interval_seconds))
        logger.info("Correlation polling task started")
    else:
        logger.info("Correlation polling is disabled")
    app.state.polling_task = polling_task

    yield

    logger.info("Shutting down incident correlator...")

    if polling_task:
        polling_task.cancel()
        try:
            await polling_task
        except asyncio.CancelledError:
            logger.info("Polling task cancelled")

    await store.close()


app = FastAPI(
    title="TicketLink - Incident Correlator",
    description="Links incoming support tickets to the open incident they belong to",
    version=settings.service_version,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def correlation_id_middleware(request: Request, call_next):
    """Extract or generate the correlation ID of a request."""
    correlation_id = request.headers.get("X-Correlation-ID")
    if not correlation_id:
        correlation_id = str(uuid.uuid4())

    set_correlation_id(correlation_id)
    response = await call_next(request)
    response.headers["X-Correlation-ID"] = correlation_id

    return response


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(
        f"Unhandled exception: {exc}",
        extra={"path": request.url.path, "error": str(exc)},
        exc_info=True
    )
    return JSONResponse(
        status_code=500,
        content={
            "error": "internal_server_error",
            "message": str(exc) if settings.debug else "An error occurred"
        }
    )


@app.get("/health", tags=["health"])
async def health_check():
    return {
        "status": "healthy",
        "service": settings.service_name,
        "version": settings.service_version
    }


@app.get("/ready", tags=["health"])
async def readiness_check(request: Request):
    loop = request.app.state.correlation_loop
    polling_task = request.app.state.polling_task
    return {
        "status": "ready",
        "service": settings.service_name,
        "live_mode": settings.live_mode,
        "polling_active": polling_task is not None and not polling_task.done(),
        "active_incidents": len(loop.registry),
        "cycles_completed": loop.cycles_completed,
        "cycles_failed": loop.cycles_failed,
    }


app.include_router(api_router, prefix="/api/v1")


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("src.main:app", host=settings.host, port=settings.port, reload=settings.debug)
