"""FastAPI application for the reservation caller."""
from __future__ import annotations

import base64
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse, Response

from .core.config import settings
from .dependencies import get_call_service, get_dispatcher
from .routers import calls as calls_router
from .routers import sms as sms_router
from .routers import telephony as telephony_router
from .schemas.calls import HealthResponse
from .services.calls import CallService

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_: FastAPI) -> AsyncIterator[None]:
    if settings.has_database_config:
        from .db.session import get_engine, init_models

        await init_models(get_engine())
        logger.info("Database schema ready")
    if not settings.has_twilio_config:
        logger.warning("Twilio is not configured; calls run in simulation mode")
    yield
    await get_dispatcher().drain()


app = FastAPI(title="Reservation Caller API", version="0.1.0", lifespan=lifespan)

if settings.cors_allow_origins:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allow_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

app.include_router(calls_router.router, prefix="/api", tags=["calls"])
app.include_router(telephony_router.router, prefix="/api/telephony", tags=["telephony"])
app.include_router(sms_router.router, prefix="/api", tags=["sms"])

FAVICON_BYTES = base64.b64decode(
    "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAQAAAC1HAwCAAAAC0lEQVR4nGMAAQAABQABDQottAAAAABJRU5ErkJggg=="
)


@app.get("/api/health", response_model=HealthResponse, tags=["meta"])
async def health(service: CallService = Depends(get_call_service)) -> HealthResponse:
    """Liveness probe; also fails calls that stopped progressing."""

    stale_sweep = await service.sweep()
    return HealthResponse(
        status="ok",
        telephony_configured=service.telephony_configured,
        stale_sweep=stale_sweep,
    )


@app.head("/api/health", tags=["meta"])
async def health_head() -> Response:
    """Allow HEAD for uptime monitors that only need the status code."""

    return Response(status_code=200)


@app.get("/robots.txt", response_class=PlainTextResponse, include_in_schema=False)
async def robots() -> PlainTextResponse:
    """Serve a minimal robots.txt to avoid 404 noise."""

    return PlainTextResponse("User-agent: *\nDisallow:")


@app.get("/favicon.ico", include_in_schema=False)
async def favicon() -> Response:
    """Return a tiny placeholder favicon."""

    return Response(content=FAVICON_BYTES, media_type="image/png")
