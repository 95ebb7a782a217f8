"""
SmartBridge Minisite API

FastAPI application for master-saving, reading back and publishing
mini-site project snapshots.
"""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from collections.abc import AsyncIterator
from typing import Awaitable, Callable

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from smartbridge.config import settings
from smartbridge.api.limiter import limiter
from smartbridge.api.routes import health, master_save, playback, publish, uploads


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add security headers to all responses."""

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        response = await call_next(request)

        if "X-Frame-Options" not in response.headers:
            response.headers["X-Frame-Options"] = "DENY"
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        # Playback needs audio, nothing else.
        response.headers["Permissions-Policy"] = (
            "camera=(), geolocation=(), microphone=(), payment=(), usb=()"
        )

        return response

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan handler."""
    logger.info(f"Starting {settings.app_name} v{settings.app_version}")
    logger.info(f"Storage backend: {settings.storage_backend}")
    if settings.storage_backend == "s3":
        logger.info(f"S3 bucket: {settings.s3_bucket or '(unset)'} ({settings.aws_region})")
    else:
        logger.info(f"Local storage dir: {settings.local_storage_dir}")
    if not settings.public_base_url:
        logger.warning(
            "SMARTBRIDGE_PUBLIC_BASE_URL is not set; publish will return root-relative URLs"
        )

    yield

    logger.info("Shutting down...")


app = FastAPI(
    title="SmartBridge Minisite API",
    version=settings.app_version,
    description="Master save, latest snapshot and publish endpoints for producer mini-sites.",
    lifespan=lifespan,
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
)

# Adapter: FastAPI expects (Request, Exception) but slowapi's handler
# takes (Request, RateLimitExceeded).
def _handle_rate_limit(request: Request, exc: Exception) -> Response:
    if isinstance(exc, RateLimitExceeded):
        return _rate_limit_exceeded_handler(request, exc)
    raise exc

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _handle_rate_limit)

# Security headers middleware (added first, runs last)
app.add_middleware(SecurityHeadersMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health.router, prefix="/api", tags=["health"])
app.include_router(master_save.router, prefix="/api", tags=["master-save"])
app.include_router(publish.router, prefix="/api", tags=["publish"])
app.include_router(playback.router, prefix="/api", tags=["playback"])
app.include_router(uploads.router, prefix="/api", tags=["uploads"])


@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint with service info."""
    return {
        "service": settings.app_name,
        "version": settings.app_version,
        "health": "/api/health",
    }
