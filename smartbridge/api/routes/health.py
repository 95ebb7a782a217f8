"""Health check endpoints."""
from __future__ import annotations

import asyncio
from typing import Required
from typing_extensions import TypedDict

from fastapi import APIRouter, Depends

from smartbridge.config import settings
from smartbridge.storage import ObjectStore, get_object_store

router = APIRouter()


class HealthDependencyDict(TypedDict, total=False):
    """Status entry for one external dependency in the full health check."""

    status: Required[str]
    backend: str
    bucket: str


class FullHealthCheckDict(TypedDict):
    """Response shape for ``GET /health/full``."""

    ok: bool
    status: str             # "ok" | "degraded"
    service: str
    version: str
    dependencies: dict[str, HealthDependencyDict]


@router.get("/health")
async def health_check() -> dict[str, object]:
    """Basic health check."""
    return {
        "ok": True,
        "service": settings.app_name,
        "version": settings.app_version,
    }


@router.get("/health/full")
async def full_health_check(store: ObjectStore = Depends(get_object_store)) -> FullHealthCheckDict:
    """Full health check including the object store."""
    storage_ok = await asyncio.to_thread(store.check_reachable)
    storage: HealthDependencyDict = {
        "status": "ok" if storage_ok else "unavailable",
        "backend": settings.storage_backend,
    }
    if settings.storage_backend == "s3":
        storage["bucket"] = settings.s3_bucket or ""
    return {
        "ok": storage_ok,
        "status": "ok" if storage_ok else "degraded",
        "service": settings.app_name,
        "version": settings.app_version,
        "dependencies": {"storage": storage},
    }
