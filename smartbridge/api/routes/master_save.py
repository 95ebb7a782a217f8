"""
Master-save endpoints.

Writes go through the Master-Save Service (snapshot first, pointer
second).  All handlers run the synchronous storage calls in a worker
thread so a slow bucket never blocks the event loop.
"""

import asyncio
import logging

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse

from smartbridge.api.errors import NO_STORE, error_response, service_error_response
from smartbridge.api.limiter import limiter
from smartbridge.config import settings
from smartbridge.models.requests import MasterSaveRequest, SectionPatchRequest
from smartbridge.services import master_save as master_save_service
from smartbridge.services import section_patch as section_patch_service
from smartbridge.services.master_save import MasterSaveResult, NoLatestSnapshot
from smartbridge.storage import ObjectStore, get_object_store
from smartbridge.storage.base import InvalidObjectKeyError

router = APIRouter()
logger = logging.getLogger(__name__)


def _saved(result: MasterSaveResult) -> JSONResponse:
    return JSONResponse(
        content={
            "ok": True,
            "snapshotKey": result.snapshot_key,
            "latestKey": result.latest_key,
            "savedAt": result.saved_at,
        },
        headers=NO_STORE,
    )


@router.post(
    "/master-save",
    response_model=None,
    responses={
        200: {"description": "Snapshot and pointer written"},
        400: {"description": "Missing projectId or project"},
        422: {"description": "Project document could not be coerced"},
        500: {"description": "Snapshot or pointer write failed"},
        503: {"description": "Object storage unavailable"},
    },
)
@limiter.limit(settings.master_save_rate_limit)
async def master_save(
    request: Request,
    body: MasterSaveRequest,
    store: ObjectStore = Depends(get_object_store),
) -> JSONResponse:
    """Write a full project snapshot and move the latest pointer to it."""
    pid = body.project_id.strip()
    if not pid:
        return error_response(400, "MISSING_PROJECT_ID", "projectId is required")
    if body.project is None:
        return error_response(400, "MISSING_PROJECT", "project is required")
    try:
        result = await asyncio.to_thread(
            master_save_service.master_save, store, pid, body.project, section=body.section
        )
    except Exception as e:
        return service_error_response(e, "Master save")
    return _saved(result)


@router.get("/master-save/latest/{project_id}", response_model=None)
async def get_latest(
    project_id: str,
    store: ObjectStore = Depends(get_object_store),
) -> JSONResponse:
    """Latest pointer plus the snapshot envelope it names.

    404 ``NO_LATEST`` / ``NO_LATEST_SNAPSHOT_KEY`` when nothing was saved yet.
    """
    pid = project_id.strip()
    if not pid:
        return error_response(400, "MISSING_PROJECT_ID", "projectId is required")
    try:
        latest = await asyncio.to_thread(master_save_service.get_latest, store, pid)
    except Exception as e:
        return service_error_response(e, "Latest snapshot read")
    if isinstance(latest, NoLatestSnapshot):
        return error_response(
            404, latest.reason, f"No master save for project {pid}", latestKey=latest.latest_key
        )
    return JSONResponse(
        content={
            "ok": True,
            "latestKey": latest.latest_key,
            "latest": dict(latest.latest),
            "snapshot": latest.snapshot,
        },
        headers=NO_STORE,
    )


@router.get("/master-save/snapshot", response_model=None)
async def get_snapshot(
    key: str = Query(..., description="Snapshot key returned by a previous master save"),
    store: ObjectStore = Depends(get_object_store),
) -> JSONResponse:
    """Read a snapshot directly by key (recovery path when the pointer lags)."""
    try:
        snapshot = await asyncio.to_thread(master_save_service.get_snapshot, store, key)
    except InvalidObjectKeyError as e:
        return error_response(400, e.code, str(e))
    except Exception as e:
        return service_error_response(e, "Snapshot read")
    if snapshot is None:
        return error_response(404, "SNAPSHOT_NOT_FOUND", f"Snapshot not found: {key}", snapshotKey=key)
    return JSONResponse(content={"ok": True, "snapshotKey": key, "snapshot": snapshot}, headers=NO_STORE)


@router.post(
    "/master-save/{project_id}/sections/{section}",
    response_model=None,
    responses={
        200: {"description": "Section merged and master-saved"},
        400: {"description": "Unknown section"},
        503: {"description": "Object storage unavailable"},
    },
)
@limiter.limit(settings.master_save_rate_limit)
async def patch_section(
    request: Request,
    project_id: str,
    section: str,
    body: SectionPatchRequest,
    store: ObjectStore = Depends(get_object_store),
) -> JSONResponse:
    """Merge ``patch`` into one section of the latest snapshot and save.

    Last writer wins: a concurrent save between this request's read and
    write is overwritten.
    """
    pid = project_id.strip()
    if not pid:
        return error_response(400, "MISSING_PROJECT_ID", "projectId is required")
    try:
        result = await asyncio.to_thread(
            section_patch_service.patch_section, store, pid, section, body.patch
        )
    except Exception as e:
        return service_error_response(e, f"Patch {section}")
    logger.info("Patched section %s of project %s -> %s", section, pid, result.snapshot_key)
    return _saved(result)
