"""Publish endpoint: expose a snapshot under ``public/players/<shareId>/``."""

import asyncio
import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from smartbridge.api.errors import NO_STORE, service_error_response
from smartbridge.api.limiter import limiter
from smartbridge.config import settings
from smartbridge.models.requests import PublishRequest
from smartbridge.services import publish as publish_service
from smartbridge.storage import ObjectStore, get_object_store

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post(
    "/publish-minisite",
    response_model=None,
    responses={
        200: {"description": "Manifest and player page written"},
        400: {"description": "projectId or snapshotKey missing"},
        404: {"description": "Snapshot key does not exist"},
        503: {"description": "Object storage unavailable"},
    },
)
@limiter.limit(settings.master_save_rate_limit)
async def publish_minisite(
    request: Request,
    body: PublishRequest,
    store: ObjectStore = Depends(get_object_store),
) -> JSONResponse:
    """Publish a snapshot and return its public URL."""
    try:
        result = await asyncio.to_thread(
            publish_service.publish, store, body.project_id, body.snapshot_key
        )
    except Exception as e:
        return service_error_response(e, "Publish")
    return JSONResponse(
        content={
            "ok": True,
            "projectId": result.project_id,
            "snapshotKey": result.snapshot_key,
            "shareId": result.share_id,
            "publicUrl": result.public_url,
            "manifestKey": result.manifest_key,
            "publishedAt": result.published_at,
        },
        headers=NO_STORE,
    )
