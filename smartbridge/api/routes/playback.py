"""Playback URL endpoint. Returns presigned URLs only; no audio streams through FastAPI."""
from __future__ import annotations

import asyncio
import logging

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse

from smartbridge.api.errors import NO_STORE, error_response, service_error_response
from smartbridge.services import playback as playback_service
from smartbridge.storage import ObjectStore, get_object_store

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get(
    "/playback-url",
    response_model=None,
    responses={
        200: {"description": "Time-boxed playback URL"},
        400: {"description": "Missing or invalid s3Key"},
        404: {"description": "No object at s3Key"},
        503: {"description": "Object storage unavailable"},
    },
)
async def get_playback_url(
    s3_key: str = Query("", alias="s3Key"),
    store: ObjectStore = Depends(get_object_store),
) -> JSONResponse:
    """Resolve a stored key to a short-lived playback URL.

    The URL must not be persisted; clients re-resolve it on every load.
    """
    try:
        playback = await asyncio.to_thread(playback_service.resolve_playback_url, store, s3_key)
    except KeyError:
        return error_response(404, "S3_OBJECT_NOT_FOUND", f"No object at {s3_key}", s3Key=s3_key)
    except ValueError as e:
        return error_response(400, "MISSING_S3KEY", str(e))
    except Exception as e:
        return service_error_response(e, "Playback URL")
    return JSONResponse(
        content={
            "ok": True,
            "url": playback.url,
            "expiresSeconds": playback.expires_in,
            "expiresAt": playback.expires_at,
        },
        headers=NO_STORE,
    )
