"""Multipart upload endpoint for song and bridge audio files."""

import asyncio
import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Query, Request, UploadFile
from fastapi.responses import JSONResponse

from smartbridge.api.errors import NO_STORE, error_response, service_error_response
from smartbridge.api.limiter import limiter
from smartbridge.config import settings
from smartbridge.services import uploads as upload_service
from smartbridge.storage import ObjectStore, get_object_store
from smartbridge.storage.base import InvalidObjectKeyError

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post(
    "/upload-to-s3",
    response_model=None,
    responses={
        200: {"description": "File stored"},
        400: {"description": "Missing projectId, s3Key or file, or a key outside the project"},
        503: {"description": "Object storage unavailable"},
    },
)
@limiter.limit(settings.master_save_rate_limit)
async def upload_to_s3(
    request: Request,
    project_id: str = Query("", alias="projectId"),
    s3_key: str = Form("", alias="s3Key"),
    file: Optional[UploadFile] = File(None),
    store: ObjectStore = Depends(get_object_store),
) -> JSONResponse:
    """Store an uploaded file at the key chosen by the client."""
    if not project_id.strip():
        return error_response(400, "MISSING_PROJECT_ID", "projectId query parameter is required")
    if not s3_key.strip():
        return error_response(400, "MISSING_S3KEY", "s3Key form field is required")
    if file is None:
        return error_response(400, "NO_FILE", "file form field is required")

    body = await file.read()
    try:
        result = await asyncio.to_thread(
            upload_service.upload_object, store, project_id, s3_key, body, file.content_type
        )
    except InvalidObjectKeyError as e:
        return error_response(400, e.code, str(e))
    except ValueError as e:
        return error_response(400, "MISSING_S3KEY", str(e))
    except Exception as e:
        return service_error_response(e, "Upload")
    return JSONResponse(
        content={"ok": True, "s3Key": result.key, "etag": result.etag},
        headers=NO_STORE,
    )
