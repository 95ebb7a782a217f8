"""Translate service exceptions into ``{ok: false, error, message}`` responses."""
from __future__ import annotations

import logging
from typing import Any

from fastapi.responses import JSONResponse

from smartbridge.models.project import InvalidProjectDocumentError
from smartbridge.services.master_save import (
    PointerWriteFailedError,
    SnapshotNotFoundError,
    SnapshotWriteFailedError,
)
from smartbridge.services.publish import PublishSnapshotNotFoundError, PublishTargetMissingError
from smartbridge.services.section_patch import UnknownSectionError
from smartbridge.storage.base import InvalidObjectKeyError, ObjectDecodeError, StorageUnavailableError

logger = logging.getLogger(__name__)

NO_STORE = {"Cache-Control": "no-store"}


def error_response(status_code: int, code: str, message: str, **extra: Any) -> JSONResponse:
    content: dict[str, Any] = {"ok": False, "error": code, "message": message}
    content.update(extra)
    return JSONResponse(status_code=status_code, content=content, headers=NO_STORE)


def service_error_response(exc: Exception, action: str) -> JSONResponse:
    """Map an exception raised by a service call to its HTTP response.

    Must be called from inside the ``except`` block so unexpected errors
    are logged with their traceback.
    """
    if isinstance(exc, InvalidProjectDocumentError):
        return error_response(422, exc.code, str(exc))
    if isinstance(exc, InvalidObjectKeyError):
        return error_response(400, exc.code, str(exc))
    if isinstance(exc, UnknownSectionError):
        return error_response(400, exc.code, str(exc))
    if isinstance(exc, PublishTargetMissingError):
        return error_response(400, exc.code, str(exc))
    if isinstance(exc, (SnapshotNotFoundError, PublishSnapshotNotFoundError)):
        return error_response(404, exc.code, str(exc), snapshotKey=exc.snapshot_key)
    if isinstance(exc, StorageUnavailableError):
        logger.warning("%s: storage unavailable: %s", action, exc)
        return error_response(503, exc.code, "Object storage is unavailable.")
    if isinstance(exc, PointerWriteFailedError):
        return error_response(500, exc.code, str(exc), snapshotKey=exc.snapshot_key)
    if isinstance(exc, SnapshotWriteFailedError):
        return error_response(500, exc.code, str(exc))
    if isinstance(exc, ObjectDecodeError):
        logger.error("%s: %s", action, exc)
        return error_response(500, exc.code, str(exc))
    logger.exception("%s failed: %s", action, exc)
    return error_response(500, "INTERNAL_ERROR", f"{action} failed.")
