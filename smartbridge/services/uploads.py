"""Song and bridge file uploads into the project's object store.

Uploads land under ``storage/projects/<projectId>/`` next to the
project's other assets.  The ``producer_returns/`` subtree holds the
append-only snapshots and the Latest Pointer; only a Master Save writes
there.
"""
from __future__ import annotations

import logging

from smartbridge.storage.base import (
    DEFAULT_BINARY_CONTENT_TYPE,
    InvalidObjectKeyError,
    ObjectStore,
    PutResult,
    validate_key,
    validate_key_segment,
)

logger = logging.getLogger(__name__)

PROJECTS_PREFIX = "storage/projects"
RESERVED_SUBTREE = "producer_returns"


def upload_prefix(project_id: str) -> str:
    return f"{PROJECTS_PREFIX}/{project_id}/"


def check_upload_key(project_id: str, s3_key: str) -> str:
    """Return the validated key if ``project_id`` may upload to it.

    Raises:
        InvalidObjectKeyError: the key is outside the project's prefix or
            inside its ``producer_returns/`` subtree.
    """
    pid = validate_key_segment(project_id, "projectId")
    key = validate_key(s3_key)
    prefix = upload_prefix(pid)
    if not key.startswith(prefix):
        raise InvalidObjectKeyError(f"Upload key must start with {prefix}: {key}")
    if key[len(prefix):].split("/", 1)[0] == RESERVED_SUBTREE:
        raise InvalidObjectKeyError(f"Upload key is inside the reserved {RESERVED_SUBTREE}/ subtree: {key}")
    return key


def upload_object(
    store: ObjectStore,
    project_id: str,
    s3_key: str,
    body: bytes,
    content_type: str | None = None,
) -> PutResult:
    """Store an uploaded file under the caller-chosen key.

    Raises:
        ValueError: ``project_id`` or ``s3_key`` is blank.
        InvalidObjectKeyError: the key is not one this project may write.
    """
    if not str(project_id or "").strip():
        raise ValueError("projectId is required")
    if not str(s3_key or "").strip():
        raise ValueError("s3Key is required")
    key = check_upload_key(project_id, s3_key)
    result = store.put_bytes(key, body, content_type or DEFAULT_BINARY_CONTENT_TYPE)
    logger.info("Uploaded %d bytes for project %s to %s", len(body), project_id.strip(), key)
    return result
