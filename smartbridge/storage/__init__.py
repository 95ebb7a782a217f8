"""Object storage backends and the process-wide store accessor."""
from __future__ import annotations

import logging

from smartbridge.config import Settings, settings
from smartbridge.storage.base import (
    HTML_CONTENT_TYPE,
    JSON_CONTENT_TYPE,
    InvalidObjectKeyError,
    ObjectDecodeError,
    ObjectExistsError,
    ObjectStore,
    PutResult,
    StorageError,
    StorageUnavailableError,
)
from smartbridge.storage.local import LocalObjectStore
from smartbridge.storage.s3 import S3ObjectStore

logger = logging.getLogger(__name__)

_store: ObjectStore | None = None


def create_object_store(cfg: Settings | None = None) -> ObjectStore:
    """Build the backend named by ``storage_backend``."""
    cfg = cfg or settings
    if cfg.storage_backend == "local":
        logger.info("Using local object store at %s", cfg.local_storage_dir)
        return LocalObjectStore(cfg.local_storage_dir)
    if not cfg.s3_bucket:
        logger.warning("SMARTBRIDGE_S3_BUCKET is not set; storage calls will fail with 503")
    return S3ObjectStore(
        cfg.s3_bucket,
        region=cfg.aws_region,
        endpoint_url=cfg.s3_endpoint_url,
        conditional_writes=cfg.s3_conditional_writes,
    )


def get_object_store() -> ObjectStore:
    """Return the process-wide ObjectStore singleton."""
    global _store
    if _store is None:
        _store = create_object_store()
    return _store


def reset_object_store() -> None:
    """Reset the singleton (for testing)."""
    global _store
    _store = None


__all__ = [
    "HTML_CONTENT_TYPE",
    "JSON_CONTENT_TYPE",
    "InvalidObjectKeyError",
    "LocalObjectStore",
    "ObjectDecodeError",
    "ObjectExistsError",
    "ObjectStore",
    "PutResult",
    "S3ObjectStore",
    "StorageError",
    "StorageUnavailableError",
    "create_object_store",
    "get_object_store",
    "reset_object_store",
]
