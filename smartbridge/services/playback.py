"""Playback URL resolution.

A playback URL is a time-boxed capability derived from a durable object
key.  It is handed to the player and never written back into a Project
Document; the key is what gets stored.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

from smartbridge.config import settings
from smartbridge.core.timestamps import iso_timestamp, utc_now
from smartbridge.storage.base import ObjectStore, validate_key

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PlaybackUrl:
    url: str
    expires_at: str
    expires_in: int


def is_http_url(value: str) -> bool:
    return value.startswith("http://") or value.startswith("https://")


def resolve_playback_url(
    store: ObjectStore,
    s3_key: str,
    *,
    expires_in: Optional[int] = None,
) -> PlaybackUrl:
    """Presign a read URL for ``s3_key``.

    Values that already are http(s) URLs are echoed back unchanged.

    Raises:
        ValueError: ``s3_key`` is blank or not a valid key.
        KeyError: no object exists at ``s3_key``.
    """
    key = str(s3_key or "").strip()
    if not key:
        raise ValueError("s3Key is required")
    ttl = expires_in or settings.presign_expiry_seconds
    expires_at = iso_timestamp(utc_now() + timedelta(seconds=ttl))

    if is_http_url(key):
        return PlaybackUrl(url=key, expires_at=expires_at, expires_in=ttl)

    key = validate_key(key)
    if not store.exists(key):
        raise KeyError(key)
    url = store.presign_get(key, ttl)
    logger.debug("Presigned playback URL for %s (%ds)", key, ttl)
    return PlaybackUrl(url=url, expires_at=expires_at, expires_in=ttl)
