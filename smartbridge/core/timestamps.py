"""Timestamp helpers shared by the document model and the save/publish services.

Stored timestamps use the browser's ``Date.prototype.toISOString()`` shape
(``2026-01-02T03:04:05.678Z``) so documents written by the front end and by
this service compare and sort the same way.
"""
from __future__ import annotations

from datetime import datetime, timezone


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def iso_timestamp(dt: datetime | None = None) -> str:
    """Format ``dt`` (default: now) as a millisecond-precision UTC ISO string ending in ``Z``."""
    dt = dt or utc_now()
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    dt = dt.astimezone(timezone.utc)
    return dt.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def key_safe_timestamp(iso: str) -> str:
    """Make an ISO timestamp safe for object keys (``:`` and ``.`` become ``-``)."""
    return iso.replace(":", "-").replace(".", "-")
