"""Core helpers with no service or storage dependencies."""
from __future__ import annotations

from smartbridge.core.timestamps import iso_timestamp, key_safe_timestamp, utc_now

__all__ = ["iso_timestamp", "key_safe_timestamp", "utc_now"]
