"""API route modules."""
from __future__ import annotations

from smartbridge.api.routes import health, master_save, playback, publish, uploads

__all__ = ["health", "master_save", "playback", "publish", "uploads"]
