"""Python client for the SmartBridge Minisite API and its local project cache."""
from __future__ import annotations

from smartbridge.client.api_client import MiniSiteClient, MiniSiteClientError
from smartbridge.client.local_cache import ProjectLocalCache

__all__ = ["MiniSiteClient", "MiniSiteClientError", "ProjectLocalCache"]
