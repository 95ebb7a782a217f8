"""MiniSiteClient: async HTTP client for the master-save and publish API.

Every call has a client-enforced timeout.  On timeout the call fails with
``MiniSiteClientError(code="TIMEOUT")`` and nothing is written to the
local cache; the server either completed the write or it did not.
"""
from __future__ import annotations

import logging
from typing import Any, Mapping, Optional

import httpx

from smartbridge.client.local_cache import ProjectLocalCache
from smartbridge.config import settings
from smartbridge.services.section_patch import apply_section_patch

logger = logging.getLogger(__name__)


class MiniSiteClientError(Exception):
    """Non-2xx response, ``ok: false`` body, timeout or transport failure."""

    def __init__(self, message: str, *, code: str = "REQUEST_FAILED", status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.code = code
        self.status_code = status_code


class MiniSiteClient:
    """Talks to one SmartBridge Minisite API and mirrors saves into a local cache."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        *,
        cache: Optional[ProjectLocalCache] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.base_url = (base_url or settings.api_base_url).rstrip("/")
        self.cache = cache
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=httpx.Timeout(timeout or float(settings.client_timeout_seconds)),
            transport=transport,
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "MiniSiteClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    async def _send(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        try:
            resp = await self._client.request(method, path, **kwargs)
        except httpx.TimeoutException as e:
            logger.warning("%s %s timed out", method, path)
            raise MiniSiteClientError(f"{method} {path} timed out", code="TIMEOUT") from e
        except httpx.HTTPError as e:
            raise MiniSiteClientError(f"{method} {path} failed: {e}", code="TRANSPORT_ERROR") from e
        return resp

    @staticmethod
    def _decode(method: str, path: str, resp: httpx.Response) -> dict[str, Any]:
        try:
            data = resp.json()
        except ValueError:
            data = None
        if not isinstance(data, dict):
            raise MiniSiteClientError(
                f"{method} {path} returned HTTP {resp.status_code} with a non-JSON body",
                status_code=resp.status_code,
            )
        if resp.status_code >= 400 or data.get("ok") is False:
            raise MiniSiteClientError(
                str(data.get("message") or data.get("error") or f"HTTP {resp.status_code}"),
                code=str(data.get("error") or "REQUEST_FAILED"),
                status_code=resp.status_code,
            )
        return data

    async def _request(self, method: str, path: str, **kwargs: Any) -> dict[str, Any]:
        resp = await self._send(method, path, **kwargs)
        return self._decode(method, path, resp)

    async def health(self) -> dict[str, Any]:
        return await self._request("GET", "/api/health")

    async def master_save(
        self,
        project_id: str,
        project: Optional[Mapping[str, Any]] = None,
        *,
        section: Optional[str] = None,
    ) -> dict[str, Any]:
        """POST a full document; defaults to the cached copy of ``project_id``."""
        if project is None:
            if self.cache is None:
                raise MiniSiteClientError("No project given and no local cache configured", code="MISSING_PROJECT")
            project = self.cache.ensure_project(project_id)
        body: dict[str, Any] = {"projectId": project_id, "project": dict(project)}
        if section:
            body["section"] = section
        data = await self._request("POST", "/api/master-save", json=body)
        if self.cache is not None:
            self.cache.record_master_save(project_id, data)
        return data

    async def get_latest(self, project_id: str) -> Optional[dict[str, Any]]:
        """Latest response body, or ``None`` when the project has no save yet."""
        path = f"/api/master-save/latest/{project_id}"
        resp = await self._send("GET", path)
        if resp.status_code == 404:
            return None
        return self._decode("GET", path, resp)

    async def patch_section(
        self,
        project_id: str,
        section: str,
        patch: Mapping[str, Any],
    ) -> dict[str, Any]:
        """Read latest, merge ``patch`` into ``section``, and master-save.

        Mirrors what each browser page does.  There is no version check, so a
        save from another client between the read and the write is lost.
        """
        latest = await self.get_latest(project_id)
        if latest is None:
            base: Mapping[str, Any] = {"projectId": project_id}
        else:
            snapshot = latest.get("snapshot") or {}
            base = snapshot.get("project") or snapshot.get("data") or {"projectId": project_id}
        next_project = apply_section_patch(base, section, patch)
        return await self.master_save(project_id, next_project, section=section)

    async def publish(self, project_id: str, snapshot_key: Optional[str] = None) -> dict[str, Any]:
        """Publish ``snapshot_key`` (default: the cache's last master-save key)."""
        key = snapshot_key
        if not key and self.cache is not None:
            key = self.cache.last_master_save_key(project_id)
        data = await self._request(
            "POST", "/api/publish-minisite", json={"projectId": project_id, "snapshotKey": key or ""}
        )
        if self.cache is not None:
            self.cache.record_publish(project_id, data)
        return data

    async def playback_url(self, s3_key: str) -> str:
        data = await self._request("GET", "/api/playback-url", params={"s3Key": s3_key})
        return str(data["url"])
