"""
Publish flow: expose a snapshot through a public manifest and player page.

Publishing is pointer publication.  The snapshot itself is not copied;
``public/players/<shareId>/manifest.json`` names it, and a static
``index.html`` next to it fetches and shows the manifest.
"""
from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass
from typing import Optional

from smartbridge.config import settings
from smartbridge.contracts.json_types import PublishManifestDict
from smartbridge.core.timestamps import iso_timestamp, utc_now
from smartbridge.storage.base import HTML_CONTENT_TYPE, ObjectStore

logger = logging.getLogger(__name__)

MANIFEST_VERSION = 1
PUBLIC_PLAYERS_PREFIX = "public/players"


class PublishTargetMissingError(ValueError):
    """``projectId`` or ``snapshotKey`` missing from a publish request."""

    code = "PUBLISH_TARGET_MISSING"


class PublishSnapshotNotFoundError(LookupError):
    """The snapshot named by a publish request is not in the store."""

    code = "SNAPSHOT_NOT_FOUND"

    def __init__(self, snapshot_key: str) -> None:
        super().__init__(f"Snapshot not found: {snapshot_key}")
        self.snapshot_key = snapshot_key


@dataclass(frozen=True)
class PublishResult:
    project_id: str
    snapshot_key: str
    share_id: str
    public_url: str
    manifest_key: str
    index_key: str
    published_at: str


def generate_share_id() -> str:
    """Unguessable share id: 16 hex characters from ``secrets``."""
    return secrets.token_hex(8)


def build_manifest(project_id: str, snapshot_key: str, share_id: str, published_at: str) -> PublishManifestDict:
    return {
        "ok": True,
        "projectId": project_id,
        "snapshotKey": snapshot_key,
        "shareId": share_id,
        "publishedAt": published_at,
        "version": MANIFEST_VERSION,
    }


def render_index_html() -> str:
    """Static player page; loads ``./manifest.json`` relative to itself."""
    return """<!doctype html>
<html>
<head>
  <meta charset="utf-8" />
  <meta name="viewport" content="width=device-width,initial-scale=1" />
  <title>Mini-site</title>
  <style>
    body { font-family: system-ui, -apple-system, Segoe UI, Roboto, Arial; padding: 24px; }
    pre { background: #f5f5f5; padding: 12px; overflow: auto; }
  </style>
</head>
<body>
  <h1>Published Mini-site</h1>
  <p>Loading manifest&hellip;</p>
  <pre id="out"></pre>
  <script>
    fetch("./manifest.json", { cache: "no-store" })
      .then(function (r) { return r.json(); })
      .then(function (j) { document.getElementById("out").textContent = JSON.stringify(j, null, 2); })
      .catch(function (e) { document.getElementById("out").textContent = String(e); });
  </script>
</body>
</html>
"""


def public_url_for(key: str, base_url: Optional[str]) -> str:
    """Absolute URL under ``base_url``, or a root-relative path when unset."""
    base = str(base_url or "").strip().rstrip("/")
    if not base:
        logger.warning(
            "SMARTBRIDGE_PUBLIC_BASE_URL is not set; returning root-relative URL for %s", key
        )
        return f"/{key}"
    return f"{base}/{key}"


def publish(
    store: ObjectStore,
    project_id: str,
    snapshot_key: str,
    *,
    now: Optional[str] = None,
    share_id: Optional[str] = None,
    verify_snapshot: Optional[bool] = None,
    public_base_url: Optional[str] = None,
) -> PublishResult:
    """Write the manifest and player page for ``snapshot_key``.

    Raises:
        PublishTargetMissingError: ``project_id`` or ``snapshot_key`` is blank.
        PublishSnapshotNotFoundError: verification is on and the snapshot is absent.
    """
    pid = str(project_id or "").strip()
    snap_key = str(snapshot_key or "").strip()
    if not pid or not snap_key:
        raise PublishTargetMissingError("projectId and snapshotKey are required")

    verify = settings.publish_verify_snapshot if verify_snapshot is None else verify_snapshot
    if verify and not store.exists(snap_key):
        raise PublishSnapshotNotFoundError(snap_key)

    published_at = now or iso_timestamp(utc_now())
    sid = share_id or generate_share_id()
    prefix = f"{PUBLIC_PLAYERS_PREFIX}/{sid}"
    manifest_key = f"{prefix}/manifest.json"
    index_key = f"{prefix}/index.html"

    store.put_json(manifest_key, dict(build_manifest(pid, snap_key, sid, published_at)))
    store.put_bytes(index_key, render_index_html().encode("utf-8"), HTML_CONTENT_TYPE)

    base = public_base_url if public_base_url is not None else settings.public_base_url
    public_url = public_url_for(index_key, base)
    logger.info("Published project %s snapshot %s as share %s", pid, snap_key, sid)

    return PublishResult(
        project_id=pid,
        snapshot_key=snap_key,
        share_id=sid,
        public_url=public_url,
        manifest_key=manifest_key,
        index_key=index_key,
        published_at=published_at,
    )
