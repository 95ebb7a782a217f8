"""Wire contracts shared across storage, services and routes."""
from __future__ import annotations

from smartbridge.contracts.json_types import (
    JSONObject,
    JSONScalar,
    JSONValue,
    LatestPointerDict,
    PublishManifestDict,
    SnapshotEnvelope,
)

__all__ = [
    "JSONObject",
    "JSONScalar",
    "JSONValue",
    "LatestPointerDict",
    "PublishManifestDict",
    "SnapshotEnvelope",
]
