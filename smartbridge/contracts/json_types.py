"""Canonical type definitions for JSON data stored by the master-save protocol.

This module is the **single source of truth for every named wire shape**
written to object storage.  Import from here; do not redefine shapes ad hoc.

## When to use which type

Use ``JSONValue`` / ``JSONObject`` only when the shape is genuinely unknown
(e.g. a historical Project Document before ``coerce_project`` validates it).
For every known structure, use the named TypedDict below.

Do **not** use ``JSONValue`` or ``JSONObject`` in Pydantic ``BaseModel``
fields: Pydantic v2 cannot resolve the recursive forward references and
raises ``RecursionError`` at schema generation time.

## Entity catalog

JSON primitives:
  JSONScalar           : str | int | float | bool | None
  JSONValue            : recursive JSON value
  JSONObject           : dict[str, JSONValue]

Stored objects:
  SnapshotEnvelope     : immutable snapshot object (one per master save)
  LatestPointerDict    : the single mutable pointer object per project
  PublishManifestDict  : public/players/<shareId>/manifest.json
"""
from __future__ import annotations

from typing_extensions import NotRequired, TypedDict

JSONScalar = str | int | float | bool | None

# Recursive: for function signatures and TypedDicts only, never Pydantic fields.
JSONValue = str | int | float | bool | None | list["JSONValue"] | dict[str, "JSONValue"]

JSONObject = dict[str, JSONValue]


class SnapshotEnvelope(TypedDict):
    """Wire shape of ``storage/projects/<id>/producer_returns/snapshots/<ts>.json``.

    ``project`` holds the normalized Project Document (camelCase).
    """

    projectId: str
    createdAt: str
    source: str
    project: JSONObject


class LatestPointerDict(TypedDict):
    """Wire shape of ``storage/projects/<id>/producer_returns/latest.json``.

    Older pointers written by the first backend variant name the key
    ``snapshotKey``; readers accept both.
    """

    projectId: str
    latestSnapshotKey: str
    lastMasterSaveAt: str
    snapshotKey: NotRequired[str]


class PublishManifestDict(TypedDict):
    """Wire shape of ``public/players/<shareId>/manifest.json``."""

    ok: bool
    projectId: str
    snapshotKey: str
    shareId: str
    publishedAt: str
    version: int
