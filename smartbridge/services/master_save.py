"""
Master-Save Service.

A Master Save writes two objects, in order:

1. an immutable snapshot envelope at
   ``storage/projects/<id>/producer_returns/snapshots/<ts>.json``
2. the Latest Pointer at ``storage/projects/<id>/producer_returns/latest.json``

The pointer is only written after the snapshot put has returned, so a
reader can never follow a pointer to a snapshot that does not exist yet.
If the snapshot write fails the pointer is left untouched; if the pointer
write fails the snapshot still exists and can be read by key.

Snapshots are written write-once.  Two saves landing in the same
millisecond get ``-1``, ``-2``... suffixes rather than overwriting each
other.  There is no version check across saves: the last pointer write
wins.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Mapping, Optional, Union

from smartbridge.contracts.json_types import JSONObject, LatestPointerDict, SnapshotEnvelope
from smartbridge.core.timestamps import iso_timestamp, utc_now
from smartbridge.models.project import ProjectDocument, SectionName, coerce_project, to_wire
from smartbridge.services.snapshot_builder import (
    SNAPSHOT_SOURCE,
    build_snapshot,
    latest_key,
    snapshot_key,
)
from smartbridge.storage.base import ObjectExistsError, ObjectStore, StorageError, validate_key_segment

logger = logging.getLogger(__name__)

MAX_KEY_COLLISION_RETRIES = 5


class MasterSaveError(Exception):
    """Base class for master-save failures."""

    code = "MASTER_SAVE_FAILED"


class SnapshotWriteFailedError(MasterSaveError):
    """The snapshot could not be written; the Latest Pointer was not touched."""

    code = "SNAPSHOT_WRITE_FAILED"


class PointerWriteFailedError(MasterSaveError):
    """The snapshot exists at ``snapshot_key`` but the Latest Pointer was not updated."""

    code = "POINTER_WRITE_FAILED"

    def __init__(self, message: str, snapshot_key: str) -> None:
        super().__init__(message)
        self.snapshot_key = snapshot_key


class SnapshotNotFoundError(MasterSaveError):
    """The Latest Pointer references a snapshot that is not in the store."""

    code = "SNAPSHOT_NOT_FOUND"

    def __init__(self, snapshot_key: str) -> None:
        super().__init__(f"Snapshot not found: {snapshot_key}")
        self.snapshot_key = snapshot_key


@dataclass(frozen=True)
class MasterSaveResult:
    project_id: str
    snapshot_key: str
    latest_key: str
    saved_at: str
    project: ProjectDocument


@dataclass(frozen=True)
class LatestSnapshot:
    """Pointer, raw envelope and parsed document for a project's latest save."""

    latest_key: str
    latest: LatestPointerDict
    snapshot: JSONObject
    project: ProjectDocument

    @property
    def snapshot_key(self) -> str:
        return pointer_snapshot_key(self.latest)


@dataclass(frozen=True)
class NoLatestSnapshot:
    """Expected "nothing saved yet" result; callers start from defaults."""

    project_id: str
    latest_key: str
    reason: str = "NO_LATEST"


LatestResult = Union[LatestSnapshot, NoLatestSnapshot]


def _require_project_id(project_id: str) -> str:
    if not str(project_id or "").strip():
        raise ValueError("projectId is required")
    return validate_key_segment(project_id, "projectId")


def pointer_snapshot_key(pointer: Mapping[str, Any]) -> str:
    """Snapshot key named by a pointer; older pointers use ``snapshotKey``."""
    return str(pointer.get("latestSnapshotKey") or pointer.get("snapshotKey") or "").strip()


def envelope_project(envelope: Mapping[str, Any]) -> Any:
    """Document held by a snapshot envelope; older envelopes use ``data``."""
    if "project" in envelope:
        return envelope["project"]
    return envelope.get("data")


def _write_snapshot(
    store: ObjectStore,
    project_id: str,
    doc: ProjectDocument,
    now: str,
) -> str:
    base_key = snapshot_key(project_id, now)
    for attempt in range(MAX_KEY_COLLISION_RETRIES + 1):
        key = base_key if attempt == 0 else base_key[: -len(".json")] + f"-{attempt}.json"
        doc.master.last_snapshot_key = key
        envelope: SnapshotEnvelope = {
            "projectId": project_id,
            "createdAt": now,
            "source": SNAPSHOT_SOURCE,
            "project": to_wire(doc),
        }
        try:
            store.put_json(key, dict(envelope), if_absent=True)
            return key
        except ObjectExistsError:
            logger.info("Snapshot key %s already exists; retrying with suffix", key)
            continue
        except StorageError as e:
            logger.error("Snapshot write failed for project %s at %s: %s", project_id, key, e)
            raise SnapshotWriteFailedError(f"Snapshot write failed: {e}") from e
    raise SnapshotWriteFailedError(
        f"Snapshot key {base_key} collided {MAX_KEY_COLLISION_RETRIES + 1} times"
    )


def master_save(
    store: ObjectStore,
    project_id: str,
    project: ProjectDocument | Mapping[str, Any],
    *,
    section: Optional[SectionName] = None,
    now: Optional[str] = None,
) -> MasterSaveResult:
    """Build a snapshot of ``project`` and make it the project's latest.

    Raises:
        ValueError: ``project_id`` is blank.
        InvalidObjectKeyError: ``project_id`` is not a single key segment.
        InvalidProjectDocumentError: ``project`` cannot be coerced.
        SnapshotWriteFailedError: nothing was written.
        PointerWriteFailedError: the snapshot was written, the pointer was not.
    """
    pid = _require_project_id(project_id)
    now = now or iso_timestamp(utc_now())
    doc = build_snapshot(pid, project, section=section, now=now)

    snap_key = _write_snapshot(store, pid, doc, now)
    logger.info("Master save: wrote snapshot %s", snap_key)

    ptr_key = latest_key(pid)
    pointer: LatestPointerDict = {
        "projectId": pid,
        "latestSnapshotKey": snap_key,
        "lastMasterSaveAt": now,
    }
    try:
        store.put_json(ptr_key, dict(pointer))
    except StorageError as e:
        logger.error("Pointer write failed for project %s (snapshot %s kept): %s", pid, snap_key, e)
        raise PointerWriteFailedError(f"Latest pointer write failed: {e}", snapshot_key=snap_key) from e
    logger.info("Master save: pointer %s -> %s", ptr_key, snap_key)

    return MasterSaveResult(
        project_id=pid,
        snapshot_key=snap_key,
        latest_key=ptr_key,
        saved_at=now,
        project=doc,
    )


def get_snapshot(store: ObjectStore, key: str) -> Optional[JSONObject]:
    """Read a snapshot envelope directly by key (``None`` when absent)."""
    value = store.get_json(key)
    if value is None:
        return None
    if not isinstance(value, dict):
        logger.warning("Snapshot %s is not a JSON object", key)
        return None
    return value


def get_latest(store: ObjectStore, project_id: str) -> LatestResult:
    """Resolve the Latest Pointer and the snapshot it names.

    Returns ``NoLatestSnapshot`` when nothing has been saved yet.

    Raises:
        ValueError: ``project_id`` is blank.
        InvalidObjectKeyError: ``project_id`` is not a single key segment.
        SnapshotNotFoundError: the pointer names a missing snapshot.
        InvalidProjectDocumentError: the stored document cannot be coerced.
    """
    pid = _require_project_id(project_id)
    ptr_key = latest_key(pid)

    pointer = store.get_json(ptr_key)
    if not isinstance(pointer, dict):
        logger.debug("No latest pointer for project %s", pid)
        return NoLatestSnapshot(project_id=pid, latest_key=ptr_key, reason="NO_LATEST")

    snap_key = pointer_snapshot_key(pointer)
    if not snap_key:
        logger.debug("Latest pointer for project %s has no snapshot key", pid)
        return NoLatestSnapshot(project_id=pid, latest_key=ptr_key, reason="NO_LATEST_SNAPSHOT_KEY")

    envelope = get_snapshot(store, snap_key)
    if envelope is None:
        raise SnapshotNotFoundError(snap_key)

    doc = coerce_project(envelope_project(envelope), project_id=pid)
    latest: LatestPointerDict = {
        "projectId": str(pointer.get("projectId") or pid),
        "latestSnapshotKey": snap_key,
        "lastMasterSaveAt": str(pointer.get("lastMasterSaveAt") or ""),
    }
    return LatestSnapshot(latest_key=ptr_key, latest=latest, snapshot=envelope, project=doc)
