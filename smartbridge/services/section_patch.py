"""
Section patch flow: read latest, merge one section, master-save.

Every page edits exactly one section.  The flow is an unsynchronized
read-modify-write with no version token, so two writers racing on the
same project resolve as last-writer-wins.  Anything stronger (an ETag
check, per-section sub-documents) belongs behind ``patch_section``.

Merge rule, applied to every section: objects merge key by key, scalars
and arrays replace.  Locked connections are the one exception: a pair
that was locked before the patch keeps its bridge and listen choice
unless the patch explicitly unlocks it.
"""
from __future__ import annotations

import copy
import logging
from typing import Any, Mapping, Optional

from smartbridge.models.project import ProjectDocument, default_project, to_wire
from smartbridge.services.master_save import (
    MasterSaveResult,
    NoLatestSnapshot,
    get_latest,
    master_save,
)
from smartbridge.storage.base import ObjectStore

logger = logging.getLogger(__name__)

SECTIONS: tuple[str, ...] = ("catalog", "album", "songs", "meta", "nftMix")

# Section -> list field holding (fromSlot, toSlot) connections
_CONNECTION_LISTS: dict[str, str] = {
    "songs": "connections",
    "nftMix": "glueLines",
}

_LOCKED_FIELDS: tuple[str, ...] = ("bridgeFileName", "bridgeStoreKey", "toListenChoice", "locked")


class UnknownSectionError(ValueError):
    code = "UNKNOWN_SECTION"

    def __init__(self, section: str) -> None:
        super().__init__(f"Unknown section {section!r}; expected one of {', '.join(SECTIONS)}")
        self.section = section


def deep_merge(base: Any, patch: Any) -> Any:
    """Merge ``patch`` onto ``base`` without mutating either.

    Mappings merge recursively; any other patch value (scalar, list, None)
    replaces the base value wholesale.
    """
    if not isinstance(base, Mapping) or not isinstance(patch, Mapping):
        return copy.deepcopy(patch)
    out = copy.deepcopy(dict(base))
    for key, value in patch.items():
        if key in out and isinstance(out[key], Mapping) and isinstance(value, Mapping):
            out[key] = deep_merge(out[key], value)
        else:
            out[key] = copy.deepcopy(value)
    return out


def _pair(entry: Mapping[str, Any]) -> Optional[tuple[int, int]]:
    try:
        return (int(entry.get("fromSlot")), int(entry.get("toSlot")))
    except (TypeError, ValueError):
        return None


def _legacy_store_key(entry: Mapping[str, Any]) -> Any:
    return entry.get("bridgeStoreKey") or entry.get("bridgeS3Key") or entry.get("s3Key") or ""


def enforce_connection_locks(
    previous: Any,
    merged: Any,
    *,
    explicit_unlocks: frozenset[tuple[int, int]] = frozenset(),
) -> Any:
    """Restore locked connections that a patch tried to change.

    ``previous`` and ``merged`` are connection lists in wire form.  A pair
    locked in ``previous`` keeps its bridge fields unless its key is in
    ``explicit_unlocks``.  A locked pair missing from ``merged`` is carried
    over unchanged; leaving a row out never unlocks it.
    """
    if merged is None:
        merged = []
    if not isinstance(previous, list) or not isinstance(merged, list):
        return merged

    locked: dict[tuple[int, int], Mapping[str, Any]] = {}
    for entry in previous:
        if isinstance(entry, Mapping) and entry.get("locked") is True:
            pair = _pair(entry)
            if pair is not None:
                locked.setdefault(pair, entry)

    out: list[Any] = []
    for entry in merged:
        pair = _pair(entry) if isinstance(entry, Mapping) else None
        prior = locked.get(pair) if pair is not None else None
        if prior is None or pair in explicit_unlocks:
            out.append(entry)
            continue
        restored = dict(entry)
        changed = False
        for field in _LOCKED_FIELDS:
            prior_value = _legacy_store_key(prior) if field == "bridgeStoreKey" else prior.get(field)
            current = _legacy_store_key(entry) if field == "bridgeStoreKey" else entry.get(field)
            if current != prior_value:
                changed = True
            restored[field] = prior_value
        restored.pop("bridgeS3Key", None)
        restored.pop("s3Key", None)
        if changed:
            logger.warning("Ignoring edit to locked connection %s->%s", pair[0], pair[1])
        out.append(restored)

    present = {_pair(entry) for entry in merged if isinstance(entry, Mapping)}
    for pair, prior in locked.items():
        if pair not in present and pair not in explicit_unlocks:
            logger.warning("Keeping locked connection %s->%s omitted by patch", pair[0], pair[1])
            out.append(copy.deepcopy(dict(prior)))
    return out


def _explicit_unlocks(patch_list: Any) -> frozenset[tuple[int, int]]:
    unlocks = set()
    if isinstance(patch_list, list):
        for entry in patch_list:
            if isinstance(entry, Mapping) and entry.get("locked") is False:
                pair = _pair(entry)
                if pair is not None:
                    unlocks.add(pair)
    return frozenset(unlocks)


def apply_section_patch(
    project: ProjectDocument | Mapping[str, Any],
    section: str,
    patch: Mapping[str, Any],
) -> dict[str, Any]:
    """Return a new wire-form document with ``patch`` merged into ``section``.

    Other sections are carried over untouched.

    Raises:
        UnknownSectionError: ``section`` is not an editable section.
    """
    if section not in SECTIONS:
        raise UnknownSectionError(section)
    base = to_wire(project) if isinstance(project, ProjectDocument) else copy.deepcopy(dict(project))

    current = base.get(section)
    if not isinstance(current, Mapping):
        current = {}
    merged = deep_merge(current, dict(patch or {}))

    list_field = _CONNECTION_LISTS.get(section)
    if list_field and list_field in (patch or {}):
        merged[list_field] = enforce_connection_locks(
            current.get(list_field),
            merged.get(list_field),
            explicit_unlocks=_explicit_unlocks(patch[list_field]),
        )

    base[section] = merged
    return base


def patch_section(
    store: ObjectStore,
    project_id: str,
    section: str,
    patch: Mapping[str, Any],
    *,
    now: Optional[str] = None,
) -> MasterSaveResult:
    """Read the latest snapshot, patch one section, and master-save the result.

    Starts from the default skeleton when the project has no snapshot yet.
    """
    if section not in SECTIONS:
        raise UnknownSectionError(section)
    current = get_latest(store, project_id)
    if isinstance(current, NoLatestSnapshot):
        logger.info("No latest snapshot for %s; patching %s onto a new project", current.project_id, section)
        base: ProjectDocument = default_project(current.project_id, now=now)
    else:
        base = current.project
    next_project = apply_section_patch(base, section, patch)
    return master_save(store, project_id, next_project, section=section, now=now)  # type: ignore[arg-type]
