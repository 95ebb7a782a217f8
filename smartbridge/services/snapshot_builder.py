"""
Snapshot Builder: turns an edited Project Document into the normalized
document stored by a Master Save.

The builder is pure.  Given the same ``project`` and ``now`` it produces
the same output, which is what lets tests compare two builds directly.

Normalization rules:
- ``catalog.songs`` padded to SONG_COUNT; every ``titleJson`` regenerated
  from ``title`` (title is authoritative, titleJson is a mirror whose
  ``updatedAt`` only moves when the title does)
- ``album.songTitles`` seeded from the catalog only while empty
- ``meta.songs`` padded, connection grid filled
- ``masterSave.sections[*].complete`` recomputed from data; only the
  writing section's ``masterSavedAt`` moves
- ``master`` mirrors the save (``isMasterSaved``, ``lastSnapshotKey``)
"""
from __future__ import annotations

from typing import Any, Mapping, Optional

from smartbridge.config import settings
from smartbridge.core.timestamps import iso_timestamp, key_safe_timestamp, utc_now
from smartbridge.models.project import (
    AlbumSongTitle,
    InvalidProjectDocumentError,
    MasterSaveSections,
    ProjectDocument,
    SaveStatus,
    SectionName,
    TitleJson,
    coerce_project,
    derive_section_completeness,
    normalize_connections,
    normalize_meta_slots,
    normalize_song_slots,
)

SNAPSHOT_SOURCE = "minisite-master-save"

# Wire section name -> MasterSaveSections attribute
_SECTION_ATTRS: dict[str, str] = {
    "catalog": "catalog",
    "album": "album",
    "songs": "songs",
    "meta": "meta",
    "nftMix": "nft_mix",
}


def project_prefix(project_id: str) -> str:
    return f"storage/projects/{project_id}/producer_returns"


def snapshot_key(project_id: str, now: str) -> str:
    """Key of the immutable snapshot written at ``now`` (an ISO timestamp)."""
    return f"{project_prefix(project_id)}/snapshots/{key_safe_timestamp(now)}.json"


def latest_key(project_id: str) -> str:
    """Key of the project's mutable Latest Pointer."""
    return f"{project_prefix(project_id)}/latest.json"


def _mirror_title(slot: int, title: str, current: Optional[TitleJson], now: str) -> TitleJson:
    """Title mirror for one slot; keeps its timestamp while slot and title are unchanged."""
    if (
        current is not None
        and current.slot == slot
        and current.title == title
        and current.source == "catalog"
        and current.updated_at
    ):
        return current
    return TitleJson(slot=slot, title=title, updated_at=now, source="catalog")


def build_snapshot(
    project_id: str,
    project: ProjectDocument | Mapping[str, Any],
    *,
    section: Optional[SectionName] = None,
    now: Optional[str] = None,
    song_count: Optional[int] = None,
    min_complete_worksheets: Optional[int] = None,
) -> ProjectDocument:
    """Normalize ``project`` for storage as the snapshot taken at ``now``.

    Args:
        project_id: Owner of the snapshot; must match the document's own id.
        project: Edited document (model or decoded JSON).
        section: Section whose save triggered this snapshot. ``None`` means a
            whole-project save and stamps every section.
        now: ISO timestamp of the save; defaults to the current time.

    Raises:
        InvalidProjectDocumentError: the document cannot be coerced.
    """
    pid = str(project_id or "").strip()
    if not pid:
        raise InvalidProjectDocumentError("projectId is required")
    if section is not None and section not in _SECTION_ATTRS:
        raise InvalidProjectDocumentError(f"Unknown section: {section}")

    now = now or iso_timestamp(utc_now())
    n = song_count or settings.song_count
    min_ws = min_complete_worksheets or settings.songs_min_complete_worksheets

    doc = coerce_project(project, project_id=pid).model_copy(deep=True)
    doc.created_at = doc.created_at or now

    songs = normalize_song_slots(doc.catalog.songs, n)
    for song in songs:
        song.title_json = _mirror_title(song.slot, song.title, song.title_json, now)
    doc.catalog.songs = songs

    if not doc.album.song_titles:
        doc.album.song_titles = [
            AlbumSongTitle(slot=s.slot, title=s.title, title_json=s.title_json.model_copy() if s.title_json else None)
            for s in songs
        ]
    if not doc.album.playlist_order:
        doc.album.playlist_order = list(range(1, n + 1))

    doc.meta.songs = normalize_meta_slots(doc.meta.songs, n)
    doc.songs.connections = normalize_connections(doc.songs.connections, n)

    doc.updated_at = now
    completeness = derive_section_completeness(doc, n, min_ws)
    prior = doc.master_save.sections
    stamped: dict[str, SaveStatus] = {}
    for wire_name, attr in _SECTION_ATTRS.items():
        previous: SaveStatus = getattr(prior, attr)
        writing = section is None or section == wire_name
        stamped[attr] = SaveStatus(
            complete=completeness[wire_name],
            master_saved_at=now if writing else previous.master_saved_at,
        )
    doc.master_save.sections = MasterSaveSections(**stamped)
    doc.master_save.last_master_save_at = now

    doc.master.is_master_saved = True
    doc.master.master_saved_at = now
    doc.master.last_snapshot_key = snapshot_key(pid, now)

    return doc
