"""
Project Document model for a mini-site release.

A Project Document is the whole nested JSON aggregate for one release:
catalog songs, album metadata, the song-to-song connections worksheet,
per-song credits/lyrics, the NFT-mix glue lines, and save/publish
bookkeeping.  Every page edits one top-level *section*; a Master Save
writes the whole document as an immutable snapshot.

Key concepts:
- Song: one of SONG_COUNT fixed catalog slots (1..N)
- Connection: an ordered (fromSlot, toSlot) bridge between two songs;
  a locked connection is frozen until explicitly unlocked
- SaveStatus: per-section ``{complete, masterSavedAt}``; ``complete`` is
  always derived from the section's data, never trusted from storage

Historical documents are tolerated: ``null`` or missing fields take their
empty defaults, unknown fields are preserved, and ephemeral capability
fields (signed playback URLs, blob URLs) are discarded on parse.
"""
from __future__ import annotations

import logging
from typing import Any, Literal, Mapping, Optional

from pydantic import Field, ValidationError, field_validator, model_validator

from smartbridge.config import DEFAULT_MIN_COMPLETE_WORKSHEETS, DEFAULT_SONG_COUNT
from smartbridge.core.timestamps import iso_timestamp
from smartbridge.models.base import DocumentModel, to_camel

logger = logging.getLogger(__name__)

SectionName = Literal["catalog", "album", "songs", "meta", "nftMix"]

# Fields that hold short-lived signed URLs or browser blob URLs.  They are
# re-derived from the durable key on every load and must never be stored.
EPHEMERAL_URL_FIELDS: frozenset[str] = frozenset(
    {"playbackUrl", "previewUrl", "bridgeUrl", "bridgePlaybackUrl"}
)


class InvalidProjectDocumentError(ValueError):
    """Raised when a document cannot be coerced to the minimal required shape."""

    code = "INVALID_PROJECT_DOCUMENT"


def _drop_ephemeral(data: Any) -> Any:
    if isinstance(data, dict):
        return {k: v for k, v in data.items() if k not in EPHEMERAL_URL_FIELDS}
    return data


class _Document(DocumentModel):
    """Treats an explicit ``null`` on a declared field as "use the default"."""

    @model_validator(mode="before")
    @classmethod
    def _drop_declared_nulls(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        known = set(cls.model_fields) | {to_camel(n) for n in cls.model_fields}
        return {k: v for k, v in data.items() if not (v is None and k in known)}


# ── Catalog ──────────────────────────────────────────────────────────────


class TitleJson(_Document):
    """Denormalized title mirror read by sections that do not load full songs."""

    slot: int = 0
    title: str = ""
    updated_at: str = ""
    source: str = "catalog"


class SongFile(_Document):
    """Durable pointer to an uploaded audio file. ``s3_key`` is the source of truth."""

    file_name: str = ""
    s3_key: str = ""

    @model_validator(mode="before")
    @classmethod
    def _strip_urls(cls, data: Any) -> Any:
        return _drop_ephemeral(data)


class SongFiles(_Document):
    album: SongFile = Field(default_factory=SongFile)
    a: SongFile = Field(default_factory=SongFile)
    b: SongFile = Field(default_factory=SongFile)


class Song(_Document):
    slot: int = Field(default=0, ge=0, description="Catalog slot 1..N (0 = unassigned)")
    title: str = ""
    title_json: Optional[TitleJson] = None
    files: SongFiles = Field(default_factory=SongFiles)


class Catalog(_Document):
    songs: list[Song] = Field(default_factory=list)


# ── Album ────────────────────────────────────────────────────────────────


class AlbumSongTitle(_Document):
    slot: int = Field(default=0, ge=0)
    title: str = ""
    title_json: Optional[TitleJson] = None


class AlbumLocks(_Document):
    playlist: bool = False
    meta: bool = False
    cover: bool = False


class Album(_Document):
    title: str = ""
    artist: str = ""
    release_date: str = ""
    song_titles: list[AlbumSongTitle] = Field(default_factory=list)
    playlist_order: list[int] = Field(default_factory=list)
    locks: AlbumLocks = Field(default_factory=AlbumLocks)


# ── Songs worksheet / NFT mix ────────────────────────────────────────────


class Connection(_Document):
    """A bridge between two catalog slots, keyed by the ordered pair."""

    from_slot: int = Field(..., ge=1)
    to_slot: int = Field(..., ge=1)
    bridge_file_name: str = ""
    bridge_store_key: str = ""
    locked: bool = False
    to_listen_choice: Literal["A", "B"] = "A"

    @model_validator(mode="before")
    @classmethod
    def _legacy_keys(cls, data: Any) -> Any:
        data = _drop_ephemeral(data)
        if isinstance(data, dict) and not data.get("bridgeStoreKey") and not data.get("bridge_store_key"):
            legacy = data.get("bridgeS3Key") or data.get("s3Key")
            if legacy:
                data = {k: v for k, v in data.items() if k not in ("bridgeS3Key", "s3Key")}
                data["bridgeStoreKey"] = legacy
        return data

    @field_validator("to_listen_choice", mode="before")
    @classmethod
    def _normalize_choice(cls, v: Any) -> str:
        return "B" if str(v or "A").strip().upper() == "B" else "A"

    @model_validator(mode="after")
    def _distinct_slots(self) -> "Connection":
        if self.from_slot == self.to_slot:
            raise ValueError(f"connection {self.from_slot}->{self.to_slot} joins a slot to itself")
        return self

    @property
    def pair(self) -> tuple[int, int]:
        return (self.from_slot, self.to_slot)


class SongsWorksheet(_Document):
    connections: list[Connection] = Field(default_factory=list)
    saved_at: str = ""


class NftMix(_Document):
    glue_lines: list[Connection] = Field(default_factory=list)


# ── Meta ─────────────────────────────────────────────────────────────────


class Credits(_Document):
    songwriter: list[str] = Field(default_factory=list)
    performer: list[str] = Field(default_factory=list)
    engineer: list[str] = Field(default_factory=list)
    producer: list[str] = Field(default_factory=list)


class MetaSong(_Document):
    slot: int = Field(default=0, ge=0)
    credits: Credits = Field(default_factory=Credits)
    lyrics: str = ""


class Meta(_Document):
    songs: list[MetaSong] = Field(default_factory=list)


# ── Bookkeeping ──────────────────────────────────────────────────────────


class SaveStatus(_Document):
    complete: bool = False
    master_saved_at: str = ""


class MasterSaveSections(_Document):
    catalog: SaveStatus = Field(default_factory=SaveStatus)
    album: SaveStatus = Field(default_factory=SaveStatus)
    songs: SaveStatus = Field(default_factory=SaveStatus)
    meta: SaveStatus = Field(default_factory=SaveStatus)
    nft_mix: SaveStatus = Field(default_factory=SaveStatus)


class MasterSaveBlock(_Document):
    last_master_save_at: str = ""
    sections: MasterSaveSections = Field(default_factory=MasterSaveSections)


class MasterBlock(_Document):
    """Project-level save view; kept in sync with ``masterSave`` by the snapshot builder."""

    is_master_saved: bool = False
    master_saved_at: str = ""
    last_snapshot_key: str = ""
    producer_return_received: bool = False
    producer_return_received_at: str = ""


class PublishBlock(_Document):
    last_share_id: str = ""
    last_public_url: str = ""
    manifest_key: str = ""
    published_at: str = ""
    snapshot_key: str = ""


class ProjectDocument(_Document):
    project_id: str = Field(..., min_length=1)
    created_at: str = ""
    updated_at: str = ""
    catalog: Catalog = Field(default_factory=Catalog)
    album: Album = Field(default_factory=Album)
    songs: SongsWorksheet = Field(default_factory=SongsWorksheet)
    meta: Meta = Field(default_factory=Meta)
    nft_mix: NftMix = Field(default_factory=NftMix)
    master_save: MasterSaveBlock = Field(default_factory=MasterSaveBlock)
    master: MasterBlock = Field(default_factory=MasterBlock)
    publish: PublishBlock = Field(default_factory=PublishBlock)


# ── Construction / coercion ──────────────────────────────────────────────


def default_project(project_id: str, *, now: str | None = None) -> ProjectDocument:
    """Minimal skeleton used when a project has no snapshot yet."""
    pid = str(project_id or "").strip()
    if not pid:
        raise InvalidProjectDocumentError("projectId is required")
    ts = now or iso_timestamp()
    return ProjectDocument(project_id=pid, created_at=ts, updated_at=ts)


def _summarize(e: ValidationError) -> str:
    parts = []
    for err in e.errors()[:5]:
        loc = ".".join(str(p) for p in err.get("loc", ()))
        parts.append(f"{loc}: {err.get('msg', 'invalid')}")
    return "; ".join(parts) or "invalid project document"


def coerce_project(
    raw: ProjectDocument | Mapping[str, Any] | Any,
    *,
    project_id: str | None = None,
) -> ProjectDocument:
    """Validate a decoded document, filling absent sections with empty defaults.

    Raises:
        InvalidProjectDocumentError: ``raw`` is not an object, a section has
            the wrong structural type, or its ``projectId`` disagrees with
            ``project_id``.
    """
    if isinstance(raw, ProjectDocument):
        data: dict[str, Any] = raw.model_dump(by_alias=True, mode="json")
    elif isinstance(raw, Mapping):
        data = dict(raw)
    else:
        raise InvalidProjectDocumentError(
            f"Project document must be a JSON object, got {type(raw).__name__}"
        )

    pid = str(project_id or "").strip()
    doc_pid = str(data.get("projectId") or data.get("project_id") or "").strip()
    if pid and doc_pid and doc_pid != pid:
        raise InvalidProjectDocumentError(
            f"projectId mismatch: document has {doc_pid!r}, expected {pid!r}"
        )
    data.pop("project_id", None)
    data["projectId"] = pid or doc_pid
    if not data["projectId"]:
        raise InvalidProjectDocumentError("projectId is required")

    try:
        return ProjectDocument.model_validate(data)
    except ValidationError as e:
        raise InvalidProjectDocumentError(_summarize(e)) from e


def to_wire(doc: ProjectDocument) -> dict[str, Any]:
    """camelCase, JSON-ready dict (the stored representation)."""
    return doc.model_dump(by_alias=True, mode="json")


# ── Slot normalization ───────────────────────────────────────────────────


def normalize_song_slots(songs: list[Song], song_count: int = DEFAULT_SONG_COUNT) -> list[Song]:
    """Exactly ``song_count`` songs in slot order 1..N.

    Existing values are kept per slot (first entry wins), out-of-range slots
    are dropped, entries without a slot take their 1-based position, and
    absent slots are filled with empty songs.
    """
    by_slot: dict[int, Song] = {}
    for position, song in enumerate(songs, start=1):
        slot = song.slot or position
        if not 1 <= slot <= song_count:
            logger.debug("Dropping catalog song outside 1..%d: slot=%s", song_count, slot)
            continue
        if slot in by_slot:
            logger.debug("Dropping duplicate catalog song for slot %d", slot)
            continue
        by_slot[slot] = song if song.slot == slot else song.model_copy(update={"slot": slot})
    return [by_slot.get(slot) or Song(slot=slot) for slot in range(1, song_count + 1)]


def normalize_meta_slots(songs: list[MetaSong], song_count: int = DEFAULT_SONG_COUNT) -> list[MetaSong]:
    """Same slot rule as ``normalize_song_slots`` for ``meta.songs``."""
    by_slot: dict[int, MetaSong] = {}
    for position, entry in enumerate(songs, start=1):
        slot = entry.slot or position
        if not 1 <= slot <= song_count or slot in by_slot:
            continue
        by_slot[slot] = entry if entry.slot == slot else entry.model_copy(update={"slot": slot})
    return [by_slot.get(slot) or MetaSong(slot=slot) for slot in range(1, song_count + 1)]


def normalize_connections(
    connections: list[Connection],
    song_count: int = DEFAULT_SONG_COUNT,
) -> list[Connection]:
    """The full ordered-pair grid, one connection per ``(from, to)`` with ``from != to``."""
    by_pair: dict[tuple[int, int], Connection] = {}
    for conn in connections:
        if conn.from_slot > song_count or conn.to_slot > song_count:
            logger.debug("Dropping connection outside 1..%d: %s", song_count, conn.pair)
            continue
        by_pair.setdefault(conn.pair, conn)
    return [
        by_pair.get((f, t)) or Connection(from_slot=f, to_slot=t)
        for f in range(1, song_count + 1)
        for t in range(1, song_count + 1)
        if f != t
    ]


# ── Derived completeness ─────────────────────────────────────────────────


def _filled(value: str) -> bool:
    return bool(str(value or "").strip())


def catalog_complete(doc: ProjectDocument, song_count: int = DEFAULT_SONG_COUNT) -> bool:
    songs = normalize_song_slots(doc.catalog.songs, song_count)
    return all(_filled(s.title) for s in songs)


def album_complete(doc: ProjectDocument) -> bool:
    album = doc.album
    return _filled(album.title) and _filled(album.artist) and _filled(album.release_date)


def worksheet_complete_map(doc: ProjectDocument, song_count: int = DEFAULT_SONG_COUNT) -> dict[int, bool]:
    """A worksheet (all connections from one slot) is complete when every connection is locked."""
    grid = normalize_connections(doc.songs.connections, song_count)
    result = {slot: True for slot in range(1, song_count + 1)}
    for conn in grid:
        if not conn.locked:
            result[conn.from_slot] = False
    return result


def songs_complete(
    doc: ProjectDocument,
    song_count: int = DEFAULT_SONG_COUNT,
    min_complete_worksheets: int = DEFAULT_MIN_COMPLETE_WORKSHEETS,
) -> bool:
    done = sum(1 for ok in worksheet_complete_map(doc, song_count).values() if ok)
    return done >= min(min_complete_worksheets, song_count)


def meta_complete(doc: ProjectDocument, song_count: int = DEFAULT_SONG_COUNT) -> bool:
    """Every titled catalog slot needs at least one songwriter credit."""
    titled = [s.slot for s in normalize_song_slots(doc.catalog.songs, song_count) if _filled(s.title)]
    if not titled:
        return False
    meta = {m.slot: m for m in normalize_meta_slots(doc.meta.songs, song_count)}
    return all(any(_filled(n) for n in meta[slot].credits.songwriter) for slot in titled)


def nft_mix_complete(doc: ProjectDocument) -> bool:
    lines = doc.nft_mix.glue_lines
    return bool(lines) and all(line.locked for line in lines)


def derive_section_completeness(
    doc: ProjectDocument,
    song_count: int = DEFAULT_SONG_COUNT,
    min_complete_worksheets: int = DEFAULT_MIN_COMPLETE_WORKSHEETS,
) -> dict[str, bool]:
    """``complete`` per section, keyed by the wire section name."""
    return {
        "catalog": catalog_complete(doc, song_count),
        "album": album_complete(doc),
        "songs": songs_complete(doc, song_count, min_complete_worksheets),
        "meta": meta_complete(doc, song_count),
        "nftMix": nft_mix_complete(doc),
    }
