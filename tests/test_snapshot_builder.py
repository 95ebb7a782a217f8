"""Tests for the Snapshot Builder (smartbridge/services/snapshot_builder.py)."""
from __future__ import annotations

import pytest

from smartbridge.core.timestamps import iso_timestamp, key_safe_timestamp
from smartbridge.models.project import InvalidProjectDocumentError, to_wire
from smartbridge.services.snapshot_builder import build_snapshot, latest_key, snapshot_key

T1 = "2026-03-01T10:00:00.000Z"
T2 = "2026-03-02T11:30:15.250Z"


def _project(**sections) -> dict:
    return {"projectId": "100001", **sections}


class TestKeys:

    def test_key_safe_timestamp(self) -> None:
        assert key_safe_timestamp("2026-03-01T10:00:00.000Z") == "2026-03-01T10-00-00-000Z"

    def test_iso_timestamp_shape(self) -> None:
        from datetime import datetime, timezone

        dt = datetime(2026, 3, 1, 10, 0, 0, 123456, tzinfo=timezone.utc)
        assert iso_timestamp(dt) == "2026-03-01T10:00:00.123Z"

    def test_snapshot_and_latest_keys(self) -> None:
        assert (
            snapshot_key("100001", T1)
            == "storage/projects/100001/producer_returns/snapshots/2026-03-01T10-00-00-000Z.json"
        )
        assert latest_key("100001") == "storage/projects/100001/producer_returns/latest.json"


class TestBuildSnapshot:

    def test_title_json_regenerated_from_title(self) -> None:
        raw = _project(
            catalog={
                "songs": [
                    {"slot": 1, "title": "New Title", "titleJson": {"slot": 1, "title": "Stale", "source": "x"}}
                ]
            }
        )
        doc = build_snapshot("100001", raw, now=T1)
        tj = doc.catalog.songs[0].title_json
        assert tj is not None
        assert (tj.slot, tj.title, tj.updated_at, tj.source) == (1, "New Title", T1, "catalog")
        assert len(doc.catalog.songs) == 9
        assert doc.catalog.songs[8].title_json.title == ""

    def test_title_json_timestamp_kept_for_unchanged_title(self) -> None:
        first = to_wire(build_snapshot("100001", _project(catalog={"songs": [{"slot": 1, "title": "One"}]}), now=T1))
        second = build_snapshot("100001", first, now=T2)
        assert second.catalog.songs[0].title_json.updated_at == T1
        assert second.catalog.songs[1].title_json.updated_at == T1

    def test_title_json_timestamp_moves_with_title(self) -> None:
        first = to_wire(build_snapshot("100001", _project(catalog={"songs": [{"slot": 1, "title": "One"}]}), now=T1))
        first["catalog"]["songs"][0]["title"] = "Renamed"
        second = build_snapshot("100001", first, now=T2)
        tj = second.catalog.songs[0].title_json
        assert (tj.title, tj.updated_at) == ("Renamed", T2)
        assert second.catalog.songs[1].title_json.updated_at == T1

    def test_album_titles_seeded_when_empty(self) -> None:
        doc = build_snapshot("100001", _project(catalog={"songs": [{"slot": 1, "title": "One"}]}), now=T1)
        assert len(doc.album.song_titles) == 9
        assert doc.album.song_titles[0].title == "One"
        assert doc.album.playlist_order == list(range(1, 10))

    def test_album_titles_never_overwritten(self) -> None:
        raw = _project(
            catalog={"songs": [{"slot": 1, "title": "Catalog Title"}]},
            album={"songTitles": [{"slot": 1, "title": "Producer Title"}], "playlistOrder": [3, 1, 2]},
        )
        doc = build_snapshot("100001", raw, now=T1)
        assert [t.title for t in doc.album.song_titles] == ["Producer Title"]
        assert doc.album.playlist_order == [3, 1, 2]

    def test_stamps_writing_section_only(self) -> None:
        raw = _project(
            masterSave={
                "sections": {
                    "catalog": {"complete": True, "masterSavedAt": "2025-12-01T00:00:00.000Z"},
                    "album": {"complete": False, "masterSavedAt": "2025-12-02T00:00:00.000Z"},
                }
            }
        )
        doc = build_snapshot("100001", raw, section="meta", now=T1)
        sections = to_wire(doc)["masterSave"]["sections"]
        assert sections["meta"]["masterSavedAt"] == T1
        assert sections["catalog"]["masterSavedAt"] == "2025-12-01T00:00:00.000Z"
        assert sections["album"]["masterSavedAt"] == "2025-12-02T00:00:00.000Z"
        assert sections["nftMix"]["masterSavedAt"] == ""
        # Completeness comes from the data, not the stored flag.
        assert sections["catalog"]["complete"] is False

    def test_whole_project_save_stamps_every_section(self) -> None:
        doc = build_snapshot("100001", _project(), now=T1)
        sections = to_wire(doc)["masterSave"]["sections"]
        assert {s["masterSavedAt"] for s in sections.values()} == {T1}

    def test_master_block_mirrors_save(self) -> None:
        raw = _project(master={"producerReturnReceived": True, "producerReturnReceivedAt": "2026-02-01T00:00:00.000Z"})
        doc = build_snapshot("100001", raw, now=T1)
        assert doc.master.is_master_saved is True
        assert doc.master.master_saved_at == T1
        assert doc.master.last_snapshot_key == snapshot_key("100001", T1)
        assert doc.master.producer_return_received is True
        assert doc.master.producer_return_received_at == "2026-02-01T00:00:00.000Z"
        assert doc.master_save.last_master_save_at == T1
        assert doc.updated_at == T1

    def test_created_at_kept(self) -> None:
        doc = build_snapshot("100001", _project(createdAt="2025-01-01T00:00:00.000Z"), now=T1)
        assert doc.created_at == "2025-01-01T00:00:00.000Z"
        assert build_snapshot("100001", _project(), now=T1).created_at == T1

    def test_connection_grid_filled(self) -> None:
        doc = build_snapshot("100001", _project(), now=T1)
        assert len(doc.songs.connections) == 9 * 8

    def test_input_not_mutated(self) -> None:
        raw = _project(catalog={"songs": [{"slot": 1, "title": "One"}]})
        build_snapshot("100001", raw, now=T1)
        assert raw == _project(catalog={"songs": [{"slot": 1, "title": "One"}]})

    def test_deterministic(self) -> None:
        raw = _project(catalog={"songs": [{"slot": 2, "title": "Two"}]})
        assert to_wire(build_snapshot("100001", raw, now=T1)) == to_wire(build_snapshot("100001", raw, now=T1))

    def test_idempotent_normalization(self) -> None:
        raw = _project(
            catalog={"songs": [{"slot": 1, "title": "One"}]},
            meta={"songs": [{"slot": 1, "credits": {"songwriter": ["Jane Doe"]}}]},
        )
        first = to_wire(build_snapshot("100001", raw, now=T1))
        second = to_wire(build_snapshot("100001", first, now=T2))
        # Re-stamp the second build's timestamps and key with the first's.
        second_restamped = _restamp(second, T2, T1)
        assert second_restamped == first

    def test_rejects_mismatched_project_id(self) -> None:
        with pytest.raises(InvalidProjectDocumentError):
            build_snapshot("100002", _project(), now=T1)

    def test_rejects_unknown_section(self) -> None:
        with pytest.raises(InvalidProjectDocumentError):
            build_snapshot("100001", _project(), section="cover", now=T1)  # type: ignore[arg-type]


def _restamp(value, old: str, new: str):
    if isinstance(value, dict):
        return {k: _restamp(v, old, new) for k, v in value.items()}
    if isinstance(value, list):
        return [_restamp(v, old, new) for v in value]
    if isinstance(value, str):
        return value.replace(old, new).replace(key_safe_timestamp(old), key_safe_timestamp(new))
    return value
