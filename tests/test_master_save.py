"""Tests for the Master-Save Service (smartbridge/services/master_save.py).

Covers: master_save, get_latest, get_snapshot, write ordering, failure
isolation and same-millisecond key collisions.
"""
from __future__ import annotations

import pytest

from smartbridge.models.project import InvalidProjectDocumentError, to_wire
from smartbridge.services.master_save import (
    LatestSnapshot,
    NoLatestSnapshot,
    PointerWriteFailedError,
    SnapshotNotFoundError,
    SnapshotWriteFailedError,
    get_latest,
    get_snapshot,
    master_save,
)
from smartbridge.services.snapshot_builder import latest_key, snapshot_key
from smartbridge.storage.base import InvalidObjectKeyError

T1 = "2026-03-01T10:00:00.000Z"
T2 = "2026-03-01T10:05:00.000Z"
T3 = "2026-03-01T10:09:00.000Z"


def _one_song_project() -> dict:
    return {"projectId": "100001", "catalog": {"songs": [{"slot": 1, "title": "Test Song"}]}}


class TestMasterSave:

    def test_save_then_read_latest(self, store) -> None:
        result = master_save(store, "100001", _one_song_project(), now=T1)
        assert result.snapshot_key == snapshot_key("100001", T1)
        assert result.latest_key == latest_key("100001")

        latest = get_latest(store, "100001")
        assert isinstance(latest, LatestSnapshot)
        songs = latest.snapshot["project"]["catalog"]["songs"]
        assert songs[0]["title"] == "Test Song"
        assert len(songs) == 9

    def test_envelope_and_pointer_shape(self, store) -> None:
        result = master_save(store, "100001", _one_song_project(), now=T1)
        envelope = store.get_json(result.snapshot_key)
        assert envelope["projectId"] == "100001"
        assert envelope["createdAt"] == T1
        assert envelope["source"] == "minisite-master-save"
        assert envelope["project"]["projectId"] == "100001"
        assert store.get_json(result.latest_key) == {
            "projectId": "100001",
            "latestSnapshotKey": result.snapshot_key,
            "lastMasterSaveAt": T1,
        }

    def test_snapshot_written_before_pointer(self, flaky_store) -> None:
        master_save(flaky_store, "100001", _one_song_project(), now=T1)
        assert flaky_store.put_keys == [snapshot_key("100001", T1), latest_key("100001")]

    def test_blank_project_id_rejected(self, store) -> None:
        with pytest.raises(ValueError):
            master_save(store, "  ", {})

    def test_project_id_must_be_one_key_segment(self, flaky_store) -> None:
        for pid in ("..", "100001/../200002", "a\\b"):
            with pytest.raises(InvalidObjectKeyError):
                master_save(flaky_store, pid, {"projectId": pid}, now=T1)
        assert flaky_store.put_keys == []

    def test_invalid_document_writes_nothing(self, flaky_store) -> None:
        with pytest.raises(InvalidProjectDocumentError):
            master_save(flaky_store, "100001", {"projectId": "100001", "catalog": {"songs": 5}}, now=T1)
        assert flaky_store.put_keys == []

    def test_append_only_across_saves(self, store) -> None:
        keys = []
        raw_bytes = []
        for i, now in enumerate([T1, T2, T3]):
            project = {"projectId": "100001", "catalog": {"songs": [{"slot": 1, "title": f"Take {i}"}]}}
            result = master_save(store, "100001", project, now=now)
            keys.append(result.snapshot_key)
            raw_bytes.append(store.get_bytes(result.snapshot_key))
        assert len(set(keys)) == 3
        for key, original in zip(keys, raw_bytes):
            assert store.get_bytes(key) == original

    def test_pointer_matches_saved_document(self, store) -> None:
        result = master_save(store, "100001", _one_song_project(), now=T1)
        latest = get_latest(store, "100001")
        assert isinstance(latest, LatestSnapshot)
        assert to_wire(latest.project) == to_wire(result.project)
        assert latest.snapshot["project"] == to_wire(result.project)

    def test_same_millisecond_saves_never_overwrite(self, store) -> None:
        first = master_save(store, "100001", {"projectId": "100001", "album": {"title": "one"}}, now=T1)
        second = master_save(store, "100001", {"projectId": "100001", "album": {"title": "two"}}, now=T1)
        assert second.snapshot_key != first.snapshot_key
        assert second.snapshot_key.endswith("-1.json")
        assert store.get_json(first.snapshot_key)["project"]["album"]["title"] == "one"
        assert store.get_json(second.snapshot_key)["project"]["master"]["lastSnapshotKey"] == second.snapshot_key

        latest = get_latest(store, "100001")
        assert latest.snapshot_key == second.snapshot_key


class TestWriteFailures:

    def test_snapshot_failure_leaves_previous_pair_intact(self, flaky_store) -> None:
        first = master_save(flaky_store, "100001", _one_song_project(), now=T1)
        pointer_before = flaky_store.get_bytes(first.latest_key)

        flaky_store.fail_puts = lambda key: "/snapshots/" in key
        with pytest.raises(SnapshotWriteFailedError):
            master_save(flaky_store, "100001", {"projectId": "100001", "album": {"title": "x"}}, now=T2)

        assert flaky_store.get_bytes(first.latest_key) == pointer_before
        latest = get_latest(flaky_store, "100001")
        assert latest.snapshot_key == first.snapshot_key

    def test_pointer_failure_keeps_snapshot_readable(self, flaky_store) -> None:
        first = master_save(flaky_store, "100001", _one_song_project(), now=T1)

        flaky_store.fail_puts = lambda key: key.endswith("/latest.json")
        with pytest.raises(PointerWriteFailedError) as exc_info:
            master_save(
                flaky_store,
                "100001",
                {"projectId": "100001", "catalog": {"songs": [{"slot": 1, "title": "Second"}]}},
                now=T2,
            )
        orphan_key = exc_info.value.snapshot_key
        assert orphan_key == snapshot_key("100001", T2)

        orphan = get_snapshot(flaky_store, orphan_key)
        assert orphan is not None
        assert orphan["project"]["catalog"]["songs"][0]["title"] == "Second"

        latest = get_latest(flaky_store, "100001")
        assert isinstance(latest, LatestSnapshot)
        assert latest.snapshot_key == first.snapshot_key
        assert latest.project.catalog.songs[0].title == "Test Song"


class TestGetLatest:

    def test_unknown_project_has_no_latest(self, store) -> None:
        result = get_latest(store, "no-such-project")
        assert isinstance(result, NoLatestSnapshot)
        assert result.reason == "NO_LATEST"
        assert result.latest_key == latest_key("no-such-project")

    def test_pointer_without_key(self, store) -> None:
        store.put_json(latest_key("p1"), {"projectId": "p1"})
        result = get_latest(store, "p1")
        assert isinstance(result, NoLatestSnapshot)
        assert result.reason == "NO_LATEST_SNAPSHOT_KEY"

    def test_project_id_with_separator_rejected(self, store) -> None:
        with pytest.raises(InvalidObjectKeyError):
            get_latest(store, "100001/snapshots")

    def test_dangling_pointer_raises(self, store) -> None:
        store.put_json(latest_key("p1"), {"projectId": "p1", "latestSnapshotKey": "storage/missing.json"})
        with pytest.raises(SnapshotNotFoundError):
            get_latest(store, "p1")

    def test_legacy_pointer_and_envelope(self, store) -> None:
        store.put_json(
            "storage/projects/p1/producer_returns/snapshots/old.json",
            {"projectId": "p1", "createdAt": T1, "data": {"projectId": "p1", "album": {"title": "Legacy"}}},
        )
        store.put_json(
            latest_key("p1"),
            {"projectId": "p1", "snapshotKey": "storage/projects/p1/producer_returns/snapshots/old.json"},
        )
        latest = get_latest(store, "p1")
        assert isinstance(latest, LatestSnapshot)
        assert latest.project.album.title == "Legacy"
        assert latest.latest["latestSnapshotKey"].endswith("old.json")

    def test_get_snapshot_absent(self, store) -> None:
        assert get_snapshot(store, "storage/nope.json") is None
