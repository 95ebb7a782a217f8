"""Tests for the object store backends (smartbridge/storage).

Covers: LocalObjectStore put/get/exists/write-once/key validation,
S3ObjectStore against a mocked boto3 client, create_object_store.
"""
from __future__ import annotations

import io
import json
from unittest.mock import MagicMock, patch

import pytest
from botocore.exceptions import ClientError, EndpointConnectionError, NoCredentialsError

from smartbridge.storage import (
    InvalidObjectKeyError,
    LocalObjectStore,
    ObjectDecodeError,
    ObjectExistsError,
    S3ObjectStore,
    StorageUnavailableError,
    create_object_store,
    get_object_store,
    reset_object_store,
)
from smartbridge.storage.base import validate_key


def _make_client_error(code: str, operation: str = "GetObject") -> ClientError:
    return ClientError(
        error_response={"Error": {"Code": code, "Message": "test"}},
        operation_name=operation,
    )


# ---------------------------------------------------------------------------
# validate_key
# ---------------------------------------------------------------------------


class TestValidateKey:

    def test_strips_whitespace(self) -> None:
        assert validate_key("  storage/a.json ") == "storage/a.json"

    @pytest.mark.parametrize("key", ["", "   ", "/abs/key.json", "a/../b.json", "a//b.json", "a\\b.json", "./a.json"])
    def test_rejects_unusable_keys(self, key: str) -> None:
        with pytest.raises(InvalidObjectKeyError):
            validate_key(key)

    def test_invalid_key_is_a_value_error(self) -> None:
        with pytest.raises(ValueError):
            validate_key("")


# ---------------------------------------------------------------------------
# LocalObjectStore
# ---------------------------------------------------------------------------


class TestLocalObjectStore:

    def test_missing_object_is_absent(self, store: LocalObjectStore) -> None:
        assert store.get_json("storage/projects/1/latest.json") is None
        assert store.get_bytes("storage/projects/1/latest.json") is None
        assert store.exists("storage/projects/1/latest.json") is False

    def test_json_round_trip_uses_two_space_indent(self, store: LocalObjectStore) -> None:
        store.put_json("a/b.json", {"projectId": "1", "title": "Café"})
        assert store.get_json("a/b.json") == {"projectId": "1", "title": "Café"}
        raw = (store.root / "a" / "b.json").read_text(encoding="utf-8")
        assert raw.startswith('{\n  "projectId"')
        assert "Café" in raw

    def test_put_overwrites_whole_object(self, store: LocalObjectStore) -> None:
        store.put_json("k.json", {"a": 1, "b": 2})
        store.put_json("k.json", {"c": 3})
        assert store.get_json("k.json") == {"c": 3}

    def test_put_returns_md5_etag(self, store: LocalObjectStore) -> None:
        result = store.put_bytes("audio/song.mp3", b"abc", "audio/mpeg")
        assert result.key == "audio/song.mp3"
        assert result.etag == "900150983cd24fb0d6963f7d28e17f72"

    def test_if_absent_refuses_existing_key(self, store: LocalObjectStore) -> None:
        store.put_json("snap.json", {"v": 1}, if_absent=True)
        with pytest.raises(ObjectExistsError) as exc_info:
            store.put_json("snap.json", {"v": 2}, if_absent=True)
        assert exc_info.value.key == "snap.json"
        assert store.get_json("snap.json") == {"v": 1}

    def test_no_temp_files_left_behind(self, store: LocalObjectStore) -> None:
        store.put_json("d/x.json", {"v": 1})
        with pytest.raises(ObjectExistsError):
            store.put_json("d/x.json", {"v": 2}, if_absent=True)
        assert [p.name for p in (store.root / "d").iterdir()] == ["x.json"]

    def test_corrupt_json_raises_decode_error(self, store: LocalObjectStore) -> None:
        store.put_bytes("bad.json", b"{not json")
        with pytest.raises(ObjectDecodeError):
            store.get_json("bad.json")

    def test_rejects_escaping_key(self, store: LocalObjectStore) -> None:
        with pytest.raises(InvalidObjectKeyError):
            store.put_json("../outside.json", {})

    def test_presign_returns_file_uri(self, store: LocalObjectStore) -> None:
        store.put_bytes("a.mp3", b"x")
        assert store.presign_get("a.mp3", 60).startswith("file://")

    def test_check_reachable_creates_root(self, store: LocalObjectStore) -> None:
        assert store.check_reachable() is True
        assert store.root.is_dir()


# ---------------------------------------------------------------------------
# S3ObjectStore
# ---------------------------------------------------------------------------


def _s3(mock_client: MagicMock, *, conditional_writes: bool = True, bucket: str = "test-bucket") -> S3ObjectStore:
    return S3ObjectStore(bucket, region="us-east-1", conditional_writes=conditional_writes, client=mock_client)


class TestS3ObjectStore:

    def test_put_json_sends_no_store_json(self) -> None:
        mock_client = MagicMock()
        mock_client.put_object.return_value = {"ETag": '"abc123"'}
        result = _s3(mock_client).put_json("storage/p/latest.json", {"projectId": "p"})
        kwargs = mock_client.put_object.call_args.kwargs
        assert kwargs["Bucket"] == "test-bucket"
        assert kwargs["Key"] == "storage/p/latest.json"
        assert kwargs["ContentType"] == "application/json; charset=utf-8"
        assert kwargs["CacheControl"] == "no-store"
        assert "IfNoneMatch" not in kwargs
        assert json.loads(kwargs["Body"]) == {"projectId": "p"}
        assert result.etag == "abc123"

    def test_if_absent_uses_conditional_put(self) -> None:
        mock_client = MagicMock()
        mock_client.put_object.return_value = {"ETag": '"e"'}
        _s3(mock_client).put_json("snap.json", {}, if_absent=True)
        assert mock_client.put_object.call_args.kwargs["IfNoneMatch"] == "*"

    @pytest.mark.parametrize("code", ["PreconditionFailed", "412"])
    def test_precondition_failure_maps_to_object_exists(self, code: str) -> None:
        mock_client = MagicMock()
        mock_client.put_object.side_effect = _make_client_error(code, "PutObject")
        with pytest.raises(ObjectExistsError):
            _s3(mock_client).put_json("snap.json", {}, if_absent=True)

    def test_if_absent_without_conditional_writes_heads_first(self) -> None:
        mock_client = MagicMock()
        mock_client.head_object.return_value = {}
        with pytest.raises(ObjectExistsError):
            _s3(mock_client, conditional_writes=False).put_json("snap.json", {}, if_absent=True)
        mock_client.put_object.assert_not_called()

    def test_get_missing_key_is_absent(self) -> None:
        mock_client = MagicMock()
        mock_client.get_object.side_effect = _make_client_error("NoSuchKey")
        assert _s3(mock_client).get_json("missing.json") is None

    def test_get_reads_body(self) -> None:
        mock_client = MagicMock()
        mock_client.get_object.return_value = {"Body": io.BytesIO(b'{"ok": true}')}
        assert _s3(mock_client).get_json("x.json") == {"ok": True}

    def test_access_denied_is_unavailable(self) -> None:
        mock_client = MagicMock()
        mock_client.get_object.side_effect = _make_client_error("AccessDenied")
        with pytest.raises(StorageUnavailableError):
            _s3(mock_client).get_json("x.json")

    def test_no_credentials_is_unavailable(self) -> None:
        mock_client = MagicMock()
        mock_client.put_object.side_effect = NoCredentialsError()
        with pytest.raises(StorageUnavailableError):
            _s3(mock_client).put_json("x.json", {})

    def test_network_failure_is_unavailable(self) -> None:
        mock_client = MagicMock()
        mock_client.get_object.side_effect = EndpointConnectionError(endpoint_url="https://s3.example")
        with pytest.raises(StorageUnavailableError):
            _s3(mock_client).get_bytes("x.json")

    def test_missing_bucket_is_unavailable(self) -> None:
        with pytest.raises(StorageUnavailableError):
            _s3(MagicMock(), bucket="").put_json("x.json", {})

    def test_exists(self) -> None:
        mock_client = MagicMock()
        store = _s3(mock_client)
        assert store.exists("a.json") is True
        mock_client.head_object.side_effect = _make_client_error("404", "HeadObject")
        assert store.exists("a.json") is False

    def test_presign_get(self) -> None:
        mock_client = MagicMock()
        mock_client.generate_presigned_url.return_value = "https://signed.example/a.mp3"
        url = _s3(mock_client).presign_get("a.mp3", 1200)
        assert url == "https://signed.example/a.mp3"
        mock_client.generate_presigned_url.assert_called_once_with(
            "get_object",
            Params={"Bucket": "test-bucket", "Key": "a.mp3"},
            ExpiresIn=1200,
        )

    def test_check_reachable(self) -> None:
        mock_client = MagicMock()
        assert _s3(mock_client).check_reachable() is True
        mock_client.head_bucket.side_effect = _make_client_error("403", "HeadBucket")
        assert _s3(mock_client).check_reachable() is False
        assert _s3(mock_client, bucket="").check_reachable() is False

    @patch("smartbridge.storage.s3.boto3.client")
    def test_client_uses_regional_endpoint(self, mock_boto: MagicMock) -> None:
        store = S3ObjectStore("b", region="eu-west-1")
        _ = store.client
        kwargs = mock_boto.call_args.kwargs
        assert kwargs["endpoint_url"] == "https://s3.eu-west-1.amazonaws.com"
        assert kwargs["region_name"] == "eu-west-1"


# ---------------------------------------------------------------------------
# create_object_store / get_object_store
# ---------------------------------------------------------------------------


class TestCreateObjectStore:

    def test_local_backend(self, tmp_path) -> None:
        cfg = MagicMock(storage_backend="local", local_storage_dir=str(tmp_path))
        assert isinstance(create_object_store(cfg), LocalObjectStore)

    def test_s3_backend(self) -> None:
        cfg = MagicMock(
            storage_backend="s3",
            s3_bucket="b",
            aws_region="us-east-1",
            s3_endpoint_url=None,
            s3_conditional_writes=True,
        )
        created = create_object_store(cfg)
        assert isinstance(created, S3ObjectStore)
        assert created.bucket == "b"

    def test_singleton_and_reset(self) -> None:
        first = get_object_store()
        assert get_object_store() is first
        reset_object_store()
        assert get_object_store() is not first
