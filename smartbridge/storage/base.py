"""Object store contract shared by the S3 and filesystem backends.

Keys are ``/``-separated strings (``storage/projects/<id>/...``).  Writes are
whole-object overwrites; there is no listing operation.  A missing object is
an *absent* result (``None``), never an exception, because the master-save
flow treats "no prior snapshot" as a valid initial state.
"""
from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Protocol

from smartbridge.contracts.json_types import JSONValue

JSON_CONTENT_TYPE = "application/json; charset=utf-8"
HTML_CONTENT_TYPE = "text/html; charset=utf-8"
DEFAULT_BINARY_CONTENT_TYPE = "application/octet-stream"


class StorageError(Exception):
    """Base class for object store failures."""

    code = "STORAGE_ERROR"


class StorageUnavailableError(StorageError):
    """Raised when the store is unreachable or not configured; map to HTTP 503."""

    code = "STORAGE_UNAVAILABLE"


class ObjectExistsError(StorageError):
    """Raised by a write-once put when the key already holds an object."""

    code = "OBJECT_EXISTS"

    def __init__(self, key: str) -> None:
        super().__init__(f"Object already exists: {key}")
        self.key = key


class ObjectDecodeError(StorageError):
    """Raised when a stored object is not valid UTF-8 JSON."""

    code = "CORRUPT_OBJECT"

    def __init__(self, key: str, reason: str) -> None:
        super().__init__(f"Object {key} is not valid JSON: {reason}")
        self.key = key


class InvalidObjectKeyError(StorageError, ValueError):
    """Raised for empty, absolute or parent-escaping keys."""

    code = "INVALID_KEY"


@dataclass(frozen=True)
class PutResult:
    """Outcome of a successful put."""

    key: str
    etag: str


class ObjectStore(Protocol):
    """Structural interface implemented by every storage backend."""

    def put_bytes(
        self,
        key: str,
        body: bytes,
        content_type: str = DEFAULT_BINARY_CONTENT_TYPE,
        *,
        if_absent: bool = False,
    ) -> PutResult: ...

    def put_json(self, key: str, value: JSONValue, *, if_absent: bool = False) -> PutResult: ...

    def get_bytes(self, key: str) -> bytes | None: ...

    def get_json(self, key: str) -> JSONValue | None: ...

    def exists(self, key: str) -> bool: ...

    def presign_get(self, key: str, expires_in: int) -> str: ...

    def check_reachable(self) -> bool: ...


def validate_key(key: str) -> str:
    """Return the stripped key, raising ``InvalidObjectKeyError`` if unusable."""
    k = str(key or "").strip()
    if not k:
        raise InvalidObjectKeyError("Object key is empty")
    if k.startswith("/") or "\\" in k:
        raise InvalidObjectKeyError(f"Object key must be relative: {k}")
    if any(part in ("", ".", "..") for part in k.split("/")):
        raise InvalidObjectKeyError(f"Object key has an empty or dot segment: {k}")
    return k


def validate_key_segment(value: str, label: str = "Key segment") -> str:
    """Return the stripped value if it is usable as one path segment of a key.

    Project ids are spliced into ``storage/projects/<id>/...``; an id with a
    separator or a dot segment would address another project's objects.
    """
    v = str(value or "").strip()
    if not v:
        raise InvalidObjectKeyError(f"{label} is empty")
    if "/" in v or "\\" in v or v in (".", ".."):
        raise InvalidObjectKeyError(f"{label} must be a single path segment: {v}")
    return v


def encode_json(value: JSONValue) -> bytes:
    """Serialize a JSON value the way every stored object is written (2-space indent)."""
    return json.dumps(value, indent=2, ensure_ascii=False).encode("utf-8")


def decode_json(key: str, body: bytes) -> JSONValue:
    """Parse a stored object, raising ``ObjectDecodeError`` on bad bytes."""
    try:
        parsed: JSONValue = json.loads(body.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise ObjectDecodeError(key, str(e)) from e
    return parsed
