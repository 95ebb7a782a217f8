"""Filesystem object store.

Keys map to files under a root directory.  Each put writes a temporary
sibling, fsyncs it, then moves it into place, so readers see either the old
object or the new one.  Write-once puts use ``os.link``, which fails
atomically when the target already exists.
"""
from __future__ import annotations

import hashlib
import logging
import os
import uuid
from pathlib import Path

from smartbridge.contracts.json_types import JSONValue
from smartbridge.storage.base import (
    DEFAULT_BINARY_CONTENT_TYPE,
    JSON_CONTENT_TYPE,
    InvalidObjectKeyError,
    ObjectExistsError,
    PutResult,
    StorageUnavailableError,
    decode_json,
    encode_json,
    validate_key,
)

logger = logging.getLogger(__name__)


class LocalObjectStore:
    """Object store rooted at a local directory (content types are not kept)."""

    def __init__(self, root: str | Path):
        self.root = Path(root).expanduser().resolve()

    def _path(self, key: str) -> Path:
        key = validate_key(key)
        path = (self.root / key).resolve()
        if self.root not in path.parents:
            raise InvalidObjectKeyError(f"Object key escapes storage root: {key}")
        return path

    def put_bytes(
        self,
        key: str,
        body: bytes,
        content_type: str = DEFAULT_BINARY_CONTENT_TYPE,
        *,
        if_absent: bool = False,
    ) -> PutResult:
        path = self._path(key)
        tmp = path.with_name(f".{path.name}.{uuid.uuid4().hex}.tmp")
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp, "wb") as fh:
                fh.write(body)
                fh.flush()
                os.fsync(fh.fileno())
            if if_absent:
                try:
                    os.link(tmp, path)
                except FileExistsError:
                    raise ObjectExistsError(key) from None
            else:
                os.replace(tmp, path)
        except OSError as e:
            logger.error("Local write failed for %s: %s", key, e)
            raise StorageUnavailableError(f"Unable to write {key}") from e
        finally:
            tmp.unlink(missing_ok=True)
        etag = hashlib.md5(body).hexdigest()
        logger.debug("Local put %s (%d bytes, %s)", key, len(body), content_type)
        return PutResult(key=validate_key(key), etag=etag)

    def put_json(self, key: str, value: JSONValue, *, if_absent: bool = False) -> PutResult:
        return self.put_bytes(key, encode_json(value), JSON_CONTENT_TYPE, if_absent=if_absent)

    def get_bytes(self, key: str) -> bytes | None:
        path = self._path(key)
        try:
            return path.read_bytes()
        except (FileNotFoundError, IsADirectoryError, NotADirectoryError):
            logger.debug("Object not found: %s", key)
            return None
        except OSError as e:
            logger.error("Local read failed for %s: %s", key, e)
            raise StorageUnavailableError(f"Unable to read {key}") from e

    def get_json(self, key: str) -> JSONValue | None:
        body = self.get_bytes(key)
        if body is None:
            return None
        return decode_json(key, body)

    def exists(self, key: str) -> bool:
        return self._path(key).is_file()

    def presign_get(self, key: str, expires_in: int) -> str:
        """Local files need no signature; ``expires_in`` is ignored."""
        return self._path(key).as_uri()

    def check_reachable(self) -> bool:
        try:
            self.root.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.debug("Local storage health check failed: %s", e)
            return False
        return os.access(self.root, os.W_OK)
