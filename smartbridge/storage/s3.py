"""
S3-compatible object store.

Every JSON object is written with ``Cache-Control: no-store`` so the latest
pointer is never served stale by an intermediate cache.  Snapshot writes are
write-once: with conditional writes enabled the put carries
``IfNoneMatch="*"`` and S3 rejects it with 412 when the key exists.
"""
from __future__ import annotations

import logging
from typing import Protocol, cast

from typing_extensions import TypedDict

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError, NoCredentialsError

from smartbridge.contracts.json_types import JSONValue
from smartbridge.storage.base import (
    DEFAULT_BINARY_CONTENT_TYPE,
    JSON_CONTENT_TYPE,
    ObjectExistsError,
    PutResult,
    StorageUnavailableError,
    decode_json,
    encode_json,
    validate_key,
)

logger = logging.getLogger(__name__)

# Use Signature Version 4 for presigned URLs. SigV2 (legacy) can cause 403 from S3.
S3_CONFIG = Config(signature_version="s3v4")

_NOT_FOUND_CODES = frozenset({"NoSuchKey", "404", "NotFound"})
_PRECONDITION_CODES = frozenset({"PreconditionFailed", "412", "ConditionalRequestConflict", "409"})


class _S3StreamingBody(Protocol):
    """Structural interface for the streaming body returned by S3 get_object."""

    def read(self) -> bytes: ...


class _GetObjectResponse(TypedDict):
    """Typed subset of the boto3 get_object response that we actually use."""

    Body: _S3StreamingBody


class _S3Client(Protocol):
    """Structural interface for the boto3 S3 client methods used in this module."""

    def put_object(self, **kwargs: object) -> dict[str, object]: ...
    def get_object(self, *, Bucket: str, Key: str) -> _GetObjectResponse: ...
    def head_object(self, *, Bucket: str, Key: str) -> dict[str, object]: ...
    def head_bucket(self, *, Bucket: str) -> dict[str, object]: ...
    def generate_presigned_url(self, operation: str, /, **kwargs: object) -> str: ...


def _error_code(e: ClientError) -> str:
    return str(e.response.get("Error", {}).get("Code", ""))


class S3ObjectStore:
    """Object store backed by a single S3 (or S3-compatible) bucket."""

    def __init__(
        self,
        bucket: str | None,
        *,
        region: str,
        endpoint_url: str | None = None,
        conditional_writes: bool = True,
        client: _S3Client | None = None,
    ):
        self.bucket = (bucket or "").strip()
        self.region = region
        self.endpoint_url = endpoint_url
        self.conditional_writes = conditional_writes
        self._client = client

    @property
    def client(self) -> _S3Client:
        """
        Lazily create the S3 client with SigV4 and a regional endpoint.
        Using the regional endpoint (e.g. s3.us-east-1.amazonaws.com) avoids redirects from the
        global endpoint that can break presigned URL signatures.
        """
        if self._client is None:
            endpoint_url = self.endpoint_url or f"https://s3.{self.region}.amazonaws.com"
            # boto3 has no type stubs: cast to our Protocol at the untyped library boundary.
            self._client = cast(
                _S3Client,
                boto3.client(
                    "s3",
                    region_name=self.region,
                    endpoint_url=endpoint_url,
                    config=S3_CONFIG,
                ),
            )
        return self._client

    def _require_bucket(self) -> str:
        if not self.bucket:
            raise StorageUnavailableError("S3 bucket is not configured (SMARTBRIDGE_S3_BUCKET)")
        return self.bucket

    def put_bytes(
        self,
        key: str,
        body: bytes,
        content_type: str = DEFAULT_BINARY_CONTENT_TYPE,
        *,
        if_absent: bool = False,
    ) -> PutResult:
        key = validate_key(key)
        params: dict[str, object] = {
            "Bucket": self._require_bucket(),
            "Key": key,
            "Body": body,
            "ContentType": content_type,
            "CacheControl": "no-store",
        }
        if if_absent:
            if self.conditional_writes:
                params["IfNoneMatch"] = "*"
            elif self.exists(key):
                raise ObjectExistsError(key)
        try:
            resp = self.client.put_object(**params)
        except NoCredentialsError as e:
            logger.warning("AWS credentials not configured: %s", e)
            raise StorageUnavailableError("AWS credentials not configured") from e
        except BotoCoreError as e:
            logger.warning("S3 unreachable writing %s: %s", key, e)
            raise StorageUnavailableError("Unable to reach object storage") from e
        except ClientError as e:
            if if_absent and _error_code(e) in _PRECONDITION_CODES:
                raise ObjectExistsError(key) from e
            logger.error("S3 put_object failed for %s: %s", key, e)
            raise StorageUnavailableError(f"Unable to write {key}") from e
        etag = str(resp.get("ETag") or "").strip('"')
        logger.debug("S3 put %s (%d bytes, etag=%s)", key, len(body), etag)
        return PutResult(key=key, etag=etag)

    def put_json(self, key: str, value: JSONValue, *, if_absent: bool = False) -> PutResult:
        return self.put_bytes(key, encode_json(value), JSON_CONTENT_TYPE, if_absent=if_absent)

    def get_bytes(self, key: str) -> bytes | None:
        key = validate_key(key)
        bucket = self._require_bucket()
        try:
            resp = self.client.get_object(Bucket=bucket, Key=key)
            return resp["Body"].read()
        except NoCredentialsError as e:
            logger.warning("AWS credentials not configured: %s", e)
            raise StorageUnavailableError("AWS credentials not configured") from e
        except BotoCoreError as e:
            logger.warning("S3 unreachable reading %s: %s", key, e)
            raise StorageUnavailableError("Unable to reach object storage") from e
        except ClientError as e:
            if _error_code(e) in _NOT_FOUND_CODES:
                logger.debug("Object not found: %s", key)
                return None
            logger.error("S3 get_object failed for %s: %s", key, e)
            raise StorageUnavailableError(f"Unable to read {key}") from e

    def get_json(self, key: str) -> JSONValue | None:
        body = self.get_bytes(key)
        if body is None:
            return None
        return decode_json(key, body)

    def exists(self, key: str) -> bool:
        key = validate_key(key)
        bucket = self._require_bucket()
        try:
            self.client.head_object(Bucket=bucket, Key=key)
            return True
        except NoCredentialsError as e:
            raise StorageUnavailableError("AWS credentials not configured") from e
        except BotoCoreError as e:
            raise StorageUnavailableError("Unable to reach object storage") from e
        except ClientError as e:
            if _error_code(e) in _NOT_FOUND_CODES:
                return False
            logger.error("S3 head_object failed for %s: %s", key, e)
            raise StorageUnavailableError(f"Unable to check {key}") from e

    def presign_get(self, key: str, expires_in: int) -> str:
        key = validate_key(key)
        bucket = self._require_bucket()
        try:
            return self.client.generate_presigned_url(
                "get_object",
                Params={"Bucket": bucket, "Key": key},
                ExpiresIn=expires_in,
            )
        except NoCredentialsError as e:
            logger.warning("AWS credentials not configured: %s", e)
            raise StorageUnavailableError("AWS credentials not configured") from e
        except (BotoCoreError, ClientError) as e:
            logger.error("Presign failed for %s: %s", key, e)
            raise StorageUnavailableError("Unable to generate playback URL") from e

    def check_reachable(self) -> bool:
        """Verify we can reach the bucket. Returns True if OK."""
        if not self.bucket:
            return False
        try:
            self.client.head_bucket(Bucket=self.bucket)
            return True
        except Exception as e:
            logger.debug("S3 health check failed: %s", e)
            return False
