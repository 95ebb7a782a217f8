"""
SmartBridge Minisite Configuration

Environment-based configuration for the master-save / publish service.
"""
import logging
import re
from functools import lru_cache
from importlib.metadata import PackageNotFoundError, version
from pathlib import Path
from typing import Literal, Optional

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _app_version_from_package() -> str:
    """Installed distribution version, else the version line in pyproject.toml."""
    try:
        return version("smartbridge-minisite")
    except PackageNotFoundError:
        pass
    pyproject = Path(__file__).resolve().parent.parent / "pyproject.toml"
    try:
        text = pyproject.read_text(encoding="utf-8")
    except OSError:
        return "0.0.0-unknown"
    match = re.search(r'^version\s*=\s*"([^"]+)"', text, re.MULTILINE)
    return match.group(1) if match else "0.0.0-unknown"


# Fixed song slots per release. Catalog, meta and the connections worksheet
# are all padded to this many slots.
DEFAULT_SONG_COUNT: int = 9

# Songs page rule: Master Save is allowed once 8 of 9 worksheets are complete.
DEFAULT_MIN_COMPLETE_WORKSHEETS: int = 8


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Service Info
    app_name: str = "SmartBridge Minisite"
    app_version: str = _app_version_from_package()
    debug: bool = False

    # Server Configuration
    host: str = "0.0.0.0"
    port: int = 10000

    # CORS Settings (fail closed: no default origins)
    # Local dev: ["http://localhost:5173"]. Never use "*" in production.
    cors_origins: list[str] = []

    # Object storage
    # "s3" talks to an S3-compatible bucket; "local" writes under local_storage_dir.
    storage_backend: Literal["s3", "local"] = "s3"
    aws_region: str = "us-east-1"
    s3_bucket: Optional[str] = None
    s3_endpoint_url: Optional[str] = None  # e.g. http://minio:9000 for S3-compatible stores
    # Snapshot puts use IfNoneMatch="*" so an existing snapshot is never overwritten.
    # Disable for S3-compatible stores without conditional-write support (falls back to HEAD).
    s3_conditional_writes: bool = True
    local_storage_dir: str = "./storage-data"

    # Publish
    # Absolute base for public player URLs (CDN or website origin). When unset,
    # publish returns a root-relative path, which only works if this service's
    # host also serves the bucket's public/ prefix.
    public_base_url: Optional[str] = None
    publish_verify_snapshot: bool = True

    # Playback URLs (presigned, never persisted)
    presign_expiry_seconds: int = 1200

    # Project shape
    song_count: int = DEFAULT_SONG_COUNT
    songs_min_complete_worksheets: int = DEFAULT_MIN_COMPLETE_WORKSHEETS

    # Rate limits on write endpoints (per IP)
    rate_limit_enabled: bool = True
    master_save_rate_limit: str = "60/minute"

    # Python client
    api_base_url: str = "http://localhost:10000"
    client_timeout_seconds: int = 30

    @model_validator(mode="after")
    def _warn_cors_wildcard_in_production(self) -> "Settings":
        """Warn when CORS allows all origins in non-debug (production) mode."""
        if not self.debug and self.cors_origins and "*" in self.cors_origins:
            logging.getLogger(__name__).warning(
                "CORS allows all origins (*) with SMARTBRIDGE_DEBUG=false. "
                "Set SMARTBRIDGE_CORS_ORIGINS to exact origins in production."
            )
        return self

    model_config = SettingsConfigDict(
        env_prefix="SMARTBRIDGE_",
        env_file=".env",
        env_file_encoding="utf-8",
    )


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Convenience access
settings = get_settings()
