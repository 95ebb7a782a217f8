"""Pytest configuration and fixtures."""
import logging
import os

# Settings are read at import time; pin the test environment first.
os.environ.setdefault("SMARTBRIDGE_RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("SMARTBRIDGE_STORAGE_BACKEND", "local")

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport

from smartbridge.main import app
from smartbridge.storage import LocalObjectStore, PutResult, StorageUnavailableError, get_object_store, reset_object_store


def pytest_configure(config):
    """Ensure asyncio_mode is auto so async fixtures work when pyproject is not in cwd."""
    if hasattr(config.option, "asyncio_mode") and config.option.asyncio_mode is None:
        config.option.asyncio_mode = "auto"
    logging.getLogger("httpcore").setLevel(logging.CRITICAL)


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture(autouse=True)
def _reset_object_store():
    """Reset the singleton store between tests to prevent cross-test pollution."""
    yield
    reset_object_store()


@pytest.fixture
def store(tmp_path):
    """Empty filesystem-backed object store."""
    return LocalObjectStore(tmp_path / "bucket")


class FlakyStore:
    """Wraps a store and fails puts whose key matches ``fail_puts``.

    ``fail_puts`` is a callable ``(key) -> bool``; matching puts raise
    ``StorageUnavailableError`` before anything is written.
    """

    def __init__(self, inner, fail_puts=lambda key: False):
        self.inner = inner
        self.fail_puts = fail_puts
        self.put_keys: list[str] = []

    def put_bytes(self, key, body, content_type="application/octet-stream", *, if_absent=False) -> PutResult:
        if self.fail_puts(key):
            raise StorageUnavailableError(f"injected failure writing {key}")
        self.put_keys.append(key)
        return self.inner.put_bytes(key, body, content_type, if_absent=if_absent)

    def put_json(self, key, value, *, if_absent=False) -> PutResult:
        if self.fail_puts(key):
            raise StorageUnavailableError(f"injected failure writing {key}")
        self.put_keys.append(key)
        return self.inner.put_json(key, value, if_absent=if_absent)

    def get_bytes(self, key):
        return self.inner.get_bytes(key)

    def get_json(self, key):
        return self.inner.get_json(key)

    def exists(self, key):
        return self.inner.exists(key)

    def presign_get(self, key, expires_in):
        return self.inner.presign_get(key, expires_in)

    def check_reachable(self):
        return self.inner.check_reachable()


@pytest.fixture
def flaky_store(store):
    return FlakyStore(store)


@pytest_asyncio.fixture
async def client(store):
    """HTTP client against the app, with the object store pointed at ``store``."""
    app.dependency_overrides[get_object_store] = lambda: store
    transport = ASGITransport(app=app)
    try:
        async with AsyncClient(transport=transport, base_url="http://test") as ac:
            yield ac
    finally:
        app.dependency_overrides.clear()
