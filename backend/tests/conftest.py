"""Shared test fixtures and configuration for backend tests."""
import io

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient

from relay.config import AppConfig, StorageSettings, reset_config, set_config
from relay.main import create_app
from relay.transfers.blob_store import BlobStore
from relay.transfers.service import TransferService


class ByteSource:
    """Minimal stand-in for UploadFile: an async read(n) over bytes."""

    def __init__(self, data: bytes):
        self._buf = io.BytesIO(data)

    async def read(self, size: int = -1) -> bytes:
        return self._buf.read(size)


@pytest.fixture
def upload_dir(tmp_path):
    return tmp_path / "uploads"


@pytest.fixture
def store(upload_dir):
    return BlobStore(str(upload_dir))


@pytest_asyncio.fixture
async def service(store):
    """A TransferService with a long TTL; stopped after the test."""
    svc = TransferService(store, ttl_seconds=60, max_file_size_bytes=1024 * 1024)
    yield svc
    await svc.stop()


@pytest.fixture
def relay_config(upload_dir):
    """Install an AppConfig pointing at a temporary upload directory."""
    config = AppConfig(storage=StorageSettings(upload_dir=str(upload_dir)))
    set_config(config)
    yield config
    reset_config()


@pytest.fixture
def make_client(relay_config):
    """Build a TestClient after applying storage overrides.

    Usage: ``with make_client(ttl_seconds=0.1) as client: ...``
    """
    def _make(**storage_overrides) -> TestClient:
        for key, value in storage_overrides.items():
            setattr(relay_config.storage, key, value)
        return TestClient(create_app())

    return _make


@pytest.fixture
def api_client(make_client):
    """Provide a started TestClient for a fresh app."""
    with make_client() as client:
        yield client


@pytest.fixture
def make_source():
    """Factory for in-memory upload streams."""
    return ByteSource
