"""Root pytest configuration for modelops-registry tests."""
import os

import pytest

from modelops_registry.coordinator import PushCoordinator
from modelops_registry.settings import MIB, Settings
from modelops_registry.storage.fakes import InMemoryObjectStore

BUCKET = "registry"


# Configure pytest markers
def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers",
        "slow: mark test as slow (may take significant time)"
    )


# Keep the developer's environment out of the tests
@pytest.fixture(autouse=True)
def test_env(monkeypatch):
    """Automatically clear registry environment variables."""
    for key in list(os.environ):
        if key.startswith("MODELOPS_REGISTRY_"):
            monkeypatch.delenv(key, raising=False)


# Standardized test fixtures
@pytest.fixture
def settings():
    """Production-sized upload policy against the in-memory store."""
    return Settings(
        bucket=BUCKET,
        store="memory",
        upload_chunk_size=50 * MIB,
        min_multipart_size=5 * MIB,
        max_workers=4,
        push_timeout_s=10.0,
    )


@pytest.fixture
def small_settings():
    """Tiny upload policy so multipart pushes can move real bytes quickly."""
    return Settings(
        bucket=BUCKET,
        store="memory",
        upload_chunk_size=8,
        min_multipart_size=4,
        max_workers=4,
        push_timeout_s=10.0,
    )


@pytest.fixture
def store():
    """Standard in-memory object store for testing."""
    return InMemoryObjectStore(bucket=BUCKET)


@pytest.fixture
def coordinator(store, settings):
    """Coordinator with production-sized policy."""
    return PushCoordinator(store, settings)


@pytest.fixture
def small_coordinator(store, small_settings):
    """Coordinator with tiny chunks."""
    return PushCoordinator(store, small_settings)
