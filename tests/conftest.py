"""
Pytest configuration and fixtures for image cache tests.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Generator
from unittest.mock import patch

import pytest

from fakes import FakeTransport
from imgcache.cache.store import CacheStore
from imgcache.config import Settings, clear_settings_cache
from imgcache.network.connectivity import ConnectivityMonitor, reset_connectivity_monitor


@pytest.fixture
def temp_dir(tmp_path: Path) -> Path:
    """Provide a temporary directory for test outputs."""
    return tmp_path


@pytest.fixture
def mock_env_vars(temp_dir: Path) -> Generator[dict[str, str], None, None]:
    """Provide mock environment variables for testing."""
    env_vars = {
        "IMGCACHE_CACHE_ROOT": str(temp_dir / "cache"),
        "IMGCACHE_LOG_LEVEL": "DEBUG",
        "IMGCACHE_CHECK_NETWORK": "true",
        "IMGCACHE_NETWORK_AVAILABLE": "false",
        "IMGCACHE_REQUEST_TIMEOUT": "5",
        "IMGCACHE_USER_AGENT": "imgcache-tests/1.0",
    }

    with patch.dict(os.environ, env_vars, clear=False):
        # Clear any cached settings
        clear_settings_cache()
        yield env_vars


@pytest.fixture
def mock_settings(mock_env_vars: dict[str, str]) -> Generator[Settings, None, None]:
    """Provide a Settings instance with mock configuration."""
    from imgcache.config import get_settings

    settings = get_settings()
    settings.ensure_directories()
    yield settings
    clear_settings_cache()


@pytest.fixture
def cache_root(temp_dir: Path) -> Path:
    """Cache root inside the temp directory (not created)."""
    return temp_dir / "cache"


@pytest.fixture
def store(cache_root: Path) -> CacheStore:
    """Provide a cache store rooted in the temp directory."""
    return CacheStore(cache_root)


@pytest.fixture
def transport() -> FakeTransport:
    """Provide a test-driven transport."""
    return FakeTransport()


@pytest.fixture
def online() -> ConnectivityMonitor:
    """Provide a monitor that reports the network as reachable."""
    return ConnectivityMonitor(reachable=True)


@pytest.fixture
def offline() -> ConnectivityMonitor:
    """Provide a monitor that reports the network as unreachable."""
    return ConnectivityMonitor(reachable=False)


@pytest.fixture(autouse=True)
def reset_settings_cache() -> Generator[None, None, None]:
    """Reset settings cache and the shared connectivity monitor between tests."""
    clear_settings_cache()
    reset_connectivity_monitor()
    yield
    clear_settings_cache()
    reset_connectivity_monitor()
