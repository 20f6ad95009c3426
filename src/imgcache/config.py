"""
Configuration management using pydantic-settings.

Loads configuration from ``IMGCACHE_*`` environment variables and .env files.
Validates fields and provides typed access to settings.
"""

from __future__ import annotations

import os
import platform
from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from imgcache.exceptions import ConfigurationError

APP_NAME = "imgcache"


def default_cache_root() -> Path:
    """Get the platform-specific cache directory."""
    system = platform.system()
    if system == "Darwin":
        # macOS: ~/Library/Caches/imgcache
        base = Path.home() / "Library" / "Caches"
    elif system == "Windows":
        local_app_data = os.environ.get("LOCALAPPDATA")
        base = Path(local_app_data) if local_app_data else Path.home() / ".cache"
    else:
        xdg_cache = os.environ.get("XDG_CACHE_HOME")
        base = Path(xdg_cache) if xdg_cache else Path.home() / ".cache"

    return base / APP_NAME / "images"


class Settings(BaseSettings):
    """Image cache settings loaded from environment variables.

    All optional:
        IMGCACHE_CACHE_ROOT: Root directory of the on-disk cache
        IMGCACHE_LOG_LEVEL: Logging level
        IMGCACHE_LOG_FILE: JSON Lines log file
        IMGCACHE_CHECK_NETWORK: Gate downloads on the connectivity monitor
        IMGCACHE_NETWORK_AVAILABLE: Assumed reachability when not checking
        IMGCACHE_DOWNLOAD_IN_BACKGROUND: Default background hint for requests
        IMGCACHE_REQUEST_TIMEOUT: HTTP connect/read timeout in seconds
        IMGCACHE_CHUNK_SIZE: Bytes per streamed chunk
        IMGCACHE_USER_AGENT: User-Agent header for downloads
        IMGCACHE_CONNECTIVITY_PROBE_URL: URL probed to detect reachability
        IMGCACHE_CONNECTIVITY_POLL_INTERVAL: Seconds between probes
        IMGCACHE_EXCLUDE_FROM_BACKUP: Tag the cache root with CACHEDIR.TAG
    """

    model_config = SettingsConfigDict(
        env_prefix="IMGCACHE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    CACHE_ROOT: Path = Field(
        default_factory=default_cache_root, description="Cache root directory"
    )

    LOG_LEVEL: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO", description="Logging level"
    )
    LOG_FILE: Path | None = Field(default=None, description="JSON Lines log file")

    # Network gating
    CHECK_NETWORK: bool = Field(
        default=True, description="Subscribe controllers to the connectivity monitor"
    )
    NETWORK_AVAILABLE: bool = Field(
        default=False,
        description="Assumed reachability for controllers that do not check the network",
    )
    DOWNLOAD_IN_BACKGROUND: bool = Field(
        default=False, description="Default background hint for downloads"
    )

    # Transport
    REQUEST_TIMEOUT: float = Field(
        default=30.0, gt=0.0, description="HTTP connect/read timeout in seconds"
    )
    CHUNK_SIZE: int = Field(
        default=64 * 1024, ge=1024, description="Bytes per streamed chunk"
    )
    USER_AGENT: str = Field(
        default="imgcache/0.1 (+https://pypi.org/project/imgcache/)",
        description="User-Agent header for downloads",
    )

    # Connectivity probe
    CONNECTIVITY_PROBE_URL: str = Field(
        default="https://www.gstatic.com/generate_204",
        description="URL probed to detect reachability",
    )
    CONNECTIVITY_POLL_INTERVAL: float = Field(
        default=30.0, ge=1.0, description="Seconds between connectivity probes"
    )

    EXCLUDE_FROM_BACKUP: bool = Field(
        default=True, description="Write CACHEDIR.TAG at the cache root"
    )

    @field_validator("CONNECTIVITY_PROBE_URL")
    @classmethod
    def validate_probe_url(cls, v: str) -> str:
        """Validate that the probe URL is an http(s) URL."""
        if not v.startswith(("http://", "https://")):
            raise ValueError("CONNECTIVITY_PROBE_URL must be an http:// or https:// URL")
        return v

    @field_validator("CACHE_ROOT")
    @classmethod
    def expand_cache_root(cls, v: Path) -> Path:
        """Expand ``~`` in the cache root."""
        return v.expanduser()

    def ensure_directories(self) -> None:
        """Create the cache root if it doesn't exist.

        Raises:
            ConfigurationError: If the cache root cannot be used as a directory.
        """
        try:
            self.CACHE_ROOT.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise ConfigurationError(
                "Cache root is not a usable directory",
                {"CACHE_ROOT": str(self.CACHE_ROOT), "error": str(e)},
            ) from e

    def display_values(self) -> dict[str, str | int | float | bool | None]:
        """Return settings for display."""
        return {
            "CACHE_ROOT": str(self.CACHE_ROOT),
            "LOG_LEVEL": self.LOG_LEVEL,
            "LOG_FILE": str(self.LOG_FILE) if self.LOG_FILE else None,
            "CHECK_NETWORK": self.CHECK_NETWORK,
            "NETWORK_AVAILABLE": self.NETWORK_AVAILABLE,
            "DOWNLOAD_IN_BACKGROUND": self.DOWNLOAD_IN_BACKGROUND,
            "REQUEST_TIMEOUT": self.REQUEST_TIMEOUT,
            "CHUNK_SIZE": self.CHUNK_SIZE,
            "USER_AGENT": self.USER_AGENT,
            "CONNECTIVITY_PROBE_URL": self.CONNECTIVITY_PROBE_URL,
            "CONNECTIVITY_POLL_INTERVAL": self.CONNECTIVITY_POLL_INTERVAL,
            "EXCLUDE_FROM_BACKUP": self.EXCLUDE_FROM_BACKUP,
        }


@lru_cache
def get_settings() -> Settings:
    """Get cached settings singleton.

    Returns:
        Settings instance loaded from environment.

    Raises:
        ValidationError: If settings are invalid.
    """
    return Settings()


def clear_settings_cache() -> None:
    """Clear the settings cache (useful for testing)."""
    get_settings.cache_clear()
