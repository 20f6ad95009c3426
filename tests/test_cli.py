"""
Tests for the command line interface.
"""

from __future__ import annotations

import hashlib
from pathlib import Path

from typer.testing import CliRunner

from imgcache import __version__
from imgcache.cli.main import app
from imgcache.config import Settings

runner = CliRunner()

URI = "https://img.example.com/a/b.png"
KEY = hashlib.sha1(b"/a/b.png").hexdigest() + ".png"


class TestInfoCommands:
    """Tests for version, config and key."""

    def test_version(self) -> None:
        """Test that version prints the package version."""
        result = runner.invoke(app, ["version"])
        assert result.exit_code == 0
        assert __version__ in result.output

    def test_config(self, mock_env_vars: dict[str, str]) -> None:
        """Test that config lists settings."""
        result = runner.invoke(app, ["config"])
        assert result.exit_code == 0
        assert "LOG_LEVEL" in result.output
        assert "DEBUG" in result.output

    def test_key(self, mock_env_vars: dict[str, str]) -> None:
        """Test that key prints namespace and key without downloading."""
        result = runner.invoke(app, ["key", URI])
        assert result.exit_code == 0
        assert "img.example.com" in result.output
        assert KEY in result.output
        assert "no" in result.output

    def test_key_rejects_local_source(self, mock_env_vars: dict[str, str]) -> None:
        """Test that local sources have no cache key."""
        result = runner.invoke(app, ["key", "/images/a.png"])
        assert result.exit_code == 2

    def test_key_rejects_conflicting_policies(self, mock_env_vars: dict[str, str]) -> None:
        """Test that named and all-query policies are exclusive."""
        result = runner.invoke(app, ["key", URI, "--all-query", "--query-param", "v"])
        assert result.exit_code == 2

    def test_key_rejects_bad_uri(self, mock_env_vars: dict[str, str]) -> None:
        """Test that unsupported URIs are reported, not raised."""
        result = runner.invoke(app, ["key", "ftp://h/a.png"])
        assert result.exit_code == 2


class TestFetch:
    """Tests for fetch."""

    def test_offline_hit(self, mock_settings: Settings) -> None:
        """Test that a cached file is served while offline."""
        namespace_dir = mock_settings.CACHE_ROOT / "img.example.com"
        namespace_dir.mkdir(parents=True)
        (namespace_dir / KEY).write_bytes(b"cached-image")

        result = runner.invoke(app, ["fetch", URI, "--offline"])

        assert result.exit_code == 0
        assert "cached" in result.output

    def test_offline_miss(self, mock_settings: Settings) -> None:
        """Test that an offline miss exits non-zero without creating directories."""
        result = runner.invoke(app, ["fetch", URI, "--offline"])

        assert result.exit_code == 1
        assert "offline" in result.output
        assert not (mock_settings.CACHE_ROOT / "img.example.com").exists()

    def test_local_source(self, mock_settings: Settings, temp_dir: Path) -> None:
        """Test that local sources pass straight through."""
        image = temp_dir / "local.png"
        image.write_bytes(b"local")

        result = runner.invoke(app, ["fetch", str(image), "--offline"])

        assert result.exit_code == 0
        assert "local" in result.output
