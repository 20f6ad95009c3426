"""
Tests for the cache store.
"""

from __future__ import annotations

from pathlib import Path

import pytest

from imgcache.cache.store import CACHEDIR_TAG_NAME, CacheStore, remove_file
from imgcache.exceptions import CacheDirectoryError


async def write_entry(store: CacheStore, namespace: str, key: str, content: bytes) -> Path:
    await store.ensure_directory(namespace)
    path = store.path_for(namespace, key)
    path.write_bytes(content)
    return path


class TestLookup:
    """Tests for CacheStore.lookup."""

    @pytest.mark.asyncio
    async def test_hit(self, store: CacheStore) -> None:
        """A non-empty file is a valid entry."""
        path = await write_entry(store, "img.example.com", "abc.png", b"\x89PNG data")

        entry = await store.lookup("img.example.com", "abc.png")

        assert entry is not None
        assert entry.key == "abc.png"
        assert entry.file_path == path
        assert entry.size_bytes == len(b"\x89PNG data")
        assert entry.uri.startswith("file://")

    @pytest.mark.asyncio
    async def test_miss(self, store: CacheStore) -> None:
        """A missing file (or missing root) is a miss."""
        assert await store.lookup("img.example.com", "missing.png") is None

    @pytest.mark.asyncio
    async def test_empty_file_is_miss(self, store: CacheStore) -> None:
        """Zero-length files are never valid entries."""
        await write_entry(store, "img.example.com", "empty.png", b"")
        assert await store.lookup("img.example.com", "empty.png") is None

    @pytest.mark.asyncio
    async def test_directory_is_miss(self, store: CacheStore) -> None:
        """Only regular files count."""
        await store.ensure_directory("img.example.com")
        (store.root / "img.example.com" / "dir.png").mkdir()
        assert await store.lookup("img.example.com", "dir.png") is None

    @pytest.mark.asyncio
    async def test_unusable_name_is_miss(self, store: CacheStore) -> None:
        """A key the OS rejects outright is a miss rather than an error."""
        await store.ensure_directory("img.example.com")
        assert await store.lookup("img.example.com", "a\x00.png") is None


class TestEnsureDirectory:
    """Tests for CacheStore.ensure_directory."""

    @pytest.mark.asyncio
    async def test_creates_namespace_and_tag(self, store: CacheStore) -> None:
        """The namespace directory and the backup-exclusion tag are created."""
        directory = await store.ensure_directory("img.example.com")

        assert directory == store.root / "img.example.com"
        assert directory.is_dir()
        tag = store.root / CACHEDIR_TAG_NAME
        assert tag.read_text(encoding="utf-8").startswith(
            "Signature: 8a477f597d28d172789f06886806bc55"
        )

    @pytest.mark.asyncio
    async def test_idempotent(self, store: CacheStore) -> None:
        """Calling twice is fine."""
        await store.ensure_directory("h")
        await store.ensure_directory("h")
        assert (store.root / "h").is_dir()

    @pytest.mark.asyncio
    async def test_no_tag_when_disabled(self, cache_root: Path) -> None:
        """Backup exclusion can be turned off."""
        store = CacheStore(cache_root, exclude_from_backup=False)
        await store.ensure_directory("h")
        assert not (cache_root / CACHEDIR_TAG_NAME).exists()

    @pytest.mark.asyncio
    async def test_root_is_file(self, temp_dir: Path) -> None:
        """A root that cannot hold directories raises CacheDirectoryError."""
        blocker = temp_dir / "blocker"
        blocker.write_text("not a directory")
        store = CacheStore(blocker)

        with pytest.raises(CacheDirectoryError) as exc_info:
            await store.ensure_directory("h")

        assert exc_info.value.context["path"] == str(blocker / "h")


class TestDelete:
    """Tests for best-effort deletion."""

    @pytest.mark.asyncio
    async def test_delete_existing(self, store: CacheStore) -> None:
        """Deleting an existing file removes it."""
        path = await write_entry(store, "h", "a.png", b"data")
        assert await store.delete(path) is True
        assert not path.exists()

    @pytest.mark.asyncio
    async def test_delete_missing(self, store: CacheStore) -> None:
        """Deleting a missing file is not an error."""
        assert await store.delete(store.path_for("h", "nope.png")) is False

    def test_remove_file_on_directory(self, temp_dir: Path) -> None:
        """Failures other than not-found are swallowed and reported as False."""
        directory = temp_dir / "subdir"
        directory.mkdir()
        assert remove_file(directory) is False
        assert directory.exists()

    @pytest.mark.asyncio
    async def test_delete_unusable_name(self, store: CacheStore) -> None:
        """A path the OS rejects outright is reported as not removed."""
        assert await store.delete(store.path_for("h", "a\x00.png")) is False
