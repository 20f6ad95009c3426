"""
Filesystem-backed cache store.

Cache Directory Structure:
<cache_root>/
  CACHEDIR.TAG
  img.example.com/
    3f786850e387550fdab836ed7e6dc881de23001b.png
  cdn.example.org:8443/
    ...

Every operation runs its blocking filesystem call in a worker thread so the
event loop stays free while the disk is busy. Validity is re-derived from
disk on every lookup; nothing is tracked in memory.
"""

from __future__ import annotations

import asyncio
import stat
from pathlib import Path

from imgcache.exceptions import CacheDirectoryError
from imgcache.logging import get_logger
from imgcache.types import CacheEntry

logger = get_logger(__name__)

CACHEDIR_TAG_NAME = "CACHEDIR.TAG"
CACHEDIR_TAG_CONTENT = (
    "Signature: 8a477f597d28d172789f06886806bc55\n"
    "# This file is a cache directory tag created by imgcache.\n"
    "# For information about cache directory tags, see:\n"
    "#\thttps://bford.info/cachedir/\n"
)


def remove_file(file_path: Path) -> bool:
    """Remove a file, best-effort.

    Returns:
        True if a file was removed, False if there was nothing to remove
        or removal failed.
    """
    try:
        file_path.unlink()
        return True
    except FileNotFoundError:
        return False
    except (OSError, ValueError) as e:
        logger.warning("Failed to delete cache file", path=str(file_path), error=str(e))
        return False


class CacheStore:
    """Maps ``(namespace, key)`` to files under a cache root."""

    def __init__(self, root: str | Path, exclude_from_backup: bool = True) -> None:
        """Initialize the store.

        Args:
            root: Cache root directory. Created lazily by ensure_directory().
            exclude_from_backup: Write a CACHEDIR.TAG at the root so backup
                tools that honour the tag skip the cache.
        """
        self.root = Path(root)
        self.exclude_from_backup = exclude_from_backup

    def path_for(self, namespace: str, key: str) -> Path:
        """Get the file path for a key."""
        return self.root / namespace / key

    def _stat_entry(self, namespace: str, key: str) -> CacheEntry | None:
        file_path = self.path_for(namespace, key)
        try:
            st = file_path.stat()
        except FileNotFoundError:
            return None
        except (OSError, ValueError) as e:
            # Anything else is a miss too; the caller will just re-download
            logger.warning("Cache stat failed, treating as miss", path=str(file_path), error=str(e))
            return None

        if not stat.S_ISREG(st.st_mode) or st.st_size <= 0:
            return None
        return CacheEntry(key=key, file_path=file_path, size_bytes=st.st_size)

    async def lookup(self, namespace: str, key: str) -> CacheEntry | None:
        """Look up a cached file.

        Returns:
            CacheEntry if a non-empty regular file exists for the key, else None.
        """
        entry = await asyncio.to_thread(self._stat_entry, namespace, key)
        if entry is None:
            logger.debug("Cache miss", key=key)
        else:
            logger.debug("Cache hit", key=key, size=entry.size_bytes)
        return entry

    def _make_directory(self, namespace: str) -> Path:
        directory = self.root / namespace
        directory.mkdir(parents=True, exist_ok=True)
        if self.exclude_from_backup:
            tag = self.root / CACHEDIR_TAG_NAME
            if not tag.exists():
                tag.write_text(CACHEDIR_TAG_CONTENT, encoding="utf-8")
        return directory

    async def ensure_directory(self, namespace: str) -> Path:
        """Create the namespace directory if absent.

        Returns:
            The namespace directory.

        Raises:
            CacheDirectoryError: If the directory (or the backup tag) cannot be written.
        """
        try:
            return await asyncio.to_thread(self._make_directory, namespace)
        except (OSError, ValueError) as e:
            raise CacheDirectoryError(
                "Failed to create cache directory",
                {"path": str(self.root / namespace), "error": str(e)},
            ) from e

    async def delete(self, file_path: str | Path) -> bool:
        """Delete a cache file, best-effort. Failures are logged, never raised."""
        removed = await asyncio.to_thread(remove_file, Path(file_path))
        if removed:
            logger.debug("Deleted cache file", path=str(file_path))
        return removed
