"""
On-disk cache for remote images.

This package provides:
- Key derivation (keys.py): Stable cache keys from URI path and selected query values
- File store (store.py): Filesystem-backed key -> file mapping with lookup/mkdir/delete
"""

from imgcache.cache.keys import cache_path_for, derive_key, key_for_request, namespace_for
from imgcache.cache.store import CacheStore

__all__ = [
    "CacheStore",
    "cache_path_for",
    "derive_key",
    "key_for_request",
    "namespace_for",
]
