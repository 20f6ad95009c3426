"""Disk cache for remotely fetched images."""

from imgcache.cache.keys import derive_key, namespace_for
from imgcache.cache.store import CacheStore
from imgcache.controller import ResourceCacheController
from imgcache.network.connectivity import ConnectivityMonitor, get_connectivity_monitor
from imgcache.network.download import DownloadJob
from imgcache.network.transport import HttpxTransport
from imgcache.types import (
    CacheEntry,
    CacheState,
    CacheStatus,
    FailureKind,
    JobState,
    QueryKeyPolicy,
    ResourceRequest,
)

__version__ = "0.1.0"

__all__ = [
    "CacheEntry",
    "CacheState",
    "CacheStatus",
    "CacheStore",
    "ConnectivityMonitor",
    "DownloadJob",
    "FailureKind",
    "HttpxTransport",
    "JobState",
    "QueryKeyPolicy",
    "ResourceCacheController",
    "ResourceRequest",
    "__version__",
    "derive_key",
    "get_connectivity_monitor",
    "namespace_for",
]
