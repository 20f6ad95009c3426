"""
Network side of the image cache.

This package provides:
- Connectivity (connectivity.py): Process-wide reachability monitor and HTTP probe
- Transport (transport.py): Streaming fetch-to-file over httpx
- Download jobs (download.py): Per-download state machine with cancellation and cleanup
"""

from imgcache.network.connectivity import (
    ConnectivityMonitor,
    ConnectivityProbe,
    get_connectivity_monitor,
)
from imgcache.network.download import DownloadJob
from imgcache.network.transport import HttpxTransport, Transport, TransportHandle

__all__ = [
    "ConnectivityMonitor",
    "ConnectivityProbe",
    "DownloadJob",
    "HttpxTransport",
    "Transport",
    "TransportHandle",
    "get_connectivity_monitor",
]
