"""
Core types for the image cache.

This module defines the fundamental data structures used throughout the package:
- Enums for job states, failure kinds and controller resolution status
- Frozen dataclasses for immutable data (ResourceRequest, CacheEntry, CacheState)
- Transport callback payloads (BeginInfo, ProgressInfo)
- Helper functions for ID generation and timestamps
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any
from urllib.parse import urlsplit

from uuid6 import uuid7

from imgcache.exceptions import InvalidRequestError

REMOTE_SCHEMES = frozenset({"http", "https"})
LOCAL_SCHEMES = frozenset({"", "file"})

# Status codes that mean the resource will never be cacheable for this attempt
NOT_FOUND_STATUS = 404
FORBIDDEN_STATUS = 403
UNCACHEABLE_STATUSES = frozenset({NOT_FOUND_STATUS, FORBIDDEN_STATUS})


def generate_id(prefix: str = "") -> str:
    """Generate a time-ordered unique ID using UUID7.

    Args:
        prefix: Optional prefix for the ID (e.g., "job", "sub", "ctl")

    Returns:
        A unique ID string, optionally prefixed.
    """
    uid = str(uuid7())
    return f"{prefix}_{uid}" if prefix else uid


def utc_now() -> datetime:
    """Get current UTC time with timezone info."""
    return datetime.now(timezone.utc)


def is_success_status(status_code: int) -> bool:
    """Return True for 2xx status codes."""
    return 200 <= status_code < 300


class QueryMode(str, Enum):
    """Which query parameters take part in the cache key."""

    NONE = "none"
    ALL = "all"
    NAMES = "names"


class JobState(str, Enum):
    """States of a download job."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (JobState.COMPLETED, JobState.FAILED, JobState.CANCELLED)


class FailureKind(str, Enum):
    """Why a resource was resolved as uncacheable."""

    NOT_FOUND = "not_found"
    FORBIDDEN = "forbidden"
    TRANSFER_ERROR = "transfer_error"
    DIRECTORY_ERROR = "directory_error"

    @classmethod
    def from_status(cls, status_code: int) -> FailureKind:
        """Map a non-success HTTP status to a failure kind."""
        if status_code == NOT_FOUND_STATUS:
            return cls.NOT_FOUND
        if status_code == FORBIDDEN_STATUS:
            return cls.FORBIDDEN
        return cls.TRANSFER_ERROR


class CacheStatus(str, Enum):
    """Resolution status of a controller's current request."""

    IDLE = "idle"  # Nothing submitted yet
    LOCAL = "local"  # Local source, served as-is
    CHECKING = "checking"  # Cache lookup in flight
    DOWNLOADING = "downloading"  # Miss, download job running
    CACHED = "cached"  # Valid entry on disk
    OFFLINE = "offline"  # Miss while unreachable, waiting for network
    UNCACHEABLE = "uncacheable"  # Download or directory failure


@dataclass(frozen=True)
class QueryKeyPolicy:
    """Selection of query parameters that feed the cache key."""

    mode: QueryMode = QueryMode.NONE
    names: tuple[str, ...] = ()

    @classmethod
    def from_value(cls, value: bool | list[str] | tuple[str, ...] | None) -> QueryKeyPolicy:
        """Build a policy from the descriptor form ``False | True | [names]``."""
        if isinstance(value, QueryKeyPolicy):
            return value
        if isinstance(value, (list, tuple)):
            return cls(mode=QueryMode.NAMES, names=tuple(str(name) for name in value))
        if value:
            return cls(mode=QueryMode.ALL)
        return cls()


NO_QUERY = QueryKeyPolicy()


@dataclass(frozen=True)
class ResourceRequest:
    """Immutable request for one logical resource.

    A request is created on each new source assignment and never mutated.
    """

    uri: str
    namespace: str
    query_key_policy: QueryKeyPolicy = NO_QUERY
    download_in_background: bool = False
    scheme: str = "https"

    @classmethod
    def create(
        cls,
        uri: str,
        use_query_params_in_cache_key: bool | list[str] | tuple[str, ...] = False,
        download_in_background: bool = False,
    ) -> ResourceRequest:
        """Parse and validate a URI into a request.

        Args:
            uri: Remote ``http(s)`` URI, ``file://`` URI or local path.
            use_query_params_in_cache_key: ``False``, ``True`` or a list of names.
            download_in_background: Hint passed through to the transport.

        Raises:
            InvalidRequestError: If the URI is empty, holds control characters
                or cannot be parsed.
        """
        if not isinstance(uri, str) or not uri.strip():
            raise InvalidRequestError("Resource URI is empty", {"uri": uri})

        uri = uri.strip()
        if any(ord(ch) < 0x20 or ord(ch) == 0x7F for ch in uri):
            raise InvalidRequestError(
                "Resource URI contains control characters", {"uri": uri}
            )
        try:
            parts = urlsplit(uri)
            port = parts.port
        except ValueError as e:
            raise InvalidRequestError(
                "Resource URI could not be parsed", {"uri": uri, "reason": str(e)}
            ) from e

        scheme = parts.scheme.lower()
        if scheme in REMOTE_SCHEMES:
            if not parts.hostname:
                raise InvalidRequestError(
                    "Remote resource URI has no host", {"uri": uri}
                )
            namespace = parts.hostname.lower()
            if port is not None:
                namespace = f"{namespace}:{port}"
        elif scheme in LOCAL_SCHEMES or len(scheme) == 1:
            # Single-letter schemes are Windows drive letters
            namespace = ""
            scheme = "file"
        else:
            raise InvalidRequestError(
                "Unsupported resource URI scheme", {"uri": uri, "scheme": scheme}
            )

        return cls(
            uri=uri,
            namespace=namespace,
            query_key_policy=QueryKeyPolicy.from_value(use_query_params_in_cache_key),
            download_in_background=download_in_background,
            scheme=scheme,
        )

    @classmethod
    def from_descriptor(cls, descriptor: dict[str, Any]) -> ResourceRequest:
        """Build a request from a ``{"uri", "useQueryParamsInCacheKey", ...}`` mapping."""
        if not isinstance(descriptor, dict) or "uri" not in descriptor:
            raise InvalidRequestError(
                "Resource descriptor has no uri", {"descriptor": descriptor}
            )
        return cls.create(
            descriptor["uri"],
            use_query_params_in_cache_key=descriptor.get("useQueryParamsInCacheKey", False),
            download_in_background=bool(descriptor.get("downloadInBackground", False)),
        )

    @property
    def is_remote(self) -> bool:
        return self.scheme in REMOTE_SCHEMES

    @property
    def local_path(self) -> Path | None:
        """Filesystem path of a local source, None for remote requests."""
        if self.is_remote:
            return None
        parts = urlsplit(self.uri)
        if parts.scheme.lower() == "file":
            return Path(parts.path)
        return Path(self.uri)


@dataclass(frozen=True)
class CacheEntry:
    """A cached file on disk.

    Valid iff the file exists and is non-empty; validity is re-derived from
    disk on each lookup rather than tracked here.
    """

    key: str
    file_path: Path
    size_bytes: int

    @property
    def uri(self) -> str:
        """``file://`` URI for handing the entry to a renderer."""
        return self.file_path.resolve().as_uri()


@dataclass(frozen=True)
class BeginInfo:
    """Transport begin notification."""

    job_id: str
    status_code: int
    content_length: int | None = None


@dataclass(frozen=True)
class ProgressInfo:
    """Transport progress notification."""

    job_id: str
    bytes_written: int
    content_length: int | None = None

    @property
    def is_complete(self) -> bool:
        """True when every announced byte has been written."""
        return (
            self.content_length is not None
            and self.content_length > 0
            and self.bytes_written == self.content_length
        )


@dataclass(frozen=True)
class ConnectivityState:
    """Process-wide network reachability."""

    reachable: bool
    changed_at: datetime = field(default_factory=utc_now)

    def __bool__(self) -> bool:
        return self.reachable


@dataclass(frozen=True)
class CacheState:
    """Authoritative resolution state of a controller.

    Only the controller's transition method produces new values.
    """

    status: CacheStatus = CacheStatus.IDLE
    request: ResourceRequest | None = None
    entry: CacheEntry | None = None
    failure: FailureKind | None = None
    error: str | None = None

    @property
    def cacheable(self) -> bool:
        return self.status != CacheStatus.UNCACHEABLE

    @property
    def cached_path(self) -> Path | None:
        """Path of the surfaced cache file, if any."""
        if self.status == CacheStatus.CACHED and self.entry is not None:
            return self.entry.file_path
        return None

    def evolve(self, **changes: Any) -> CacheState:
        """Return a copy with the given fields replaced."""
        return replace(self, **changes)
