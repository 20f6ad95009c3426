"""
Cache key derivation.

A cache key is the SHA-1 of the URI path plus the query values selected by a
QueryKeyPolicy, suffixed with the path's file extension when it has one:

    https://img.example.com/a/b.png?v=2  --(names=["v"])-->  sha1("/a/b.png2") + ".png"

Keys are pure functions of their inputs, so they are stable across calls and
across processes.
"""

from __future__ import annotations

import hashlib
from pathlib import Path
from urllib.parse import parse_qs, urlsplit

from imgcache.types import NO_QUERY, QueryKeyPolicy, QueryMode, ResourceRequest


def cacheable_string(uri: str, policy: QueryKeyPolicy = NO_QUERY) -> str:
    """Build the string that gets hashed into a cache key.

    Args:
        uri: Resource URI.
        policy: Which query parameters take part.

    Returns:
        The path, followed by the selected query values.
    """
    parts = urlsplit(uri)
    cacheable = parts.path or "/"

    if policy.mode == QueryMode.NAMES:
        query = parse_qs(parts.query, keep_blank_values=True)
        for name in policy.names:
            if name in query:
                cacheable += query[name][0]
    elif policy.mode == QueryMode.ALL:
        cacheable += parts.query

    return cacheable


def extension_of(path: str) -> str | None:
    """Return the text after the path's last dot, or None without a usable one."""
    if "." not in path:
        return None
    extension = path.rsplit(".", 1)[1]
    if not extension or len(extension) >= len(path) or "/" in extension:
        return None
    return extension


def derive_key(uri: str, policy: QueryKeyPolicy = NO_QUERY) -> str:
    """Derive the cache key for a URI.

    Args:
        uri: Resource URI. Must already be validated (see ResourceRequest.create).
        policy: Which query parameters take part in the key.

    Returns:
        Lowercase hex SHA-1 digest, with ``.<ext>`` appended when the path
        carries a file extension.
    """
    digest = hashlib.sha1(cacheable_string(uri, policy).encode("utf-8")).hexdigest()
    extension = extension_of(urlsplit(uri).path or "/")
    return f"{digest}.{extension}" if extension else digest


def namespace_for(uri: str) -> str:
    """Cache namespace (lowercase host, with port when given) of a URI."""
    parts = urlsplit(uri)
    host = (parts.hostname or "").lower()
    if parts.port is not None:
        return f"{host}:{parts.port}"
    return host


def key_for_request(request: ResourceRequest) -> str:
    """Derive the cache key for a request using its own policy."""
    return derive_key(request.uri, request.query_key_policy)


def cache_path_for(root: Path, request: ResourceRequest) -> Path:
    """Target path ``<root>/<namespace>/<key>`` of a request."""
    return Path(root) / request.namespace / key_for_request(request)
