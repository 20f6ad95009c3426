"""
Tests for cache key derivation.
"""

from __future__ import annotations

import hashlib
from pathlib import Path

import pytest

from imgcache.cache.keys import (
    cache_path_for,
    cacheable_string,
    derive_key,
    extension_of,
    key_for_request,
    namespace_for,
)
from imgcache.types import QueryKeyPolicy, QueryMode, ResourceRequest


def sha1(text: str) -> str:
    return hashlib.sha1(text.encode("utf-8")).hexdigest()


class TestDeriveKey:
    """Tests for derive_key."""

    def test_path_hash_with_extension(self) -> None:
        """Key is sha1 of the path plus the path's extension."""
        key = derive_key("https://img.example.com/a/b.png")
        assert key == sha1("/a/b.png") + ".png"

    def test_deterministic(self) -> None:
        """Same input always yields the same key."""
        uri = "https://img.example.com/photos/cat.jpeg?size=large"
        policy = QueryKeyPolicy.from_value(["size"])
        assert derive_key(uri, policy) == derive_key(uri, policy)

    def test_host_does_not_affect_key(self) -> None:
        """Hosts separate entries by namespace, not by key."""
        assert derive_key("https://a.example.com/x.png") == derive_key(
            "https://b.example.com/x.png"
        )

    def test_query_ignored_by_default(self) -> None:
        """Without a policy the query string is not part of the key."""
        assert derive_key("https://h/a.png?v=1") == derive_key("https://h/a.png?v=2")

    def test_named_query_param_changes_key(self) -> None:
        """Selected query values feed the key."""
        policy = QueryKeyPolicy.from_value(["v"])
        k1 = derive_key("https://h/a.png?v=1", policy)
        k2 = derive_key("https://h/a.png?v=2", policy)
        assert k1 != k2
        assert k1 == sha1("/a.png1") + ".png"

    def test_unselected_query_param_ignored(self) -> None:
        """Parameters outside the selection do not change the key."""
        policy = QueryKeyPolicy.from_value(["v"])
        k1 = derive_key("https://h/a.png?v=1&token=abc", policy)
        k2 = derive_key("https://h/a.png?v=1&token=xyz", policy)
        assert k1 == k2

    def test_names_follow_policy_order(self) -> None:
        """Values are appended in the order the policy lists names."""
        uri = "https://h/a.png?w=10&h=20"
        assert cacheable_string(uri, QueryKeyPolicy.from_value(["h", "w"])) == "/a.png2010"
        assert cacheable_string(uri, QueryKeyPolicy.from_value(["w", "h"])) == "/a.png1020"

    def test_all_query_params(self) -> None:
        """The 'all' policy appends the whole query string."""
        policy = QueryKeyPolicy.from_value(True)
        assert policy.mode == QueryMode.ALL
        assert cacheable_string("https://h/a.png?x=1&y=2", policy) == "/a.pngx=1&y=2"
        assert derive_key("https://h/a.png?x=1", policy) != derive_key(
            "https://h/a.png?x=2", policy
        )

    def test_no_extension(self) -> None:
        """Paths without a dot yield a bare digest."""
        key = derive_key("https://h/images/avatar")
        assert key == sha1("/images/avatar")
        assert "." not in key

    def test_dot_in_directory_only(self) -> None:
        """A dot in a directory name is not a file extension."""
        key = derive_key("https://h/v1.2/avatar")
        assert key == sha1("/v1.2/avatar")

    def test_empty_path(self) -> None:
        """A bare host hashes as the root path."""
        assert derive_key("https://h") == sha1("/")


class TestExtensionOf:
    """Tests for extension extraction."""

    @pytest.mark.parametrize(
        ("path", "expected"),
        [
            ("/a/b.png", "png"),
            ("/a/b.tar.gz", "gz"),
            ("/a/b", None),
            ("/a/b.", None),
            ("/a.d/b", None),
        ],
    )
    def test_extension(self, path: str, expected: str | None) -> None:
        """Only the text after the last dot of the final segment counts."""
        assert extension_of(path) == expected


class TestNamespace:
    """Tests for namespace and path helpers."""

    def test_namespace_is_lowercase_host(self) -> None:
        """Namespace is the lowercase host."""
        assert namespace_for("https://IMG.Example.com/a.png") == "img.example.com"

    def test_namespace_keeps_port(self) -> None:
        """An explicit port keeps hosts apart."""
        assert namespace_for("http://localhost:8080/a.png") == "localhost:8080"

    def test_cache_path_for_request(self) -> None:
        """Target path is <root>/<namespace>/<key>."""
        request = ResourceRequest.create("https://img.example.com/a/b.png")
        path = cache_path_for(Path("/cache"), request)
        assert path == Path("/cache") / "img.example.com" / key_for_request(request)
