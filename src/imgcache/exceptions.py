"""
Custom exception hierarchy for the image cache.

All exceptions inherit from ImgCacheError, which provides optional context
for structured error handling and logging. Only InvalidRequestError is meant
to reach callers of the controller; the rest are raised by the store and
transport layers and absorbed into the resolved cache state.
"""

from __future__ import annotations

from typing import Any


class ImgCacheError(Exception):
    """Base exception for all image cache errors.

    Attributes:
        message: Human-readable error message.
        context: Optional structured context for logging/debugging.
    """

    def __init__(self, message: str, context: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def __str__(self) -> str:
        if self.context:
            ctx_str = ", ".join(f"{k}={v!r}" for k, v in self.context.items())
            return f"{self.message} ({ctx_str})"
        return self.message

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, context={self.context!r})"


class ConfigurationError(ImgCacheError):
    """Raised when configuration is invalid or missing.

    Examples:
        - Cache root that is not a directory
        - Non-HTTP connectivity probe URL
    """

    pass


class InvalidRequestError(ImgCacheError):
    """Raised when a resource request cannot be built from its descriptor.

    Context should include:
        - uri: The offending URI
        - reason: What was wrong with it
    """

    pass


class CacheDirectoryError(ImgCacheError):
    """Raised when a cache namespace directory cannot be created.

    Context should include:
        - path: The directory that could not be created
        - error: The underlying OS error
    """

    pass


class TransferError(ImgCacheError):
    """Raised when a download fails below the HTTP status level.

    Connection resets, timeouts and local write failures end up here.

    Context should include:
        - uri: The URI being downloaded
        - target_path: The file being written
    """

    pass
