"""
Download transport: fetch a URI straight into a file.

A transport starts a download and hands back a TransportHandle whose task
resolves with the final HTTP status code, or raises TransferError when the
transfer breaks below the HTTP level. Callbacks:

- on_begin(BeginInfo) once the response headers arrive
- on_progress(ProgressInfo) after each chunk has been written and flushed

404 and 403 responses are reported through on_begin and the task result,
and no body is written for them.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Protocol

import httpx

from imgcache.exceptions import TransferError
from imgcache.logging import get_logger, log_context
from imgcache.types import BeginInfo, ProgressInfo, generate_id, is_success_status

logger = get_logger(__name__)

REQUEST_TIMEOUT = 30.0  # seconds

DOWNLOAD_CHUNK_SIZE = 64 * 1024

BeginCallback = Callable[[BeginInfo], None]
ProgressCallback = Callable[[ProgressInfo], None]


@dataclass
class TransportHandle:
    """A started download."""

    job_id: str
    task: asyncio.Task[int]
    background: bool = False


class Transport(Protocol):
    """Capability the download job drives."""

    def download(
        self,
        uri: str,
        target_path: Path,
        *,
        on_begin: BeginCallback | None = None,
        on_progress: ProgressCallback | None = None,
        background: bool = False,
    ) -> TransportHandle: ...

    def cancel(self, handle: TransportHandle) -> None: ...


def _content_length(response: httpx.Response) -> int | None:
    # Content-Length counts encoded bytes, but the body is written decoded
    encoding = response.headers.get("content-encoding", "identity").strip().lower()
    if encoding not in ("", "identity"):
        return None
    header = response.headers.get("content-length")
    if header is None:
        return None
    try:
        length = int(header)
    except ValueError:
        return None
    return length if length >= 0 else None


class HttpxTransport:
    """Streams downloads to disk with an httpx.AsyncClient.

    Features:
    - One asyncio task per download, cancelled by cancel()
    - Chunked streaming with flush before each progress report
    - Shared client with redirects followed
    """

    def __init__(
        self,
        timeout: float = REQUEST_TIMEOUT,
        chunk_size: int = DOWNLOAD_CHUNK_SIZE,
        user_agent: str | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the transport.

        Args:
            timeout: Connect/read timeout in seconds.
            chunk_size: Bytes per streamed chunk.
            user_agent: Optional User-Agent header.
            client: Optional pre-built client (tests inject a MockTransport here).
        """
        self.timeout = timeout
        self.chunk_size = chunk_size
        self.user_agent = user_agent
        self._client = client
        self._owns_client = client is None
        self._handles: dict[str, TransportHandle] = {}

    def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            headers = {"User-Agent": self.user_agent} if self.user_agent else None
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                follow_redirects=True,
                headers=headers,
            )
        return self._client

    async def close(self) -> None:
        """Cancel running downloads and close the HTTP client."""
        for handle in list(self._handles.values()):
            self.cancel(handle)
        if self._handles:
            await asyncio.gather(
                *(handle.task for handle in self._handles.values()),
                return_exceptions=True,
            )
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    @property
    def active_count(self) -> int:
        return len(self._handles)

    def download(
        self,
        uri: str,
        target_path: Path,
        *,
        on_begin: BeginCallback | None = None,
        on_progress: ProgressCallback | None = None,
        background: bool = False,
    ) -> TransportHandle:
        """Start streaming ``uri`` into ``target_path``.

        Must be called from a running event loop.
        """
        job_id = generate_id("job")
        with log_context(job_id=job_id):
            task = asyncio.create_task(
                self._run(job_id, uri, Path(target_path), on_begin, on_progress)
            )
        handle = TransportHandle(job_id=job_id, task=task, background=background)
        self._handles[job_id] = handle
        task.add_done_callback(lambda _: self._handles.pop(job_id, None))
        logger.debug("Download started", uri=uri, background=background)
        return handle

    def cancel(self, handle: TransportHandle) -> None:
        """Abort a download. Safe to call on a finished handle."""
        if not handle.task.done():
            handle.task.cancel()
            logger.debug("Download cancelled", job=handle.job_id)

    async def _run(
        self,
        job_id: str,
        uri: str,
        target_path: Path,
        on_begin: BeginCallback | None,
        on_progress: ProgressCallback | None,
    ) -> int:
        client = self._get_client()
        try:
            async with client.stream("GET", uri) as response:
                status_code = response.status_code
                content_length = _content_length(response)
                if on_begin:
                    on_begin(BeginInfo(job_id, status_code, content_length))

                if not is_success_status(status_code):
                    logger.info("Download rejected", uri=uri, status=status_code)
                    return status_code

                bytes_written = 0
                with open(target_path, "wb") as f:
                    async for chunk in response.aiter_bytes(self.chunk_size):
                        f.write(chunk)
                        f.flush()
                        bytes_written += len(chunk)
                        if on_progress:
                            on_progress(ProgressInfo(job_id, bytes_written, content_length))

                logger.debug("Download finished", uri=uri, bytes=bytes_written)
                return status_code

        except httpx.HTTPError as e:
            raise TransferError(
                "Download failed",
                {"uri": uri, "target_path": str(target_path), "error": str(e)},
            ) from e
        except OSError as e:
            raise TransferError(
                "Failed to write download",
                {"uri": uri, "target_path": str(target_path), "error": str(e)},
            ) from e
