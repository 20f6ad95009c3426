"""
Download job: one fetch-to-file operation and its state machine.

    PENDING --begin(2xx..)--> IN_PROGRESS --bytes == length--> COMPLETED
       |                          |--final 2xx-----------> COMPLETED
       |--begin(404/403)--> FAILED(NOT_FOUND|FORBIDDEN)
                                  |--final 404/403-------> FAILED(NOT_FOUND|FORBIDDEN)
                                  |--other status/error--> FAILED(TRANSFER_ERROR)
    any non-terminal --cancel()--> CANCELLED

Completion is detected two ways: the transport's final status, and progress
reaching the announced content length. The first terminal state wins, so both
paths land on the same COMPLETED. On FAILED or CANCELLED the partial file is
removed before wait() returns. A cancelled job settles through its own cleanup
task and does not wait for the transport task to end.
"""

from __future__ import annotations

import asyncio
from pathlib import Path

from imgcache.cache.store import CacheStore
from imgcache.logging import get_logger, log_context
from imgcache.network.transport import (
    BeginCallback,
    ProgressCallback,
    Transport,
    TransportHandle,
)
from imgcache.types import (
    UNCACHEABLE_STATUSES,
    BeginInfo,
    FailureKind,
    JobState,
    ProgressInfo,
    is_success_status,
)

logger = get_logger(__name__)


class DownloadJob:
    """A single in-flight download owned by one controller."""

    def __init__(
        self,
        transport: Transport,
        store: CacheStore,
        source_uri: str,
        target_path: Path,
        on_begin: BeginCallback | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> None:
        self.transport = transport
        self.store = store
        self.source_uri = source_uri
        self.target_path = Path(target_path)
        self._on_begin = on_begin
        self._on_progress = on_progress

        self.state = JobState.PENDING
        self.failure: FailureKind | None = None
        self.status_code: int | None = None
        self.bytes_written = 0
        self.content_length: int | None = None
        self.error: str | None = None

        self._handle: TransportHandle | None = None
        self._done: asyncio.Future[JobState] = asyncio.get_running_loop().create_future()
        self._watcher: asyncio.Task[None] | None = None
        self._settling = False
        self._cancel_cleanup: asyncio.Task[None] | None = None

    @classmethod
    def start(
        cls,
        transport: Transport,
        store: CacheStore,
        source_uri: str,
        target_path: Path,
        on_begin: BeginCallback | None = None,
        on_progress: ProgressCallback | None = None,
        background: bool = False,
    ) -> DownloadJob:
        """Create a job and hand it to the transport.

        Must be called from a running event loop.
        """
        job = cls(transport, store, source_uri, target_path, on_begin, on_progress)
        job._handle = transport.download(
            source_uri,
            job.target_path,
            on_begin=job._handle_begin,
            on_progress=job._handle_progress,
            background=background,
        )
        with log_context(job_id=job._handle.job_id):
            job._watcher = asyncio.create_task(job._watch())
        logger.info("Download job started", job=job.job_id, uri=source_uri)
        return job

    @property
    def job_id(self) -> str | None:
        return self._handle.job_id if self._handle else None

    @property
    def is_active(self) -> bool:
        return not self.state.is_terminal

    @property
    def done(self) -> bool:
        """True once the terminal state has been reported upward."""
        return self._done.done()

    async def wait(self) -> JobState:
        """Wait for the terminal state (after any cleanup)."""
        return await asyncio.shield(self._done)

    def cancel(self) -> None:
        """Cancel the job.

        Marks the job CANCELLED immediately and aborts the transport. The
        partial file is removed by a cleanup task scheduled here, so wait()
        returns even if the transport never finishes its task.
        No-op on a terminal job.
        """
        if self.state.is_terminal:
            return
        self.state = JobState.CANCELLED
        if self._handle is not None:
            self.transport.cancel(self._handle)
        if self._watcher is not None and not self._settling:
            self._watcher.cancel()
        loop = self._done.get_loop()
        if not loop.is_closed():
            self._cancel_cleanup = loop.create_task(self._settle_cancelled())
        logger.info("Download job cancelled", job=self.job_id)

    # Transport callbacks

    def _handle_begin(self, info: BeginInfo) -> None:
        if self.state.is_terminal:
            return
        self.status_code = info.status_code
        self.content_length = info.content_length

        if info.status_code in UNCACHEABLE_STATUSES:
            # Stays out of IN_PROGRESS; the watcher finishes it off
            self.failure = FailureKind.from_status(info.status_code)
        else:
            self.state = JobState.IN_PROGRESS

        if self._on_begin:
            self._on_begin(info)

    def _handle_progress(self, info: ProgressInfo) -> None:
        if self.state.is_terminal:
            return
        self.bytes_written = info.bytes_written
        if info.content_length is not None:
            self.content_length = info.content_length

        if self._on_progress:
            self._on_progress(info)

        if self.state == JobState.IN_PROGRESS and info.is_complete:
            logger.debug("Completion inferred from progress", bytes=info.bytes_written)
            self._finish(JobState.COMPLETED)

    # Terminal handling

    def _finish(self, state: JobState, failure: FailureKind | None = None) -> None:
        if not self.state.is_terminal:
            self.state = state
            self.failure = failure
        if not self._done.done():
            self._done.set_result(self.state)

    async def _watch(self) -> None:
        assert self._handle is not None
        task = self._handle.task
        # asyncio.wait never raises the inner task's outcome, which keeps a
        # cancelled transport apart from a cancelled watcher
        await asyncio.wait({task})
        self._settling = True

        if self.state == JobState.CANCELLED:
            # _settle_cancelled() owns cleanup
            if not task.cancelled() and task.exception() is not None:
                logger.debug("Cancelled transport raised", error=str(task.exception()))
            return

        if self.state == JobState.COMPLETED:
            # Progress already saw every announced byte land on disk
            if not task.cancelled() and task.exception() is not None:
                logger.warning(
                    "Transport failed after completion", error=str(task.exception())
                )
            return

        if task.cancelled():
            self.error = "transport cancelled"
            await self._cleanup()
            self._finish(JobState.FAILED, FailureKind.TRANSFER_ERROR)
            return

        error = task.exception()
        if error is not None:
            self.error = str(error)
            logger.warning("Download failed", uri=self.source_uri, error=self.error)
            await self._cleanup()
            self._finish(JobState.FAILED, FailureKind.TRANSFER_ERROR)
            return

        status_code = task.result()
        self.status_code = status_code
        if is_success_status(status_code):
            self._finish(JobState.COMPLETED)
            logger.info("Download job completed", bytes=self.bytes_written)
            return

        logger.info("Download job failed", status=status_code)
        await self._cleanup()
        self._finish(JobState.FAILED, FailureKind.from_status(status_code))

    async def _settle_cancelled(self) -> None:
        await self._cleanup()
        self._finish(JobState.CANCELLED)

    async def _cleanup(self) -> None:
        await self.store.delete(self.target_path)
