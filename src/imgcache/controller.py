"""
Resource cache controller.

One controller serves one logical display slot. Each submit() supersedes the
previous request: the previous job is cancelled synchronously, then the new
request runs through lookup -> connectivity gate -> directory -> eviction of
the slot's previous file -> download.

All state lives in a single CacheState value that only _transition() writes.
Every write carries the generation it was issued under, and job callbacks are
matched against the currently tracked job, so late completions from
superseded work are dropped instead of overwriting newer state.

Two controllers writing the same cache key at once is not supported; the
cache assumes one controller per slot.
"""

from __future__ import annotations

import asyncio
from typing import Callable

from imgcache.cache.keys import key_for_request
from imgcache.cache.store import CacheStore
from imgcache.config import Settings, get_settings
from imgcache.exceptions import CacheDirectoryError
from imgcache.logging import get_logger, log_context
from imgcache.network.connectivity import ConnectivityMonitor, get_connectivity_monitor
from imgcache.network.download import DownloadJob
from imgcache.network.transport import HttpxTransport, ProgressCallback, Transport
from imgcache.types import (
    UNCACHEABLE_STATUSES,
    BeginInfo,
    CacheEntry,
    CacheState,
    CacheStatus,
    ConnectivityState,
    FailureKind,
    JobState,
    ProgressInfo,
    ResourceRequest,
    generate_id,
)

logger = get_logger(__name__)

StateListener = Callable[[CacheState], None]


class ResourceCacheController:
    """Resolves resource requests to cached files for one display slot."""

    def __init__(
        self,
        store: CacheStore | None = None,
        transport: Transport | None = None,
        connectivity: ConnectivityMonitor | None = None,
        *,
        check_network: bool | None = None,
        network_available: bool | None = None,
        settings: Settings | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> None:
        """Initialize the controller.

        Args:
            store: Cache store. Defaults to one rooted at settings.CACHE_ROOT.
            transport: Download transport. Defaults to an HttpxTransport owned
                (and closed) by this controller.
            connectivity: Monitor to subscribe to. Defaults to the
                process-wide monitor.
            check_network: Subscribe to connectivity changes. Defaults to
                settings.CHECK_NETWORK.
            network_available: Initial reachability before the monitor
                reports. Defaults to settings.NETWORK_AVAILABLE.
            settings: Settings used for the defaults above.
            on_progress: Called with progress of the current download only.
        """
        self.settings = settings or get_settings()
        self.controller_id = generate_id("ctl")

        self.store = store or CacheStore(
            self.settings.CACHE_ROOT,
            exclude_from_backup=self.settings.EXCLUDE_FROM_BACKUP,
        )
        self.transport: Transport = transport or HttpxTransport(
            timeout=self.settings.REQUEST_TIMEOUT,
            chunk_size=self.settings.CHUNK_SIZE,
            user_agent=self.settings.USER_AGENT,
        )
        self._owns_transport = transport is None

        self.check_network = (
            self.settings.CHECK_NETWORK if check_network is None else check_network
        )
        self._network_available = (
            self.settings.NETWORK_AVAILABLE if network_available is None else network_available
        )
        self._on_progress = on_progress

        self._state = CacheState()
        self._generation = 0
        self._job: DownloadJob | None = None
        self._downloading = False
        self._previous_entry: CacheEntry | None = None
        self._tasks: set[asyncio.Task[CacheState]] = set()
        self._cancelled_jobs: set[DownloadJob] = set()
        self._listeners: list[StateListener] = []
        self._closed = False

        self._connectivity: ConnectivityMonitor | None = None
        self._subscription: str | None = None
        if self.check_network:
            self._connectivity = connectivity or get_connectivity_monitor()
            # Delivers the current state right away
            self._subscription = self._connectivity.subscribe(self._handle_connectivity_change)

    async def __aenter__(self) -> ResourceCacheController:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    # Read-only views

    @property
    def state(self) -> CacheState:
        return self._state

    @property
    def downloading(self) -> bool:
        return self._downloading

    @property
    def network_available(self) -> bool:
        return self._network_available

    @property
    def active_job(self) -> DownloadJob | None:
        return self._job

    @property
    def closed(self) -> bool:
        return self._closed

    def add_listener(self, listener: StateListener) -> Callable[[], None]:
        """Register a state listener.

        Returns:
            A callable that removes the listener.
        """
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    # Public operations

    def submit(self, request: ResourceRequest) -> asyncio.Task[CacheState]:
        """Resolve a request, superseding whatever this controller was doing.

        The previous job is cancelled before this returns. Never raises for
        cache or network failures; those end up in the resolved state.

        Returns:
            Task resolving with the state this request settled in (or the
            newer state, if a later submit superseded it).

        Raises:
            RuntimeError: If the controller has been torn down.
        """
        if self._closed:
            raise RuntimeError("ResourceCacheController has been torn down")

        superseded = self._cancel_active_job()
        self._generation += 1
        generation = self._generation
        self._transition(generation, CacheState(status=CacheStatus.CHECKING, request=request))

        with log_context(
            controller_id=self.controller_id,
            namespace=request.namespace or None,
        ):
            task = asyncio.create_task(self._process(request, generation, superseded))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def resolve(self, request: ResourceRequest) -> CacheState:
        """Submit a request and wait for it to settle."""
        return await self.submit(request)

    def set_network_available(self, available: bool) -> None:
        """Update reachability by hand, for controllers without a monitor.

        Going from unreachable to reachable retries a request that settled
        OFFLINE. Requests in any other state are left alone.
        """
        if available == self._network_available:
            return
        self._network_available = available
        logger.debug("Network availability changed", available=available)

        if (
            available
            and not self._closed
            and self._state.status == CacheStatus.OFFLINE
            and self._state.request is not None
        ):
            try:
                asyncio.get_running_loop()
            except RuntimeError:
                logger.debug("Network back outside an event loop; not retrying")
                return
            logger.info("Network back, retrying offline request", uri=self._state.request.uri)
            self.submit(self._state.request)

    def teardown(self) -> None:
        """Stop reacting: unsubscribe from connectivity and cancel the active job."""
        if self._closed:
            return
        self._closed = True

        if self._connectivity is not None:
            self._connectivity.unsubscribe(self._subscription)
        self._subscription = None

        # Invalidates every in-flight pipeline
        self._generation += 1
        self._cancel_active_job()
        for task in self._tasks:
            task.cancel()
        self._listeners.clear()
        logger.debug("Controller torn down", controller=self.controller_id)

    async def aclose(self) -> None:
        """Tear down and wait for cancelled jobs to clean up."""
        self.teardown()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        jobs = list(self._cancelled_jobs)
        self._cancelled_jobs.clear()
        for job in jobs:
            await job.wait()
        if self._owns_transport and isinstance(self.transport, HttpxTransport):
            await self.transport.close()

    # Internals

    def _is_current(self, generation: int) -> bool:
        return generation == self._generation

    def _transition(self, generation: int, state: CacheState) -> bool:
        """Replace the state if the writer is still current."""
        if not self._is_current(generation):
            logger.debug("Dropping stale state write", status=state.status.value)
            return False

        self._state = state
        for listener in list(self._listeners):
            try:
                listener(state)
            except Exception:
                logger.exception("State listener failed")
        return True

    def _cancel_active_job(self) -> DownloadJob | None:
        job = self._job
        if job is None:
            return None
        self._job = None
        self._downloading = False
        job.cancel()
        # Kept until aclose() so shutdown can wait for partial-file removal
        self._cancelled_jobs = {j for j in self._cancelled_jobs if not j.done}
        self._cancelled_jobs.add(job)
        return job

    def _handle_connectivity_change(self, state: ConnectivityState) -> None:
        self.set_network_available(state.reachable)

    def _handle_begin(self, info: BeginInfo) -> None:
        if self._job is None or self._job.job_id != info.job_id:
            return
        if info.status_code not in UNCACHEABLE_STATUSES:
            self._downloading = True

    def _handle_progress(self, info: ProgressInfo) -> None:
        if self._job is None or self._job.job_id != info.job_id:
            return
        if info.is_complete:
            self._downloading = False
        if self._on_progress:
            self._on_progress(info)

    async def _process(
        self,
        request: ResourceRequest,
        generation: int,
        superseded: DownloadJob | None,
    ) -> CacheState:
        if not request.is_remote:
            self._transition(generation, CacheState(status=CacheStatus.LOCAL, request=request))
            return self._state

        key = key_for_request(request)
        target_path = self.store.path_for(request.namespace, key)

        if superseded is not None and superseded.target_path == target_path:
            # Its partial file must be gone before we look at the disk
            await superseded.wait()
            if not self._is_current(generation):
                return self._state

        entry = await self.store.lookup(request.namespace, key)
        if not self._is_current(generation):
            return self._state

        if entry is not None:
            logger.info("Serving from cache", uri=request.uri, path=str(entry.file_path))
            self._previous_entry = entry
            self._transition(
                generation,
                CacheState(status=CacheStatus.CACHED, request=request, entry=entry),
            )
            return self._state

        if not self._network_available:
            logger.info("Cache miss while offline", uri=request.uri)
            self._transition(generation, CacheState(status=CacheStatus.OFFLINE, request=request))
            return self._state

        try:
            await self.store.ensure_directory(request.namespace)
        except CacheDirectoryError as e:
            logger.error("Cache directory unavailable", error=str(e))
            await self.store.delete(target_path)
            self._transition(
                generation,
                CacheState(
                    status=CacheStatus.UNCACHEABLE,
                    request=request,
                    failure=FailureKind.DIRECTORY_ERROR,
                    error=str(e),
                ),
            )
            return self._state

        if not self._is_current(generation):
            return self._state

        previous = self._previous_entry
        if previous is not None and previous.file_path != target_path:
            await self.store.delete(previous.file_path)
            self._previous_entry = None
            if not self._is_current(generation):
                return self._state

        leftover = self._cancel_active_job()
        if leftover is not None:
            await leftover.wait()
            if not self._is_current(generation):
                return self._state

        job = DownloadJob.start(
            self.transport,
            self.store,
            request.uri,
            target_path,
            on_begin=self._handle_begin,
            on_progress=self._handle_progress,
            background=request.download_in_background,
        )
        self._job = job
        self._transition(
            generation, CacheState(status=CacheStatus.DOWNLOADING, request=request)
        )

        final_state = await job.wait()
        if self._job is not job:
            logger.debug("Ignoring completion of superseded job", job=job.job_id)
            return self._state

        self._job = None
        self._downloading = False

        if final_state == JobState.COMPLETED:
            entry = await self.store.lookup(request.namespace, key)
            if entry is not None:
                if self._is_current(generation):
                    self._previous_entry = entry
                self._transition(
                    generation,
                    CacheState(status=CacheStatus.CACHED, request=request, entry=entry),
                )
                return self._state
            failure = FailureKind.TRANSFER_ERROR
            error = "downloaded file is empty"
        else:
            failure = job.failure or FailureKind.TRANSFER_ERROR
            error = job.error

        if self._is_current(generation):
            # The job already removed its file; a newer request may own the path now
            await self.store.delete(target_path)
        logger.info("Resource uncacheable", uri=request.uri, failure=failure.value)
        self._transition(
            generation,
            CacheState(
                status=CacheStatus.UNCACHEABLE,
                request=request,
                failure=failure,
                error=error,
            ),
        )
        return self._state
