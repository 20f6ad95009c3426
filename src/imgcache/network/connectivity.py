"""
Network reachability tracking.

ConnectivityMonitor holds the process-wide reachable flag. Providers push
changes with update(); controllers subscribe and read current_state() before
starting a download. ConnectivityProbe is a provider that polls an HTTP
endpoint with httpx.
"""

from __future__ import annotations

import asyncio
from typing import Callable

import httpx

from imgcache.logging import get_logger
from imgcache.types import ConnectivityState, generate_id

logger = get_logger(__name__)

ConnectivityListener = Callable[[ConnectivityState], None]


class ConnectivityMonitor:
    """Tracks reachability and notifies subscribers of transitions.

    A new subscriber receives the current state once, synchronously, so it
    never has to wait for the next transition to learn where things stand.
    """

    def __init__(self, reachable: bool = False) -> None:
        self._state = ConnectivityState(reachable=reachable)
        self._listeners: dict[str, ConnectivityListener] = {}

    def current_state(self) -> ConnectivityState:
        """Get the current reachability."""
        return self._state

    @property
    def subscriber_count(self) -> int:
        return len(self._listeners)

    def subscribe(self, listener: ConnectivityListener) -> str:
        """Register a listener and deliver the current state to it.

        Returns:
            Handle to pass to unsubscribe().
        """
        handle = generate_id("sub")
        self._listeners[handle] = listener
        self._deliver(handle, listener, self._state)
        return handle

    def unsubscribe(self, handle: str | None) -> None:
        """Remove a listener. Unknown or None handles are ignored."""
        if handle is not None:
            self._listeners.pop(handle, None)

    def update(self, reachable: bool) -> None:
        """Record a reachability reading; notifies only on a transition."""
        if reachable == self._state.reachable:
            return

        self._state = ConnectivityState(reachable=reachable)
        logger.info("Connectivity changed", reachable=reachable)

        # Snapshot: listeners may unsubscribe while being notified
        for handle, listener in list(self._listeners.items()):
            if handle in self._listeners:
                self._deliver(handle, listener, self._state)

    def _deliver(
        self, handle: str, listener: ConnectivityListener, state: ConnectivityState
    ) -> None:
        try:
            listener(state)
        except Exception:
            logger.exception("Connectivity listener failed", handle=handle)


_monitor: ConnectivityMonitor | None = None


def get_connectivity_monitor() -> ConnectivityMonitor:
    """Get the process-wide connectivity monitor."""
    global _monitor
    if _monitor is None:
        _monitor = ConnectivityMonitor()
    return _monitor


def reset_connectivity_monitor() -> None:
    """Drop the process-wide monitor (useful for testing)."""
    global _monitor
    _monitor = None


class ConnectivityProbe:
    """Polls an HTTP endpoint and feeds the result into a monitor.

    Any HTTP response below 500 counts as reachable; transport errors and
    5xx responses count as unreachable.
    """

    def __init__(
        self,
        monitor: ConnectivityMonitor,
        url: str,
        interval: float = 30.0,
        timeout: float = 5.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the probe.

        Args:
            monitor: Monitor to update.
            url: Endpoint to probe with HEAD.
            interval: Seconds between probes while running.
            timeout: Per-probe timeout in seconds.
            client: Optional pre-built client (tests inject a MockTransport here).
        """
        self.monitor = monitor
        self.url = url
        self.interval = interval
        self.timeout = timeout
        self._client = client
        self._owns_client = client is None
        self._task: asyncio.Task[None] | None = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout, follow_redirects=True)
        return self._client

    async def check_once(self) -> bool:
        """Probe once and update the monitor.

        Returns:
            The reachability that was recorded.
        """
        try:
            response = await self._get_client().head(self.url)
            reachable = response.status_code < 500
        except httpx.HTTPError as e:
            logger.debug("Connectivity probe failed", url=self.url, error=str(e))
            reachable = False

        self.monitor.update(reachable)
        return reachable

    async def _run(self) -> None:
        while True:
            await self.check_once()
            await asyncio.sleep(self.interval)

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start polling in a background task. No-op if already running."""
        if self.running:
            return
        self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        """Stop polling and close the client if the probe created it."""
        if self._task is not None:
            self._task.cancel()
            await asyncio.gather(self._task, return_exceptions=True)
            self._task = None
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None
