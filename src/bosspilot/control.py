"""Run control shared between the pipeline, the monitor and the caller."""

from __future__ import annotations

import asyncio
import inspect
import logging
import threading
from typing import Any, Callable

from bosspilot.models import ProgressMessage, Severity

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[ProgressMessage], Any]

_CLOSED = object()


class CancellationToken:
    """A stop flag polled at well-defined yield points."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def reset(self) -> None:
        self._event.clear()


class ProgressBus:
    """Bounded, non-blocking progress channel.

    :meth:`publish` never waits: when the queue is full the new message is
    dropped and counted in :attr:`dropped`.
    """

    def __init__(self, platform: str, capacity: int = 100) -> None:
        self._platform = platform
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=capacity)
        self._closed = False
        self.dropped = 0

    def publish(
        self,
        severity: Severity,
        message: str,
        current: int | None = None,
        total: int | None = None,
    ) -> bool:
        msg = ProgressMessage(self._platform, severity, message, current, total)
        try:
            self._queue.put_nowait(msg)
        except asyncio.QueueFull:
            self.dropped += 1
            logger.debug("Progress channel full, dropped: %s", message)
            return False
        return True

    def close(self) -> None:
        self._closed = True
        try:
            self._queue.put_nowait(_CLOSED)
        except asyncio.QueueFull:
            # pump() notices _closed once it has drained the backlog
            pass

    def drain_nowait(self) -> list[ProgressMessage]:
        items: list[ProgressMessage] = []
        while not self._queue.empty():
            item = self._queue.get_nowait()
            if item is not _CLOSED:
                items.append(item)
        return items

    async def pump(self, callback: ProgressCallback) -> None:
        """Forward queued messages to *callback* until the bus is closed."""
        while True:
            if self._closed and self._queue.empty():
                return
            item = await self._queue.get()
            if item is _CLOSED:
                return
            try:
                result = callback(item)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("Progress callback failed.")


class RunState:
    """Mutable state shared by one pipeline and its session monitor."""

    def __init__(self) -> None:
        self.cancel_token = CancellationToken()
        self.surface_lock = asyncio.Lock()
        self._lock = threading.Lock()
        self._running = False

    @property
    def running(self) -> bool:
        with self._lock:
            return self._running

    def try_begin(self) -> bool:
        """Mark a run as started; ``False`` if one is already in progress."""
        with self._lock:
            if self._running:
                return False
            self._running = True
            self.cancel_token.reset()
            return True

    def finish(self) -> None:
        with self._lock:
            self._running = False
