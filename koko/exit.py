"""Process-wide "exit requested" signal."""

from __future__ import annotations

import asyncio
import threading
from contextlib import suppress


class ExitSignal:
    """Idempotent, broadcast cancellation flag.

    ``signal()`` may be called from any thread or task, any number of times.
    Every waiter, current or future, wakes once the flag is set.
    """

    def __init__(self) -> None:
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._waiters: set[tuple[asyncio.AbstractEventLoop, asyncio.Future[None]]] = set()

    def is_set(self) -> bool:
        """Return True once exit has been requested."""
        return self._event.is_set()

    def signal(self) -> None:
        """Request exit and wake all waiters."""
        with self._lock:
            if self._event.is_set():
                return
            self._event.set()
            waiters = list(self._waiters)
            self._waiters.clear()
        for loop, future in waiters:
            # The loop may already be closed during interpreter shutdown
            with suppress(RuntimeError):
                loop.call_soon_threadsafe(_wake, future)

    async def wait(self) -> None:
        """Wait until exit is requested; returns at once if it already was."""
        loop = asyncio.get_running_loop()
        future: asyncio.Future[None] = loop.create_future()
        entry = (loop, future)
        with self._lock:
            if self._event.is_set():
                return
            self._waiters.add(entry)
        try:
            await future
        finally:
            with self._lock:
                self._waiters.discard(entry)

    def wait_blocking(self, timeout: float | None = None) -> bool:
        """Block the calling thread until exit is requested.

        Returns:
            True if the flag is set, False on timeout.
        """
        return self._event.wait(timeout)


def _wake(future: asyncio.Future[None]) -> None:
    if not future.done():
        future.set_result(None)
