"""Rolling output buffer for REPL sessions."""

from __future__ import annotations

import asyncio
import threading
from collections import deque


class RollingBuffer:
    """Thread-safe rolling buffer of REPL output.

    Output from a PTY arrives in arbitrary chunks, so the buffer keeps the
    completed lines (up to ``max_lines``) separately from the trailing
    *open* line that has not seen its newline yet. A REPL prompt such as
    ``0> `` normally sits in the open line until the user submits input.

    An ``asyncio.Event`` is set whenever new data arrives, allowing
    consumers to ``await`` instead of polling.  Call ``attach_loop()``
    once from the asyncio thread to enable this.
    """

    def __init__(self, max_lines: int = 10_000) -> None:
        self._lines: deque[str] = deque(maxlen=max_lines)
        self._partial: str = ""
        self._total_lines: int = 0  # Completed lines ever added
        self._lock = threading.Lock()
        self._data_event: asyncio.Event | None = None
        self._loop: asyncio.AbstractEventLoop | None = None

    def attach_loop(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        """Attach an asyncio event loop so feed() can signal waiters.

        Must be called from the asyncio thread (or pass an explicit loop).
        """
        self._loop = loop or asyncio.get_running_loop()
        self._data_event = asyncio.Event()

    def feed(self, text: str) -> list[str]:
        """Append a chunk of cleaned output.

        Returns the lines completed by this chunk, in order.
        """
        if not text:
            return []
        pieces = (self._partial + text).split("\n")
        completed = pieces[:-1]
        with self._lock:
            self._lines.extend(completed)
            self._total_lines += len(completed)
            self._partial = pieces[-1]
        self._notify()
        return completed

    def _notify(self) -> None:
        if self._data_event is not None and self._loop is not None:
            self._loop.call_soon_threadsafe(self._data_event.set)

    async def wait_for_data(self, timeout: float | None = None) -> bool:
        """Wait until new data is fed (or timeout).

        Returns True if data arrived, False on timeout.
        """
        if self._data_event is None:
            await asyncio.sleep(0.05)
            return True
        try:
            await asyncio.wait_for(self._data_event.wait(), timeout=timeout)
            self._data_event.clear()
            return True
        except asyncio.TimeoutError:
            return False

    @property
    def current_line(self) -> str:
        """The open (not yet newline-terminated) trailing line."""
        with self._lock:
            return self._partial

    def read_tail(self, n: int = 100) -> list[str]:
        """Read the last N completed lines."""
        with self._lock:
            lines = list(self._lines)
        return lines[-n:] if len(lines) > n else lines

    @property
    def total_lines(self) -> int:
        """Total number of completed lines ever added."""
        with self._lock:
            return self._total_lines
