"""Wire protocol: decouples REPL sessions from the front end.

Session events flow from the session manager and the PTY layer to
whatever is displaying them. The CLI subscribes to the wire and prints
output for the session in the foreground.
"""

from __future__ import annotations

import asyncio
import enum
from dataclasses import dataclass, field
from typing import Any


class EventType(enum.Enum):
    SESSION_START = "session_start"
    SESSION_REUSE = "session_reuse"
    SESSION_EXIT = "session_exit"
    OUTPUT = "output"
    INPUT = "input"
    HISTORY_WRITTEN = "history_written"
    SURFACE_FOCUS = "surface_focus"
    ERROR = "error"


@dataclass
class WireEvent:
    """An event on the wire."""

    type: EventType
    data: dict[str, Any] = field(default_factory=dict)


class Wire:
    """Async message bus: sessions -> front-end subscribers.

    Single-producer, multi-consumer broadcast.
    """

    def __init__(self) -> None:
        self._subscribers: list[asyncio.Queue[WireEvent | None]] = []
        self._closed: bool = False

    def send(self, event: WireEvent) -> None:
        """Send an event to all subscribers.

        Silently drops events after ``close()`` has been called.
        """
        if self._closed:
            return
        for q in self._subscribers:
            q.put_nowait(event)

    def send_output(self, name: str, text: str) -> None:
        self.send(WireEvent(type=EventType.OUTPUT, data={"name": name, "text": text}))

    def send_input(self, name: str, text: str) -> None:
        self.send(WireEvent(type=EventType.INPUT, data={"name": name, "text": text}))

    def send_error(self, error: str) -> None:
        self.send(WireEvent(type=EventType.ERROR, data={"error": error}))

    def send_session_start(self, name: str, command: list[str], surface: str) -> None:
        self.send(
            WireEvent(
                type=EventType.SESSION_START,
                data={"name": name, "command": command, "surface": surface},
            )
        )

    def send_session_reuse(self, name: str, surface: str) -> None:
        self.send(
            WireEvent(
                type=EventType.SESSION_REUSE,
                data={"name": name, "surface": surface},
            )
        )

    def send_surface_focus(self, name: str, surface: str) -> None:
        self.send(
            WireEvent(
                type=EventType.SURFACE_FOCUS,
                data={"name": name, "surface": surface},
            )
        )

    def send_history_written(self, name: str, path: str, entries: int) -> None:
        self.send(
            WireEvent(
                type=EventType.HISTORY_WRITTEN,
                data={"name": name, "path": path, "entries": entries},
            )
        )

    def send_session_exit(
        self,
        name: str,
        exit_code: int | None,
        last_output: str = "",
    ) -> None:
        """Notify subscribers that a REPL process terminated."""
        self.send(
            WireEvent(
                type=EventType.SESSION_EXIT,
                data={
                    "name": name,
                    "exit_code": exit_code,
                    "last_output": last_output[:500],
                },
            )
        )

    def subscribe(self) -> asyncio.Queue[WireEvent | None]:
        """Subscribe to events. Returns a queue to read from."""
        q: asyncio.Queue[WireEvent | None] = asyncio.Queue()
        self._subscribers.append(q)
        return q

    def unsubscribe(self, q: asyncio.Queue) -> None:
        """Unsubscribe from events."""
        if q in self._subscribers:
            self._subscribers.remove(q)

    def close(self) -> None:
        """Signal all subscribers that the wire is closing."""
        self._closed = True
        for q in self._subscribers:
            q.put_nowait(None)
