"""Session registry: named REPL sessions and their records."""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from pathlib import Path

from infperl.pty.session import PTYSession, PTYStatus
from infperl.surface.surface import ReplSurface

logger = logging.getLogger(__name__)


class SessionState(enum.StrEnum):
    ABSENT = "absent"
    STARTING = "starting"
    RUNNING = "running"
    EXITED = "exited"


@dataclass
class SessionRecord:
    """One REPL session: its launch settings, process and surface."""

    name: str
    program: str
    args: list[str]
    prompt_pattern: str
    surface: ReplSurface
    startfile: Path | None = None
    history_file: Path | None = None
    process: PTYSession | None = None
    history_flushes: int = field(default=0, init=False)

    @property
    def command(self) -> list[str]:
        return [self.program, *self.args]

    @property
    def state(self) -> SessionState:
        if self.process is None or self.process.status == PTYStatus.STARTING:
            return SessionState.STARTING
        if self.process.alive:
            return SessionState.RUNNING
        return SessionState.EXITED


class SessionRegistry:
    """Mapping from session name to its record.

    Owned by the top-level application and handed to the session
    manager, so "the REPL called X" resolves to the same record for
    every caller.
    """

    def __init__(self) -> None:
        self._records: dict[str, SessionRecord] = {}
        self._focused: str | None = None

    def get(self, name: str) -> SessionRecord | None:
        return self._records.get(name)

    def register(self, record: SessionRecord) -> None:
        """Add a record, replacing any earlier one with the same name."""
        old = self._records.get(record.name)
        if old is not None and old is not record:
            logger.debug("Replacing %s session record %s", old.state, record.name)
        self._records[record.name] = record

    def remove(self, name: str) -> SessionRecord | None:
        if self._focused == name:
            self._focused = None
        return self._records.pop(name, None)

    def state(self, name: str) -> SessionState:
        record = self._records.get(name)
        if record is None:
            return SessionState.ABSENT
        return record.state

    def find_by_process(self, process: PTYSession) -> SessionRecord | None:
        for record in self._records.values():
            if record.process is process:
                return record
        return None

    def focus(self, name: str) -> None:
        """Bring the named session's surface to the foreground."""
        if name not in self._records:
            raise KeyError(name)
        self._focused = name

    @property
    def focused(self) -> SessionRecord | None:
        if self._focused is None:
            return None
        return self._records.get(self._focused)

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, name: object) -> bool:
        return name in self._records
