"""History ring: submitted REPL input, persisted across sessions."""

from __future__ import annotations

import logging
import re
from collections import deque
from pathlib import Path

import aiofiles

logger = logging.getLogger(__name__)

DEFAULT_SIZE = 500

# Lines in a history file that are never loaded into the ring.
_IGNORE_RE = re.compile(r"^#")
# Input that is never recorded: empty or whitespace only.
_BLANK_RE = re.compile(r"^\s*$")


class HistoryRing:
    """Bounded ordered record of input lines, newest last.

    ``previous()`` / ``next()`` walk the ring from the newest entry the
    way a terminal's up/down keys do; adding an entry resets the walk.
    """

    def __init__(self, size: int = DEFAULT_SIZE, ignore_dups: bool = False) -> None:
        self.size = size
        self.ignore_dups = ignore_dups
        self._entries: deque[str] = deque(maxlen=size)
        self._cursor: int | None = None

    def add(self, line: str) -> bool:
        """Record a submitted line. Returns False if it was filtered out."""
        line = line.rstrip("\n")
        if _BLANK_RE.match(line):
            return False
        if self.ignore_dups and self._entries and self._entries[-1] == line:
            self._cursor = None
            return False
        self._entries.append(line)
        self._cursor = None
        return True

    def previous(self) -> str | None:
        """Step one entry further into the past."""
        if not self._entries:
            return None
        if self._cursor is None:
            self._cursor = len(self._entries) - 1
        elif self._cursor > 0:
            self._cursor -= 1
        return self._entries[self._cursor]

    def next(self) -> str | None:
        """Step one entry back towards the present. None past the newest."""
        if self._cursor is None:
            return None
        if self._cursor >= len(self._entries) - 1:
            self._cursor = None
            return None
        self._cursor += 1
        return self._entries[self._cursor]

    def entries(self) -> list[str]:
        """All entries, oldest first."""
        return list(self._entries)

    def clear(self) -> None:
        self._entries.clear()
        self._cursor = None

    def __len__(self) -> int:
        return len(self._entries)

    def __bool__(self) -> bool:
        return bool(self._entries)

    async def load(self, path: Path) -> int:
        """Replace the ring with the contents of a history file.

        One entry per line, oldest first. Blank lines and lines starting
        with ``#`` are skipped; only the newest ``size`` entries are kept.
        A missing file leaves the ring empty. Returns the entry count.
        """
        self.clear()
        path = Path(path).expanduser()
        if not path.exists():
            logger.debug("No history file at %s", path)
            return 0

        async with aiofiles.open(path, "r", encoding="utf-8", errors="replace") as f:
            async for line in f:
                line = line.rstrip("\n")
                if not line or _IGNORE_RE.match(line):
                    continue
                self._entries.append(line)

        logger.debug("Loaded %d history entries from %s", len(self._entries), path)
        return len(self._entries)

    async def save(self, path: Path) -> bool:
        """Rewrite a history file from the ring, oldest first.

        An empty ring leaves the file untouched and returns False. I/O
        errors propagate to the caller.
        """
        if not self._entries:
            return False
        path = Path(path).expanduser()
        path.parent.mkdir(parents=True, exist_ok=True)
        async with aiofiles.open(path, "w", encoding="utf-8") as f:
            for entry in self._entries:
                await f.write(entry + "\n")
        logger.info("Wrote %d history entries to %s", len(self._entries), path)
        return True
