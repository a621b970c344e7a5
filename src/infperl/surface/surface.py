"""REPL display surface: the buffer a user exchanges text through."""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

from rich.syntax import Syntax
from rich.text import Text

from infperl.config import HighlightRule
from infperl.pty.buffer import RollingBuffer
from infperl.surface.history import DEFAULT_SIZE, HistoryRing

if TYPE_CHECKING:
    from infperl.pty.session import PTYSession

logger = logging.getLogger(__name__)

PROMPT_STYLE = "bold cyan"
INPUT_STYLE = "bold"


@dataclass
class SurfacePolicy:
    """Display policy installed once on a freshly created surface."""

    prompt_pattern: str
    prompt_read_only: bool = True
    highlight_input: bool = False
    ignore_dups: bool = True
    companion_mode: str = "perl"
    highlight_rules: list[HighlightRule] = field(default_factory=list)


class ReplSurface:
    """Interactive surface bound to one REPL process.

    Holds the output buffer, the history ring and the prompt bookkeeping.
    The surface outlives its process: after the REPL exits its output and
    history stay readable until destroy() is called.
    """

    def __init__(self, name: str, history_size: int = DEFAULT_SIZE) -> None:
        self.name = name
        self.history = HistoryRing(size=history_size)
        self.history_file: Path | None = None
        self.buffer = RollingBuffer()
        self.process: PTYSession | None = None
        self.policy: SurfacePolicy | None = None
        self.at_prompt = False
        self._prompt_re: re.Pattern | None = None
        # absolute line number -> prompt length
        self._prompt_spans: dict[int, int] = {}
        self._alive = True

    @property
    def id(self) -> str:
        return f"*{self.name}*"

    @property
    def alive(self) -> bool:
        return self._alive

    def destroy(self) -> None:
        """Discard the surface. Later history flushes become no-ops."""
        self._alive = False
        self.at_prompt = False
        logger.debug("Surface %s destroyed", self.id)

    def apply_policy(self, policy: SurfacePolicy) -> bool:
        """Install the display policy. Only the first call has any effect."""
        if self.policy is not None:
            return False
        self.policy = policy
        self._prompt_re = re.compile(policy.prompt_pattern)
        self.history.ignore_dups = policy.ignore_dups
        logger.debug("Applied display policy to %s", self.id)
        return True

    def attach(self, process: PTYSession) -> None:
        """Bind the surface to a freshly started process."""
        self.process = process
        self.buffer = process.buffer
        process.add_output_listener(self._on_output)

    def _on_output(self, process: PTYSession, text: str) -> None:
        completed = text.count("\n")
        if completed:
            first = self.buffer.total_lines - completed
            for offset, line in enumerate(self.buffer.read_tail(completed)):
                self._mark_prompt(first + offset, line)
        self.at_prompt = self._mark_prompt(
            self.buffer.total_lines, self.buffer.current_line
        )

    def _mark_prompt(self, line_no: int, line: str) -> bool:
        if self._prompt_re is None:
            return False
        m = self._prompt_re.match(line)
        if m is None or not m.group(0):
            return False
        self._prompt_spans[line_no] = m.end()
        return True

    def prompt_length(self, line: str) -> int:
        """Length of the prompt at the start of ``line`` (0 if none)."""
        if self._prompt_re is None:
            return 0
        m = self._prompt_re.match(line)
        return m.end() if m else 0

    def is_read_only(self, line_no: int, column: int) -> bool:
        """Whether a position falls inside a recognised prompt."""
        if self.policy is None or not self.policy.prompt_read_only:
            return False
        return column < self._prompt_spans.get(line_no, 0)

    def submit(self, line: str) -> None:
        """Send one line of input to the REPL and record it in the history."""
        if not self._alive or self.process is None or not self.process.alive:
            raise RuntimeError(f"Surface {self.id} has no running process")
        self.history.add(line)
        self.at_prompt = False
        self.process.send_line(line)

    async def wait_for_prompt(self, timeout: float = 10.0) -> bool:
        """Wait until the REPL shows its prompt. Returns False on timeout."""
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while loop.time() < deadline:
            if self.at_prompt:
                return True
            if self.process is not None and not self.process.alive:
                return False
            remaining = deadline - loop.time()
            if remaining <= 0:
                break
            await self.buffer.wait_for_data(timeout=min(remaining, 0.5))
        logger.warning("Timed out waiting for prompt on %s", self.id)
        return self.at_prompt

    async def load_history(self, path: Path | None) -> int:
        self.history_file = path
        if path is None:
            return 0
        return await self.history.load(path)

    async def save_history(self) -> bool:
        """Persist the history ring to the configured file."""
        if self.history_file is None:
            return False
        return await self.history.save(self.history_file)

    def render_line(self, line: str) -> Text:
        """Style one line of output: prompt first, then highlight rules."""
        text = Text(line)
        prompt_len = self.prompt_length(line)
        if prompt_len:
            text.stylize(PROMPT_STYLE, 0, prompt_len)
            if self.policy is not None and self.policy.highlight_input:
                text.stylize(INPUT_STYLE, prompt_len, len(line))
        if self.policy is not None:
            for rule in self.policy.highlight_rules:
                text.highlight_regex(rule.pattern, style=rule.style)
        return text

    def render_input(self, source: str) -> Text | Syntax:
        """Render submitted input; multi-line input uses the companion mode."""
        if "\n" in source.strip("\n") and self.policy is not None:
            return Syntax(source, self.policy.companion_mode)
        text = Text(source)
        if self.policy is not None and self.policy.highlight_input:
            text.stylize(INPUT_STYLE)
        return text
