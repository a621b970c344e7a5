"""PTY Manager: owns every REPL process, keyed by session name."""

from __future__ import annotations

import logging
from typing import Any, Callable, TYPE_CHECKING

from infperl.pty.session import PTYSession

if TYPE_CHECKING:
    from infperl.session.wire import Wire

logger = logging.getLogger(__name__)


class PTYManager:
    """Manages the lifecycle of named PTY sessions.

    The manager ensures:
    - Processes are tracked and can be looked up by name
    - All processes are killed on cleanup (no orphan processes)
    - Session limits are enforced
    - Exit notifications are fired via Wire (if attached)
    """

    MAX_SESSIONS = 10

    def __init__(
        self,
        wire: Wire | None = None,
        session_factory: Callable[..., PTYSession] = PTYSession,
    ) -> None:
        self._sessions: dict[str, PTYSession] = {}
        self._wire = wire
        self._session_factory = session_factory

    async def spawn(
        self,
        name: str,
        command: list[str],
        cwd: str | None = None,
        env: dict[str, str] | None = None,
    ) -> PTYSession:
        """Spawn a new process under ``name``.

        A dead process previously registered under the same name is
        replaced. Callers wanting reuse check get_live() first.
        """
        if name not in self._sessions and len(self._sessions) >= self.MAX_SESSIONS:
            oldest = next(iter(self._sessions))
            logger.warning("Max sessions reached, killing oldest: %s", oldest)
            await self.kill(oldest)

        kwargs: dict[str, Any] = {"name": name, "command": command, "env": env or {}}
        if cwd:
            kwargs["cwd"] = cwd
        session = self._session_factory(**kwargs)

        if self._wire:
            wire = self._wire

            def _on_exit(s: PTYSession, exit_code: int | None) -> None:
                tail = s.buffer.read_tail(3)
                last_output = "\n".join(tail) if tail else ""
                wire.send_session_exit(s.name, exit_code, last_output)

            session.add_exit_hook(_on_exit)

        await session.start()
        self._sessions[name] = session
        return session

    def get_live(self, name: str) -> PTYSession | None:
        """Get the process under ``name`` only if it is still running."""
        session = self._sessions.get(name)
        if session is not None and session.alive:
            return session
        return None

    async def kill(self, name: str) -> None:
        """Kill a process and remove it from tracking."""
        session = self._sessions.pop(name, None)
        if session:
            await session.kill()

    async def cleanup(self) -> None:
        """Kill all processes. Called on shutdown."""
        for name in list(self._sessions.keys()):
            await self.kill(name)
        logger.info("All PTY sessions cleaned up")

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, name: object) -> bool:
        return name in self._sessions
