"""PTY session: a REPL process running in a pseudo-terminal."""

from __future__ import annotations

import asyncio
import enum
import inspect
import logging
import os
import pty
import signal
import subprocess
import termios
import uuid
from dataclasses import dataclass, field
from typing import Awaitable, Callable

from infperl.pty.buffer import RollingBuffer
from infperl.pty.text import clean_output

logger = logging.getLogger(__name__)

ExitHook = Callable[["PTYSession", "int | None"], "Awaitable[None] | None"]
OutputListener = Callable[["PTYSession", str], None]


class PTYStatus(enum.Enum):
    """Lifecycle states for a PTY session."""

    STARTING = "starting"
    RUNNING = "running"
    KILLING = "killing"  # Kill requested, waiting for process to die
    KILLED = "killed"  # Killed by us (SIGKILL)
    EXITED = "exited"  # Process exited on its own


@dataclass
class PTYSession:
    """A REPL process attached to a pseudo-terminal.

    Wraps the child with:
    - Process group isolation (start_new_session) for safe tree-killing
    - Rolling output buffer with partial-line tracking
    - ANSI stripping and control-character sanitization
    - Output listeners, called for every cleaned chunk
    - Exit hooks, called exactly once on any termination

    Uses subprocess.Popen (not os.fork) to avoid deadlocks when
    spawned from within an asyncio event loop on macOS.
    """

    id: str = field(default_factory=lambda: uuid.uuid4().hex[:8])
    name: str = ""
    command: list[str] = field(default_factory=list)
    cwd: str = field(default_factory=os.getcwd)
    env: dict[str, str] = field(default_factory=dict)
    echo: bool = False  # Terminal echo of submitted input

    buffer: RollingBuffer = field(default_factory=RollingBuffer)
    _master_fd: int = field(default=-1, init=False)
    _proc: subprocess.Popen | None = field(default=None, init=False)
    _pid: int = field(default=0, init=False)
    _pgid: int = field(default=0, init=False)
    _reader_task: asyncio.Task | None = field(default=None, init=False)
    _status: PTYStatus = field(default=PTYStatus.STARTING, init=False)
    _exit_code: int | None = field(default=None, init=False)
    _exit_hooks: list[ExitHook] = field(default_factory=list, init=False)
    _output_listeners: list[OutputListener] = field(default_factory=list, init=False)
    _hooks_fired: bool = field(default=False, init=False)
    _exited: asyncio.Event | None = field(default=None, init=False)

    def add_exit_hook(self, hook: ExitHook) -> None:
        """Register a hook called as ``hook(session, exit_code)`` on termination.

        Hooks run once, whether the process exits on its own or is killed
        via kill(). A hook may be a coroutine function.
        """
        self._exit_hooks.append(hook)

    def add_output_listener(self, listener: OutputListener) -> None:
        """Register a callable receiving every cleaned output chunk."""
        self._output_listeners.append(listener)

    async def start(self) -> None:
        """Spawn the process in a new PTY with its own process group.

        Launch failures (missing executable, permission denied) propagate
        as the OSError raised by Popen.
        """
        master_fd, slave_fd = pty.openpty()
        if not self.echo:
            attrs = termios.tcgetattr(slave_fd)
            attrs[3] &= ~termios.ECHO
            termios.tcsetattr(slave_fd, termios.TCSANOW, attrs)

        env = {**os.environ, **self.env}
        env["TERM"] = "dumb"  # Minimize ANSI escape sequences
        env.pop("PROMPT_COMMAND", None)

        try:
            self._proc = subprocess.Popen(
                self.command,
                stdin=slave_fd,
                stdout=slave_fd,
                stderr=slave_fd,
                start_new_session=True,  # Creates new process group
                env=env,
                cwd=self.cwd,
            )
        except OSError:
            os.close(master_fd)
            raise
        finally:
            # Parent always closes slave fd
            os.close(slave_fd)

        self._master_fd = master_fd
        self._pid = self._proc.pid
        self._pgid = os.getpgid(self._pid)
        self._status = PTYStatus.RUNNING
        self._exited = asyncio.Event()

        self.buffer.attach_loop(asyncio.get_running_loop())
        self._reader_task = asyncio.create_task(self._read_loop())

        logger.info(
            "PTY session %s (%s) started: pid=%d pgid=%d cmd=%s",
            self.id,
            self.name,
            self._pid,
            self._pgid,
            " ".join(self.command),
        )

    async def _read_loop(self) -> None:
        """Continuously read output from the PTY master fd."""
        loop = asyncio.get_running_loop()
        try:
            while self._status == PTYStatus.RUNNING:
                try:
                    data = await loop.run_in_executor(
                        None, lambda: os.read(self._master_fd, 4096)
                    )
                except OSError:
                    # EIO once the child side of the PTY is closed
                    break

                if not data:
                    break

                cleaned = clean_output(data.decode("utf-8", errors="replace"))
                self.buffer.feed(cleaned)
                for listener in self._output_listeners:
                    try:
                        listener(self, cleaned)
                    except Exception:
                        logger.exception(
                            "Error in output listener for session %s", self.id
                        )
        except Exception as e:
            logger.debug("PTY reader %s ended: %s", self.id, e)
        finally:
            # Only transition to EXITED if we weren't already killing
            if self._status == PTYStatus.RUNNING:
                self._status = PTYStatus.EXITED
                exit_code = await loop.run_in_executor(None, self._reap)
                self._close_fd()
                logger.info("PTY session %s exited (code=%s)", self.id, exit_code)
                await self._fire_exit_hooks(exit_code)

    def _reap(self) -> int | None:
        if self._proc is None:
            return None
        try:
            return self._proc.wait(timeout=2)
        except subprocess.TimeoutExpired:
            return None

    def _close_fd(self) -> None:
        if self._master_fd < 0:
            return
        try:
            os.close(self._master_fd)
        except OSError:
            pass
        self._master_fd = -1

    async def _fire_exit_hooks(self, exit_code: int | None) -> None:
        if self._hooks_fired:
            return
        self._hooks_fired = True
        self._exit_code = exit_code
        for hook in list(self._exit_hooks):
            try:
                result = hook(self, exit_code)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("Error in exit hook for session %s", self.id)
        if self._exited is not None:
            self._exited.set()

    def write(self, data: str) -> None:
        """Write raw input to the process."""
        if self._status != PTYStatus.RUNNING:
            raise RuntimeError(f"PTY session {self.id} is not running")
        os.write(self._master_fd, data.encode())

    def send_line(self, line: str) -> None:
        """Write one line of input, adding the newline if missing."""
        if not line.endswith("\n"):
            line += "\n"
        self.write(line)

    def interrupt(self) -> None:
        """Send SIGINT to the process group (interrupt the current evaluation)."""
        if self._status != PTYStatus.RUNNING:
            return
        try:
            os.killpg(self._pgid, signal.SIGINT)
        except ProcessLookupError:
            logger.debug("Process group already gone: %d", self._pgid)

    def _send_kill(self) -> None:
        self._status = PTYStatus.KILLING
        try:
            os.killpg(self._pgid, signal.SIGKILL)
            logger.info("Killed PTY session %s (pgid=%d)", self.id, self._pgid)
        except ProcessLookupError:
            logger.debug("Process group already gone: %d", self._pgid)
        except OSError as e:
            logger.warning("Error killing PTY session %s: %s", self.id, e)

    def _finish_kill(self) -> None:
        self._close_fd()
        self._status = PTYStatus.KILLED

    def _terminate(self) -> int | None:
        """Kill the process tree and reap it. Returns the exit code if known."""
        self._send_kill()
        exit_code = self._reap()
        self._finish_kill()
        return exit_code

    async def kill(self) -> None:
        """Kill the process tree and run the exit hooks."""
        if self._status not in (PTYStatus.RUNNING, PTYStatus.KILLING):
            return
        self._send_kill()
        exit_code = await asyncio.get_running_loop().run_in_executor(None, self._reap)
        self._finish_kill()
        await self._fire_exit_hooks(exit_code)

    @property
    def alive(self) -> bool:
        return self._status == PTYStatus.RUNNING

    @property
    def status(self) -> PTYStatus:
        return self._status

    @property
    def exit_code(self) -> int | None:
        return self._exit_code

    async def wait_for_exit(self, timeout: float | None = 10.0) -> bool:
        """Wait until the exit hooks have run. Returns False on timeout."""
        if self._exited is None:
            return self._hooks_fired
        try:
            await asyncio.wait_for(self._exited.wait(), timeout=timeout)
            return True
        except asyncio.TimeoutError:
            return False

    def __del__(self) -> None:
        """Ensure the child is not orphaned on garbage collection."""
        if self._status in (PTYStatus.RUNNING, PTYStatus.KILLING):
            self._terminate()
