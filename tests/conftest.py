"""Shared fixtures: an in-memory stand-in for PTYSession."""

from __future__ import annotations

import asyncio
import inspect
import os
from dataclasses import dataclass, field
from typing import Any

import pytest

from infperl.pty.buffer import RollingBuffer
from infperl.pty.manager import PTYManager
from infperl.pty.session import PTYStatus


@dataclass
class FakePTYSession:
    """Behaves like PTYSession without spawning anything.

    Tests drive it with emit() (process output) and exit() (natural
    termination). Input written to it is collected in ``written``.
    """

    name: str = ""
    command: list[str] = field(default_factory=list)
    cwd: str = field(default_factory=os.getcwd)
    env: dict[str, str] = field(default_factory=dict)
    id: str = "fake"
    buffer: RollingBuffer = field(default_factory=RollingBuffer)
    written: list[str] = field(default_factory=list)
    status: PTYStatus = PTYStatus.STARTING
    exit_code: int | None = None
    _exit_hooks: list[Any] = field(default_factory=list)
    _listeners: list[Any] = field(default_factory=list)
    _hooks_fired: bool = False
    _exited: asyncio.Event | None = None

    def add_exit_hook(self, hook: Any) -> None:
        self._exit_hooks.append(hook)

    def add_output_listener(self, listener: Any) -> None:
        self._listeners.append(listener)

    async def start(self) -> None:
        if self.command and self.command[0] in ("", "no-such-repl"):
            raise FileNotFoundError(2, "No such file or directory", self.command[0])
        self.status = PTYStatus.RUNNING

    @property
    def alive(self) -> bool:
        return self.status == PTYStatus.RUNNING

    def write(self, data: str) -> None:
        if not self.alive:
            raise RuntimeError(f"PTY session {self.id} is not running")
        self.written.append(data)

    def send_line(self, line: str) -> None:
        self.write(line if line.endswith("\n") else line + "\n")

    def interrupt(self) -> None:
        pass

    def emit(self, text: str) -> None:
        self.buffer.feed(text)
        for listener in self._listeners:
            listener(self, text)

    async def _fire(self, code: int | None) -> None:
        if self._hooks_fired:
            return
        self._hooks_fired = True
        self.exit_code = code
        for hook in self._exit_hooks:
            result = hook(self, code)
            if inspect.isawaitable(result):
                await result
        if self._exited is not None:
            self._exited.set()

    async def exit(self, code: int | None = 0) -> None:
        self.status = PTYStatus.EXITED
        await self._fire(code)

    async def kill(self) -> None:
        if not self.alive:
            return
        self.status = PTYStatus.KILLED
        await self._fire(-9)

    async def wait_for_exit(self, timeout: float | None = 10.0) -> bool:
        if self._hooks_fired:
            return True
        if self._exited is None:
            self._exited = asyncio.Event()
        try:
            await asyncio.wait_for(self._exited.wait(), timeout=timeout)
            return True
        except asyncio.TimeoutError:
            return False


class FakeSpawner:
    """session_factory for PTYManager that records every session built."""

    def __init__(self) -> None:
        self.sessions: list[FakePTYSession] = []

    def __call__(self, **kwargs: Any) -> FakePTYSession:
        session = FakePTYSession(id=f"fake{len(self.sessions)}", **kwargs)
        self.sessions.append(session)
        return session


@pytest.fixture
def spawner() -> FakeSpawner:
    return FakeSpawner()


@pytest.fixture
def pty_manager(spawner: FakeSpawner) -> PTYManager:
    return PTYManager(session_factory=spawner)


@pytest.fixture
def make_process() -> type[FakePTYSession]:
    return FakePTYSession
