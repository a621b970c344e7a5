"""Session manager: start, reuse and tear down named Perl REPL sessions."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable, TYPE_CHECKING

import aiofiles

from infperl.config import ReplConfig
from infperl.pty.manager import PTYManager
from infperl.pty.session import PTYSession
from infperl.session.command import (
    CommandEditor,
    CommandSource,
    build_command,
    split_command,
)
from infperl.session.registry import SessionRecord, SessionRegistry, SessionState
from infperl.surface.surface import ReplSurface, SurfacePolicy

if TYPE_CHECKING:
    from infperl.session.wire import Wire

logger = logging.getLogger(__name__)


class SessionManager:
    """Launches REPL processes and keeps one session per name.

    The registry and PTY manager are injected so the owner of the
    application decides their lifetime; the manager itself holds no
    global state.
    """

    def __init__(
        self,
        config: ReplConfig,
        registry: SessionRegistry | None = None,
        pty_manager: PTYManager | None = None,
        wire: Wire | None = None,
        editor: CommandEditor | None = None,
        program: str | CommandSource | Callable[[], str] | None = None,
    ) -> None:
        self.config = config
        self.registry = registry if registry is not None else SessionRegistry()
        self.pty_manager = (
            pty_manager if pty_manager is not None else PTYManager(wire=wire)
        )
        self._wire = wire
        self._editor = editor
        self._program = program if program is not None else config.program

    def build_command(
        self,
        prompt_for_edit: bool = False,
        override_program: str | None = None,
    ) -> str:
        """Build the launch command from the configured program and args."""
        return build_command(
            self._program,
            self.config.args,
            prompt_for_edit=prompt_for_edit,
            override_program=override_program,
            editor=self._editor,
        )

    def surface_policy(self) -> SurfacePolicy:
        return SurfacePolicy(
            prompt_pattern=self.config.prompt_pattern,
            ignore_dups=self.config.history_ignore_dups,
            companion_mode=self.config.companion_mode,
            highlight_rules=list(self.config.highlight_rules),
        )

    async def resolve_or_create(
        self,
        name: str | None = None,
        command_line: str | None = None,
        history_file: Path | None = None,
        startfile: Path | None = None,
    ) -> PTYSession:
        """Return the live process registered as ``name``, spawning one if needed."""
        name = name or self.config.name
        live = self.pty_manager.get_live(name)
        if live is not None:
            logger.debug("Reusing live session %s", name)
            return live

        if command_line is None:
            command_line = self.build_command()
        await self.start(command_line, name, history_file, startfile)
        return self._process_for(name)

    async def start(
        self,
        command_line: str,
        name: str,
        history_file: Path | None = None,
        startfile: Path | None = None,
    ) -> ReplSurface:
        """Start ``command_line`` as session ``name`` unless it is already running.

        Returns the session's surface: the existing one while the session
        is RUNNING, otherwise a fresh surface with the display policy
        applied and the history ring seeded from ``history_file``.
        Launch errors from the operating system propagate unchanged.
        """
        record = self.registry.get(name)
        if record is not None and record.state == SessionState.RUNNING:
            logger.debug("Session %s already running, reusing %s", name, record.surface.id)
            if self._wire:
                self._wire.send_session_reuse(name, record.surface.id)
            return record.surface

        if record is not None and record.process is not None:
            # Exit hooks of the old process flush history the new surface reads.
            await record.process.wait_for_exit(timeout=None)

        program, args = split_command(command_line)

        surface = ReplSurface(name, history_size=self.config.history_size)
        surface.apply_policy(self.surface_policy())
        await surface.load_history(history_file)

        record = SessionRecord(
            name=name,
            program=program,
            args=args,
            prompt_pattern=self.config.prompt_pattern,
            surface=surface,
            startfile=startfile,
            history_file=history_file,
        )
        self.registry.register(record)

        try:
            process = await self.pty_manager.spawn(name, [program, *args])
        except OSError:
            self.registry.remove(name)
            raise

        # The reader task has not run yet, so nothing is missed by
        # registering listeners and hooks after spawn().
        record.process = process
        surface.attach(process)
        if self._wire:
            wire = self._wire
            process.add_output_listener(lambda p, text: wire.send_output(name, text))
        if history_file is not None:
            process.add_exit_hook(self.write_history_on_exit)

        if startfile is not None:
            async with aiofiles.open(Path(startfile).expanduser(), "r") as f:
                initial_input = await f.read()
            if initial_input:
                process.write(initial_input)

        logger.info("Started session %s on %s: %s", name, surface.id, command_line)
        if self._wire:
            self._wire.send_session_start(name, record.command, surface.id)
        return surface

    def _process_for(self, name: str) -> PTYSession:
        record = self.registry.get(name)
        if record is None or record.process is None:
            raise RuntimeError(f"Session '{name}' has no process after start")
        return record.process

    async def write_history_on_exit(
        self, process: PTYSession, status: int | None
    ) -> None:
        """Exit hook: persist the surface's history ring.

        Does nothing when the surface has already been destroyed or the
        process no longer belongs to a session.
        """
        record = self.registry.find_by_process(process)
        if record is None or not record.surface.alive:
            logger.debug(
                "Skipping history flush for %s (status=%s): surface gone",
                process.name,
                status,
            )
            return

        try:
            written = await record.surface.save_history()
        except OSError as e:
            if self._wire:
                self._wire.send_error(f"Could not write history for {record.name}: {e}")
            raise
        if written:
            record.history_flushes += 1
            if self._wire and record.history_file is not None:
                self._wire.send_history_written(
                    record.name, str(record.history_file), len(record.surface.history)
                )

    async def run_repl(
        self,
        edit: bool = False,
        command: str | None = None,
        startfile: Path | None = None,
        foreground: bool = False,
    ) -> PTYSession:
        """Run (or return) the configured REPL session.

        Args:
            edit: Let the user edit the launch command before it runs.
            command: Explicit command line, bypassing the configured program.
            startfile: Initial-input file overriding the configured one.
            foreground: Bring the session's surface to the foreground.

        Returns:
            The REPL process.
        """
        name = self.config.name
        command_line = self.build_command(prompt_for_edit=edit, override_program=command)
        surface = await self.start(
            command_line,
            name,
            history_file=self.config.history_file,
            startfile=startfile if startfile is not None else self.config.startfile,
        )
        process = self._process_for(name)

        if foreground:
            self.registry.focus(name)
            if self._wire:
                self._wire.send_surface_focus(name, surface.id)
        return process

    def send_input(self, name: str, text: str) -> None:
        """Submit a line of input to a session."""
        record = self.registry.get(name)
        if record is None:
            raise KeyError(f"No REPL session named '{name}'")
        record.surface.submit(text)
        if self._wire:
            self._wire.send_input(name, text)

    async def kill(self, name: str) -> None:
        """Kill a session's process. Exit hooks run as for a natural exit."""
        await self.pty_manager.kill(name)

    async def close(self, name: str) -> None:
        """Destroy a session's surface, then kill its process.

        The surface goes first, so the history flush on exit is skipped.
        """
        record = self.registry.remove(name)
        if record is None:
            return
        record.surface.destroy()
        await self.pty_manager.kill(name)

    async def shutdown(self) -> None:
        """Kill every session."""
        await self.pty_manager.cleanup()
