"""CLI entry point for infperl."""

from __future__ import annotations

import asyncio
import logging
import os
import signal
import sys
from pathlib import Path

import typer
from rich.console import Console

from infperl.config import ReplConfig
from infperl.session.manager import SessionManager
from infperl.session.wire import EventType, Wire
from infperl.surface.history import HistoryRing

app = typer.Typer(
    name="infperl",
    help="Run a Perl REPL in a managed pseudo-terminal with persistent history.",
    no_args_is_help=True,
)

logger = logging.getLogger(__name__)

console = Console(highlight=False)


def setup_logging(verbose: bool = False) -> None:
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


def _edit_command(default: str) -> str:
    return typer.prompt("Run Perl REPL", default=default)


def _load_config(
    config_file: str | None,
    history_file: str | None = None,
) -> ReplConfig:
    config = ReplConfig.load(config_file)
    if history_file:
        config.history_file = Path(history_file).expanduser()
    return config


@app.command()
def run(
    edit: bool = typer.Option(
        False, "--edit", "-e", help="Edit the launch command before it runs."
    ),
    command: str | None = typer.Option(
        None,
        "--command",
        "-C",
        help="Launch this command line instead of the configured program.",
    ),
    startfile: str | None = typer.Option(
        None, "--startfile", "-s", help="File sent to the REPL as initial input."
    ),
    history_file: str | None = typer.Option(
        None, "--history-file", help="Persist input history to this file."
    ),
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Enable debug logging."
    ),
    config_file: str | None = typer.Option(
        None, "--config", "-c", help="Config file path."
    ),
) -> None:
    """Start the Perl REPL and attach this terminal to it."""
    setup_logging(verbose)
    config = _load_config(config_file, history_file)
    start_path = Path(startfile).expanduser() if startfile else None

    try:
        asyncio.run(_run_session(config, edit, command, start_path))
    except OSError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)


async def _run_session(
    config: ReplConfig,
    edit: bool,
    command: str | None,
    startfile: Path | None,
) -> None:
    """Relay stdin to the REPL and its output to the terminal until either ends."""
    wire = Wire()
    manager = SessionManager(config, wire=wire, editor=_edit_command)
    queue = wire.subscribe()

    process = await manager.run_repl(
        edit=edit, command=command, startfile=startfile, foreground=True
    )
    surface = manager.registry.focused.surface

    async def _consume_wire() -> None:
        pending = ""
        while True:
            event = await queue.get()
            if event is None:
                break

            d = event.data
            if event.type == EventType.OUTPUT:
                *lines, pending = (pending + d.get("text", "")).split("\n")
                for line in lines:
                    console.print(surface.render_line(line))
                if pending and surface.prompt_length(pending):
                    console.print(surface.render_line(pending), end="")
                    pending = ""

            elif event.type == EventType.HISTORY_WRITTEN:
                console.print(
                    f"[dim]history: {d.get('entries', 0)} entries -> {d.get('path')}[/dim]"
                )

            elif event.type == EventType.SESSION_EXIT:
                if pending:
                    console.print(surface.render_line(pending))
                    pending = ""
                code = d.get("exit_code")
                code_str = str(code) if code is not None else "?"
                console.print(f"\n[dim]\\[{d.get('name')} exited (code={code_str})][/dim]")

            elif event.type == EventType.ERROR:
                console.print(f"[red]ERROR: {d.get('error', 'Unknown error')}[/red]")

        wire.unsubscribe(queue)

    consumer_task = asyncio.create_task(_consume_wire())

    loop = asyncio.get_running_loop()
    lines: asyncio.Queue[str] = asyncio.Queue()
    stdin_fd: int | None = None

    exit_task = asyncio.create_task(process.wait_for_exit(timeout=None))
    try:
        stdin_fd = _watch_stdin(loop, lines)
        loop.add_signal_handler(signal.SIGINT, process.interrupt)
        while process.alive:
            line_task = asyncio.create_task(lines.get())
            done, _ = await asyncio.wait(
                {line_task, exit_task}, return_when=asyncio.FIRST_COMPLETED
            )
            if line_task not in done:
                line_task.cancel()
                break
            line = line_task.result()
            if line == "":
                break
            if not process.alive:
                break
            manager.send_input(config.name, line.rstrip("\n"))
    finally:
        if stdin_fd is not None:
            loop.remove_reader(stdin_fd)
        loop.remove_signal_handler(signal.SIGINT)
        await manager.shutdown()
        await exit_task
        wire.close()
        await consumer_task


def _watch_stdin(
    loop: asyncio.AbstractEventLoop, lines: asyncio.Queue[str]
) -> int | None:
    """Feed stdin into ``lines`` one newline-terminated line at a time.

    An empty string marks end of input. Returns the descriptor the loop
    watches, or None when stdin cannot be polled (a regular file, or a
    stream without a descriptor) and is read from a worker thread instead.
    """
    partial = ""

    def _on_stdin() -> None:
        nonlocal partial
        data = os.read(stdin_fd, 4096).decode("utf-8", errors="replace")
        if not data:
            loop.remove_reader(stdin_fd)
            if partial:
                lines.put_nowait(partial + "\n")
            lines.put_nowait("")  # EOF
            return
        *complete, partial = (partial + data).split("\n")
        for line in complete:
            lines.put_nowait(line + "\n")

    def _read_blocking() -> None:
        for line in sys.stdin:
            if not line.endswith("\n"):
                line += "\n"
            loop.call_soon_threadsafe(lines.put_nowait, line)
        loop.call_soon_threadsafe(lines.put_nowait, "")

    try:
        stdin_fd = sys.stdin.fileno()
        loop.add_reader(stdin_fd, _on_stdin)
    except (OSError, ValueError) as e:
        logger.debug("stdin cannot be polled (%s), reading it in a thread", e)
        loop.run_in_executor(None, _read_blocking)
        return None
    return stdin_fd


@app.command("command")
def show_command(
    config_file: str | None = typer.Option(
        None, "--config", "-c", help="Config file path."
    ),
) -> None:
    """Print the command line that `run` would launch."""
    config = _load_config(config_file)
    manager = SessionManager(config)
    typer.echo(manager.build_command())


@app.command()
def history(
    limit: int = typer.Option(20, "--limit", "-n", help="Show the last N entries."),
    history_file: str | None = typer.Option(
        None, "--history-file", help="History file to read."
    ),
    config_file: str | None = typer.Option(
        None, "--config", "-c", help="Config file path."
    ),
) -> None:
    """Show the persisted REPL input history."""
    config = _load_config(config_file, history_file)
    if config.history_file is None:
        typer.echo("Error: no history file configured", err=True)
        raise typer.Exit(1)

    ring = HistoryRing(size=config.history_size)
    asyncio.run(ring.load(config.history_file))
    entries = ring.entries()
    start = max(len(entries) - limit, 0)
    for i, entry in enumerate(entries[start:], start=start + 1):
        typer.echo(f"{i:5d}  {entry}")


def main() -> None:
    app()


if __name__ == "__main__":
    main()
