"""Launch command assembly for REPL sessions."""

from __future__ import annotations

import shlex
from dataclasses import dataclass
from typing import Callable, Sequence, Union


@dataclass(frozen=True)
class LiteralCommand:
    """A program name used as given."""

    program: str

    def resolve(self) -> str:
        return self.program


@dataclass(frozen=True)
class ProviderCommand:
    """A zero-argument callable producing the program name."""

    provider: Callable[[], str]

    def resolve(self) -> str:
        return self.provider()


CommandSource = Union[LiteralCommand, ProviderCommand]
CommandEditor = Callable[[str], str]


def as_command_source(program: str | CommandSource | Callable[[], str]) -> CommandSource:
    """Wrap a plain string or callable into a CommandSource."""
    if isinstance(program, (LiteralCommand, ProviderCommand)):
        return program
    if callable(program):
        return ProviderCommand(program)
    return LiteralCommand(program)


def build_command(
    default_program: str | CommandSource | Callable[[], str],
    default_args: Sequence[str],
    prompt_for_edit: bool = False,
    override_program: str | None = None,
    editor: CommandEditor | None = None,
) -> str:
    """Assemble the shell command line that launches a REPL.

    An override is returned verbatim without touching the default
    program. Otherwise the program is resolved once and joined with the
    arguments by single spaces, so an empty argument list leaves a
    trailing space (``"reply "``). With ``prompt_for_edit`` the assembled
    line is handed to ``editor`` as a default and its answer is used.

    Nothing is validated; a bad command fails later when it is launched.
    """
    if override_program is not None:
        return override_program

    program = as_command_source(default_program).resolve()
    command_line = program + " " + " ".join(default_args)

    if prompt_for_edit:
        if editor is None:
            raise ValueError("prompt_for_edit requires an editor callable")
        command_line = editor(command_line)
    return command_line


def split_command(command_line: str) -> tuple[str, list[str]]:
    """Split a command line into program and arguments using shell quoting.

    An empty command yields ``("", [])``; launching it then fails with
    the operating system's error. An unterminated quote or trailing
    backslash does not fail here: the rest of the line becomes the last
    argument.
    """
    lexer = shlex.shlex(command_line, posix=True)
    lexer.whitespace_split = True
    lexer.commenters = ""
    parts: list[str] = []
    try:
        for token in lexer:
            parts.append(token)
    except ValueError:
        parts.append(lexer.token)
    if not parts:
        return "", []
    return parts[0], parts[1:]
