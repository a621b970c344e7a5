"""Configuration: Pydantic models for infperl settings."""

from __future__ import annotations

import json
import os
import shlex
from pathlib import Path
from typing import Any

from dotenv import find_dotenv, load_dotenv
from pydantic import BaseModel, Field


class HighlightRule(BaseModel):
    """A regex highlighted with a rich style in REPL output."""

    pattern: str
    style: str = Field(default="bold", description="rich style string")


class ReplConfig(BaseModel):
    """Settings for launching and displaying a Perl REPL.

    ``program`` and ``args`` are joined with single spaces to form the
    launch command; ``prompt_pattern`` is matched at the start of output
    lines to recognise the REPL prompt.
    """

    program: str = Field(default="reply", description="REPL program to run")
    args: list[str] = Field(
        default_factory=list, description="Arguments passed to the program"
    )
    prompt_pattern: str = Field(
        default=r"^\d+> ",
        description="Regex matched at the start of a line to find the prompt",
    )
    name: str = Field(
        default="reply", description="Session name, also names the surface"
    )
    startfile: Path | None = Field(
        default=None, description="File whose contents are sent as initial input"
    )
    history_file: Path | None = Field(
        default=None, description="Where the input history ring is persisted"
    )
    history_size: int = Field(default=500, description="Max history entries kept")
    history_ignore_dups: bool = Field(
        default=True, description="Skip input identical to the previous entry"
    )
    companion_mode: str = Field(
        default="perl", description="Syntax used to show multi-line input"
    )
    highlight_rules: list[HighlightRule] = Field(
        default_factory=list, description="Extra highlighting for REPL output"
    )

    @classmethod
    def load(cls, config_path: str | None = None) -> ReplConfig:
        """Load config from file, env vars, or defaults.

        Priority: env vars > config file > defaults.

        Env vars:
            INFPERL_PROGRAM       - REPL program (e.g. ``reply`` or ``re.pl``)
            INFPERL_ARGS          - Program arguments, shell-quoted
            INFPERL_PROMPT        - Prompt regex
            INFPERL_NAME          - Session name
            INFPERL_STARTFILE     - Initial-input file
            INFPERL_HISTORY_FILE  - History file
        """
        load_dotenv(find_dotenv(usecwd=True))

        config_data: dict[str, Any] = {}

        if config_path and os.path.exists(config_path):
            with open(config_path) as f:
                config_data = json.load(f)

        env_program = os.environ.get("INFPERL_PROGRAM")
        if env_program:
            config_data["program"] = env_program

        env_args = os.environ.get("INFPERL_ARGS")
        if env_args is not None:
            config_data["args"] = shlex.split(env_args)

        env_prompt = os.environ.get("INFPERL_PROMPT")
        if env_prompt:
            config_data["prompt_pattern"] = env_prompt

        env_name = os.environ.get("INFPERL_NAME")
        if env_name:
            config_data["name"] = env_name

        env_startfile = os.environ.get("INFPERL_STARTFILE")
        if env_startfile:
            config_data["startfile"] = os.path.expanduser(env_startfile)

        env_history = os.environ.get("INFPERL_HISTORY_FILE")
        if env_history:
            config_data["history_file"] = os.path.expanduser(env_history)

        return cls.model_validate(config_data)
