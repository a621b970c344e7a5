"""Terminal text cleaning for REPL output."""

from __future__ import annotations

import re

_ANSI_RE = re.compile(r"\x1b\[[0-9;?]*[a-zA-Z]|\x1b\][^\x07]*\x07")


def strip_ansi(text: str) -> str:
    """Strip ANSI CSI and OSC escape sequences from text."""
    return _ANSI_RE.sub("", text)


def normalize_newlines(text: str) -> str:
    """Turn the PTY's CRLF line endings into plain newlines."""
    return text.replace("\r\n", "\n").replace("\r", "\n")


def sanitize_binary_output(text: str) -> str:
    """Remove control characters a terminal would not display.

    Keeps printable chars, tabs and newlines.
    """
    cleaned = []
    for ch in text:
        cp = ord(ch)
        if ch in ("\t", "\n"):
            cleaned.append(ch)
        elif cp >= 32 and cp not in range(0x7F, 0xA0):
            if cp not in range(0xFFF9, 0xFFFC):
                cleaned.append(ch)
    return "".join(cleaned)


def clean_output(raw_text: str) -> str:
    """Full cleaning pipeline applied to every chunk read from the PTY."""
    return sanitize_binary_output(normalize_newlines(strip_ansi(raw_text)))
