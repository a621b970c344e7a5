"""REPL sessions: command building, registry, lifecycle and events."""

from infperl.session.command import (
    CommandSource,
    LiteralCommand,
    ProviderCommand,
    build_command,
    split_command,
)
from infperl.session.manager import SessionManager
from infperl.session.registry import SessionRecord, SessionRegistry, SessionState
from infperl.session.wire import EventType, Wire, WireEvent

__all__ = [
    "CommandSource",
    "LiteralCommand",
    "ProviderCommand",
    "build_command",
    "split_command",
    "SessionManager",
    "SessionRecord",
    "SessionRegistry",
    "SessionState",
    "EventType",
    "Wire",
    "WireEvent",
]
