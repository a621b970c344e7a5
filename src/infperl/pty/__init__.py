"""PTY process management: REPL processes in pseudo-terminals.

Every REPL runs in a managed PTY session with process group isolation,
output buffering, ANSI stripping and exit hooks.
"""

from infperl.pty.session import PTYSession, PTYStatus
from infperl.pty.manager import PTYManager
from infperl.pty.buffer import RollingBuffer

__all__ = [
    "PTYSession",
    "PTYStatus",
    "PTYManager",
    "RollingBuffer",
]
