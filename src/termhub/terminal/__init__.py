"""Named interactive shell sessions."""

from .models import LifecycleRecord, SessionSnapshot, TerminalEvent, TerminalEventKind, TerminalSession
from .process import ProcessHandle, build_shell_command, spawn_piped
from .registry import TerminalRegistry
from .service import (
    DEFAULT_SENTINEL,
    IdleReaper,
    TerminalService,
    resolve_working_directory,
    sentinel_command,
)

__all__ = [
    "build_shell_command",
    "DEFAULT_SENTINEL",
    "IdleReaper",
    "LifecycleRecord",
    "ProcessHandle",
    "resolve_working_directory",
    "sentinel_command",
    "SessionSnapshot",
    "spawn_piped",
    "TerminalEvent",
    "TerminalEventKind",
    "TerminalRegistry",
    "TerminalService",
    "TerminalSession",
]
