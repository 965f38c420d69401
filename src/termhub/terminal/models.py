"""Terminal session domain models."""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING

from typing_extensions import TypedDict

from termhub.callbacks import ExecutionScope, Node
from termhub.logging import terminal_logger

if TYPE_CHECKING:
    from termhub.terminal.process import ProcessHandle


class TerminalEventKind(str, Enum):
    OUTPUT = "output"
    ERROR = "error"
    EXITED = "exited"


@dataclass(frozen=True)
class TerminalEvent:
    kind: TerminalEventKind
    text: str | None = None
    returncode: int | None = None


@dataclass(frozen=True)
class LifecycleRecord:
    terminal: str
    step: str
    message: str


class SessionSnapshot(TypedDict):
    name: str
    pid: int | None
    command: list[str]
    working_directory: str
    idle_seconds: float


@dataclass(eq=False)
class TerminalSession:
    """A named, live shell process plus the scope its callbacks run in.

    ``begin_dispatch``/``end_dispatch`` bracket every callback invocation.
    ``close`` marks the session dead; the scope is released once no
    invocation is in flight, and never more than once.
    """

    name: str
    process: ProcessHandle
    scope: ExecutionScope
    working_directory: str
    on_output: Node | None = None
    on_error: Node | None = None
    created_at: float = field(default_factory=time.monotonic)
    last_used: float = field(default_factory=time.monotonic)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)
    _closed: bool = field(default=False, repr=False)
    _in_flight: int = field(default=0, repr=False)
    _scope_released: bool = field(default=False, repr=False)

    def __post_init__(self) -> None:
        self._dispatch_done = threading.Condition(self._lock)

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def scope_released(self) -> bool:
        return self._scope_released

    @property
    def command(self) -> tuple[str, ...]:
        return self.process.command

    def touch(self, now: float | None = None) -> None:
        self.last_used = time.monotonic() if now is None else now

    def idle_seconds(self, now: float | None = None) -> float:
        current = time.monotonic() if now is None else now
        return max(0.0, current - self.last_used)

    def to_dict(self, now: float | None = None) -> SessionSnapshot:
        return {
            "name": self.name,
            "pid": self.process.pid,
            "command": list(self.command),
            "working_directory": self.working_directory,
            "idle_seconds": round(self.idle_seconds(now), 3),
        }

    def begin_dispatch(self) -> bool:
        with self._lock:
            if self._closed:
                return False
            self._in_flight += 1
            return True

    def end_dispatch(self) -> None:
        with self._lock:
            self._in_flight -= 1
            if self._in_flight == 0:
                self._dispatch_done.notify_all()
            release_now = self._take_scope_release()
        if release_now:
            self._release_scope()

    def wait_for_dispatches(self, timeout: float | None = None) -> bool:
        """Block until no callback invocation is in flight."""
        with self._dispatch_done:
            return self._dispatch_done.wait_for(lambda: self._in_flight == 0, timeout=timeout)

    def close(self) -> bool:
        """Mark closed. Returns False if the session was already closed."""
        with self._lock:
            if self._closed:
                return False
            self._closed = True
            release_now = self._take_scope_release()
        if release_now:
            self._release_scope()
        return True

    def _take_scope_release(self) -> bool:
        if self._closed and self._in_flight == 0 and not self._scope_released:
            self._scope_released = True
            return True
        return False

    def _release_scope(self) -> None:
        try:
            self.scope.release()
        except Exception:
            terminal_logger(__name__, self.name).exception("Failed to release execution scope")
