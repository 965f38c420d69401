"""Process-lifetime map from session name to live terminal session."""

from __future__ import annotations

import threading

from termhub.terminal.models import TerminalSession


class TerminalRegistry:
    """Name-keyed session map with atomic check-and-insert and remove.

    Every mutation happens under one short lock; nothing slow (spawning,
    writing, callbacks) ever runs while it is held.
    """

    def __init__(self) -> None:
        self._sessions: dict[str, TerminalSession] = {}
        self._lock = threading.Lock()

    def try_register(self, name: str, session: TerminalSession) -> bool:
        with self._lock:
            if name in self._sessions:
                return False
            self._sessions[name] = session
            return True

    def try_remove(self, name: str, expected: TerminalSession | None = None) -> TerminalSession | None:
        with self._lock:
            current = self._sessions.get(name)
            if current is None:
                return None
            if expected is not None and current is not expected:
                return None
            del self._sessions[name]
            return current

    def lookup(self, name: str) -> TerminalSession | None:
        with self._lock:
            return self._sessions.get(name)

    def names(self) -> list[str]:
        with self._lock:
            return sorted(self._sessions)

    def sessions(self) -> list[TerminalSession]:
        with self._lock:
            return [self._sessions[key] for key in sorted(self._sessions)]

    def drain(self) -> list[TerminalSession]:
        with self._lock:
            drained = [self._sessions[key] for key in sorted(self._sessions)]
            self._sessions.clear()
        return drained

    def __contains__(self, name: object) -> bool:
        with self._lock:
            return name in self._sessions

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)
