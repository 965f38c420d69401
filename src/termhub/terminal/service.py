"""Named terminal session lifecycle: create, write, destroy and exit cleanup."""

from __future__ import annotations

import atexit
import logging as py_logging
import threading
import time
from collections import deque
from collections.abc import Callable
from pathlib import Path

from termhub.callbacks import CallbackInvoker, Node, ScopeFactory, ServiceScope
from termhub.config import AppConfig
from termhub.errors import InvalidArgumentError, NotFoundError, TermHubError
from termhub.logging import terminal_logger
from termhub.system import OsFamily, detect_os_family
from termhub.terminal.models import (
    LifecycleRecord,
    SessionSnapshot,
    TerminalEvent,
    TerminalEventKind,
    TerminalSession,
)
from termhub.terminal.process import ProcessHandle, ProcessSpawn, build_shell_command
from termhub.terminal.registry import TerminalRegistry

logger = py_logging.getLogger(__name__)

RootResolver = Callable[[], str | Path]

DEFAULT_SENTINEL = "--waiting-for-input--"
_MAX_RECORDS = 1000


def sentinel_command(command: str, marker: str = DEFAULT_SENTINEL) -> str:
    """Append an ``echo <marker>`` line so callers can spot command completion."""
    if not marker.strip():
        raise InvalidArgumentError("Sentinel marker cannot be empty.", hint="Pass a printable marker.")
    return f"{command}\necho {marker.strip()}"


def resolve_working_directory(root: str | Path, folder: str | None = None) -> Path:
    """Resolve ``folder`` below ``root``.

    Leading separators are root-relative, so ``"/modules/"`` means
    ``<root>/modules``. Paths escaping the root are rejected.
    """
    root_path = Path(root).expanduser().resolve()
    relative = (folder or "").strip().replace("\\", "/").lstrip("/")
    resolved = (root_path / relative).resolve() if relative else root_path
    if resolved != root_path and root_path not in resolved.parents:
        raise InvalidArgumentError(
            f"Working folder escapes root: {folder}",
            hint="Use a folder below the configured root.",
        )
    if not resolved.is_dir():
        raise InvalidArgumentError(
            f"Working folder does not exist: {folder or root_path}",
            hint="Create the folder or pick an existing one.",
        )
    return resolved


def _require_text(value: str | None, *, what: str, hint: str) -> str:
    text = (value or "").strip()
    if not text:
        raise InvalidArgumentError(f"No {what} supplied.", hint=hint)
    return text


class TerminalService:
    def __init__(
        self,
        registry: TerminalRegistry | None = None,
        *,
        config: AppConfig | None = None,
        root_resolver: RootResolver | None = None,
        scope_factory: ScopeFactory | None = None,
        invoker: CallbackInvoker | None = None,
        spawn: ProcessSpawn | None = None,
        os_family: OsFamily | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.config = config or AppConfig()
        self.registry = registry if registry is not None else TerminalRegistry()
        self._root_resolver = root_resolver or self.config.resolve_root
        self._scope_factory = scope_factory or ServiceScope
        self._invoker = invoker or CallbackInvoker()
        self._spawn = spawn
        self._os_family = os_family or detect_os_family()
        self._clock = clock
        self._records: deque[LifecycleRecord] = deque(maxlen=_MAX_RECORDS)
        self._records_lock = threading.Lock()
        atexit.register(self.destroy_all)

    def list_sessions(self) -> list[TerminalSession]:
        return self.registry.sessions()

    def get(self, name: str) -> TerminalSession | None:
        return self.registry.lookup(name)

    def snapshot(self) -> list[SessionSnapshot]:
        now = self._clock()
        return [session.to_dict(now) for session in self.registry.sessions()]

    def list_events(self) -> list[LifecycleRecord]:
        with self._records_lock:
            return list(self._records)

    def clear_events(self) -> None:
        with self._records_lock:
            self._records.clear()
        logger.info("terminal-event step=clear-events message=Terminal events cleared.")

    def shell_command(self) -> list[str]:
        return build_shell_command(
            self._os_family,
            posix_shell=self.config.posix_shell,
            windows_shell=self.config.windows_shell,
        )

    def create(
        self,
        name: str,
        working_folder: str | None = None,
        *,
        on_output: Node | None = None,
        on_error: Node | None = None,
        env: dict[str, str] | None = None,
    ) -> TerminalSession:
        name = _require_text(name, what="terminal name", hint="Pass a unique terminal name.")
        if name in self.registry:
            raise InvalidArgumentError(
                f"Terminal with name of '{name}' already exists.",
                hint="Use a unique terminal name or destroy the existing one.",
            )
        if len(self.registry) >= self.config.max_sessions:
            raise InvalidArgumentError(
                f"Terminal limit reached: {self.config.max_sessions}",
                hint="Destroy another terminal before creating a new one.",
            )
        cwd = resolve_working_directory(self._root_resolver(), working_folder)

        scope = self._scope_factory()
        try:
            process = ProcessHandle.spawn(
                self.shell_command(), cwd=str(cwd), env=env, spawn=self._spawn, name=name
            )
        except Exception:
            scope.release()
            raise

        now = self._clock()
        session = TerminalSession(
            name=name,
            process=process,
            scope=scope,
            working_directory=str(cwd),
            on_output=on_output.clone() if on_output is not None else None,
            on_error=on_error.clone() if on_error is not None else None,
            created_at=now,
            last_used=now,
        )

        if not self.registry.try_register(name, session):
            self._teardown(session)
            raise InvalidArgumentError(
                f"Terminal with name of '{name}' already exists.",
                hint="Another create with the same name finished first.",
            )

        process.start_pumps(
            lambda event: self._on_event(session, event),
            drain_timeout=self.config.exit_drain_timeout_seconds,
            name=name,
        )
        self._record(name, "create", f"Created terminal pid={process.pid} cwd={cwd}.")
        return session

    def write(self, name: str, command: str) -> None:
        name = _require_text(name, what="terminal name", hint="Pass the name used at creation.")
        text = _require_text(command, what="command", hint="Pass a command to send to the terminal.")
        session = self.registry.lookup(name)
        if session is None:
            raise NotFoundError(
                f"Terminal with name of '{name}' was not found.",
                hint="Create the terminal before writing to it.",
            )
        session.touch(self._clock())
        session.process.write_line(text)
        terminal_logger(__name__, name).debug("terminal-write bytes=%s", len(text))

    def destroy(self, name: str) -> bool:
        """Tear down ``name``. Unknown names are a no-op and return False."""
        name = _require_text(name, what="terminal name", hint="Pass the name used at creation.")
        session = self.registry.try_remove(name)
        if session is None:
            terminal_logger(__name__, name).debug("terminal-destroy result=not-found")
            return False
        self._teardown(session)
        self._record(name, "destroy", "Terminal destroyed.")
        return True

    def destroy_all(self) -> int:
        sessions = self.registry.drain()
        for session in sessions:
            self._teardown(session)
            self._record(session.name, "destroy", "Terminal destroyed during shutdown.")
        return len(sessions)

    def shutdown(self) -> int:
        """Destroy every session and drop the interpreter-exit hook."""
        atexit.unregister(self.destroy_all)
        return self.destroy_all()

    def reap_idle(self, now: float | None = None) -> list[str]:
        timeout = self.config.idle_timeout_seconds
        if timeout <= 0:
            return []
        current = self._clock() if now is None else now
        reaped: list[str] = []
        for session in self.registry.sessions():
            if session.idle_seconds(current) < timeout:
                continue
            if self.registry.try_remove(session.name, expected=session) is None:
                continue
            self._teardown(session)
            self._record(session.name, "reap", f"Terminal idle for {int(session.idle_seconds(current))}s.")
            reaped.append(session.name)
        return reaped

    def _on_event(self, session: TerminalSession, event: TerminalEvent) -> None:
        if event.kind == TerminalEventKind.EXITED:
            # The exit marker goes out only after every line callback returned.
            session.wait_for_dispatches()
        if not session.begin_dispatch():
            terminal_logger(__name__, session.name).debug("terminal-drop kind=%s reason=closed", event.kind.value)
            return
        try:
            if event.kind == TerminalEventKind.OUTPUT and session.on_output is not None:
                self._invoker.invoke(session.scope, session.on_output, event.text, terminal=session.name)
            elif event.kind == TerminalEventKind.ERROR and session.on_error is not None:
                self._invoker.invoke(session.scope, session.on_error, event.text, terminal=session.name)
            elif event.kind == TerminalEventKind.EXITED and session.on_output is not None:
                self._invoker.invoke(
                    session.scope,
                    session.on_output,
                    None,
                    force_deliver_empty=True,
                    terminal=session.name,
                )
        finally:
            session.end_dispatch()

        if event.kind == TerminalEventKind.EXITED:
            self._on_exit(session, event.returncode)

    def _on_exit(self, session: TerminalSession, returncode: int | None) -> None:
        removed = self.registry.try_remove(session.name, expected=session)
        self._teardown(session)
        if removed is not None:
            self._record(session.name, "exited", f"Terminal process exited returncode={returncode}.")

    def _teardown(self, session: TerminalSession) -> None:
        if not session.close():
            return
        timeout = self.config.terminate_timeout_seconds
        try:
            session.process.terminate(timeout=timeout)
        except TermHubError:
            terminal_logger(__name__, session.name).warning("Failed to terminate process", exc_info=True)
        session.process.close(timeout=timeout)

    def _record(self, terminal: str, step: str, message: str) -> None:
        with self._records_lock:
            self._records.append(LifecycleRecord(terminal=terminal, step=step, message=message))
        terminal_logger(__name__, terminal).info("terminal-event step=%s message=%s", step, message)


class IdleReaper:
    """Background thread calling ``TerminalService.reap_idle`` on an interval."""

    def __init__(self, service: TerminalService, *, interval_seconds: float | None = None) -> None:
        self._service = service
        self._interval = interval_seconds or service.config.reap_interval_seconds
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, daemon=True, name="termhub-idle-reaper")
        self._thread.start()

    def stop(self, *, timeout: float = 5.0) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            self._thread = None

    def _run(self) -> None:
        while not self._stop.wait(timeout=self._interval):
            try:
                reaped = self._service.reap_idle()
            except Exception:
                logger.exception("Idle reaper pass failed")
                continue
            if reaped:
                logger.info("terminal-reaper reaped=%s", ",".join(reaped))
