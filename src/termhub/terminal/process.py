"""Pipe-backed child process lifecycle for terminal sessions."""

from __future__ import annotations

import os
import signal
import subprocess
import sys
import threading
import time
from collections.abc import Callable
from contextlib import suppress
from typing import IO, Any

from termhub.config import DEFAULT_POSIX_SHELL, DEFAULT_WINDOWS_SHELL
from termhub.errors import InvalidArgumentError, ProcessSpawnError, TermHubError
from termhub.logging import terminal_logger
from termhub.system import OsFamily
from termhub.terminal.models import TerminalEvent, TerminalEventKind


IS_WINDOWS = sys.platform == "win32"
LINE_TERMINATOR = "\n"
_DRAIN_POLL_SECONDS = 0.05

ProcessSpawn = Callable[[list[str], str | None, dict[str, str] | None], Any]
EventSink = Callable[[TerminalEvent], None]


def build_shell_command(
    os_family: OsFamily,
    *,
    posix_shell: str = DEFAULT_POSIX_SHELL,
    windows_shell: str = DEFAULT_WINDOWS_SHELL,
) -> list[str]:
    if os_family == OsFamily.WINDOWS:
        return [windows_shell]
    return [posix_shell]


def spawn_piped(command: list[str], cwd: str | None, env: dict[str, str] | None) -> subprocess.Popen[str]:
    kwargs: dict[str, object] = {
        "stdin": subprocess.PIPE,
        "stdout": subprocess.PIPE,
        "stderr": subprocess.PIPE,
        "text": True,
        "encoding": "utf-8",
        "errors": "replace",
        "bufsize": 1,
    }
    if cwd:
        kwargs["cwd"] = cwd
    if env is not None:
        kwargs["env"] = env
    if IS_WINDOWS:
        kwargs["creationflags"] = subprocess.CREATE_NO_WINDOW
    else:
        # Own process group, so teardown also reaches background jobs.
        kwargs["start_new_session"] = True
    return subprocess.Popen(command, **kwargs)


class ProcessHandle:
    """Owns one child process and its three pipes.

    ``start_pumps`` reads stdout and stderr on one thread each and watches for
    exit on a third. After the process exits the pumps run to end of file;
    ``drain_timeout`` only bounds how long the pipes may stay silent (a
    background job still holding them open). The exit event is always the
    last event: once it is sent, pumps deliver nothing more.
    """

    def __init__(
        self,
        process: Any,
        *,
        command: list[str] | tuple[str, ...],
        name: str = "",
        process_group: bool = False,
    ) -> None:
        self._process = process
        self.command = tuple(command)
        self.name = name
        self._process_group = process_group
        self._log = terminal_logger(__name__, name)
        self._write_lock = threading.Lock()
        self._pumps: list[threading.Thread] = []
        self._watcher: threading.Thread | None = None
        self._closed = False
        self._drain_lock = threading.Lock()
        self._delivering = 0
        self._last_activity = time.monotonic()
        self._exit_sent = False

    @classmethod
    def spawn(
        cls,
        command: list[str],
        *,
        cwd: str | None = None,
        env: dict[str, str] | None = None,
        spawn: ProcessSpawn | None = None,
        name: str = "",
    ) -> ProcessHandle:
        if not command:
            raise InvalidArgumentError(
                "Process command cannot be empty.",
                hint="Provide a shell executable for the host platform.",
            )
        spawner = spawn or spawn_piped
        try:
            process = spawner(list(command), cwd, env)
        except TermHubError:
            raise
        except Exception as exc:
            raise ProcessSpawnError(
                f"Failed to start process: {command[0]}",
                hint=str(exc) or "Check that the executable exists and is runnable.",
            ) from exc
        handle = cls(process, command=command, name=name, process_group=spawn is None and not IS_WINDOWS)
        handle._log.debug("Started process pid=%s command=%s cwd=%s", handle.pid, command[0], cwd)
        return handle

    @property
    def pid(self) -> int | None:
        return getattr(self._process, "pid", None)

    @property
    def returncode(self) -> int | None:
        return self._process.poll()

    def is_alive(self) -> bool:
        try:
            return self._process.poll() is None
        except Exception:
            return False

    def write_line(self, text: str) -> None:
        stdin = self._process.stdin
        if stdin is None:
            raise TermHubError("Process input stream is not redirected.")
        with self._write_lock:
            try:
                stdin.write(text + LINE_TERMINATOR)
                stdin.flush()
            except (BrokenPipeError, OSError, ValueError) as exc:
                raise TermHubError(
                    f"Failed to write to process pid={self.pid}.",
                    hint=str(exc) or "The shell has probably exited.",
                ) from exc

    def start_pumps(self, sink: EventSink, *, drain_timeout: float = 2.0, name: str = "") -> None:
        if self._watcher is not None:
            raise TermHubError("Process pumps already started.")
        label = name or self.name or str(self.pid)
        for kind, stream in (
            (TerminalEventKind.OUTPUT, self._process.stdout),
            (TerminalEventKind.ERROR, self._process.stderr),
        ):
            if stream is None:
                continue
            thread = threading.Thread(
                target=self._pump,
                args=(stream, kind, sink),
                daemon=True,
                name=f"termhub-{kind.value}-{label}",
            )
            self._pumps.append(thread)
        self._watcher = threading.Thread(
            target=self._watch_exit,
            args=(sink, drain_timeout),
            daemon=True,
            name=f"termhub-exit-{label}",
        )
        for thread in self._pumps:
            thread.start()
        self._watcher.start()

    def terminate(self, *, timeout: float = 2.0) -> None:
        if self.is_alive():
            self._signal(kill=False)
            try:
                self._process.wait(timeout=timeout)
            except subprocess.TimeoutExpired:
                self._log.warning("Process ignored terminate; killing pid=%s", self.pid)
                self._signal(kill=True)
                with suppress(subprocess.TimeoutExpired):
                    self._process.wait(timeout=timeout)
        if self._process_group:
            # Background jobs outlive the shell otherwise.
            self._signal_group(signal.SIGKILL)

    def close(self, *, timeout: float = 2.0) -> None:
        if self._closed:
            return
        self._closed = True
        _close_stream(self._process.stdin)
        current = threading.current_thread()
        deadline = time.monotonic() + timeout
        for thread in self._pumps:
            if thread is not current:
                thread.join(timeout=max(0.0, deadline - time.monotonic()))
        # A pump still blocked in readline holds the stream's buffer lock.
        if all(not thread.is_alive() for thread in self._pumps):
            _close_stream(self._process.stdout)
            _close_stream(self._process.stderr)

    def _signal(self, *, kill: bool) -> None:
        if self._process_group:
            self._signal_group(signal.SIGKILL if kill else signal.SIGTERM)
            return
        with suppress(OSError):
            if kill:
                self._process.kill()
            else:
                self._process.terminate()

    def _signal_group(self, signum: int) -> None:
        if self.pid is None:
            return
        with suppress(ProcessLookupError, PermissionError):
            os.killpg(self.pid, signum)

    def _pump(self, stream: IO[str], kind: TerminalEventKind, sink: EventSink) -> None:
        try:
            for raw in iter(stream.readline, ""):
                with self._drain_lock:
                    if self._exit_sent:
                        self._log.debug("Dropping %s after exit pid=%s", kind.value, self.pid)
                        return
                    self._delivering += 1
                    self._last_activity = time.monotonic()
                try:
                    sink(TerminalEvent(kind=kind, text=raw.rstrip("\r\n")))
                except Exception:
                    self._log.exception("Event sink failed pid=%s stream=%s", self.pid, kind.value)
                finally:
                    with self._drain_lock:
                        self._delivering -= 1
                        self._last_activity = time.monotonic()
        except (OSError, ValueError) as exc:
            self._log.debug("Pump stopped pid=%s stream=%s reason=%s", self.pid, kind.value, exc)

    def _watch_exit(self, sink: EventSink, drain_timeout: float) -> None:
        try:
            returncode = self._process.wait()
        except Exception:
            self._log.exception("Waiting for process failed pid=%s", self.pid)
            returncode = None
        self._drain(drain_timeout)
        try:
            sink(TerminalEvent(kind=TerminalEventKind.EXITED, returncode=returncode))
        except Exception:
            self._log.exception("Exit sink failed pid=%s", self.pid)

    def _drain(self, idle_timeout: float) -> None:
        """Wait for the pumps to finish, then fence off further deliveries."""
        with self._drain_lock:
            self._last_activity = time.monotonic()
        while True:
            alive = [thread for thread in self._pumps if thread.is_alive()]
            with self._drain_lock:
                idle = time.monotonic() - self._last_activity
                if not alive or (self._delivering == 0 and idle >= idle_timeout):
                    self._exit_sent = True
                    break
            alive[0].join(timeout=_DRAIN_POLL_SECONDS)
        if alive:
            self._log.debug("Pipes still open after exit pid=%s idle=%.2fs", self.pid, idle)


def _close_stream(stream: IO[str] | None) -> None:
    if stream is None:
        return
    with suppress(OSError, ValueError):
        stream.close()
