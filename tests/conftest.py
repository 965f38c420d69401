from __future__ import annotations

import queue
import subprocess
import threading
import time
from collections.abc import Callable
from pathlib import Path

import pytest

_SECURITY_TEST_FILES = {
    "test_working_directory_properties.py",
}


@pytest.hookimpl(trylast=True)
def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    del config
    for item in items:
        path = Path(str(getattr(item, "path", item.fspath)))
        name = path.name

        if "integration" in path.parts:
            item.add_marker(pytest.mark.integration)
            item.add_marker(pytest.mark.slow)

        if name in _SECURITY_TEST_FILES:
            item.add_marker(pytest.mark.security)


class FakeStream:
    """Blocking line stream fed by the test; ``None`` marks end of file."""

    def __init__(self) -> None:
        self._lines: queue.Queue[str | None] = queue.Queue()
        self._eof = False
        self.closed = False

    def feed(self, line: str) -> None:
        self._lines.put(line + "\n")

    def finish(self) -> None:
        self._lines.put(None)

    def readline(self) -> str:
        if self._eof:
            return ""
        item = self._lines.get()
        if item is None:
            self._eof = True
            return ""
        return item

    def close(self) -> None:
        self.closed = True


class FakeStdin:
    def __init__(self, process: FakeProcess) -> None:
        self._process = process
        self.lines: list[str] = []
        self.closed = False
        self._buffer = ""

    def write(self, payload: str) -> int:
        if self.closed or self._process.returncode is not None:
            raise BrokenPipeError("process has exited")
        self._buffer += payload
        return len(payload)

    def flush(self) -> None:
        while "\n" in self._buffer:
            line, self._buffer = self._buffer.split("\n", 1)
            self.lines.append(line)
            self._process.on_input(line)

    def close(self) -> None:
        self.closed = True


class FakeProcess:
    """Popen stand-in. ``echo X`` writes X to stdout, ``warn X`` to stderr, ``exit`` ends."""

    _next_pid = 1000

    def __init__(self, command: list[str], cwd: str | None = None, *, auto_echo: bool = True) -> None:
        FakeProcess._next_pid += 1
        self.pid = FakeProcess._next_pid
        self.command = command
        self.cwd = cwd
        self.auto_echo = auto_echo
        self.stdin = FakeStdin(self)
        self.stdout = FakeStream()
        self.stderr = FakeStream()
        self.returncode: int | None = None
        self.terminated = False
        self.killed = False
        self._exited = threading.Event()
        self._lock = threading.Lock()

    def on_input(self, line: str) -> None:
        if not self.auto_echo:
            return
        if line.startswith("echo "):
            self.stdout.feed(line[len("echo ") :])
        elif line.startswith("warn "):
            self.stderr.feed(line[len("warn ") :])
        elif line.strip() == "exit":
            self.exit(0)

    def exit(self, returncode: int = 0, *, close_pipes: bool = True) -> None:
        """End the process. ``close_pipes=False`` mimics a background job keeping them open."""
        with self._lock:
            if self.returncode is not None:
                return
            self.returncode = returncode
        if close_pipes:
            self.stdout.finish()
            self.stderr.finish()
        self._exited.set()

    def poll(self) -> int | None:
        return self.returncode

    def wait(self, timeout: float | None = None) -> int:
        if not self._exited.wait(timeout=timeout):
            raise subprocess.TimeoutExpired(self.command, timeout or 0)
        assert self.returncode is not None
        return self.returncode

    def terminate(self) -> None:
        self.terminated = True
        self.exit(-15)

    def kill(self) -> None:
        self.killed = True
        self.exit(-9)


class FakeSpawner:
    def __init__(self, *, auto_echo: bool = True, fail_with: Exception | None = None) -> None:
        self.auto_echo = auto_echo
        self.fail_with = fail_with
        self.processes: list[FakeProcess] = []
        self.calls: list[tuple[list[str], str | None, dict[str, str] | None]] = []
        self._lock = threading.Lock()

    def __call__(self, command: list[str], cwd: str | None, env: dict[str, str] | None) -> FakeProcess:
        with self._lock:
            self.calls.append((command, cwd, env))
            if self.fail_with is not None:
                raise self.fail_with
            process = FakeProcess(command, cwd, auto_echo=self.auto_echo)
            self.processes.append(process)
            return process


WAIT_TIMEOUT = 5.0


def _wait_until(predicate: Callable[[], bool], timeout: float = WAIT_TIMEOUT) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return bool(predicate())


@pytest.fixture
def spawner() -> FakeSpawner:
    return FakeSpawner()


@pytest.fixture
def spawner_factory() -> Callable[..., FakeSpawner]:
    return FakeSpawner


@pytest.fixture
def wait_until() -> Callable[..., bool]:
    return _wait_until
