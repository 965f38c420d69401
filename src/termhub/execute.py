"""One-shot process execution with captured output."""

from __future__ import annotations

import logging as py_logging
import re
import shlex
import subprocess
import sys
import threading
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from termhub.errors import (
    ExitCode,
    InvalidArgumentError,
    ProcessFailedError,
    ProcessSpawnError,
    TermHubError,
)

logger = py_logging.getLogger(__name__)

IS_WINDOWS = sys.platform == "win32"
OUTPUT_SEPARATOR = "\n"
_WHITESPACE = re.compile(r"\s+")

Popen = Callable[..., Any]


@dataclass(frozen=True)
class ExecutionResult:
    command: tuple[str, ...]
    returncode: int
    stdout: str
    stderr: str

    @property
    def success(self) -> bool:
        return self.returncode == 0


def split_command_line(command_line: str) -> tuple[str, str]:
    """Split ``command_line`` into the program and its raw argument string.

    A program path wrapped in double or single quotes may contain spaces.
    """
    text = (command_line or "").strip()
    if not text:
        raise InvalidArgumentError("No command supplied.", hint="Pass a program to execute.")
    if text[0] in {'"', "'"}:
        closing = text.find(text[0], 1)
        if closing == -1:
            raise InvalidArgumentError(
                f"Unbalanced quote in command: {command_line}",
                hint="Close the quote around the program path.",
            )
        program = text[1:closing]
        arguments = text[closing + 1 :].strip()
    else:
        parts = _WHITESPACE.split(text, maxsplit=1)
        program = parts[0]
        arguments = parts[1] if len(parts) > 1 else ""
    if not program.strip():
        raise InvalidArgumentError("No program supplied.", hint="Pass a program to execute.")
    return program, arguments


def build_argv(program: str, arguments: str) -> list[str]:
    if not arguments:
        return [program]
    try:
        return [program, *shlex.split(arguments, posix=not IS_WINDOWS)]
    except ValueError as exc:
        raise InvalidArgumentError(
            f"Could not parse arguments: {arguments}",
            hint=str(exc),
        ) from exc


class OneShotExecutor:
    def __init__(self, *, popen: Popen | None = None) -> None:
        self._popen = popen or subprocess.Popen

    def execute(self, command_line: str, *, check: bool = False, cwd: str | Path | None = None) -> str:
        """Run ``command_line`` to completion and return its standard output."""
        result = self.run(command_line, cwd=cwd)
        if check and not result.success:
            raise ProcessFailedError(
                f"Command exited with code {result.returncode}: {result.command[0]}",
                hint=result.stderr.strip() or "Inspect the command output.",
                returncode=result.returncode,
            )
        return result.stdout

    def run(
        self,
        command_line: str,
        *,
        cwd: str | Path | None = None,
        timeout_seconds: float | None = None,
    ) -> ExecutionResult:
        program, arguments = split_command_line(command_line)
        argv = build_argv(program, arguments)
        logger.debug("Executing program=%s args=%s cwd=%s", program, arguments, cwd)
        try:
            process = self._popen(
                argv,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                encoding="utf-8",
                errors="replace",
                cwd=str(cwd) if cwd else None,
            )
        except OSError as exc:
            raise ProcessSpawnError(
                f"Failed to start process: {program}",
                hint=str(exc) or "Check that the program exists and is executable.",
            ) from exc

        stderr_lines: list[str] = []
        drain = threading.Thread(
            target=_drain,
            args=(process.stderr, stderr_lines),
            daemon=True,
            name=f"termhub-exec-stderr-{process.pid}",
        )
        drain.start()

        timed_out = threading.Event()
        timer: threading.Timer | None = None
        if timeout_seconds is not None:
            timer = threading.Timer(timeout_seconds, _kill_on_timeout, args=(process, timed_out))
            timer.daemon = True
            timer.start()

        stdout_lines: list[str] = []
        try:
            if process.stdout is not None:
                for raw in iter(process.stdout.readline, ""):
                    stdout_lines.append(raw.rstrip("\r\n"))
            returncode = process.wait()
        finally:
            if timer is not None:
                timer.cancel()
            drain.join()
            for stream in (process.stdout, process.stderr):
                if stream is not None:
                    stream.close()

        if timed_out.is_set():
            raise TermHubError(
                f"Command timed out after {timeout_seconds}s: {program}",
                code=ExitCode.RUNTIME_ERROR,
                hint="Raise the timeout or make the command finish sooner.",
            )
        logger.debug("Executed program=%s returncode=%s", program, returncode)
        return ExecutionResult(
            command=tuple(argv),
            returncode=returncode,
            stdout=OUTPUT_SEPARATOR.join(stdout_lines),
            stderr=OUTPUT_SEPARATOR.join(stderr_lines),
        )


def _drain(stream: Any, sink: list[str]) -> None:
    if stream is None:
        return
    try:
        for raw in iter(stream.readline, ""):
            sink.append(raw.rstrip("\r\n"))
    except (OSError, ValueError) as exc:
        logger.debug("stderr drain stopped reason=%s", exc)


def _kill_on_timeout(process: Any, flag: threading.Event) -> None:
    if process.poll() is None:
        flag.set()
        try:
            process.kill()
        except OSError:
            logger.debug("Kill after timeout failed pid=%s", getattr(process, "pid", None), exc_info=True)
