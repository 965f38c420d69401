"""Deterministic error model and exit code contract."""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum


class ExitCode(IntEnum):
    SUCCESS = 0
    INVALID_ARGS = 2
    CONFIG_ERROR = 3
    RUNTIME_ERROR = 4
    VALIDATION_ERROR = 7
    UNSUPPORTED_PLATFORM = 8
    NOT_FOUND = 9
    CALLBACK_ERROR = 10
    SPAWN_ERROR = 11


@dataclass
class TermHubError(Exception):
    message: str
    code: ExitCode = ExitCode.RUNTIME_ERROR
    hint: str = ""

    def __str__(self) -> str:
        if self.hint:
            return f"{self.message} Hint: {self.hint}"
        return self.message


@dataclass
class InvalidArgumentError(TermHubError):
    """Missing or empty input, or a session name collision."""

    code: ExitCode = ExitCode.VALIDATION_ERROR


@dataclass
class NotFoundError(TermHubError):
    """No session (or operation) is registered under the requested name."""

    code: ExitCode = ExitCode.NOT_FOUND


@dataclass
class ProcessSpawnError(TermHubError):
    """The operating system refused to start a child process."""

    code: ExitCode = ExitCode.SPAWN_ERROR


@dataclass
class ProcessFailedError(TermHubError):
    returncode: int = 0
    code: ExitCode = ExitCode.RUNTIME_ERROR


@dataclass
class CallbackFault(TermHubError):
    """A delivered callback raised. Reported, never propagated into a pump."""

    terminal: str = ""
    cause: BaseException | None = None
    code: ExitCode = ExitCode.CALLBACK_ERROR


def user_facing_error(message: str, *, hint: str = "") -> str:
    if hint:
        return f"Error: {message}. Next step: {hint}"
    return f"Error: {message}."
