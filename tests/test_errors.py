"""Errors module edge case tests."""

from __future__ import annotations

from termhub.errors import (
    CallbackFault,
    ExitCode,
    InvalidArgumentError,
    NotFoundError,
    ProcessFailedError,
    ProcessSpawnError,
    TermHubError,
    user_facing_error,
)


def test_user_facing_error_without_hint() -> None:
    result = user_facing_error("something went wrong")
    assert result == "Error: something went wrong."


def test_user_facing_error_with_hint() -> None:
    result = user_facing_error("something went wrong", hint="try again")
    assert result == "Error: something went wrong. Next step: try again"


def test_exit_code_values() -> None:
    assert int(ExitCode.SUCCESS) == 0
    assert int(ExitCode.INVALID_ARGS) == 2
    assert int(ExitCode.CONFIG_ERROR) == 3
    assert int(ExitCode.RUNTIME_ERROR) == 4
    assert int(ExitCode.VALIDATION_ERROR) == 7
    assert int(ExitCode.UNSUPPORTED_PLATFORM) == 8
    assert int(ExitCode.NOT_FOUND) == 9
    assert int(ExitCode.CALLBACK_ERROR) == 10
    assert int(ExitCode.SPAWN_ERROR) == 11


def test_termhub_error_str_with_hint() -> None:
    error = TermHubError("msg", hint="hint")
    assert str(error) == "msg Hint: hint"


def test_termhub_error_str_without_hint() -> None:
    error = TermHubError("msg")
    assert str(error) == "msg"


def test_error_kinds_carry_their_exit_codes() -> None:
    assert InvalidArgumentError("x").code == ExitCode.VALIDATION_ERROR
    assert NotFoundError("x").code == ExitCode.NOT_FOUND
    assert ProcessSpawnError("x").code == ExitCode.SPAWN_ERROR
    assert CallbackFault("x").code == ExitCode.CALLBACK_ERROR
    assert ProcessFailedError("x", returncode=3).code == ExitCode.RUNTIME_ERROR


def test_error_kinds_are_termhub_errors() -> None:
    for kind in (InvalidArgumentError, NotFoundError, ProcessSpawnError, ProcessFailedError, CallbackFault):
        assert isinstance(kind("x"), TermHubError)


def test_callback_fault_keeps_terminal_and_cause() -> None:
    cause = ValueError("boom")
    fault = CallbackFault("Callback raised", terminal="t1", cause=cause)

    assert fault.terminal == "t1"
    assert fault.cause is cause
