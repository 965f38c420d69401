from __future__ import annotations

import sys
from pathlib import Path

import pytest

from termhub.errors import ExitCode, InvalidArgumentError, ProcessFailedError, ProcessSpawnError, TermHubError
from termhub.execute import ExecutionResult, OneShotExecutor, build_argv, split_command_line

posix_only = pytest.mark.skipif(sys.platform == "win32", reason="posix quoting rules")


def _python(code: str) -> str:
    return f'"{sys.executable}" -c "{code}"'


@pytest.mark.parametrize(
    ("command_line", "expected"),
    [
        ("ls", ("ls", "")),
        ("  git status --short ", ("git", "status --short")),
        ("echo\thello", ("echo", "hello")),
        ("grep \t  -n   foo", ("grep", "-n   foo")),
        ('"C:/Program Files/tool.exe" --flag', ("C:/Program Files/tool.exe", "--flag")),
        ("'/opt/my tools/run' a b", ("/opt/my tools/run", "a b")),
    ],
)
def test_split_command_line(command_line: str, expected: tuple[str, str]) -> None:
    assert split_command_line(command_line) == expected


@pytest.mark.parametrize("command_line", ["", "   ", '"unterminated', '""'])
def test_split_command_line_rejects_invalid_input(command_line: str) -> None:
    with pytest.raises(InvalidArgumentError) as exc:
        split_command_line(command_line)

    assert exc.value.code == ExitCode.VALIDATION_ERROR


@posix_only
def test_build_argv_honours_quoted_arguments() -> None:
    assert build_argv("echo", "") == ["echo"]
    assert build_argv("echo", "'hello world' x") == ["echo", "hello world", "x"]


@posix_only
def test_build_argv_rejects_unbalanced_argument_quotes() -> None:
    with pytest.raises(InvalidArgumentError):
        build_argv("echo", "'broken")


@posix_only
def test_execute_returns_stdout_joined_with_newlines() -> None:
    output = OneShotExecutor().execute(_python("print('one'); print('two')"))

    assert output == "one\ntwo"


@posix_only
def test_run_captures_stderr_and_returncode() -> None:
    code = "import sys; print('out'); print('bad', file=sys.stderr); sys.exit(3)"

    result = OneShotExecutor().run(_python(code))

    assert isinstance(result, ExecutionResult)
    assert result.returncode == 3
    assert result.success is False
    assert result.stdout == "out"
    assert result.stderr == "bad"
    assert result.command[0] == sys.executable


@posix_only
def test_execute_ignores_failure_unless_checked() -> None:
    executor = OneShotExecutor()
    code = "import sys; print('partial'); sys.exit(2)"

    assert executor.execute(_python(code)) == "partial"
    with pytest.raises(ProcessFailedError) as exc:
        executor.execute(_python(code), check=True)

    assert exc.value.returncode == 2
    assert exc.value.code == ExitCode.RUNTIME_ERROR


@posix_only
def test_execute_runs_in_given_directory(tmp_path: Path) -> None:
    output = OneShotExecutor().execute(_python("import os; print(os.getcwd())"), cwd=tmp_path)

    assert Path(output).resolve() == tmp_path.resolve()


@posix_only
def test_run_kills_command_after_timeout() -> None:
    with pytest.raises(TermHubError) as exc:
        OneShotExecutor().run(_python("import time; time.sleep(30)"), timeout_seconds=0.2)

    assert "timed out" in exc.value.message


def test_missing_program_raises_spawn_error(tmp_path: Path) -> None:
    missing = tmp_path / "no-such-program"

    with pytest.raises(ProcessSpawnError) as exc:
        OneShotExecutor().execute(f'"{missing}" --version')

    assert exc.value.code == ExitCode.SPAWN_ERROR


def test_executor_passes_argv_and_pipes_to_popen() -> None:
    calls: list[tuple[list[str], dict[str, object]]] = []

    def refusing_popen(argv: list[str], **kwargs: object) -> None:
        calls.append((argv, kwargs))
        raise PermissionError("not executable")

    with pytest.raises(ProcessSpawnError) as exc:
        OneShotExecutor(popen=refusing_popen).execute("tool --verbose", cwd="/srv")

    assert calls[0][0] == ["tool", "--verbose"]
    assert calls[0][1]["cwd"] == "/srv"
    assert calls[0][1]["text"] is True
    assert "not executable" in exc.value.hint
