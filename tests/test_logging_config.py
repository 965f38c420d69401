from __future__ import annotations

import io
import logging as py_logging
from pathlib import Path

import pytest

import termhub.logging as th_logging


@pytest.fixture
def stream() -> io.StringIO:
    buffer = io.StringIO()
    yield buffer
    th_logging.configure_logging("INFO")


def test_session_records_carry_terminal_name(stream: io.StringIO) -> None:
    th_logging.configure_logging("DEBUG", stream)

    th_logging.terminal_logger("termhub.terminal.service", "build").info("terminal-event step=%s", "create")

    assert "termhub.terminal.service [build] terminal-event step=create" in stream.getvalue()


def test_records_outside_sessions_use_placeholder(stream: io.StringIO) -> None:
    th_logging.configure_logging("DEBUG", stream)

    py_logging.getLogger("termhub.execute").debug("Executed program=%s", "ls")
    th_logging.terminal_logger("termhub.callbacks", "").warning("callback-skip")

    lines = stream.getvalue().splitlines()
    assert lines[0].endswith("termhub.execute [-] Executed program=ls")
    assert lines[1].endswith("termhub.callbacks [-] callback-skip")


def test_explicit_terminal_extra_wins_over_adapter(stream: io.StringIO) -> None:
    th_logging.configure_logging("INFO", stream)
    adapter = th_logging.terminal_logger("termhub.cli", "cli")

    adapter.info("moved", extra={"terminal": "other"})

    assert "[other] moved" in stream.getvalue()


@pytest.mark.parametrize(("level", "expected"), [("warning", "WARN"), (" debug ", "DEBUG"), ("Error", "ERROR")])
def test_normalize_level(level: str, expected: str) -> None:
    assert th_logging.normalize_level(level) == expected


def test_console_level_filters_but_unknown_falls_back_to_info(stream: io.StringIO) -> None:
    logger = th_logging.configure_logging("loud", stream)

    py_logging.getLogger("termhub.terminal.process").debug("hidden")
    py_logging.getLogger("termhub.terminal.process").info("shown")

    assert logger.level == py_logging.INFO
    assert "hidden" not in stream.getvalue()
    assert "shown" in stream.getvalue()


def test_reconfiguring_closes_previous_file_handler(tmp_path: Path, stream: io.StringIO) -> None:
    first = th_logging.configure_logging("INFO", stream, log_file=tmp_path / "a.log")
    old_file = next(h for h in first.handlers if isinstance(h, py_logging.FileHandler))

    second = th_logging.configure_logging("INFO", stream, log_file=tmp_path / "b.log")

    assert old_file.stream is None
    assert [type(h) for h in second.handlers] == [py_logging.StreamHandler, py_logging.FileHandler]
    assert second.propagate is False


def test_file_handler_records_terminal_context(tmp_path: Path, stream: io.StringIO) -> None:
    log_file = tmp_path / "logs" / "termhub.log"
    logger = th_logging.configure_logging("DEBUG", stream, log_file=log_file)

    th_logging.terminal_logger("termhub.terminal.process", "t1").debug("Started process pid=%s", 42)
    for handler in logger.handlers:
        handler.flush()

    assert "[t1] Started process pid=42" in log_file.read_text(encoding="utf-8")


def test_unwritable_log_file_keeps_console_only(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch, stream: io.StringIO
) -> None:
    def refuse(*args: object, **kwargs: object) -> py_logging.Handler:
        raise OSError("read-only file system")

    monkeypatch.setattr(th_logging.py_logging, "FileHandler", refuse)

    logger = th_logging.configure_logging("INFO", stream, log_file=tmp_path / "termhub.log")

    assert [type(h) for h in logger.handlers] == [py_logging.StreamHandler]


def test_default_log_path_lives_under_termhub_config() -> None:
    path = th_logging.default_log_path()

    assert path.is_absolute()
    assert path.parts[-3:] == ("termhub", "logs", "termhub.log")
