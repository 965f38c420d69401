"""Logging setup for the ``termhub`` logger tree.

Every record carries a ``terminal`` attribute naming the session it belongs
to (``-`` for records outside any session). Session code logs through
``terminal_logger`` so the name is attached once instead of in each message.
"""

from __future__ import annotations

import logging as py_logging
import sys
from collections.abc import MutableMapping
from pathlib import Path
from typing import Any, TextIO

ROOT_LOGGER = "termhub"
NO_TERMINAL = "-"
LOG_LEVELS = {
    "DEBUG": py_logging.DEBUG,
    "INFO": py_logging.INFO,
    "WARN": py_logging.WARNING,
    "WARNING": py_logging.WARNING,
    "ERROR": py_logging.ERROR,
}
DEFAULT_LOG_PATH = Path("~/.config/termhub/logs/termhub.log")
_FORMAT = "%(asctime)s %(levelname)s %(name)s [%(terminal)s] %(message)s"


class TerminalContextFilter(py_logging.Filter):
    """Give records logged without a session a placeholder ``terminal``."""

    def filter(self, record: py_logging.LogRecord) -> bool:
        if not getattr(record, "terminal", None):
            record.terminal = NO_TERMINAL
        return True


class TerminalLoggerAdapter(py_logging.LoggerAdapter):
    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> tuple[Any, MutableMapping[str, Any]]:
        extra = dict(kwargs.get("extra") or {})
        extra.setdefault("terminal", self.extra["terminal"])
        kwargs["extra"] = extra
        return msg, kwargs


def terminal_logger(name: str, terminal: str) -> TerminalLoggerAdapter:
    return TerminalLoggerAdapter(py_logging.getLogger(name), {"terminal": terminal or NO_TERMINAL})


def normalize_level(level: str) -> str:
    normalized = level.strip().upper()
    return "WARN" if normalized == "WARNING" else normalized


def default_log_path() -> Path:
    try:
        return DEFAULT_LOG_PATH.expanduser()
    except RuntimeError:
        # No resolvable home directory.
        return (Path.cwd() / ".termhub" / "logs" / "termhub.log").resolve()


def _file_handler(log_file: str | Path) -> py_logging.Handler | None:
    log_path = Path(log_file)
    try:
        log_path = log_path.expanduser().resolve()
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handler = py_logging.FileHandler(log_path, encoding="utf-8")
    except (OSError, RuntimeError):
        return None
    handler.setLevel(py_logging.DEBUG)
    return handler


def configure_logging(
    level: str = "INFO",
    stream: TextIO | None = None,
    *,
    log_file: str | Path | None = None,
) -> py_logging.Logger:
    """(Re)configure the ``termhub`` logger.

    Installs a stream handler at ``level`` and, when ``log_file`` can be
    opened, a DEBUG file handler. Earlier handlers are closed, so calling
    this again after the config is loaded is safe.
    """
    resolved = LOG_LEVELS.get(normalize_level(level), py_logging.INFO)
    logger = py_logging.getLogger(ROOT_LOGGER)
    for existing in list(logger.handlers):
        logger.removeHandler(existing)
        existing.close()

    handlers: list[py_logging.Handler] = [py_logging.StreamHandler(stream or sys.stderr)]
    handlers[0].setLevel(resolved)
    if log_file:
        file_handler = _file_handler(log_file)
        if file_handler is not None:
            handlers.append(file_handler)

    formatter = py_logging.Formatter(_FORMAT)
    context = TerminalContextFilter()
    for handler in handlers:
        handler.setFormatter(formatter)
        handler.addFilter(context)
        logger.addHandler(handler)

    logger.setLevel(resolved)
    logger.propagate = False
    return logger
