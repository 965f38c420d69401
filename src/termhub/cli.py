"""Public CLI contract and entrypoint."""

from __future__ import annotations

import argparse
import logging as py_logging
import sys
import threading
from collections.abc import Sequence
from contextlib import suppress
from pathlib import Path
from typing import TextIO

from .api import TermHub
from .callbacks import lambda_node
from .config import load_config
from .errors import ExitCode, TermHubError, user_facing_error
from .logging import LOG_LEVELS, configure_logging, default_log_path, normalize_level, terminal_logger

_VALID_LOG_LEVELS = ("DEBUG", "INFO", "WARN", "ERROR")
DEFAULT_EXIT_TIMEOUT_SECONDS = 30.0


def _log_level_type(value: str) -> str:
    normalized = normalize_level(value)
    if normalized not in _VALID_LOG_LEVELS:
        accepted = ", ".join(_VALID_LOG_LEVELS)
        raise argparse.ArgumentTypeError(f"--log-level must be one of: {accepted}")
    return normalized


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="termhub")
    parser.add_argument("--config", type=Path, default=None)
    parser.add_argument("--log-level", type=_log_level_type, default=None)
    parser.add_argument("--log-file", type=Path, default=None)
    commands = parser.add_subparsers(dest="command", required=True)

    exec_parser = commands.add_parser("exec", help="Run a program and print its standard output")
    exec_parser.add_argument("command_line")
    exec_parser.add_argument("--check", action="store_true", help="Fail on non-zero exit code")

    commands.add_parser("os", help="Print the operating system description")

    is_os_parser = commands.add_parser("is-os", help="Exit 0 when the host matches PLATFORM")
    is_os_parser.add_argument("platform")

    shell_parser = commands.add_parser("shell", help="Pipe stdin lines into a named shell session")
    shell_parser.add_argument("--name", default="cli")
    shell_parser.add_argument("--cwd", default=None, help="Folder relative to the configured root")
    shell_parser.add_argument(
        "--exit-timeout",
        type=float,
        default=DEFAULT_EXIT_TIMEOUT_SECONDS,
        help="Seconds to wait for the shell to exit after end of input",
    )
    return parser


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    return build_parser().parse_args(argv)


def run_shell(
    hub: TermHub,
    *,
    name: str,
    working_folder: str | None,
    stdin: TextIO,
    stdout: TextIO,
    stderr: TextIO,
    exit_timeout: float = DEFAULT_EXIT_TIMEOUT_SECONDS,
) -> int:
    log = terminal_logger(__name__, name)
    output_lock = threading.Lock()
    exited = threading.Event()

    def emit(stream: TextIO, text: str) -> None:
        with output_lock:
            stream.write(text + "\n")
            stream.flush()

    def on_output(cmd: str | None) -> None:
        if cmd is None:
            exited.set()
            return
        emit(stdout, cmd)

    hub.terminal_create(
        name,
        working_folder,
        on_output=lambda_node(on_output),
        on_error=lambda_node(lambda cmd: emit(stderr, cmd)),
    )
    try:
        for line in stdin:
            command = line.rstrip("\r\n")
            if not command.strip():
                continue
            try:
                hub.terminal_write(name, command)
            except TermHubError as exc:
                log.debug("Shell session gone reason=%s", exc.message)
                break
        else:
            # End of input: let the shell finish queued commands and exit on its own.
            with suppress(TermHubError):
                hub.terminal_write(name, "exit")
        if not exited.wait(timeout=exit_timeout):
            log.warning("Shell did not exit within %ss; destroying it", exit_timeout)
    finally:
        hub.terminal_destroy(name)
    return int(ExitCode.SUCCESS)


def run_command(namespace: argparse.Namespace, hub: TermHub) -> int:
    if namespace.command == "exec":
        output = hub.executor.execute(namespace.command_line, check=namespace.check)
        if output:
            print(output)
        return int(ExitCode.SUCCESS)
    if namespace.command == "os":
        print(hub.describe_os())
        return int(ExitCode.SUCCESS)
    if namespace.command == "is-os":
        matches = hub.is_os(namespace.platform)
        print("true" if matches else "false")
        return int(ExitCode.SUCCESS) if matches else 1
    if namespace.command == "shell":
        return run_shell(
            hub,
            name=namespace.name,
            working_folder=namespace.cwd,
            stdin=sys.stdin,
            stdout=sys.stdout,
            stderr=sys.stderr,
            exit_timeout=namespace.exit_timeout,
        )
    raise TermHubError(
        f"Unknown command: {namespace.command}",
        code=ExitCode.INVALID_ARGS,
        hint="Run termhub --help.",
    )


def main(argv: Sequence[str] | None = None) -> int:
    log_path = default_log_path()
    logger = configure_logging(log_file=log_path)
    parser = build_parser()
    try:
        namespace = parser.parse_args(argv)
    except SystemExit as exc:
        if exc.code not in (None, 0):
            logger.warning("Argument parsing failed with exit code %s", exc.code)
        return int(exc.code or 0)

    config = load_config(namespace.config)
    if namespace.log_file is not None:
        log_path = namespace.log_file.expanduser()
    level = namespace.log_level or config.log_level
    logger = configure_logging(level=level, log_file=log_path)
    logger.debug("Starting command=%s level=%s", namespace.command, LOG_LEVELS.get(level))

    try:
        with TermHub(config) as hub:
            return run_command(namespace, hub)
    except TermHubError as exc:
        logger.error(
            "Handled TermHubError (code=%s): %s",
            int(exc.code),
            exc.message,
            exc_info=logger.isEnabledFor(py_logging.DEBUG),
        )
        print(user_facing_error(exc.message, hint=exc.hint), file=sys.stderr)
        return int(exc.code)
    except Exception:
        logger.exception("Unhandled exception in CLI entrypoint")
        try:
            hint = f"Inspect logs: {log_path}"
            print(user_facing_error("Unexpected runtime failure", hint=hint), file=sys.stderr)
        except Exception:
            pass
        return int(ExitCode.RUNTIME_ERROR)


def run(argv: Sequence[str] | None = None) -> int:
    return main(argv)
