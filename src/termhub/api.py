"""Operation facade binding host-protocol names to one owned session stack."""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path

from termhub.callbacks import CallbackInvoker, Evaluator, FaultReporter, Node, ScopeFactory
from termhub.config import AppConfig
from termhub.errors import NotFoundError
from termhub.execute import OneShotExecutor
from termhub.system import describe_os, is_os
from termhub.terminal.models import SessionSnapshot, TerminalSession
from termhub.terminal.process import ProcessSpawn
from termhub.terminal.registry import TerminalRegistry
from termhub.terminal.service import RootResolver, TerminalService


class TermHub:
    def __init__(
        self,
        config: AppConfig | None = None,
        *,
        root_resolver: RootResolver | None = None,
        scope_factory: ScopeFactory | None = None,
        evaluator: Evaluator | None = None,
        fault_reporter: FaultReporter | None = None,
        spawn: ProcessSpawn | None = None,
        executor: OneShotExecutor | None = None,
    ) -> None:
        self.config = config or AppConfig()
        self.registry = TerminalRegistry()
        self.terminals = TerminalService(
            self.registry,
            config=self.config,
            root_resolver=root_resolver,
            scope_factory=scope_factory,
            invoker=CallbackInvoker(evaluator, fault_reporter=fault_reporter),
            spawn=spawn,
        )
        self.executor = executor or OneShotExecutor()
        self.operations: dict[str, Callable[..., object]] = {
            "system.terminal.create": self.terminal_create,
            "system.terminal.write-line": self.terminal_write,
            "system.terminal.destroy": self.terminal_destroy,
            "system.execute": self.execute,
            "system.os": self.describe_os,
            "system.is-os": self.is_os,
        }

    def terminal_create(
        self,
        name: str,
        working_folder: str | None = None,
        on_output: Node | None = None,
        on_error: Node | None = None,
    ) -> TerminalSession:
        return self.terminals.create(name, working_folder, on_output=on_output, on_error=on_error)

    def terminal_write(self, name: str, command: str) -> None:
        self.terminals.write(name, command)

    def terminal_destroy(self, name: str) -> None:
        self.terminals.destroy(name)

    def terminal_list(self) -> list[SessionSnapshot]:
        return self.terminals.snapshot()

    def execute(self, command_line: str, cwd: str | Path | None = None) -> str:
        return self.executor.execute(command_line, cwd=cwd)

    def describe_os(self) -> str:
        return describe_os()

    def is_os(self, name: str) -> bool:
        return is_os(name)

    def dispatch(self, operation: str, *args: object, **kwargs: object) -> object:
        handler = self.operations.get(operation.strip())
        if handler is None:
            raise NotFoundError(
                f"Unknown operation: {operation}",
                hint="Use one of: " + ", ".join(sorted(self.operations)),
            )
        return handler(*args, **kwargs)

    def close(self) -> int:
        return self.terminals.shutdown()

    def __enter__(self) -> TermHub:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
