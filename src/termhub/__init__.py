"""Named, concurrent shell sessions and one-shot process execution."""

from termhub.api import TermHub
from termhub.callbacks import CallbackInvoker, Node, ServiceScope, lambda_node
from termhub.errors import (
    CallbackFault,
    ExitCode,
    InvalidArgumentError,
    NotFoundError,
    ProcessFailedError,
    ProcessSpawnError,
    TermHubError,
)
from termhub.execute import ExecutionResult, OneShotExecutor
from termhub.system import describe_os, is_os
from termhub.terminal import TerminalRegistry, TerminalService, TerminalSession

__version__ = "0.1.0"

__all__ = [
    "CallbackFault",
    "CallbackInvoker",
    "describe_os",
    "ExecutionResult",
    "ExitCode",
    "InvalidArgumentError",
    "is_os",
    "lambda_node",
    "Node",
    "NotFoundError",
    "OneShotExecutor",
    "ProcessFailedError",
    "ProcessSpawnError",
    "ServiceScope",
    "TermHub",
    "TermHubError",
    "TerminalRegistry",
    "TerminalService",
    "TerminalSession",
]
