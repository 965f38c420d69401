"""Callback definitions, execution scopes and the callback invoker."""

from __future__ import annotations

import copy
import logging as py_logging
import threading
from collections.abc import Callable, Iterator
from dataclasses import dataclass, field
from typing import Any, Protocol

from termhub.errors import CallbackFault, InvalidArgumentError, TermHubError
from termhub.logging import terminal_logger

logger = py_logging.getLogger(__name__)

ARGUMENTS_NODE = ".arguments"
LAMBDA_NODE = ".lambda"
TEXT_ARGUMENT = "cmd"


@dataclass
class Node:
    """Named tree used as an opaque, cloneable callback program."""

    name: str
    value: Any = None
    children: list[Node] = field(default_factory=list)

    def clone(self) -> Node:
        # Callables are shared, everything else is copied.
        value = self.value if callable(self.value) else copy.deepcopy(self.value)
        return Node(self.name, value, [child.clone() for child in self.children])

    def add(self, child: Node) -> Node:
        self.children.append(child)
        return child

    def insert(self, index: int, child: Node) -> Node:
        self.children.insert(index, child)
        return child

    def find(self, name: str) -> Node | None:
        for child in self.children:
            if child.name == name:
                return child
        return None

    def __iter__(self) -> Iterator[Node]:
        return iter(self.children)


def lambda_node(target: Callable[..., object], **arguments: object) -> Node:
    """Build a callback definition wrapping a Python callable.

    Extra keyword arguments become child nodes and are passed along with the
    delivered text when the bundled ``call_target`` evaluator runs it.
    """
    node = Node(LAMBDA_NODE, target)
    for key, value in arguments.items():
        node.add(Node(key, value))
    return node


class ExecutionScope(Protocol):
    @property
    def released(self) -> bool: ...

    def create_child(self) -> ExecutionScope: ...

    def release(self) -> None: ...


ScopeFactory = Callable[[], ExecutionScope]
Evaluator = Callable[[ExecutionScope, Node], object]
FaultReporter = Callable[[CallbackFault], None]


class ScopeReleasedError(TermHubError):
    pass


class ServiceScope:
    """Disposable context handed to callbacks.

    Children see their parent's services but keep their own, so values set by
    one invocation never leak into the next.
    """

    def __init__(self, services: dict[str, object] | None = None, *, parent: ServiceScope | None = None) -> None:
        self._services: dict[str, object] = dict(services or {})
        self._parent = parent
        self._released = False
        self._lock = threading.Lock()
        self._finalizers: list[Callable[[], None]] = []

    @property
    def released(self) -> bool:
        return self._released

    @property
    def parent(self) -> ServiceScope | None:
        return self._parent

    def get(self, key: str, default: object = None) -> object:
        if key in self._services:
            return self._services[key]
        if self._parent is not None:
            return self._parent.get(key, default)
        return default

    def set(self, key: str, value: object) -> None:
        self._services[key] = value

    def on_release(self, finalizer: Callable[[], None]) -> None:
        self._finalizers.append(finalizer)

    def create_child(self) -> ServiceScope:
        if self._released:
            raise ScopeReleasedError("Execution scope already released.")
        return ServiceScope(parent=self)

    def release(self) -> None:
        with self._lock:
            if self._released:
                return
            self._released = True
            finalizers = list(reversed(self._finalizers))
            self._finalizers.clear()
        self._services.clear()
        for finalizer in finalizers:
            try:
                finalizer()
            except Exception:
                logger.exception("Scope finalizer failed")

    def __enter__(self) -> ServiceScope:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.release()


def call_target(scope: ExecutionScope, program: Node) -> object:
    """Default evaluator: call ``program.value`` with its ``.arguments`` as kwargs."""
    target = program.value
    if not callable(target):
        raise InvalidArgumentError(
            f"Callback '{program.name}' has no callable target.",
            hint="Build callback definitions with lambda_node().",
        )
    kwargs: dict[str, object] = {}
    for child in program.children:
        if child.name == ARGUMENTS_NODE:
            kwargs.update({arg.name: arg.value for arg in child.children})
        else:
            kwargs[child.name] = child.value
    return target(**kwargs)


def build_invocation(definition: Node, text: str | None) -> Node:
    program = definition.clone()
    arguments = Node(ARGUMENTS_NODE)
    arguments.add(Node(TEXT_ARGUMENT, text))
    program.insert(0, arguments)
    return program


def _log_fault(fault: CallbackFault) -> None:
    terminal_logger(__name__, fault.terminal).error(
        "callback-fault message=%s",
        fault.message,
        exc_info=fault.cause,
    )


class CallbackInvoker:
    def __init__(
        self,
        evaluator: Evaluator | None = None,
        *,
        fault_reporter: FaultReporter | None = None,
    ) -> None:
        self._evaluator = evaluator or call_target
        self._fault_reporter = fault_reporter or _log_fault

    def invoke(
        self,
        scope: ExecutionScope,
        definition: Node,
        text: str | None,
        *,
        force_deliver_empty: bool = False,
        terminal: str = "",
    ) -> bool:
        """Run ``definition`` with ``text`` in a fresh child of ``scope``.

        Empty text is skipped unless ``force_deliver_empty`` is set. Errors
        raised by the callback go to the fault reporter. Returns True when the
        callback ran to completion.
        """
        if not text and not force_deliver_empty:
            return False
        log = terminal_logger(__name__, terminal)
        if scope.released:
            log.debug("callback-skip reason=scope-released")
            return False
        try:
            child = scope.create_child()
        except ScopeReleasedError:
            log.debug("callback-skip reason=scope-released")
            return False

        try:
            self._evaluator(child, build_invocation(definition, text))
        except Exception as exc:
            self._report(
                CallbackFault(
                    f"Callback raised {type(exc).__name__}: {exc}",
                    hint="Inspect the callback program.",
                    terminal=terminal,
                    cause=exc,
                )
            )
            return False
        finally:
            child.release()
        return True

    def _report(self, fault: CallbackFault) -> None:
        try:
            self._fault_reporter(fault)
        except Exception:
            terminal_logger(__name__, fault.terminal).exception("Fault reporter failed")
