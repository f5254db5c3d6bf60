"""
Function dispatcher - host-provided capabilities called from scripts.

A script line ``!{analyzePassword} : ~{message} ~{next}`` calls the host
function registered as "analyzePassword" and binds what it returns, in
order, to the local variables ``message`` and ``next``.

Usage:
    functions = FunctionRegistry()

    @functions.function("getTime")
    def get_time(scope: ScopeView):
        return [datetime.now().strftime("%H:%M")]
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from bdl.core.errors import FunctionFailure, ReferenceError, ReferenceErrorKind, ScopeError
from bdl.core.values import Value, copy_value, is_value, normalize_results
from bdl.script.document import Call
from bdl.session.store import SessionState, VariableStore

logger = logging.getLogger(__name__)


class ScopeView:
    """
    What a host function sees of the session.

    Global writes outside the entry file are dropped and reported to
    on_violation instead of raising. Values are handed out as copies, so
    changes to a mapping only stick through set_local/set_global.
    """

    def __init__(
        self,
        state: SessionState,
        on_violation: Optional[Callable[[ScopeError], None]] = None,
    ):
        self._state = state
        self._on_violation = on_violation

    @property
    def current_file(self) -> str:
        return self._state.current_file

    @property
    def current_node(self) -> Optional[str]:
        return self._state.current_node

    @property
    def entry_file(self) -> str:
        return self._state.entry_file

    @property
    def last_input(self) -> str:
        return self._state.last_input

    def get(self, name: str) -> Value:
        return copy_value(self._state.variables.get(name))

    def set_local(self, name: str, value: Value) -> None:
        self._state.variables.set_local(name, value)

    def set_global(self, name: str, value: Value) -> bool:
        """Write a global. Returns False if the write was dropped."""
        try:
            self._state.variables.set_global(name, value, self._state.current_file)
        except ScopeError as e:
            logger.warning(str(e))
            if self._on_violation:
                self._on_violation(e)
            return False
        return True

    def interpolate(self, text: str) -> str:
        return self._state.variables.interpolate(text)

    def snapshot(self) -> dict[str, dict[str, Value]]:
        return self._state.variables.snapshot()


HostFunction = Callable[[ScopeView], Any]


@dataclass
class CallResult:
    """Values returned by a host function, or a failure."""
    values: list[Value] = field(default_factory=list)
    ok: bool = True


@dataclass(frozen=True)
class Fallback:
    """What a failed call binds: a message and a destination reference."""
    message: str
    node: str


class FunctionRegistry:
    """
    Named host functions.

    A function receives a ScopeView and returns a list of values, a
    single value or None. Raising (FunctionFailure or anything else)
    signals failure; the cause is logged but not interpreted.
    """

    def __init__(self):
        self._functions: dict[str, HostFunction] = {}

    def register(self, name: str, fn: HostFunction) -> None:
        if name in self._functions:
            logger.warning(f"Replacing host function '{name}'")
        self._functions[name] = fn

    def function(self, name: str) -> Callable[[HostFunction], HostFunction]:
        """Decorator form of register()."""
        def decorator(fn: HostFunction) -> HostFunction:
            self.register(name, fn)
            return fn
        return decorator

    def unregister(self, name: str) -> None:
        self._functions.pop(name, None)

    def names(self) -> list[str]:
        return sorted(self._functions)

    def __contains__(self, name: str) -> bool:
        return name in self._functions

    def __len__(self) -> int:
        return len(self._functions)

    def invoke(self, name: str, scope: ScopeView) -> CallResult:
        """
        Call a host function.

        Raises:
            ReferenceError: UNKNOWN_FUNCTION if nothing is registered as name
        """
        fn = self._functions.get(name)
        if fn is None:
            raise ReferenceError(
                ReferenceErrorKind.UNKNOWN_FUNCTION,
                f"No host function registered as '{name}'",
            )

        try:
            result = fn(scope)
        except FunctionFailure as e:
            logger.warning(f"Host function '{name}' failed: {e}")
            return CallResult(ok=False)
        except Exception:
            logger.exception(f"Host function '{name}' raised")
            return CallResult(ok=False)

        values = []
        for value in normalize_results(result):
            if not is_value(value):
                logger.warning(f"Host function '{name}' returned {type(value).__name__}; storing as text")
                value = str(value)
            values.append(value)
        return CallResult(values)


def bind_results(
    call: Call,
    result: CallResult,
    variables: VariableStore,
    fallback: Fallback,
) -> None:
    """
    Bind a call's results to its binding names as local variables.

    Missing values bind Empty and extra values are dropped. A failed
    call binds the fallback message to the first name and the fallback
    destination to the second.
    """
    if result.ok:
        values = list(result.values[:len(call.bindings)])
    else:
        values = [fallback.message, fallback.node]

    for index, name in enumerate(call.bindings):
        variables.set_local(name, values[index] if index < len(values) else None)
