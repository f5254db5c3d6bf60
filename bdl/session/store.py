"""
Variable store - global and local scopes plus ${name} interpolation.

The global scope is created once per session from the entry file's
declarations. The local scope belongs to whichever file is current and
is re-seeded from that file's declarations on every file change.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping, Optional

from bdl.core.errors import ScopeError
from bdl.core.values import Value, copy_value, to_display_string


def _copy_scope(values: Mapping[str, Value]) -> dict[str, Value]:
    return {name: copy_value(value) for name, value in values.items()}


class VariableStore:
    """
    Two explicit scopes with entry-file-only global writes.

    Lookups check the local scope first, then the global scope. Names
    found in neither resolve to Empty (None), never an error.
    """

    def __init__(
        self,
        entry_file: str,
        global_defaults: Mapping[str, Value] | None = None,
        local_defaults: Mapping[str, Value] | None = None,
    ):
        self.entry_file = entry_file
        self._globals: dict[str, Value] = _copy_scope(global_defaults or {})
        self._locals: dict[str, Value] = _copy_scope(local_defaults or {})

    def get(self, name: str) -> Value:
        if name in self._locals:
            return self._locals[name]
        return self._globals.get(name)

    def has(self, name: str) -> bool:
        return name in self._locals or name in self._globals

    def set_local(self, name: str, value: Value) -> None:
        self._locals[name] = value

    def set_global(self, name: str, value: Value, current_file: str) -> None:
        """
        Write a global variable.

        Raises:
            ScopeError: If current_file is not the entry file
        """
        if current_file != self.entry_file:
            raise ScopeError(name, current_file, self.entry_file)
        self._globals[name] = value

    def reset_local(self, defaults: Mapping[str, Value]) -> None:
        """Discard all local writes and start over from defaults."""
        self._locals = _copy_scope(defaults)

    def interpolate(self, text: str) -> str:
        """
        Replace ``${name}`` tokens with variable values.

        Unknown names become empty strings. An unterminated ``${`` is
        left as written.
        """
        if "${" not in text:
            return text

        parts: list[str] = []
        pos = 0
        while True:
            start = text.find("${", pos)
            if start < 0:
                break
            end = text.find("}", start + 2)
            if end < 0:
                break
            parts.append(text[pos:start])
            name = text[start + 2:end].strip()
            parts.append(to_display_string(self.get(name)))
            pos = end + 1
        parts.append(text[pos:])
        return "".join(parts)

    @property
    def globals(self) -> dict[str, Value]:
        return dict(self._globals)

    @property
    def locals(self) -> dict[str, Value]:
        return dict(self._locals)

    def snapshot(self) -> dict[str, dict[str, Value]]:
        """Copies of both scopes, e.g. for a host save routine."""
        return {
            "global": _copy_scope(self._globals),
            "local": _copy_scope(self._locals),
        }


@dataclass
class SessionState:
    """
    Position and variables of one session. Never shared between sessions.

    Attributes:
        entry_file: The file allowed to write globals
        variables: Global and local scopes
        current_file: File the session is in
        current_node: Node being rendered or awaiting input
        last_input: Most recent submitted line, trimmed
    """
    entry_file: str
    variables: VariableStore
    current_file: str
    current_node: Optional[str] = None
    last_input: str = ""

    @property
    def in_entry_file(self) -> bool:
        return self.current_file == self.entry_file
