"""
Script sources - where the registry reads raw script text from.
"""

from __future__ import annotations

from pathlib import Path
from typing import Mapping, Protocol


class ScriptNotFound(LookupError):
    """The source has no script with the requested name."""


class ScriptSource(Protocol):
    """Anything that can hand out script text by file name."""

    def read(self, name: str) -> str:
        ...


class DirectorySource:
    """Reads UTF-8 scripts from a directory on disk."""

    def __init__(self, root: str | Path):
        self.root = Path(root)

    def read(self, name: str) -> str:
        path = (self.root / name).resolve()
        # Keep lookups inside the root
        if self.root.resolve() not in path.parents:
            raise ScriptNotFound(name)
        if not path.is_file():
            raise ScriptNotFound(name)
        return path.read_text(encoding='utf-8')

    def __repr__(self) -> str:
        return f"DirectorySource({str(self.root)!r})"


class MemorySource:
    """Serves scripts from an in-memory mapping of name -> text."""

    def __init__(self, scripts: Mapping[str, str] | None = None):
        self._scripts: dict[str, str] = dict(scripts or {})

    def add(self, name: str, text: str) -> None:
        self._scripts[name] = text

    def read(self, name: str) -> str:
        try:
            return self._scripts[name]
        except KeyError:
            raise ScriptNotFound(name) from None

    def __contains__(self, name: str) -> bool:
        return name in self._scripts
