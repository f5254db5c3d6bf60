"""
Error taxonomy shared by the parser, registry and session engine.

- ParseError: malformed script text. Fatal to loading that document.
- ReferenceError: a node, file, dependency or function that can't be
  found. The navigator recovers from these with its fallback policy.
- ScopeError: a global write outside the entry file. The write is
  dropped and a warning is surfaced.
- FunctionFailure: raised by host functions to signal failure.
"""

from __future__ import annotations

from enum import Enum, auto
from typing import Optional


class ParseErrorKind(Enum):
    """Reasons a script fails to parse."""
    MISSING_METADATA = auto()
    GLOBAL_OUTSIDE_ENTRY = auto()
    DUPLICATE_VARIABLE = auto()
    INVALID_NODE_NAME = auto()
    DUPLICATE_NODE = auto()
    MALFORMED_BRANCH = auto()
    MALFORMED_CALL = auto()
    MALFORMED_DECLARATION = auto()
    INVALID_VALUE = auto()
    DUPLICATE_BLOCK = auto()
    INVALID_DEPENDENCY = auto()
    DUPLICATE_DEPENDENCY = auto()


class ReferenceErrorKind(Enum):
    """Reasons a reference can't be resolved."""
    UNKNOWN_NODE = auto()
    UNKNOWN_FILE = auto()
    MISSING_DEPENDENCY = auto()
    UNKNOWN_FUNCTION = auto()
    UNDECLARED_DEPENDENCY = auto()


class BdlError(Exception):
    """Base exception for all engine errors."""


class ParseError(BdlError):
    """
    A script could not be parsed.

    Attributes:
        kind: What went wrong
        file_name: Script being parsed
        line: 1-based source line (None when not tied to a line)
    """

    def __init__(
        self,
        kind: ParseErrorKind,
        message: str,
        file_name: str = "",
        line: Optional[int] = None,
    ):
        self.kind = kind
        self.message = message
        self.file_name = file_name
        self.line = line
        super().__init__(message)

    def __str__(self) -> str:
        location = self.file_name or "<script>"
        if self.line is not None:
            location = f"{location}:{self.line}"
        return f"{location}: {self.kind.name}: {self.message}"


class ReferenceError(BdlError):
    """A file, node, dependency or function reference did not resolve."""

    def __init__(self, kind: ReferenceErrorKind, message: str):
        self.kind = kind
        self.message = message
        super().__init__(message)

    def __str__(self) -> str:
        return f"{self.kind.name}: {self.message}"


class ScopeError(BdlError):
    """A global variable was written outside the entry file."""

    def __init__(self, name: str, current_file: str, entry_file: str):
        self.name = name
        self.current_file = current_file
        self.entry_file = entry_file
        super().__init__(
            f"Cannot set global '{name}' from '{current_file}'; "
            f"only '{entry_file}' may write globals"
        )


class FunctionFailure(BdlError):
    """Raised by a host function to report that it failed."""
