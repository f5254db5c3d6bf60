"""
Parsed script structures.

A Document is one parsed .bdl file. Documents are built once by the
parser and never modified afterwards, so they can be shared between
sessions.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional, Union

from bdl.core.values import Value


# ----------------------------------------------------------------------------
# Destinations
# ----------------------------------------------------------------------------

@dataclass(frozen=True)
class NodeRef:
    """A node in the current file: ``-> intro``."""
    name: str

    def __str__(self) -> str:
        return self.name


@dataclass(frozen=True)
class FileTransfer:
    """
    A node in another file: ``-> [passwords.bdl:start]``.

    Either side may contain ``${var}`` tokens, interpolated at
    transition time.
    """
    file: str
    node: str

    @property
    def is_literal(self) -> bool:
        return "${" not in self.file and "${" not in self.node

    def __str__(self) -> str:
        return f"[{self.file}:{self.node}]"


@dataclass(frozen=True)
class Exit:
    """Ends the session: ``-> {exit}``."""

    def __str__(self) -> str:
        return "{exit}"


@dataclass(frozen=True)
class Dynamic:
    """A destination read from a variable at runtime: ``-> ${next}``."""
    variable: str

    def __str__(self) -> str:
        return "${" + self.variable + "}"


EXIT = Exit()

Destination = Union[NodeRef, FileTransfer, Exit, Dynamic]


# ----------------------------------------------------------------------------
# Node content
# ----------------------------------------------------------------------------

@dataclass(frozen=True)
class Text:
    """One or more lines of text, possibly with ``${name}`` tokens."""
    text: str


@dataclass(frozen=True)
class Call:
    """A host function call: ``!{name} : ~{a} ~{b}``."""
    function: str
    bindings: tuple[str, ...]


ContentElement = Union[Text, Call]


# ----------------------------------------------------------------------------
# Branches
# ----------------------------------------------------------------------------

@dataclass(frozen=True)
class Option:
    """Taken when user input matches one of the keywords."""
    keywords: frozenset[str]
    destination: Destination

    def matches(self, token: str) -> bool:
        return token in self.keywords


@dataclass(frozen=True)
class Condition:
    """Taken immediately when the variable is truthy."""
    variable: str
    destination: Destination


@dataclass(frozen=True)
class Jump:
    """Taken unconditionally once reached: ``-> dest``."""
    destination: Destination


Branch = Union[Option, Condition, Jump]


# ----------------------------------------------------------------------------
# Nodes and documents
# ----------------------------------------------------------------------------

@dataclass(frozen=True)
class Node:
    """A named unit of content and branches."""
    name: str
    content: tuple[ContentElement, ...] = ()
    branches: tuple[Branch, ...] = ()
    line: int = 0

    @property
    def options(self) -> list[Option]:
        return [b for b in self.branches if isinstance(b, Option)]

    @property
    def has_options(self) -> bool:
        return any(isinstance(b, Option) for b in self.branches)


@dataclass(frozen=True)
class Metadata:
    """Header fields of a script."""
    topic: str
    description: str
    author: str
    version: str
    required: Optional[tuple[str, ...]] = None
    extra: dict[str, str] = field(default_factory=dict)

    @property
    def dependencies(self) -> tuple[str, ...]:
        return self.required or ()


@dataclass(frozen=True)
class Document:
    """
    One parsed script.

    Attributes:
        name: File identifier (e.g. "main.bdl")
        metadata: Header fields
        declares_global: True only for the entry file
        local_defaults: Initial local variables
        global_defaults: Initial global variables (entry file only)
        nodes: Nodes by name, in source order
    """
    name: str
    metadata: Metadata
    declares_global: bool = False
    local_defaults: dict[str, Value] = field(default_factory=dict)
    global_defaults: dict[str, Value] = field(default_factory=dict)
    nodes: dict[str, Node] = field(default_factory=dict)

    @property
    def start_node(self) -> Optional[str]:
        """"start" when present, otherwise the first node."""
        if "start" in self.nodes:
            return "start"
        return next(iter(self.nodes), None)

    def get_node(self, name: str) -> Optional[Node]:
        return self.nodes.get(name)

    def __contains__(self, name: str) -> bool:
        return name in self.nodes
