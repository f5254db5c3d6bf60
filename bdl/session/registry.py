"""
Document registry - loads, caches and links scripts by name.

Documents are referenced by file name rather than embedded in each
other, so scripts that require each other are fine: a name that is
already registered is returned as-is instead of being parsed again.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Iterator, Optional

from bdl.core.errors import BdlError, ParseError, ReferenceError, ReferenceErrorKind
from bdl.script.document import Document, Dynamic, FileTransfer, Node, NodeRef
from bdl.script.parser import parse
from bdl.session.sources import ScriptNotFound, ScriptSource


@dataclass(frozen=True)
class LinkIssue:
    """
    A finding of the static link check.

    kind is None for destinations that can only be resolved at runtime
    (interpolated transfers and ``${var}`` destinations).
    """
    file: str
    node: str
    destination: str
    kind: Optional[ReferenceErrorKind]
    message: str

    @property
    def is_error(self) -> bool:
        return self.kind is not None


class DocumentRegistry:
    """
    Shared, load-once store of parsed Documents.

    Population is serialized by a lock. Once loaded a Document is never
    modified, so a registry can back any number of sessions.

    Usage:
        registry = DocumentRegistry(DirectorySource("scripts"))
        node = registry.resolve("main.bdl", "start")
    """

    def __init__(self, source: ScriptSource, entry_file: str = "main.bdl"):
        self.source = source
        self.entry_file = entry_file

        self._documents: dict[str, Document] = {}
        self._complete: set[str] = set()
        self._pending: list[str] = []
        self._lock = threading.RLock()

        self.logger = logging.getLogger(__name__)

    def load(self, file_name: str) -> Document:
        """
        Load a document and, recursively, everything it requires.

        Raises:
            ReferenceError: UNKNOWN_FILE if the source doesn't have it,
                MISSING_DEPENDENCY if a required file fails to load
            ParseError: If the script is malformed
        """
        if file_name in self._complete:
            return self._documents[file_name]

        with self._lock:
            # Already loaded, or being loaded further up this call stack
            document = self._documents.get(file_name)
            if document is not None:
                return document

            try:
                text = self.source.read(file_name)
            except ScriptNotFound:
                raise ReferenceError(
                    ReferenceErrorKind.UNKNOWN_FILE,
                    f"Script not found: {file_name}",
                ) from None
            except OSError as e:
                raise ReferenceError(
                    ReferenceErrorKind.UNKNOWN_FILE,
                    f"Could not read {file_name}: {e}",
                ) from e

            document = parse(text, file_name, is_entry_file=(file_name == self.entry_file))

            # Documents registered by one top-level load succeed or fail together
            outermost = not self._pending
            self._documents[file_name] = document
            self._pending.append(file_name)

            try:
                for dependency in document.metadata.dependencies:
                    try:
                        self.load(dependency)
                    except BdlError as e:
                        raise ReferenceError(
                            ReferenceErrorKind.MISSING_DEPENDENCY,
                            f"{file_name} requires {dependency}: {e}",
                        ) from e
            except Exception:
                if outermost:
                    for name in self._pending:
                        self._documents.pop(name, None)
                    self._pending.clear()
                raise

            self.logger.info(
                f"Loaded {file_name}: {len(document.nodes)} nodes, "
                f"{len(document.metadata.dependencies)} dependencies"
            )
            if outermost:
                self._complete.update(self._pending)
                self._pending.clear()
            return document

    def resolve(self, file_name: str, node_name: str) -> Node:
        """
        Find a node in a file.

        Raises:
            ReferenceError: UNKNOWN_FILE if the file can't be loaded or
                parsed, UNKNOWN_NODE if the node isn't in it
        """
        try:
            document = self.load(file_name)
        except ReferenceError as e:
            if e.kind is ReferenceErrorKind.UNKNOWN_FILE:
                raise
            raise ReferenceError(
                ReferenceErrorKind.UNKNOWN_FILE,
                f"Could not load {file_name}: {e}",
            ) from e
        except ParseError as e:
            raise ReferenceError(
                ReferenceErrorKind.UNKNOWN_FILE,
                f"Could not parse {file_name}: {e}",
            ) from e

        node = document.get_node(node_name)
        if node is None:
            raise ReferenceError(
                ReferenceErrorKind.UNKNOWN_NODE,
                f"Node '{node_name}' not found in {file_name}",
            )
        return node

    def get(self, file_name: str) -> Optional[Document]:
        """Get an already-loaded document without loading it."""
        if file_name in self._complete:
            return self._documents[file_name]
        return None

    @property
    def loaded(self) -> list[str]:
        return sorted(self._complete)

    def documents(self) -> Iterator[Document]:
        for name in self.loaded:
            yield self._documents[name]

    def __contains__(self, file_name: str) -> bool:
        return file_name in self._complete

    def check_links(self, file_name: str) -> list[LinkIssue]:
        """
        Statically check the literal destinations of a document.

        Transfers must target a declared dependency (or the file itself)
        and an existing node. Destinations built from variables are
        reported as unchecked, since their value is only known at runtime.
        """
        document = self.load(file_name)
        declared = set(document.metadata.dependencies)
        issues: list[LinkIssue] = []

        def report(node: Node, dest, kind, message) -> None:
            issues.append(LinkIssue(file_name, node.name, str(dest), kind, message))

        for node in document.nodes.values():
            for branch in node.branches:
                dest = branch.destination

                if isinstance(dest, NodeRef):
                    if dest.name not in document:
                        report(node, dest, ReferenceErrorKind.UNKNOWN_NODE,
                               f"Node '{dest.name}' not found in {file_name}")

                elif isinstance(dest, FileTransfer):
                    if not dest.is_literal:
                        report(node, dest, None, "Interpolated transfer checked at runtime only")
                        continue
                    if dest.file != file_name and dest.file not in declared:
                        report(node, dest, ReferenceErrorKind.UNDECLARED_DEPENDENCY,
                               f"{dest.file} is not listed in Required")
                    try:
                        self.resolve(dest.file, dest.node)
                    except ReferenceError as e:
                        report(node, dest, e.kind, e.message)

                elif isinstance(dest, Dynamic):
                    report(node, dest, None, f"Destination read from '{dest.variable}' at runtime")

        return issues
