"""
Script parser - converts .bdl text into a Document.

The format is line oriented:

```
# Topic: Password Security
# Description: Password basics
# Author: Security Team
# Version: 1.0
# Required: passwords.bdl

$global_vars: {
    user_name: "",
    completed_modules: {}
}

$local_vars: {
    attempts: 0
}

@start
Welcome, ${user_name}!
!{getUserInput} : ~{input}
?{input} -> intro
{help, menu} -> menu
{passwords} -> [passwords.bdl:start]
{quit} -> {exit}
-> ${next}
```

Blank lines and lines starting with '#' are skipped everywhere except
the leading metadata header.
"""

from __future__ import annotations

import json
import logging
import re
from pathlib import Path
from typing import Optional

from bdl.core.errors import ParseError, ParseErrorKind
from bdl.core.values import Value
from bdl.script.document import (
    EXIT,
    Branch,
    Call,
    Condition,
    ContentElement,
    Destination,
    Document,
    Dynamic,
    FileTransfer,
    Jump,
    Metadata,
    Node,
    NodeRef,
    Option,
    Text,
)

logger = logging.getLogger(__name__)

SCRIPT_EXTENSION = ".bdl"
REQUIRED_METADATA = ("topic", "description", "author", "version")

NAME_PATTERN = re.compile(r'^[A-Za-z0-9_]+$')


def parse(raw_text: str, file_name: str, is_entry_file: bool = False) -> Document:
    """Parse script text into a Document."""
    return ScriptParser(file_name, is_entry_file).parse_string(raw_text)


def parse_reference(text: str) -> Optional[Destination]:
    """
    Parse a literal destination reference held in a variable.

    Accepts "node", "@node", "file:node", "[file:node]", "{exit}" and
    "exit". Returns None when the text is not a usable reference.
    """
    text = text.strip()
    if not text:
        return None
    if text.lower() in ("{exit}", "exit"):
        return EXIT
    if text.startswith('[') and text.endswith(']'):
        text = text[1:-1].strip()
    if ':' in text:
        file_part, _, node_part = text.partition(':')
        file_part = file_part.strip()
        node_part = node_part.strip().lstrip('@')
        if file_part and NAME_PATTERN.match(node_part):
            return FileTransfer(file_part, node_part)
        return None
    text = text.lstrip('@')
    if NAME_PATTERN.match(text):
        return NodeRef(text)
    return None


class ScriptParser:
    """
    Parses one script.

    A parser instance is bound to a file name and to whether that file is
    the entry file (the only one allowed to declare globals).
    """

    # Regex patterns
    HEADER_PATTERN = re.compile(r'^#\s*([^:]+?)\s*:\s*(.*)$')
    DECLARATION_PATTERN = re.compile(r'^\$(global|local)_vars\s*:\s*(.*)$')
    NODE_PATTERN = re.compile(r'^@\s*(.*)$')
    CALL_PATTERN = re.compile(r'^!\{\s*([A-Za-z0-9_]+)\s*\}\s*:(.*)$')
    BINDING_PATTERN = re.compile(r'~\{\s*([A-Za-z0-9_]+)\s*\}')
    OPTION_PATTERN = re.compile(r'^\{([^{}]*)\}\s*->\s*(.*)$')
    CONDITION_PATTERN = re.compile(r'^\?\{\s*([A-Za-z0-9_]+)\s*\}\s*->\s*(.*)$')
    JUMP_PATTERN = re.compile(r'^->\s*(.*)$')
    TRANSFER_PATTERN = re.compile(r'^\[\s*([^\]:]+?)\s*:\s*([^\]]+?)\s*\]$')
    DYNAMIC_PATTERN = re.compile(r'^\$\{\s*([A-Za-z0-9_]+)\s*\}$')

    def __init__(self, file_name: str = "<script>", is_entry_file: bool = False):
        self.file_name = file_name
        self.is_entry_file = is_entry_file

    def parse_file(self, path: str | Path) -> Document:
        """Parse a script file. The file name becomes the document name."""
        path = Path(path)
        with open(path, 'r', encoding='utf-8') as f:
            content = f.read()
        self.file_name = path.name
        return self.parse_string(content)

    def parse_string(self, content: str) -> Document:
        """Parse script text."""
        lines = content.splitlines()

        header: dict[str, str] = {}
        in_header = True
        scopes: dict[str, Optional[dict[str, Value]]] = {"global": None, "local": None}

        nodes: dict[str, Node] = {}
        node_name: Optional[str] = None
        node_line = 0
        content_elements: list[ContentElement] = []
        branches: list[Branch] = []
        text_lines: list[str] = []

        def flush_text() -> None:
            if text_lines:
                content_elements.append(Text('\n'.join(text_lines)))
                text_lines.clear()

        def close_node() -> None:
            if node_name is None:
                return
            flush_text()
            nodes[node_name] = Node(
                name=node_name,
                content=tuple(content_elements),
                branches=tuple(branches),
                line=node_line,
            )
            content_elements.clear()
            branches.clear()

        index = 0
        while index < len(lines):
            lineno = index + 1
            line = lines[index].strip()
            index += 1

            if not line:
                continue

            if line.startswith('#'):
                if in_header:
                    self._read_header_line(line, header, lineno)
                continue
            in_header = False

            # Variable declaration block
            match = self.DECLARATION_PATTERN.match(line)
            if match:
                scope = match.group(1)
                if scope == "global" and not self.is_entry_file:
                    raise self._error(
                        ParseErrorKind.GLOBAL_OUTSIDE_ENTRY,
                        "$global_vars may only be declared in the entry file",
                        lineno,
                    )
                if scopes[scope] is not None:
                    raise self._error(
                        ParseErrorKind.DUPLICATE_BLOCK,
                        f"Duplicate ${scope}_vars declaration",
                        lineno,
                    )
                block_text, index = self._collect_block(match.group(2), lines, index, lineno)
                scopes[scope] = _BlockReader(block_text, self, lineno).read()
                continue

            # Node header
            match = self.NODE_PATTERN.match(line)
            if match:
                close_node()
                name = match.group(1).strip()
                if not NAME_PATTERN.match(name):
                    raise self._error(
                        ParseErrorKind.INVALID_NODE_NAME,
                        f"Invalid node name: {name!r}",
                        lineno,
                    )
                if name in nodes:
                    raise self._error(
                        ParseErrorKind.DUPLICATE_NODE,
                        f"Duplicate node name: {name}",
                        lineno,
                    )
                node_name = name
                node_line = lineno
                continue

            if node_name is None:
                logger.warning(
                    "%s:%d: ignoring content outside of a node: %s",
                    self.file_name, lineno, line,
                )
                continue

            if line.startswith('!{'):
                flush_text()
                content_elements.append(self._parse_call(line, lineno))
            elif line.startswith(('{', '?{', '->')):
                flush_text()
                branches.append(self._parse_branch(line, lineno))
            else:
                text_lines.append(line)

        close_node()

        metadata = self._build_metadata(header)
        return Document(
            name=self.file_name,
            metadata=metadata,
            declares_global=self.is_entry_file,
            local_defaults=scopes["local"] or {},
            global_defaults=(scopes["global"] or {}) if self.is_entry_file else {},
            nodes=nodes,
        )

    # ------------------------------------------------------------------
    # Metadata
    # ------------------------------------------------------------------

    def _read_header_line(self, line: str, header: dict[str, str], lineno: int) -> None:
        match = self.HEADER_PATTERN.match(line)
        if not match:
            return  # plain comment
        key = match.group(1).strip().lower()
        if key in header:
            logger.warning("%s:%d: metadata key %r repeated", self.file_name, lineno, key)
        header[key] = match.group(2).strip()

    def _build_metadata(self, header: dict[str, str]) -> Metadata:
        missing = [key for key in REQUIRED_METADATA if not header.get(key)]
        if missing:
            raise self._error(
                ParseErrorKind.MISSING_METADATA,
                "Missing metadata: " + ", ".join(key.capitalize() for key in missing),
            )

        required = None
        if "required" in header:
            required = self._parse_dependencies(header["required"])

        extra = {
            key: value for key, value in header.items()
            if key not in REQUIRED_METADATA and key != "required"
        }
        return Metadata(
            topic=header["topic"],
            description=header["description"],
            author=header["author"],
            version=header["version"],
            required=required,
            extra=extra,
        )

    def _parse_dependencies(self, value: str) -> tuple[str, ...]:
        seen: list[str] = []
        for dep in (part.strip() for part in value.split(',')):
            if not dep:
                continue
            if not dep.endswith(SCRIPT_EXTENSION) or dep == SCRIPT_EXTENSION:
                raise self._error(
                    ParseErrorKind.INVALID_DEPENDENCY,
                    f"Invalid dependency file name: {dep}",
                )
            if dep in seen:
                raise self._error(
                    ParseErrorKind.DUPLICATE_DEPENDENCY,
                    f"Duplicate dependency: {dep}",
                )
            seen.append(dep)
        return tuple(seen)

    # ------------------------------------------------------------------
    # Declarations
    # ------------------------------------------------------------------

    def _collect_block(
        self, first: str, lines: list[str], index: int, lineno: int
    ) -> tuple[str, int]:
        """Gather the text of a brace block that may span several lines."""
        if not first.startswith('{'):
            raise self._error(
                ParseErrorKind.MALFORMED_DECLARATION,
                "Expected '{' after variable block name",
                lineno,
            )

        parts: list[str] = []
        depth = 0
        chunk = first
        while True:
            depth, closed_at = _scan_braces(chunk, depth)
            if closed_at is not None:
                parts.append(chunk[:closed_at + 1])
                trailing = chunk[closed_at + 1:].strip().rstrip(',').strip()
                if trailing:
                    raise self._error(
                        ParseErrorKind.MALFORMED_DECLARATION,
                        f"Unexpected text after variable block: {trailing}",
                        lineno,
                    )
                return '\n'.join(parts), index
            parts.append(chunk)

            # Pull in the next line, skipping comments
            while True:
                if index >= len(lines):
                    raise self._error(
                        ParseErrorKind.MALFORMED_DECLARATION,
                        "Unterminated variable block",
                        lineno,
                    )
                chunk = lines[index].strip()
                index += 1
                if not chunk.startswith('#'):
                    break

    # ------------------------------------------------------------------
    # Node body
    # ------------------------------------------------------------------

    def _parse_call(self, line: str, lineno: int) -> Call:
        match = self.CALL_PATTERN.match(line)
        if not match:
            raise self._error(
                ParseErrorKind.MALFORMED_CALL,
                f"Expected '!{{function}} : ~{{binding}} ...': {line}",
                lineno,
            )

        rest = match.group(2)
        bindings = self.BINDING_PATTERN.findall(rest)
        if not bindings:
            raise self._error(
                ParseErrorKind.MALFORMED_CALL,
                f"Function call needs at least one binding: {line}",
                lineno,
            )
        if self.BINDING_PATTERN.sub('', rest).strip():
            raise self._error(
                ParseErrorKind.MALFORMED_CALL,
                f"Unexpected text in function call bindings: {line}",
                lineno,
            )
        return Call(function=match.group(1), bindings=tuple(bindings))

    def _parse_branch(self, line: str, lineno: int) -> Branch:
        match = self.CONDITION_PATTERN.match(line)
        if match:
            return Condition(match.group(1), self._parse_destination(match.group(2), lineno))

        match = self.OPTION_PATTERN.match(line)
        if match:
            keywords = frozenset(
                kw.strip().casefold() for kw in match.group(1).split(',') if kw.strip()
            )
            if not keywords:
                raise self._error(
                    ParseErrorKind.MALFORMED_BRANCH,
                    f"Option needs at least one keyword: {line}",
                    lineno,
                )
            return Option(keywords, self._parse_destination(match.group(2), lineno))

        match = self.JUMP_PATTERN.match(line)
        if match:
            return Jump(self._parse_destination(match.group(1), lineno))

        raise self._error(
            ParseErrorKind.MALFORMED_BRANCH,
            f"Expected '{{keywords}} -> destination' or '?{{variable}} -> destination': {line}",
            lineno,
        )

    def _parse_destination(self, text: str, lineno: int) -> Destination:
        text = text.strip()

        match = self.TRANSFER_PATTERN.match(text)
        if match:
            file_expr, node_expr = match.group(1), match.group(2)
            if "${" not in node_expr and not NAME_PATTERN.match(node_expr):
                raise self._error(
                    ParseErrorKind.MALFORMED_BRANCH,
                    f"Invalid node name in file transfer: {text}",
                    lineno,
                )
            return FileTransfer(file_expr, node_expr)

        if text == "{exit}":
            return EXIT

        match = self.DYNAMIC_PATTERN.match(text)
        if match:
            return Dynamic(match.group(1))

        name = text[1:] if text.startswith('@') else text
        if NAME_PATTERN.match(name):
            return NodeRef(name)

        raise self._error(
            ParseErrorKind.MALFORMED_BRANCH,
            f"Invalid destination: {text!r}",
            lineno,
        )

    def _error(self, kind: ParseErrorKind, message: str, lineno: Optional[int] = None) -> ParseError:
        return ParseError(kind, message, self.file_name, lineno)


def _scan_braces(chunk: str, depth: int) -> tuple[int, Optional[int]]:
    """
    Track brace depth across a chunk, ignoring braces inside strings.

    Returns the new depth and the index where the outermost brace
    closed, if it did.
    """
    in_string = False
    escaped = False
    for i, ch in enumerate(chunk):
        if in_string:
            if escaped:
                escaped = False
            elif ch == '\\':
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch == '{':
            depth += 1
        elif ch == '}':
            depth -= 1
            if depth == 0:
                return 0, i
    return depth, None


class _BlockReader:
    """Recursive-descent reader for ``{ name: value, ... }`` blocks."""

    TOKEN_PATTERN = re.compile(
        r'[ \t\r]*(?:'
        r'(?P<string>"(?:[^"\\\n]|\\.)*")'
        r'|(?P<punct>[{}:,\n])'
        r'|(?P<word>[^\s{}:,"]+)'
        r')'
    )
    NUMBER_PATTERN = re.compile(r'^-?\d+(\.\d+)?([eE][-+]?\d+)?$')

    def __init__(self, text: str, parser: ScriptParser, lineno: int):
        self.parser = parser
        self.lineno = lineno
        self.tokens = self._tokenize(text)
        self.pos = 0

    def read(self) -> dict[str, Value]:
        block = self._block()
        self._skip_newlines()
        if self.pos != len(self.tokens):
            raise self._malformed("Unexpected text after variable block")
        return block

    def _tokenize(self, text: str) -> list[tuple[str, str]]:
        tokens = []
        pos = 0
        text = text.rstrip()
        while pos < len(text):
            match = self.TOKEN_PATTERN.match(text, pos)
            if not match or match.end() == pos:
                raise self._malformed(f"Unexpected character {text[pos]!r}")
            kind = match.lastgroup
            tokens.append((kind, match.group(kind)))
            pos = match.end()
        return tokens

    def _peek(self) -> tuple[str, str]:
        if self.pos < len(self.tokens):
            return self.tokens[self.pos]
        return ("eof", "")

    def _next(self) -> tuple[str, str]:
        token = self._peek()
        self.pos += 1
        return token

    def _skip_newlines(self) -> None:
        while self._peek() == ("punct", "\n"):
            self.pos += 1

    def _expect(self, value: str) -> None:
        kind, text = self._next()
        if kind != "punct" or text != value:
            raise self._malformed(f"Expected {value!r}, found {text or 'end of block'!r}")

    def _block(self) -> dict[str, Value]:
        self._expect('{')
        entries: dict[str, Value] = {}
        while True:
            self._skip_separators()
            kind, text = self._peek()
            if (kind, text) == ("punct", "}"):
                self.pos += 1
                return entries
            if kind != "word" or not NAME_PATTERN.match(text):
                raise self._malformed(f"Expected a variable name, found {text or 'end of block'!r}")
            self.pos += 1
            self._expect(':')
            if text in entries:
                raise self.parser._error(
                    ParseErrorKind.DUPLICATE_VARIABLE,
                    f"Duplicate variable: {text}",
                    self.lineno,
                )
            entries[text] = self._value()

    def _skip_separators(self) -> None:
        while self._peek() in (("punct", "\n"), ("punct", ",")):
            self.pos += 1

    def _value(self) -> Value:
        kind, text = self._peek()
        if kind == "punct":
            if text == '{':
                return self._block()
            if text in ('\n', ',', '}'):
                return None  # Empty
            raise self._malformed(f"Unexpected {text!r}")
        if kind == "eof":
            raise self._malformed("Unterminated variable block")

        self.pos += 1
        if kind == "string":
            try:
                return json.loads(text)
            except json.JSONDecodeError:
                # Unknown escapes such as "C:\Users" are kept as written
                return text[1:-1]
        if text == "true":
            return True
        if text == "false":
            return False
        match = self.NUMBER_PATTERN.match(text)
        if match:
            if match.group(1) or match.group(2):
                return float(text)
            return int(text)
        raise self._invalid(text)

    def _malformed(self, message: str) -> ParseError:
        return self.parser._error(ParseErrorKind.MALFORMED_DECLARATION, message, self.lineno)

    def _invalid(self, text: str) -> ParseError:
        return self.parser._error(
            ParseErrorKind.INVALID_VALUE,
            f"Invalid value format: {text}",
            self.lineno,
        )
