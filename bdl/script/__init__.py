"""
Script module - the .bdl language.

Provides:
- Document model (nodes, content, branches, destinations)
- Parsing script text into Documents
- Compiling Documents to and from JSON
"""

from bdl.script.document import (
    Document,
    Metadata,
    Node,
    Text,
    Call,
    Option,
    Condition,
    Jump,
    NodeRef,
    FileTransfer,
    Exit,
    Dynamic,
    EXIT,
)
from bdl.script.parser import ScriptParser, parse, parse_reference
from bdl.script.compiler import (
    document_to_json,
    document_from_json,
    save_json,
    load_json,
    compile_script_file,
)

__all__ = [
    # Model
    "Document",
    "Metadata",
    "Node",
    "Text",
    "Call",
    "Option",
    "Condition",
    "Jump",
    "NodeRef",
    "FileTransfer",
    "Exit",
    "Dynamic",
    "EXIT",
    # Parsing
    "ScriptParser",
    "parse",
    "parse_reference",
    # Compiling
    "document_to_json",
    "document_from_json",
    "save_json",
    "load_json",
    "compile_script_file",
]
