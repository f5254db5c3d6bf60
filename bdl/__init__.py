"""
BDL Engine

Parser and session engine for BDL, a line-oriented branching dialogue
language.

Quick Start:
    from bdl import DocumentRegistry, DirectorySource, FunctionRegistry, Session

    functions = FunctionRegistry()

    @functions.function("getTime")
    def get_time(scope):
        return ["12:00"]

    registry = DocumentRegistry(DirectorySource("scripts"), entry_file="main.bdl")
    session = Session(registry, functions)
    output = session.start()
    print(output.text)
    output = session.submit_input("passwords")
"""

__version__ = "0.1.0"
__author__ = "Developer"

# Re-export the main API for convenience
from bdl.core import (
    Value,
    is_truthy,
    to_display_string,
    BdlError,
    ParseError,
    ParseErrorKind,
    ReferenceError,
    ReferenceErrorKind,
    ScopeError,
    FunctionFailure,
    EventBus,
    Event,
    SessionEvent,
    SessionConfig,
)
from bdl.script import Document, Node, ScriptParser, parse
from bdl.session import (
    DirectorySource,
    MemorySource,
    DocumentRegistry,
    VariableStore,
    FunctionRegistry,
    ScopeView,
    Session,
    SessionStatus,
    Output,
)

__all__ = [
    # Values
    "Value",
    "is_truthy",
    "to_display_string",
    # Errors
    "BdlError",
    "ParseError",
    "ParseErrorKind",
    "ReferenceError",
    "ReferenceErrorKind",
    "ScopeError",
    "FunctionFailure",
    # Events
    "EventBus",
    "Event",
    "SessionEvent",
    # Config
    "SessionConfig",
    # Scripts
    "Document",
    "Node",
    "ScriptParser",
    "parse",
    # Sessions
    "DirectorySource",
    "MemorySource",
    "DocumentRegistry",
    "VariableStore",
    "FunctionRegistry",
    "ScopeView",
    "Session",
    "SessionStatus",
    "Output",
]
