"""
Session module - running scripts.

Exports:
- ScriptSource, DirectorySource, MemorySource: Where scripts are read from
- DocumentRegistry, LinkIssue: Load-once document cache and link check
- VariableStore, SessionState: Variable scopes and session position
- FunctionRegistry, ScopeView, CallResult, Fallback: Host functions
- Session, SessionStatus, Output: The session engine
"""

from bdl.session.sources import ScriptSource, ScriptNotFound, DirectorySource, MemorySource
from bdl.session.registry import DocumentRegistry, LinkIssue
from bdl.session.store import VariableStore, SessionState
from bdl.session.dispatcher import (
    FunctionRegistry,
    HostFunction,
    ScopeView,
    CallResult,
    Fallback,
    bind_results,
)
from bdl.session.navigator import Session, SessionStatus, Output

__all__ = [
    # Sources
    "ScriptSource",
    "ScriptNotFound",
    "DirectorySource",
    "MemorySource",
    # Registry
    "DocumentRegistry",
    "LinkIssue",
    # Variables
    "VariableStore",
    "SessionState",
    # Functions
    "FunctionRegistry",
    "HostFunction",
    "ScopeView",
    "CallResult",
    "Fallback",
    "bind_results",
    # Navigator
    "Session",
    "SessionStatus",
    "Output",
]
