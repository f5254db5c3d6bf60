"""
Core module.

Exports:
- Value helpers: is_truthy, to_display_string
- Errors: BdlError, ParseError, ReferenceError, ScopeError, FunctionFailure
- EventBus, Event, SessionEvent: Event system
- SessionConfig: Session configuration
"""

from bdl.core.values import (
    Value,
    EMPTY,
    is_value,
    is_truthy,
    to_display_string,
    copy_value,
    normalize_results,
)
from bdl.core.errors import (
    BdlError,
    ParseError,
    ParseErrorKind,
    ReferenceError,
    ReferenceErrorKind,
    ScopeError,
    FunctionFailure,
)
from bdl.core.events import EventBus, Event, SessionEvent
from bdl.core.config import SessionConfig

__all__ = [
    # Values
    "Value",
    "EMPTY",
    "is_value",
    "is_truthy",
    "to_display_string",
    "copy_value",
    "normalize_results",
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
]
