"""
Typed event bus for session notifications.

Hosts subscribe to SessionEvent members to observe what a session does
without the engine knowing anything about the host.

Usage:
    bus = EventBus()
    bus.subscribe(SessionEvent.NODE_ENTERED, on_node)
    session = Session(registry, functions, events=bus)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Any, Callable
from weakref import WeakMethod, ref

logger = logging.getLogger(__name__)


class SessionEvent(Enum):
    """Events published by a running session."""
    SESSION_STARTED = auto()
    NODE_ENTERED = auto()
    FILE_CHANGED = auto()
    FUNCTION_CALLED = auto()
    FUNCTION_FAILED = auto()
    FALLBACK_TAKEN = auto()
    SCOPE_VIOLATION = auto()
    INPUT_UNMATCHED = auto()
    SESSION_EXITED = auto()


@dataclass
class Event:
    """
    Event data container.

    Attributes:
        type: The event type (Enum member)
        data: Event-specific data
        consumed: Whether a handler stopped propagation
    """
    type: Enum
    data: dict[str, Any] = field(default_factory=dict)
    consumed: bool = False

    def consume(self) -> None:
        """Stop later handlers from seeing this event."""
        self.consumed = True

    def get(self, key: str, default: Any = None) -> Any:
        return self.data.get(key, default)

    def __getitem__(self, key: str) -> Any:
        return self.data[key]


EventHandler = Callable[[Event], None]


@dataclass(eq=False)
class _Subscription:
    priority: int
    handler: Any  # callable or weak reference to one
    one_shot: bool
    weak: bool

    def resolve(self) -> EventHandler | None:
        if self.weak:
            return self.handler()
        return self.handler


class EventBus:
    """
    Publish/subscribe messaging.

    Features:
    - Enum-typed events
    - Priority ordering (highest first)
    - Optional weak references
    - One-shot handlers
    - Consumption stops propagation
    - Events published from inside a handler are queued
    """

    def __init__(self):
        self._subscriptions: dict[Enum, list[_Subscription]] = {}
        self._queue: list[Event] = []
        self._is_publishing = False

    def subscribe(
        self,
        event_type: Enum,
        handler: EventHandler,
        priority: int = 0,
        one_shot: bool = False,
        weak: bool = False,
    ) -> None:
        """
        Subscribe to an event type.

        Args:
            event_type: The event type to listen for
            handler: Callback receiving the Event
            priority: Higher priority handlers run first
            one_shot: Remove the handler after its first call
            weak: Hold only a weak reference to the handler
        """
        if weak:
            target = WeakMethod(handler) if hasattr(handler, '__self__') else ref(handler)
        else:
            target = handler

        subs = self._subscriptions.setdefault(event_type, [])
        index = len(subs)
        for i, existing in enumerate(subs):
            if priority > existing.priority:
                index = i
                break
        subs.insert(index, _Subscription(priority, target, one_shot, weak))

    def unsubscribe(self, event_type: Enum, handler: EventHandler) -> None:
        subs = self._subscriptions.get(event_type)
        if not subs:
            return
        self._subscriptions[event_type] = [s for s in subs if s.resolve() != handler]

    def publish(self, event_type: Enum, **data: Any) -> Event:
        """
        Publish an event.

        Returns:
            The Event (check .consumed to see if it was handled)
        """
        event = Event(type=event_type, data=data)
        if self._is_publishing:
            self._queue.append(event)
        else:
            self._dispatch(event)
            self._drain()
        return event

    def clear(self, event_type: Enum | None = None) -> None:
        if event_type is None:
            self._subscriptions.clear()
        else:
            self._subscriptions.pop(event_type, None)

    def handler_count(self, event_type: Enum) -> int:
        return len(self._subscriptions.get(event_type, []))

    def _drain(self) -> None:
        while self._queue:
            self._dispatch(self._queue.pop(0))

    def _dispatch(self, event: Event) -> None:
        subs = self._subscriptions.get(event.type)
        if not subs:
            return

        self._is_publishing = True
        dead: list[_Subscription] = []
        try:
            for sub in list(subs):
                handler = sub.resolve()
                if handler is None:
                    dead.append(sub)
                    continue

                try:
                    handler(event)
                except Exception:
                    logger.exception("Error in event handler for %s", event.type)

                if sub.one_shot:
                    dead.append(sub)
                if event.consumed:
                    break
        finally:
            self._is_publishing = False

        if dead:
            current = self._subscriptions.get(event.type, [])
            self._subscriptions[event.type] = [s for s in current if s not in dead]
