"""
Navigator - the session engine.

A Session renders nodes, dispatches host function calls, evaluates
conditions and matches user input against options, moving between nodes
and files until it reaches {exit}.

Usage:
    registry = DocumentRegistry(DirectorySource("scripts"))
    session = Session(registry, functions)

    output = session.start()
    while not output.exited:
        print(output.text)
        output = session.submit_input(input("> "))
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Optional

from bdl.core.config import SessionConfig
from bdl.core.errors import ReferenceError, ReferenceErrorKind, ScopeError
from bdl.core.events import EventBus, SessionEvent
from bdl.core.values import is_truthy, to_display_string
from bdl.script.document import (
    Call,
    Condition,
    Destination,
    Dynamic,
    Exit,
    FileTransfer,
    Jump,
    Node,
    NodeRef,
    Text,
)
from bdl.script.parser import parse_reference
from bdl.session.dispatcher import Fallback, FunctionRegistry, ScopeView, bind_results
from bdl.session.registry import DocumentRegistry
from bdl.session.store import SessionState, VariableStore


class SessionStatus(Enum):
    """Where a session is in its lifecycle."""
    IDLE = auto()            # Not started
    RENDERING = auto()       # Emitting a node's content
    AWAITING_INPUT = auto()  # Waiting for a line that matches an option
    TRANSFERRING = auto()    # Resolving a destination
    EXITED = auto()          # Reached {exit}


@dataclass
class Output:
    """
    Everything produced by one start() or submit_input() call.

    Attributes:
        segments: Rendered text, in order
        exited: True once the session has ended
        warnings: Recovered problems (scope violations, fallbacks)
        file: Current file after the step
        node: Current node after the step
        awaiting_input: True if the session is waiting for input
    """
    segments: list[str] = field(default_factory=list)
    exited: bool = False
    warnings: list[str] = field(default_factory=list)
    file: Optional[str] = None
    node: Optional[str] = None
    awaiting_input: bool = False

    @property
    def text(self) -> str:
        return "\n".join(self.segments)


class Session:
    """
    One interactive run through a set of scripts.

    The registry may be shared between sessions; everything else here
    belongs to this session alone and must only be used from one thread
    at a time.
    """

    def __init__(
        self,
        registry: DocumentRegistry,
        functions: Optional[FunctionRegistry] = None,
        config: Optional[SessionConfig] = None,
        events: Optional[EventBus] = None,
    ):
        self.registry = registry
        self.functions = functions or FunctionRegistry()
        self.config = config or SessionConfig(entry_file=registry.entry_file)
        self.events = events or EventBus()

        if self.config.entry_file != registry.entry_file:
            raise ValueError(
                f"Config entry file {self.config.entry_file!r} does not match "
                f"registry entry file {registry.entry_file!r}"
            )

        self.state: Optional[SessionState] = None
        self.status = SessionStatus.IDLE

        self._node: Optional[Node] = None
        self._segments: list[str] = []
        self._warnings: list[str] = []

        self.logger = logging.getLogger(__name__)

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def fallback(self) -> Fallback:
        return Fallback(self.config.fallback_message, self.config.fallback_reference)

    @property
    def variables(self) -> Optional[VariableStore]:
        return self.state.variables if self.state else None

    @property
    def current_file(self) -> Optional[str]:
        return self.state.current_file if self.state else None

    @property
    def current_node(self) -> Optional[str]:
        return self.state.current_node if self.state else None

    @property
    def is_exited(self) -> bool:
        return self.status == SessionStatus.EXITED

    @property
    def is_awaiting_input(self) -> bool:
        return self.status == SessionStatus.AWAITING_INPUT

    # ------------------------------------------------------------------
    # Shell interface
    # ------------------------------------------------------------------

    def start(self, entry_file: Optional[str] = None) -> Output:
        """
        Start the session at the entry file's start node.

        Raises:
            ParseError: If the entry file is malformed
            ReferenceError: If the entry file, one of its dependencies or
                the start node can't be found
        """
        entry_file = entry_file or self.config.entry_file
        if entry_file != self.registry.entry_file:
            raise ValueError(f"{entry_file!r} is not the registry's entry file")

        self.state = None
        self.status = SessionStatus.IDLE
        self._node = None
        self._segments = []
        self._warnings = []

        document = self.registry.load(entry_file)
        start = self.registry.resolve(entry_file, self.config.start_node)

        variables = VariableStore(entry_file, document.global_defaults, document.local_defaults)
        self.state = SessionState(entry_file=entry_file, variables=variables, current_file=entry_file)

        self.logger.info(f"Session started at {entry_file}:{start.name}")
        self.events.publish(SessionEvent.SESSION_STARTED, file=entry_file, node=start.name)

        self._run(NodeRef(start.name))
        return self._collect()

    def submit_input(self, line: str) -> Output:
        """
        Feed one line of user input.

        The first option whose keywords contain the trimmed, case-folded
        line is taken. Unmatched input re-prompts and changes nothing.
        """
        if self.state is None or self._node is None:
            raise RuntimeError("Session has not been started")

        self._segments = []
        self._warnings = []

        if self.status == SessionStatus.EXITED:
            self._warn("Session has ended; input ignored")
            return self._collect()

        self.state.last_input = line.strip()
        token = line.strip().casefold()

        for option in self._node.options:
            if option.matches(token):
                self.logger.debug(f"Input {token!r} matched option -> {option.destination}")
                self._run(option.destination)
                break
        else:
            self._emit(self.config.reprompt_message)
            self.events.publish(
                SessionEvent.INPUT_UNMATCHED,
                file=self.state.current_file,
                node=self.state.current_node,
                input=line,
            )

        return self._collect()

    # ------------------------------------------------------------------
    # Navigation
    # ------------------------------------------------------------------

    def _run(self, destination: Optional[Destination]) -> None:
        """Follow destinations until the session waits for input or exits."""
        hops = 0
        in_fallback = False

        while destination is not None:
            hops += 1
            if hops > self.config.max_auto_transitions:
                self._warn(
                    f"Stopped after {self.config.max_auto_transitions} transitions "
                    f"without input at {self.state.current_file}:{self.state.current_node}"
                )
                self.status = SessionStatus.AWAITING_INPUT
                return

            self.status = SessionStatus.TRANSFERRING
            try:
                target = self._resolve(destination)
                if target is None:
                    self._exit()
                    return
                file_name, node = target
                self._switch_file(file_name)
                destination = self._render(node)
                in_fallback = False
            except ReferenceError as e:
                if in_fallback:
                    self.logger.error(f"Fallback failed: {e}")
                    raise
                destination = self._take_fallback(e)
                in_fallback = True

    def _resolve(self, destination: Destination) -> Optional[tuple[str, Node]]:
        """Turn a destination into (file, node), or None for exit."""
        if isinstance(destination, Exit):
            return None

        if isinstance(destination, NodeRef):
            file_name = self.state.current_file
            node_name = destination.name

        elif isinstance(destination, FileTransfer):
            file_name = self.state.variables.interpolate(destination.file).strip()
            node_name = self.state.variables.interpolate(destination.node).strip()

        elif isinstance(destination, Dynamic):
            raw = to_display_string(self.state.variables.get(destination.variable))
            reference = parse_reference(raw)
            if reference is None:
                raise ReferenceError(
                    ReferenceErrorKind.UNKNOWN_NODE,
                    f"Variable '{destination.variable}' does not hold a destination: {raw!r}",
                )
            return self._resolve(reference)

        else:
            raise TypeError(f"Unknown destination: {destination!r}")

        return file_name, self.registry.resolve(file_name, node_name)

    def _switch_file(self, file_name: str) -> None:
        if file_name == self.state.current_file:
            return

        document = self.registry.load(file_name)
        previous = self.state.current_file
        self.state.current_file = file_name
        self.state.variables.reset_local(document.local_defaults)

        self.logger.info(f"Transferred from {previous} to {file_name}")
        self.events.publish(SessionEvent.FILE_CHANGED, previous=previous, file=file_name)

    def _take_fallback(self, error: ReferenceError) -> Destination:
        fallback = self.fallback
        self._warn(f"{error}; falling back to {fallback.node}")
        self._emit(fallback.message)
        self.events.publish(
            SessionEvent.FALLBACK_TAKEN,
            error=error,
            file=self.state.current_file,
            node=self.state.current_node,
            destination=fallback.node,
        )

        destination = parse_reference(fallback.node)
        if destination is None:
            raise ReferenceError(
                ReferenceErrorKind.UNKNOWN_NODE,
                f"Invalid fallback reference: {fallback.node!r}",
            ) from error
        return destination

    def _exit(self) -> None:
        self.status = SessionStatus.EXITED
        self.logger.info(f"Session exited from {self.state.current_file}:{self.state.current_node}")
        self.events.publish(
            SessionEvent.SESSION_EXITED,
            file=self.state.current_file,
            node=self.state.current_node,
        )

    # ------------------------------------------------------------------
    # Rendering
    # ------------------------------------------------------------------

    def _render(self, node: Node) -> Optional[Destination]:
        """
        Render a node's content, then check its conditions and jumps.

        Returns the destination to take immediately, or None when the
        session should wait for input.

        Raises:
            ReferenceError: UNKNOWN_FUNCTION for an unregistered call
        """
        self.status = SessionStatus.RENDERING
        self.state.current_node = node.name
        self._node = node
        self.events.publish(SessionEvent.NODE_ENTERED, file=self.state.current_file, node=node.name)

        variables = self.state.variables
        for element in node.content:
            if isinstance(element, Text):
                self._emit(variables.interpolate(element.text))
            elif isinstance(element, Call):
                self._call(element)

        for branch in node.branches:
            if isinstance(branch, Condition):
                if is_truthy(variables.get(branch.variable)):
                    self.logger.debug(f"Condition '{branch.variable}' fired -> {branch.destination}")
                    return branch.destination
            elif isinstance(branch, Jump):
                return branch.destination

        self.status = SessionStatus.AWAITING_INPUT
        if not node.has_options:
            self.logger.warning(
                f"{self.state.current_file}:{node.name} has no options; "
                f"no input can leave this node"
            )
        return None

    def _call(self, call: Call) -> None:
        scope = ScopeView(self.state, on_violation=self._on_scope_violation)
        result = self.functions.invoke(call.function, scope)

        if result.ok:
            self.events.publish(
                SessionEvent.FUNCTION_CALLED,
                function=call.function,
                values=list(result.values),
            )
        else:
            self._warn(f"Function '{call.function}' failed")
            self.events.publish(SessionEvent.FUNCTION_FAILED, function=call.function)

        bind_results(call, result, self.state.variables, self.fallback)

    def _on_scope_violation(self, error: ScopeError) -> None:
        self._warnings.append(str(error))
        self.events.publish(
            SessionEvent.SCOPE_VIOLATION,
            name=error.name,
            file=error.current_file,
        )

    # ------------------------------------------------------------------
    # Output
    # ------------------------------------------------------------------

    def _emit(self, text: str) -> None:
        self._segments.append(text)

    def _warn(self, message: str) -> None:
        self.logger.warning(message)
        self._warnings.append(message)

    def _collect(self) -> Output:
        return Output(
            segments=list(self._segments),
            exited=self.status == SessionStatus.EXITED,
            warnings=list(self._warnings),
            file=self.state.current_file if self.state else None,
            node=self.state.current_node if self.state else None,
            awaiting_input=self.status == SessionStatus.AWAITING_INPUT,
        )
