"""
Session configuration.

SessionConfig is a Pydantic model so values are validated on creation
and on assignment, and can be loaded from a JSON file:

    config = SessionConfig.load("session.json")
    config.fallback_node = "main.bdl:menu"
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

NODE_NAME_PATTERN = re.compile(r'^[A-Za-z0-9_]+$')

DEFAULT_FALLBACK_MESSAGE = "Something went wrong. Let's return to the start."
DEFAULT_REPROMPT_MESSAGE = "I didn't understand that. Please try again."


class SessionConfig(BaseModel):
    """
    Tunables for a dialogue session.

    Attributes:
        entry_file: Script that may declare and write globals
        start_node: Node rendered when the session starts
        fallback_message: Bound or emitted when a call or reference fails
        fallback_node: Reference taken on failure ("file:node" or "node");
            defaults to the entry file's start node
        reprompt_message: Emitted when input matches no option
        max_auto_transitions: Limit on condition/jump transitions taken
            in a single step without waiting for input
    """

    model_config = ConfigDict(
        validate_assignment=True,
        extra='forbid',
    )

    entry_file: str = "main.bdl"
    start_node: str = "start"
    fallback_message: str = DEFAULT_FALLBACK_MESSAGE
    fallback_node: Optional[str] = None
    reprompt_message: str = DEFAULT_REPROMPT_MESSAGE
    max_auto_transitions: int = Field(default=64, ge=1)

    @field_validator('entry_file')
    @classmethod
    def _check_entry_file(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("entry_file must not be empty")
        return value

    @field_validator('start_node')
    @classmethod
    def _check_start_node(cls, value: str) -> str:
        if not NODE_NAME_PATTERN.match(value):
            raise ValueError(f"invalid node name: {value!r}")
        return value

    @property
    def fallback_reference(self) -> str:
        """The reference taken on failure, as "file:node"."""
        if self.fallback_node:
            return self.fallback_node
        return f"{self.entry_file}:{self.start_node}"

    @classmethod
    def load(cls, path: str | Path) -> SessionConfig:
        """Load a configuration from a JSON file."""
        return cls.model_validate_json(Path(path).read_text(encoding='utf-8'))

    def save(self, path: str | Path) -> None:
        Path(path).write_text(self.model_dump_json(indent=2), encoding='utf-8')
