"""Provider-neutral message, tool call and stream event types.

Both provider adapters translate their wire format into these types, so
nothing above the adapter layer ever looks at a raw provider response.
"""

from __future__ import annotations

import secrets
import time
from dataclasses import dataclass, field
from typing import Any, Literal

Role = Literal["user", "assistant"]


@dataclass
class ChatTurn:
    """One conversation turn as sent by the client."""

    role: Role
    content: str

    def to_dict(self) -> dict[str, str]:
        return {"role": self.role, "content": self.content}


def synthesize_tool_call_id() -> str:
    """Build a tool call id for providers that omit one."""
    return f"call_{int(time.time() * 1000)}_{secrets.token_hex(4)}"


@dataclass
class ToolCall:
    """A tool invocation requested by the model."""

    id: str
    name: str
    arguments: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "name": self.name, "arguments": self.arguments}


@dataclass
class ModelTurn:
    """Result of one blocking model call."""

    content: str
    tool_calls: list[ToolCall] = field(default_factory=list)
    stop_reason: str = "stop"


# --- Streaming vocabulary -------------------------------------------------


@dataclass
class TextDelta:
    text: str


@dataclass
class ToolCallStarted:
    id: str
    name: str


@dataclass
class ToolCallArgsDelta:
    """A raw argument fragment, plus whatever pairs could be previewed so far."""

    id: str
    name: str
    delta: str
    preview: dict[str, Any] | None = None


@dataclass
class ToolCallCompleted:
    tool_call: ToolCall


@dataclass
class TurnSummary:
    """Always the last item of a provider stream."""

    content: str
    tool_calls: list[ToolCall] = field(default_factory=list)
    stop_reason: str = "stop"

    def to_model_turn(self) -> ModelTurn:
        return ModelTurn(content=self.content, tool_calls=list(self.tool_calls), stop_reason=self.stop_reason)


ProviderEvent = TextDelta | ToolCallStarted | ToolCallArgsDelta | ToolCallCompleted | TurnSummary
