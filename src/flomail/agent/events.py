"""Events the agent loop streams to the client."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal

from flomail.llm.types import ToolCall

EventType = Literal[
    "status", "text", "tool_start", "tool_args", "tool_done", "search_result", "done", "error"
]


@dataclass
class StreamEvent:
    type: EventType
    data: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, "data": self.data}

    @property
    def terminal(self) -> bool:
        return self.type in ("done", "error")


def status(message: str) -> StreamEvent:
    return StreamEvent("status", {"message": message})


def text(content: str, full_content: str) -> StreamEvent:
    return StreamEvent("text", {"content": content, "fullContent": full_content})


def tool_start(call_id: str, name: str) -> StreamEvent:
    return StreamEvent("tool_start", {"id": call_id, "name": name})


def tool_args(call_id: str, name: str, partial: dict[str, Any] | None) -> StreamEvent:
    return StreamEvent("tool_args", {"id": call_id, "name": name, "partial": partial or {}})


def tool_done(call: ToolCall) -> StreamEvent:
    return StreamEvent("tool_done", call.to_dict())


def search_result(call: ToolCall, success: bool, result: str) -> StreamEvent:
    return StreamEvent(
        "search_result",
        {"id": call.id, "name": call.name, "success": success, "result": result},
    )


def done(
    iterations: int, client_tool_calls: list[ToolCall], content: str, stop_reason: str
) -> StreamEvent:
    return StreamEvent(
        "done",
        {
            "iterations": iterations,
            "clientToolCalls": [c.to_dict() for c in client_tool_calls],
            "content": content,
            "stopReason": stop_reason,
        },
    )


def error(message: str) -> StreamEvent:
    return StreamEvent("error", {"message": message})
