"""Tool base class and registry: what the model may call, and who runs it."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any

import structlog

from flomail.llm.types import ToolCall
from flomail.mail.models import EmailThread

logger = structlog.get_logger()


class ToolKind(str, Enum):
    """Who executes a tool call."""

    SERVER = "server"
    CLIENT = "client"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class ToolSpec:
    """Static description of one tool, as told to the model."""

    name: str
    description: str
    parameters: dict[str, Any]
    kind: ToolKind

    def describe(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "parameters": self.parameters,
        }


@dataclass
class ToolContext:
    """Request-scoped inputs a server tool may need beyond its arguments."""

    access_token: str | None = None
    thread: EmailThread | None = None


@dataclass
class ToolResult:
    """Observation fed back to the model after a server tool runs."""

    result: str
    success: bool


class Tool(ABC):
    """Base class for tools the server executes itself."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Unique tool name."""
        ...

    @property
    @abstractmethod
    def description(self) -> str:
        """Human-readable description for the LLM."""
        ...

    @property
    @abstractmethod
    def parameters(self) -> dict[str, Any]:
        """JSON Schema for tool parameters."""
        ...

    @abstractmethod
    async def execute(self, context: ToolContext, **kwargs: Any) -> ToolResult:
        """Run the tool. Expected failures come back as ``success=False``."""
        ...

    @property
    def spec(self) -> ToolSpec:
        return ToolSpec(
            name=self.name,
            description=self.description,
            parameters=self.parameters,
            kind=ToolKind.SERVER,
        )


@dataclass
class ToolPartition:
    """Tool calls of one model turn, split by executor. No call appears twice."""

    server: list[ToolCall] = field(default_factory=list)
    client: list[ToolCall] = field(default_factory=list)
    unknown: list[ToolCall] = field(default_factory=list)


class ToolRegistry:
    """Immutable tool catalog: server tools with implementations, client tools as specs.

    Built once at startup and injected into the agent loop.
    """

    def __init__(self, server_tools: Iterable[Tool], client_specs: Iterable[ToolSpec]) -> None:
        specs: dict[str, ToolSpec] = {}
        tools: dict[str, Tool] = {}

        for tool in server_tools:
            if tool.name in specs:
                raise ValueError(f"Duplicate tool name: {tool.name}")
            specs[tool.name] = tool.spec
            tools[tool.name] = tool

        for spec in client_specs:
            if spec.kind is not ToolKind.CLIENT:
                raise ValueError(f"Client spec {spec.name} must have kind CLIENT")
            if spec.name in specs:
                raise ValueError(f"Duplicate tool name: {spec.name}")
            specs[spec.name] = spec

        self._specs = MappingProxyType(specs)
        self._tools = MappingProxyType(tools)
        self._schemas = tuple(spec.describe() for spec in specs.values())
        logger.info(
            "tools.catalog.built",
            server=sorted(tools),
            client=sorted(n for n, s in specs.items() if s.kind is ToolKind.CLIENT),
        )

    @property
    def names(self) -> tuple[str, ...]:
        return tuple(self._specs)

    def classify(self, name: str) -> ToolKind:
        """Pure lookup: server, client, or unknown."""
        spec = self._specs.get(name)
        return spec.kind if spec else ToolKind.UNKNOWN

    def describe(self) -> tuple[dict[str, Any], ...]:
        """Provider-neutral schemas for every tool, in catalog order."""
        return self._schemas

    def get(self, name: str) -> Tool | None:
        return self._tools.get(name)

    def partition(self, calls: Sequence[ToolCall]) -> ToolPartition:
        """Split one turn's tool calls by executor."""
        parts = ToolPartition()
        for call in calls:
            kind = self.classify(call.name)
            if kind is ToolKind.SERVER:
                parts.server.append(call)
            elif kind is ToolKind.CLIENT:
                parts.client.append(call)
            else:
                parts.unknown.append(call)
        return parts

    async def execute(
        self,
        name: str,
        arguments: dict[str, Any],
        context: ToolContext | None = None,
    ) -> ToolResult:
        """Execute a server tool by name. Never raises."""
        tool = self.get(name)
        if not tool:
            logger.warning("tool.not_executable", name=name, kind=self.classify(name).value)
            return ToolResult(
                result=f"Error: '{name}' is not a tool the server can run.",
                success=False,
            )

        declared = tool.parameters.get("properties") or {}
        accepted = {k: v for k, v in arguments.items() if k in declared}
        dropped = sorted(set(arguments) - set(accepted))
        if dropped:
            logger.warning("tool.undeclared_arguments", name=name, dropped=dropped)

        try:
            outcome = await tool.execute(context or ToolContext(), **accepted)
        except Exception as e:
            logger.error("tool.error", name=name, error=str(e), error_type=type(e).__name__)
            return ToolResult(
                result=f"Error executing tool '{name}': {type(e).__name__}: {e}",
                success=False,
            )

        logger.info(
            "tool.executed",
            name=name,
            success=outcome.success,
            result_length=len(outcome.result),
        )
        return outcome

    def list_tools(self) -> list[dict[str, str]]:
        """List all tools with names, descriptions and who runs them."""
        return [
            {"name": s.name, "description": s.description, "kind": s.kind.value}
            for s in self._specs.values()
        ]
