from __future__ import annotations

from typing import Any

import pytest

from flomail.agent.catalog import CLIENT_TOOL_SPECS
from flomail.agent.tools import Tool, ToolContext, ToolKind, ToolRegistry, ToolResult, ToolSpec
from flomail.config import SearchConfig
from flomail.llm.types import ToolCall
from flomail.tools.web import BrowseUrlTool


class EchoTool(Tool):
    def __init__(self, name: str = "echo", *, explode: bool = False) -> None:
        self._name = name
        self.explode = explode
        self.contexts: list[ToolContext] = []

    @property
    def name(self) -> str:
        return self._name

    @property
    def description(self) -> str:
        return "Echo the input back"

    @property
    def parameters(self) -> dict[str, Any]:
        return {"type": "object", "properties": {"text": {"type": "string"}}}

    async def execute(self, context: ToolContext, text: str = "") -> ToolResult:
        self.contexts.append(context)
        if self.explode:
            raise RuntimeError("kaboom")
        return ToolResult(result=f"echo: {text}", success=True)


def _registry(*tools: Tool) -> ToolRegistry:
    return ToolRegistry(tools or [EchoTool()], CLIENT_TOOL_SPECS)


def test_classification_covers_every_name() -> None:
    registry = _registry()

    assert registry.classify("echo") is ToolKind.SERVER
    assert registry.classify("archive_email") is ToolKind.CLIENT
    assert registry.classify("delete_everything") is ToolKind.UNKNOWN
    # pure lookup
    assert registry.classify("echo") is registry.classify("echo")


def test_duplicate_names_are_rejected() -> None:
    with pytest.raises(ValueError, match="Duplicate"):
        ToolRegistry([EchoTool(), EchoTool()], [])

    clash = ToolSpec("echo", "client echo", {"type": "object"}, ToolKind.CLIENT)
    with pytest.raises(ValueError, match="Duplicate"):
        ToolRegistry([EchoTool()], [clash])


def test_client_specs_must_be_client_kind() -> None:
    wrong = ToolSpec("thing", "x", {"type": "object"}, ToolKind.SERVER)

    with pytest.raises(ValueError):
        ToolRegistry([], [wrong])


def test_partition_places_each_call_once() -> None:
    registry = _registry()
    calls = [
        ToolCall(id="1", name="archive_email", arguments={}),
        ToolCall(id="2", name="echo", arguments={"text": "hi"}),
        ToolCall(id="3", name="mystery", arguments={}),
        ToolCall(id="4", name="prepare_draft", arguments={}),
    ]

    parts = registry.partition(calls)

    assert [c.id for c in parts.server] == ["2"]
    assert [c.id for c in parts.client] == ["1", "4"]
    assert [c.id for c in parts.unknown] == ["3"]


def test_describe_lists_server_then_client_schemas() -> None:
    registry = _registry()

    schemas = registry.describe()

    assert schemas[0]["name"] == "echo"
    assert {s["name"] for s in schemas[1:]} == {s.name for s in CLIENT_TOOL_SPECS}
    assert set(schemas[0]) == {"name", "description", "parameters"}


@pytest.mark.asyncio
async def test_execute_passes_context_and_arguments() -> None:
    tool = EchoTool()
    registry = _registry(tool)
    context = ToolContext(access_token="tok")

    result = await registry.execute("echo", {"text": "hello"}, context)

    assert result == ToolResult("echo: hello", True)
    assert tool.contexts == [context]


@pytest.mark.asyncio
async def test_execute_never_raises() -> None:
    registry = _registry(EchoTool(explode=True))

    crashed = await registry.execute("echo", {"text": "x"})
    client_side = await registry.execute("archive_email", {})

    assert not crashed.success
    assert "RuntimeError: kaboom" in crashed.result
    assert not client_side.success


def test_list_tools_reports_kind() -> None:
    listed = {t["name"]: t["kind"] for t in _registry().list_tools()}

    assert listed["echo"] == "server"
    assert listed["go_to_inbox"] == "client"


@pytest.mark.asyncio
async def test_undeclared_arguments_are_dropped_before_execution() -> None:
    tool = EchoTool()
    registry = _registry(tool)

    result = await registry.execute("echo", {"text": "hi", "reason": "the user asked"})

    assert result == ToolResult("echo: hi", True)


@pytest.mark.asyncio
async def test_browse_url_tolerates_extra_keys() -> None:
    registry = ToolRegistry([BrowseUrlTool(SearchConfig(tavily_api_key=""))], [])

    result = await registry.execute("browse_url", {"url": "not a url", "reason": "check"})

    # reaches the tool's own validation instead of failing on the signature
    assert result.result.startswith("Error: invalid URL format")
