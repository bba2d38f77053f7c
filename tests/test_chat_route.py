from __future__ import annotations

import json

from fastapi.testclient import TestClient

from flomail.agent.catalog import CLIENT_TOOL_SPECS
from flomail.agent.loop import AgentLoop
from flomail.agent.tools import ToolRegistry
from flomail.config import AgentConfig
from flomail.llm.errors import ProviderResponseError
from flomail.llm.types import ModelTurn, TextDelta, ToolCall, TurnSummary
from flomail.main import create_app


class OneShotGateway:
    def __init__(self, turn: ModelTurn) -> None:
        self.turn = turn
        self.seen_turns: list = []

    async def stream(self, turns, **kwargs):
        self.seen_turns.append(list(turns))
        if self.turn.content:
            yield TextDelta(self.turn.content)
        yield TurnSummary(self.turn.content, list(self.turn.tool_calls), self.turn.stop_reason)

    async def complete(self, turns, **kwargs):
        self.seen_turns.append(list(turns))
        return self.turn

    def catalog(self):
        return {"openai": [{"id": "gpt-4.1", "name": "GPT-4.1"}], "anthropic": []}


def _client(turn: ModelTurn) -> tuple[TestClient, OneShotGateway]:
    app = create_app()
    gateway = OneShotGateway(turn)
    app.state.gateway = gateway
    app.state.agent = AgentLoop(gateway, ToolRegistry([], CLIENT_TOOL_SPECS), AgentConfig())
    return TestClient(app), gateway


def _frames(body: str) -> list[dict]:
    return [json.loads(chunk[len("data: "):]) for chunk in body.split("\n\n") if chunk.startswith("data: ")]


def test_stream_rejects_missing_messages() -> None:
    client, _ = _client(ModelTurn(content="hi"))

    resp = client.post("/api/ai/chat/stream", json={"provider": "openai"})

    assert resp.status_code == 400
    assert resp.json() == {"error": "Messages array is required"}


def test_stream_rejects_non_list_messages() -> None:
    client, _ = _client(ModelTurn(content="hi"))

    resp = client.post("/api/ai/chat/stream", json={"messages": "hello"})

    assert resp.status_code == 400


def test_stream_rejects_non_json_body() -> None:
    client, _ = _client(ModelTurn(content="hi"))

    resp = client.post(
        "/api/ai/chat/stream", content=b"not json", headers={"Content-Type": "application/json"}
    )

    assert resp.status_code == 400


def test_stream_sends_sse_frames_ending_in_done() -> None:
    client, gateway = _client(ModelTurn(content="Hello there", stop_reason="end_turn"))

    resp = client.post(
        "/api/ai/chat/stream",
        json={
            "messages": [
                {"role": "user", "content": "hi"},
                {"role": "assistant", "content": ""},
                {"role": "user", "content": "   "},
            ],
            "provider": "anthropic",
        },
    )

    assert resp.status_code == 200
    assert resp.headers["content-type"] == "text/event-stream"
    assert resp.headers["cache-control"] == "no-cache"
    assert resp.headers["connection"] == "keep-alive"

    frames = _frames(resp.text)
    assert frames[0] == {"type": "text", "data": {"content": "Hello there", "fullContent": "Hello there"}}
    assert frames[-1]["type"] == "done"
    assert frames[-1]["data"]["iterations"] == 1
    # empty turns are filtered before the model sees them
    assert [t.content for t in gateway.seen_turns[0]] == ["hi"]


def test_blocking_chat_attaches_drafts() -> None:
    call = ToolCall(
        id="d1",
        name="prepare_draft",
        arguments={"type": "new", "to": "a@b.com, c@d.com", "subject": "Hi", "body": "Hello"},
    )
    client, _ = _client(ModelTurn(content="Here's a draft for you:", tool_calls=[call]))

    resp = client.post("/api/ai/chat", json={"messages": [{"role": "user", "content": "write"}]})

    assert resp.status_code == 200
    data = resp.json()
    assert data["toolCalls"] == [call.to_dict()]
    assert data["drafts"][0]["to"] == ["a@b.com", "c@d.com"]
    assert data["drafts"][0]["type"] == "new"
    assert data["iterations"] == 1


def test_blocking_chat_falls_back_to_help_text() -> None:
    client, _ = _client(ModelTurn(content=""))

    resp = client.post("/api/ai/chat", json={"messages": [{"role": "user", "content": "?"}]})

    assert resp.status_code == 200
    assert resp.json()["content"].startswith("I'm here to help!")


def test_model_catalog() -> None:
    client, _ = _client(ModelTurn(content=""))

    resp = client.get("/api/ai/chat")

    assert resp.status_code == 200
    assert resp.json()["openai"][0]["id"] == "gpt-4.1"



class FailingGateway(OneShotGateway):
    """Emits some text, then the provider call dies mid-stream."""

    async def stream(self, turns, **kwargs):
        yield TextDelta("Partial ")
        raise ProviderResponseError("Anthropic request failed: Overloaded", status_code=529)


def test_stream_provider_failure_ends_with_one_error_frame() -> None:
    app = create_app()
    gateway = FailingGateway(ModelTurn(content=""))
    app.state.gateway = gateway
    app.state.agent = AgentLoop(gateway, ToolRegistry([], CLIENT_TOOL_SPECS), AgentConfig())
    client = TestClient(app)

    resp = client.post("/api/ai/chat/stream", json={"messages": [{"role": "user", "content": "hi"}]})

    assert resp.status_code == 200
    frames = _frames(resp.text)
    assert frames[0]["type"] == "text"
    assert frames[-1] == {
        "type": "error",
        "data": {"message": "Anthropic request failed: Overloaded"},
    }
    assert [f["type"] for f in frames].count("error") == 1
    assert "done" not in [f["type"] for f in frames]
    # body is complete: every chunk is a full frame
    assert resp.text.endswith("\n\n")
