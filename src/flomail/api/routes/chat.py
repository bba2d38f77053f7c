"""Chat endpoints: streaming agent, blocking agent, model catalog."""

from __future__ import annotations

import asyncio
import json
import uuid
from typing import Any, Literal

import structlog
from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel, ConfigDict, ValidationError
from pydantic.alias_generators import to_camel

from flomail.agent.loop import AgentError, AgentLoop, AgentRequest
from flomail.agent.prompt import FALLBACK_REPLY
from flomail.api.sse import EventStreamWriter, event_stream_response
from flomail.llm.types import ChatTurn
from flomail.logging import bind_request_context
from flomail.mail.drafts import build_draft_from_tool_call
from flomail.mail.models import Draft, EmailThread

logger = structlog.get_logger()

router = APIRouter()

# Streams keep running after their response is gone; hold a reference until they finish.
_running: set[asyncio.Task[None]] = set()


class ChatMessage(BaseModel):
    role: Literal["user", "assistant"]
    content: str | None = None


class ChatRequest(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    messages: list[ChatMessage]
    thread: EmailThread | None = None
    folder: str = "inbox"
    provider: Literal["openai", "anthropic"] | None = None
    model: str | None = None
    access_token: str | None = None
    current_draft: Draft | None = None

    def to_agent_request(self) -> AgentRequest:
        # Some providers reject empty turns.
        turns = [
            ChatTurn(role=m.role, content=m.content)
            for m in self.messages
            if m.content and m.content.strip()
        ]
        return AgentRequest(
            messages=turns,
            thread=self.thread,
            folder=self.folder,
            provider=self.provider,
            model=self.model,
            access_token=self.access_token,
            current_draft=self.current_draft,
        )


def _bad_request(message: str) -> JSONResponse:
    return JSONResponse({"error": message}, status_code=400)


async def _parse_chat_request(request: Request) -> ChatRequest | JSONResponse:
    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        return _bad_request("Request body must be JSON")

    if not isinstance(body, dict) or not isinstance(body.get("messages"), list):
        return _bad_request("Messages array is required")

    try:
        return ChatRequest.model_validate(body)
    except ValidationError as e:
        logger.warning("chat.invalid_request", errors=e.error_count())
        return _bad_request(f"Invalid request: {e.errors()[0].get('msg', 'validation error')}")


async def _pump(agent: AgentLoop, agent_request: AgentRequest, writer: EventStreamWriter) -> None:
    async with writer:
        async for event in agent.run(agent_request):
            await writer.send(event)


@router.post("/api/ai/chat/stream", response_model=None)
async def chat_stream(request: Request) -> StreamingResponse | JSONResponse:
    """Run the agent and stream its events as SSE."""
    parsed = await _parse_chat_request(request)
    if isinstance(parsed, JSONResponse):
        return parsed

    agent: AgentLoop = request.app.state.agent
    agent_request = parsed.to_agent_request()
    bind_request_context(request_id=uuid.uuid4().hex[:8], provider=parsed.provider or "default")
    logger.info(
        "chat.stream.start",
        model=parsed.model or "default",
        messages=len(agent_request.messages),
        has_thread=parsed.thread is not None,
        folder=parsed.folder,
    )

    writer = EventStreamWriter()
    task = asyncio.create_task(_pump(agent, agent_request, writer))
    _running.add(task)
    task.add_done_callback(_running.discard)
    return event_stream_response(writer)


@router.post("/api/ai/chat", response_model=None)
async def chat(request: Request) -> dict[str, Any] | JSONResponse:
    """Run the agent to completion and return the result as JSON."""
    parsed = await _parse_chat_request(request)
    if isinstance(parsed, JSONResponse):
        return parsed

    agent: AgentLoop = request.app.state.agent
    bind_request_context(request_id=uuid.uuid4().hex[:8], provider=parsed.provider or "default")
    logger.info("chat.start", model=parsed.model or "default", messages=len(parsed.messages))

    try:
        outcome = await agent.run_to_completion(parsed.to_agent_request())
    except AgentError as e:
        logger.error("chat.failed", error=str(e))
        return JSONResponse({"error": str(e) or "Failed to process request"}, status_code=500)

    content = outcome.content
    if not content and not outcome.tool_calls:
        content = FALLBACK_REPLY

    drafts = [
        build_draft_from_tool_call(call.arguments, parsed.thread).model_dump(by_alias=True)
        for call in outcome.tool_calls
        if call.name == "prepare_draft"
    ]
    logger.info(
        "chat.complete",
        iterations=outcome.iterations,
        tool_calls=[c.name for c in outcome.tool_calls],
        content_length=len(content),
    )
    return {
        "content": content,
        "toolCalls": [c.to_dict() for c in outcome.tool_calls],
        "drafts": drafts,
        "iterations": outcome.iterations,
    }


@router.get("/api/ai/chat")
async def list_models(request: Request) -> dict[str, list[dict[str, str]]]:
    """Models the client may pick from, per provider."""
    return request.app.state.gateway.catalog()
