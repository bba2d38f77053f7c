"""Anthropic adapter: native Messages API over httpx.

The streaming side parses Anthropic's own SSE grammar (``message_start``,
``content_block_start``, ``content_block_delta``, ``content_block_stop``,
``message_delta``, ``message_stop``, ``error``) into the shared event types.
"""

from __future__ import annotations

import json
import time
from collections.abc import AsyncIterator, Sequence
from dataclasses import dataclass
from typing import Any

import httpx
import structlog

from flomail.config import LLMConfig
from flomail.llm.base import ModelProvider
from flomail.llm.errors import ModelNotFoundError, ProviderConfigError, ProviderResponseError
from flomail.llm.partial_json import parse_arguments, preview_arguments
from flomail.llm.types import (
    ChatTurn,
    ModelTurn,
    ProviderEvent,
    TextDelta,
    ToolCall,
    ToolCallArgsDelta,
    ToolCallCompleted,
    ToolCallStarted,
    TurnSummary,
    synthesize_tool_call_id,
)

logger = structlog.get_logger()

CLAUDE_MODELS: dict[str, str] = {
    "claude-sonnet-4-20250514": "Claude Sonnet 4 (Recommended)",
    "claude-opus-4-20250514": "Claude Opus 4 (Most Capable)",
    "claude-3-5-sonnet-20241022": "Claude 3.5 Sonnet (Fallback)",
    "claude-3-5-haiku-20241022": "Claude 3.5 Haiku (Fast)",
}


def to_anthropic_tools(tools: Sequence[dict[str, Any]]) -> list[dict[str, Any]]:
    """Convert neutral tool schemas to Anthropic's tool format."""
    return [
        {
            "name": tool["name"],
            "description": tool["description"],
            "input_schema": tool["parameters"],
        }
        for tool in tools
    ]


def _raise_for_error(status_code: int, body: Any, model: str) -> None:
    error = body.get("error", {}) if isinstance(body, dict) else {}
    error_type = error.get("type", "")
    message = error.get("message") or f"HTTP {status_code}"
    if status_code == 404 or error_type == "not_found_error" or (
        error_type == "invalid_request_error" and "model" in message.lower()
    ):
        raise ModelNotFoundError(model, message, status_code=status_code)
    raise ProviderResponseError(f"Anthropic request failed: {message}", status_code=status_code)


@dataclass
class _Block:
    """Content block being assembled from stream deltas."""

    kind: str
    id: str = ""
    name: str = ""
    buffer: str = ""
    initial_input: dict[str, Any] | None = None


class AnthropicProvider(ModelProvider):
    """Batch and streaming calls against the Anthropic Messages API."""

    models = CLAUDE_MODELS

    def __init__(self, config: LLMConfig, client: httpx.AsyncClient | None = None) -> None:
        super().__init__(
            default_model=config.anthropic_model,
            fallback_model=config.anthropic_fallback_model,
        )
        self.config = config
        self._client = client

    @property
    def name(self) -> str:
        return "anthropic"

    @property
    def _url(self) -> str:
        return f"{self.config.anthropic_api_base.rstrip('/')}/v1/messages"

    def _headers(self) -> dict[str, str]:
        if not self.config.anthropic_api_key:
            raise ProviderConfigError("ANTHROPIC_API_KEY is not configured")
        return {
            "x-api-key": self.config.anthropic_api_key,
            "anthropic-version": self.config.anthropic_version,
            "content-type": "application/json",
        }

    def _payload(
        self,
        turns: Sequence[ChatTurn],
        *,
        model: str,
        system: str,
        tools: Sequence[dict[str, Any]],
        stream: bool,
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "model": model,
            "max_tokens": self.config.max_tokens,
            "temperature": self.config.temperature,
            "messages": [turn.to_dict() for turn in turns],
            "stream": stream,
        }
        if system:
            payload["system"] = system
        if tools:
            payload["tools"] = to_anthropic_tools(tools)
        return payload

    def _client_or_new(self) -> httpx.AsyncClient:
        return self._client or httpx.AsyncClient(timeout=self.config.request_timeout_s)

    async def complete(
        self,
        turns: Sequence[ChatTurn],
        *,
        model: str,
        system: str,
        tools: Sequence[dict[str, Any]],
    ) -> ModelTurn:
        headers = self._headers()
        payload = self._payload(turns, model=model, system=system, tools=tools, stream=False)
        start = time.monotonic()

        client = self._client_or_new()
        try:
            resp = await client.post(self._url, headers=headers, json=payload)
        except httpx.HTTPError as e:
            raise ProviderResponseError(f"Anthropic request failed: {type(e).__name__}: {e}") from e
        finally:
            if client is not self._client:
                await client.aclose()

        try:
            data = resp.json() if resp.content else {}
        except ValueError:
            # proxies answer with HTML error pages
            data = None
        if resp.status_code >= 400:
            _raise_for_error(resp.status_code, data, model)
        if not isinstance(data, dict):
            raise ProviderResponseError(
                "Anthropic returned a non-JSON response", status_code=resp.status_code
            )

        blocks = data.get("content") or []
        content = "\n".join(b.get("text", "") for b in blocks if b.get("type") == "text").strip()
        tool_calls = [
            ToolCall(
                id=b.get("id") or synthesize_tool_call_id(),
                name=b.get("name", ""),
                arguments=parse_arguments(b.get("input") or {}),
            )
            for b in blocks
            if b.get("type") == "tool_use"
        ]
        stop_reason = data.get("stop_reason") or "end_turn"

        logger.info(
            "llm.response",
            provider=self.name,
            model=model,
            stop_reason=stop_reason,
            content_blocks=len(blocks),
            tool_calls=len(tool_calls),
            duration=f"{time.monotonic() - start:.2f}s",
        )
        return ModelTurn(content=content, tool_calls=tool_calls, stop_reason=stop_reason)

    async def stream(
        self,
        turns: Sequence[ChatTurn],
        *,
        model: str,
        system: str,
        tools: Sequence[dict[str, Any]],
    ) -> AsyncIterator[ProviderEvent]:
        headers = self._headers()
        payload = self._payload(turns, model=model, system=system, tools=tools, stream=True)

        content = ""
        stop_reason = "end_turn"
        blocks: dict[int, _Block] = {}
        completed: list[ToolCall] = []

        client = self._client_or_new()
        try:
            async with client.stream("POST", self._url, headers=headers, json=payload) as resp:
                if resp.status_code >= 400:
                    raw = await resp.aread()
                    try:
                        body = json.loads(raw) if raw else {}
                    except json.JSONDecodeError:
                        body = {}
                    _raise_for_error(resp.status_code, body, model)

                async for data in _iter_sse_data(resp):
                    event_type = data.get("type")

                    if event_type == "content_block_start":
                        index = data.get("index", len(blocks))
                        raw_block = data.get("content_block") or {}
                        block = _Block(kind=raw_block.get("type", "text"))
                        blocks[index] = block
                        if block.kind == "tool_use":
                            block.id = raw_block.get("id") or synthesize_tool_call_id()
                            block.name = raw_block.get("name", "")
                            block.initial_input = raw_block.get("input") or None
                            yield ToolCallStarted(id=block.id, name=block.name)
                        elif block.kind == "text":
                            if content and not content.endswith("\n"):
                                content += "\n"
                                yield TextDelta(text="\n")
                            initial = raw_block.get("text") or ""
                            if initial:
                                content += initial
                                yield TextDelta(text=initial)

                    elif event_type == "content_block_delta":
                        block = blocks.get(data.get("index", -1))
                        delta = data.get("delta") or {}
                        delta_type = delta.get("type")
                        if delta_type == "text_delta":
                            text = delta.get("text", "")
                            if text:
                                content += text
                                yield TextDelta(text=text)
                        elif delta_type == "input_json_delta" and block is not None:
                            fragment = delta.get("partial_json", "")
                            if fragment:
                                block.buffer += fragment
                                yield ToolCallArgsDelta(
                                    id=block.id,
                                    name=block.name,
                                    delta=fragment,
                                    preview=preview_arguments(block.buffer),
                                )

                    elif event_type == "content_block_stop":
                        block = blocks.get(data.get("index", -1))
                        if block is not None and block.kind == "tool_use":
                            arguments = (
                                parse_arguments(block.buffer)
                                if block.buffer
                                else dict(block.initial_input or {})
                            )
                            tool_call = ToolCall(id=block.id, name=block.name, arguments=arguments)
                            completed.append(tool_call)
                            yield ToolCallCompleted(tool_call=tool_call)

                    elif event_type == "message_delta":
                        reason = (data.get("delta") or {}).get("stop_reason")
                        if reason:
                            stop_reason = reason

                    elif event_type == "error":
                        _raise_for_error(529, data, model)

                    elif event_type == "message_stop":
                        break
        except httpx.HTTPError as e:
            raise ProviderResponseError(f"Anthropic stream failed: {type(e).__name__}: {e}") from e
        finally:
            if client is not self._client:
                await client.aclose()

        logger.info(
            "llm.stream.complete",
            provider=self.name,
            model=model,
            stop_reason=stop_reason,
            content_length=len(content),
            tool_calls=len(completed),
        )
        yield TurnSummary(content=content.strip(), tool_calls=completed, stop_reason=stop_reason)


async def _iter_sse_data(resp: httpx.Response) -> AsyncIterator[dict[str, Any]]:
    """Yield the JSON payload of every SSE frame in the response body."""
    data_lines: list[str] = []
    async for line in resp.aiter_lines():
        if not line:
            if data_lines:
                payload = "\n".join(data_lines)
                data_lines = []
                try:
                    yield json.loads(payload)
                except json.JSONDecodeError:
                    logger.warning("llm.stream.bad_frame", provider="anthropic", length=len(payload))
            continue
        if line.startswith("data:"):
            data_lines.append(line[5:].lstrip())
        # "event:" lines repeat the "type" field of the payload; ignore them.

    if data_lines:
        try:
            yield json.loads("\n".join(data_lines))
        except json.JSONDecodeError:
            logger.warning("llm.stream.bad_frame", provider="anthropic")
