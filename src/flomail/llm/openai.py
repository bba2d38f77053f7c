"""OpenAI adapter: Chat Completions through LiteLLM."""

from __future__ import annotations

import time
from collections.abc import AsyncIterator, Sequence
from dataclasses import dataclass
from typing import Any

import litellm
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

# Suppress litellm's noisy logging
litellm.suppress_debug_info = True
litellm.drop_params = True

OPENAI_MODELS: dict[str, str] = {
    "gpt-4.1": "GPT-4.1 (Flagship)",
    "gpt-4.1-mini": "GPT-4.1 Mini (Fast)",
    "gpt-4.1-nano": "GPT-4.1 Nano (Fastest)",
    "gpt-4o": "GPT-4o (Fallback)",
    "gpt-4o-mini": "GPT-4o Mini (Fallback)",
}


def to_openai_tools(tools: Sequence[dict[str, Any]]) -> list[dict[str, Any]]:
    """Convert neutral tool schemas to OpenAI function calling format."""
    return [
        {
            "type": "function",
            "function": {
                "name": tool["name"],
                "description": tool["description"],
                "parameters": tool["parameters"],
            },
        }
        for tool in tools
    ]


def _is_model_not_found(exc: Exception) -> bool:
    if isinstance(exc, litellm.NotFoundError):
        return True
    text = str(exc).lower()
    if "model_not_found" in text:
        return True
    return isinstance(exc, litellm.BadRequestError) and "model" in text and "does not exist" in text


@dataclass
class _PendingCall:
    """Tool call being assembled from indexed stream chunks."""

    id: str
    name: str = ""
    buffer: str = ""
    started: bool = False


class OpenAIProvider(ModelProvider):
    """Batch and streaming calls against the OpenAI Chat Completions API."""

    models = OPENAI_MODELS

    def __init__(self, config: LLMConfig) -> None:
        super().__init__(
            default_model=config.openai_model,
            fallback_model=config.openai_fallback_model,
        )
        self.config = config

    @property
    def name(self) -> str:
        return "openai"

    def _request_kwargs(
        self,
        turns: Sequence[ChatTurn],
        *,
        model: str,
        system: str,
        tools: Sequence[dict[str, Any]],
        stream: bool,
    ) -> dict[str, Any]:
        if not self.config.openai_api_key:
            raise ProviderConfigError("OPENAI_API_KEY is not configured")

        messages: list[dict[str, Any]] = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.extend(turn.to_dict() for turn in turns)

        kwargs: dict[str, Any] = {
            "model": f"openai/{model}",
            "messages": messages,
            "temperature": self.config.temperature,
            "max_tokens": self.config.max_tokens,
            "api_key": self.config.openai_api_key,
            "timeout": self.config.request_timeout_s,
            "stream": stream,
        }
        if tools:
            kwargs["tools"] = to_openai_tools(tools)
            kwargs["tool_choice"] = "auto"
        return kwargs

    async def _acompletion(self, kwargs: dict[str, Any]) -> Any:
        model = kwargs["model"]
        try:
            return await litellm.acompletion(**kwargs)
        except Exception as e:
            if _is_model_not_found(e):
                raise ModelNotFoundError(model.removeprefix("openai/"), str(e)) from e
            status = getattr(e, "status_code", None)
            raise ProviderResponseError(f"OpenAI request failed: {e}", status_code=status) from e

    async def complete(
        self,
        turns: Sequence[ChatTurn],
        *,
        model: str,
        system: str,
        tools: Sequence[dict[str, Any]],
    ) -> ModelTurn:
        kwargs = self._request_kwargs(turns, model=model, system=system, tools=tools, stream=False)
        start = time.monotonic()
        response = await self._acompletion(kwargs)

        choice = response.choices[0]
        message = choice.message
        tool_calls = [
            ToolCall(
                id=getattr(tc, "id", None) or synthesize_tool_call_id(),
                name=tc.function.name,
                arguments=parse_arguments(tc.function.arguments),
            )
            for tc in (getattr(message, "tool_calls", None) or [])
        ]
        content = (message.content or "").strip()
        finish_reason = choice.finish_reason or "stop"

        logger.info(
            "llm.response",
            provider=self.name,
            model=model,
            finish_reason=finish_reason,
            tool_calls=len(tool_calls),
            duration=f"{time.monotonic() - start:.2f}s",
        )
        return ModelTurn(content=content, tool_calls=tool_calls, stop_reason=finish_reason)

    async def stream(
        self,
        turns: Sequence[ChatTurn],
        *,
        model: str,
        system: str,
        tools: Sequence[dict[str, Any]],
    ) -> AsyncIterator[ProviderEvent]:
        kwargs = self._request_kwargs(turns, model=model, system=system, tools=tools, stream=True)
        response = await self._acompletion(kwargs)

        content = ""
        finish_reason = "stop"
        pending: dict[int, _PendingCall] = {}

        async for chunk in response:
            choices = getattr(chunk, "choices", None) or []
            if not choices:
                continue
            choice = choices[0]
            delta = getattr(choice, "delta", None)

            if delta is not None:
                text = getattr(delta, "content", None)
                if text:
                    content += text
                    yield TextDelta(text=text)

                for tc in getattr(delta, "tool_calls", None) or []:
                    for event in self._absorb_tool_delta(pending, tc):
                        yield event

            if getattr(choice, "finish_reason", None):
                finish_reason = choice.finish_reason

        completed: list[ToolCall] = []
        for index in sorted(pending):
            call = pending[index]
            if not call.name:
                logger.warning("llm.stream.nameless_tool_call", provider=self.name, index=index)
                continue
            if not call.started:
                yield ToolCallStarted(id=call.id, name=call.name)
            tool_call = ToolCall(id=call.id, name=call.name, arguments=parse_arguments(call.buffer))
            completed.append(tool_call)
            yield ToolCallCompleted(tool_call=tool_call)

        logger.info(
            "llm.stream.complete",
            provider=self.name,
            model=model,
            finish_reason=finish_reason,
            content_length=len(content),
            tool_calls=len(completed),
        )
        yield TurnSummary(content=content.strip(), tool_calls=completed, stop_reason=finish_reason)

    def _absorb_tool_delta(self, pending: dict[int, _PendingCall], tc: Any) -> list[ProviderEvent]:
        """Fold one indexed tool-call fragment into its pending call."""
        index = getattr(tc, "index", None)
        if index is None:
            index = len(pending)
        call = pending.get(index)
        if call is None:
            call = _PendingCall(id=getattr(tc, "id", None) or synthesize_tool_call_id())
            pending[index] = call

        function = getattr(tc, "function", None)
        name = getattr(function, "name", None) if function else None
        fragment = (getattr(function, "arguments", None) or "") if function else ""
        if name and not call.name:
            call.name = name

        events: list[ProviderEvent] = []
        if call.name and not call.started:
            call.started = True
            events.append(ToolCallStarted(id=call.id, name=call.name))
        if fragment:
            call.buffer += fragment
            if call.started:
                events.append(
                    ToolCallArgsDelta(
                        id=call.id,
                        name=call.name,
                        delta=fragment,
                        preview=preview_arguments(call.buffer),
                    )
                )
        return events
