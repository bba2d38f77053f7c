"""Provider gateway: picks the adapter and owns the fallback-model retry."""

from __future__ import annotations

from collections.abc import AsyncIterator, Sequence
from typing import Any

import structlog

from flomail.config import LLMConfig
from flomail.llm.anthropic import AnthropicProvider
from flomail.llm.base import ModelProvider
from flomail.llm.errors import LLMError, ModelNotFoundError
from flomail.llm.openai import OpenAIProvider
from flomail.llm.types import ChatTurn, ModelTurn, ProviderEvent

logger = structlog.get_logger()


class LLMGateway:
    """Single entry point for model calls, whichever provider serves them.

    Callers pass a provider id once, here; everything downstream sees only
    the shared event types.
    """

    def __init__(
        self,
        config: LLMConfig,
        providers: Sequence[ModelProvider] | None = None,
    ) -> None:
        self.config = config
        if providers is None:
            providers = [OpenAIProvider(config), AnthropicProvider(config)]
        self.providers: dict[str, ModelProvider] = {p.name: p for p in providers}
        self.request_count = 0
        self.fallback_count = 0

    def provider(self, name: str | None) -> ModelProvider:
        """Look up a provider, defaulting to the configured one."""
        key = name or self.config.default_provider
        provider = self.providers.get(key)
        if provider is None:
            raise LLMError(f"Unknown provider: {key}")
        return provider

    def resolve(self, provider: str | None, model: str | None) -> tuple[ModelProvider, str]:
        """Resolve provider and model ids the way the client sent them."""
        adapter = self.provider(provider)
        return adapter, adapter.resolve_model(model)

    async def complete(
        self,
        turns: Sequence[ChatTurn],
        *,
        provider: str | None,
        model: str | None,
        system: str,
        tools: Sequence[dict[str, Any]],
    ) -> ModelTurn:
        """Blocking model call, retried once on an unrecognized model."""
        adapter, resolved = self.resolve(provider, model)
        self.request_count += 1
        logger.info(
            "llm.request",
            request_id=self.request_count,
            provider=adapter.name,
            model=resolved,
            message_count=len(turns),
            has_tools=bool(tools),
            stream=False,
        )
        try:
            return await adapter.complete(turns, model=resolved, system=system, tools=tools)
        except ModelNotFoundError as e:
            if resolved == adapter.fallback_model:
                raise
            self._log_fallback(adapter, resolved, e)
            return await adapter.complete(
                turns, model=adapter.fallback_model, system=system, tools=tools
            )

    async def stream(
        self,
        turns: Sequence[ChatTurn],
        *,
        provider: str | None,
        model: str | None,
        system: str,
        tools: Sequence[dict[str, Any]],
    ) -> AsyncIterator[ProviderEvent]:
        """Streaming model call.

        The fallback retry only applies while nothing has been yielded yet;
        once output reached the caller a failure propagates as-is.
        """
        adapter, resolved = self.resolve(provider, model)
        self.request_count += 1
        logger.info(
            "llm.request",
            request_id=self.request_count,
            provider=adapter.name,
            model=resolved,
            message_count=len(turns),
            has_tools=bool(tools),
            stream=True,
        )

        yielded = False
        try:
            async for event in adapter.stream(turns, model=resolved, system=system, tools=tools):
                yielded = True
                yield event
            return
        except ModelNotFoundError as e:
            if yielded or resolved == adapter.fallback_model:
                raise
            self._log_fallback(adapter, resolved, e)

        async for event in adapter.stream(
            turns, model=adapter.fallback_model, system=system, tools=tools
        ):
            yield event

    def _log_fallback(self, adapter: ModelProvider, model: str, error: Exception) -> None:
        self.fallback_count += 1
        logger.warning(
            "llm.fallback",
            provider=adapter.name,
            model=model,
            fallback_model=adapter.fallback_model,
            error=str(error),
        )

    def catalog(self) -> dict[str, list[dict[str, str]]]:
        """Model ids and display names per provider."""
        return {
            name: [{"id": model_id, "name": label} for model_id, label in p.models.items()]
            for name, p in self.providers.items()
        }

    @property
    def stats(self) -> dict[str, Any]:
        """Return usage statistics."""
        return {
            "request_count": self.request_count,
            "fallback_count": self.fallback_count,
            "default_provider": self.config.default_provider,
        }
