"""Model provider interface."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Sequence
from typing import Any

from flomail.llm.types import ChatTurn, ModelTurn, ProviderEvent


class ModelProvider(ABC):
    """One upstream LLM API, normalized to the shared event vocabulary."""

    #: Model id -> display name.
    models: dict[str, str] = {}

    def __init__(self, *, default_model: str, fallback_model: str) -> None:
        self.default_model = default_model
        self.fallback_model = fallback_model

    @property
    @abstractmethod
    def name(self) -> str:
        """Provider identifier used in requests ("openai", "anthropic")."""
        ...

    @abstractmethod
    async def complete(
        self,
        turns: Sequence[ChatTurn],
        *,
        model: str,
        system: str,
        tools: Sequence[dict[str, Any]],
    ) -> ModelTurn:
        """Blocking call returning the full turn."""
        ...

    @abstractmethod
    def stream(
        self,
        turns: Sequence[ChatTurn],
        *,
        model: str,
        system: str,
        tools: Sequence[dict[str, Any]],
    ) -> AsyncIterator[ProviderEvent]:
        """Streaming call. The last event is always a ``TurnSummary``."""
        ...

    def resolve_model(self, requested: str | None) -> str:
        """Use the requested model when this provider offers it, else the default."""
        if requested and requested in self.models:
            return requested
        return self.default_model
