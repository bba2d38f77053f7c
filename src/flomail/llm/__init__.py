"""Model provider adapters."""

from flomail.llm.base import ModelProvider
from flomail.llm.errors import LLMError, ModelNotFoundError, ProviderConfigError, ProviderResponseError
from flomail.llm.gateway import LLMGateway
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
)

__all__ = [
    "ChatTurn",
    "LLMError",
    "LLMGateway",
    "ModelNotFoundError",
    "ModelProvider",
    "ModelTurn",
    "ProviderConfigError",
    "ProviderEvent",
    "ProviderResponseError",
    "TextDelta",
    "ToolCall",
    "ToolCallArgsDelta",
    "ToolCallCompleted",
    "ToolCallStarted",
    "TurnSummary",
]
