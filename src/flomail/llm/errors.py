"""Model provider errors."""

from __future__ import annotations


class LLMError(Exception):
    """Base class for model provider failures."""


class ProviderConfigError(LLMError):
    """The provider cannot be called, usually because its API key is missing."""


class ProviderResponseError(LLMError):
    """The provider answered with an error status or an error event."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ModelNotFoundError(ProviderResponseError):
    """The provider does not recognize the requested model id.

    This is the only failure the gateway retries, once, against the
    provider's fallback model.
    """

    def __init__(self, model: str, message: str = "", *, status_code: int | None = 404) -> None:
        super().__init__(message or f"Model not found: {model}", status_code=status_code)
        self.model = model
