from __future__ import annotations

import pytest

from flomail.config import LLMConfig
from flomail.llm.base import ModelProvider
from flomail.llm.errors import LLMError, ModelNotFoundError, ProviderResponseError
from flomail.llm.gateway import LLMGateway
from flomail.llm.types import ModelTurn, TextDelta, TurnSummary


class FakeProvider(ModelProvider):
    models = {"good-model": "Good", "fallback-model": "Fallback", "gone-model": "Gone"}

    def __init__(self, missing: set[str], *, fail_after_first_event: bool = False) -> None:
        super().__init__(default_model="good-model", fallback_model="fallback-model")
        self.missing = missing
        self.fail_after_first_event = fail_after_first_event
        self.models_called: list[str] = []

    @property
    def name(self) -> str:
        return "fake"

    async def complete(self, turns, *, model, system, tools):
        self.models_called.append(model)
        if model in self.missing:
            raise ModelNotFoundError(model)
        return ModelTurn(content=f"from {model}")

    async def stream(self, turns, *, model, system, tools):
        self.models_called.append(model)
        if model in self.missing and not self.fail_after_first_event:
            raise ModelNotFoundError(model)
        yield TextDelta(f"from {model}")
        if model in self.missing:
            raise ModelNotFoundError(model)
        yield TurnSummary(content=f"from {model}")


def _gateway(provider: FakeProvider) -> LLMGateway:
    return LLMGateway(LLMConfig(default_provider="anthropic"), providers=[provider])


@pytest.mark.asyncio
async def test_complete_retries_once_with_fallback_model() -> None:
    provider = FakeProvider(missing={"gone-model"})
    gateway = _gateway(provider)

    turn = await gateway.complete([], provider="fake", model="gone-model", system="", tools=[])

    assert turn.content == "from fallback-model"
    assert provider.models_called == ["gone-model", "fallback-model"]
    assert gateway.fallback_count == 1


@pytest.mark.asyncio
async def test_complete_gives_up_when_fallback_also_missing() -> None:
    provider = FakeProvider(missing={"gone-model", "fallback-model"})
    gateway = _gateway(provider)

    with pytest.raises(ModelNotFoundError):
        await gateway.complete([], provider="fake", model="gone-model", system="", tools=[])
    assert provider.models_called == ["gone-model", "fallback-model"]


@pytest.mark.asyncio
async def test_other_errors_are_not_retried() -> None:
    class Broken(FakeProvider):
        async def complete(self, turns, *, model, system, tools):
            self.models_called.append(model)
            raise ProviderResponseError("boom", status_code=500)

    provider = Broken(missing=set())
    gateway = _gateway(provider)

    with pytest.raises(ProviderResponseError):
        await gateway.complete([], provider="fake", model=None, system="", tools=[])
    assert provider.models_called == ["good-model"]


@pytest.mark.asyncio
async def test_stream_retries_before_first_event() -> None:
    provider = FakeProvider(missing={"gone-model"})
    gateway = _gateway(provider)

    events = [e async for e in gateway.stream([], provider="fake", model="gone-model", system="", tools=[])]

    assert provider.models_called == ["gone-model", "fallback-model"]
    assert events[-1].content == "from fallback-model"


@pytest.mark.asyncio
async def test_stream_does_not_retry_after_output() -> None:
    provider = FakeProvider(missing={"gone-model"}, fail_after_first_event=True)
    gateway = _gateway(provider)
    seen = []

    with pytest.raises(ModelNotFoundError):
        async for event in gateway.stream([], provider="fake", model="gone-model", system="", tools=[]):
            seen.append(event)

    assert provider.models_called == ["gone-model"]
    assert len(seen) == 1


@pytest.mark.asyncio
async def test_unknown_requested_model_uses_provider_default() -> None:
    provider = FakeProvider(missing=set())
    gateway = _gateway(provider)

    turn = await gateway.complete([], provider="fake", model="mystery", system="", tools=[])

    assert turn.content == "from good-model"


def test_unknown_provider_is_an_error() -> None:
    gateway = _gateway(FakeProvider(missing=set()))

    with pytest.raises(LLMError):
        gateway.provider("cohere")


def test_catalog_lists_models_per_provider() -> None:
    gateway = _gateway(FakeProvider(missing=set()))

    assert gateway.catalog()["fake"][0] == {"id": "good-model", "name": "Good"}
