from __future__ import annotations

import structlog

from flomail.logging import REDACTED, bind_request_context, redact_secrets


def test_secrets_are_redacted() -> None:
    event = {"event": "chat.start", "access_token": "ya29.secret", "api_key": "", "model": "gpt-4.1"}

    out = redact_secrets(None, "info", dict(event))

    assert out["access_token"] == REDACTED
    assert out["api_key"] == ""
    assert out["model"] == "gpt-4.1"


def test_request_context_replaces_previous_values() -> None:
    bind_request_context(request_id="aaa", provider="openai")
    bind_request_context(request_id="bbb")

    assert structlog.contextvars.get_contextvars() == {"request_id": "bbb"}
    structlog.contextvars.clear_contextvars()
