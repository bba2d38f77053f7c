"""Best-effort parsing of tool arguments that are still streaming in.

Used only for live previews. The authoritative parse happens once, when the
tool call closes, through :func:`parse_arguments`.
"""

from __future__ import annotations

import json
from typing import Any

import structlog

logger = structlog.get_logger()


def parse_arguments(raw: str | dict[str, Any] | None) -> dict[str, Any]:
    """Parse the final argument payload of a closed tool call."""
    if isinstance(raw, dict):
        return raw
    if not raw or not raw.strip():
        return {}
    try:
        parsed = json.loads(raw)
    except (json.JSONDecodeError, TypeError):
        logger.warning("tool_call.invalid_arguments", length=len(raw))
        return {}
    if not isinstance(parsed, dict):
        logger.warning("tool_call.non_object_arguments", kind=type(parsed).__name__)
        return {}
    return parsed


def preview_arguments(buffer: str) -> dict[str, Any] | None:
    """Recover the complete key/value pairs of an unterminated JSON object.

    ``{"to": "a@b.com", "subject": "Hel`` yields ``{"to": "a@b.com"}``.
    Returns None when nothing usable is there yet. Never raises.
    """
    text = buffer.strip()
    if not text.startswith("{"):
        return None

    try:
        parsed = json.loads(text)
        return parsed if isinstance(parsed, dict) else None
    except json.JSONDecodeError:
        pass

    end = _last_complete_member_end(text)
    if end is None:
        return None
    try:
        parsed = json.loads(text[:end] + "}")
    except json.JSONDecodeError:
        return None
    return parsed or None


def _last_complete_member_end(text: str) -> int | None:
    """Index just past the last top-level member that is fully closed."""
    depth = 0
    in_string = False
    escaped = False
    last_end: int | None = None
    # A member is complete once its value closes and we are back at depth 1.
    seen_colon = False

    for i, ch in enumerate(text):
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
                if depth == 1 and seen_colon:
                    last_end = i + 1
            continue

        if ch == '"':
            in_string = True
        elif ch in "{[":
            depth += 1
        elif ch in "}]":
            depth -= 1
            if depth == 1 and seen_colon:
                last_end = i + 1
        elif depth == 1 and ch == ":":
            seen_colon = True
        elif depth == 1 and ch == ",":
            seen_colon = False
            last_end = i
        elif depth == 1 and seen_colon and not ch.isspace():
            # Bare literal (number, true, false, null); only trust it once a comma follows.
            continue

    return last_end
