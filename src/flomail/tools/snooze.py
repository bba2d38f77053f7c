"""Snooze and unsnooze the thread the user is looking at."""

from __future__ import annotations

from datetime import datetime
from typing import Any

import structlog

from flomail.agent.tools import Tool, ToolContext, ToolResult
from flomail.mail.gmail import MailboxError, MailboxProvider
from flomail.mail.snooze import SNOOZE_OPTIONS, calculate_snooze_until

logger = structlog.get_logger()

INBOX_LABEL = "INBOX"


def _resolve_thread_id(context: ToolContext, thread_id: str | None) -> str | None:
    if thread_id:
        return thread_id
    return context.thread.id if context.thread else None


class SnoozeEmailTool(Tool):
    def __init__(self, mailbox: MailboxProvider) -> None:
        self._mailbox = mailbox

    @property
    def name(self) -> str:
        return "snooze_email"

    @property
    def description(self) -> str:
        return (
            "Snooze the current email thread so it leaves the inbox and comes back later. "
            "Use when the user says 'remind me later', 'snooze this', 'deal with it tomorrow'."
        )

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "snooze_until": {
                    "type": "string",
                    "description": "When the thread should come back",
                    "enum": list(SNOOZE_OPTIONS),
                },
                "custom_date": {
                    "type": "string",
                    "description": "ISO 8601 date-time, required when snooze_until is 'custom'",
                },
                "thread_id": {
                    "type": "string",
                    "description": "Thread to snooze (defaults to the current thread)",
                },
            },
            "required": ["snooze_until"],
        }

    async def execute(
        self,
        context: ToolContext,
        snooze_until: str = "",
        custom_date: str | None = None,
        thread_id: str | None = None,
    ) -> ToolResult:
        target = _resolve_thread_id(context, thread_id)
        if not target:
            return ToolResult("Error: no email thread to snooze.", success=False)
        if not context.access_token:
            return ToolResult("Error: snoozing needs the user's mail access token.", success=False)

        try:
            custom = datetime.fromisoformat(custom_date) if custom_date else None
            wake_at = calculate_snooze_until(snooze_until, custom)
        except ValueError as e:
            return ToolResult(f"Error: {e}", success=False)

        try:
            await self._mailbox.modify_labels(context.access_token, target, remove=[INBOX_LABEL])
        except MailboxError as e:
            return ToolResult(f"Error: failed to snooze thread: {e}", success=False)

        logger.info("snooze.applied", thread_id=target, option=snooze_until, until=wake_at.isoformat())
        return ToolResult(
            f"Snoozed thread {target} until {wake_at:%A, %B %d at %I:%M %p} "
            f"({wake_at.isoformat()}).",
            success=True,
        )


class UnsnoozeEmailTool(Tool):
    def __init__(self, mailbox: MailboxProvider) -> None:
        self._mailbox = mailbox

    @property
    def name(self) -> str:
        return "unsnooze_email"

    @property
    def description(self) -> str:
        return "Bring a snoozed email thread back to the inbox right away."

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "thread_id": {
                    "type": "string",
                    "description": "Thread to unsnooze (defaults to the current thread)",
                },
            },
            "required": [],
        }

    async def execute(self, context: ToolContext, thread_id: str | None = None) -> ToolResult:
        target = _resolve_thread_id(context, thread_id)
        if not target:
            return ToolResult("Error: no email thread to unsnooze.", success=False)
        if not context.access_token:
            return ToolResult("Error: unsnoozing needs the user's mail access token.", success=False)

        try:
            await self._mailbox.modify_labels(context.access_token, target, add=[INBOX_LABEL])
        except MailboxError as e:
            return ToolResult(f"Error: failed to unsnooze thread: {e}", success=False)

        logger.info("snooze.removed", thread_id=target)
        return ToolResult(f"Unsnoozed thread {target}; it is back in the inbox.", success=True)
