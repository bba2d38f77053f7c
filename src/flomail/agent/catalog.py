"""Static tool catalog.

Client tools have side effects the user confirms in the app (send, archive,
navigate), so the server only describes them to the model and hands the
calls back. Server tools are implemented in :mod:`flomail.tools`.
"""

from __future__ import annotations

from flomail.agent.tools import ToolKind, ToolRegistry, ToolSpec
from flomail.config import FloMailConfig
from flomail.mail.gmail import MailboxProvider
from flomail.tools.mailbox import SearchEmailsTool
from flomail.tools.snooze import SnoozeEmailTool, UnsnoozeEmailTool
from flomail.tools.web import BrowseUrlTool, WebSearchTool

SERVER_TOOL_NAMES = frozenset(
    {"web_search", "browse_url", "search_emails", "snooze_email", "unsnooze_email"}
)

_NO_PARAMS = {"type": "object", "properties": {}, "required": []}

CLIENT_TOOL_SPECS: tuple[ToolSpec, ...] = (
    ToolSpec(
        name="prepare_draft",
        description=(
            "Prepare an email draft for the user to review before sending. Call this when the "
            "user wants to draft, compose, write, reply, or forward an email. This will show the "
            "draft in a UI card with recipient, subject, and body for user confirmation."
        ),
        parameters={
            "type": "object",
            "properties": {
                "type": {
                    "type": "string",
                    "description": (
                        'Type of email: "reply" (responding to current thread), "forward" '
                        '(forwarding current thread), or "new" (composing a new email)'
                    ),
                    "enum": ["reply", "forward", "new"],
                },
                "to": {
                    "type": "string",
                    "description": "Comma-separated email addresses of recipients",
                },
                "cc": {
                    "type": "string",
                    "description": "Comma-separated email addresses for CC (optional)",
                },
                "bcc": {
                    "type": "string",
                    "description": "Comma-separated email addresses for BCC (optional)",
                },
                "subject": {
                    "type": "string",
                    "description": (
                        'Email subject line. For replies, prefix with "Re: " if not already. '
                        'For forwards, prefix with "Fwd: "'
                    ),
                },
                "body": {"type": "string", "description": "The full email body text"},
            },
            "required": ["type", "to", "subject", "body"],
        },
        kind=ToolKind.CLIENT,
    ),
    ToolSpec(
        name="send_email",
        description="Send the prepared email draft. Only call this after user has confirmed they want to send.",
        parameters={
            "type": "object",
            "properties": {
                "confirm": {
                    "type": "string",
                    "description": 'Must be "confirmed" to actually send',
                    "enum": ["confirmed"],
                },
            },
            "required": ["confirm"],
        },
        kind=ToolKind.CLIENT,
    ),
    ToolSpec(
        name="archive_email",
        description=(
            "Archive the current email thread, removing it from the inbox. Call when user wants "
            "to archive, is done with, or wants to move on from the current email."
        ),
        parameters={
            "type": "object",
            "properties": {
                "reason": {"type": "string", "description": "Brief reason for archiving (for logging)"},
            },
            "required": [],
        },
        kind=ToolKind.CLIENT,
    ),
    ToolSpec(
        name="move_to_inbox",
        description="Move an archived email thread back to the inbox. Only use when viewing an archived email.",
        parameters=_NO_PARAMS,
        kind=ToolKind.CLIENT,
    ),
    ToolSpec(
        name="star_email",
        description="Star the current email thread to flag it as important.",
        parameters=_NO_PARAMS,
        kind=ToolKind.CLIENT,
    ),
    ToolSpec(
        name="unstar_email",
        description="Remove the star from the current email thread.",
        parameters=_NO_PARAMS,
        kind=ToolKind.CLIENT,
    ),
    ToolSpec(
        name="go_to_next_email",
        description=(
            'Navigate to the next email in the inbox. Call when user says "next", "next email", '
            '"move on", or similar.'
        ),
        parameters=_NO_PARAMS,
        kind=ToolKind.CLIENT,
    ),
    ToolSpec(
        name="go_to_inbox",
        description="Return to the inbox view. Call when user wants to see their inbox, go back, or browse emails.",
        parameters=_NO_PARAMS,
        kind=ToolKind.CLIENT,
    ),
)


def build_registry(config: FloMailConfig, mailbox: MailboxProvider) -> ToolRegistry:
    """Construct the process-wide tool registry."""
    server_tools = [
        WebSearchTool(config.search),
        BrowseUrlTool(config.search),
        SearchEmailsTool(config.mailbox, mailbox),
        SnoozeEmailTool(mailbox),
        UnsnoozeEmailTool(mailbox),
    ]
    missing = SERVER_TOOL_NAMES - {tool.name for tool in server_tools}
    if missing:
        raise ValueError(f"Server tools without an implementation: {sorted(missing)}")
    return ToolRegistry(server_tools, CLIENT_TOOL_SPECS)
