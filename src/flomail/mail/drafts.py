"""Turn ``prepare_draft`` arguments into a draft the client can show."""

from __future__ import annotations

from typing import Any

from flomail.mail.models import Draft, EmailThread


def _split_addresses(value: Any) -> list[str]:
    if not value:
        return []
    if isinstance(value, list):
        return [str(v).strip() for v in value if str(v).strip()]
    return [part.strip() for part in str(value).split(",") if part.strip()]


def build_draft_from_tool_call(args: dict[str, Any], thread: EmailThread | None = None) -> Draft:
    """Build a draft; replies and forwards carry the threading headers of ``thread``."""
    draft_type = args.get("type") or "new"
    if draft_type not in ("reply", "forward", "new"):
        draft_type = "new"

    thread_id: str | None = None
    in_reply_to: str | None = None
    references: str | None = None

    if thread and thread.messages and draft_type in ("reply", "forward"):
        thread_id = thread.id
        references = " ".join(m.message_id for m in thread.messages if m.message_id) or None
        if draft_type == "reply":
            in_reply_to = thread.messages[-1].message_id

    return Draft(
        thread_id=thread_id,
        to=_split_addresses(args.get("to")),
        cc=_split_addresses(args.get("cc")),
        bcc=_split_addresses(args.get("bcc")),
        subject=args.get("subject") or "",
        body=args.get("body") or "",
        type=draft_type,
        in_reply_to=in_reply_to,
        references=references,
    )
