"""System prompt and per-request context for the FloMail agent."""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime

from flomail.llm.types import ChatTurn, ToolCall
from flomail.mail.models import Draft, EmailThread

FLOMAIL_AGENT_PROMPT = """You are FloMail, a voice-first email assistant agent. You help users manage their email through natural conversation.

## TOOLS YOU RUN YOURSELF (results come back to you):
- search_emails: Search the mailbox with Gmail query syntax and read matching threads. Use it for questions about other or older emails.
- web_search: Look up current information on the web.
- browse_url: Read a web page, e.g. a link from the email.
- snooze_email: Snooze the current thread (later_today, tomorrow, this_weekend, next_week, in_30_minutes, in_1_hour, in_3_hours, or custom with a date).
- unsnooze_email: Bring a snoozed thread back to the inbox.

## TOOLS THE APP RUNS (use for ACTIONS only):
- prepare_draft: Call when user wants to draft/write/reply/forward. ALWAYS include:
  * type: "reply" (responding to current email), "forward" (forwarding to someone), or "new" (new email)
  * to: recipient email(s)
  * subject: Use "Re: [subject]" for replies, "Fwd: [subject]" for forwards
  * body: The email content
- send_email: Call when user confirms they want to send.
- archive_email: Remove from inbox. ONLY works if email is currently in inbox. If viewing archived email, tell user it's already archived.
- move_to_inbox: Move archived email back to inbox. ONLY use when viewing archived email.
- star_email: Star/flag the email for importance.
- unstar_email: Remove star from email.
- go_to_next_email: Call when user says "next", "next email", etc.
- go_to_inbox: Call when user wants to go back to inbox.

## DRAFT TYPE - CRITICAL:
**DEFAULT IS REPLY.** When viewing an email thread, assume user wants to reply unless they explicitly say otherwise.
- Use type="reply" for: "reply", "respond", "answer", "write back", "tell them", "let them know", "draft", "write"
- Use type="forward" ONLY when user explicitly says "forward" or "send this to someone else"
- Use type="new" ONLY when user explicitly asks for a new email, not a response to the current thread

## FOLDER AWARENESS:
The email context tells you which folder the email is from (Inbox, Sent, Starred, All Mail, or Archive).
- If from Archive: cannot archive again, but can move_to_inbox
- If from Inbox: can archive
- If starred: can unstar. If not starred: can star.

## DIRECT RESPONSES (no tools, just answer):
- Summaries ("what is this about", "summarize", "tldr")
- Questions about the current email
- Clarifications and suggestions

## IMPORTANT RULES:
1. For drafts: ALWAYS call prepare_draft with a complete email (to, subject, body)
2. After drafting: ask "Ready to send, or would you like changes?"
3. Be concise but complete. Your replies may be read aloud.
4. Check the folder before suggesting actions.

Match the conversation's tone. Be helpful and efficient."""

FOLDER_NAMES = {
    "inbox": "Inbox",
    "sent": "Sent",
    "starred": "Starred",
    "all": "All Mail",
    "archive": "Archive",
}

# Said on behalf of the model when it calls tools without any text.
TOOL_FILLER_TEXT = {
    "prepare_draft": "Here's a draft for you:",
    "send_email": "Sending...",
    "archive_email": "Done! Archived.",
    "move_to_inbox": "Moving it back to your inbox...",
    "star_email": "Starred.",
    "unstar_email": "Removed the star.",
    "go_to_next_email": "Moving to the next email...",
    "go_to_inbox": "Back to inbox...",
    "search_emails": "Let me look through your email...",
    "web_search": "Let me look that up...",
    "browse_url": "Let me read that page...",
    "snooze_email": "Snoozing it...",
    "unsnooze_email": "Bringing it back...",
}
DEFAULT_FILLER = "Working on it..."

FALLBACK_REPLY = (
    "I'm here to help! You can ask me to summarize this email, draft a reply, "
    "archive it, or move to the next email."
)


def filler_for(calls: Sequence[ToolCall]) -> str:
    if not calls:
        return ""
    return TOOL_FILLER_TEXT.get(calls[0].name, DEFAULT_FILLER)


def _format_date(value: str) -> str:
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00")).strftime("%b %d, %Y %I:%M %p")
    except ValueError:
        return value


def build_email_context(thread: EmailThread, folder: str = "inbox") -> str:
    """Describe the thread on screen, with hints about which actions apply."""
    messages = []
    for i, msg in enumerate(thread.messages, start=1):
        sender = msg.from_.name or msg.from_.email
        messages.append(
            f"[{i}] From: {sender} <{msg.from_.email}>\n"
            f"To: {', '.join(t.email for t in msg.to)}\n"
            f"Date: {_format_date(msg.date)}\n"
            f"Subject: {msg.subject}\n\n"
            f"{msg.body}"
        )

    folder_name = FOLDER_NAMES.get(folder, folder)
    participants = ", ".join(f"{p.name or 'Unknown'} <{p.email}>" for p in thread.participants)

    hints = [
        "• Has INBOX label - can be archived."
        if "INBOX" in thread.labels
        else "• No INBOX label - archive will have no effect, but move_to_inbox will work.",
        "• Is STARRED - star_email will have no effect, but unstar_email will work."
        if "STARRED" in thread.labels
        else "• Not starred - can be starred.",
    ]
    if folder == "sent":
        hints.append(
            "• This is a SENT email. If user wants to \"reply\", they mean follow-up to the "
            "original recipients, not themselves."
        )

    return (
        "<current_email_thread>\n"
        f"Thread ID: {thread.id}\n"
        f"Folder: {folder_name}\n"
        f"Labels: {', '.join(thread.labels) or 'None'}\n"
        f"Subject: {thread.subject}\n"
        f"Participants: {participants}\n\n"
        + "\n\n---\n\n".join(messages)
        + "\n</current_email_thread>\n\n"
        f'Note: This email is currently in the "{folder_name}" folder.\n'
        + "\n".join(hints)
    )


def build_system_prompt(thread: EmailThread | None = None, folder: str = "inbox") -> str:
    if thread is None:
        return FLOMAIL_AGENT_PROMPT
    return f"{FLOMAIL_AGENT_PROMPT}\n\n{build_email_context(thread, folder)}"


def draft_context_turns(draft: Draft | None) -> list[ChatTurn]:
    """Synthetic turns that put an in-progress draft in front of the model."""
    if draft is None:
        return []
    lines = [
        "[Context: I have a draft in progress. Edit this draft if I ask for changes.]",
        f"Type: {draft.type}",
        f"To: {', '.join(draft.to) or '(none)'}",
    ]
    if draft.cc:
        lines.append(f"Cc: {', '.join(draft.cc)}")
    if draft.bcc:
        lines.append(f"Bcc: {', '.join(draft.bcc)}")
    lines.extend([f"Subject: {draft.subject}", "", draft.body])
    return [
        ChatTurn(role="user", content="\n".join(lines)),
        ChatTurn(role="assistant", content="Got it, I have your draft in front of me."),
    ]
