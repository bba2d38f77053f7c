from __future__ import annotations

from flomail.agent.prompt import build_email_context, draft_context_turns
from flomail.mail.drafts import build_draft_from_tool_call
from flomail.mail.models import Draft, EmailThread


def _thread() -> EmailThread:
    return EmailThread.model_validate(
        {
            "id": "thr-1",
            "subject": "Lunch?",
            "messages": [
                {
                    "id": "m1",
                    "messageId": "<m1@mail>",
                    "subject": "Lunch?",
                    "from": {"name": "Ana", "email": "ana@example.com"},
                    "date": "Mon, 3 Jun 2024 10:00:00 +0000",
                    "body": "Want to grab lunch on Friday?",
                },
                {
                    "id": "m2",
                    "messageId": "<m2@mail>",
                    "subject": "Re: Lunch?",
                    "from": {"email": "me@example.com"},
                    "date": "Mon, 3 Jun 2024 11:00:00 +0000",
                    "body": "Maybe, which place?",
                },
            ],
        }
    )


def test_reply_carries_threading_headers() -> None:
    draft = build_draft_from_tool_call(
        {"type": "reply", "to": "ana@example.com", "body": "Friday works."}, _thread()
    )

    assert draft.thread_id == "thr-1"
    assert draft.in_reply_to == "<m2@mail>"
    assert draft.references == "<m1@mail> <m2@mail>"
    assert draft.to == ["ana@example.com"]


def test_new_draft_ignores_thread_and_splits_addresses() -> None:
    draft = build_draft_from_tool_call(
        {"type": "new", "to": "a@b.com, , c@d.com", "cc": ["x@y.com"]}, _thread()
    )

    assert draft.thread_id is None
    assert draft.in_reply_to is None
    assert draft.to == ["a@b.com", "c@d.com"]
    assert draft.cc == ["x@y.com"]


def test_unknown_draft_type_becomes_new() -> None:
    assert build_draft_from_tool_call({"type": "memo"}).type == "new"


def test_draft_serializes_with_camel_case_keys() -> None:
    dumped = build_draft_from_tool_call({"type": "reply"}, _thread()).model_dump(by_alias=True)

    assert "inReplyTo" in dumped
    assert "threadId" in dumped


def test_draft_context_is_a_user_and_assistant_pair() -> None:
    turns = draft_context_turns(Draft(to=["a@b.com"], subject="Hi", body="Hello there", type="new"))

    assert [t.role for t in turns] == ["user", "assistant"]
    assert "Hello there" in turns[0].content
    assert "a@b.com" in turns[0].content


def test_email_context_mentions_senders_and_folder() -> None:
    context = build_email_context(_thread(), "inbox")

    assert "Ana" in context
    assert "Want to grab lunch on Friday?" in context
