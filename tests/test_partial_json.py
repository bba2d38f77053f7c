from __future__ import annotations

from flomail.llm.partial_json import parse_arguments, preview_arguments


def test_preview_keeps_only_closed_members() -> None:
    assert preview_arguments('{"to": "a@b.com", "subject": "Hel') == {"to": "a@b.com"}
    assert preview_arguments('{"to": "a@b.com"') == {"to": "a@b.com"}


def test_preview_handles_nested_values_and_escapes() -> None:
    buffer = '{"to": ["a@b.com", "c@d.com"], "body": "say \\"hi\\"", "cc": ["x'

    assert preview_arguments(buffer) == {"to": ["a@b.com", "c@d.com"], "body": 'say "hi"'}


def test_preview_waits_for_bare_literals_to_finish() -> None:
    assert preview_arguments('{"max_results": 1') is None
    assert preview_arguments('{"max_results": 10, "q') == {"max_results": 10}


def test_preview_returns_none_when_nothing_usable() -> None:
    assert preview_arguments("") is None
    assert preview_arguments("   ") is None
    assert preview_arguments('{"to') is None
    assert preview_arguments('{"to": ') is None
    assert preview_arguments("[1, 2") is None
    assert preview_arguments("not json at all") is None


def test_preview_of_complete_object() -> None:
    assert preview_arguments('{"reason": "done"}') == {"reason": "done"}


def test_parse_arguments_is_strict_but_soft() -> None:
    assert parse_arguments('{"a": 1}') == {"a": 1}
    assert parse_arguments({"a": 1}) == {"a": 1}
    assert parse_arguments("") == {}
    assert parse_arguments(None) == {}
    assert parse_arguments('{"a": ') == {}
    assert parse_arguments("[1, 2]") == {}
