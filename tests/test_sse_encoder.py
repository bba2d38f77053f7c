from __future__ import annotations

import json

import pytest

from flomail.agent import events
from flomail.api.sse import EventStreamWriter, encode_event


def test_frame_is_data_line_plus_blank_line() -> None:
    frame = encode_event(events.text("Hé", "Hé"))

    assert frame.startswith(b"data: ")
    assert frame.endswith(b"\n\n")
    assert json.loads(frame[len(b"data: ") : -2]) == {
        "type": "text",
        "data": {"content": "Hé", "fullContent": "Hé"},
    }
    assert "Hé".encode() in frame


def test_terminal_events() -> None:
    assert events.done(1, [], "", "end_turn").terminal
    assert events.error("boom").terminal
    assert not events.status("Thinking...").terminal


@pytest.mark.asyncio
async def test_frames_drain_until_close() -> None:
    writer = EventStreamWriter()
    async with writer:
        assert await writer.send(events.status("one"))
        assert await writer.send(events.status("two"))

    frames = [f async for f in writer.frames()]

    assert len(frames) == 2
    assert b'"one"' in frames[0]
    assert writer.closed


@pytest.mark.asyncio
async def test_close_is_idempotent_and_later_writes_drop() -> None:
    writer = EventStreamWriter()
    await writer.close()
    await writer.close()

    assert not await writer.send(events.status("late"))
    assert writer.frames_dropped == 1
    assert [f async for f in writer.frames()] == []


@pytest.mark.asyncio
async def test_writes_after_consumer_leaves_are_dropped() -> None:
    writer = EventStreamWriter()
    await writer.send(events.status("first"))

    frames = writer.frames()
    assert b"first" in await frames.__anext__()
    await frames.aclose()

    assert not await writer.send(events.status("nobody listening"))
    assert writer.frames_written == 1
    await writer.close()
