"""Server-Sent Events encoding for agent event streams."""

from __future__ import annotations

import asyncio
import json
from collections.abc import AsyncIterator
from types import TracebackType

import structlog
from fastapi.responses import StreamingResponse

from flomail.agent.events import StreamEvent

logger = structlog.get_logger()

SSE_HEADERS = {
    # exact value; media_type alone gets "; charset=utf-8" appended
    "Content-Type": "text/event-stream",
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def encode_event(event: StreamEvent) -> bytes:
    """One SSE frame: ``data: <json>`` followed by a blank line."""
    return f"data: {json.dumps(event.to_dict(), ensure_ascii=False)}\n\n".encode()


class EventStreamWriter:
    """Byte sink between the agent loop and the HTTP response.

    The producer writes events and the response body drains :meth:`frames`.
    Use it as an async context manager so :meth:`close` runs on every exit
    path; closing twice is a no-op. Once closed, or once the client has gone
    away, further writes are dropped.
    """

    def __init__(self) -> None:
        self._queue: asyncio.Queue[bytes | None] = asyncio.Queue()
        self._closed = False
        self._consumer_gone = False
        self.frames_written = 0
        self.frames_dropped = 0

    @property
    def closed(self) -> bool:
        return self._closed

    async def send(self, event: StreamEvent) -> bool:
        """Queue one event. Returns False if it was dropped."""
        if self._closed or self._consumer_gone:
            self.frames_dropped += 1
            logger.debug("sse.dropped", event_type=event.type, consumer_gone=self._consumer_gone)
            return False
        await self._queue.put(encode_event(event))
        self.frames_written += 1
        return True

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self._queue.put(None)
        logger.debug("sse.closed", written=self.frames_written, dropped=self.frames_dropped)

    async def __aenter__(self) -> EventStreamWriter:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.close()

    async def frames(self) -> AsyncIterator[bytes]:
        """Yield encoded frames until the writer is closed."""
        try:
            while True:
                frame = await self._queue.get()
                if frame is None:
                    return
                yield frame
        finally:
            if not self._closed:
                self._consumer_gone = True
                logger.info("sse.client_disconnected", written=self.frames_written)


def event_stream_response(writer: EventStreamWriter) -> StreamingResponse:
    return StreamingResponse(
        writer.frames(),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )
