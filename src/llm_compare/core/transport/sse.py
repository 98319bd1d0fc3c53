"""
Server-sent events framing.

`encode_event` turns one `StreamEvent` into one ``text/event-stream`` frame.
Frames are self-contained, so each one can be flushed to the socket as soon
as it is produced. `SSEDecoder` is the incremental inverse used by both the
backend connectors (to read upstream streams) and the client.
"""

from __future__ import annotations

import contextlib
import json
from collections.abc import AsyncGenerator, AsyncIterator
from dataclasses import dataclass

from llm_compare.core.domain.compare import StreamEvent

SSE_MEDIA_TYPE = "text/event-stream"

SSE_HEADERS: dict[str, str] = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}

_DATA_PREFIX = "data:"


@dataclass(frozen=True)
class ServerSentEvent:
    """A single dispatched SSE record."""

    data: str
    event: str | None = None
    id: str | None = None


class SSEDecoder:
    """Incremental ``text/event-stream`` decoder.

    Text may be fed in arbitrary pieces; a record is only dispatched once its
    terminating blank line has been seen. CRLF, CR and LF line endings are all
    accepted, including a CRLF split across two reads.
    """

    def __init__(self) -> None:
        self._buffer = ""
        self._data: list[str] = []
        self._event: str | None = None
        self._id: str | None = None

    def feed(self, text: str) -> list[ServerSentEvent]:
        self._buffer += text
        # A trailing CR may be the first half of a CRLF
        held = ""
        if self._buffer.endswith("\r"):
            held = "\r"
            self._buffer = self._buffer[:-1]
        normalized = self._buffer.replace("\r\n", "\n").replace("\r", "\n")
        *lines, remainder = normalized.split("\n")
        self._buffer = remainder + held

        events: list[ServerSentEvent] = []
        for line in lines:
            event = self._process_line(line)
            if event is not None:
                events.append(event)
        return events

    def flush(self) -> list[ServerSentEvent]:
        """Dispatch whatever is left once the underlying stream has ended.

        Upstreams that omit the final blank line still get their last record
        delivered.
        """
        events: list[ServerSentEvent] = []
        remainder = self._buffer.rstrip("\r")
        self._buffer = ""
        if remainder:
            event = self._process_line(remainder)
            if event is not None:
                events.append(event)
        event = self._dispatch()
        if event is not None:
            events.append(event)
        return events

    def _process_line(self, line: str) -> ServerSentEvent | None:
        if not line:
            return self._dispatch()
        if line.startswith(":"):
            return None

        field, sep, value = line.partition(":")
        if sep and value.startswith(" "):
            value = value[1:]

        if field == "data":
            self._data.append(value)
        elif field == "event":
            self._event = value
        elif field == "id":
            self._id = value
        # "retry" and unknown fields are ignored
        return None

    def _dispatch(self) -> ServerSentEvent | None:
        if not self._data:
            self._event = None
            return None
        event = ServerSentEvent(
            data="\n".join(self._data), event=self._event, id=self._id
        )
        self._data = []
        self._event = None
        return event


async def iter_sse_events(
    chunks: AsyncIterator[str],
) -> AsyncGenerator[ServerSentEvent, None]:
    """Decode an async stream of text pieces into SSE records."""
    decoder = SSEDecoder()
    async for chunk in chunks:
        for event in decoder.feed(chunk):
            yield event
    for event in decoder.flush():
        yield event


def encode_event(event: StreamEvent) -> bytes:
    """Encode one event as a single ``data:`` frame terminated by a blank line."""
    payload = json.dumps(event.to_wire(), ensure_ascii=False, separators=(",", ":"))
    return f"{_DATA_PREFIX} {payload}\n\n".encode()


def decode_event(data: str | bytes) -> StreamEvent:
    """Decode a frame produced by `encode_event`, or just its data payload."""
    text = data.decode("utf-8") if isinstance(data, bytes) else data
    text = text.strip()
    if text.startswith(_DATA_PREFIX):
        text = text[len(_DATA_PREFIX) :].lstrip()
    return StreamEvent.model_validate_json(text)


async def encode_stream(
    events: AsyncGenerator[StreamEvent, None],
) -> AsyncGenerator[bytes, None]:
    """Encode a session's events frame by frame.

    The generator ends (and the transport ends the response) only once
    `events` is exhausted. Closing this generator closes `events` too, which
    is what tears down the producers when the client goes away.
    """
    async with contextlib.aclosing(events):
        async for event in events:
            yield encode_event(event)
