"""
Progress Channel and its line-oriented wire encoding.

``ProgressChannel`` is a single-producer, single-consumer, append-only
stream of ProgressEvents. The consumer iterates it with ``async for``
while the producer is still emitting; iteration ends when the producer
calls ``close()``.

Wire format, one record per line:

    PROGRESS:{"type":"processing","topic_id":"...","message":"..."}
    ERROR:{"type":"error","message":"..."}
    CANCELLED:{"type":"cancelled","message":"Process cancelled"}
    DATA:{"type":"result","data":"<base64>","filename":"...","mime_type":"..."}
    GOOGLE_SHEETS:{"type":"sheet","url":"..."}

A consumer demultiplexes on the prefix before the first colon.
"""

import asyncio
import json
from typing import AsyncIterator, Iterable, Optional

from pydantic import ValidationError

from src.pipeline.state import ProgressEvent, progress_event_adapter
from src.utils.line_buffer import LineBuffer
from src.utils.logger import get_logger

logger = get_logger(__name__)


TAG_PROGRESS = "PROGRESS"
TAG_ERROR = "ERROR"
TAG_CANCELLED = "CANCELLED"
TAG_DATA = "DATA"
TAG_GOOGLE_SHEETS = "GOOGLE_SHEETS"

EVENT_TAGS = {
    "batch_started": TAG_PROGRESS,
    "processing": TAG_PROGRESS,
    "completed": TAG_PROGRESS,
    "info": TAG_PROGRESS,
    "error": TAG_ERROR,
    "cancelled": TAG_CANCELLED,
    "result": TAG_DATA,
    "sheet": TAG_GOOGLE_SHEETS,
}

TERMINAL_TYPES = {"error", "cancelled", "result", "sheet"}


class ChannelClosedError(RuntimeError):
    """Raised when emitting on a closed channel."""


class FrameDecodeError(ValueError):
    """Raised for a wire record that cannot be decoded."""


# =============================================================================
# Codec
# =============================================================================


def encode_event(event: ProgressEvent) -> str:
    """Encode one event as a tagged line, newline included."""
    payload = event.model_dump()
    payload["message"] = event.message
    return f"{EVENT_TAGS[event.type]}:{json.dumps(payload, ensure_ascii=False, separators=(',', ':'))}\n"


def decode_frame(line: str) -> ProgressEvent:
    """
    Decode one tagged line back into an event.

    Raises:
        FrameDecodeError: On an unknown tag, bad JSON or a tag/type mismatch
    """
    tag, sep, body = line.rstrip("\r\n").partition(":")
    if not sep or tag not in EVENT_TAGS.values():
        raise FrameDecodeError(f"Unknown frame tag: {line[:40]!r}")
    try:
        event = progress_event_adapter.validate_json(body)
    except ValidationError as e:
        raise FrameDecodeError(f"Invalid {tag} frame: {e}") from e
    if EVENT_TAGS[event.type] != tag:
        raise FrameDecodeError(f"Frame tag {tag} does not match event type {event.type}")
    return event


async def iter_events(chunks: AsyncIterator[str | bytes]) -> AsyncIterator[ProgressEvent]:
    """
    Decode a chunked byte/text stream into events.

    Lines are reassembled across chunk boundaries; blank lines are skipped.
    """
    buffer = LineBuffer()
    async for chunk in chunks:
        for line in buffer.feed(chunk):
            if line.strip():
                yield decode_frame(line)
    tail = buffer.flush()
    if tail.strip():
        yield decode_frame(tail)


def decode_lines(lines: Iterable[str]) -> list[ProgressEvent]:
    """Decode already split lines (blank lines skipped)."""
    return [decode_frame(line) for line in lines if line.strip()]


# =============================================================================
# Channel
# =============================================================================


class ProgressChannel:
    """
    Ordered, append-only event stream with explicit close.

    Example:
        channel = ProgressChannel()
        producer = asyncio.create_task(job.run(..., channel))
        async for event in channel:
            print(event.message)
    """

    _CLOSED = object()

    def __init__(self):
        self._queue: asyncio.Queue = asyncio.Queue()
        self._history: list[ProgressEvent] = []
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def history(self) -> list[ProgressEvent]:
        """Every event emitted so far, in emission order."""
        return list(self._history)

    def emit(self, event: ProgressEvent) -> None:
        """Append an event. Usable directly as an ``on_progress`` callback."""
        if self._closed:
            raise ChannelClosedError(f"Cannot emit {event.type} on a closed channel")
        self._history.append(event)
        self._queue.put_nowait(event)
        logger.debug(f"event: {event.message}")

    def close(self) -> None:
        """Mark end of stream. Idempotent."""
        if self._closed:
            return
        self._closed = True
        self._queue.put_nowait(self._CLOSED)

    def terminal_event(self) -> Optional[ProgressEvent]:
        """The last delivery, error or cancellation event, if any."""
        for event in reversed(self._history):
            if event.type in TERMINAL_TYPES:
                return event
        return None

    def __aiter__(self) -> AsyncIterator[ProgressEvent]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[ProgressEvent]:
        while True:
            item = await self._queue.get()
            if item is self._CLOSED:
                return
            yield item

    async def encoded(self) -> AsyncIterator[bytes]:
        """The channel as wire-encoded UTF-8 lines, for streaming responses."""
        async for event in self:
            yield encode_event(event).encode("utf-8")
