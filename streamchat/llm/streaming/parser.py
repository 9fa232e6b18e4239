"""
Incremental SSE parsing for streamed completion bodies.

Bytes arrive in transport-sized chunks that need not line up with code
points, lines, frames or JSON tokens. Each stage below keeps just enough
state to resume where the previous chunk stopped:

- ``Utf8StreamDecoder`` buffers partial UTF-8 sequences and drops a BOM.
- ``FrameBuffer`` buffers the trailing incomplete frame.
- ``decode_frame`` turns one complete frame into an ``SSEEvent``.

``StreamingParser`` chains the three for a single stream.
"""

from __future__ import annotations

import codecs

import structlog

from ..exceptions import MalformedChunkError
from .models import SSEEvent, SSEEventKind

SENTINEL = "[DONE]"
FRAME_DELIMITER = "\n\n"
MAX_PENDING_CHARS = 1 << 20

logger = structlog.get_logger(__name__)


class Utf8StreamDecoder:
    """
    UTF-8 decoder that tolerates code points split across chunks.

    One leading byte order mark is dropped, even when its bytes arrive
    in separate chunks.
    """

    def __init__(self, errors: str = "replace"):
        self._decoder = codecs.getincrementaldecoder("utf-8-sig")(errors=errors)

    def decode(self, data: bytes) -> str:
        return self._decoder.decode(data)

    def flush(self) -> str:
        """Decode whatever is still buffered at end of body."""
        return self._decoder.decode(b"", final=True)


class FrameBuffer:
    """
    Accumulates decoded text and splits it into complete SSE frames.

    A frame is the text before a blank line. ``\\n``, ``\\r\\n`` and a bare
    ``\\r`` all count as line terminators. After every ``ingest`` call the
    pending buffer holds at most one incomplete trailing frame, already
    normalized to ``\\n`` line endings.
    """

    def __init__(self, max_pending: int = MAX_PENDING_CHARS) -> None:
        self.max_pending = max_pending
        self._parts: list[str] = []
        self._size = 0
        self._held_cr = False

    @property
    def pending(self) -> str:
        return "".join(self._parts) + ("\r" if self._held_cr else "")

    def ingest(self, text: str, final: bool = False) -> list[str]:
        """
        Append ``text`` and return every frame it completed, in order.

        With ``final`` a held-back trailing CR counts as a line terminator.

        Raises:
            MalformedChunkError: The incomplete frame outgrew ``max_pending``.
        """
        if not text and not (final and self._held_cr):
            return []

        if self._held_cr:
            text = "\r" + text
            self._held_cr = False
        # A CR at the very end may be the first half of a split CRLF.
        if text.endswith("\r") and not final:
            text = text[:-1]
            self._held_cr = True
        text = text.replace("\r\n", "\n").replace("\r", "\n")
        if not text:
            return []

        # Only the join point and the new text can hold a new delimiter.
        tail = self._parts[-1][-1:] if self._parts else ""
        if FRAME_DELIMITER not in tail + text:
            self._parts.append(text)
            self._size += len(text)
            self._check_size()
            return []

        *frames, remainder = "".join(self._parts + [text]).split(FRAME_DELIMITER)
        self._parts = [remainder] if remainder else []
        self._size = len(remainder)
        self._check_size()
        return frames

    def close(self) -> int:
        """Discard the unterminated residue; return its length."""
        dropped = self._size + (1 if self._held_cr else 0)
        self._parts = []
        self._size = 0
        self._held_cr = False
        return dropped

    def _check_size(self) -> None:
        if self._size > self.max_pending:
            preview = self._parts[0][:80] if self._parts else ""
            raise MalformedChunkError(
                f"SSE frame exceeds {self.max_pending} characters",
                payload=preview,
            )


def decode_frame(frame: str) -> SSEEvent:
    """
    Interpret one complete frame as an SSE event.

    Comment lines and unknown fields are skipped; ``data`` lines are joined
    with newlines. Never raises: anything unexpected becomes ignorable.
    """
    data_lines: list[str] = []
    event_name: str | None = None
    event_id: str | None = None

    for line in frame.split("\n"):
        if not line or line.startswith(":"):
            continue

        field, sep, value = line.partition(":")
        if sep and value.startswith(" "):
            value = value[1:]

        if field == "data":
            data_lines.append(value)
        elif field == "event":
            event_name = value
        elif field == "id":
            event_id = value

    if not data_lines:
        return SSEEvent(kind=SSEEventKind.IGNORABLE, event=event_name, id=event_id)

    payload = "\n".join(data_lines)
    if payload.strip() == SENTINEL:
        kind = SSEEventKind.SENTINEL
    elif not payload.strip():
        kind = SSEEventKind.IGNORABLE
    else:
        kind = SSEEventKind.DATA

    return SSEEvent(kind=kind, payload=payload, event=event_name, id=event_id)


class StreamingParser:
    """Bytes-to-events parser owned by exactly one stream."""

    def __init__(self) -> None:
        self._decoder = Utf8StreamDecoder()
        self._frames = FrameBuffer()
        self.stats = {
            'total_frames': 0,
            'data_frames': 0,
            'ignored_frames': 0,
            'dropped_chars': 0,
        }

    def feed(self, data: bytes) -> list[SSEEvent]:
        """Decode one raw chunk and return the events it completed."""
        return self._events(self._frames.ingest(self._decoder.decode(data)))

    def close(self) -> list[SSEEvent]:
        """Finish the stream; a trailing partial frame is dropped."""
        events = self._events(self._frames.ingest(self._decoder.flush(), final=True))
        dropped = self._frames.close()
        if dropped:
            self.stats['dropped_chars'] += dropped
            logger.debug("Discarded unterminated trailing frame", chars=dropped)
        return events

    def _events(self, frames: list[str]) -> list[SSEEvent]:
        events = []
        for frame in frames:
            event = decode_frame(frame)
            self.stats['total_frames'] += 1
            if event.kind is SSEEventKind.IGNORABLE:
                self.stats['ignored_frames'] += 1
                continue
            if event.kind is SSEEventKind.DATA:
                self.stats['data_frames'] += 1
            events.append(event)
        return events

    def get_stats(self) -> dict[str, int]:
        """Get parsing statistics for monitoring."""
        return self.stats.copy()
