"""
Streaming-specific dataclasses for the SSE pipeline and the request lifecycle.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class SSEEventKind(Enum):
    """Interpretation of one complete SSE frame."""
    DATA = "data"
    SENTINEL = "sentinel"
    IGNORABLE = "ignorable"


@dataclass(frozen=True)
class SSEEvent:
    """Decoded SSE frame."""
    kind: SSEEventKind
    payload: str = ""
    event: str | None = None
    id: str | None = None


class StreamEventType(Enum):
    """Lifecycle events produced for one submitted query."""
    START = "start"
    CHUNK = "chunk"
    ERROR = "error"
    DONE = "done"


@dataclass(frozen=True)
class StreamEvent:
    """Lifecycle event tagged with the session that produced it."""
    session_id: int
    type: StreamEventType
    text: str = ""
    error: str | None = None

    @property
    def is_terminal(self) -> bool:
        return self.type in (StreamEventType.ERROR, StreamEventType.DONE)


class StreamPhase(Enum):
    """Controller state machine phases."""
    IDLE = "idle"
    REQUESTING = "requesting"
    STREAMING = "streaming"
    COMPLETED = "completed"
    FAILED = "failed"
