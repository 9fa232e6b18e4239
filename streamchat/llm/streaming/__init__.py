"""
Streaming functionality for LLM clients.

- SSE framing and decoding
- Delta extraction
- Lifecycle event types
"""

from __future__ import annotations

from .extractor import ChatCompletionDeltaExtractor, DeltaExtractor
from .models import (
    SSEEvent,
    SSEEventKind,
    StreamEvent,
    StreamEventType,
    StreamPhase,
)
from .parser import (
    SENTINEL,
    FrameBuffer,
    StreamingParser,
    Utf8StreamDecoder,
    decode_frame,
)

__all__ = [
    "SENTINEL",
    "ChatCompletionDeltaExtractor",
    "DeltaExtractor",
    "FrameBuffer",
    "SSEEvent",
    "SSEEventKind",
    "StreamEvent",
    "StreamEventType",
    "StreamPhase",
    "StreamingParser",
    "Utf8StreamDecoder",
    "decode_frame",
]
