"""
Streamed chat completion integration.

This package provides:
- Typed request and payload models
- Incremental SSE parsing and delta extraction
- A streaming HTTP client and a single-flight request controller

The client and controller live in ``streamchat.llm.client`` and
``streamchat.llm.controller``.
"""

from __future__ import annotations

from .exceptions import (
    LLMError,
    MalformedChunkError,
    MissingBodyError,
    ResponseStatusError,
    StreamingError,
)
from .models import (
    ChatMessage,
    ChoiceDelta,
    CompletionChunk,
    MessageRole,
    StreamChoice,
    StreamRequest,
)

__all__ = [
    "ChatMessage",
    "ChoiceDelta",
    "CompletionChunk",
    "LLMError",
    "MalformedChunkError",
    "MessageRole",
    "MissingBodyError",
    "ResponseStatusError",
    "StreamChoice",
    "StreamRequest",
    "StreamingError",
]
