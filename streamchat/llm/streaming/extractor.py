"""
Text delta extraction from SSE data payloads.

Two outcomes are kept apart: a payload that is not JSON is an error
(``MalformedChunkError``), a JSON payload without usable text is skipped
(``None``). Providers with another streaming schema get their own
``DeltaExtractor`` implementation.
"""

from __future__ import annotations

import json
from typing import Protocol

import structlog
from pydantic import ValidationError

from ..exceptions import MalformedChunkError
from ..models import CompletionChunk

logger = structlog.get_logger(__name__)


class DeltaExtractor(Protocol):
    def extract(self, payload: str) -> str | None: ...


class ChatCompletionDeltaExtractor:
    """Reads ``choices[0].delta.content`` from OpenAI-style chunks."""

    def extract(self, payload: str) -> str | None:
        try:
            data = json.loads(payload)
        except json.JSONDecodeError as e:
            raise MalformedChunkError(
                f"Invalid JSON in stream chunk: {e}", payload=payload
            ) from e

        if not isinstance(data, dict):
            logger.debug("Skipping non-object payload", payload_type=type(data).__name__)
            return None

        try:
            return CompletionChunk.model_validate(data).text
        except ValidationError as e:
            logger.debug("Skipping payload with unexpected shape", errors=e.error_count())
            return None
