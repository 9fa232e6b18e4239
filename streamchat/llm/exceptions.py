"""
Error handling for streamed completions.

Only transport-level and payload-decoding failures are errors; unknown SSE
frames and deltas without text are absorbed by the parser and extractor.
- Transport failures (network, timeouts)
- Non-success HTTP status
- Responses without a readable body
- Malformed JSON inside a data frame
"""

from __future__ import annotations


class LLMError(Exception):
    """Base LLM error with request context."""

    def __init__(
        self,
        message: str,
        model: str | None = None,
        status_code: int | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.model = model
        self.status_code = status_code


class StreamingError(LLMError):
    """Transport failure while issuing the request or reading the body."""
    pass


class ResponseStatusError(LLMError):
    """The endpoint answered with a non-success status."""

    def __init__(self, status_code: int, model: str | None = None):
        super().__init__(
            f"response not ok: {status_code}",
            model=model,
            status_code=status_code,
        )


class MissingBodyError(LLMError):
    """The response carries no body that can be read as a byte stream."""
    pass


class MalformedChunkError(LLMError):
    """A data frame's payload is not valid JSON."""

    def __init__(self, message: str, payload: str, **kwargs):
        super().__init__(message, **kwargs)
        self.payload = payload
