"""
Streaming HTTP client for OpenAI-compatible chat completion endpoints.

The client issues one POST per request and turns the SSE body into text
fragments as the bytes arrive. It knows nothing about sessions or UI state;
the controller owns the request lifecycle.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator, AsyncIterator
from contextlib import aclosing, asynccontextmanager
from typing import Any

import httpx
import structlog

from .exceptions import MissingBodyError, ResponseStatusError, StreamingError
from .models import StreamRequest
from .streaming.extractor import ChatCompletionDeltaExtractor, DeltaExtractor
from .streaming.models import SSEEvent, SSEEventKind
from .streaming.parser import StreamingParser

EVENT_STREAM_TYPES = ("text/event-stream", "stream")
NO_CONTENT = 204
ERROR_BODY_PREVIEW = 500

logger = structlog.get_logger(__name__)


class StreamingLLMClient:
    """
    Streaming completion client on top of ``httpx.AsyncClient``.

    Every call to ``stream_completion`` gets its own parser, so
    concurrent or consecutive streams never share buffered bytes.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient | None = None,
        *,
        timeout: httpx.Timeout | None = None,
        require_event_stream: bool = False,
        extractor: DeltaExtractor | None = None,
    ) -> None:
        self._owns_client = http_client is None
        self.client: httpx.AsyncClient = http_client or httpx.AsyncClient(
            timeout=timeout or httpx.Timeout(60.0, connect=10.0)
        )
        self.require_event_stream = require_event_stream
        self.extractor: DeltaExtractor = extractor or ChatCompletionDeltaExtractor()

    @classmethod
    def from_config(
        cls,
        http_config: dict[str, Any],
        streaming_config: dict[str, Any] | None = None,
    ) -> StreamingLLMClient:
        """Build a client from the validated ``http_client`` config section."""
        timeout = httpx.Timeout(
            connect=http_config["connect_timeout"],
            read=http_config["read_timeout"],
            write=http_config["write_timeout"],
            pool=http_config["pool_timeout"],
        )
        streaming_config = streaming_config or {}
        return cls(
            timeout=timeout,
            require_event_stream=streaming_config.get("require_event_stream", False),
        )

    @asynccontextmanager
    async def open_stream(
        self, request: StreamRequest
    ) -> AsyncIterator[AsyncGenerator[str]]:
        """
        Send ``request`` and yield the fragment stream once headers arrived.

        Entering the context waits for the response headers and validates
        them; iterating the yielded generator reads the body.

        Raises:
            ResponseStatusError: The endpoint returned a non-success status.
            MissingBodyError: The response has no readable body.
            MalformedChunkError: A data frame carried invalid JSON.
            StreamingError: The transport failed.
        """
        try:
            async with self.client.stream(
                "POST",
                request.url,
                headers=request.headers(),
                json=request.payload(),
            ) as response:
                await self._check_response(response, request)
                logger.debug(
                    "Completion stream opened",
                    url=request.url,
                    model=request.model,
                    status=response.status_code,
                )
                async with aclosing(self._fragments(response)) as fragments:
                    yield fragments

        except (httpx.HTTPError, httpx.StreamError) as e:
            logger.error("HTTP error during streaming", error=str(e))
            raise StreamingError(f"HTTP error: {e!s}", model=request.model) from e

    async def stream_completion(
        self, request: StreamRequest
    ) -> AsyncGenerator[str]:
        """Stream the answer for ``request`` as non-empty text fragments."""
        async with self.open_stream(request) as fragments:
            async for text in fragments:
                yield text

    async def _fragments(self, response: httpx.Response) -> AsyncGenerator[str]:
        """Ends at the ``[DONE]`` sentinel or when the body closes."""
        parser = StreamingParser()
        async with aclosing(self._iter_events(response, parser)) as events:
            async for event in events:
                if event.kind is SSEEventKind.SENTINEL:
                    logger.debug("Sentinel received", **parser.get_stats())
                    return

                text = self.extractor.extract(event.payload)
                if text:
                    yield text

        logger.debug("Body closed without sentinel", **parser.get_stats())

    async def _check_response(
        self, response: httpx.Response, request: StreamRequest
    ) -> None:
        if not response.is_success:
            error_text = await response.aread()
            logger.warning(
                "Completion endpoint rejected request",
                status=response.status_code,
                body=error_text[:ERROR_BODY_PREVIEW].decode("utf-8", "replace"),
            )
            raise ResponseStatusError(response.status_code, model=request.model)

        if (
            response.status_code == NO_CONTENT
            or response.headers.get("content-length") == "0"
        ):
            raise MissingBodyError("no reader found", model=request.model)

        if self.require_event_stream:
            content_type = response.headers.get("content-type", "")
            if not any(t in content_type for t in EVENT_STREAM_TYPES):
                raise MissingBodyError(
                    f"Expected streaming response, got content-type: {content_type}",
                    model=request.model,
                )

    @staticmethod
    async def _iter_events(
        response: httpx.Response, parser: StreamingParser
    ) -> AsyncGenerator[SSEEvent]:
        async for data in response.aiter_bytes():
            for event in parser.feed(data):
                yield event
        for event in parser.close():
            yield event

    async def close(self) -> None:
        """Close the HTTP client if this instance created it."""
        if self._owns_client:
            await self.client.aclose()

    async def __aenter__(self) -> StreamingLLMClient:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
