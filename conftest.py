"""
Shared helpers for tests that need a fake completion endpoint.
"""

import json
from collections.abc import AsyncIterator, Callable, Iterable

import httpx
import pytest

from streamchat.llm.client import StreamingLLMClient

TEST_URL = "https://llm.test/v1/chat/completions"
TEST_MODEL = "test-model"


def delta_frame(content: str | None = None, **delta) -> str:
    """One SSE data frame in the chat.completion.chunk shape."""
    if content is not None:
        delta["content"] = content
    return "data: " + json.dumps({"choices": [{"delta": delta}]}, ensure_ascii=False) + "\n\n"


DONE_FRAME = "data: [DONE]\n\n"


async def iter_chunks(chunks: Iterable[bytes | str]) -> AsyncIterator[bytes]:
    for chunk in chunks:
        yield chunk.encode("utf-8") if isinstance(chunk, str) else chunk


def sse_response(chunks: Iterable[bytes | str], status_code: int = 200) -> httpx.Response:
    return httpx.Response(
        status_code,
        headers={"content-type": "text/event-stream"},
        content=iter_chunks(chunks),
    )


def query_of(request: httpx.Request) -> str:
    return json.loads(request.content)["messages"][0]["content"]


@pytest.fixture
def make_client() -> Callable[..., StreamingLLMClient]:
    """Build a StreamingLLMClient whose transport calls ``handler``."""
    def factory(handler, **kwargs) -> StreamingLLMClient:
        http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        return StreamingLLMClient(http_client, **kwargs)
    return factory
