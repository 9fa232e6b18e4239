"""
Core request and payload models for streamed chat completions.

This module provides:
- The immutable request issued for one query
- OpenAI-compatible message structures
- Typed views of the streamed chunk payload
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class MessageRole(Enum):
    """OpenAI-compatible message roles."""
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


@dataclass(frozen=True)
class ChatMessage:
    """OpenAI-compatible message structure."""
    role: MessageRole
    content: str

    def to_wire(self) -> dict[str, str]:
        return {"role": self.role.value, "content": self.content}


@dataclass(frozen=True)
class StreamRequest:
    """One query against a streaming completion endpoint."""
    url: str
    model: str
    query: str
    bearer_token: str | None = None

    @property
    def messages(self) -> list[ChatMessage]:
        return [ChatMessage(role=MessageRole.USER, content=self.query)]

    def headers(self) -> dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "Accept": "text/event-stream",
        }
        if self.bearer_token:
            headers["Authorization"] = f"Bearer {self.bearer_token}"
        return headers

    def payload(self) -> dict[str, Any]:
        return {
            "model": self.model,
            "messages": [m.to_wire() for m in self.messages],
            "stream": True,
        }


class ChoiceDelta(BaseModel):
    """Incremental part of one streamed choice."""
    model_config = ConfigDict(extra="ignore")

    content: str | None = None


class StreamChoice(BaseModel):
    model_config = ConfigDict(extra="ignore")

    delta: ChoiceDelta | None = None


class CompletionChunk(BaseModel):
    """
    One ``chat.completion.chunk`` payload.

    Only ``choices[0].delta.content`` is consumed. Other choices and every
    other field are left unvalidated, so oddities there never hide the text.
    """
    model_config = ConfigDict(extra="ignore")

    choices: list[Any] = Field(default_factory=list)

    @property
    def text(self) -> str | None:
        """
        Content of the first choice, or ``None`` when absent or empty.

        Raises:
            ValidationError: ``choices[0]`` does not have the delta shape.
        """
        if not self.choices:
            return None
        delta = StreamChoice.model_validate(self.choices[0]).delta
        if delta is None or not delta.content:
            return None
        return delta.content
