"""Model gateway protocol and wire types."""

from __future__ import annotations

from collections.abc import AsyncIterator
from dataclasses import dataclass
from enum import Enum
from typing import Protocol, runtime_checkable


class Role(Enum):
    """Message role in a conversation."""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


@dataclass(frozen=True, slots=True)
class PromptMessage:
    """One ``{role, content}`` entry of an outbound request."""

    role: Role
    content: str

    def to_dict(self) -> dict[str, str]:
        return {"role": self.role.value, "content": self.content}


@dataclass(slots=True)
class StreamChunk:
    """A text fragment from a streaming response."""

    text: str
    is_final: bool = False
    finish_reason: str | None = None


@runtime_checkable
class LLMProvider(Protocol):
    """Protocol for streaming model gateways.

    A request is ``{model, messages, temperature, stream: true}``; the
    response is an async sequence of text fragments. Exhausting the iterator
    means the reply is complete; any exception raised while iterating means
    the exchange failed.
    """

    @property
    def model(self) -> str:
        """The gateway model identifier."""
        ...

    def stream(
        self,
        messages: list[PromptMessage],
        *,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> AsyncIterator[StreamChunk]:
        """Stream a completion for ``messages``.

        Yields:
            StreamChunk objects as they arrive
        """
        ...
