"""Shared test utilities for Context Canvas tests."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Iterable
from dataclasses import dataclass
from typing import Any

from contextcanvas.conversation.message import ChatMessage
from contextcanvas.core.llm.provider import PromptMessage, Role, StreamChunk
from contextcanvas.storage import StoredNode


@dataclass
class StreamCall:
    """One recorded call to a fake provider."""

    messages: list[PromptMessage]
    temperature: float | None
    max_tokens: int | None


class ScriptedProvider:
    """Provider that streams canned replies, one script per call.

    Each script is a list of text fragments. When the scripts run out, the
    last one is repeated.
    """

    def __init__(self, *scripts: Iterable[str], model: str = "test-model") -> None:
        self._scripts = [list(s) for s in scripts] or [["ok"]]
        self._model = model
        self.calls: list[StreamCall] = []

    @property
    def model(self) -> str:
        return self._model

    async def stream(
        self,
        messages: list[PromptMessage],
        *,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> AsyncIterator[StreamChunk]:
        self.calls.append(StreamCall(list(messages), temperature, max_tokens))
        index = min(len(self.calls) - 1, len(self._scripts) - 1)
        fragments = self._scripts[index]
        for i, text in enumerate(fragments):
            await asyncio.sleep(0)
            yield StreamChunk(text=text, is_final=i == len(fragments) - 1)


class FailingProvider(ScriptedProvider):
    """Provider that yields some fragments and then raises."""

    def __init__(
        self,
        fragments: Iterable[str] = (),
        error: Exception | None = None,
        model: str = "failing-model",
    ) -> None:
        super().__init__(list(fragments), model=model)
        self.error = error or ConnectionError("connection reset")

    async def stream(
        self,
        messages: list[PromptMessage],
        *,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> AsyncIterator[StreamChunk]:
        async for chunk in super().stream(
            messages, temperature=temperature, max_tokens=max_tokens
        ):
            yield chunk
        raise self.error


class GatedProvider(ScriptedProvider):
    """Provider that holds its stream open until ``release`` is set.

    The first fragment is yielded right away; the rest wait for the gate.
    """

    def __init__(self, *scripts: Iterable[str], model: str = "gated-model") -> None:
        super().__init__(*scripts, model=model)
        self.started = asyncio.Event()
        self.release = asyncio.Event()

    async def stream(
        self,
        messages: list[PromptMessage],
        *,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> AsyncIterator[StreamChunk]:
        self.calls.append(StreamCall(list(messages), temperature, max_tokens))
        index = min(len(self.calls) - 1, len(self._scripts) - 1)
        fragments = self._scripts[index]
        self.started.set()
        for i, text in enumerate(fragments):
            if i > 0:
                await self.release.wait()
            yield StreamChunk(text=text, is_final=i == len(fragments) - 1)
        await self.release.wait()


class MemoryStore:
    """In-memory HistoryStore recording every save and delete."""

    def __init__(self, nodes: dict[str, Any] | None = None) -> None:
        self.nodes: dict[str, Any] = dict(nodes or {})
        self.saves: list[tuple[str, list[ChatMessage], dict[str, str]]] = []
        self.deletes: list[str] = []

    def load(self) -> dict[str, Any]:
        return dict(self.nodes)

    def save(self, node_id: str, messages: list[ChatMessage], upstream: dict[str, str]) -> None:
        self.saves.append((node_id, list(messages), dict(upstream)))
        self.nodes[node_id] = StoredNode(node_id, list(messages), dict(upstream))

    def delete(self, node_id: str) -> None:
        self.deletes.append(node_id)
        self.nodes.pop(node_id, None)


def make_message(message_id: str, role: str, content: str) -> ChatMessage:
    """Create a ChatMessage from plain strings."""
    return ChatMessage(message_id, Role(role), content)


def contents(messages: Iterable[ChatMessage]) -> list[tuple[str, str]]:
    """(role, content) pairs, for compact assertions."""
    return [(m.role.value, m.content) for m in messages]


def create_mock_llm_stream_chunk(text: str | None = "chunk", is_final: bool = False) -> Any:
    """Create a mock streaming chunk from LiteLLM.

    Args:
        text: Chunk text content
        is_final: Whether this is the final chunk

    Returns:
        Mock mimicking the litellm streaming chunk structure
    """
    from unittest.mock import Mock

    chunk = Mock()
    chunk.choices = [Mock()]
    chunk.choices[0].delta = Mock()
    chunk.choices[0].delta.content = text
    chunk.choices[0].finish_reason = "stop" if is_final else None

    return chunk


async def mock_stream(*chunks: Any) -> AsyncIterator[Any]:
    """Async iterator over mock chunks, as returned by litellm with stream=True."""
    for chunk in chunks:
        yield chunk
