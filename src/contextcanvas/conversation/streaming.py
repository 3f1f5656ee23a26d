"""Streaming ingestion of a model reply into a conversation history.

An :class:`Exchange` is one model call for one chat node. Its lifecycle:

    IDLE -> REQUESTED -> STREAMING -> COMPLETED | FAILED | CANCELLED

- ``start()`` appends an empty assistant placeholder right away and spawns
  an asyncio task that consumes the provider's stream.
- Each fragment is added to an accumulator and the placeholder's content is
  replaced with the whole accumulator, so the visible text is always a
  complete prefix of the final reply.
- A transport/decoding error or a cancellation removes the placeholder.
  Either the full reply is in the history or none of it is.
- The owner's release hook runs exactly once on every exit path.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from enum import Enum

from contextcanvas.conversation.history import ConversationHistory
from contextcanvas.conversation.message import ChatMessage
from contextcanvas.core.llm.provider import LLMProvider, PromptMessage, Role
from contextcanvas.logging import TRACE, get_logger


class ExchangeState(Enum):
    """Lifecycle state of an exchange."""

    IDLE = "idle"
    REQUESTED = "requested"
    STREAMING = "streaming"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (
            ExchangeState.COMPLETED,
            ExchangeState.FAILED,
            ExchangeState.CANCELLED,
        )


class Exchange:
    """One in-flight model call writing into a history.

    Attributes:
        placeholder_id: Id of the assistant message receiving the reply
        prompt: The messages sent to the model
        state: Current ExchangeState
        error: The exception that failed the exchange, if any
    """

    def __init__(
        self,
        history: ConversationHistory,
        provider: LLMProvider,
        prompt: list[PromptMessage],
        *,
        placeholder_id: str,
        temperature: float | None = None,
        max_tokens: int | None = None,
        on_finish: Callable[[Exchange], None] | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._history = history
        self._provider = provider
        self._prompt = list(prompt)
        self._placeholder_id = placeholder_id
        self._temperature = temperature
        self._max_tokens = max_tokens
        self._on_finish = on_finish
        self._log = logger or get_logger("streaming")

        self._state = ExchangeState.IDLE
        self._accumulated = ""
        self._error: BaseException | None = None
        self._task: asyncio.Task[None] | None = None
        self._finished = False

    @property
    def placeholder_id(self) -> str:
        return self._placeholder_id

    @property
    def prompt(self) -> list[PromptMessage]:
        return list(self._prompt)

    @property
    def model(self) -> str:
        return self._provider.model

    @property
    def state(self) -> ExchangeState:
        return self._state

    @property
    def content(self) -> str:
        """Text accumulated so far."""
        return self._accumulated

    @property
    def error(self) -> BaseException | None:
        return self._error

    @property
    def done(self) -> bool:
        return self._state.is_terminal

    def start(self) -> None:
        """Append the placeholder and launch the streaming task.

        Must be called from a running event loop.
        """
        if self._state is not ExchangeState.IDLE:
            raise RuntimeError(f"Exchange already started (state: {self._state.value})")

        self._history.append(ChatMessage(self._placeholder_id, Role.ASSISTANT, ""))
        self._state = ExchangeState.REQUESTED
        self._log.debug(
            "Exchange %s requested (model=%s, %d prompt message(s))",
            self._placeholder_id,
            self._provider.model,
            len(self._prompt),
        )

        self._task = asyncio.create_task(
            self._run(), name=f"exchange-{self._placeholder_id}"
        )
        # Covers a task cancelled before its first step, which never enters _run
        self._task.add_done_callback(self._on_task_done)

    def cancel(self) -> bool:
        """Request cancellation.

        Returns:
            True if a running exchange was asked to stop.
        """
        if self._state is ExchangeState.IDLE:
            self._state = ExchangeState.CANCELLED
            self._release()
            return True
        if self._task is not None and not self._task.done():
            self._task.cancel()
            return True
        return False

    async def wait(self) -> ExchangeState:
        """Wait for the exchange to reach a terminal state and return it."""
        if self._task is not None:
            await asyncio.wait({self._task})
        return self._state

    async def _run(self) -> None:
        stream = None
        try:
            stream = self._provider.stream(
                self._prompt,
                temperature=self._temperature,
                max_tokens=self._max_tokens,
            )
            async for chunk in stream:
                if not chunk.text:
                    continue
                if self._state is ExchangeState.REQUESTED:
                    self._state = ExchangeState.STREAMING
                self._accumulated += chunk.text
                self._history.replace_content(self._placeholder_id, self._accumulated)
                self._log.log(TRACE, "Exchange %s: +%d chars", self._placeholder_id, len(chunk.text))
        except asyncio.CancelledError:
            self._discard(ExchangeState.CANCELLED)
            raise
        except Exception as e:
            self._error = e
            self._log.warning("Exchange %s failed: %s", self._placeholder_id, e)
            self._discard(ExchangeState.FAILED)
        else:
            self._state = ExchangeState.COMPLETED
            self._log.debug(
                "Exchange %s completed (%d chars)", self._placeholder_id, len(self._accumulated)
            )
        finally:
            aclose = getattr(stream, "aclose", None)
            if aclose is not None:
                try:
                    await aclose()
                except Exception as e:
                    self._log.debug("Error closing stream for %s: %s", self._placeholder_id, e)
            self._release()

    def _discard(self, state: ExchangeState) -> None:
        """Remove the placeholder and enter a failed/cancelled state."""
        if self._state.is_terminal:
            return
        self._state = state
        self._history.remove(self._placeholder_id)
        if state is ExchangeState.CANCELLED:
            self._log.info("Exchange %s cancelled", self._placeholder_id)

    def _on_task_done(self, task: asyncio.Task[None]) -> None:
        if not self._state.is_terminal:
            self._discard(ExchangeState.CANCELLED)
        self._release()

    def _release(self) -> None:
        if self._finished:
            return
        self._finished = True
        if self._on_finish is not None:
            try:
                self._on_finish(self)
            except Exception as e:
                self._log.error("Error in exchange finish hook: %s", e)
