"""ChatConversation: everything one chat node can do.

Wraps a :class:`ConversationHistory` with the node's model settings and its
single in-flight :class:`Exchange`. The exchange reference doubles as the
per-node lock: while it is set, send/edit/undo/redo are refused
synchronously and nothing is queued.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable

from contextcanvas.conversation.history import ConversationHistory, HistoryListener
from contextcanvas.conversation.message import (
    ChatMessage,
    MessageIdFactory,
    ReplyReference,
)
from contextcanvas.conversation.results import OpResult, RejectReason
from contextcanvas.conversation.snapshot import render_transcript
from contextcanvas.conversation.streaming import Exchange
from contextcanvas.core.llm.provider import LLMProvider, PromptMessage, Role
from contextcanvas.logging import VERBOSE, get_logger

ProviderFactory = Callable[[str], LLMProvider]
ExchangeListener = Callable[["ChatConversation", Exchange], None]


def quote_reply(reference: ReplyReference, content: str) -> str:
    """Prefix ``content`` with a quote of the message it replies to."""
    quoted = "\n".join(f"> {line}" for line in reference.content.splitlines() or [""])
    return f"> Replying to {reference.role.value}:\n{quoted}\n\n{content}"


def build_prompt(messages: list[ChatMessage]) -> list[PromptMessage]:
    """Turn history messages into the ``{role, content}`` list sent to the model.

    Reply references travel only in the request: the quoted block is added
    here and never written back into the stored message.
    """
    prompt: list[PromptMessage] = []
    for message in messages:
        content = message.content
        if message.reply_to is not None:
            content = quote_reply(message.reply_to, content)
        prompt.append(PromptMessage(role=message.role, content=content))
    return prompt


class ChatConversation:
    """Conversation state and operations for a single chat node.

    Example:
        conversation = ChatConversation("chat-1", provider_factory=create_provider)
        result = conversation.send("hi")
        if result:
            await result.exchange.wait()
    """

    def __init__(
        self,
        node_id: str,
        *,
        provider_factory: ProviderFactory,
        model: str = "Claude",
        temperature: float = 0.7,
        max_tokens: int | None = None,
        max_redo: int = 100,
        ids: MessageIdFactory | None = None,
        history: ConversationHistory | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        """Initialize the conversation.

        Args:
            node_id: Canvas id of the chat node
            provider_factory: Builds a provider for a model alias
            model: Model alias (or gateway id) used for new exchanges
            temperature: Sampling temperature, clamped to [0, 1]
            max_tokens: Reply length cap (None = gateway default)
            max_redo: Redo stack bound
            ids: Shared message id factory
            history: Existing history (e.g., restored); a new one is created otherwise
            logger: Logger to use (defaults to the "chat" child logger)
        """
        self._node_id = node_id
        self._provider_factory = provider_factory
        self._model = model
        self._temperature = _clamp(temperature)
        self._max_tokens = max_tokens
        self._ids = ids or MessageIdFactory()
        self._log = logger or get_logger("chat")
        self._history = history or ConversationHistory(
            max_redo=max_redo, logger=self._log.getChild("history")
        )
        for message in self._history:
            self._ids.observe(message.id)

        self._exchange: Exchange | None = None
        self._exchange_listeners: list[ExchangeListener] = []

    # -------------------------------------------------------------------------
    # State
    # -------------------------------------------------------------------------

    @property
    def node_id(self) -> str:
        return self._node_id

    @property
    def history(self) -> ConversationHistory:
        return self._history

    @property
    def messages(self) -> list[ChatMessage]:
        return self._history.messages

    @property
    def exchange(self) -> Exchange | None:
        """The in-flight exchange, if any."""
        return self._exchange

    @property
    def busy(self) -> bool:
        return self._exchange is not None

    @property
    def model(self) -> str:
        return self._model

    @property
    def temperature(self) -> float:
        return self._temperature

    def set_model(self, model: str) -> None:
        """Switch the model alias; applies from the next exchange."""
        self._model = model

    def set_temperature(self, temperature: float) -> None:
        self._temperature = _clamp(temperature)

    def snapshot(self) -> str:
        """Transcript exported downstream; excludes an in-flight placeholder."""
        exclude = (self._exchange.placeholder_id,) if self._exchange else ()
        return render_transcript(self._history, exclude=exclude)

    def subscribe(self, listener: HistoryListener) -> Callable[[], None]:
        return self._history.subscribe(listener)

    def on_exchange_finished(self, listener: ExchangeListener) -> Callable[[], None]:
        """Register a hook called after each exchange releases the node."""
        self._exchange_listeners.append(listener)

        def unregister() -> None:
            if listener in self._exchange_listeners:
                self._exchange_listeners.remove(listener)

        return unregister

    # -------------------------------------------------------------------------
    # Operations
    # -------------------------------------------------------------------------

    def send(self, content: str, reply_to: str | ReplyReference | None = None) -> OpResult:
        """Append a user message and start streaming the reply.

        Args:
            content: Message text (stored trimmed)
            reply_to: Id of a message in this history, or a ready-made reference

        Returns:
            OpResult carrying the user message and the Exchange handle.
        """
        text = content.strip()
        if not text:
            return self._refuse("send", RejectReason.EMPTY_CONTENT)
        if self._exchange is not None:
            return self._refuse("send", RejectReason.IN_FLIGHT)

        reference: ReplyReference | None
        if isinstance(reply_to, str):
            target = self._history.get(reply_to)
            if target is None:
                return self._refuse("send", RejectReason.UNKNOWN_MESSAGE)
            reference = target.reference()
        else:
            reference = reply_to

        asyncio.get_running_loop()  # raises before any mutation outside a loop
        message = ChatMessage(self._ids.next_id(), Role.USER, text, reply_to=reference)
        self._history.push(message)
        exchange = self._start_exchange()
        return OpResult.accepted(message=message, exchange=exchange)

    def edit(self, message_id: str, content: str) -> OpResult:
        """Edit a past user message and replay the conversation from it.

        Everything after the message is discarded, redo is cleared, and a new
        reply is streamed from the truncated history.
        """
        text = content.strip()
        if self._exchange is not None:
            return self._refuse("edit", RejectReason.IN_FLIGHT)
        if not text:
            return self._refuse("edit", RejectReason.EMPTY_CONTENT)
        target = self._history.get(message_id)
        if target is None:
            return self._refuse("edit", RejectReason.UNKNOWN_MESSAGE)
        if target.role is not Role.USER:
            return self._refuse("edit", RejectReason.NOT_USER_MESSAGE)

        asyncio.get_running_loop()
        discarded = self._history.rewrite(message_id, text)
        self._log.debug(
            "Edited %s on %s, discarded %d message(s)",
            message_id,
            self._node_id,
            len(discarded or []),
        )
        exchange = self._start_exchange()
        return OpResult.accepted(message=target, exchange=exchange)

    def undo(self) -> OpResult:
        """Remove the last message, making it redoable."""
        if self._exchange is not None:
            return self._refuse("undo", RejectReason.IN_FLIGHT)
        message = self._history.undo()
        if message is None:
            return self._refuse("undo", RejectReason.EMPTY_HISTORY)
        return OpResult.accepted(message=message)

    def redo(self) -> OpResult:
        """Restore the most recently undone message."""
        if self._exchange is not None:
            return self._refuse("redo", RejectReason.IN_FLIGHT)
        message = self._history.redo()
        if message is None:
            return self._refuse("redo", RejectReason.NOTHING_TO_REDO)
        return OpResult.accepted(message=message)

    def cancel(self) -> bool:
        """Cancel the in-flight exchange, if any."""
        if self._exchange is None:
            return False
        return self._exchange.cancel()

    def inject(self, content: str) -> ChatMessage:
        """Append a synthetic assistant message (context events).

        Counts as a mutation like any other: the redo stack is cleared.
        """
        message = ChatMessage(self._ids.next_id(), Role.ASSISTANT, content)
        self._history.push(message)
        self._log.log(VERBOSE, "Injected %s into %s", message.id, self._node_id)
        return message

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _start_exchange(self) -> Exchange:
        prompt = build_prompt(self._history.messages)
        exchange = Exchange(
            self._history,
            self._provider_factory(self._model),
            prompt,
            placeholder_id=self._ids.next_id(),
            temperature=self._temperature,
            max_tokens=self._max_tokens,
            on_finish=self._release,
            logger=self._log.getChild("streaming"),
        )
        self._exchange = exchange
        exchange.start()
        return exchange

    def _release(self, exchange: Exchange) -> None:
        if self._exchange is exchange:
            self._exchange = None
        self._log.debug(
            "Exchange %s on %s finished: %s",
            exchange.placeholder_id,
            self._node_id,
            exchange.state.value,
        )
        for listener in list(self._exchange_listeners):
            try:
                listener(self, exchange)
            except Exception as e:
                self._log.error("Error in exchange listener: %s", e)

    def _refuse(self, operation: str, reason: RejectReason) -> OpResult:
        self._log.debug("Refused %s on %s: %s", operation, self._node_id, reason.value)
        return OpResult.refused(reason)


def _clamp(temperature: float) -> float:
    return min(1.0, max(0.0, float(temperature)))
