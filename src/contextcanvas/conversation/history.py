"""Per-chat-node conversation history with bounded undo/redo.

The message list order is the conversation order sent to the model; there
is no separate ordering field. Undo moves the last message onto a bounded
redo stack, redo moves it back, and any message added through send, edit
or a context event (:meth:`ConversationHistory.push`,
:meth:`ConversationHistory.rewrite`) empties the redo stack. Plain
:meth:`ConversationHistory.append` leaves it alone; streaming uses it for
the reply placeholder of an exchange that has already cleared redo.

Every mutation notifies subscribers with the full message list, which is
how the canvas and persistence layers hear about changes.
"""

from __future__ import annotations

import logging
from collections import deque
from collections.abc import Callable, Iterable, Iterator

from contextcanvas.conversation.message import ChatMessage
from contextcanvas.logging import TRACE, get_logger

HistoryListener = Callable[[list[ChatMessage]], None]


class ConversationHistory:
    """Ordered, editable message list for one chat node.

    Example:
        history = ConversationHistory(max_redo=50)
        history.push(ChatMessage("m1", Role.USER, "hi"))
        history.undo()   # -> the "hi" message, now redoable
        history.redo()   # -> same object appended again
    """

    def __init__(
        self,
        messages: Iterable[ChatMessage] | None = None,
        *,
        max_redo: int = 100,
        logger: logging.Logger | None = None,
    ) -> None:
        """Initialize the history.

        Args:
            messages: Initial messages (e.g., restored from storage)
            max_redo: Redo stack bound; the oldest undone message falls off
            logger: Logger to use (defaults to the "history" child logger)
        """
        self._messages: list[ChatMessage] = list(messages or [])
        self._redo: deque[ChatMessage] = deque(maxlen=max(1, max_redo))
        self._listeners: list[HistoryListener] = []
        self._log = logger or get_logger("history")

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    @property
    def messages(self) -> list[ChatMessage]:
        """A copy of the message list, in conversation order."""
        return list(self._messages)

    @property
    def last(self) -> ChatMessage | None:
        return self._messages[-1] if self._messages else None

    @property
    def redo_depth(self) -> int:
        return len(self._redo)

    @property
    def can_redo(self) -> bool:
        return bool(self._redo)

    def __len__(self) -> int:
        return len(self._messages)

    def __iter__(self) -> Iterator[ChatMessage]:
        return iter(list(self._messages))

    def __contains__(self, message_id: object) -> bool:
        return isinstance(message_id, str) and self.index_of(message_id) >= 0

    def index_of(self, message_id: str) -> int:
        """Position of ``message_id`` in the history, or -1."""
        for i, message in enumerate(self._messages):
            if message.id == message_id:
                return i
        return -1

    def get(self, message_id: str) -> ChatMessage | None:
        index = self.index_of(message_id)
        return self._messages[index] if index >= 0 else None

    # -------------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------------

    def append(self, message: ChatMessage) -> None:
        """Add a message to the end. Does not touch the redo stack."""
        self._messages.append(message)
        self._notify()

    def push(self, message: ChatMessage) -> None:
        """Append a message through the send flow, invalidating redo."""
        self._redo.clear()
        self._messages.append(message)
        self._notify()

    def undo(self) -> ChatMessage | None:
        """Remove the last message and make it redoable.

        Returns:
            The removed message, or None if the history is empty.
        """
        if not self._messages:
            return None
        message = self._messages.pop()
        self._redo.append(message)
        self._notify()
        return message

    def redo(self) -> ChatMessage | None:
        """Re-append the most recently undone message.

        Returns:
            The restored message, or None if there is nothing to redo.
        """
        if not self._redo:
            return None
        message = self._redo.pop()
        self._messages.append(message)
        self._notify()
        return message

    def clear_redo(self) -> None:
        self._redo.clear()

    def replace_content(self, message_id: str, content: str) -> bool:
        """Replace a message's content wholesale.

        Returns:
            False if the message is not in the history.
        """
        message = self.get(message_id)
        if message is None:
            return False
        message.content = content
        self._notify()
        return True

    def remove(self, message_id: str) -> ChatMessage | None:
        """Remove a message by id (not redoable)."""
        index = self.index_of(message_id)
        if index < 0:
            return None
        message = self._messages.pop(index)
        self._notify()
        return message

    def rewrite(self, message_id: str, content: str) -> list[ChatMessage] | None:
        """Edit a message and drop everything after it.

        Truncates the history to and including ``message_id``, replaces that
        message's content and clears the redo stack, as one change.

        Returns:
            The discarded tail, or None if the message is not in the history.
        """
        index = self.index_of(message_id)
        if index < 0:
            return None
        discarded = self._messages[index + 1 :]
        del self._messages[index + 1 :]
        self._messages[index].content = content
        self._redo.clear()
        self._notify()
        return discarded

    def reset(self, messages: Iterable[ChatMessage]) -> None:
        """Replace the whole history (restoring from storage)."""
        self._messages = list(messages)
        self._redo.clear()
        self._notify()

    # -------------------------------------------------------------------------
    # Change notifications
    # -------------------------------------------------------------------------

    def subscribe(self, listener: HistoryListener) -> Callable[[], None]:
        """Register a change listener; returns a function that unregisters it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        self._log.log(TRACE, "History changed: %d message(s)", len(self._messages))
        snapshot = list(self._messages)
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception as e:
                self._log.error("Error in history listener: %s", e)
