"""Chat messages, reply references and message ids."""

from __future__ import annotations

import itertools
import re
from dataclasses import dataclass
from typing import Any

from contextcanvas.core.llm.provider import Role

# Synthetic context-event messages start with this marker
CONTEXT_EVENT_PREFIX = "📎"

_ID_PATTERN = re.compile(r"^m(\d+)$")


class MessageIdFactory:
    """Issues opaque, monotonically ordered message ids ("m1", "m2", ...).

    Ids restored from persistence are fed to :meth:`observe` so freshly
    issued ids always sort after them.
    """

    def __init__(self, start: int = 1) -> None:
        self._counter = itertools.count(start)
        self._last = start - 1

    def next_id(self) -> str:
        self._last = next(self._counter)
        return f"m{self._last}"

    def observe(self, message_id: str) -> None:
        match = _ID_PATTERN.match(message_id)
        if match and int(match.group(1)) > self._last:
            self._last = int(match.group(1))
            self._counter = itertools.count(self._last + 1)


@dataclass(frozen=True, slots=True)
class ReplyReference:
    """A copy of a message taken when a reply was sent.

    Not a live pointer: later edits or removal of the referenced message
    leave it unchanged.
    """

    id: str
    role: Role
    content: str

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "role": self.role.value, "content": self.content}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ReplyReference:
        return cls(id=data["id"], role=Role(data["role"]), content=data.get("content", ""))


@dataclass(slots=True)
class ChatMessage:
    """A single entry in a chat node's history.

    Attributes:
        id: Opaque id, monotonic in creation order
        role: Role.USER or Role.ASSISTANT
        content: Text; empty while a streamed reply is in flight
        reply_to: Snapshot of the message this one replies to
    """

    id: str
    role: Role
    content: str
    reply_to: ReplyReference | None = None

    @property
    def is_context_event(self) -> bool:
        """True for synthetic messages injected by the topology watcher."""
        return self.content.startswith(CONTEXT_EVENT_PREFIX)

    def reference(self) -> ReplyReference:
        """Freeze this message into a reply reference."""
        return ReplyReference(id=self.id, role=self.role, content=self.content)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "role": self.role.value,
            "content": self.content,
        }
        if self.reply_to is not None:
            data["reply_to"] = self.reply_to.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ChatMessage:
        reply = data.get("reply_to")
        return cls(
            id=str(data["id"]),
            role=Role(data["role"]),
            content=data.get("content", ""),
            reply_to=ReplyReference.from_dict(reply) if reply else None,
        )
