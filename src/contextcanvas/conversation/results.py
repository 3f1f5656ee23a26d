"""Outcomes of user-facing conversation operations.

Validation failures are refusals, not faults: an operation that is not
allowed right now returns a falsy :class:`OpResult` carrying the reason and
leaves all state untouched.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from contextcanvas.conversation.message import ChatMessage
    from contextcanvas.conversation.streaming import Exchange


class RejectReason(Enum):
    """Why an operation was refused."""

    EMPTY_CONTENT = "empty_content"
    IN_FLIGHT = "in_flight"
    EMPTY_HISTORY = "empty_history"
    NOTHING_TO_REDO = "nothing_to_redo"
    UNKNOWN_MESSAGE = "unknown_message"
    NOT_USER_MESSAGE = "not_user_message"


@dataclass(frozen=True, slots=True)
class OpResult:
    """Result of send/undo/redo/edit.

    Attributes:
        ok: Whether the operation was applied
        reason: Why it was refused (None when ok)
        message: The message created, removed or restored, if any
        exchange: Handle to the streaming exchange started, if any
    """

    ok: bool
    reason: RejectReason | None = None
    message: ChatMessage | None = None
    exchange: Exchange | None = None

    def __bool__(self) -> bool:
        return self.ok

    @classmethod
    def accepted(
        cls,
        message: ChatMessage | None = None,
        exchange: Exchange | None = None,
    ) -> OpResult:
        return cls(ok=True, message=message, exchange=exchange)

    @classmethod
    def refused(cls, reason: RejectReason) -> OpResult:
        return cls(ok=False, reason=reason)
