"""Synthetic context events and their in-band message text.

The model only ever sees a chat node's message list, so every change in
what flows into the node is announced as an assistant message. Each one
starts with ``CONTEXT_EVENT_PREFIX`` so it can be told apart from genuine
model replies.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

from contextcanvas.conversation.message import CONTEXT_EVENT_PREFIX


class ContextEventKind(Enum):
    """What happened to an upstream source."""

    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    UPDATED = "updated"
    CLEARED = "cleared"


@dataclass(frozen=True, slots=True)
class ContextEvent:
    """A change in one upstream source of a chat node.

    Attributes:
        kind: Connected, disconnected, updated or cleared
        source_id: Upstream node id
        source_label: Display label of the upstream node ("" if unknown)
        old_text: Snapshot last seen (None for connections)
        new_text: Current snapshot (None for disconnections)
    """

    kind: ContextEventKind
    source_id: str
    source_label: str = ""
    old_text: str | None = None
    new_text: str | None = None

    @property
    def source_name(self) -> str:
        if self.source_label:
            return f'"{self.source_label}" ({self.source_id})'
        return self.source_id

    def render(self) -> str:
        """Message content announcing this event."""
        name = self.source_name
        if self.kind is ContextEventKind.CONNECTED:
            return (
                f"{CONTEXT_EVENT_PREFIX} Connected to {name}. "
                f"The following context is now available:\n\n{self.new_text or ''}"
            )
        if self.kind is ContextEventKind.DISCONNECTED:
            return (
                f"{CONTEXT_EVENT_PREFIX} Disconnected from {name}. "
                "The following context must no longer be considered:\n\n"
                f"{self.old_text or ''}"
            )
        if self.kind is ContextEventKind.CLEARED:
            return (
                f"{CONTEXT_EVENT_PREFIX} {name} was cleared. "
                "Disregard its previous context:\n\n"
                f"{self.old_text or ''}"
            )
        return (
            f"{CONTEXT_EVENT_PREFIX} {name} was updated. "
            f"Disregard the previous version:\n\n{self.old_text or ''}\n\n"
            f"Use the current version instead:\n\n{self.new_text or ''}"
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize for logging and event payloads."""
        return {
            "kind": self.kind.value,
            "source_id": self.source_id,
            "source_label": self.source_label,
            "old_text": self.old_text,
            "new_text": self.new_text,
        }


def diff_upstream(
    previous: dict[str, str],
    current: dict[str, str],
    *,
    labels: dict[str, str] | None = None,
    notify_on_clear: bool = False,
) -> list[ContextEvent]:
    """Events that turn ``previous`` into ``current``.

    Order: connections (``current`` order), then disconnections
    (``previous`` order), then updates (``current`` order). An update is only
    reported when the new text is non-empty; a source going from text to
    empty yields a CLEARED event when ``notify_on_clear`` is set and nothing
    otherwise.
    """
    labels = labels or {}
    events: list[ContextEvent] = []

    for source_id, text in current.items():
        if source_id not in previous:
            events.append(
                ContextEvent(
                    ContextEventKind.CONNECTED,
                    source_id,
                    labels.get(source_id, ""),
                    new_text=text,
                )
            )

    for source_id, text in previous.items():
        if source_id not in current:
            events.append(
                ContextEvent(
                    ContextEventKind.DISCONNECTED,
                    source_id,
                    labels.get(source_id, ""),
                    old_text=text,
                )
            )

    for source_id, text in current.items():
        if source_id not in previous or previous[source_id] == text:
            continue
        old = previous[source_id]
        if text:
            kind = ContextEventKind.UPDATED
        elif notify_on_clear:
            kind = ContextEventKind.CLEARED
        else:
            continue
        events.append(
            ContextEvent(kind, source_id, labels.get(source_id, ""), old_text=old, new_text=text)
        )

    return events
