"""Context snapshots: the text a node exports to the nodes downstream of it.

- Context node: its committed text, verbatim.
- Chat node: its history as a role-labelled transcript.

Everything here is pure, so it is safe to call on every observation tick.
"""

from __future__ import annotations

from collections.abc import Callable, Container, Iterable
from typing import TYPE_CHECKING

from contextcanvas.core.llm.provider import Role

if TYPE_CHECKING:
    from contextcanvas.conversation.chat import ChatConversation
    from contextcanvas.conversation.message import ChatMessage
    from contextcanvas.graph.model import NodeInfo

ROLE_LABELS = {
    Role.USER: "**User:**",
    Role.ASSISTANT: "**Assistant:**",
    Role.SYSTEM: "**System:**",
}


def render_transcript(
    messages: Iterable[ChatMessage],
    *,
    exclude: Container[str] = (),
) -> str:
    """Render messages as ``**User:** ...`` / ``**Assistant:** ...`` paragraphs.

    Paragraphs are joined by a blank line, in history order. Synthetic
    context-event messages are rendered like any other message.

    Args:
        messages: Messages in conversation order
        exclude: Message ids to leave out (e.g., an in-flight placeholder)
    """
    return "\n\n".join(
        f"{ROLE_LABELS[m.role]} {m.content}" for m in messages if m.id not in exclude
    )


def build_snapshot(
    node: NodeInfo | None,
    conversation_for: Callable[[str], ChatConversation | None],
) -> str:
    """Snapshot for a graph node.

    A missing node, or a chat node without a conversation yet, yields an
    empty snapshot rather than an error.
    """
    from contextcanvas.graph.model import NodeKind

    if node is None:
        return ""
    if node.kind is NodeKind.CONTEXT:
        return node.committed_text
    conversation = conversation_for(node.id)
    return conversation.snapshot() if conversation is not None else ""
