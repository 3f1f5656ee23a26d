"""Conversation state for chat nodes: history, streaming, snapshots."""

from contextcanvas.conversation.chat import ChatConversation, build_prompt, quote_reply
from contextcanvas.conversation.history import ConversationHistory
from contextcanvas.conversation.message import (
    CONTEXT_EVENT_PREFIX,
    ChatMessage,
    MessageIdFactory,
    ReplyReference,
)
from contextcanvas.conversation.results import OpResult, RejectReason
from contextcanvas.conversation.snapshot import build_snapshot, render_transcript
from contextcanvas.conversation.streaming import Exchange, ExchangeState

__all__ = [
    "CONTEXT_EVENT_PREFIX",
    "ChatConversation",
    "ChatMessage",
    "ConversationHistory",
    "Exchange",
    "ExchangeState",
    "MessageIdFactory",
    "OpResult",
    "RejectReason",
    "ReplyReference",
    "build_prompt",
    "build_snapshot",
    "quote_reply",
    "render_transcript",
]
