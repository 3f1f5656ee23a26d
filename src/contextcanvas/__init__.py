"""Context Canvas: chat nodes that stream model replies and hear about their upstream context."""

__version__ = "0.1.0"

# Public API
from contextcanvas.config import Config, get_config, load_config
from contextcanvas.conversation import (
    CONTEXT_EVENT_PREFIX,
    ChatConversation,
    ChatMessage,
    ConversationHistory,
    Exchange,
    ExchangeState,
    OpResult,
    RejectReason,
    ReplyReference,
)
from contextcanvas.core import LiteLLMProvider, LLMProvider, PromptMessage, Role, StreamChunk
from contextcanvas.engine import ContextEngine
from contextcanvas.graph import (
    Canvas,
    ContextEvent,
    ContextEventKind,
    Edge,
    GraphSource,
    NodeInfo,
    NodeKind,
    TopologyWatcher,
)
from contextcanvas.storage import HistoryStore, StoredNode, YamlHistoryStore

__all__ = [
    # Main entry points
    "Canvas",
    "ContextEngine",
    # Config
    "Config",
    "load_config",
    "get_config",
    # LLM
    "LLMProvider",
    "LiteLLMProvider",
    "PromptMessage",
    "Role",
    "StreamChunk",
    # Conversation
    "CONTEXT_EVENT_PREFIX",
    "ChatConversation",
    "ChatMessage",
    "ConversationHistory",
    "Exchange",
    "ExchangeState",
    "OpResult",
    "RejectReason",
    "ReplyReference",
    # Graph
    "ContextEvent",
    "ContextEventKind",
    "Edge",
    "GraphSource",
    "NodeInfo",
    "NodeKind",
    "TopologyWatcher",
    # Storage
    "HistoryStore",
    "StoredNode",
    "YamlHistoryStore",
]
