"""Core runtime modules."""

from contextcanvas.core.llm import (
    LiteLLMProvider,
    LLMProvider,
    PromptMessage,
    Role,
    StreamChunk,
    create_provider,
)

__all__ = [
    "LLMProvider",
    "LiteLLMProvider",
    "PromptMessage",
    "Role",
    "StreamChunk",
    "create_provider",
]
