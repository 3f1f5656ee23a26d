"""Model gateway abstraction."""

from contextcanvas.core.llm.litellm_provider import (
    LiteLLMProvider,
    create_provider,
    resolve_model,
)
from contextcanvas.core.llm.provider import LLMProvider, PromptMessage, Role, StreamChunk

__all__ = [
    "LLMProvider",
    "LiteLLMProvider",
    "PromptMessage",
    "Role",
    "StreamChunk",
    "create_provider",
    "resolve_model",
]
