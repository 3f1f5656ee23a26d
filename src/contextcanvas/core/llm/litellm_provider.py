"""LiteLLM provider implementation.

Chat nodes talk to their models through litellm, which routes the default
``openrouter/...`` ids to OpenRouter and any other litellm model id to its
own provider:
- "openrouter/anthropic/claude-haiku-4.5"
- "gpt-4o"
- "ollama/llama3"

See https://docs.litellm.ai/docs/providers for the full list.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from typing import TYPE_CHECKING, Any

import litellm

from contextcanvas.config.secrets import fetch_secret
from contextcanvas.core.llm.provider import PromptMessage, StreamChunk

if TYPE_CHECKING:
    from contextcanvas.config.schema import LLMConfig


class LiteLLMProvider:
    """Streaming provider backed by ``litellm.acompletion``.

    Usage:
        provider = LiteLLMProvider("openrouter/anthropic/claude-haiku-4.5")

        # With custom base URL
        provider = LiteLLMProvider("gpt-4", api_base="http://localhost:8000/v1")
    """

    def __init__(
        self,
        model: str,
        *,
        api_key: str | None = None,
        api_base: str | None = None,
        **kwargs: Any,
    ) -> None:
        """Initialize the provider.

        Args:
            model: litellm model identifier
            api_key: API key (litellm falls back to its env vars if omitted)
            api_base: Custom API base URL
            **kwargs: Additional litellm options
        """
        self._model = model
        self._api_key = api_key
        self._api_base = api_base
        self._kwargs = kwargs

    @property
    def model(self) -> str:
        return self._model

    def _build_kwargs(
        self,
        messages: list[PromptMessage],
        *,
        temperature: float | None,
        max_tokens: int | None,
    ) -> dict[str, Any]:
        """Build the litellm request: ``{model, messages, temperature, stream}``."""
        kwargs: dict[str, Any] = {
            "model": self._model,
            "messages": [m.to_dict() for m in messages],
            "stream": True,
            **self._kwargs,
        }
        if temperature is not None:
            kwargs["temperature"] = temperature
        if max_tokens is not None:
            kwargs["max_tokens"] = max_tokens
        if self._api_key:
            kwargs["api_key"] = self._api_key
        if self._api_base:
            kwargs["api_base"] = self._api_base
        return kwargs

    async def stream(
        self,
        messages: list[PromptMessage],
        *,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> AsyncIterator[StreamChunk]:
        """Stream a completion.

        Args:
            messages: Conversation messages
            temperature: Sampling temperature (None = gateway default)
            max_tokens: Maximum tokens to generate (None = gateway default)
        """
        kwargs = self._build_kwargs(
            messages, temperature=temperature, max_tokens=max_tokens
        )

        response = await litellm.acompletion(**kwargs)

        async for chunk in response:
            if not chunk.choices:
                continue
            choice = chunk.choices[0]
            text = (choice.delta.content if choice.delta else None) or ""
            yield StreamChunk(
                text=text,
                is_final=choice.finish_reason is not None,
                finish_reason=choice.finish_reason,
            )


def resolve_model(alias: str, config: LLMConfig) -> str:
    """Map a model alias ("Claude") to its gateway id.

    Anything that isn't a configured alias is taken to be a gateway id
    already.
    """
    return config.models.get(alias, alias)


def create_provider(model: str, config: LLMConfig | None = None, **kwargs: Any) -> LiteLLMProvider:
    """Create a provider for a model alias or id.

    Args:
        model: Alias from ``config.models`` or a raw litellm model id
        config: LLM config supplying the API key name and base URL
        **kwargs: Additional provider options

    Returns:
        Configured LiteLLMProvider
    """
    if config is None:
        from contextcanvas.config import get_config

        config = get_config().llm

    return LiteLLMProvider(
        resolve_model(model, config),
        api_key=fetch_secret(config.api_key_env),
        api_base=config.api_base,
        **kwargs,
    )
