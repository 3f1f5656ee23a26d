"""Configuration schema dataclasses for Context Canvas.

Defines the structure of configuration at all levels (system, user, project).
All fields have defaults so that partial configs merge together cleanly.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

# Model aliases shown on a chat node, mapped to gateway model ids
DEFAULT_MODELS: dict[str, str] = {
    "ChatGPT": "openrouter/openai/gpt-5.2-chat",
    "Claude": "openrouter/anthropic/claude-haiku-4.5",
    "Gemini": "openrouter/google/gemini-3-flash-preview",
}


@dataclass
class LLMConfig:
    """Model gateway configuration."""

    default_model: str = "Claude"  # Alias used for new chat nodes
    models: dict[str, str] = field(default_factory=lambda: dict(DEFAULT_MODELS))
    temperature: float = 0.7
    api_base: str | None = None  # Custom endpoint
    max_tokens: int | None = None  # None = gateway default
    api_key_env: str = "OPENROUTER_API_KEY"  # Secret name passed to fetch_secret()


@dataclass
class HistoryConfig:
    """Conversation history configuration."""

    max_redo: int = 100  # Oldest undone messages fall off beyond this


@dataclass
class WatcherConfig:
    """Topology watcher configuration.

    Example config.yaml:
        watcher:
          poll_interval: 0.5
          notify_on_clear: false
    """

    poll_interval: float = 0.5  # Seconds between observation ticks
    notify_on_clear: bool = False  # Announce upstreams whose snapshot became empty


@dataclass
class LoggingConfig:
    """Logging configuration."""

    level: str | None = None  # DEBUG, INFO, WARNING, ERROR
    verbose: int | None = None  # 0-4, takes precedence over level
    file: str | None = None  # Log file path


@dataclass
class StorageConfig:
    """History persistence configuration."""

    path: str | None = None  # YAML file for YamlHistoryStore; None disables


@dataclass
class Config:
    """Root configuration object."""

    llm: LLMConfig = field(default_factory=LLMConfig)
    history: HistoryConfig = field(default_factory=HistoryConfig)
    watcher: WatcherConfig = field(default_factory=WatcherConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)

    # Extension point for future config sections
    extra: dict[str, Any] = field(default_factory=dict)
