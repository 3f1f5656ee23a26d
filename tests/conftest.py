"""Root pytest configuration for all tests."""

from __future__ import annotations

import pytest

from contextcanvas.config import Config, reset_config
from contextcanvas.config.secrets import clear_secret_cache
from contextcanvas.conversation import ChatConversation, MessageIdFactory
from contextcanvas.graph import Canvas
from tests.utils import ScriptedProvider

pytest_plugins = ("pytest_asyncio",)


@pytest.fixture(autouse=True)
def _isolate_config(monkeypatch):
    """Keep user/environment config out of every test."""
    for var in ("CANVAS_LOG", "CANVAS_MODEL", "OPENROUTER_API_KEY"):
        monkeypatch.delenv(var, raising=False)
    reset_config()
    clear_secret_cache()
    yield
    reset_config()
    clear_secret_cache()


@pytest.fixture
def config() -> Config:
    return Config()


@pytest.fixture
def provider() -> ScriptedProvider:
    return ScriptedProvider(["Hel", "lo", "!"])


@pytest.fixture
def conversation(provider) -> ChatConversation:
    return ChatConversation("chat-1", provider_factory=lambda model: provider)


@pytest.fixture
def ids() -> MessageIdFactory:
    return MessageIdFactory()


@pytest.fixture
def canvas() -> Canvas:
    return Canvas()
