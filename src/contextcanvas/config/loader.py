"""Configuration file loading and caching.

Handles:
- YAML file parsing
- Environment variable overrides
- Config caching with reload support
- Conversion from dict to typed Config dataclass
"""

from __future__ import annotations

import logging
import os
from collections.abc import Callable
from pathlib import Path
from typing import Any

import yaml

from contextcanvas.config.merge import merge_configs
from contextcanvas.config.paths import get_config_paths
from contextcanvas.config.schema import (
    DEFAULT_MODELS,
    Config,
    HistoryConfig,
    LLMConfig,
    LoggingConfig,
    StorageConfig,
    WatcherConfig,
)

# Module logger (may not be configured yet at import time)
_log = logging.getLogger("contextcanvas.config")

_cached_config: Config | None = None

_reload_callbacks: list[Callable[[Config], None]] = []

_KNOWN_SECTIONS = {"llm", "history", "watcher", "logging", "storage"}


def load_yaml_file(path: Path) -> dict[str, Any]:
    """Load a YAML file, returning an empty dict if missing or invalid."""
    if not path.exists():
        return {}

    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
            return data if isinstance(data, dict) else {}
    except yaml.YAMLError as e:
        _log.warning("Invalid YAML in %s: %s", path, e)
        return {}
    except PermissionError:
        _log.debug("Permission denied reading %s", path)
        return {}
    except OSError as e:
        _log.warning("Error reading %s: %s", path, e)
        return {}


def env_overrides() -> dict[str, Any]:
    """Build a config dict from environment variables.

    - CANVAS_LOG: log file path
    - CANVAS_MODEL: default model alias for new chat nodes

    API keys are not read here; see fetch_secret().
    """
    overrides: dict[str, Any] = {}

    log_path = os.environ.get("CANVAS_LOG")
    if log_path:
        overrides.setdefault("logging", {})["file"] = log_path

    model = os.environ.get("CANVAS_MODEL")
    if model:
        overrides.setdefault("llm", {})["default_model"] = model

    return overrides


def _section(data: dict[str, Any], name: str) -> dict[str, Any]:
    value = data.get(name)
    return value if isinstance(value, dict) else {}


def dict_to_config(data: dict[str, Any]) -> Config:
    """Convert a merged dict to the typed Config dataclass."""
    llm_data = _section(data, "llm")
    models = dict(DEFAULT_MODELS)
    models.update(
        {
            str(alias): str(model_id)
            for alias, model_id in _section(llm_data, "models").items()
            if model_id
        }
    )
    llm = LLMConfig(
        default_model=llm_data.get("default_model", "Claude"),
        models=models,
        temperature=float(llm_data.get("temperature", 0.7)),
        api_base=llm_data.get("api_base"),
        max_tokens=llm_data.get("max_tokens"),
        api_key_env=llm_data.get("api_key_env", "OPENROUTER_API_KEY"),
    )

    history_data = _section(data, "history")
    history = HistoryConfig(max_redo=int(history_data.get("max_redo", 100)))

    watcher_data = _section(data, "watcher")
    watcher = WatcherConfig(
        poll_interval=float(watcher_data.get("poll_interval", 0.5)),
        notify_on_clear=bool(watcher_data.get("notify_on_clear", False)),
    )

    log_data = _section(data, "logging")
    logging_config = LoggingConfig(
        level=log_data.get("level"),
        verbose=log_data.get("verbose"),
        file=log_data.get("file"),
    )

    storage = StorageConfig(path=_section(data, "storage").get("path"))

    extra = {k: v for k, v in data.items() if k not in _KNOWN_SECTIONS}

    return Config(
        llm=llm,
        history=history,
        watcher=watcher,
        logging=logging_config,
        storage=storage,
        extra=extra,
    )


def load_config(project_root: str | None = None, reload: bool = False) -> Config:
    """Load and merge config from all sources.

    Priority order (highest to lowest):
    1. Environment variables
    2. Project config ($project_root/.canvas/config.yaml)
    3. User config
    4. System config

    Args:
        project_root: Project directory for project-level config.
        reload: Force reload even if cached.

    Returns:
        Merged Config object.
    """
    global _cached_config

    if _cached_config is not None and not reload and project_root is None:
        return _cached_config

    configs: list[dict[str, Any]] = []
    for path in get_config_paths(project_root):
        config_data = load_yaml_file(path)
        if config_data:
            _log.debug("Loaded config from %s", path)
            configs.append(config_data)

    env_config = env_overrides()
    if env_config:
        configs.append(env_config)

    config = dict_to_config(merge_configs(*configs))

    # Cache only global config (no project_root)
    if project_root is None:
        _cached_config = config

    return config


def get_config() -> Config:
    """Get the cached global config, loading it on first use."""
    if _cached_config is None:
        return load_config()
    return _cached_config


def reset_config() -> None:
    """Drop the cached config (tests, forced reloads)."""
    global _cached_config
    _cached_config = None


def reload_config(project_root: str | None = None) -> Config:
    """Reload config from files and notify callbacks."""
    config = load_config(project_root=project_root, reload=True)

    for callback in _reload_callbacks:
        try:
            callback(config)
        except Exception as e:
            _log.warning("Config reload callback error: %s", e)

    return config


def on_config_reload(callback: Callable[[Config], None]) -> Callable[[], None]:
    """Register a reload callback; returns a function that unregisters it."""
    _reload_callbacks.append(callback)

    def unregister() -> None:
        if callback in _reload_callbacks:
            _reload_callbacks.remove(callback)

    return unregister
