"""Configuration management for Context Canvas.

Hierarchical YAML configuration with system, user and project levels plus
environment overrides.

Example usage:
    from contextcanvas.config import load_config, get_config

    config = load_config(project_root="/path/to/project")
    print(config.llm.default_model)
    print(config.watcher.poll_interval)
"""

from contextcanvas.config.loader import (
    get_config,
    load_config,
    on_config_reload,
    reload_config,
    reset_config,
)
from contextcanvas.config.paths import (
    get_config_paths,
    get_project_config_path,
    get_system_config_path,
    get_user_config_path,
)
from contextcanvas.config.schema import (
    DEFAULT_MODELS,
    Config,
    HistoryConfig,
    LLMConfig,
    LoggingConfig,
    StorageConfig,
    WatcherConfig,
)
from contextcanvas.config.secrets import clear_secret_cache, fetch_secret

__all__ = [
    # Main API
    "Config",
    "load_config",
    "get_config",
    "reload_config",
    "reset_config",
    "on_config_reload",
    # Schema types
    "DEFAULT_MODELS",
    "LLMConfig",
    "HistoryConfig",
    "WatcherConfig",
    "LoggingConfig",
    "StorageConfig",
    # Secrets
    "fetch_secret",
    "clear_secret_cache",
    # Paths
    "get_config_paths",
    "get_system_config_path",
    "get_user_config_path",
    "get_project_config_path",
]
