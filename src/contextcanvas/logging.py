"""Package logging for Context Canvas.

Everything logs under the ``contextcanvas`` logger through the standard
``logging`` module. Two extra levels sit between the stock ones:

- ``VERBOSE`` (15): per-operation detail such as injected context events
- ``TRACE`` (5): per-fragment detail from streaming and history changes

Components take an optional ``logging.Logger`` and otherwise use a child
of the package logger from :func:`get_logger`. Nothing is emitted until the
host application calls :func:`setup_logging`; after that the level follows
config reloads.
"""

from __future__ import annotations

import logging
import os
import sys
from collections.abc import Callable
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from contextcanvas.config.schema import Config, LoggingConfig

TRACE = 5
VERBOSE = 15

logging.addLevelName(TRACE, "TRACE")
logging.addLevelName(VERBOSE, "VERBOSE")

logger = logging.getLogger("contextcanvas")

LOG_ENV_VAR = "CANVAS_LOG"
DEFAULT_LEVEL = logging.INFO

# verbose: 0 shows errors only, 4 shows everything
_VERBOSITY = (logging.ERROR, logging.WARNING, logging.INFO, VERBOSE, TRACE)

_initialized = False
_unhook_reload: Callable[[], None] | None = None


class _LowercaseFormatter(logging.Formatter):
    """``HH:MM:SS level: message`` with the level name in lowercase.

    Formats a copy of the record so other handlers still see the
    original level name.
    """

    def __init__(self) -> None:
        super().__init__("%(asctime)s %(levelname)s: %(message)s", datefmt="%H:%M:%S")

    def format(self, record: logging.LogRecord) -> str:
        copy = logging.makeLogRecord(record.__dict__)
        copy.levelname = record.levelname.lower()
        return super().format(copy)


def resolve_level(config: LoggingConfig | None) -> int:
    """Effective level for a logging config.

    ``verbose`` wins over ``level``; unknown level names fall back to INFO.
    """
    if config is None:
        return DEFAULT_LEVEL
    if config.verbose is not None:
        return _VERBOSITY[min(max(config.verbose, 0), len(_VERBOSITY) - 1)]
    if not config.level:
        return DEFAULT_LEVEL
    name = config.level.upper()
    if name == "WARN":
        name = "WARNING"
    level = logging.getLevelName(name)
    return level if isinstance(level, int) else DEFAULT_LEVEL


def update_level(config: LoggingConfig | None) -> int:
    """Apply ``config``'s level to the package logger and its handlers.

    Returns:
        The level now in effect.
    """
    level = resolve_level(config)
    logger.setLevel(level)
    for handler in logger.handlers:
        handler.setLevel(level)
    return level


def setup_logging(config: LoggingConfig | None = None) -> logging.Logger:
    """Attach the package's handlers. Only the first call has any effect.

    Log records go to ``config.file`` or ``$CANVAS_LOG`` when one is set,
    and to stderr only when stderr is a terminal. A log file that cannot be
    opened is reported on the terminal, if there is one, and skipped.

    Returns:
        The package logger.
    """
    global _initialized, _unhook_reload
    if _initialized:
        return logger
    _initialized = True

    path = (config.file if config else None) or os.environ.get(LOG_ENV_VAR)
    handler = _file_handler(path) if path else None
    if handler is None and sys.stderr.isatty():
        handler = logging.StreamHandler(sys.stderr)
    if handler is not None:
        handler.setFormatter(_LowercaseFormatter())
        logger.addHandler(handler)
    update_level(config)

    from contextcanvas.config.loader import on_config_reload

    _unhook_reload = on_config_reload(_on_config_reload)
    return logger


def _file_handler(path: str) -> logging.Handler | None:
    try:
        return logging.FileHandler(os.path.expanduser(path), mode="a", encoding="utf-8")
    except OSError as e:
        if sys.stderr.isatty():
            print(f"[contextcanvas] cannot open log file {path}: {e}", file=sys.stderr)
        return None


def _on_config_reload(config: Config) -> None:
    level = update_level(config.logging)
    logger.debug("Log level is now %s", logging.getLevelName(level))


def get_logger(name: str | None = None) -> logging.Logger:
    """The package logger, or its child ``contextcanvas.<name>``."""
    return logger.getChild(name) if name else logger
