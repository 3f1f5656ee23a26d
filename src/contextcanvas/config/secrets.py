"""API key lookup for the model gateway.

Keys come from the process environment first, then from a ``.env.secrets``
file in the working directory (parsed with python-dotenv and cached).
"""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path

from dotenv import dotenv_values

SECRETS_FILE = ".env.secrets"


@lru_cache(maxsize=4)
def _load_secrets(secrets_path: Path | None = None) -> dict[str, str | None]:
    path = secrets_path or Path(SECRETS_FILE)
    if path.exists():
        return dotenv_values(path)
    return {}


def fetch_secret(
    key: str,
    default: str | None = None,
    secrets_path: Path | None = None,
) -> str | None:
    """Fetch a secret from the environment or the secrets file.

    The environment wins so tests can steer lookups with ``monkeypatch``.

    Args:
        key: Variable name (e.g., "OPENROUTER_API_KEY")
        default: Returned when the key is found nowhere
        secrets_path: Explicit secrets file instead of ./.env.secrets

    Returns:
        The secret value, or ``default``.
    """
    value = os.environ.get(key)
    if value is not None:
        return value

    secret = _load_secrets(secrets_path).get(key)
    return secret if secret is not None else default


def clear_secret_cache() -> None:
    """Forget cached secrets files (after editing them, or between tests)."""
    _load_secrets.cache_clear()
