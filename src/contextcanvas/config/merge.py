"""Cascading merge of partial config dicts."""

from __future__ import annotations

from typing import Any


def deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Return ``base`` overlaid with ``override``.

    Nested dicts merge key by key, every other value (lists included) is
    replaced wholesale, and a ``None`` in ``override`` leaves the base value
    untouched so that a partial file can't blank out a setting.
    """
    merged = dict(base)
    for key, value in override.items():
        if value is None:
            continue
        current = merged.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            merged[key] = deep_merge(current, value)
        else:
            merged[key] = value
    return merged


def merge_configs(*configs: dict[str, Any]) -> dict[str, Any]:
    """Merge config dicts left to right; later ones win."""
    merged: dict[str, Any] = {}
    for config in configs:
        if config:
            merged = deep_merge(merged, config)
    return merged
