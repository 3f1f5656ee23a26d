"""Chat history persistence.

The engine talks to a :class:`HistoryStore`; :class:`YamlHistoryStore`
keeps the whole canvas in one YAML document:

    version: 1
    updated_at: 2026-01-17T10:30:00
    nodes:
      chat-1:
        messages:
          - {id: m1, role: user, content: hi}
        upstream:
          ctx-1: "spec v1"

``upstream`` is the topology watcher's last-seen map for the node, so a
restart does not re-announce connections the history already mentions.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

import yaml

from contextcanvas.conversation.message import ChatMessage
from contextcanvas.logging import get_logger

log = get_logger("storage")

FORMAT_VERSION = 1


@dataclass
class StoredNode:
    """Persisted state of one chat node."""

    node_id: str
    messages: list[ChatMessage] = field(default_factory=list)
    upstream: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "messages": [m.to_dict() for m in self.messages],
            "upstream": dict(self.upstream),
        }

    @classmethod
    def from_dict(cls, node_id: str, data: dict[str, Any]) -> StoredNode:
        return cls(
            node_id=node_id,
            messages=[ChatMessage.from_dict(m) for m in data.get("messages") or []],
            upstream={str(k): str(v) for k, v in (data.get("upstream") or {}).items()},
        )


@runtime_checkable
class HistoryStore(Protocol):
    """Where chat node histories are kept between runs."""

    def load(self) -> dict[str, StoredNode]: ...

    def save(
        self,
        node_id: str,
        messages: list[ChatMessage],
        upstream: Mapping[str, str],
    ) -> None: ...

    def delete(self, node_id: str) -> None: ...


class YamlHistoryStore:
    """One YAML file per canvas, rewritten atomically on every save."""

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path).expanduser()
        self._nodes: dict[str, StoredNode] | None = None

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> dict[str, StoredNode]:
        """Read every stored node.

        A missing file is an empty canvas. An unreadable or malformed file
        is logged and also treated as empty.
        """
        self._nodes = self._read()
        return dict(self._nodes)

    def save(
        self,
        node_id: str,
        messages: list[ChatMessage],
        upstream: Mapping[str, str],
    ) -> None:
        nodes = self._cached()
        nodes[node_id] = StoredNode(node_id, list(messages), dict(upstream))
        self._write(nodes)

    def delete(self, node_id: str) -> None:
        nodes = self._cached()
        if nodes.pop(node_id, None) is not None:
            self._write(nodes)
            log.debug("Deleted %s from %s", node_id, self._path)

    def _cached(self) -> dict[str, StoredNode]:
        if self._nodes is None:
            self._nodes = self._read()
        return self._nodes

    def _read(self) -> dict[str, StoredNode]:
        if not self._path.exists():
            return {}

        try:
            with open(self._path, encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
            return {
                str(node_id): StoredNode.from_dict(str(node_id), node or {})
                for node_id, node in (data.get("nodes") or {}).items()
            }
        except Exception as e:
            log.warning("Failed to load canvas from %s: %s", self._path, e)
            return {}

    def _write(self, nodes: dict[str, StoredNode]) -> None:
        data = {
            "version": FORMAT_VERSION,
            "updated_at": datetime.now().isoformat(),
            "nodes": {node_id: node.to_dict() for node_id, node in nodes.items()},
        }
        temp_path = self._path.with_name(self._path.name + ".tmp")

        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with open(temp_path, "w", encoding="utf-8") as f:
                yaml.safe_dump(data, f, default_flow_style=False, allow_unicode=True, sort_keys=False)
            temp_path.replace(self._path)
            log.debug("Saved %d node(s) to %s", len(nodes), self._path)
        except Exception as e:
            if temp_path.exists():
                temp_path.unlink()
            raise RuntimeError(f"Failed to save canvas: {e}") from e
