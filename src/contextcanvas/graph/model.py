"""Read model of the canvas graph.

The canvas owns nodes and edges; the engine only reads them through the
:class:`GraphSource` protocol and never changes topology itself.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import Enum
from typing import Protocol, runtime_checkable


class NodeKind(Enum):
    """Kind of canvas node."""

    CHAT = "chat"
    CONTEXT = "context"


@dataclass(frozen=True, slots=True)
class NodeInfo:
    """What the engine needs to know about a node.

    Attributes:
        id: Caller-assigned, opaque node id
        kind: Chat or context node
        label: Display label, used in synthetic messages
        committed_text: For context nodes, the last applied text
    """

    id: str
    kind: NodeKind
    label: str = ""
    committed_text: str = ""


@dataclass(frozen=True, slots=True)
class Edge:
    """Directed information flow from ``source`` into ``target``."""

    source: str
    target: str
    kind: str = "default"

    @property
    def edge_id(self) -> str:
        return f"{self.source}->{self.target}"


@runtime_checkable
class GraphSource(Protocol):
    """Anything that can report the current nodes and edges."""

    def nodes(self) -> Iterable[NodeInfo]: ...

    def edges(self) -> Iterable[Edge]: ...


@dataclass(frozen=True)
class GraphSnapshot:
    """Immutable copy of a graph taken once per observation tick."""

    node_map: dict[str, NodeInfo] = field(default_factory=dict)
    edge_list: tuple[Edge, ...] = ()

    @classmethod
    def capture(cls, source: GraphSource) -> GraphSnapshot:
        return cls(
            node_map={node.id: node for node in source.nodes()},
            edge_list=tuple(source.edges()),
        )

    def nodes(self) -> list[NodeInfo]:
        return list(self.node_map.values())

    def edges(self) -> list[Edge]:
        return list(self.edge_list)

    def node(self, node_id: str) -> NodeInfo | None:
        return self.node_map.get(node_id)

    def chat_node_ids(self) -> list[str]:
        return [n.id for n in self.node_map.values() if n.kind is NodeKind.CHAT]

    def upstream_of(self, target: str) -> list[str]:
        """Source ids of edges into ``target``, in edge order, deduplicated.

        Self-edges are ignored.
        """
        seen: dict[str, None] = {}
        for edge in self.edge_list:
            if edge.target == target and edge.source != target:
                seen.setdefault(edge.source, None)
        return list(seen)
