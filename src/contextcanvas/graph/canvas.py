"""In-memory canvas: the node/edge store a UI layer would normally own.

The engine only needs a :class:`~contextcanvas.graph.model.GraphSource`;
:class:`Canvas` is a small, complete one, used when embedding the engine
without a separate canvas layer and throughout the tests.

Context nodes keep a draft and a committed text. Only the committed text,
set by :meth:`Canvas.apply`, is visible downstream.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterator
from dataclasses import dataclass

from contextcanvas.graph.model import Edge, NodeInfo, NodeKind


@dataclass
class CanvasNode:
    """A node on the canvas.

    Attributes:
        node_id: Unique id (caller-assigned or generated "node-N")
        kind: Chat or context node
        label: Display label
        draft: Context node text being edited
        committed: Context node text last applied
    """

    node_id: str
    kind: NodeKind
    label: str = ""
    draft: str = ""
    committed: str = ""

    @property
    def character_count(self) -> int:
        return len(self.draft)

    @property
    def has_unapplied_changes(self) -> bool:
        return self.draft != self.committed

    def info(self) -> NodeInfo:
        return NodeInfo(
            id=self.node_id,
            kind=self.kind,
            label=self.label,
            committed_text=self.committed if self.kind is NodeKind.CONTEXT else "",
        )


class Canvas:
    """Directed graph of chat and context nodes.

    Cycles are allowed; self-edges and duplicate edges are not.

    Example:
        canvas = Canvas()
        chat = canvas.add_chat_node()
        notes = canvas.add_context_node(label="Notes", text="...")
        canvas.connect(notes, chat)
    """

    def __init__(self) -> None:
        self._nodes: dict[str, CanvasNode] = {}
        self._edges: list[Edge] = []
        self._counter = 0
        self._by_kind: dict[NodeKind, set[str]] = defaultdict(set)

    # -------------------------------------------------------------------------
    # Nodes
    # -------------------------------------------------------------------------

    def add_chat_node(self, node_id: str | None = None, label: str = "Chat") -> str:
        """Add a chat node and return its id."""
        return self._add(CanvasNode(node_id or self._next_id(), NodeKind.CHAT, label))

    def add_context_node(
        self,
        node_id: str | None = None,
        label: str = "Context",
        text: str = "",
    ) -> str:
        """Add a context node; ``text`` starts out both drafted and committed."""
        return self._add(
            CanvasNode(
                node_id or self._next_id(),
                NodeKind.CONTEXT,
                label,
                draft=text,
                committed=text,
            )
        )

    def remove_node(self, node_id: str) -> bool:
        """Remove a node together with every edge touching it."""
        node = self._nodes.pop(node_id, None)
        if node is None:
            return False
        self._by_kind[node.kind].discard(node_id)
        self._edges = [e for e in self._edges if node_id not in (e.source, e.target)]
        return True

    def get_node(self, node_id: str) -> CanvasNode | None:
        return self._nodes.get(node_id)

    def get_nodes_by_kind(self, kind: NodeKind) -> list[CanvasNode]:
        return [self._nodes[nid] for nid in self._by_kind[kind] if nid in self._nodes]

    # -------------------------------------------------------------------------
    # Context text
    # -------------------------------------------------------------------------

    def set_draft(self, node_id: str, text: str) -> None:
        """Edit a context node's draft. Invisible downstream until applied."""
        self._context_node(node_id).draft = text

    def apply(self, node_id: str) -> bool:
        """Commit a context node's draft.

        Returns:
            True if the committed text changed.
        """
        node = self._context_node(node_id)
        changed = node.committed != node.draft
        node.committed = node.draft
        return changed

    def set_text(self, node_id: str, text: str) -> bool:
        """Draft and apply in one step."""
        self.set_draft(node_id, text)
        return self.apply(node_id)

    # -------------------------------------------------------------------------
    # Edges
    # -------------------------------------------------------------------------

    def connect(self, source: str, target: str, kind: str = "default") -> bool:
        """Add an edge from ``source`` into ``target``.

        Returns:
            False if either node is missing, the edge is a self-edge, or it
            already exists.
        """
        if source not in self._nodes or target not in self._nodes or source == target:
            return False
        if self.has_edge(source, target):
            return False
        self._edges.append(Edge(source, target, kind))
        return True

    def disconnect(self, source: str, target: str) -> bool:
        before = len(self._edges)
        self._edges = [e for e in self._edges if (e.source, e.target) != (source, target)]
        return len(self._edges) != before

    def has_edge(self, source: str, target: str) -> bool:
        return any(e.source == source and e.target == target for e in self._edges)

    def get_upstream(self, node_id: str) -> list[CanvasNode]:
        """Nodes with an edge into ``node_id``, in edge order."""
        return [self._nodes[e.source] for e in self._edges if e.target == node_id]

    def get_downstream(self, node_id: str) -> list[CanvasNode]:
        return [self._nodes[e.target] for e in self._edges if e.source == node_id]

    # -------------------------------------------------------------------------
    # GraphSource
    # -------------------------------------------------------------------------

    def nodes(self) -> list[NodeInfo]:
        return [node.info() for node in self._nodes.values()]

    def edges(self) -> list[Edge]:
        return list(self._edges)

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _add(self, node: CanvasNode) -> str:
        if node.node_id in self._nodes:
            raise ValueError(f"Node {node.node_id!r} already exists")
        self._nodes[node.node_id] = node
        self._by_kind[node.kind].add(node.node_id)
        return node.node_id

    def _next_id(self) -> str:
        while True:
            self._counter += 1
            node_id = f"node-{self._counter}"
            if node_id not in self._nodes:
                return node_id

    def _context_node(self, node_id: str) -> CanvasNode:
        node = self._nodes.get(node_id)
        if node is None:
            raise KeyError(node_id)
        if node.kind is not NodeKind.CONTEXT:
            raise ValueError(f"Node {node_id!r} is not a context node")
        return node

    def __len__(self) -> int:
        return len(self._nodes)

    def __contains__(self, node_id: object) -> bool:
        return node_id in self._nodes

    def __iter__(self) -> Iterator[CanvasNode]:
        return iter(list(self._nodes.values()))
