"""Topology watcher: keeps chat nodes told about what flows into them.

For every chat node the watcher remembers the upstream snapshots it saw on
the previous observation. Each observation recomputes them from the current
graph, diffs the two maps, and injects one synthetic message per change
into the node's own history. It never writes to any other node.

An observation that finds nothing changed does nothing at all, so it is
fine to observe far more often than the graph changes.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from typing import TYPE_CHECKING

from contextcanvas.graph.events import ContextEvent, diff_upstream
from contextcanvas.graph.model import GraphSnapshot, GraphSource, NodeInfo
from contextcanvas.logging import VERBOSE, get_logger

if TYPE_CHECKING:
    from contextcanvas.conversation.chat import ChatConversation

SnapshotFn = Callable[[NodeInfo | None], str]


class TopologyWatcher:
    """Diffs upstream snapshots per chat node and injects context events.

    Example:
        watcher = TopologyWatcher(canvas, snapshot_of=engine.snapshot_for_node)
        events = watcher.observe(conversation)
    """

    def __init__(
        self,
        graph: GraphSource,
        snapshot_of: SnapshotFn,
        *,
        notify_on_clear: bool = False,
        logger: logging.Logger | None = None,
    ) -> None:
        """Initialize the watcher.

        Args:
            graph: Where nodes and edges are read from
            snapshot_of: Snapshot text for a node (None = missing node)
            notify_on_clear: Announce upstreams whose snapshot became empty
            logger: Logger to use (defaults to the "watcher" child logger)
        """
        self._graph = graph
        self._snapshot_of = snapshot_of
        self._notify_on_clear = notify_on_clear
        self._log = logger or get_logger("watcher")

        # chat node id -> {source id -> snapshot seen last time}
        self._previous: dict[str, dict[str, str]] = {}

    @property
    def notify_on_clear(self) -> bool:
        return self._notify_on_clear

    def previous_upstream(self, node_id: str) -> dict[str, str]:
        """Upstream snapshots recorded at the last observation of ``node_id``."""
        return dict(self._previous.get(node_id, {}))

    def restore(self, node_id: str, upstream: Mapping[str, str]) -> None:
        """Seed the last-seen map (e.g., from persistence)."""
        self._previous[node_id] = dict(upstream)

    def forget(self, node_id: str) -> None:
        """Drop state for a chat node that left the graph."""
        self._previous.pop(node_id, None)

    def current_upstream(self, node_id: str, graph: GraphSnapshot) -> dict[str, str]:
        """Map of source id to current snapshot, over edges into ``node_id``."""
        return {
            source_id: self._snapshot_of(graph.node(source_id))
            for source_id in graph.upstream_of(node_id)
        }

    def observe(
        self,
        conversation: ChatConversation,
        graph: GraphSnapshot | None = None,
    ) -> list[ContextEvent]:
        """Run one observation for a chat node.

        A node with an exchange in flight is skipped and keeps its last-seen
        map, so the changes land on the first observation after the exchange
        finishes.

        Args:
            conversation: The chat node's conversation
            graph: Graph snapshot for this tick (captured if omitted)

        Returns:
            The events injected into the conversation, in injection order.
        """
        if conversation.busy:
            self._log.log(VERBOSE, "Skipping %s: exchange in flight", conversation.node_id)
            return []

        if graph is None:
            graph = GraphSnapshot.capture(self._graph)

        node_id = conversation.node_id
        previous = self._previous.get(node_id, {})
        current = self.current_upstream(node_id, graph)
        if current == previous:
            return []

        labels = {
            source_id: node.label
            for source_id in {*previous, *current}
            if (node := graph.node(source_id)) is not None
        }
        events = diff_upstream(
            previous,
            current,
            labels=labels,
            notify_on_clear=self._notify_on_clear,
        )
        self._previous[node_id] = current

        for event in events:
            conversation.inject(event.render())
            self._log.log(
                VERBOSE,
                "Context %s: %s -> %s",
                event.kind.value,
                event.source_id,
                node_id,
            )
        return events

    def check_changes(
        self,
        conversations: Mapping[str, ChatConversation],
    ) -> dict[str, list[ContextEvent]]:
        """Observe every chat node once against a single graph snapshot.

        Returns:
            Events per chat node id, only for nodes that received any.
        """
        graph = GraphSnapshot.capture(self._graph)
        results: dict[str, list[ContextEvent]] = {}
        for node_id, conversation in list(conversations.items()):
            events = self.observe(conversation, graph)
            if events:
                results[node_id] = events
        return results
