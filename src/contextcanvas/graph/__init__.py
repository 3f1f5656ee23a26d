"""Canvas graph model and topology watching."""

from contextcanvas.graph.canvas import Canvas, CanvasNode
from contextcanvas.graph.events import ContextEvent, ContextEventKind, diff_upstream
from contextcanvas.graph.model import Edge, GraphSnapshot, GraphSource, NodeInfo, NodeKind
from contextcanvas.graph.watcher import TopologyWatcher

__all__ = [
    "Canvas",
    "CanvasNode",
    "ContextEvent",
    "ContextEventKind",
    "Edge",
    "GraphSnapshot",
    "GraphSource",
    "NodeInfo",
    "NodeKind",
    "TopologyWatcher",
    "diff_upstream",
]
