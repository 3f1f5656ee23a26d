"""ContextEngine: the chat nodes of one canvas, wired together.

The engine keeps one :class:`ChatConversation` per chat node in the graph,
a shared message id factory, a provider per model alias and a
:class:`TopologyWatcher`. It reads the graph but never changes it.

Observation is a reconciliation pass: :meth:`ContextEngine.observe`
creates or drops conversations to match the graph, then lets the watcher
inject context events. Call it after graph changes, or let
:meth:`ContextEngine.start` poll in a background task.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Mapping
from functools import partial

from contextcanvas.config import Config, get_config
from contextcanvas.conversation.chat import ChatConversation, ProviderFactory
from contextcanvas.conversation.history import ConversationHistory
from contextcanvas.conversation.message import ChatMessage, MessageIdFactory, ReplyReference
from contextcanvas.conversation.results import OpResult
from contextcanvas.conversation.snapshot import build_snapshot
from contextcanvas.conversation.streaming import Exchange
from contextcanvas.core.llm.litellm_provider import create_provider
from contextcanvas.core.llm.provider import LLMProvider
from contextcanvas.graph.events import ContextEvent
from contextcanvas.graph.model import GraphSnapshot, GraphSource, NodeInfo
from contextcanvas.graph.watcher import TopologyWatcher
from contextcanvas.logging import get_logger
from contextcanvas.storage import HistoryStore, StoredNode, YamlHistoryStore

HistoryCallback = Callable[[str, list[ChatMessage]], None]


class ContextEngine:
    """Conversation engine for every chat node on a canvas.

    Example:
        canvas = Canvas()
        chat = canvas.add_chat_node()
        engine = ContextEngine(canvas)
        engine.subscribe(lambda node_id, messages: render(node_id, messages))
        result = engine.send(chat, "hi")
        await result.exchange.wait()
    """

    def __init__(
        self,
        graph: GraphSource,
        *,
        config: Config | None = None,
        provider_factory: ProviderFactory | None = None,
        store: HistoryStore | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        """Initialize the engine.

        Args:
            graph: Canvas nodes and edges (read only)
            config: Configuration (defaults to the cached global config)
            provider_factory: Builds a provider for a model alias; defaults
                to litellm providers from ``config.llm``
            store: History persistence; built from ``config.storage.path``
                when omitted
            logger: Logger to use (defaults to the "engine" child logger)
        """
        self._graph = graph
        self._config = config or get_config()
        self._log = logger or get_logger("engine")
        self._provider_factory = provider_factory or partial(
            create_provider, config=self._config.llm
        )
        if store is None and self._config.storage.path:
            store = YamlHistoryStore(self._config.storage.path)
        self._store = store

        self._ids = MessageIdFactory()
        self._providers: dict[str, LLMProvider] = {}
        self._conversations: dict[str, ChatConversation] = {}
        self._detach: dict[str, list[Callable[[], None]]] = {}
        self._restored: dict[str, StoredNode] = {}
        self._subscribers: list[HistoryCallback] = []

        self._watcher = TopologyWatcher(
            graph,
            self.snapshot_for_node,
            notify_on_clear=self._config.watcher.notify_on_clear,
        )

        self._running = False
        self._task: asyncio.Task[None] | None = None

    # -------------------------------------------------------------------------
    # State
    # -------------------------------------------------------------------------

    @property
    def watcher(self) -> TopologyWatcher:
        return self._watcher

    @property
    def store(self) -> HistoryStore | None:
        return self._store

    @property
    def conversations(self) -> dict[str, ChatConversation]:
        return dict(self._conversations)

    def conversation(self, node_id: str) -> ChatConversation:
        """Conversation for a chat node.

        Raises:
            KeyError: If ``node_id`` is not a chat node of the graph
        """
        if node_id not in self._conversations:
            self.sync_nodes()
        return self._conversations[node_id]

    def subscribe(self, callback: HistoryCallback) -> Callable[[], None]:
        """Register ``callback(node_id, messages)`` for every history change.

        Returns:
            Function that removes the callback.
        """
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    # -------------------------------------------------------------------------
    # Snapshots
    # -------------------------------------------------------------------------

    def get_snapshot(self, node_id: str) -> str:
        """Text node ``node_id`` currently exports downstream."""
        return self.snapshot_for_node(GraphSnapshot.capture(self._graph).node(node_id))

    def snapshot_for_node(self, node: NodeInfo | None) -> str:
        return build_snapshot(node, self._conversations.get)

    # -------------------------------------------------------------------------
    # Chat node operations
    # -------------------------------------------------------------------------

    def send(
        self,
        node_id: str,
        content: str,
        reply_to: str | ReplyReference | None = None,
    ) -> OpResult:
        return self.conversation(node_id).send(content, reply_to=reply_to)

    def edit(self, node_id: str, message_id: str, content: str) -> OpResult:
        return self.conversation(node_id).edit(message_id, content)

    def undo(self, node_id: str) -> OpResult:
        return self.conversation(node_id).undo()

    def redo(self, node_id: str) -> OpResult:
        return self.conversation(node_id).redo()

    def cancel(self, node_id: str) -> bool:
        return self.conversation(node_id).cancel()

    def set_model(self, node_id: str, model: str) -> None:
        self.conversation(node_id).set_model(model)

    def set_temperature(self, node_id: str, temperature: float) -> None:
        self.conversation(node_id).set_temperature(temperature)

    # -------------------------------------------------------------------------
    # Reconciliation
    # -------------------------------------------------------------------------

    def sync_nodes(self) -> tuple[list[str], list[str]]:
        """Create and drop conversations to match the graph's chat nodes.

        Returns:
            (added, removed) chat node ids.
        """
        chat_ids = GraphSnapshot.capture(self._graph).chat_node_ids()
        added = [nid for nid in chat_ids if nid not in self._conversations]
        present = set(chat_ids)
        removed = [nid for nid in self._conversations if nid not in present]

        for node_id in added:
            self._add_conversation(node_id)
        for node_id in removed:
            self._drop_conversation(node_id)
        return added, removed

    def observe(self) -> dict[str, list[ContextEvent]]:
        """Run one observation tick over every chat node.

        Returns:
            Injected events per chat node id.
        """
        self.sync_nodes()
        before = {nid: self._watcher.previous_upstream(nid) for nid in self._conversations}
        results = self._watcher.check_changes(self._conversations)

        # Upstream maps can change without any event (e.g., a silent clear)
        if self._store is not None:
            for node_id in self._conversations:
                if node_id in results:
                    continue
                if self._watcher.previous_upstream(node_id) != before.get(node_id, {}):
                    self._save(node_id)
        return results

    # -------------------------------------------------------------------------
    # Persistence
    # -------------------------------------------------------------------------

    def restore(self, stored: Mapping[str, StoredNode]) -> None:
        """Restore histories and watcher state.

        Nodes already in the graph are restored now. A node that is
        streaming is restored as soon as its exchange finishes, and nodes
        not yet in the graph are restored when they appear.
        """
        for node_id, node in stored.items():
            for message in node.messages:
                self._ids.observe(message.id)

            conversation = self._conversations.get(node_id)
            if conversation is None or conversation.busy:
                self._restored[node_id] = node
                continue
            self._restored.pop(node_id, None)
            self._apply_restore(conversation, node)

        self.sync_nodes()
        self._log.info("Restored %d chat node(s)", len(stored))

    def load_from_store(self) -> None:
        if self._store is not None:
            self.restore(self._store.load())

    # -------------------------------------------------------------------------
    # Polling loop
    # -------------------------------------------------------------------------

    def start(self, poll_interval: float | None = None) -> asyncio.Task[None]:
        """Run the polling loop in a background task owned by the engine."""
        if self._task is not None and not self._task.done():
            self._log.warning("ContextEngine already running")
            return self._task
        self._task = asyncio.create_task(self.run(poll_interval))
        return self._task

    async def run(self, poll_interval: float | None = None) -> None:
        """Observe every ``poll_interval`` seconds until stopped."""
        if self._running:
            self._log.warning("ContextEngine already running")
            return

        interval = poll_interval if poll_interval is not None else self._config.watcher.poll_interval
        self._running = True
        self._log.info("ContextEngine started (interval: %.1fs)", interval)

        try:
            while self._running:
                try:
                    self.observe()
                except Exception as e:
                    self._log.error("Error during observation: %s", e)
                await asyncio.sleep(interval)
        except asyncio.CancelledError:
            if self._running:
                raise
            self._log.info("ContextEngine cancelled")
        finally:
            self._running = False

    def stop(self) -> None:
        """Stop the polling loop.

        Only the task created by :meth:`start` is cancelled; a caller awaiting
        :meth:`run` directly sees the loop return after its current sleep.
        """
        self._running = False
        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()

    def is_running(self) -> bool:
        return self._running

    async def close(self) -> None:
        """Stop polling and cancel every in-flight exchange."""
        task = self._task
        self.stop()
        if task is not None:
            await asyncio.wait([task])
        exchanges = [c.exchange for c in self._conversations.values() if c.exchange is not None]
        for exchange in exchanges:
            exchange.cancel()
        for exchange in exchanges:
            await exchange.wait()

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _provider_for(self, model: str) -> LLMProvider:
        provider = self._providers.get(model)
        if provider is None:
            provider = self._provider_factory(model)
            self._providers[model] = provider
        return provider

    def _add_conversation(self, node_id: str) -> ChatConversation:
        stored = self._restored.pop(node_id, None)
        llm = self._config.llm
        history = ConversationHistory(
            stored.messages if stored else None,
            max_redo=self._config.history.max_redo,
            logger=get_logger("history"),
        )
        conversation = ChatConversation(
            node_id,
            provider_factory=self._provider_for,
            model=llm.default_model,
            temperature=llm.temperature,
            max_tokens=llm.max_tokens,
            ids=self._ids,
            history=history,
        )
        if stored is not None:
            self._watcher.restore(node_id, stored.upstream)

        self._detach[node_id] = [
            conversation.subscribe(partial(self._on_history_change, node_id)),
            conversation.on_exchange_finished(self._on_exchange_finished),
        ]
        self._conversations[node_id] = conversation
        self._log.debug("Added chat node %s", node_id)
        return conversation

    def _drop_conversation(self, node_id: str) -> None:
        conversation = self._conversations.pop(node_id)
        for detach in self._detach.pop(node_id, []):
            detach()
        conversation.cancel()
        self._watcher.forget(node_id)
        self._restored.pop(node_id, None)
        if self._store is not None:
            self._store.delete(node_id)
        self._log.debug("Removed chat node %s", node_id)

    def _on_history_change(self, node_id: str, messages: list[ChatMessage]) -> None:
        for callback in list(self._subscribers):
            try:
                callback(node_id, messages)
            except Exception as e:
                self._log.error("Error in history callback: %s", e)

        # Streaming updates are saved once, when the exchange finishes
        conversation = self._conversations.get(node_id)
        if conversation is not None and not conversation.busy:
            self._save(node_id)

    def _apply_restore(self, conversation: ChatConversation, node: StoredNode) -> None:
        self._watcher.restore(conversation.node_id, node.upstream)
        conversation.history.reset(node.messages)

    def _on_exchange_finished(self, conversation: ChatConversation, exchange: Exchange) -> None:
        node_id = conversation.node_id
        if self._conversations.get(node_id) is not conversation:
            return
        pending = self._restored.pop(node_id, None)
        if pending is None:
            self._save(node_id)
            return
        # The reset notifies subscribers, which saves the restored history
        self._log.debug("Applying deferred restore to %s", node_id)
        self._apply_restore(conversation, pending)

    def _save(self, node_id: str) -> None:
        if self._store is None:
            return
        self._store.save(
            node_id,
            self._conversations[node_id].messages,
            self._watcher.previous_upstream(node_id),
        )
