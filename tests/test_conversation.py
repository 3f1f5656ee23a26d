"""Tests for ChatConversation: send, edit-replay, undo/redo and reply threading."""

from __future__ import annotations

import pytest

from contextcanvas.conversation import (
    CONTEXT_EVENT_PREFIX,
    ChatConversation,
    ExchangeState,
    MessageIdFactory,
    RejectReason,
    ReplyReference,
    build_prompt,
    quote_reply,
)
from contextcanvas.core.llm.provider import Role
from tests.utils import FailingProvider, GatedProvider, ScriptedProvider, contents, make_message


def _conversation(provider, **kwargs) -> ChatConversation:
    return ChatConversation("chat-1", provider_factory=lambda model: provider, **kwargs)


# =============================================================================
# Send
# =============================================================================


class TestSend:
    """Tests for sending messages and streaming replies."""

    @pytest.mark.asyncio
    async def test_hi_hello_scenario(self, conversation):
        result = conversation.send("hi")

        assert result
        assert contents(conversation.messages) == [("user", "hi"), ("assistant", "")]

        await result.exchange.wait()

        assert contents(conversation.messages) == [("user", "hi"), ("assistant", "Hello!")]
        assert not conversation.busy

    @pytest.mark.asyncio
    async def test_content_is_trimmed(self, conversation):
        result = conversation.send("  hi there \n")
        await result.exchange.wait()
        assert conversation.messages[0].content == "hi there"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("text", ["", "   ", "\n\t"])
    async def test_empty_content_refused(self, conversation, text):
        result = conversation.send(text)

        assert not result
        assert result.reason is RejectReason.EMPTY_CONTENT
        assert conversation.messages == []

    @pytest.mark.asyncio
    async def test_back_to_back_send_refused(self):
        provider = GatedProvider(["slow", " reply"])
        conversation = _conversation(provider)

        first = conversation.send("one")
        second = conversation.send("two")

        assert first
        assert not second
        assert second.reason is RejectReason.IN_FLIGHT
        assert contents(conversation.messages) == [("user", "one"), ("assistant", "")]

        provider.release.set()
        await first.exchange.wait()
        assert contents(conversation.messages) == [("user", "one"), ("assistant", "slow reply")]

    @pytest.mark.asyncio
    async def test_send_after_completion_is_accepted(self, conversation):
        first = conversation.send("one")
        await first.exchange.wait()

        second = conversation.send("two")

        assert second
        await second.exchange.wait()
        assert [m.role for m in conversation.messages] == [
            Role.USER,
            Role.ASSISTANT,
            Role.USER,
            Role.ASSISTANT,
        ]

    @pytest.mark.asyncio
    async def test_prompt_excludes_placeholder(self, conversation, provider):
        result = conversation.send("hi")
        await result.exchange.wait()

        prompt = provider.calls[0].messages
        assert [(m.role, m.content) for m in prompt] == [(Role.USER, "hi")]

    @pytest.mark.asyncio
    async def test_failure_leaves_only_user_message(self):
        conversation = _conversation(FailingProvider(["par", "tial"]))

        result = conversation.send("hi")
        state = await result.exchange.wait()

        assert state is ExchangeState.FAILED
        assert contents(conversation.messages) == [("user", "hi")]
        assert not conversation.busy

    @pytest.mark.asyncio
    async def test_cancel(self):
        provider = GatedProvider(["a", "b"])
        conversation = _conversation(provider)
        result = conversation.send("hi")
        await provider.started.wait()

        assert conversation.cancel()
        assert await result.exchange.wait() is ExchangeState.CANCELLED
        assert contents(conversation.messages) == [("user", "hi")]
        assert not conversation.busy
        assert not conversation.cancel()

    def test_send_outside_event_loop_raises_without_mutation(self, conversation):
        with pytest.raises(RuntimeError):
            conversation.send("hi")
        assert conversation.messages == []

    @pytest.mark.asyncio
    async def test_model_and_temperature_used(self):
        models = []
        provider = ScriptedProvider(["ok"])

        def factory(model):
            models.append(model)
            return provider

        conversation = ChatConversation("chat-1", provider_factory=factory)
        conversation.set_model("Gemini")
        conversation.set_temperature(1.7)

        await conversation.send("hi").exchange.wait()

        assert models == ["Gemini"]
        assert conversation.temperature == 1.0
        assert provider.calls[0].temperature == 1.0

    def test_temperature_is_clamped(self, conversation):
        conversation.set_temperature(-0.5)
        assert conversation.temperature == 0.0


# =============================================================================
# Undo / redo
# =============================================================================


class TestUndoRedo:
    """Tests for undo and redo through the conversation."""

    @pytest.mark.asyncio
    async def test_undo_redo_roundtrip(self, conversation):
        await conversation.send("hi").exchange.wait()
        before = conversation.messages

        assert conversation.undo().message.id == before[-1].id
        redone = conversation.redo()

        assert redone
        assert conversation.messages == before
        assert redone.message is before[-1]

    @pytest.mark.asyncio
    async def test_send_after_undo_clears_redo(self, conversation):
        await conversation.send("hi").exchange.wait()
        conversation.undo()

        await conversation.send("again").exchange.wait()
        snapshot = conversation.messages
        result = conversation.redo()

        assert not result
        assert result.reason is RejectReason.NOTHING_TO_REDO
        assert conversation.messages == snapshot

    def test_undo_empty(self, conversation):
        result = conversation.undo()
        assert not result
        assert result.reason is RejectReason.EMPTY_HISTORY

    @pytest.mark.asyncio
    async def test_undo_and_redo_refused_while_streaming(self):
        provider = GatedProvider(["a", "b"])
        conversation = _conversation(provider)
        result = conversation.send("hi")

        assert conversation.undo().reason is RejectReason.IN_FLIGHT
        assert conversation.redo().reason is RejectReason.IN_FLIGHT

        provider.release.set()
        await result.exchange.wait()

    @pytest.mark.asyncio
    async def test_injected_message_clears_redo(self, conversation):
        await conversation.send("hi").exchange.wait()
        conversation.undo()

        injected = conversation.inject(f"{CONTEXT_EVENT_PREFIX} Connected")

        assert injected.role is Role.ASSISTANT
        assert injected.is_context_event
        assert not conversation.history.can_redo
        assert conversation.redo().reason is RejectReason.NOTHING_TO_REDO
        assert conversation.messages[-1] is injected


# =============================================================================
# Edit-replay
# =============================================================================


class TestEdit:
    """Tests for editing a past user message."""

    @pytest.mark.asyncio
    async def test_edit_truncates_and_replays(self):
        provider = ScriptedProvider(["a1"], ["a2"], ["a1 again"])
        conversation = _conversation(provider)
        first = conversation.send("q1")
        await first.exchange.wait()
        await conversation.send("q2").exchange.wait()

        result = conversation.edit(first.message.id, "q1 edited")

        assert result
        assert contents(conversation.messages) == [("user", "q1 edited"), ("assistant", "")]
        await result.exchange.wait()
        assert contents(conversation.messages) == [
            ("user", "q1 edited"),
            ("assistant", "a1 again"),
        ]
        assert [m.content for m in provider.calls[-1].messages] == ["q1 edited"]

    @pytest.mark.asyncio
    async def test_edit_keeps_message_id(self, conversation):
        first = conversation.send("q1")
        await first.exchange.wait()

        result = conversation.edit(first.message.id, "changed")
        await result.exchange.wait()

        assert conversation.messages[0].id == first.message.id

    @pytest.mark.asyncio
    async def test_edit_clears_redo(self, conversation):
        first = conversation.send("q1")
        await first.exchange.wait()
        conversation.undo()

        await conversation.edit(first.message.id, "changed").exchange.wait()

        assert not conversation.history.can_redo

    @pytest.mark.asyncio
    async def test_edit_refusals(self, conversation):
        first = conversation.send("q1")
        await first.exchange.wait()
        reply_id = conversation.messages[-1].id
        before = conversation.messages

        assert conversation.edit("m999", "x").reason is RejectReason.UNKNOWN_MESSAGE
        assert conversation.edit(reply_id, "x").reason is RejectReason.NOT_USER_MESSAGE
        assert conversation.edit(first.message.id, "  ").reason is RejectReason.EMPTY_CONTENT
        assert contents(conversation.messages) == contents(before)

    @pytest.mark.asyncio
    async def test_edit_refused_while_streaming(self):
        provider = GatedProvider(["a", "b"])
        conversation = _conversation(provider)
        first = conversation.send("q1")

        assert conversation.edit(first.message.id, "x").reason is RejectReason.IN_FLIGHT

        provider.release.set()
        await first.exchange.wait()

    @pytest.mark.asyncio
    async def test_edit_replay_failure_keeps_truncated_history(self):
        providers = {
            "Claude": ScriptedProvider(["a1"], ["a2"]),
            "broken": FailingProvider(["par", "tial"]),
        }
        conversation = ChatConversation("chat-1", provider_factory=providers.__getitem__)
        first = conversation.send("q1")
        await first.exchange.wait()
        await conversation.send("q2").exchange.wait()
        assert len(conversation.messages) == 4

        conversation.set_model("broken")
        result = conversation.edit(first.message.id, "q1 edited")
        state = await result.exchange.wait()

        assert state is ExchangeState.FAILED
        assert isinstance(result.exchange.error, ConnectionError)
        assert len(conversation.messages) == 1
        assert conversation.messages[-1] is first.message
        assert contents(conversation.messages) == [("user", "q1 edited")]
        assert not conversation.busy


# =============================================================================
# Reply threading
# =============================================================================


class TestReplyThreading:
    """Tests for reply references."""

    @pytest.mark.asyncio
    async def test_reply_reference_is_frozen(self):
        provider = ScriptedProvider(["first answer"], ["second answer"], ["third"])
        conversation = _conversation(provider)
        first = conversation.send("q1")
        await first.exchange.wait()
        answer = conversation.messages[-1]

        result = conversation.send("why?", reply_to=answer.id)
        await result.exchange.wait()

        reference = conversation.messages[2].reply_to
        assert reference == ReplyReference(answer.id, Role.ASSISTANT, "first answer")

        # editing the earlier message does not touch the copy held by the reply
        conversation.history.replace_content(answer.id, "rewritten")
        assert reference.content == "first answer"

    @pytest.mark.asyncio
    async def test_reply_is_quoted_in_request_only(self):
        provider = ScriptedProvider(["answer"], ["follow-up"])
        conversation = _conversation(provider)
        await conversation.send("q1").exchange.wait()
        answer_id = conversation.messages[-1].id

        await conversation.send("why?", reply_to=answer_id).exchange.wait()

        sent = provider.calls[-1].messages[-1]
        assert sent.content == "> Replying to assistant:\n> answer\n\nwhy?"
        assert conversation.messages[2].content == "why?"

    @pytest.mark.asyncio
    async def test_reply_to_unknown_message(self, conversation):
        result = conversation.send("hi", reply_to="m404")
        assert result.reason is RejectReason.UNKNOWN_MESSAGE
        assert conversation.messages == []

    def test_quote_reply_multiline(self):
        reference = ReplyReference("m1", Role.USER, "line one\nline two")
        assert quote_reply(reference, "ok") == (
            "> Replying to user:\n> line one\n> line two\n\nok"
        )

    def test_build_prompt_preserves_order(self):
        messages = [
            make_message("m1", "user", "a"),
            make_message("m2", "assistant", "b"),
            make_message("m3", "user", "c"),
        ]
        assert [m.content for m in build_prompt(messages)] == ["a", "b", "c"]


# =============================================================================
# Snapshots and ids
# =============================================================================


class TestSnapshotAndIds:
    """Tests for the exported snapshot and shared id factory."""

    @pytest.mark.asyncio
    async def test_snapshot_excludes_in_flight_placeholder(self):
        provider = GatedProvider(["partial", " reply"])
        conversation = _conversation(provider)
        result = conversation.send("hi")
        await provider.started.wait()

        assert conversation.snapshot() == "**User:** hi"

        provider.release.set()
        await result.exchange.wait()
        assert conversation.snapshot() == "**User:** hi\n\n**Assistant:** partial reply"

    @pytest.mark.asyncio
    async def test_ids_shared_across_conversations(self):
        ids = MessageIdFactory()
        a = _conversation(ScriptedProvider(["x"]), ids=ids)
        b = ChatConversation("chat-2", provider_factory=lambda m: ScriptedProvider(["y"]), ids=ids)

        await a.send("one").exchange.wait()
        await b.send("two").exchange.wait()

        assert [m.id for m in a.messages] == ["m1", "m2"]
        assert [m.id for m in b.messages] == ["m3", "m4"]

    @pytest.mark.asyncio
    async def test_exchange_finished_listener(self, conversation):
        finished = []
        conversation.on_exchange_finished(lambda conv, exchange: finished.append(exchange.state))

        await conversation.send("hi").exchange.wait()

        assert finished == [ExchangeState.COMPLETED]
