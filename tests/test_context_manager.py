"""Tests for the hot window, warm retrieval and turn commits of ContextManager."""

from unittest.mock import AsyncMock

import pytest

from deskpilot.errors import PersistenceFailure
from deskpilot.memory.context import RETRIEVED_CONTEXT_HEADER, ContextManager
from deskpilot.memory.models import Message


@pytest.mark.asyncio
class TestHotWindow:
    async def test_window_keeps_most_recent_messages(self, store):
        manager = ContextManager(store, hot_turns=2)
        for i in range(7):
            await manager.add_message(Message.user(f"m{i}"))
        window = manager.get_context()
        assert [m.content for m in window] == ["m3", "m4", "m5", "m6"]
        assert await store.count_messages(manager.session_id) == 7

    async def test_add_message_sets_handler(self, store):
        manager = ContextManager(store)
        stored = await manager.add_message(Message.user("hi"), handler="general")
        assert stored.handler == "general"
        assert stored.persisted

    async def test_commit_turn_persists_both_messages(self, context, store):
        user, assistant = await context.commit_turn(Message.user("question"), Message.assistant("answer"))
        assert user.created_at < assistant.created_at
        assert [m.content for m in context.hot_window] == ["question", "answer"]
        stored = await store.get_messages(context.session_id)
        assert [m.content for m in stored] == ["answer", "question"]

    async def test_failed_commit_leaves_window_unchanged(self, context, store):
        await context.commit_turn(Message.user("before"), Message.assistant("kept"))
        snapshot = context.hot_window
        store.add_messages = AsyncMock(side_effect=PersistenceFailure("disk full"))

        with pytest.raises(PersistenceFailure):
            await context.commit_turn(Message.user("lost"), Message.assistant("lost too"))
        assert context.hot_window == snapshot

    async def test_zero_hot_turns_keeps_nothing(self, store):
        manager = ContextManager(store, hot_turns=0)
        await manager.add_message(Message.user("hi"))
        assert manager.get_context() == []

    async def test_restore_hot_reloads_todays_messages(self, store):
        first = ContextManager(store, hot_turns=1)
        await first.commit_turn(Message.user("one"), Message.assistant("two"))
        await first.commit_turn(Message.user("three"), Message.assistant("four"))

        restored = ContextManager(store, hot_turns=1, restore_hot=True)
        await restored.start()
        assert restored.session_id == first.session_id
        assert [m.content for m in restored.hot_window] == ["three", "four"]


@pytest.mark.asyncio
class TestWarmRetrieval:
    async def test_related_history_is_prepended(self, store):
        old_session = await store.create_session()
        await store.add_message(old_session, "assistant", "the deploy key is in the vault")

        manager = ContextManager(store)
        await manager.new_session()
        await manager.commit_turn(Message.user("hello"), Message.assistant("hi"))

        context = await manager.get_context_with_retrieval("deploy key")
        assert context[0].role == "system"
        assert context[0].content.startswith(RETRIEVED_CONTEXT_HEADER)
        assert "[assistant]: the deploy key is in the vault" in context[0].content
        assert [m.content for m in context[1:]] == ["hello", "hi"]

    async def test_hot_messages_are_not_repeated(self, context):
        await context.commit_turn(Message.user("deploy key please"), Message.assistant("sure"))
        result = await context.get_context_with_retrieval("deploy key")
        assert [m.role for m in result] == ["user", "assistant"]

    async def test_no_hits_returns_hot_window(self, context):
        await context.commit_turn(Message.user("hello"), Message.assistant("hi"))
        assert await context.get_context_with_retrieval("nothing like this") == context.get_context()

    async def test_retrieval_failure_degrades_to_hot_window(self, store):
        retriever = AsyncMock()
        retriever.search.side_effect = PersistenceFailure("locked")
        manager = ContextManager(store, retriever=retriever)
        await manager.commit_turn(Message.user("hello"), Message.assistant("hi"))

        result = await manager.get_context_with_retrieval("hello")
        assert [m.content for m in result] == ["hello", "hi"]

    async def test_scores_below_threshold_are_dropped(self, store):
        from deskpilot.memory.retrieval import ScoredMessage

        weak = Message(role="user", content="barely related", id="x1")
        strong = Message(role="user", content="very related", id="x2")
        retriever = AsyncMock()
        retriever.search.return_value = [ScoredMessage(strong, 0.9), ScoredMessage(weak, 0.2)]
        manager = ContextManager(store, retriever=retriever, similarity_threshold=0.5)

        [system] = await manager.get_context_with_retrieval("related")
        assert "very related" in system.content
        assert "barely related" not in system.content

    async def test_warm_chunks_caps_injected_messages(self, store):
        sid = await store.create_session()
        for i in range(6):
            await store.add_message(sid, "user", f"backup plan {i}")
        manager = ContextManager(store, warm_chunks=2)
        await manager.new_session()

        [system] = await manager.get_context_with_retrieval("backup plan")
        assert system.content.count("[user]:") == 2

    async def test_disabled_retrieval(self, store):
        sid = await store.create_session()
        await store.add_message(sid, "user", "deploy key")
        manager = ContextManager(store, warm_retrieval=False)
        await manager.new_session()
        assert await manager.get_context_with_retrieval("deploy key") == []


@pytest.mark.asyncio
class TestSessionControl:
    async def test_new_session_keeps_history(self, context, store):
        await context.commit_turn(Message.user("hello"), Message.assistant("hi"))
        previous = context.session_id

        current = await context.new_session()
        assert current != previous
        assert context.hot_window == []
        assert await store.count_messages(previous) == 2

    async def test_clear_deletes_history(self, context, store):
        await context.commit_turn(Message.user("hello"), Message.assistant("hi"))
        previous = context.session_id

        current = await context.clear()
        assert current != previous
        assert context.hot_window == []
        assert await store.get_session(previous) is None
        assert await store.count_messages(previous) == 0

    async def test_notes_pass_through(self, context):
        await context.save_note("buy milk", ["errand"])
        [note] = await context.get_notes(["errand"])
        assert note.content == "buy milk"
