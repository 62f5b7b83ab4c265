"""Tests for the SQLite-backed memory store."""

import pytest

from deskpilot.errors import PersistenceFailure
from deskpilot.memory.models import Message


@pytest.mark.asyncio
class TestSessions:
    async def test_current_session_is_reused_within_a_day(self, store, clock):
        first = await store.get_or_create_current_session()
        clock.advance(hours=5)
        second = await store.get_or_create_current_session()
        assert first == second

    async def test_next_day_starts_a_new_session(self, store, clock):
        first = await store.get_or_create_current_session()
        clock.advance(days=1)
        second = await store.get_or_create_current_session()
        assert first != second

    async def test_create_session_always_creates(self, store):
        daily = await store.get_or_create_current_session()
        explicit = await store.create_session({"origin": "test"})
        assert explicit != daily
        session = await store.get_session(explicit)
        assert session.metadata == {"origin": "test"}
        # the most recently created session of the day becomes current
        assert await store.get_or_create_current_session() == explicit

    async def test_unknown_session_returns_none(self, store):
        assert await store.get_session("missing") is None

    async def test_summary_updates_session(self, store):
        sid = await store.create_session()
        before = await store.get_session(sid)
        await store.update_session_summary(sid, "talked about files")
        after = await store.get_session(sid)
        assert after.summary == "talked about files"
        assert after.updated_at >= before.updated_at

    async def test_summary_for_unknown_session_fails(self, store):
        with pytest.raises(PersistenceFailure):
            await store.update_session_summary("missing", "nope")

    async def test_sessions_ordered_by_activity(self, store, clock):
        older = await store.create_session()
        clock.advance(minutes=1)
        newer = await store.create_session()
        clock.advance(minutes=1)
        await store.add_message(older, "user", "bump")
        sessions = await store.get_sessions()
        assert [s.id for s in sessions] == [older, newer]

    async def test_clear_session_removes_messages_and_session(self, store):
        sid = await store.create_session()
        await store.add_message(sid, "user", "hello")
        await store.add_message(sid, "assistant", "hi")
        await store.clear_session(sid)
        assert await store.get_session(sid) is None
        assert await store.get_messages(sid) == []


@pytest.mark.asyncio
class TestMessages:
    async def test_round_trip(self, store):
        sid = await store.create_session()
        msg_id = await store.add_message(
            sid, "assistant", "done", handler="filer", token_count=42, metadata={"tools": ["list_dir"]},
        )
        [message] = await store.get_messages(sid)
        assert message.id == msg_id
        assert message.session_id == sid
        assert message.role == "assistant"
        assert message.content == "done"
        assert message.handler == "filer"
        assert message.token_count == 42
        assert message.metadata == {"tools": ["list_dir"]}
        assert message.persisted

    async def test_newest_first_with_limit(self, store):
        sid = await store.create_session()
        for i in range(5):
            await store.add_message(sid, "user", f"message {i}")
        messages = await store.get_messages(sid, limit=3)
        assert [m.content for m in messages] == ["message 4", "message 3", "message 2"]

    async def test_timestamps_strictly_increase_with_frozen_clock(self, store):
        sid = await store.create_session()
        stored = await store.add_messages(sid, [Message.user("a"), Message.assistant("b"), Message.user("c")])
        stamps = [m.created_at for m in stored]
        assert stamps == sorted(stamps)
        assert len(set(stamps)) == 3

    async def test_add_messages_is_atomic_for_unknown_session(self, store):
        with pytest.raises(PersistenceFailure):
            await store.add_messages("missing", [Message.user("a"), Message.assistant("b")])
        assert await store.search_messages("a") == []

    async def test_invalid_role_rejected(self, store):
        sid = await store.create_session()
        with pytest.raises(ValueError):
            await store.add_message(sid, "robot", "beep")
        assert await store.count_messages(sid) == 0

    async def test_add_message_advances_session_updated_at(self, store, clock):
        sid = await store.create_session()
        created = (await store.get_session(sid)).updated_at
        clock.advance(seconds=30)
        await store.add_message(sid, "user", "later")
        assert (await store.get_session(sid)).updated_at > created

    async def test_count_messages(self, store):
        sid = await store.create_session()
        await store.add_messages(sid, [Message.user("a"), Message.assistant("b")])
        assert await store.count_messages(sid) == 2

    async def test_recent_messages_span_sessions(self, store):
        first = await store.create_session()
        second = await store.create_session()
        await store.add_message(first, "user", "one")
        await store.add_message(second, "user", "two")
        recent = await store.get_recent_messages(limit=10)
        assert [m.content for m in recent] == ["two", "one"]


@pytest.mark.asyncio
class TestSearch:
    async def test_substring_search_across_sessions(self, store):
        first = await store.create_session()
        second = await store.create_session()
        await store.add_message(first, "user", "where is the deploy key")
        await store.add_message(second, "assistant", "the deploy key is in the vault")
        await store.add_message(second, "user", "thanks")
        results = await store.search_messages("deploy key")
        assert [m.content for m in results] == ["the deploy key is in the vault", "where is the deploy key"]

    async def test_blank_query_returns_nothing(self, store):
        sid = await store.create_session()
        await store.add_message(sid, "user", "anything")
        assert await store.search_messages("") == []
        assert await store.search_messages("   ") == []

    async def test_wildcards_are_literal(self, store):
        sid = await store.create_session()
        await store.add_message(sid, "user", "disk is 100% full")
        await store.add_message(sid, "user", "disk is fine")
        results = await store.search_messages("100%")
        assert [m.content for m in results] == ["disk is 100% full"]


@pytest.mark.asyncio
class TestNotes:
    async def test_tag_filter_is_a_union(self, store):
        await store.save_note("first", ["a"])
        await store.save_note("second", ["b"])
        await store.save_note("third", ["a", "c"])
        notes = await store.get_notes(["a", "c"])
        assert [n.content for n in notes] == ["third", "first"]

    async def test_no_tags_returns_everything(self, store):
        await store.save_note("first", ["a"])
        await store.save_note("second")
        assert len(await store.get_notes()) == 2
        assert len(await store.get_notes([])) == 2

    async def test_limit_applies_after_filter(self, store):
        await store.save_note("tagged old", ["x"])
        for i in range(3):
            await store.save_note(f"untagged {i}")
        notes = await store.get_notes(["x"], limit=1)
        assert [n.content for n in notes] == ["tagged old"]

    async def test_tags_are_deduplicated(self, store):
        await store.save_note("dup", ["a", "a", " b ", ""])
        [note] = await store.get_notes()
        assert note.tags == ["a", "b"]
