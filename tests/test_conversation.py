"""Tests for in-process conversation memory."""

from unittest.mock import MagicMock

import pytest

from src.memory.conversation import ConversationMemory


class TestConversationWindow:
    """Rolling window behaviour."""

    def test_messages_in_order(self, clock):
        memory = ConversationMemory(clock=clock)
        memory.add_user_message("+34600111222", "hola")
        memory.add_assistant_message("+34600111222", "¿en qué te ayudo?")

        history = memory.get_history("+34600111222")
        assert [m.role for m in history] == ["user", "assistant"]
        assert history[0].content == "hola"

    def test_window_never_exceeded(self, clock):
        memory = ConversationMemory(window=5, clock=clock)
        for i in range(23):
            memory.add_user_message("u", f"q{i}")
            memory.add_assistant_message("u", f"a{i}")
            assert len(memory.get_history("u")) <= 5

        history = memory.get_history("u")
        assert history[-1].content == "a22"
        assert history[0].content == "a20"

    def test_add_user_message_returns_snapshot(self, clock):
        memory = ConversationMemory(clock=clock)
        snapshot = memory.add_user_message("u", "first")
        memory.add_user_message("u", "second")
        assert [m.content for m in snapshot] == ["first"]

    def test_users_are_independent(self, clock):
        memory = ConversationMemory(clock=clock)
        memory.add_user_message("a", "one")
        memory.add_user_message("b", "two")
        assert [m.content for m in memory.get_history("a")] == ["one"]
        assert memory.active_count() == 2


class TestConversationExpiry:
    """Lazy inactivity expiry."""

    def test_read_after_timeout_is_empty(self, clock):
        memory = ConversationMemory(timeout_seconds=1800, clock=clock)
        memory.add_user_message("u", "hola")
        clock.advance(1801)
        assert memory.get_history("u") == []

    def test_read_at_timeout_still_live(self, clock):
        memory = ConversationMemory(timeout_seconds=1800, clock=clock)
        memory.add_user_message("u", "hola")
        clock.advance(1800)
        assert len(memory.get_history("u")) == 1

    def test_write_after_timeout_starts_fresh(self, clock):
        memory = ConversationMemory(timeout_seconds=60, clock=clock)
        memory.add_user_message("u", "old")
        clock.advance(61)
        history = memory.add_user_message("u", "new")
        assert [m.content for m in history] == ["new"]

    def test_activity_extends_lifetime(self, clock):
        memory = ConversationMemory(timeout_seconds=60, clock=clock)
        memory.add_user_message("u", "one")
        clock.advance(50)
        memory.add_user_message("u", "two")
        clock.advance(50)
        assert len(memory.get_history("u")) == 2

    def test_assistant_without_conversation_is_dropped(self, clock):
        memory = ConversationMemory(clock=clock)
        memory.add_assistant_message("u", "orphan")
        assert memory.get_history("u") == []

    def test_clear(self, clock):
        memory = ConversationMemory(clock=clock)
        memory.add_user_message("u", "hola")
        memory.clear("u")
        assert memory.get_history("u") == []
        memory.clear("never-seen")


class TestConversationMirror:
    """Best-effort durable mirroring."""

    @pytest.mark.asyncio
    async def test_writes_are_mirrored(self, clock):
        mirror = MagicMock()
        memory = ConversationMemory(mirror=mirror, clock=clock)
        memory.add_user_message("u", "hola")
        memory.add_assistant_message("u", "buenas")
        await memory.drain()

        assert mirror.mirror_message.call_count == 2
        roles = [c.args[1] for c in mirror.mirror_message.call_args_list]
        assert roles == ["user", "assistant"]

    @pytest.mark.asyncio
    async def test_mirror_failure_is_swallowed(self, clock):
        mirror = MagicMock()
        mirror.mirror_message.side_effect = RuntimeError("disk full")
        memory = ConversationMemory(mirror=mirror, clock=clock)

        memory.add_user_message("u", "hola")
        await memory.drain()
        assert len(memory.get_history("u")) == 1

    def test_no_event_loop_skips_mirror(self, clock):
        mirror = MagicMock()
        memory = ConversationMemory(mirror=mirror, clock=clock)
        memory.add_user_message("u", "hola")
        mirror.mirror_message.assert_not_called()

    @pytest.mark.asyncio
    async def test_mirror_into_sqlite_store(self, store, clock):
        memory = ConversationMemory(mirror=store, clock=clock)
        memory.add_user_message("+34600111222", "¿Cómo renuevo mi TIE?")
        memory.add_assistant_message("+34600111222", "Pide cita previa.")
        await memory.drain()

        rows = store.get_mirrored_messages("+34600111222")
        assert [r["role"] for r in rows] == ["user", "assistant"]
