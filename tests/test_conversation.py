"""
Tests for conversation histories and the session store.
"""

import threading

import pytest

from rag_agent.conversation import ConversationHistory, SessionStore
from rag_agent.models import Role


class TestConversationHistory:

    @pytest.mark.asyncio
    async def test_append_exchange(self):
        history = ConversationHistory()

        length = await history.append_exchange("question", "answer")

        assert length == 2
        turns = history.snapshot()
        assert (turns[0].role, turns[0].text) == (Role.USER, "question")
        assert (turns[1].role, turns[1].text) == (Role.ASSISTANT, "answer")

    @pytest.mark.asyncio
    async def test_snapshot_is_detached(self):
        history = ConversationHistory()
        snapshot = history.snapshot()
        await history.append_exchange("q", "a")
        assert snapshot == ()

    @pytest.mark.asyncio
    async def test_clear(self):
        history = ConversationHistory()
        await history.append_exchange("q", "a")
        await history.clear()
        assert len(history) == 0

    @pytest.mark.asyncio
    async def test_built_outside_event_loop(self):
        histories = []
        thread = threading.Thread(target=lambda: histories.append(ConversationHistory()))
        thread.start()
        thread.join()

        assert await histories[0].append_exchange("q", "a") == 2


class TestSessionStore:

    def test_sessions_are_isolated(self):
        store = SessionStore()
        assert store.get("alice") is not store.get("bob")
        assert store.get("alice") is store.get("alice")
        assert len(store) == 2

    @pytest.mark.asyncio
    async def test_reset_one_session(self):
        store = SessionStore()
        await store.get("alice").append_exchange("q", "a")
        await store.get("bob").append_exchange("q", "a")

        await store.reset("alice")

        assert "alice" not in store
        assert len(store.get("alice")) == 0
        assert len(store.get("bob")) == 2

    @pytest.mark.asyncio
    async def test_reset_unknown_session_is_noop(self):
        store = SessionStore()
        await store.reset("nobody")
        assert "nobody" not in store

    @pytest.mark.asyncio
    async def test_reset_all(self):
        store = SessionStore()
        await store.get("alice").append_exchange("q", "a")
        await store.get("bob").append_exchange("q", "a")

        await store.reset_all()

        assert len(store) == 0
        assert len(store.get("alice")) == 0

    @pytest.mark.asyncio
    async def test_reset_drops_sessions(self):
        store = SessionStore()
        for i in range(1000):
            store.get(f"s{i}")
            await store.reset(f"s{i}")
        assert len(store) == 0

    def test_least_recently_used_session_is_evicted(self):
        store = SessionStore(max_sessions=2)
        alice = store.get("alice")
        store.get("bob")
        store.get("alice")

        store.get("carol")

        assert "bob" not in store
        assert store.get("alice") is alice
        assert len(store) == 2

    def test_max_sessions_must_be_positive(self):
        with pytest.raises(ValueError):
            SessionStore(max_sessions=0)
