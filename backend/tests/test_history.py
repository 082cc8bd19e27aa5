"""
Tests for per-room chat history.
"""

from routers.chat_orchestration.history import ChatHistoryStore, ChatMessage, Role


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


class TestChatMessage:

    def test_to_dict(self):
        assert ChatMessage(Role.USER, "hi").to_dict() == {"role": "user", "content": "hi"}

    def test_function_result_keeps_name(self):
        msg = ChatMessage(Role.FUNCTION, '{"success": true}', name="addToCart")
        assert msg.to_dict() == {"role": "function", "content": '{"success": true}', "name": "addToCart"}


class TestChatHistoryStore:

    def test_append_preserves_order(self):
        store = ChatHistoryStore()
        store.append("room-1", ChatMessage(Role.USER, "one"))
        store.append("room-1", ChatMessage(Role.ASSISTANT, "two"))
        store.append("room-1", ChatMessage(Role.USER, "three"))

        assert [m.content for m in store.snapshot("room-1")] == ["one", "two", "three"]

    def test_rooms_are_isolated(self):
        store = ChatHistoryStore()
        store.append("room-1", ChatMessage(Role.USER, "a"))
        store.append("room-2", ChatMessage(Role.USER, "b"))

        assert [m.content for m in store.snapshot("room-1")] == ["a"]
        assert [m.content for m in store.snapshot("room-2")] == ["b"]

    def test_snapshot_unaffected_by_later_appends(self):
        store = ChatHistoryStore()
        store.append("room-1", ChatMessage(Role.USER, "first"))
        snapshot = store.snapshot("room-1")
        store.append("room-1", ChatMessage(Role.ASSISTANT, "second"))

        assert len(snapshot) == 1
        assert len(store.snapshot("room-1")) == 2

    def test_unknown_room_is_empty(self):
        assert ChatHistoryStore().snapshot("missing") == []

    def test_no_message_cap(self):
        store = ChatHistoryStore()
        for i in range(500):
            store.append("room-1", ChatMessage(Role.USER, str(i)))
        assert len(store.snapshot("room-1")) == 500

    def test_evict_idle_rooms(self):
        clock = FakeClock()
        store = ChatHistoryStore(idle_seconds=3600, clock=clock)
        store.append("stale", ChatMessage(Role.USER, "old"))
        clock.now += 3000
        store.append("fresh", ChatMessage(Role.USER, "new"))
        clock.now += 700

        assert store.evict_idle() == ["stale"]
        assert store.snapshot("stale") == []
        assert len(store.snapshot("fresh")) == 1

    def test_activity_resets_idle_window(self):
        clock = FakeClock()
        store = ChatHistoryStore(idle_seconds=100, clock=clock)
        store.append("room-1", ChatMessage(Role.USER, "a"))
        clock.now += 90
        store.append("room-1", ChatMessage(Role.ASSISTANT, "b"))
        clock.now += 90

        assert store.evict_idle() == []

    def test_clear_and_stats(self):
        store = ChatHistoryStore()
        store.append("room-1", ChatMessage(Role.USER, "a"))
        store.append("room-1", ChatMessage(Role.ASSISTANT, "b"))
        store.append("room-2", ChatMessage(Role.USER, "c"))

        stats = store.stats()
        assert stats["totalChats"] == 2
        assert stats["totalMessages"] == 3
        assert set(stats["chatIds"]) == {"room-1", "room-2"}

        assert store.clear("room-1") is True
        assert store.clear("room-1") is False
        assert store.active_room_ids() == ["room-2"]
