"""
Tests for the websocket envelope models, streaming and prompt heuristics.
"""

import asyncio

import pytest

from conftest import RecordingRegistry
from errors import ErrorCode, ProtocolError
from routers.chat_prompts import SYSTEM_PROMPT, build_cart_context, is_document_task
from routers.chat_protocol import (
    ChatPayload,
    MessageType,
    error_event,
    make_event,
    parse_envelope,
)
from routers.chat_streaming import chunk_words, stream_text


class TestEnvelope:

    def test_parse_valid(self):
        envelope = parse_envelope({"type": "join_chat", "payload": {"chat_id": "room-1"}})
        assert envelope.type == "join_chat"
        assert envelope.payload == {"chat_id": "room-1"}

    def test_non_object_rejected(self):
        with pytest.raises(ProtocolError) as exc:
            parse_envelope(["join_chat"])
        assert exc.value.message == "Invalid message format"

    def test_missing_type_rejected(self):
        with pytest.raises(ProtocolError) as exc:
            parse_envelope({"payload": {}})
        assert exc.value.code == ErrorCode.PROTOCOL_INVALID_FORMAT

    def test_unknown_type_rejected(self):
        with pytest.raises(ProtocolError) as exc:
            parse_envelope({"type": "text_stream", "payload": {}})
        assert exc.value.message == "Unknown message type: text_stream"
        assert exc.value.code == ErrorCode.PROTOCOL_UNKNOWN_TYPE

    def test_make_event(self):
        event = make_event(MessageType.TEXT_STREAM, {"text": "hi"}, "stream")
        assert event["type"] == "text_stream"
        assert event["payload"] == {"text": "hi"}
        assert event["message_id"] == f"stream_{event['timestamp']}"

    def test_error_event(self):
        event = error_event("No response from AI")
        assert event["type"] == "error"
        assert event["payload"] == {"error": "No response from AI"}
        assert event["message_id"].startswith("msg_")


class TestChatPayload:

    def _payload(self, **extra):
        return {
            "chat_id": "room-1",
            "message": {"room_id": "room-1", "payload": {"role": "user", "content": "hi"}},
            **extra,
        }

    def test_minimal(self):
        payload = ChatPayload.model_validate(self._payload())
        assert payload.message.payload.content == "hi"
        assert payload.cart_items == []

    def test_cart_from_payload(self):
        payload = ChatPayload.model_validate(self._payload(cartData={"items": [{"name": "a"}], "totalItems": 1}))
        assert payload.cart_items == [{"name": "a"}]

    def test_cart_inside_message_preferred(self):
        raw = self._payload(cartData={"items": [{"name": "outer"}]})
        raw["message"]["payload"]["cartData"] = {"items": [{"name": "inner"}]}
        assert ChatPayload.model_validate(raw).cart_items == [{"name": "inner"}]

    def test_missing_chat_id_invalid(self):
        raw = self._payload()
        del raw["chat_id"]
        with pytest.raises(ValueError):
            ChatPayload.model_validate(raw)


class TestStreaming:

    def test_chunk_words(self):
        assert chunk_words("one two three four five six seven", 5) == ["one two three four five ", "six seven"]

    def test_chunk_words_empty(self):
        assert chunk_words("   ", 5) == []

    def test_stream_text_events(self):
        registry = RecordingRegistry()
        text = "one two three four five six seven"

        asyncio.run(stream_text(registry.broadcast, "room-1", text, words_per_chunk=5, delay_ms=0))

        assert registry.types() == ["text_stream", "text_stream", "text_stream_end"]
        first, second, end = [e for _, e in registry.events]
        assert first["payload"] == {"text": "one two three four five ", "isComplete": False}
        assert second["payload"] == {"text": "six seven", "isComplete": True}
        assert end["payload"] == {"text": text}
        assert end["message_id"].startswith("stream_end_")

    def test_stream_empty_text_sends_nothing(self):
        registry = RecordingRegistry()
        asyncio.run(stream_text(registry.broadcast, "room-1", "", delay_ms=0))
        assert registry.events == []


class TestPromptHeuristics:

    def test_document_phrasing(self):
        assert is_document_task("Can you summarize this?")
        assert is_document_task("what's in the PDF")
        assert not is_document_task("Find tech publishers under $500")

    def test_selected_documents_force_document_task(self):
        assert is_document_task("hello", ["doc-1"])

    def test_cart_context(self):
        items = [{"name": "wired.com", "price": 650, "quantity": 1}, {"name": "techcrunch.com", "price": 800}]
        text = build_cart_context(items)

        assert text.startswith("\n\n## Current Cart Context:\n")
        assert "- Cart has 2 items totaling $1450.00" in text
        assert "- Items: wired.com (1x), techcrunch.com (1x)" in text
        assert '"cartItems"' in text

    def test_cart_context_uses_client_totals(self):
        text = build_cart_context([{"name": "a", "price": 1}], total_items=1, total_price=99.5)
        assert "- Cart has 1 item totaling $99.50" in text

    def test_empty_cart_context(self):
        assert build_cart_context([]) == ""

    def test_system_prompt_lists_tools(self):
        prompt = str(SYSTEM_PROMPT)
        assert "AVAILABLE TOOLS:" in prompt
        assert "browsePublishers" in prompt
        assert "addToCart" in prompt
