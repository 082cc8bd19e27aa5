"""
Tests for the turn controller: the full intent -> tool -> summary pipeline,
failure recovery and cancellation.

The model is replaced by AsyncMocks returning ModelDecision objects; the
registry records broadcasts instead of writing to sockets.
"""

import asyncio
import json
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from conftest import FakeEmbedder, FakeQueue, FakeVectorStore, RecordingRegistry
from errors import LLMError
from routers.chat_orchestration import (
    ChatHistoryStore,
    ModelDecision,
    RetrievalContextAssembler,
    Role,
    ToolCallRequest,
    TurnController,
    TurnRequest,
    TurnState,
)

MOCK_SUMMARY = "[MOCK DATA] Found 8 publishers. Average DR: 87.6, Average Price: $687.50. Results displayed to user."
TIMEOUT_MESSAGE = "Model response timed out after 30s"


@pytest.fixture
def env(relay_config):
    registry = RecordingRegistry()
    history = ChatHistoryStore()
    queue = FakeQueue()
    store = FakeVectorStore()
    embedder = FakeEmbedder()

    orchestrator = MagicMock()
    orchestrator.analyze_intent = AsyncMock(return_value=ModelDecision(text="Hello there!"))
    orchestrator.summarize = AsyncMock(return_value="Here is what I found.")
    orchestrator.acknowledge_error = AsyncMock(return_value="Sorry, something went wrong on my side.")

    controller = TurnController(
        registry=registry,
        history=history,
        queue=queue,
        assembler=RetrievalContextAssembler(embedder, store, relay_config),
        orchestrator=orchestrator,
        config=relay_config,
    )
    return SimpleNamespace(
        registry=registry, history=history, queue=queue, store=store, embedder=embedder,
        orchestrator=orchestrator, controller=controller, config=relay_config,
    )


def _request(content="hi", user_id="u1", **kwargs):
    return TurnRequest(room_id="room-1", content=content, user_id=user_id, **kwargs)


def _run(env, request):
    return asyncio.run(env.controller.run_turn(request))


def _tool_decision(name, args, text=""):
    return ModelDecision(text=text, tool_call=ToolCallRequest(name=name, args=args, id="call_0"))


class TestPlainReply:

    def test_streams_and_persists_reply(self, env):
        env.orchestrator.analyze_intent.return_value = ModelDecision(text="one two three four five six seven")

        turn = _run(env, _request("hi"))

        assert env.registry.types() == ["text_stream", "text_stream", "text_stream_end"]
        chunks = env.registry.of_type("text_stream")
        assert chunks[0]["payload"] == {"text": "one two three four five ", "isComplete": False}
        assert chunks[1]["payload"] == {"text": "six seven", "isComplete": True}
        assert env.registry.of_type("text_stream_end")[0]["payload"]["text"] == "one two three four five six seven"

        assert [m.role for m in env.history.snapshot("room-1")] == [Role.USER, Role.ASSISTANT]
        assert turn.final_text == "one two three four five six seven"
        assert turn.states == [TurnState.ANALYZING_INTENT, TurnState.RESPONDING, TurnState.IDLE]

    def test_both_sides_ingested_for_owned_room(self, env):
        _run(env, _request("I love travel blogs"))

        jobs = env.queue.jobs
        assert [j.role for j in jobs] == ["user", "assistant"]
        assert jobs[0].content == "I love travel blogs"
        assert jobs[0].message_id.startswith("user_")
        assert jobs[1].content == "Hello there!"
        assert jobs[1].message_id.startswith("assistant_")
        assert all(j.user_id == "u1" and j.chat_id == "room-1" for j in jobs)

    def test_room_without_owner_not_ingested(self, env):
        _run(env, _request("hi", user_id=None))
        assert env.queue.jobs == []

    def test_system_prompt_carries_context_and_cart(self, env):
        env.store.seed("u1", "f1", 0.9, text="My favorite niche is travel", role="user", isPreference=True)
        cart = [{"name": "wired.com", "price": 650, "quantity": 1}]

        _run(env, _request("Any suggestions?", cart_items=cart))

        conversation = env.orchestrator.analyze_intent.call_args.args[0]
        system = conversation[0]
        assert system["role"] == "system"
        assert system["content"].startswith("You are an intelligent AI assistant")
        assert "[1] My favorite niche is travel" in system["content"]
        assert "## Current Cart Context:" in system["content"]
        assert conversation[1:] == [{"role": "user", "content": "Any suggestions?"}]

    def test_previous_turns_included(self, env):
        _run(env, _request("first"))
        _run(env, _request("second"))

        conversation = env.orchestrator.analyze_intent.call_args.args[0]
        assert [m["content"] for m in conversation[1:]] == ["first", "Hello there!", "second"]

    def test_retrieval_failure_does_not_fail_turn(self, env, relay_config):
        env.controller.assembler = RetrievalContextAssembler(FakeEmbedder(fail=True), env.store, relay_config)

        turn = _run(env, _request("hi"))

        assert turn.state == TurnState.IDLE
        assert "text_stream_end" in env.registry.types()


class TestToolGating:

    def test_regular_request_gets_tools(self, env):
        _run(env, _request("Find tech publishers"))

        tools = env.orchestrator.analyze_intent.call_args.args[1]
        assert "browsePublishers" in [t["function"]["name"] for t in tools]

    def test_document_phrasing_disables_tools(self, env):
        _run(env, _request("Please summarize this document"))
        assert env.orchestrator.analyze_intent.call_args.args[1] is None

    def test_selected_documents_disable_tools_and_add_context(self, env):
        env.store.seed("user_u1_docs", "d1", 0.8, text="Revenue grew 12%", documentId="doc-1",
                       documentName="q3.pdf", chunkType="pdf_page", pageNumber=3)

        _run(env, _request("what happened to revenue?", selected_documents=["doc-1"]))

        conversation, tools = env.orchestrator.analyze_intent.call_args.args
        assert tools is None
        assert "RELEVANT DOCUMENT CONTEXT" in conversation[0]["content"]
        assert "Revenue grew 12%" in conversation[0]["content"]


class TestToolBranch:

    def test_add_to_cart_round_trip(self, env):
        env.orchestrator.analyze_intent.return_value = _tool_decision(
            "addToCart", {"type": "publisher", "name": "wired.com", "price": 650}
        )
        env.orchestrator.summarize.return_value = "Added wired.com to your cart."

        turn = _run(env, _request("add wired.com"))

        assert env.registry.types() == [
            "function_call",
            "function_call_start",
            "cart_updated",
            "function_call_end",
            "function_result",
            "text_stream",
            "text_stream_end",
        ]
        call_event = env.registry.of_type("function_call")[0]
        assert call_event["payload"]["name"] == "addToCart"
        assert call_event["message_id"].startswith("func_")
        result = env.registry.of_type("function_result")[0]["payload"]
        assert result["role"] == "function"
        assert result["result"]["success"] is True

        conversation = env.orchestrator.summarize.call_args.args[0]
        assert conversation[-2] == {
            "role": "assistant",
            "content": "I'm using the addToCart tool to help with your request.",
        }
        assert conversation[-1]["content"].startswith("The addToCart function returned: {")
        assert conversation[-1]["content"].endswith("Please summarize the results.")

        messages = env.history.snapshot("room-1")
        assert [m.role for m in messages] == [Role.USER, Role.ASSISTANT, Role.FUNCTION, Role.ASSISTANT]
        assert messages[2].name == "addToCart"
        assert json.loads(messages[2].content)["message"] == "Added wired.com to cart"
        assert messages[3].content == "Added wired.com to your cart."

        assert turn.tools_used == ["addToCart"]
        assert turn.states == [
            TurnState.ANALYZING_INTENT, TurnState.TOOL_EXECUTING, TurnState.SUMMARIZING, TurnState.IDLE
        ]
        assert [j.content for j in env.queue.jobs] == ["add wired.com", "Added wired.com to your cart."]

    def test_browse_publishers_full_results_to_ui_only(self, env):
        env.orchestrator.analyze_intent.return_value = _tool_decision("browsePublishers", {"niche": "Technology"})

        _run(env, _request("Find tech publishers"))

        ui = env.registry.of_type("publishers_data")[0]["payload"]
        assert ui["totalCount"] == 8
        assert len(ui["publishers"]) == 8
        assert env.registry.of_type("function_result")[0]["payload"]["result"] == {
            "summary": MOCK_SUMMARY,
            "count": 8,
            "message": "Full results sent to user interface",
        }
        summary_prompt = env.orchestrator.summarize.call_args.args[0][-1]["content"]
        assert '"publishers"' not in summary_prompt
        assert MOCK_SUMMARY in summary_prompt

    def test_narration_streamed_before_tool(self, env):
        env.orchestrator.analyze_intent.return_value = _tool_decision("viewCart", {}, text="Let me check your cart.")

        _run(env, _request("show my cart"))

        types = env.registry.types()
        assert types[:3] == ["text_stream", "text_stream_end", "function_call"]
        conversation = env.orchestrator.summarize.call_args.args[0]
        assert conversation[-2] == {"role": "assistant", "content": "Let me check your cart."}

    def test_unknown_tool_reported_to_model(self, env):
        env.orchestrator.analyze_intent.return_value = _tool_decision("deleteEverything", {})

        turn = _run(env, _request("delete everything"))

        result = env.registry.of_type("function_result")[0]["payload"]["result"]
        assert result["error"] is True
        assert result["message"] == "Unknown function: deleteEverything"
        env.orchestrator.summarize.assert_awaited_once()
        assert turn.state == TurnState.IDLE

    def test_invalid_arguments_reported_to_model(self, env):
        env.orchestrator.analyze_intent.return_value = _tool_decision("addToCart", {"price": 10})

        _run(env, _request("add something"))

        result = env.registry.of_type("function_result")[0]["payload"]["result"]
        assert result["error"] is True
        assert result["message"] == "Invalid arguments for addToCart"
        assert "cart_updated" not in env.registry.types()


class TestFailures:

    def test_empty_decision_reports_no_response(self, env):
        env.orchestrator.analyze_intent.return_value = ModelDecision()

        turn = _run(env, _request("hi"))

        assert env.registry.types() == ["error"]
        assert env.registry.events[0][1]["payload"] == {"error": "No response from AI"}
        env.orchestrator.acknowledge_error.assert_not_awaited()
        assert turn.state == TurnState.FAILED

    def test_model_failure_is_acknowledged(self, env):
        env.orchestrator.analyze_intent.side_effect = LLMError(TIMEOUT_MESSAGE, error_type="timeout")

        turn = _run(env, _request("hi"))

        messages = env.orchestrator.acknowledge_error.call_args.args[0]
        assert messages[0]["role"] == "system"
        assert messages[1] == {"role": "user", "content": "hi"}
        assert messages[-1]["content"] == (
            f"I encountered an error while processing your request: {TIMEOUT_MESSAGE}. "
            "Please acknowledge this error and explain to the user what happened."
        )
        assert "error" not in env.registry.types()
        assert env.registry.of_type("text_stream_end")[0]["payload"]["text"] == "Sorry, something went wrong on my side."
        assert env.history.snapshot("room-1")[-1].content == "Sorry, something went wrong on my side."
        assert turn.state == TurnState.FAILED
        assert turn.error == TIMEOUT_MESSAGE

    def test_failed_acknowledgement_broadcasts_error(self, env):
        env.orchestrator.analyze_intent.side_effect = LLMError(TIMEOUT_MESSAGE, error_type="timeout")
        env.orchestrator.acknowledge_error.side_effect = LLMError("No response from AI", error_type="invalid")

        _run(env, _request("hi"))

        assert env.registry.types() == ["error"]
        assert env.registry.events[0][1]["payload"] == {"error": f"Error: {TIMEOUT_MESSAGE}"}

    def test_summary_failure_is_acknowledged(self, env):
        env.orchestrator.analyze_intent.return_value = _tool_decision("clearCart", {})
        env.orchestrator.summarize.side_effect = LLMError("No response from AI", error_type="invalid")

        turn = _run(env, _request("clear my cart"))

        types = env.registry.types()
        assert "cart_cleared" in types
        assert types[-2:] == ["text_stream", "text_stream_end"]
        assert turn.state == TurnState.FAILED
        assert "No response from AI" in env.orchestrator.acknowledge_error.call_args.args[0][-1]["content"]


class TestCancellation:

    def test_cancel_during_model_call(self, env):
        async def run():
            started = asyncio.Event()

            async def slow_intent(messages, tools):
                started.set()
                await asyncio.sleep(10)

            env.orchestrator.analyze_intent = slow_intent
            task = env.controller.start_turn(_request("hi"))
            await started.wait()
            assert env.controller.is_running("room-1")
            assert env.controller.cancel("room-1") is True
            with pytest.raises(asyncio.CancelledError):
                await task

        asyncio.run(run())

        assert env.controller.turns["room-1"].state == TurnState.CANCELLED
        assert env.registry.events == []
        assert not env.controller.is_running("room-1")
        env.orchestrator.acknowledge_error.assert_not_awaited()
        assert [m.role for m in env.history.snapshot("room-1")] == [Role.USER]

    def test_cancel_mid_stream_sends_nothing_further(self, env):
        env.config.stream_delay_ms = 50
        env.orchestrator.analyze_intent.return_value = ModelDecision(text=" ".join(["word"] * 30))

        async def run():
            first_chunk = asyncio.Event()
            env.registry.on_event = lambda room, event: first_chunk.set()
            task = env.controller.start_turn(_request("tell me a story"))
            await first_chunk.wait()
            assert env.controller.cancel("room-1") is True
            with pytest.raises(asyncio.CancelledError):
                await task

        asyncio.run(run())

        assert env.registry.types() == ["text_stream"]
        assert [m.role for m in env.history.snapshot("room-1")] == [Role.USER]
        assert [j.role for j in env.queue.jobs] == ["user"]

    def test_cancel_without_running_turn(self, env):
        assert env.controller.cancel("room-1") is False

    def test_queued_turn_survives_cancel(self, env):
        async def run():
            started = asyncio.Event()
            calls = []

            async def intent(messages, tools):
                calls.append(messages)
                if len(calls) == 1:
                    started.set()
                    await asyncio.sleep(10)
                return ModelDecision(text="Second answer")

            env.orchestrator.analyze_intent = intent
            first = env.controller.start_turn(_request("one"))
            second = env.controller.start_turn(_request("two"))
            await started.wait()
            assert env.controller.cancel("room-1") is True
            with pytest.raises(asyncio.CancelledError):
                await first
            return await second

        turn = asyncio.run(run())

        assert turn.state == TurnState.IDLE
        assert turn.final_text == "Second answer"
        assert env.registry.of_type("text_stream_end")[0]["payload"]["text"] == "Second answer"

    def test_shutdown_cancels_outstanding_turns(self, env):
        async def run():
            started = asyncio.Event()

            async def slow_intent(messages, tools):
                started.set()
                await asyncio.sleep(10)

            env.orchestrator.analyze_intent = slow_intent
            task = env.controller.start_turn(_request("hi"))
            await started.wait()
            await env.controller.shutdown()
            return task

        task = asyncio.run(run())

        assert task.cancelled()
        assert env.controller.turns["room-1"].state == TurnState.CANCELLED
