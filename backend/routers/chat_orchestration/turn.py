"""
Relay Turn Controller - one inbound user message to one final response

A turn runs as its own asyncio task:
1. Append the user message to history and enqueue its ingestion
2. Build the system prompt (base + retrieval context + cart snapshot)
3. Intent call (tools disabled for document tasks)
4. Stream narration; run the selected tool, if any, and summarize its result
5. Persist the final assistant message and enqueue its ingestion

Any uncaught failure gets one acknowledge-error call; if that fails too a
plain error event is broadcast. stop_generation cancels the turn task, so
the pending await raises CancelledError and nothing further is broadcast.
"""

import asyncio
import json
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Set

from config import runtime_config
from errors import log_error
from logging_config import log_message_in, log_message_out
from services.embedding_queue import EmbedJob, EmbeddingQueue
from tools.registry import ToolRegistry, register_all_tools

from ..chat_prompts import SYSTEM_PROMPT, build_cart_context, is_document_task
from ..chat_protocol import MessageType, error_event, make_event
from ..chat_streaming import stream_text
from .context import RetrievalContextAssembler
from .history import ChatHistoryStore, ChatMessage, Role
from .orchestrator import NO_RESPONSE_MESSAGE, LLMOrchestrator, ModelDecision
from .registry import RoomRegistry
from .tool_dispatch import ToolDispatcher

logger = logging.getLogger(__name__)


class TurnState(str, Enum):
    IDLE = "idle"
    ANALYZING_INTENT = "analyzing_intent"
    TOOL_EXECUTING = "tool_executing"
    SUMMARIZING = "summarizing"
    RESPONDING = "responding"
    CANCELLED = "cancelled"
    FAILED = "failed"


@dataclass
class TurnRequest:
    """Everything a turn needs, resolved by the transport before it starts."""

    room_id: str
    content: str
    user_id: Optional[str] = None
    selected_documents: List[str] = field(default_factory=list)
    cart_items: List[Dict[str, Any]] = field(default_factory=list)
    cart_total_items: Optional[int] = None
    cart_total_price: Optional[float] = None


@dataclass
class Turn:
    """Progress record of one turn."""

    room_id: str
    state: TurnState = TurnState.IDLE
    states: List[TurnState] = field(default_factory=list)
    tools_used: List[str] = field(default_factory=list)
    final_text: str = ""
    error: Optional[str] = None

    def transition(self, state: TurnState) -> None:
        self.state = state
        self.states.append(state)


class CancelScope:
    """Cancellation handle owning the task that runs one turn of a room."""

    def __init__(self, room_id: str, task: Optional[asyncio.Task] = None):
        self.room_id = room_id
        self.task = task
        self.cancelled = False

    def cancel(self) -> bool:
        """Cancel the turn task. Returns False if there was nothing to cancel."""
        if self.task is None or self.task.done():
            return False
        self.cancelled = True
        self.task.cancel()
        return True


class TurnController:
    """Runs conversational turns for every room.

    Rooms are independent. Within a room, turns run one at a time when
    serialize_turns is enabled; each running turn owns the room's only
    CancelScope.
    """

    def __init__(
        self,
        registry: RoomRegistry,
        history: ChatHistoryStore,
        queue: EmbeddingQueue,
        assembler: RetrievalContextAssembler,
        orchestrator: Optional[LLMOrchestrator] = None,
        dispatcher: Optional[ToolDispatcher] = None,
        config=None,
    ):
        self.registry = registry
        self.history = history
        self.queue = queue
        self.assembler = assembler
        self.config = config or runtime_config
        self.orchestrator = orchestrator or LLMOrchestrator(self.config)
        self.dispatcher = dispatcher or ToolDispatcher(registry.broadcast, self.config)

        self._scopes: Dict[str, CancelScope] = {}
        self._locks: Dict[str, asyncio.Lock] = {}
        self._tasks: Set[asyncio.Task] = set()
        self.turns: Dict[str, Turn] = {}

        register_all_tools()

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def start_turn(self, request: TurnRequest) -> asyncio.Task:
        """Run a turn in the background and return its task."""
        task = asyncio.create_task(self.run_turn(request), name=f"turn:{request.room_id}")
        self._tasks.add(task)
        task.add_done_callback(self._on_turn_done)
        return task

    async def run_turn(self, request: TurnRequest) -> Turn:
        if not self.config.serialize_turns:
            return await self._run_scoped(request)

        lock = self._locks.setdefault(request.room_id, asyncio.Lock())
        async with lock:
            return await self._run_scoped(request)

    def cancel(self, room_id: str) -> bool:
        """Cancel the room's running turn. Queued turns are not affected."""
        scope = self._scopes.pop(room_id, None)
        if scope is None:
            return False
        cancelled = scope.cancel()
        if cancelled:
            logger.info(f"Generation stopped for room {room_id}")
        return cancelled

    def is_running(self, room_id: str) -> bool:
        return room_id in self._scopes

    async def shutdown(self) -> None:
        """Cancel every outstanding turn and wait for them to unwind."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    def _on_turn_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(f"Turn task {task.get_name()} failed: {error}", exc_info=error)

    async def _run_scoped(self, request: TurnRequest) -> Turn:
        room_id = request.room_id
        scope = CancelScope(room_id, asyncio.current_task())
        self._scopes[room_id] = scope
        turn = Turn(room_id=room_id)
        self.turns[room_id] = turn
        try:
            await self._process(request, turn)
            return turn
        finally:
            if self._scopes.get(room_id) is scope:
                del self._scopes[room_id]

    # -------------------------------------------------------------------------
    # Pipeline
    # -------------------------------------------------------------------------

    async def _process(self, request: TurnRequest, turn: Turn) -> None:
        room_id = request.room_id
        owner = request.user_id
        log_message_in(
            logger, request.content,
            room=room_id, user=owner or "-", docs=len(request.selected_documents),
            cart=len(request.cart_items),
        )

        self.history.append(room_id, ChatMessage(Role.USER, request.content))
        self._ingest(owner, room_id, "user", request.content)

        try:
            turn.transition(TurnState.ANALYZING_INTENT)
            conversation = await self._build_conversation(request)
            tools_enabled = not is_document_task(request.content, request.selected_documents)
            tools = ToolRegistry.get_tools_schema() if tools_enabled else None
            if not tools_enabled:
                logger.info(f"Tools disabled for document task in room {room_id}")

            decision = await self.orchestrator.analyze_intent(conversation, tools)
            if decision.is_empty:
                turn.error = NO_RESPONSE_MESSAGE
                turn.transition(TurnState.FAILED)
                await self.registry.broadcast(room_id, error_event(NO_RESPONSE_MESSAGE))
                return

            if decision.text:
                await self._stream(room_id, decision.text)

            if decision.has_tool_call:
                await self._run_tool_branch(request, turn, conversation, decision)
            else:
                turn.transition(TurnState.RESPONDING)
                self._persist_final(owner, room_id, decision.text, turn)

            turn.transition(TurnState.IDLE)
            log_message_out(logger, room_id, tools_used=turn.tools_used, chars=len(turn.final_text))

        except asyncio.CancelledError:
            turn.transition(TurnState.CANCELLED)
            logger.info(f"Turn cancelled in room {room_id}")
            raise
        except Exception as e:
            turn.error = str(e)
            turn.transition(TurnState.FAILED)
            log_error(logger, e, context=f"Turn {room_id}")
            await self._recover(room_id, e)

    async def _build_conversation(self, request: TurnRequest) -> List[Dict[str, Any]]:
        system_prompt = str(SYSTEM_PROMPT)

        context = await self.assembler.build(request.user_id, request.content, request.selected_documents)
        if context:
            system_prompt += "\n\n" + context.text

        system_prompt += build_cart_context(
            request.cart_items, request.cart_total_items, request.cart_total_price
        )

        conversation = [{"role": Role.SYSTEM.value, "content": system_prompt}]
        conversation.extend(m.to_dict() for m in self.history.snapshot(request.room_id))
        return conversation

    async def _run_tool_branch(
        self,
        request: TurnRequest,
        turn: Turn,
        conversation: List[Dict[str, Any]],
        decision: ModelDecision,
    ) -> None:
        room_id = request.room_id
        call = decision.tool_call

        await self.registry.broadcast(
            room_id,
            make_event(MessageType.FUNCTION_CALL, {"name": call.name, "args": call.args, "role": "function"}, "func"),
        )

        turn.transition(TurnState.TOOL_EXECUTING)
        outcome = await self.dispatcher.dispatch(room_id, call, request.cart_items)
        turn.tools_used.append(call.name)

        assistant_content = decision.text or f"I'm using the {call.name} tool to help with your request."
        conversation.append({"role": Role.ASSISTANT.value, "content": assistant_content})
        conversation.append({
            "role": Role.USER.value,
            "content": (
                f"The {call.name} function returned: {json.dumps(outcome.result, indent=2, default=str)}. "
                "Please summarize the results."
            ),
        })

        self.history.append(room_id, ChatMessage(Role.ASSISTANT, assistant_content))
        self.history.append(
            room_id, ChatMessage(Role.FUNCTION, json.dumps(outcome.result, default=str), name=call.name)
        )

        turn.transition(TurnState.SUMMARIZING)
        summary = await self.orchestrator.summarize(conversation)
        await self._stream(room_id, summary)
        self._persist_final(request.user_id, room_id, summary, turn)

    async def _recover(self, room_id: str, error: Exception) -> None:
        """Ask the model to acknowledge the failure; fall back to an error event."""
        error_message = str(error) or error.__class__.__name__
        messages = [{"role": Role.SYSTEM.value, "content": str(SYSTEM_PROMPT)}]
        messages.extend(m.to_dict() for m in self.history.snapshot(room_id))
        messages.append({
            "role": Role.USER.value,
            "content": (
                f"I encountered an error while processing your request: {error_message}. "
                "Please acknowledge this error and explain to the user what happened."
            ),
        })

        try:
            text = await self.orchestrator.acknowledge_error(messages)
            await self._stream(room_id, text)
            self.history.append(room_id, ChatMessage(Role.ASSISTANT, text))
        except asyncio.CancelledError:
            raise
        except Exception as ack_error:
            logger.warning(f"Error acknowledgment failed for room {room_id}: {ack_error}")
            await self.registry.broadcast(room_id, error_event(f"Error: {error_message}"))

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    async def _stream(self, room_id: str, text: str) -> None:
        await stream_text(
            self.registry.broadcast,
            room_id,
            text,
            words_per_chunk=self.config.stream_chunk_words,
            delay_ms=self.config.stream_delay_ms,
        )

    def _persist_final(self, owner: Optional[str], room_id: str, text: str, turn: Turn) -> None:
        turn.final_text = text
        self.history.append(room_id, ChatMessage(Role.ASSISTANT, text))
        self._ingest(owner, room_id, "assistant", text)

    def _ingest(self, owner: Optional[str], room_id: str, role: str, content: str) -> None:
        """Fire-and-forget ingestion; rooms without an owner are not remembered."""
        if not owner or not content:
            return
        self.queue.enqueue(EmbedJob(
            user_id=owner,
            chat_id=room_id,
            message_id=f"{role}_{int(time.time() * 1000)}",
            role=role,
            content=content,
        ))
