"""
Relay Chat Router - WebSocket Handler

Real-time conversational relay: clients join rooms, send messages and receive
streamed responses plus tool UI events. This module handles the WebSocket
endpoint and delegates each turn to chat_orchestration/.

Architecture:
- chat.py: WebSocket endpoint, envelope dispatch, shared runtime
- chat_protocol.py: Envelope and payload models, outbound event builder
- chat_prompts.py: System prompt, document-task and cart heuristics
- chat_streaming.py: Word-chunked text streaming
- chat_orchestration/: Registry, history, retrieval, model calls, turns
- chat_executors/: Tool execution modules
"""

import json
import logging
from typing import Optional

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from pydantic import ValidationError as PydanticValidationError

from config import runtime_config
from errors import ProtocolError
from services.embedding_queue import EmbeddingQueue, get_embedding_queue
from services.embeddings import get_embedding_service
from services.vectorstore import get_vector_store
from tools.registry import register_all_tools

from .chat_orchestration import (
    ChatHistoryStore,
    LLMOrchestrator,
    RetrievalContextAssembler,
    Role,
    RoomRegistry,
    TurnController,
    TurnRequest,
)
from .chat_protocol import (
    ChatPayload,
    Envelope,
    JoinPayload,
    MessageType,
    RoomPayload,
    error_event,
    make_event,
    parse_envelope,
)

logger = logging.getLogger(__name__)

router = APIRouter()

# Initialize tool registry at module load
register_all_tools()

WELCOME_MESSAGE = "Welcome to AI Orchestrator WebSocket server!"
INVALID_FORMAT = "Invalid message format"


class ChatRuntime:
    """Process-wide chat state shared by the websocket endpoint and HTTP routes."""

    def __init__(
        self,
        registry: Optional[RoomRegistry] = None,
        history: Optional[ChatHistoryStore] = None,
        queue: Optional[EmbeddingQueue] = None,
        assembler: Optional[RetrievalContextAssembler] = None,
        orchestrator: Optional[LLMOrchestrator] = None,
        config=None,
    ):
        self.config = config or runtime_config
        self.registry = registry or RoomRegistry()
        self.history = history or ChatHistoryStore(idle_seconds=self.config.history_idle_seconds)
        self.queue = queue or get_embedding_queue()
        self.assembler = assembler or RetrievalContextAssembler(
            get_embedding_service(), get_vector_store(), self.config
        )
        self.controller = TurnController(
            registry=self.registry,
            history=self.history,
            queue=self.queue,
            assembler=self.assembler,
            orchestrator=orchestrator,
            config=self.config,
        )


_runtime: Optional[ChatRuntime] = None


def get_chat_runtime() -> ChatRuntime:
    global _runtime
    if _runtime is None:
        _runtime = ChatRuntime()
    return _runtime


def set_chat_runtime(runtime: Optional[ChatRuntime]) -> None:
    """Replace the shared runtime (None rebuilds it on next use)."""
    global _runtime
    _runtime = runtime


def _get_client_ip(websocket: WebSocket) -> str:
    """Extract client IP from WebSocket, handling proxies."""
    forwarded = websocket.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()

    real_ip = websocket.headers.get("X-Real-IP")
    if real_ip:
        return real_ip

    if websocket.client:
        return websocket.client.host

    return "unknown"


@router.websocket("/ws/chat")
async def chat_websocket(websocket: WebSocket):
    """WebSocket endpoint for chat."""
    await websocket.accept()
    runtime = get_chat_runtime()
    client_ip = _get_client_ip(websocket)

    runtime.registry.connect(websocket)
    logger.info(f"Chat connected from {client_ip}")
    await websocket.send_json(
        make_event(MessageType.CONNECTION_ESTABLISHED, {"message": WELCOME_MESSAGE})
    )

    try:
        while True:
            raw = await websocket.receive_text()
            try:
                envelope = parse_envelope(json.loads(raw))
            except json.JSONDecodeError:
                logger.warning(f"Unparseable frame from {client_ip}")
                await websocket.send_json(error_event(INVALID_FORMAT))
                continue
            except ProtocolError as e:
                logger.warning(f"Rejected frame from {client_ip}: {e}")
                await websocket.send_json(error_event(e.message))
                continue

            try:
                await handle_envelope(websocket, envelope, runtime)
            except PydanticValidationError as e:
                logger.warning(f"Invalid {envelope.type} payload from {client_ip}: {e.error_count()} errors")
                await websocket.send_json(error_event(INVALID_FORMAT))

    except WebSocketDisconnect:
        rooms = runtime.registry.leave(websocket)
        logger.info(f"Chat disconnected: {client_ip} (rooms={len(rooms)})")


async def handle_envelope(websocket: WebSocket, envelope: Envelope, runtime: ChatRuntime) -> None:
    """Dispatch one validated inbound envelope."""
    message_type = envelope.type
    registry = runtime.registry

    if message_type == MessageType.JOIN_CHAT:
        join = JoinPayload.model_validate(envelope.payload)
        registry.join(websocket, join.chat_id)
        if join.user_id:
            registry.associate_owner(join.chat_id, join.user_id)
        logger.info(f"Joined room {join.chat_id} (user={join.user_id or '-'})")

    elif message_type == MessageType.LEAVE_CHAT:
        room = RoomPayload.model_validate(envelope.payload)
        registry.leave_room(websocket, room.chat_id)

    elif message_type == MessageType.CHAT_MESSAGE:
        await handle_chat_message(ChatPayload.model_validate(envelope.payload), envelope, runtime)

    elif message_type == MessageType.STOP_GENERATION:
        room = RoomPayload.model_validate(envelope.payload)
        if runtime.controller.cancel(room.chat_id):
            await registry.broadcast(
                room.chat_id, make_event(MessageType.GENERATION_STOPPED, {"chat_id": room.chat_id})
            )

    elif message_type == MessageType.HEARTBEAT:
        await websocket.send_json(make_event(MessageType.HEARTBEAT, {}))


async def handle_chat_message(payload: ChatPayload, envelope: Envelope, runtime: ChatRuntime) -> None:
    room_id = payload.chat_id
    registry = runtime.registry
    message = payload.message.payload

    if payload.user_id:
        registry.associate_owner(room_id, payload.user_id)

    await registry.broadcast(
        room_id, make_event(MessageType.MESSAGE_RECEIVED, envelope.payload.get("message") or {})
    )

    if message.role != Role.USER.value or not message.content.strip():
        return

    cart = message.cartData or payload.cartData
    runtime.controller.start_turn(TurnRequest(
        room_id=room_id,
        content=message.content,
        user_id=registry.owner_of(room_id),
        selected_documents=list(payload.selectedDocuments or []),
        cart_items=payload.cart_items,
        cart_total_items=cart.totalItems if cart and cart.items else None,
        cart_total_price=cart.totalPrice if cart and cart.items else None,
    ))
