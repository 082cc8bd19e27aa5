"""
Relay Chat Protocol - websocket envelope and payload models

Every frame in either direction is an envelope:
    {"type": ..., "payload": {...}, "timestamp": <ms>, "message_id": "<prefix>_<ms>"}

Inbound envelopes are validated with pydantic; anything that does not parse
is answered with an "Invalid message format" error event.
"""

import time
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from errors import ProtocolError


class MessageType(str, Enum):
    # Connection
    CONNECTION_ESTABLISHED = "connection_established"
    HEARTBEAT = "heartbeat"
    ERROR = "error"

    # Inbound
    JOIN_CHAT = "join_chat"
    LEAVE_CHAT = "leave_chat"
    CHAT_MESSAGE = "chat_message"
    STOP_GENERATION = "stop_generation"

    # Turn output
    MESSAGE_RECEIVED = "message_received"
    TEXT_STREAM = "text_stream"
    TEXT_STREAM_END = "text_stream_end"
    FUNCTION_CALL = "function_call"
    FUNCTION_CALL_START = "function_call_start"
    FUNCTION_CALL_END = "function_call_end"
    FUNCTION_RESULT = "function_result"
    GENERATION_STOPPED = "generation_stopped"

    # Tool UI payloads
    PUBLISHERS_DATA = "publishers_data"
    PUBLISHER_DETAILS = "publisher_details"
    CART_DATA = "cart_data"
    CART_UPDATED = "cart_updated"
    CART_CLEARED = "cart_cleared"


INBOUND_TYPES = {
    MessageType.JOIN_CHAT,
    MessageType.LEAVE_CHAT,
    MessageType.CHAT_MESSAGE,
    MessageType.STOP_GENERATION,
    MessageType.HEARTBEAT,
}


class _Payload(BaseModel):
    model_config = ConfigDict(extra="ignore")


class Envelope(_Payload):
    type: str
    payload: Dict[str, Any] = Field(default_factory=dict)
    timestamp: Optional[int] = None
    message_id: Optional[str] = None


class JoinPayload(_Payload):
    chat_id: str = Field(min_length=1)
    user_id: Optional[str] = None


class RoomPayload(_Payload):
    chat_id: str = Field(min_length=1)


class CartSnapshot(_Payload):
    items: List[Dict[str, Any]] = Field(default_factory=list)
    totalItems: int = 0
    totalPrice: float = 0.0


class MessageBody(_Payload):
    role: str
    content: str = ""
    name: Optional[str] = None
    # Some clients nest the cart inside the message itself
    cartData: Optional[CartSnapshot] = None


class RoomMessage(_Payload):
    room_id: Optional[str] = None
    payload: MessageBody


class ChatPayload(_Payload):
    chat_id: str = Field(min_length=1)
    user_id: Optional[str] = None
    message: RoomMessage
    selectedDocuments: Optional[List[str]] = None
    cartData: Optional[CartSnapshot] = None

    @property
    def cart_items(self) -> List[Dict[str, Any]]:
        cart = self.message.payload.cartData or self.cartData
        return list(cart.items) if cart else []


def now_ms() -> int:
    return int(time.time() * 1000)


def make_event(event_type: str, payload: Dict[str, Any], prefix: str = "msg") -> Dict[str, Any]:
    """Build an outbound envelope."""
    ts = now_ms()
    if isinstance(event_type, MessageType):
        event_type = event_type.value
    return {
        "type": event_type,
        "payload": payload,
        "timestamp": ts,
        "message_id": f"{prefix}_{ts}",
    }


def error_event(message: str) -> Dict[str, Any]:
    return make_event(MessageType.ERROR, {"error": message})


def parse_envelope(raw: Any) -> Envelope:
    """Validate a decoded inbound frame.

    Raises:
        ProtocolError: frame is not an envelope or its type is not accepted
    """
    if not isinstance(raw, dict):
        raise ProtocolError("Invalid message format", details="Frame must be a JSON object")
    try:
        envelope = Envelope.model_validate(raw)
    except ValueError as e:
        raise ProtocolError("Invalid message format", details=str(e)) from None
    if envelope.type not in {t.value for t in INBOUND_TYPES}:
        raise ProtocolError(f"Unknown message type: {envelope.type}", message_type=envelope.type)
    return envelope
