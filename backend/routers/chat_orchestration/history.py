"""
Relay Chat History - per-room ordered message log

In-memory only. Each room's log grows by appends and is dropped whole after
an idle window; there is no message-count cap.
"""

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, List, Optional

logger = logging.getLogger(__name__)


class Role(str, Enum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    FUNCTION = "function"


@dataclass(frozen=True)
class ChatMessage:
    """One immutable history entry. name is set on function results."""

    role: Role
    content: str
    name: Optional[str] = None

    def to_dict(self) -> Dict[str, str]:
        message = {"role": self.role.value, "content": self.content}
        if self.name:
            message["name"] = self.name
        return message


@dataclass
class _RoomLog:
    messages: List[ChatMessage] = field(default_factory=list)
    last_activity: float = 0.0


class ChatHistoryStore:
    """Append-only per-room message logs with idle eviction.

    Every operation is synchronous with no await points, so callers on the
    event loop never observe a half-applied append or eviction.
    """

    def __init__(self, idle_seconds: float = 3600, clock: Callable[[], float] = time.time):
        self.idle_seconds = idle_seconds
        self._clock = clock
        self._rooms: Dict[str, _RoomLog] = {}

    def append(self, room_id: str, message: ChatMessage) -> None:
        log = self._rooms.get(room_id)
        if log is None:
            log = _RoomLog()
            self._rooms[room_id] = log
        log.messages.append(message)
        log.last_activity = self._clock()

    def snapshot(self, room_id: str) -> List[ChatMessage]:
        """Return a copy of the room's log; later appends do not affect it."""
        log = self._rooms.get(room_id)
        return list(log.messages) if log else []

    def evict_idle(self, now: Optional[float] = None) -> List[str]:
        """Drop every room idle for longer than the window. Returns evicted ids."""
        now = self._clock() if now is None else now
        evicted = [
            room_id for room_id, log in self._rooms.items()
            if now - log.last_activity > self.idle_seconds
        ]
        for room_id in evicted:
            del self._rooms[room_id]
        if evicted:
            logger.info(f"Evicted {len(evicted)} idle chat histories")
        return evicted

    def clear(self, room_id: str) -> bool:
        return self._rooms.pop(room_id, None) is not None

    def active_room_ids(self) -> List[str]:
        return list(self._rooms.keys())

    def total_message_count(self) -> int:
        return sum(len(log.messages) for log in self._rooms.values())

    def stats(self) -> Dict[str, object]:
        return {
            "totalChats": len(self._rooms),
            "totalMessages": self.total_message_count(),
            "chatIds": self.active_room_ids(),
        }
