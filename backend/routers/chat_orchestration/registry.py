"""
Relay Room Registry - websocket membership and room-scoped broadcast

Tracks which live connections belong to which rooms and the owning user of
each room. Unknown rooms and connections are safe no-ops everywhere.
"""

import json
import logging
from typing import Any, Dict, List, Optional, Set

from fastapi import WebSocket
from starlette.websockets import WebSocketState

logger = logging.getLogger(__name__)


def _is_open(websocket: WebSocket) -> bool:
    return (
        websocket.client_state == WebSocketState.CONNECTED
        and websocket.application_state == WebSocketState.CONNECTED
    )


class RoomRegistry:
    def __init__(self):
        self._rooms: Dict[str, Set[WebSocket]] = {}
        self._memberships: Dict[WebSocket, Set[str]] = {}
        self._owners: Dict[str, str] = {}

    def connect(self, websocket: WebSocket) -> None:
        """Track a connection that has not joined any room yet."""
        self._memberships.setdefault(websocket, set())

    def join(self, websocket: WebSocket, room_id: str) -> None:
        """Add a connection to a room (idempotent)."""
        self._rooms.setdefault(room_id, set()).add(websocket)
        self._memberships.setdefault(websocket, set()).add(room_id)

    def associate_owner(self, room_id: str, user_id: str) -> bool:
        """Record the room's owning user. The first id wins; returns True if recorded."""
        if not user_id or room_id in self._owners:
            return False
        self._owners[room_id] = user_id
        logger.info(f"Room {room_id} associated with user {user_id}")
        return True

    def owner_of(self, room_id: str) -> Optional[str]:
        return self._owners.get(room_id)

    def leave_room(self, websocket: WebSocket, room_id: str) -> None:
        """Remove a connection from one room; the room entry stays addressable."""
        self._rooms.get(room_id, set()).discard(websocket)
        rooms = self._memberships.get(websocket)
        if rooms is not None:
            rooms.discard(room_id)

    def leave(self, websocket: WebSocket) -> List[str]:
        """Remove a connection from every room it joined. Returns those room ids."""
        rooms = self._memberships.pop(websocket, set())
        for room_id in rooms:
            self._rooms.get(room_id, set()).discard(websocket)
        return sorted(rooms)

    async def broadcast(self, room_id: str, event: Dict[str, Any]) -> int:
        """Send an event to every open connection in a room.

        Best effort, at most once: closed connections are skipped and send
        failures are logged, never retried. Returns the number delivered.
        """
        members = list(self._rooms.get(room_id, ()))
        if not members:
            return 0

        data = json.dumps(event, default=str)
        delivered = 0
        for websocket in members:
            if not _is_open(websocket):
                continue
            try:
                await websocket.send_text(data)
                delivered += 1
            except Exception as e:
                logger.debug(f"Broadcast to room {room_id} skipped a connection: {e}")
        return delivered

    def members(self, room_id: str) -> List[WebSocket]:
        return list(self._rooms.get(room_id, ()))

    def room_ids(self) -> List[str]:
        return list(self._rooms.keys())

    def connection_count(self) -> int:
        return len(self._memberships)
