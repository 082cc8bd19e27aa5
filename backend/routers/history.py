"""
Relay History Router
Inspect, clear and summarize in-memory room histories.

Histories live only in process memory (see ChatHistoryStore); these
endpoints operate on the same store the websocket turns append to.
"""

import logging
import re

from fastapi import APIRouter, HTTPException

from errors import NotFoundError, error_response, success_response
from services.summarizer import ConversationSummarizer

from .chat import get_chat_runtime

# Room id validation pattern: alphanumeric, hyphens, underscores, max 128 chars
_ROOM_ID_PATTERN = re.compile(r"^[a-zA-Z0-9_-]{1,128}$")

logger = logging.getLogger(__name__)

router = APIRouter()


def _validate_room_id(chat_id: str) -> None:
    if not _ROOM_ID_PATTERN.match(chat_id):
        raise HTTPException(status_code=400, detail="Invalid chat id")


def _room_not_found(chat_id: str) -> HTTPException:
    error = NotFoundError(f"No history for chat {chat_id}", resource_type="room", resource_id=chat_id)
    return HTTPException(status_code=404, detail=error_response(error)["error"])


@router.get("/history/stats")
async def history_stats():
    """Room and message counts across all live histories"""
    return get_chat_runtime().history.stats()


@router.delete("/history/{chat_id}")
async def clear_history(chat_id: str):
    """Drop one room's history"""
    _validate_room_id(chat_id)
    if not get_chat_runtime().history.clear(chat_id):
        raise _room_not_found(chat_id)
    logger.info(f"History cleared for chat {chat_id}")
    return success_response(chat_id=chat_id)


@router.post("/history/{chat_id}/summary")
async def summarize_history(chat_id: str):
    """Summarize one room's history with the summary model"""
    _validate_room_id(chat_id)
    messages = get_chat_runtime().history.snapshot(chat_id)
    if not messages:
        raise _room_not_found(chat_id)

    summary = await ConversationSummarizer().summarize(messages)
    return success_response(chat_id=chat_id, message_count=len(messages), summary=summary)
