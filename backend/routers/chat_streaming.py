"""
Relay Chat Streaming - word-chunked text streaming to a room

Text is broadcast as text_stream events of a fixed number of words with a
small delay between chunks, followed by one text_stream_end carrying the
full text.
"""

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Dict, List

from .chat_protocol import MessageType, make_event

logger = logging.getLogger(__name__)

BroadcastFn = Callable[[str, Dict[str, Any]], Awaitable[int]]


def chunk_words(text: str, words_per_chunk: int = 5) -> List[str]:
    """Split text into chunks of N words; every chunk but the last keeps a trailing space."""
    words = text.split()
    if not words:
        return []
    size = max(1, words_per_chunk)
    chunks = [" ".join(words[i:i + size]) for i in range(0, len(words), size)]
    return [chunk + " " for chunk in chunks[:-1]] + [chunks[-1]]


async def stream_text(
    broadcast: BroadcastFn,
    room_id: str,
    text: str,
    words_per_chunk: int = 5,
    delay_ms: int = 50,
) -> None:
    """Stream text to a room chunk by chunk, then send the end marker.

    Cancellation between chunks stops the stream; no end marker is sent.
    """
    if not text:
        return

    chunks = chunk_words(text, words_per_chunk)
    start_time = time.time()

    for i, chunk in enumerate(chunks):
        await broadcast(
            room_id,
            make_event(MessageType.TEXT_STREAM, {"text": chunk, "isComplete": i == len(chunks) - 1}, "stream"),
        )
        if delay_ms > 0:
            await asyncio.sleep(delay_ms / 1000.0)

    await broadcast(room_id, make_event(MessageType.TEXT_STREAM_END, {"text": text}, "stream_end"))

    # Log streaming stats
    elapsed = time.time() - start_time
    if elapsed > 0:
        logger.debug(f"[STREAM] room={room_id} {len(chunks)} chunks, {len(text)} chars in {elapsed:.2f}s")
