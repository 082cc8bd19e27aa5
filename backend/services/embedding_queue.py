"""
Embedding Ingestion Queue - background persistence of chat turns.

One asyncio.Queue consumed by one dedicated worker task, so jobs are chunked,
embedded and upserted strictly in enqueue order and never concurrently.
enqueue() never blocks the caller. A failed job is logged and the worker
moves on to the next one.

Usage:
    queue = get_embedding_queue()
    queue.start()
    queue.enqueue(EmbedJob(user_id="u1", chat_id="room", message_id="user_1", role="user", content="..."))
"""

import asyncio
import logging
import re
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple

from config import runtime_config, clamp
from logging_config import log_rag
from services.embeddings import EmbeddingService, content_hash, get_embedding_service
from services.vectorstore import VectorRecord, VectorStore, get_vector_store

logger = logging.getLogger(__name__)

PROFILE_PATTERN = re.compile(r"\b(i am|i'm|i work at|i own|my company|founder|ceo|cto|owner|co-founder)\b")
PREFERENCE_PATTERN = re.compile(r"\b(i prefer|my favorite|i like|i love|i hate|please use|tone|style)\b")

# Stored text is truncated; the full chunk is only used for the embedding
MAX_STORED_CHARS = 600


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass(frozen=True)
class EmbedJob:
    user_id: str
    chat_id: str
    message_id: str
    role: str
    content: str
    created_at: str = field(default_factory=_utc_now_iso)


def chunk_text(text: str, chunk_size: int = 800, overlap: int = 100) -> List[str]:
    """Split text into overlapping word windows.

    chunk_size is clamped to 200..1200 words and overlap to 0..chunk_size/2.
    """
    chunk_size = clamp(chunk_size, 200, 1200)
    overlap = clamp(overlap, 0, chunk_size // 2)
    step = chunk_size - overlap

    words = text.split()
    chunks = []
    for start in range(0, len(words), step):
        window = words[start:start + chunk_size]
        if not window:
            break
        chunks.append(" ".join(window))
        if start + chunk_size >= len(words):
            break
    return chunks


def detect_flags(text: str) -> Tuple[bool, bool]:
    """Return (is_profile, is_preference) for a chunk of text."""
    lowered = text.lower()
    return bool(PROFILE_PATTERN.search(lowered)), bool(PREFERENCE_PATTERN.search(lowered))


class EmbeddingQueue:
    """Single-consumer FIFO that writes chat turns into the vector store."""

    def __init__(
        self,
        embedder: Optional[EmbeddingService] = None,
        store: Optional[VectorStore] = None,
        config=None,
    ):
        self._embedder = embedder
        self._store = store
        self.config = config or runtime_config
        self._queue: "asyncio.Queue[EmbedJob]" = asyncio.Queue()
        self._worker: Optional[asyncio.Task] = None
        self._processed = 0
        self._failed = 0
        self._chunks_written = 0

    @property
    def embedder(self) -> EmbeddingService:
        if self._embedder is None:
            self._embedder = get_embedding_service()
        return self._embedder

    @property
    def store(self) -> VectorStore:
        if self._store is None:
            self._store = get_vector_store()
        return self._store

    @property
    def running(self) -> bool:
        return self._worker is not None and not self._worker.done()

    def start(self) -> None:
        """Start the worker task if it is not already running."""
        if self.running:
            return
        # asyncio.Queue binds to the running loop on first use; rebuild if the
        # previous worker lived on a loop that has since closed.
        if self._worker is not None and self._queue.empty():
            self._queue = asyncio.Queue()
        self._worker = asyncio.create_task(self._run(), name="embedding-queue-worker")
        logger.info("Embedding queue worker started")

    async def stop(self, drain_timeout: float = 5.0) -> None:
        """Give pending jobs up to drain_timeout seconds, then cancel the worker."""
        if self._worker is None:
            return
        if not self._queue.empty() and self.running:
            try:
                await asyncio.wait_for(self._queue.join(), timeout=drain_timeout)
            except asyncio.TimeoutError:
                logger.warning(f"Embedding queue stopped with {self._queue.qsize()} jobs pending")

        self._worker.cancel()
        try:
            await self._worker
        except asyncio.CancelledError:
            pass
        self._worker = None
        logger.info("Embedding queue worker stopped")

    def enqueue(self, job: EmbedJob) -> None:
        """Append a job; never blocks. Starts the worker lazily."""
        self._queue.put_nowait(job)
        logger.debug(
            f"Enqueued messageId={job.message_id} userId={job.user_id} "
            f"role={job.role} size={len(job.content)}"
        )
        if not self.running:
            self.start()

    async def join(self) -> None:
        """Wait until every enqueued job has been processed."""
        await self._queue.join()

    def stats(self) -> Dict[str, int]:
        return {
            "pending": self._queue.qsize(),
            "processed": self._processed,
            "failed": self._failed,
            "chunks_written": self._chunks_written,
            "running": self.running,
        }

    async def _run(self) -> None:
        while True:
            job = await self._queue.get()
            start = time.time()
            try:
                written = await self.process(job)
                self._processed += 1
                self._chunks_written += written
                log_rag(
                    logger, "ingest",
                    message=job.message_id, chunks=written, ms=int((time.time() - start) * 1000),
                )
            except asyncio.CancelledError:
                raise
            except Exception as e:
                self._failed += 1
                logger.error(f"Embedding job failed messageId={job.message_id}: {e}")
            finally:
                self._queue.task_done()

    async def process(self, job: EmbedJob) -> int:
        """Chunk, embed and upsert one job as a single batch. Returns chunks written."""
        if not job.content or not job.content.strip():
            return 0

        size, overlap = self.config.chunking()
        records = []
        for index, chunk in enumerate(chunk_text(job.content, size, overlap)):
            try:
                vector = await self.embedder.embed(chunk)
            except Exception as e:
                logger.warning(f"Skipping chunk {index} of {job.message_id}: {e}")
                continue
            if not vector:
                continue

            chunk_hash = content_hash(chunk)
            is_profile, is_preference = detect_flags(chunk)
            text = chunk if len(chunk) <= MAX_STORED_CHARS else f"{chunk[:MAX_STORED_CHARS]}…"
            records.append(VectorRecord(
                id=f"{job.message_id}_{index}_{chunk_hash}",
                vector=vector,
                metadata={
                    "userId": job.user_id,
                    "chatId": job.chat_id,
                    "messageId": job.message_id,
                    "role": job.role,
                    "createdAt": job.created_at,
                    "tags": ["chat"],
                    "isProfile": is_profile,
                    "isPreference": is_preference,
                    "hash": chunk_hash,
                    "text": text,
                },
            ))

        if not records:
            return 0
        return await self.store.upsert(job.user_id, records)


_embedding_queue: Optional[EmbeddingQueue] = None


def get_embedding_queue() -> EmbeddingQueue:
    """Get the shared embedding queue."""
    global _embedding_queue
    if _embedding_queue is None:
        _embedding_queue = EmbeddingQueue()
    return _embedding_queue


def reset_embedding_queue() -> None:
    global _embedding_queue
    _embedding_queue = None
