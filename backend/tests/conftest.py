"""
Shared pytest fixtures and in-memory fakes for the relay tests.

The fakes stand in for the network-backed services (embeddings, Qdrant,
the ingestion worker) so turns, retrieval and the websocket endpoint can be
exercised without a provider.
"""

from typing import Any, Dict, List, Optional
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from starlette.websockets import WebSocketState

from config import RuntimeConfig, runtime_config
from errors import ExternalServiceError
from routers.chat_orchestration.registry import RoomRegistry
from services.vectorstore import VectorMatch, VectorRecord


# ---------------------------------------------------------------------------
# Fake services
# ---------------------------------------------------------------------------

class FakeEmbedder:
    """Deterministic embedder; records every text it was asked to embed."""

    def __init__(self, dim: int = 4, fail: bool = False):
        self.dim = dim
        self.fail = fail
        self.calls: List[str] = []

    async def embed(self, text: str) -> List[float]:
        self.calls.append(text)
        if self.fail:
            raise ExternalServiceError("Embedding request failed", service="embeddings")
        if not text or not text.strip():
            return []
        return [float(len(text) % 7 + 1)] + [0.1] * (self.dim - 1)


class FakeVectorStore:
    """In-memory namespace store with optional injected failures.

    Matches are scored from the record's seeded score (default 0.5), not
    from the query vector.
    """

    def __init__(self):
        self.namespaces: Dict[str, Dict[str, VectorRecord]] = {}
        self.scores: Dict[str, float] = {}
        self.queries: List[tuple] = []
        self.upserts: List[tuple] = []
        self.fail_filtered = False
        self.fail_all = False
        self.fail_upserts = 0

    def seed(self, namespace: str, record_id: str, score: float = 0.5, **metadata: Any) -> None:
        self.namespaces.setdefault(namespace, {})[record_id] = VectorRecord(
            id=record_id, vector=[1.0, 0.0, 0.0, 0.0], metadata=metadata
        )
        self.scores[record_id] = score

    async def upsert(self, namespace: str, records: List[VectorRecord]) -> int:
        if self.fail_upserts > 0:
            self.fail_upserts -= 1
            raise ExternalServiceError("Vector store upsert failed", service="vectorstore")
        self.upserts.append((namespace, [r.id for r in records]))
        bucket = self.namespaces.setdefault(namespace, {})
        for record in records:
            bucket[record.id] = record
        return len(records)

    async def query(
        self,
        namespace: str,
        vector: List[float],
        top_k: int = 10,
        where: Optional[Dict[str, Any]] = None,
    ) -> List[VectorMatch]:
        self.queries.append((namespace, top_k, where))
        if self.fail_all or (where and self.fail_filtered):
            raise ExternalServiceError("Vector store query failed", service="vectorstore")
        if not vector:
            return []

        matches = []
        for record in self.namespaces.get(namespace, {}).values():
            if not _matches_where(record.metadata, where):
                continue
            matches.append(VectorMatch(
                id=record.id, score=self.scores.get(record.id, 0.5), metadata=dict(record.metadata)
            ))
        matches.sort(key=lambda m: m.score, reverse=True)
        return matches[:top_k]

    async def delete_by_ids(self, namespace: str, ids: List[str]) -> None:
        bucket = self.namespaces.get(namespace, {})
        for record_id in ids:
            bucket.pop(record_id, None)


def _matches_where(metadata: Dict[str, Any], where: Optional[Dict[str, Any]]) -> bool:
    for key, value in (where or {}).items():
        if isinstance(value, dict) and "$in" in value:
            if metadata.get(key) not in value["$in"]:
                return False
        elif metadata.get(key) != value:
            return False
    return True


class FakeQueue:
    """Embedding queue stand-in that only records jobs."""

    def __init__(self):
        self.jobs = []

    def enqueue(self, job) -> None:
        self.jobs.append(job)

    def start(self) -> None:
        pass

    async def stop(self, drain_timeout: float = 5.0) -> None:
        pass

    def stats(self) -> Dict[str, int]:
        return {"pending": 0, "processed": len(self.jobs), "failed": 0, "chunks_written": 0, "running": False}


class RecordingRegistry(RoomRegistry):
    """Room registry that records broadcasts instead of writing to sockets."""

    def __init__(self, on_event=None):
        super().__init__()
        self.events: List[tuple] = []
        self.on_event = on_event

    async def broadcast(self, room_id: str, event: Dict[str, Any]) -> int:
        self.events.append((room_id, event))
        if self.on_event:
            self.on_event(room_id, event)
        return 1

    def types(self, room_id: Optional[str] = None) -> List[str]:
        return [e["type"] for r, e in self.events if room_id is None or r == room_id]

    def of_type(self, event_type: str) -> List[Dict[str, Any]]:
        return [e for _, e in self.events if e["type"] == event_type]


def make_socket(open_: bool = True):
    """Fake websocket accepted by RoomRegistry."""
    state = WebSocketState.CONNECTED if open_ else WebSocketState.DISCONNECTED
    ws = MagicMock()
    ws.client_state = state
    ws.application_state = state
    ws.send_text = AsyncMock()
    return ws


# ---------------------------------------------------------------------------
# Fake model responses
# ---------------------------------------------------------------------------

def llm_response(content: str, tool_calls=None):
    """Build a canned LLM response dict matching LLMClient.chat() format."""
    msg = {"content": content, "role": "assistant"}
    if tool_calls:
        msg["tool_calls"] = tool_calls
    return {"message": msg}


def tool_call(name: str, arguments: dict, call_id: str = "call_0"):
    """Build a single tool call dict."""
    return {
        "id": call_id,
        "function": {"name": name, "arguments": arguments},
    }


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def relay_config():
    """Fresh config with streaming and tool latency disabled."""
    config = RuntimeConfig()
    config.openai_api_key = "test-key"
    config.outreach_api_url = ""
    config.stream_delay_ms = 0
    config.stream_chunk_words = 5
    config.tool_delay_ms = 0
    config.serialize_turns = True
    config.rag_enabled = True
    config.rag_threshold = 0.3
    config.rag_min_results = 3
    config.rag_top_k = 15
    config.rag_profile_top_k = 10
    return config


@pytest.fixture
def embedder():
    return FakeEmbedder()


@pytest.fixture
def store():
    return FakeVectorStore()


@pytest.fixture
def fake_queue():
    return FakeQueue()


@pytest.fixture
def recording_registry():
    return RecordingRegistry()


@pytest.fixture(autouse=True)
def offline_publishers():
    """Publisher searches always use the mock catalogue in tests."""
    with patch.object(runtime_config, "outreach_api_url", ""):
        yield
