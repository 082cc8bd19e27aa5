"""
Relay Vector Store - Qdrant-based memory storage

Single collection with namespace as payload field: one namespace per user for
conversational facts and `user_<id>_docs` for document chunks.

Qdrant requires point IDs to be unsigned integers or UUIDs, so string record
ids are mapped through uuid5 and the original id is kept in the payload as
`record_id`. Re-upserting the same record id overwrites the same point.
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from qdrant_client import QdrantClient
from qdrant_client.models import (
    Distance,
    FieldCondition,
    Filter,
    MatchAny,
    MatchValue,
    PayloadSchemaType,
    PointStruct,
    VectorParams,
)

from config import runtime_config
from errors.exceptions import ExternalServiceError

logger = logging.getLogger(__name__)

# Fields the store owns; never exposed as record metadata
_RESERVED_FIELDS = ("namespace", "record_id")

# Payload indexes for fast filtering
PAYLOAD_INDEXES = {
    "namespace": PayloadSchemaType.KEYWORD,
    "record_id": PayloadSchemaType.KEYWORD,
    "documentId": PayloadSchemaType.KEYWORD,
    "isProfile": PayloadSchemaType.BOOL,
}

_ID_NAMESPACE = uuid.UUID("6f1c3a52-8f0e-4d43-9d0b-3c5e2f7a9b10")


def record_id_to_point_id(record_id: str) -> str:
    """Map an arbitrary string id to a stable Qdrant UUID."""
    return str(uuid.uuid5(_ID_NAMESPACE, record_id))


def docs_namespace(user_id: str) -> str:
    """Namespace holding a user's document chunks."""
    return f"user_{user_id}_docs"


@dataclass
class VectorRecord:
    id: str
    vector: List[float]
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class VectorMatch:
    id: str
    score: float
    metadata: Dict[str, Any] = field(default_factory=dict)


def build_filter(namespace: str, where: Optional[Dict[str, Any]] = None) -> Filter:
    """Build a Qdrant filter scoped to namespace.

    where supports {key: value} and {key: {"$in": [...]}}.
    """
    must_conditions = [FieldCondition(key="namespace", match=MatchValue(value=namespace))]

    if where:
        for key, value in where.items():
            if isinstance(value, dict) and "$in" in value:
                must_conditions.append(FieldCondition(key=key, match=MatchAny(any=list(value["$in"]))))
            else:
                must_conditions.append(FieldCondition(key=key, match=MatchValue(value=value)))

    return Filter(must=must_conditions)


def get_qdrant_client() -> QdrantClient:
    """Get Qdrant client from runtime config."""
    return QdrantClient(url=runtime_config.qdrant_url, timeout=runtime_config.vector_timeout)


class VectorStore:
    """Async namespace-partitioned view over one Qdrant collection."""

    def __init__(
        self,
        client: Optional[QdrantClient] = None,
        collection: Optional[str] = None,
        vector_dim: Optional[int] = None,
        timeout: Optional[float] = None,
    ):
        self._client = client
        self.collection = collection or runtime_config.qdrant_collection
        self.vector_dim = vector_dim or runtime_config.vector_dim
        self.timeout = timeout or float(runtime_config.vector_timeout)
        self._collection_ready = False

    @property
    def client(self) -> QdrantClient:
        if self._client is None:
            self._client = get_qdrant_client()
        return self._client

    def _ensure_collection(self) -> None:
        """Ensure collection exists with proper configuration."""
        if self._collection_ready:
            return

        collection_names = [c.name for c in self.client.get_collections().collections]
        if self.collection not in collection_names:
            logger.info(f"Creating collection {self.collection} (dim={self.vector_dim})")
            self.client.create_collection(
                collection_name=self.collection,
                vectors_config=VectorParams(size=self.vector_dim, distance=Distance.COSINE),
            )
            for field_name, field_type in PAYLOAD_INDEXES.items():
                try:
                    self.client.create_payload_index(
                        collection_name=self.collection,
                        field_name=field_name,
                        field_schema=field_type,
                    )
                except Exception as e:
                    # Index may already exist
                    logger.debug(f"Payload index {field_name} may exist: {e}")

        self._collection_ready = True

    async def _run(self, operation: str, fn, *args, **kwargs):
        """Run a blocking client call off the event loop with a timeout."""
        try:
            return await asyncio.wait_for(asyncio.to_thread(fn, *args, **kwargs), timeout=self.timeout)
        except asyncio.TimeoutError:
            raise ExternalServiceError(
                f"Vector store {operation} timed out after {self.timeout:.0f}s",
                service="vectorstore",
            ) from None
        except ExternalServiceError:
            raise
        except Exception as e:
            raise ExternalServiceError(
                f"Vector store {operation} failed",
                details=str(e),
                service="vectorstore",
            ) from e

    # -------------------------------------------------------------------------
    # Sync implementations
    # -------------------------------------------------------------------------

    def _upsert_sync(self, namespace: str, records: List[VectorRecord]) -> int:
        self._ensure_collection()
        points = [
            PointStruct(
                id=record_id_to_point_id(r.id),
                vector=r.vector,
                payload={**r.metadata, "namespace": namespace, "record_id": r.id},
            )
            for r in records
        ]
        self.client.upsert(collection_name=self.collection, points=points, wait=True)
        return len(points)

    def _query_sync(
        self,
        namespace: str,
        vector: List[float],
        top_k: int,
        where: Optional[Dict[str, Any]],
    ) -> List[VectorMatch]:
        self._ensure_collection()
        response = self.client.query_points(
            collection_name=self.collection,
            query=vector,
            limit=top_k,
            query_filter=build_filter(namespace, where),
            with_payload=True,
        )

        matches = []
        for hit in response.points:
            payload = hit.payload or {}
            metadata = {k: v for k, v in payload.items() if k not in _RESERVED_FIELDS}
            matches.append(VectorMatch(
                id=payload.get("record_id", str(hit.id)),
                score=float(hit.score),
                metadata=metadata,
            ))
        return matches

    def _delete_sync(self, namespace: str, ids: List[str]) -> None:
        self._ensure_collection()
        self.client.delete(
            collection_name=self.collection,
            points_selector=build_filter(namespace, {"record_id": {"$in": ids}}),
        )

    # -------------------------------------------------------------------------
    # Public async API
    # -------------------------------------------------------------------------

    async def upsert(self, namespace: str, records: List[VectorRecord]) -> int:
        """Insert or overwrite records in a namespace. Returns points written."""
        if not records:
            return 0
        return await self._run("upsert", self._upsert_sync, namespace, records)

    async def query(
        self,
        namespace: str,
        vector: List[float],
        top_k: int = 10,
        where: Optional[Dict[str, Any]] = None,
    ) -> List[VectorMatch]:
        """Nearest-neighbour search in a namespace, highest score first."""
        if not vector:
            return []
        return await self._run("query", self._query_sync, namespace, vector, top_k, where)

    async def delete_by_ids(self, namespace: str, ids: List[str]) -> None:
        """Delete records by their original ids."""
        if not ids:
            return
        await self._run("delete", self._delete_sync, namespace, list(ids))
        logger.info(f"Deleted {len(ids)} records from namespace {namespace}")


_vector_store: Optional[VectorStore] = None


def get_vector_store() -> VectorStore:
    """Get the shared vector store."""
    global _vector_store
    if _vector_store is None:
        _vector_store = VectorStore()
    return _vector_store
