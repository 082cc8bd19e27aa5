"""
Embedding service - OpenAI embeddings for retrieval and ingestion.

embed("") returns an empty vector without calling the provider. Provider
failures and timeouts raise ExternalServiceError(service="embeddings");
callers on the retrieval/ingestion paths absorb them.
"""

import asyncio
import hashlib
import logging
import time
from typing import List, Optional

from openai import OpenAI

from config import runtime_config
from errors.exceptions import ExternalServiceError

logger = logging.getLogger(__name__)


def content_hash(text: str) -> str:
    """Stable short hash of text used in chunk ids and metadata."""
    return hashlib.sha1(text.encode("utf-8")).hexdigest()[:16]


class EmbeddingService:
    """Async facade over the OpenAI embeddings endpoint."""

    def __init__(self, client: Optional[OpenAI] = None, model: Optional[str] = None, timeout: Optional[float] = None):
        self.model = model or runtime_config.embedding_model
        self.timeout = timeout or float(runtime_config.embedding_timeout)
        if client is None:
            kwargs = {"api_key": runtime_config.openai_api_key or "not-set", "timeout": self.timeout}
            if runtime_config.openai_base_url:
                kwargs["base_url"] = runtime_config.openai_base_url
            client = OpenAI(**kwargs)
        self._client = client

    def _embed_sync(self, text: str) -> List[float]:
        response = self._client.embeddings.create(model=self.model, input=text)
        if not response.data:
            return []
        return list(response.data[0].embedding)

    async def embed(self, text: str) -> List[float]:
        """Embed a single text.

        Returns:
            The embedding vector, or [] for empty input
        """
        if not text or not text.strip():
            return []

        start = time.time()
        try:
            vector = await asyncio.wait_for(asyncio.to_thread(self._embed_sync, text), timeout=self.timeout)
        except asyncio.TimeoutError:
            raise ExternalServiceError(
                f"Embedding timed out after {self.timeout:.0f}s",
                service="embeddings",
                model=self.model,
            ) from None
        except Exception as e:
            raise ExternalServiceError(
                "Embedding request failed",
                details=str(e),
                service="embeddings",
                model=self.model,
            ) from e

        logger.debug(f"Embedded {len(text)} chars -> dim={len(vector)} in {time.time() - start:.2f}s")
        return vector


_embedding_service: Optional[EmbeddingService] = None


def get_embedding_service() -> EmbeddingService:
    """Get the shared embedding service."""
    global _embedding_service
    if _embedding_service is None:
        _embedding_service = EmbeddingService()
    return _embedding_service
