"""
Relay Services - Shared infrastructure services.

- llm_client: OpenAI chat completions with tool calling
- embeddings: OpenAI embeddings
- vectorstore: Qdrant namespace-partitioned store
- embedding_queue: background ingestion of chat turns
- summarizer: conversation summaries
"""

from .embedding_queue import EmbeddingQueue, get_embedding_queue
from .vectorstore import VectorStore, get_vector_store

__all__ = ["EmbeddingQueue", "get_embedding_queue", "VectorStore", "get_vector_store"]
