"""
Runtime Configuration for the chat relay.

Provides a singleton RuntimeConfig class that allows dynamic adjustment of
model, retrieval and streaming parameters at runtime, without requiring a
service restart.

Usage:
    from config import runtime_config
    threshold = runtime_config.rag_threshold
    runtime_config.update(rag_threshold=0.25, stream_delay_ms=20)
"""

import os
import logging
from dataclasses import dataclass, field
from typing import Dict, Any
from threading import Lock

logger = logging.getLogger(__name__)


def _first_env(*keys: str, default: str) -> str:
    """Return the first non-empty environment value from keys, else default."""
    for key in keys:
        value = os.environ.get(key, "").strip()
        if value:
            return value
    return default


def _env_flag(key: str, default: str = "true") -> bool:
    return os.environ.get(key, default).lower() == "true"


def clamp(value: int, lo: int, hi: int) -> int:
    """Clamp value into [lo, hi]."""
    return max(lo, min(hi, value))


# Keys that are never exported through to_dict() / the config endpoint
_SECRET_KEYS = {"openai_api_key"}


@dataclass
class RuntimeConfig:
    """
    Singleton configuration for runtime-adjustable parameters.

    All values have defaults from environment variables, but can be
    changed at runtime via the update() method.
    """

    # OpenAI-compatible provider
    openai_api_key: str = field(default_factory=lambda: os.environ.get("OPENAI_API_KEY", ""))
    openai_base_url: str = field(default_factory=lambda: os.environ.get("OPENAI_BASE_URL", ""))

    # Model parameters
    model_chat: str = field(default_factory=lambda: _first_env("LLM_CHAT_MODEL", default="gpt-3.5-turbo"))
    model_summary: str = field(
        default_factory=lambda: _first_env("LLM_SUMMARY_MODEL", "LLM_CHAT_MODEL", default="gpt-4o-mini")
    )
    temperature: float = field(default_factory=lambda: float(os.environ.get("LLM_TEMPERATURE", "0.7")))
    max_output_tokens: int = field(default_factory=lambda: int(os.environ.get("LLM_MAX_TOKENS", "1024")))
    llm_timeout: int = field(default_factory=lambda: int(os.environ.get("LLM_TIMEOUT", "30")))

    # Embeddings
    embedding_model: str = field(
        default_factory=lambda: os.environ.get("EMBEDDING_MODEL", "text-embedding-3-small")
    )
    embedding_timeout: int = field(default_factory=lambda: int(os.environ.get("EMBEDDING_TIMEOUT", "15")))

    # Vector store (Qdrant)
    qdrant_url: str = field(default_factory=lambda: os.environ.get("QDRANT_URL", "http://localhost:6333"))
    qdrant_collection: str = field(default_factory=lambda: os.environ.get("QDRANT_COLLECTION", "chat_memory"))
    vector_dim: int = field(default_factory=lambda: int(os.environ.get("VECTOR_DIM", "1536")))
    vector_timeout: int = field(default_factory=lambda: int(os.environ.get("VECTOR_TIMEOUT", "15")))

    # Conversational retrieval
    rag_enabled: bool = field(default_factory=lambda: _env_flag("RAG_ENABLED"))
    rag_top_k: int = field(default_factory=lambda: int(os.environ.get("RAG_TOP_K", "15")))
    rag_profile_top_k: int = field(default_factory=lambda: int(os.environ.get("RAG_PROFILE_TOP_K", "10")))
    rag_threshold: float = field(default_factory=lambda: float(os.environ.get("RAG_THRESHOLD", "0.3")))
    rag_min_results: int = field(default_factory=lambda: int(os.environ.get("RAG_MIN_RESULTS", "3")))

    # Selected-document retrieval
    doc_top_k_per_doc: int = field(default_factory=lambda: int(os.environ.get("DOC_TOP_K_PER_DOC", "10")))
    doc_min_score: float = field(default_factory=lambda: float(os.environ.get("DOC_MIN_SCORE", "0.15")))

    # Ingestion chunking (words)
    embed_chunk_size: int = field(default_factory=lambda: int(os.environ.get("EMBED_CHUNK_SIZE", "800")))
    embed_chunk_overlap: int = field(default_factory=lambda: int(os.environ.get("EMBED_CHUNK_OVERLAP", "100")))

    # Streaming
    stream_chunk_words: int = field(default_factory=lambda: int(os.environ.get("STREAM_CHUNK_WORDS", "5")))
    stream_delay_ms: int = field(default_factory=lambda: int(os.environ.get("STREAM_DELAY_MS", "50")))

    # Tools
    tool_delay_ms: int = field(default_factory=lambda: int(os.environ.get("TOOL_DELAY_MS", "4000")))
    outreach_api_url: str = field(default_factory=lambda: os.environ.get("OUTREACH_API_URL", ""))
    outreach_timeout: int = field(default_factory=lambda: int(os.environ.get("OUTREACH_TIMEOUT", "10")))

    # History
    history_idle_seconds: int = field(default_factory=lambda: int(os.environ.get("HISTORY_IDLE_SECONDS", "3600")))
    history_cleanup_interval: int = field(
        default_factory=lambda: int(os.environ.get("HISTORY_CLEANUP_INTERVAL", "3600"))
    )

    # One turn at a time per room
    serialize_turns: bool = field(default_factory=lambda: _env_flag("SERIALIZE_TURNS"))

    # Server
    port: int = field(default_factory=lambda: int(_first_env("PORT", "WS_PORT", default="8080")))

    # Internal state
    _lock: Lock = field(default_factory=Lock, repr=False, compare=False)
    _update_count: int = field(default=0, repr=False)

    _VALIDATION_RANGES: Dict[str, tuple] = field(default_factory=lambda: {
        "temperature": (0.0, 2.0),
        "max_output_tokens": (64, 16384),
        "llm_timeout": (1, 600),
        "embedding_timeout": (1, 120),
        "vector_timeout": (1, 120),
        "rag_top_k": (1, 100),
        "rag_profile_top_k": (1, 100),
        "rag_threshold": (0.0, 1.0),
        "rag_min_results": (0, 20),
        "doc_top_k_per_doc": (1, 50),
        "doc_min_score": (0.0, 1.0),
        "embed_chunk_size": (200, 1200),
        "embed_chunk_overlap": (0, 600),
        "stream_chunk_words": (1, 100),
        "stream_delay_ms": (0, 2000),
        "tool_delay_ms": (0, 60000),
        "outreach_timeout": (1, 120),
        "history_idle_seconds": (60, 7 * 24 * 3600),
        "history_cleanup_interval": (10, 24 * 3600),
    }, repr=False, compare=False)

    def update(self, **kwargs) -> Dict[str, Any]:
        """
        Update configuration values at runtime.

        Args:
            **kwargs: Key-value pairs to update (e.g., rag_threshold=0.25)

        Returns:
            Dict with 'updated' (changed keys) and 'ignored' (unknown or rejected keys)
        """
        updated = []
        ignored = []

        with self._lock:
            for key, value in kwargs.items():
                if key.startswith("_") or not hasattr(self, key):
                    ignored.append(key)
                    logger.warning(f"Config ignored unknown key: {key}")
                    continue

                if key in self._VALIDATION_RANGES:
                    lo, hi = self._VALIDATION_RANGES[key]
                    if not isinstance(value, (int, float)) or isinstance(value, bool) or not (lo <= value <= hi):
                        ignored.append(key)
                        logger.warning(f"Config rejected {key}={value} (must be {lo}-{hi})")
                        continue

                old_value = getattr(self, key)
                setattr(self, key, value)
                updated.append(key)
                if key in _SECRET_KEYS:
                    logger.info(f"Config updated: {key}")
                else:
                    logger.info(f"Config updated: {key} = {value} (was {old_value})")

            self._update_count += 1

        return {"updated": updated, "ignored": ignored}

    def to_dict(self) -> Dict[str, Any]:
        """Export current config as dict (excludes internal fields and secrets)."""
        from dataclasses import fields as dataclass_fields

        result = {}
        for field_info in dataclass_fields(self):
            if field_info.name.startswith("_") or field_info.name in _SECRET_KEYS:
                continue
            result[field_info.name] = getattr(self, field_info.name)
        return result

    def chunking(self) -> tuple:
        """Return (chunk_size, overlap) clamped to sane ranges."""
        size = clamp(self.embed_chunk_size, 200, 1200)
        overlap = clamp(self.embed_chunk_overlap, 0, size // 2)
        return size, overlap


# Singleton instance
runtime_config = RuntimeConfig()


def get_config() -> RuntimeConfig:
    """Get the singleton config instance."""
    return runtime_config
