"""
Runtime configuration endpoints.

Changes take effect immediately without restart; they are not persisted.
"""

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, ConfigDict

from config import runtime_config
from errors import success_response
from utils.llm import reset_llm_client

logger = logging.getLogger(__name__)

router = APIRouter()

# Fields baked into the shared LLM client at construction
_CLIENT_FIELDS = {"openai_base_url", "llm_timeout"}


class ConfigUpdate(BaseModel):
    """Configuration update request."""

    model_config = ConfigDict(extra="forbid", protected_namespaces=())

    # Model parameters
    model_chat: Optional[str] = None
    model_summary: Optional[str] = None
    temperature: Optional[float] = None
    max_output_tokens: Optional[int] = None
    llm_timeout: Optional[int] = None
    openai_base_url: Optional[str] = None
    # Retrieval
    rag_enabled: Optional[bool] = None
    rag_top_k: Optional[int] = None
    rag_profile_top_k: Optional[int] = None
    rag_threshold: Optional[float] = None
    rag_min_results: Optional[int] = None
    doc_top_k_per_doc: Optional[int] = None
    doc_min_score: Optional[float] = None
    # Ingestion
    embed_chunk_size: Optional[int] = None
    embed_chunk_overlap: Optional[int] = None
    # Streaming and tools
    stream_chunk_words: Optional[int] = None
    stream_delay_ms: Optional[int] = None
    tool_delay_ms: Optional[int] = None
    outreach_api_url: Optional[str] = None
    # Turns
    serialize_turns: Optional[bool] = None


@router.get("/config")
async def get_config() -> Dict[str, Any]:
    """Get current runtime configuration."""
    return success_response(config=runtime_config.to_dict())


@router.patch("/config")
async def update_config(update: ConfigUpdate) -> Dict[str, Any]:
    """Apply a partial runtime configuration update."""
    updates = {k: v for k, v in update.model_dump().items() if v is not None}

    if not updates:
        return success_response(updated=[], ignored=[], message="No changes")

    # Sanitize string config values
    for k, v in updates.items():
        if isinstance(v, str):
            updates[k] = v.strip()

    result = runtime_config.update(**updates)
    if not result["updated"]:
        raise HTTPException(status_code=400, detail={"message": "No valid changes", "ignored": result["ignored"]})

    if _CLIENT_FIELDS & set(result["updated"]):
        reset_llm_client()

    return success_response(result)
