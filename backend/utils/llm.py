"""LLM client accessor."""

import logging
from typing import Optional

from config import runtime_config
from services.llm_client import LLMClient

logger = logging.getLogger(__name__)

_client: Optional[LLMClient] = None


def get_llm_client() -> LLMClient:
    """Get the shared LLM client, built from runtime config on first use."""
    global _client
    if _client is None:
        _client = LLMClient(
            api_key=runtime_config.openai_api_key,
            base_url=runtime_config.openai_base_url,
            timeout=float(runtime_config.llm_timeout),
        )
        if not runtime_config.openai_api_key:
            logger.warning("OPENAI_API_KEY is not set - model calls will fail")
    return _client


def reset_llm_client() -> None:
    """Drop the cached client so the next call picks up new config."""
    global _client
    _client = None
