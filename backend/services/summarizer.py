"""Conversation summarizer backed by the summary model."""

import asyncio
import logging
import time
from typing import List, Optional, Sequence

from config import runtime_config
from logging_config import log_llm
from services.llm_client import LLMClient
from utils.llm import get_llm_client

logger = logging.getLogger(__name__)

SUMMARY_SYSTEM_PROMPT = "You are a helpful assistant that creates concise summaries of conversations."

SUMMARY_PROMPT = """Summarize the following conversation concisely, preserving important details, decisions, context, and key information that would be useful for continuing the conversation later. Focus on:
- Main topics discussed
- Important decisions or preferences mentioned
- Key facts or data points
- User's goals or objectives
- Any specific requests or requirements

Keep the summary concise but informative (2-4 sentences if possible, up to 200 words).

Conversation:
{conversation}

Summary:"""


class ConversationSummarizer:
    def __init__(self, client: Optional[LLMClient] = None):
        self._client = client

    @property
    def client(self) -> LLMClient:
        if self._client is None:
            self._client = get_llm_client()
        return self._client

    async def summarize(self, messages: Sequence) -> str:
        """Summarize a room history; falls back to a generic line on failure."""
        if not messages:
            return ""

        lines: List[str] = []
        for msg in messages:
            label = "User" if msg.role == "user" else "Assistant"
            lines.append(f"{label}: {msg.content}")
        prompt = SUMMARY_PROMPT.format(conversation="\n\n".join(lines))

        model = runtime_config.model_summary
        start = time.time()
        log_llm(logger, "start", model)
        try:
            response = await asyncio.wait_for(
                asyncio.to_thread(
                    self.client.chat,
                    model=model,
                    messages=[
                        {"role": "system", "content": SUMMARY_SYSTEM_PROMPT},
                        {"role": "user", "content": prompt},
                    ],
                    options={"temperature": 0.3, "max_tokens": 300},
                ),
                timeout=runtime_config.llm_timeout,
            )
            log_llm(logger, "end", model, time.time() - start)
            return (response.get("message", {}).get("content") or "").strip()
        except Exception as e:
            logger.error(f"Summarization failed: {e}")
            return f"Previous conversation covered {len(messages)} messages about various topics."
