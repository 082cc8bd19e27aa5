"""
Relay LLM Orchestrator - model calls for a conversational turn

Handles the three kinds of model call a turn makes:
1. Intent call with tools -> narration text and/or one tool call
2. Summary call without tools -> natural-language summary of a tool result
3. Acknowledge call without tools -> user-facing explanation of a failure

Also manages:
- Timeouts (asyncio.wait_for around the blocking SDK call)
- Retries on transient provider errors
- A circuit breaker when the provider is down

Cancellation is not handled here: a cancelled turn task raises
asyncio.CancelledError out of the pending await.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import openai

from config import runtime_config
from errors.exceptions import LLMError
from logging_config import log_llm
from utils.llm import get_llm_client

logger = logging.getLogger(__name__)

# Retry settings for transient provider errors
MODEL_RETRY_MAX = 2
MODEL_RETRY_DELAY = 3.0  # seconds

NO_RESPONSE_MESSAGE = "No response from AI"


_PERMANENT_ERROR_PATTERNS = [
    "model not found",
    "does not exist",
    "invalid model",
    "invalid api key",
]

_TRANSIENT_ERROR_PATTERNS = [
    "rate limit",
    "overloaded",
    "connection refused",
    "connection reset",
    "temporarily unavailable",
    "server error",
]

_TRANSIENT_ERROR_TYPES = (
    openai.APIConnectionError,
    openai.RateLimitError,
    openai.InternalServerError,
)

_PERMANENT_ERROR_TYPES = (
    openai.AuthenticationError,
    openai.PermissionDeniedError,
    openai.NotFoundError,
    openai.BadRequestError,
)


def is_retryable_error(error: Exception) -> bool:
    """Check if error is transient and worth retrying (not permanent failures)."""
    if isinstance(error, _PERMANENT_ERROR_TYPES):
        return False
    if isinstance(error, _TRANSIENT_ERROR_TYPES):
        return True
    error_str = str(error).lower()
    # Never retry permanent errors
    if any(p in error_str for p in _PERMANENT_ERROR_PATTERNS):
        return False
    # Retry known transient errors
    return any(p in error_str for p in _TRANSIENT_ERROR_PATTERNS)


class _CircuitBreaker:
    """Prevents cascading failures when LLM service is down."""

    def __init__(self, failure_threshold: int = 5, recovery_timeout: int = 30):
        self.failures = 0
        self.threshold = failure_threshold
        self.timeout = recovery_timeout
        self.last_failure_time = 0.0
        self.state = "closed"  # closed, open, half_open

    def is_open(self) -> bool:
        if self.state == "open":
            if time.time() - self.last_failure_time > self.timeout:
                self.state = "half_open"
                return False
            return True
        return False

    def record_success(self) -> None:
        self.failures = 0
        self.state = "closed"

    def record_failure(self) -> None:
        self.failures += 1
        self.last_failure_time = time.time()
        if self.failures >= self.threshold:
            self.state = "open"
            logger.error("Circuit breaker OPEN - LLM service unavailable")


_circuit_breaker = _CircuitBreaker()


@dataclass
class ToolCallRequest:
    """A tool invocation chosen by the model."""

    name: str
    args: Dict[str, Any] = field(default_factory=dict)
    id: Optional[str] = None


@dataclass
class ModelDecision:
    """Result of the intent call: narration, a tool call, or both."""

    text: str = ""
    tool_call: Optional[ToolCallRequest] = None

    @property
    def has_tool_call(self) -> bool:
        return self.tool_call is not None

    @property
    def is_empty(self) -> bool:
        return not self.text and self.tool_call is None

    @classmethod
    def from_response(cls, response: Dict[str, Any]) -> "ModelDecision":
        message = (response or {}).get("message") or {}
        text = (message.get("content") or "").strip()
        tool_calls = message.get("tool_calls") or []

        tool_call = None
        if tool_calls:
            if len(tool_calls) > 1:
                logger.info(f"Model requested {len(tool_calls)} tool calls, executing the first only")
            function = tool_calls[0].get("function") or {}
            args = function.get("arguments")
            tool_call = ToolCallRequest(
                name=function.get("name", ""),
                args=args if isinstance(args, dict) else {},
                id=tool_calls[0].get("id"),
            )
        return cls(text=text, tool_call=tool_call)


class LLMOrchestrator:
    """Issues the model calls of a turn.

    Args:
        config: RuntimeConfig instance for dynamic settings
        client: LLM client (defaults to the shared client)
        circuit_breaker: Breaker shared across orchestrators
    """

    def __init__(self, config=None, client=None, circuit_breaker: Optional[_CircuitBreaker] = None):
        self.config = config or runtime_config
        self._client = client
        self.circuit_breaker = circuit_breaker or _circuit_breaker

    @property
    def client(self):
        # Resolved per call so a config reset picks up a rebuilt client
        return self._client if self._client is not None else get_llm_client()

    def get_llm_options(self, temperature: Optional[float] = None) -> Dict[str, Any]:
        return {
            "temperature": self.config.temperature if temperature is None else temperature,
            "max_tokens": self.config.max_output_tokens,
        }

    async def call_with_timeout(self, timeout_seconds: int, **kwargs) -> Dict[str, Any]:
        """Call LLM with timeout and retry on transient errors.

        Args:
            timeout_seconds: Maximum wait time
            **kwargs: Arguments for client.chat()

        Returns:
            Response dict

        Raises:
            LLMError: On timeout, open circuit or other error
        """
        # Circuit breaker: fail fast if LLM is down
        if self.circuit_breaker.is_open():
            raise LLMError(
                message="LLM service temporarily unavailable (circuit breaker open, retrying in 30s)",
                error_type="circuit_open",
                model=kwargs.get("model", "unknown"),
            )

        loop = asyncio.get_running_loop()
        model = kwargs.get("model", "unknown")
        last_error = None

        for attempt in range(MODEL_RETRY_MAX + 1):
            start_time = time.time()

            if attempt > 0:
                delay = MODEL_RETRY_DELAY * (2 ** (attempt - 1))
                logger.info(f"Retry {attempt}/{MODEL_RETRY_MAX} for {model} after {delay:.1f}s")
                await asyncio.sleep(delay)

            log_llm(logger, "start", model=model)

            try:
                response = await asyncio.wait_for(
                    loop.run_in_executor(None, lambda: self.client.chat(**kwargs)), timeout=timeout_seconds
                )
                duration = time.time() - start_time
                log_llm(logger, "end", model=model, duration=duration)
                self.circuit_breaker.record_success()
                return response
            except asyncio.TimeoutError:
                duration = time.time() - start_time
                logger.warning(f"LLM call timed out after {duration:.2f}s (limit={timeout_seconds}s, model={model})")
                self.circuit_breaker.record_failure()
                raise LLMError(
                    message=f"Model response timed out after {timeout_seconds}s",
                    error_type="timeout",
                    model=model,
                ) from None
            except asyncio.CancelledError:
                logger.info(f"LLM call cancelled (model={model})")
                raise
            except Exception as e:
                last_error = e
                self.circuit_breaker.record_failure()
                if is_retryable_error(e) and attempt < MODEL_RETRY_MAX:
                    logger.warning(f"Retryable error on {model}: {e}")
                    continue
                raise

        # Should not reach here, but safety fallback
        if last_error:
            raise last_error

    async def analyze_intent(
        self, messages: List[Dict], tools: Optional[List[Dict]] = None
    ) -> ModelDecision:
        """First call of a turn (may return a tool call).

        Args:
            messages: System message plus history
            tools: Tool definitions, or None when tools are disabled this turn

        Returns:
            ModelDecision; empty when the model produced neither text nor a tool call
        """
        response = await self.call_with_timeout(
            timeout_seconds=self.config.llm_timeout,
            model=self.config.model_chat,
            messages=messages,
            tools=tools or None,
            options=self.get_llm_options(),
        )
        return ModelDecision.from_response(response)

    async def summarize(self, messages: List[Dict]) -> str:
        """Summary call after a tool ran. Tools are disabled."""
        return await self._text_call(messages)

    async def acknowledge_error(self, messages: List[Dict]) -> str:
        """Recovery call asking the model to explain a failure to the user."""
        return await self._text_call(messages)

    async def _text_call(self, messages: List[Dict]) -> str:
        model = self.config.model_chat
        response = await self.call_with_timeout(
            timeout_seconds=self.config.llm_timeout,
            model=model,
            messages=messages,
            options=self.get_llm_options(),
        )
        text = (((response or {}).get("message") or {}).get("content") or "").strip()
        if not text:
            raise LLMError(NO_RESPONSE_MESSAGE, error_type="invalid", model=model)
        return text
