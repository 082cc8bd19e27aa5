"""
LLM Client - wraps the OpenAI SDK for chat completions with tool calling.

Response format:
    {"message": {"role": "assistant", "content": "...", "tool_calls": [...]}}

Key translations:
- Function-result history messages are not forwarded (the provider only
  accepts tool results paired with a tool_call_id from the same request)
- Tool calls: OpenAI objects → simplified dicts with parsed arguments
- Options: max_tokens / temperature passed through
"""

import json
import logging
from typing import Any, Dict, List, Optional

from openai import OpenAI

logger = logging.getLogger(__name__)


def _translate_messages_for_openai(messages: List[Dict]) -> List[Dict]:
    """Translate internal message dicts to OpenAI API format."""
    translated = []
    for msg in messages:
        role = msg.get("role", "user")
        content = msg.get("content", "")

        if role == "function":
            continue

        translated.append({"role": role, "content": content})

    return translated


def _translate_tool_calls_from_openai(choices) -> Optional[List[Dict]]:
    """Translate OpenAI tool call objects to simplified dicts.

    OpenAI: choice.message.tool_calls[i].function.{name, arguments(str)}
    Internal: [{"id": ..., "function": {"name": ..., "arguments": {dict}}}]
    """
    if not choices:
        return None

    message = choices[0].message
    if not message.tool_calls:
        return None

    result = []
    for tc in message.tool_calls:
        try:
            args = json.loads(tc.function.arguments) if tc.function.arguments else {}
        except json.JSONDecodeError:
            logger.warning(f"Failed to parse tool call arguments: {tc.function.arguments}")
            args = {}

        result.append({
            "function": {
                "name": tc.function.name,
                "arguments": args,
            },
            "id": tc.id,
        })

    return result if result else None


class LLMClient:
    """Wraps the OpenAI SDK for synchronous chat completions."""

    def __init__(self, api_key: str, base_url: str = "", timeout: float = 30.0):
        """
        Args:
            api_key: Provider API key
            base_url: Optional OpenAI-compatible base URL
            timeout: Request timeout in seconds
        """
        self._timeout = timeout
        kwargs: Dict[str, Any] = {"api_key": api_key or "not-set", "timeout": timeout}
        if base_url:
            kwargs["base_url"] = base_url.rstrip("/")
        self._openai = OpenAI(**kwargs)

    def chat(
        self,
        model: str = "",
        messages: List[Dict] = None,
        tools: Optional[List[Dict]] = None,
        options: Optional[Dict] = None,
    ) -> Dict[str, Any]:
        """Call the chat completions endpoint.

        Args:
            model: Model name
            messages: List of message dicts (role, content)
            tools: Tool definitions in OpenAI function format (None disables tools)
            options: Generation options (temperature, max_tokens)

        Returns:
            Dict with "message" key holding content and optional tool_calls
        """
        messages = messages or []
        options = options or {}

        kwargs: Dict[str, Any] = {
            "model": model,
            "messages": _translate_messages_for_openai(messages),
        }
        if "temperature" in options:
            kwargs["temperature"] = options["temperature"]
        if "max_tokens" in options:
            kwargs["max_tokens"] = options["max_tokens"]
        if tools:
            kwargs["tools"] = tools
            kwargs["tool_choice"] = "auto"

        response = self._openai.chat.completions.create(**kwargs)

        content = (response.choices[0].message.content or "") if response.choices else ""
        tool_calls = _translate_tool_calls_from_openai(response.choices)

        result = {
            "message": {
                "role": "assistant",
                "content": content,
            }
        }
        if tool_calls:
            result["message"]["tool_calls"] = tool_calls

        return result
