"""
Relay Tool Dispatcher - validation and execution of a model-selected tool

Handles:
- Validating the raw (name, args) pair into its typed ToolCall variant
- Executing through the registry with the turn's room and cart snapshot
- Broadcasting function_call_start / function_call_end / function_result
- Converting unknown tools and bad arguments into structured error results
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional

from config import runtime_config
from errors import NotFoundError, ValidationError, tool_error_payload
from logging_config import log_tool
from tools.schemas import parse_tool_call

from ..chat_executors import ToolContext, execute_tool
from ..chat_protocol import MessageType, make_event
from .orchestrator import ToolCallRequest

logger = logging.getLogger(__name__)

# broadcast(room_id, event) delivers an envelope to every connection in a room
BroadcastFn = Callable[[str, Dict[str, Any]], Awaitable[int]]


@dataclass
class ToolOutcome:
    """What a tool returned to the model, plus the call that produced it."""

    name: str
    args: Dict[str, Any] = field(default_factory=dict)
    result: Dict[str, Any] = field(default_factory=dict)

    @property
    def failed(self) -> bool:
        return bool(self.result.get("error"))


class ToolDispatcher:
    """Coordinates tool validation and execution for one room at a time."""

    def __init__(self, broadcast: BroadcastFn, config=None):
        self.broadcast = broadcast
        self.config = config or runtime_config

    async def emit(self, room_id: str, event_type: str, payload: Dict[str, Any], prefix: str = "msg") -> None:
        await self.broadcast(room_id, make_event(event_type, payload, prefix))

    def context_for(self, room_id: str, cart_items: Optional[List[Dict[str, Any]]] = None) -> ToolContext:
        async def emit(event_type: str, payload: Dict[str, Any], prefix: str = "msg") -> None:
            await self.emit(room_id, event_type, payload, prefix)

        return ToolContext(
            room_id=room_id,
            emit=emit,
            cart_items=list(cart_items or []),
            delay_seconds=self.config.tool_delay_ms / 1000.0,
        )

    async def dispatch(
        self,
        room_id: str,
        request: ToolCallRequest,
        cart_items: Optional[List[Dict[str, Any]]] = None,
    ) -> ToolOutcome:
        """Run one tool call and broadcast its lifecycle events.

        Never raises for tool failures: the returned result is either the
        tool's compact model payload or a tool_error_payload record.
        """
        name = request.name
        args = request.args or {}

        log_tool(logger, name, "start", **self._build_log_context(args))
        await self.emit(room_id, MessageType.FUNCTION_CALL_START, {"name": name}, "func_start")

        try:
            call = parse_tool_call(name, args)
        except (NotFoundError, ValidationError) as e:
            logger.warning(f"Rejected tool call {name}: {e}")
            result = tool_error_payload(e, tool=name)
        else:
            result = await execute_tool(call, self.context_for(room_id, cart_items))

        await self.emit(room_id, MessageType.FUNCTION_CALL_END, {"name": name}, "func_end")
        log_tool(logger, name, "end", **self._build_result_context(result))

        await self.emit(
            room_id,
            MessageType.FUNCTION_RESULT,
            {"name": name, "result": result, "role": "function"},
            "func_result",
        )
        return ToolOutcome(name=name, args=args, result=result)

    def _build_log_context(self, args: Dict) -> Dict[str, str]:
        """Build context dict for tool start logging."""
        ctx = {}
        if args.get("searchQuery"):
            query = str(args["searchQuery"])
            ctx["query"] = f'"{query[:40]}..."' if len(query) > 40 else f'"{query}"'
        elif args.get("niche"):
            ctx["niche"] = args["niche"]
        elif args.get("name"):
            ctx["item"] = args["name"]
        elif args.get("cartItems"):
            ctx["items"] = len(args["cartItems"])
        return ctx

    def _build_result_context(self, result: Dict) -> Dict[str, str]:
        """Build context dict for tool end logging."""
        ctx = {}
        if result.get("error"):
            ctx["error"] = "true"
        elif "count" in result:
            ctx["results"] = result["count"]
        elif "success" in result:
            ctx["success"] = result["success"]
        return ctx
