"""
Relay Chat Executors - Unified Tool Dispatch

Re-exports the tool executors and provides execute_tool(), which routes a
validated tool call through ToolRegistry. Executors register themselves in
tools/registry.py.
"""

import logging
from typing import Any, Dict

from errors import NotFoundError, tool_error_payload
from tools.registry import ToolRegistry

from .common import ToolContext, cart_totals
from .publishers import execute_browse_publishers, execute_get_publisher_details
from .cart import (
    execute_view_cart,
    execute_add_to_cart,
    execute_remove_from_cart,
    execute_clear_cart,
    execute_process_payment,
)

logger = logging.getLogger(__name__)


async def execute_tool(call, ctx: ToolContext) -> Dict[str, Any]:
    """
    Unified tool dispatch function using ToolRegistry.

    Args:
        call: A validated ToolCall variant (see tools.schemas)
        ctx: Room, broadcaster and cart snapshot for this turn

    Returns:
        Result dict handed back to the model (never raises for tool failures)
    """
    tool_def = ToolRegistry.get_tool(call.name)
    if not tool_def:
        return tool_error_payload(
            NotFoundError(
                f"Unknown function: {call.name}",
                details="This function is not available in the system.",
                resource_id=call.name,
            ),
            tool=call.name,
        )

    if tool_def.simulated_latency:
        await ctx.simulate_latency()

    return await tool_def.executor(call.args, ctx)


__all__ = [
    # Main dispatch
    "execute_tool",
    "ToolContext",
    "cart_totals",
    # Publishers
    "execute_browse_publishers",
    "execute_get_publisher_details",
    # Cart
    "execute_view_cart",
    "execute_add_to_cart",
    "execute_remove_from_cart",
    "execute_clear_cart",
    "execute_process_payment",
]
