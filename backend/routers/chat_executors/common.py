"""
Relay Chat Executors - Common Utilities

Shared context handed to every tool executor.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List

# emit(event_type, payload, id_prefix) broadcasts a UI event to the turn's room
EmitFn = Callable[[str, Dict[str, Any], str], Awaitable[None]]


@dataclass
class ToolContext:
    """Per-call context: the room, a broadcaster and the client's cart snapshot."""

    room_id: str
    emit: EmitFn
    cart_items: List[Dict[str, Any]] = field(default_factory=list)
    delay_seconds: float = 0.0

    async def simulate_latency(self) -> None:
        if self.delay_seconds > 0:
            await asyncio.sleep(self.delay_seconds)


def cart_totals(items: List[Dict[str, Any]]) -> Dict[str, Any]:
    """Summarize cart items; missing quantity counts as 1, missing price as 0."""
    total_quantity = sum(item.get("quantity") or 1 for item in items)
    total_price = sum((item.get("price") or 0) * (item.get("quantity") or 1) for item in items)
    return {
        "totalItems": len(items),
        "totalQuantity": total_quantity,
        "totalPrice": total_price,
        "isEmpty": len(items) == 0,
    }
