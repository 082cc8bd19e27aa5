"""
Relay Chat Executors - Cart and Checkout

The cart itself lives in the client; these executors emit the UI events
that change it and hand the model a short summary.
"""

import logging
from typing import Any, Dict

from errors import handle_async_tool_errors
from tools.schemas import (
    AddToCartArgs,
    ClearCartArgs,
    ProcessPaymentArgs,
    RemoveFromCartArgs,
    ViewCartArgs,
)

from .common import ToolContext, cart_totals

logger = logging.getLogger(__name__)

CART_PREVIEW_ITEMS = 3


@handle_async_tool_errors("viewCart")
async def execute_view_cart(args: ViewCartArgs, ctx: ToolContext) -> Dict[str, Any]:
    # The client's snapshot is the current cart; args are only a fallback
    if ctx.cart_items:
        items = list(ctx.cart_items)
    else:
        items = [item.model_dump(exclude_none=True) for item in args.cartItems]

    summary = cart_totals(items)
    count = summary["totalItems"]
    plural = "s" if count != 1 else ""

    await ctx.emit(
        "cart_data",
        {
            "action": "show",
            "summary": summary,
            "cartData": {
                "items": items[:CART_PREVIEW_ITEMS],
                "totalItems": count,
                "totalPrice": summary["totalPrice"],
            },
            "message": "Cart is empty" if count == 0 else f"Your cart has {count} item{plural}",
        },
        "cart",
    )

    if count == 0:
        message = "Cart is empty. User can add items from publisher search results."
    else:
        message = (
            f"Cart has {count} item{plural} totaling ${summary['totalPrice']:.2f}. "
            "Full cart data sent to user interface."
        )
    return {"summary": summary, "message": message}


@handle_async_tool_errors("addToCart")
async def execute_add_to_cart(args: AddToCartArgs, ctx: ToolContext) -> Dict[str, Any]:
    item = {
        "type": args.type,
        "name": args.name,
        "price": args.price,
        "quantity": args.quantity,
        "metadata": args.metadata,
    }
    await ctx.emit("cart_updated", {"action": "add", "item": item}, "cart_add")

    return {
        "success": True,
        "message": f"Added {args.name} to cart",
        "item": {"name": args.name, "price": args.price, "quantity": args.quantity},
    }


@handle_async_tool_errors("removeFromCart")
async def execute_remove_from_cart(args: RemoveFromCartArgs, ctx: ToolContext) -> Dict[str, Any]:
    await ctx.emit("cart_updated", {"action": "remove", "itemId": args.itemId}, "cart_remove")
    return {"success": True, "message": f"Removed item {args.itemId} from cart"}


@handle_async_tool_errors("clearCart")
async def execute_clear_cart(args: ClearCartArgs, ctx: ToolContext) -> Dict[str, Any]:
    await ctx.emit("cart_cleared", {"action": "clear"}, "cart_clear")
    return {"success": True, "message": "Cart cleared"}


@handle_async_tool_errors("processPayment")
async def execute_process_payment(args: ProcessPaymentArgs, ctx: ToolContext) -> Dict[str, Any]:
    cart_items = [item.model_dump(exclude_none=True) for item in args.cartItems]
    await ctx.emit(
        "cart_data",
        {"action": "checkout", "cartItems": cart_items, "message": "Proceeding to checkout"},
        "checkout",
    )

    total_amount = sum(item.price * item.quantity for item in args.cartItems)
    logger.info(f"Checkout started room={ctx.room_id} items={len(cart_items)} total={total_amount:.2f}")
    return {
        "success": True,
        "message": "Payment processing initiated",
        "totalAmount": total_amount,
        "itemCount": len(cart_items),
    }
