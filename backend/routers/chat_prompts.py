"""
Relay Chat Prompts - System prompt and turn heuristics

Contains:
- DOCUMENTS_SECTION: How to use injected document context
- get_tools_section(): Available tools (auto-generated from registry)
- CART_FLOW_SECTION: Browse -> cart -> checkout guidance
- RULES_SECTION: Response style
- get_system_prompt() / SYSTEM_PROMPT: Complete base prompt
- is_document_task(): Detect summarize/analyze-style requests
- build_cart_context(): Cart snapshot section appended per turn
"""

import json
import re
from typing import Any, Dict, List, Optional

# Requests that should be answered from documents, not tools
DOCUMENT_TASK_PATTERN = re.compile(
    r"\b(summarize|summary|summarise|explain|analyze|analyse|document|doc|pdf|csv|xlsx|txt)\b"
)


# =============================================================================
# SYSTEM PROMPT - Composable Sections
# =============================================================================

_PERSONALITY = """You are an intelligent AI assistant with access to tools, user documents, and conversation history.

"""

DOCUMENTS_SECTION = """DOCUMENT CONTEXT:
When a section marked "RELEVANT DOCUMENT CONTEXT" appears below, it holds the content the user is asking about.
- Answer from that context and cite concrete details (numbers, names, sections, rows)
- Do not ask the user to share the document again; it is already provided
- "this doc", "the file" and similar phrases refer to the selected documents

"""


def get_tools_section() -> str:
    """Generate the tools section from registry at runtime.

    This ensures the system prompt always reflects the current tool registry.
    """
    from tools.registry import ToolRegistry, register_all_tools

    register_all_tools()  # Ensure tools are registered
    return (
        ToolRegistry.generate_tools_section()
        + "\n\nWHEN TO USE TOOLS:\n"
        "- Use browsePublishers only when the user asks to find, search or browse publishers\n"
        "- Use cart tools only when the user wants to view the cart, add or remove items, or check out\n"
        "- Do not use tools for questions about documents or for general conversation\n\n"
    )


CART_FLOW_SECTION = """CART AND CHECKOUT:
1. After browsePublishers, offer to add publishers to the cart
2. When the user picks publishers ("add these", "add X to cart"), call addToCart once per publisher
3. After adding items, call viewCart so the user sees the cart
4. When showing the cart, ask whether they want to edit it or proceed to checkout
5. When the user is ready, call processPayment with the current cart items

"""

RULES_SECTION = """RESPONSE STYLE:
- Be concise and direct; expand only when asked
- Tool results are already shown in the interface; summarize them instead of repeating every row
- Use what you know about the user from earlier conversations when it is relevant
"""


def get_system_prompt() -> str:
    """Get the full base prompt with the tools section generated from registry."""
    return _PERSONALITY + DOCUMENTS_SECTION + get_tools_section() + CART_FLOW_SECTION + RULES_SECTION


class _SystemPromptProxy:
    """Proxy that generates SYSTEM_PROMPT on first access."""

    def __str__(self) -> str:
        return get_system_prompt()

    def __add__(self, other: str) -> str:
        return get_system_prompt() + other

    def __radd__(self, other: str) -> str:
        return other + get_system_prompt()


SYSTEM_PROMPT = _SystemPromptProxy()


# =============================================================================
# TURN HEURISTICS
# =============================================================================


def is_document_task(message: str, selected_documents: Optional[List[str]] = None) -> bool:
    """True when tools should be disabled so the model reasons over documents.

    Any explicit document selection counts, as does summarize/explain/analyze
    phrasing or a mention of a document type.
    """
    if selected_documents:
        return True
    return bool(DOCUMENT_TASK_PATTERN.search((message or "").lower()))


def build_cart_context(items: List[Dict[str, Any]], total_items: Optional[int] = None,
                       total_price: Optional[float] = None) -> str:
    """Render the client's cart snapshot for the system prompt ("" when empty)."""
    if not items:
        return ""

    count = len(items) if total_items is None else total_items
    if total_price is None:
        total_price = sum((i.get("price") or 0) * (i.get("quantity") or 1) for i in items)
    listing = ", ".join(f"{i.get('name', 'Item')} ({i.get('quantity') or 1}x)" for i in items)
    plural = "" if count == 1 else "s"

    return (
        "\n\n## Current Cart Context:\n"
        f"- Cart has {count} item{plural} totaling ${total_price:.2f}\n"
        f"- Items: {listing}\n"
        f"- When calling viewCart, use this cart data: {json.dumps({'cartItems': items})}\n"
    )
