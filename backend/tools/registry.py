"""
Tool Registry - Unified tool dispatch pattern for the relay.

Each tool is a self-contained definition: the schema the model sees, the
pydantic argument model the call is validated against, and the async
executor that runs it.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Type
import logging

from pydantic import BaseModel

logger = logging.getLogger(__name__)


class ToolCategory(Enum):
    """Tool categories for grouping and processing."""

    SEARCH = "search"  # Publisher catalogue lookups
    CART = "cart"  # Cart state changes shown in the UI
    PAYMENT = "payment"  # Checkout hand-off


@dataclass
class ToolDefinition:
    """Definition of a tool for the registry."""

    name: str
    description: str
    parameters: Dict[str, Any]
    required_params: List[str]
    args_model: Type[BaseModel]
    executor: Callable[..., Awaitable[Dict[str, Any]]]
    category: ToolCategory
    brief: str = ""  # One-line summary for the system prompt tools list
    simulated_latency: bool = False  # Sleeps tool_delay_ms before running
    requires_config: Optional[str] = None  # Only register if this runtime_config flag is truthy


class ToolRegistry:
    """
    Central registry for all relay tools.

    Usage:
        # Register a tool
        ToolRegistry.register(ToolDefinition(...))

        # Get LLM-compatible schema
        tools_schema = ToolRegistry.get_tools_schema()
    """

    _tools: Dict[str, ToolDefinition] = {}
    _initialized: bool = False

    @classmethod
    def register(cls, tool: ToolDefinition) -> None:
        """Register a tool definition."""
        cls._tools[tool.name] = tool
        logger.debug(f"Registered tool: {tool.name}")

    @classmethod
    def get_tool(cls, name: str) -> Optional[ToolDefinition]:
        """Get a tool definition by name."""
        return cls._tools.get(name)

    @classmethod
    def get_tools_schema(cls) -> List[Dict[str, Any]]:
        """Generate OpenAI-compatible tools schema for function calling."""
        schema = []
        for tool in cls._tools.values():
            if tool.requires_config:
                from config import runtime_config
                if not getattr(runtime_config, tool.requires_config, False):
                    continue

            schema.append(
                {
                    "type": "function",
                    "function": {
                        "name": tool.name,
                        "description": tool.description,
                        "parameters": {
                            "type": "object",
                            "properties": tool.parameters,
                            "required": tool.required_params,
                        },
                    },
                }
            )
        return schema

    @classmethod
    def get_all_tools(cls) -> Dict[str, ToolDefinition]:
        """Get all registered tools."""
        return cls._tools.copy()

    @classmethod
    def get_tools_by_category(cls, category: ToolCategory) -> List[ToolDefinition]:
        """Get all tools in a category."""
        return [t for t in cls._tools.values() if t.category == category]

    @classmethod
    def generate_tools_section(cls) -> str:
        """Generate the tools list for the system prompt from the registry."""
        lines = ["AVAILABLE TOOLS:"]
        for i, tool in enumerate((t for t in cls._tools.values() if t.brief), 1):
            lines.append(f"{i}. {tool.name}: {tool.brief}")
        return "\n".join(lines)

    @classmethod
    def clear(cls) -> None:
        """Clear all registered tools (for testing)."""
        cls._tools.clear()
        cls._initialized = False

    @classmethod
    def reinitialize(cls) -> int:
        """Clear and re-register all tools. Returns tool count."""
        cls.clear()
        register_all_tools()
        return len(cls._tools)


_PUBLISHER_FILTERS: Dict[str, Any] = {
    "niche": {
        "type": "string",
        "description": "Filter by niche/category (e.g., Technology, Health, Business, Finance, Travel)",
    },
    "language": {"type": "string", "description": "Filter by language (e.g., English, Spanish, French)"},
    "country": {
        "type": "string",
        "description": "Filter by country (e.g., United States, United Kingdom, Canada, India)",
    },
    "searchQuery": {
        "type": "string",
        "description": "Search query for website names or niches (searches in website names and niche tags)",
    },
    "daMin": {"type": "number", "description": "Minimum Domain Authority (0-100). DA predicts ranking ability."},
    "daMax": {"type": "number", "description": "Maximum Domain Authority (0-100)"},
    "paMin": {"type": "number", "description": "Minimum Page Authority (0-100). PA predicts page ranking ability."},
    "paMax": {"type": "number", "description": "Maximum Page Authority (0-100)"},
    "drMin": {"type": "number", "description": "Minimum Domain Rating (0-100). DR measures link profile strength."},
    "drMax": {"type": "number", "description": "Maximum Domain Rating (0-100)"},
    "spamMin": {"type": "number", "description": "Minimum spam score (0-100). Lower is better quality."},
    "spamMax": {"type": "number", "description": "Maximum spam score (0-100). Lower is better quality."},
    "semrushOverallTrafficMin": {"type": "number", "description": "Minimum Semrush overall traffic (monthly visits)"},
    "semrushOrganicTrafficMin": {
        "type": "number",
        "description": "Minimum Semrush organic traffic (monthly organic visits)",
    },
    "priceMin": {"type": "number", "description": "Minimum price in USD for backlink placement"},
    "priceMax": {"type": "number", "description": "Maximum price in USD for backlink placement"},
    "backlinkNature": {
        "type": "string",
        "description": "Type of backlink attribute",
        "enum": ["do-follow", "no-follow"],
    },
    "availability": {"type": "boolean", "description": "Filter by availability status (true = available only)"},
    "remarkIncludes": {"type": "string", "description": "Search in website remarks/notes (substring match)"},
    "page": {"type": "number", "description": "Page number for pagination (default: 1)"},
    "limit": {"type": "number", "description": "Number of results per page (default: 8)"},
}

_CART_ITEM_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "id": {"type": "string"},
        "name": {"type": "string"},
        "price": {"type": "number"},
        "quantity": {"type": "number"},
    },
}


def _register_core_tools() -> None:
    """Register the publisher, cart and payment tools."""
    from routers.chat_executors import (
        execute_browse_publishers,
        execute_get_publisher_details,
        execute_view_cart,
        execute_add_to_cart,
        execute_remove_from_cart,
        execute_clear_cart,
        execute_process_payment,
    )
    from tools.schemas import (
        AddToCartArgs,
        BrowsePublishersArgs,
        ClearCartArgs,
        GetPublisherDetailsArgs,
        ProcessPaymentArgs,
        RemoveFromCartArgs,
        ViewCartArgs,
    )

    # browsePublishers - outreach catalogue search
    ToolRegistry.register(
        ToolDefinition(
            name="browsePublishers",
            brief="Find publishers/websites for backlinking (results appear in the UI)",
            description=(
                "Browse and search for publishers/websites for backlinking opportunities. "
                "Returns data to display in user interface. Use this when user asks to find, "
                "search, browse, or show publishers/websites."
            ),
            parameters=_PUBLISHER_FILTERS,
            required_params=[],
            args_model=BrowsePublishersArgs,
            executor=execute_browse_publishers,
            category=ToolCategory.SEARCH,
            simulated_latency=True,
        )
    )

    # getPublisherDetails - single publisher card
    ToolRegistry.register(
        ToolDefinition(
            name="getPublisherDetails",
            brief="Show full details for one publisher",
            description="Get detailed information about a specific publisher",
            parameters={
                "publisherId": {"type": "string", "description": "Publisher id or website domain"},
            },
            required_params=["publisherId"],
            args_model=GetPublisherDetailsArgs,
            executor=execute_get_publisher_details,
            category=ToolCategory.SEARCH,
        )
    )

    # viewCart - cart summary card
    ToolRegistry.register(
        ToolDefinition(
            name="viewCart",
            brief="Show the cart and offer to edit or check out",
            description=(
                "View the current contents of the shopping cart. Use this to show the user their cart "
                "and ask if they want to edit or proceed to checkout."
            ),
            parameters={
                "cartItems": {
                    "type": "array",
                    "description": "Current cart items, if known",
                    "items": _CART_ITEM_SCHEMA,
                },
            },
            required_params=[],
            args_model=ViewCartArgs,
            executor=execute_view_cart,
            category=ToolCategory.CART,
            simulated_latency=True,
        )
    )

    # addToCart
    ToolRegistry.register(
        ToolDefinition(
            name="addToCart",
            brief="Add a publisher or product to the cart",
            description=(
                "Add a publisher or product to the shopping cart. Use this when user mentions specific "
                "publishers they want to add or says 'add to cart'."
            ),
            parameters={
                "type": {"type": "string", "enum": ["publisher", "product"], "description": "Type of item to add"},
                "name": {"type": "string", "description": "Name of the item"},
                "price": {"type": "number", "description": "Price of the item in USD"},
                "quantity": {"type": "number", "description": "Quantity to add (default: 1)"},
                "metadata": {
                    "type": "object",
                    "description": "Additional metadata about the item (publisherId, website, niche, dr, da)",
                    "properties": {
                        "publisherId": {"type": "string"},
                        "website": {"type": "string"},
                        "niche": {"type": "array", "items": {"type": "string"}},
                        "dr": {"type": "number"},
                        "da": {"type": "number"},
                    },
                },
            },
            required_params=["type", "name", "price"],
            args_model=AddToCartArgs,
            executor=execute_add_to_cart,
            category=ToolCategory.CART,
        )
    )

    # removeFromCart
    ToolRegistry.register(
        ToolDefinition(
            name="removeFromCart",
            brief="Remove one item from the cart",
            description="Remove an item from the shopping cart by its id. Use this when the user asks to drop an item.",
            parameters={
                "itemId": {"type": "string", "description": "Id of the cart item to remove"},
            },
            required_params=["itemId"],
            args_model=RemoveFromCartArgs,
            executor=execute_remove_from_cart,
            category=ToolCategory.CART,
        )
    )

    # clearCart
    ToolRegistry.register(
        ToolDefinition(
            name="clearCart",
            brief="Empty the cart",
            description="Remove every item from the shopping cart. Use this only when the user asks to start over.",
            parameters={},
            required_params=[],
            args_model=ClearCartArgs,
            executor=execute_clear_cart,
            category=ToolCategory.CART,
        )
    )

    # processPayment - checkout hand-off
    ToolRegistry.register(
        ToolDefinition(
            name="processPayment",
            brief="Start checkout for the cart",
            description=(
                "Process payment for cart items using Stripe. Use this when user is ready to checkout "
                "and says they're done adding items."
            ),
            parameters={
                "cartItems": {
                    "type": "array",
                    "description": "Items in the cart to process payment for",
                    "items": _CART_ITEM_SCHEMA,
                },
            },
            required_params=["cartItems"],
            args_model=ProcessPaymentArgs,
            executor=execute_process_payment,
            category=ToolCategory.PAYMENT,
        )
    )

    logger.info(f"Registered {len(ToolRegistry._tools)} core tools")


def register_all_tools() -> None:
    """Register all tools with the registry."""
    if ToolRegistry._initialized:
        return

    _register_core_tools()
    ToolRegistry._initialized = True
