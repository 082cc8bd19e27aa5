"""
Relay Chat Executors - Publisher Search

The full catalogue result goes to the room as a UI event; the model only
receives a compact summary.
"""

import logging
from typing import Any, Dict

from errors import ExternalServiceError, handle_async_tool_errors
from tools.publishers import browse_publishers, get_publisher_details
from tools.schemas import BrowsePublishersArgs, GetPublisherDetailsArgs

from .common import ToolContext

logger = logging.getLogger(__name__)


@handle_async_tool_errors("browsePublishers")
async def execute_browse_publishers(args: BrowsePublishersArgs, ctx: ToolContext) -> Dict[str, Any]:
    try:
        result = await browse_publishers(args)
    except Exception as e:
        raise ExternalServiceError(
            f"Failed to fetch publishers: {e}",
            details=(
                "The publisher search service encountered an error. "
                "Please try again later or adjust your search criteria."
            ),
            service="publishers",
        ) from e

    await ctx.emit("publishers_data", result.ui_payload(), "data")
    logger.info(f"Sent {result.totalCount} publishers to room {ctx.room_id}")
    return result.model_payload()


@handle_async_tool_errors("getPublisherDetails")
async def execute_get_publisher_details(args: GetPublisherDetailsArgs, ctx: ToolContext) -> Dict[str, Any]:
    publisher = await get_publisher_details(args.publisherId)

    await ctx.emit("publisher_details", {"publisher": publisher}, "publisher")
    return {
        "summary": (
            f"{publisher['websiteName']} ({publisher['website']}): DR {publisher['authority']['dr']}, "
            f"DA {publisher['authority']['da']}, spam {publisher['spam']['level']}, "
            f"${publisher['pricing']['base']} base / ${publisher['pricing']['withContent']} with content."
        ),
        "message": "Full publisher details sent to user interface",
    }
