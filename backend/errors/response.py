"""
Standard error response builders.

Provides consistent response formats for HTTP handlers, websocket events
and tool results handed back to the model.
"""

from typing import Any, Optional
from .codes import ErrorCode
from .exceptions import RelayError


def error_response(error: RelayError | Exception, tool: Optional[str] = None, include_context: bool = True) -> dict:
    """Build a standard error response dictionary.

    Args:
        error: The exception to convert to a response
        tool: Optional tool name for context
        include_context: Whether to include the context dict (disable for privacy)

    Returns:
        Standard error response dict with success=False

    Example:
        >>> from errors import ValidationError, error_response
        >>> err = ValidationError("Missing parameter", parameter="publisherId")
        >>> error_response(err, tool="getPublisherDetails")
        {
            "success": False,
            "error": {
                "code": "VALIDATION_MISSING_PARAM",
                "message": "Missing parameter",
                "details": None,
                "tool": "getPublisherDetails",
                "recoverable": True,
                "context": {"parameter": "publisherId"}
            }
        }
    """
    if isinstance(error, RelayError):
        body = error.to_dict()
        body["tool"] = tool
        if not include_context:
            body["context"] = None
        return {"success": False, "error": body}

    return {
        "success": False,
        "error": {
            "code": ErrorCode.INTERNAL_UNEXPECTED.value,
            "message": str(error),
            "details": None,
            "tool": tool,
            "recoverable": False,
            "context": None,
        },
    }


def success_response(data: Optional[dict] = None, **kwargs: Any) -> dict:
    """Build a standard success response dictionary.

    Example:
        >>> success_response(cleared=True)
        {"success": True, "cleared": True}
    """
    response = {"success": True}

    if data:
        response.update(data)
    if kwargs:
        response.update(kwargs)

    return response


def tool_error_payload(error: RelayError | Exception, tool: str) -> dict:
    """Build the structured failure record a tool returns to the model.

    The model receives this as if it were a normal tool result so it can
    narrate the failure to the user.

    Returns:
        {"error": True, "function": tool, "message": ..., "details": ...}
    """
    if isinstance(error, RelayError):
        message = error.message
        details = error.details or "The tool could not complete this request. Please try again or adjust the request."
    else:
        message = str(error) or error.__class__.__name__
        details = "The tool encountered an unexpected error. Please try again later."
    return {
        "error": True,
        "function": tool,
        "message": message,
        "details": details,
    }
