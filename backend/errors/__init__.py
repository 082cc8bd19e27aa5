"""
Relay Error Handling Module

Provides standardized error codes, exceptions, and response builders
for consistent error handling across the application.

Usage:
    from errors import (
        # Error codes
        ErrorCode,

        # Exceptions
        RelayError,
        ProtocolError,
        ValidationError,
        NotFoundError,
        LLMError,
        ExternalServiceError,

        # Response builders
        error_response,
        success_response,
        tool_error_payload,

        # Decorators
        handle_async_tool_errors,
        log_error,
    )

Example:
    from errors import handle_async_tool_errors, NotFoundError

    @handle_async_tool_errors("getPublisherDetails")
    async def execute_publisher_details(args, ctx):
        publisher = await find_publisher(args.publisherId)
        if publisher is None:
            raise NotFoundError(
                f"Publisher {args.publisherId} not found",
                details="Browse publishers first to get a valid id",
                resource_type="publisher",
            )
        return {"publisher": publisher}
"""

from .codes import ErrorCode
from .exceptions import (
    RelayError,
    ProtocolError,
    ValidationError,
    NotFoundError,
    LLMError,
    ExternalServiceError,
)
from .response import (
    error_response,
    success_response,
    tool_error_payload,
)
from .handlers import (
    handle_async_tool_errors,
    log_error,
)

__all__ = [
    # Error codes
    "ErrorCode",
    # Exceptions
    "RelayError",
    "ProtocolError",
    "ValidationError",
    "NotFoundError",
    "LLMError",
    "ExternalServiceError",
    # Response builders
    "error_response",
    "success_response",
    "tool_error_payload",
    # Decorators
    "handle_async_tool_errors",
    "log_error",
]
