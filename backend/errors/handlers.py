"""
Error handling decorators and utilities.

Provides decorators for consistent error handling across tool executors.
"""

import logging
from functools import wraps
from typing import Any, Callable, Optional, TypeVar

from .exceptions import RelayError
from .response import tool_error_payload

F = TypeVar("F", bound=Callable[..., Any])


def handle_async_tool_errors(tool_name: str, logger: Optional[logging.Logger] = None):
    """Decorator that turns tool exceptions into structured tool results.

    Wraps an async tool executor so any exception is logged with its stack
    trace and converted to ``tool_error_payload``. The model then sees the
    failure as an ordinary tool result.

    Args:
        tool_name: Name of the tool for the error payload
        logger: Optional logger instance (defaults to tool-specific logger)

    Example:
        >>> @handle_async_tool_errors("browsePublishers")
        ... async def execute_browse(args, ctx):
        ...     raise ExternalServiceError("API down", service="publishers")
    """

    def decorator(func: F) -> F:
        log = logger or logging.getLogger(f"relay.tools.{tool_name}")

        @wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> Any:
            try:
                return await func(*args, **kwargs)
            except RelayError as e:
                log.error(f"[{tool_name}] {e.code.value}: {e.message}", exc_info=True)
                return tool_error_payload(e, tool=tool_name)
            except Exception as e:
                log.error(f"[{tool_name}] Unexpected error: {e}", exc_info=True)
                return tool_error_payload(e, tool=tool_name)

        return wrapper  # type: ignore

    return decorator


def log_error(
    logger: logging.Logger, error: Exception, context: Optional[str] = None, include_traceback: bool = True
) -> None:
    """Log an error with consistent formatting.

    Example:
        >>> log_error(logger, err, context="RAG")
        # Logs: "[RAG] EXTERNAL_VECTORSTORE_FAILED: Query failed"
    """
    if isinstance(error, RelayError):
        message = f"{error.code.value}: {error.message}"
    else:
        message = str(error)

    if context:
        message = f"[{context}] {message}"

    logger.error(message, exc_info=include_traceback)
