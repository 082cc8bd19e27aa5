"""
Error codes for the chat relay.

Provides a standardized taxonomy of error codes organized by category.
Use these codes consistently across all error responses and events.
"""

from enum import Enum


class ErrorCode(str, Enum):
    """Standardized error codes.

    Categories:
    - PROTOCOL_*: Inbound envelope / framing errors
    - VALIDATION_*: Input validation errors (tool args, config updates)
    - NOT_FOUND_*: Resource not found errors
    - LLM_*: Language model errors
    - EXTERNAL_*: External service errors (vector store, embeddings, APIs)
    - INTERNAL_*: Internal/unexpected errors
    """

    # Protocol errors (websocket envelopes)
    PROTOCOL_INVALID_FORMAT = "PROTOCOL_INVALID_FORMAT"
    PROTOCOL_UNKNOWN_TYPE = "PROTOCOL_UNKNOWN_TYPE"

    # Validation errors (input checking)
    VALIDATION_MISSING_PARAM = "VALIDATION_MISSING_PARAM"
    VALIDATION_INVALID_TYPE = "VALIDATION_INVALID_TYPE"
    VALIDATION_OUT_OF_RANGE = "VALIDATION_OUT_OF_RANGE"

    # Not found errors (missing resources)
    NOT_FOUND_TOOL = "NOT_FOUND_TOOL"
    NOT_FOUND_PUBLISHER = "NOT_FOUND_PUBLISHER"
    NOT_FOUND_ROOM = "NOT_FOUND_ROOM"

    # LLM errors (model interactions)
    LLM_UNAVAILABLE = "LLM_UNAVAILABLE"
    LLM_TIMEOUT = "LLM_TIMEOUT"
    LLM_RESPONSE_INVALID = "LLM_RESPONSE_INVALID"

    # External service errors
    EXTERNAL_VECTORSTORE_FAILED = "EXTERNAL_VECTORSTORE_FAILED"
    EXTERNAL_EMBEDDING_FAILED = "EXTERNAL_EMBEDDING_FAILED"
    EXTERNAL_PUBLISHERS_FAILED = "EXTERNAL_PUBLISHERS_FAILED"
    EXTERNAL_NETWORK_ERROR = "EXTERNAL_NETWORK_ERROR"

    # Internal errors (unexpected failures)
    INTERNAL_UNEXPECTED = "INTERNAL_UNEXPECTED"
