"""
Tests for the relay error handling module.
"""

import asyncio
import logging

from errors import (
    ErrorCode,
    RelayError,
    ProtocolError,
    ValidationError,
    NotFoundError,
    LLMError,
    ExternalServiceError,
    error_response,
    success_response,
    tool_error_payload,
    handle_async_tool_errors,
    log_error,
)


class TestErrorCodes:
    """Test error code enum."""

    def test_error_codes_are_strings(self):
        assert ErrorCode.PROTOCOL_INVALID_FORMAT.value == "PROTOCOL_INVALID_FORMAT"
        assert ErrorCode.NOT_FOUND_TOOL.value == "NOT_FOUND_TOOL"

    def test_error_codes_have_categories(self):
        llm_codes = [c for c in ErrorCode if c.value.startswith("LLM_")]
        assert len(llm_codes) >= 3

        external_codes = [c for c in ErrorCode if c.value.startswith("EXTERNAL_")]
        assert len(external_codes) >= 4


class TestRelayError:
    """Test base RelayError exception."""

    def test_basic_creation(self):
        err = RelayError("Test error")
        assert err.message == "Test error"
        assert err.details is None
        assert err.code == ErrorCode.INTERNAL_UNEXPECTED
        assert err.recoverable is False

    def test_with_context(self):
        err = RelayError("Test error", room="chat-1", count=2)
        assert err.context == {"room": "chat-1", "count": 2}

    def test_str_representation(self):
        assert str(RelayError("Test error", details="More info")) == "Test error - More info"
        assert str(RelayError("Test error")) == "Test error"

    def test_to_dict(self):
        err = RelayError("Test error", details="More info", key="value")
        d = err.to_dict()
        assert d["code"] == ErrorCode.INTERNAL_UNEXPECTED.value
        assert d["message"] == "Test error"
        assert d["details"] == "More info"
        assert d["recoverable"] is False
        assert d["context"] == {"key": "value"}


class TestProtocolError:

    def test_invalid_format_code(self):
        err = ProtocolError("Invalid message format")
        assert err.code == ErrorCode.PROTOCOL_INVALID_FORMAT
        assert err.recoverable is True

    def test_unknown_type_code(self):
        err = ProtocolError("Unknown message type: ping", message_type="ping")
        assert err.code == ErrorCode.PROTOCOL_UNKNOWN_TYPE
        assert err.context == {"message_type": "ping"}


class TestNotFoundError:

    def test_default_is_tool(self):
        err = NotFoundError("Unknown function: nope", resource_id="nope")
        assert err.code == ErrorCode.NOT_FOUND_TOOL
        assert err.context == {"resource_id": "nope"}

    def test_publisher_resource_type(self):
        err = NotFoundError("Publisher not found", resource_type="publisher")
        assert err.code == ErrorCode.NOT_FOUND_PUBLISHER


class TestLLMError:

    def test_default_code(self):
        assert LLMError("LLM failed").code == ErrorCode.LLM_UNAVAILABLE

    def test_error_types(self):
        assert LLMError("x", error_type="timeout").code == ErrorCode.LLM_TIMEOUT
        assert LLMError("x", error_type="invalid").code == ErrorCode.LLM_RESPONSE_INVALID

    def test_with_model(self):
        err = LLMError("Timeout", model="gpt-3.5-turbo")
        assert err.context == {"model": "gpt-3.5-turbo"}


class TestExternalServiceError:

    def test_service_codes(self):
        assert ExternalServiceError("x", service="vectorstore").code == ErrorCode.EXTERNAL_VECTORSTORE_FAILED
        assert ExternalServiceError("x", service="embeddings").code == ErrorCode.EXTERNAL_EMBEDDING_FAILED
        assert ExternalServiceError("x", service="publishers").code == ErrorCode.EXTERNAL_PUBLISHERS_FAILED
        assert ExternalServiceError("x").code == ErrorCode.EXTERNAL_NETWORK_ERROR

    def test_with_status_code(self):
        err = ExternalServiceError("API error", service="publishers", status_code=503)
        assert err.context == {"service": "publishers", "status_code": 503}


class TestResponses:

    def test_relay_error_response(self):
        err = ValidationError("Missing parameter", parameter="publisherId")
        resp = error_response(err, tool="getPublisherDetails")
        assert resp["success"] is False
        assert resp["error"]["code"] == "VALIDATION_MISSING_PARAM"
        assert resp["error"]["tool"] == "getPublisherDetails"
        assert resp["error"]["context"] == {"parameter": "publisherId"}

    def test_generic_exception_response(self):
        resp = error_response(ValueError("bad"))
        assert resp["error"]["code"] == ErrorCode.INTERNAL_UNEXPECTED.value
        assert resp["error"]["message"] == "bad"

    def test_without_context(self):
        err = ValidationError("Missing", parameter="x")
        assert error_response(err, include_context=False)["error"]["context"] is None

    def test_success_response(self):
        assert success_response({"a": 1}, b=2) == {"success": True, "a": 1, "b": 2}


class TestToolErrorPayload:

    def test_relay_error(self):
        err = NotFoundError("Unknown function: nope", details="This function is not available in the system.")
        payload = tool_error_payload(err, tool="nope")
        assert payload == {
            "error": True,
            "function": "nope",
            "message": "Unknown function: nope",
            "details": "This function is not available in the system.",
        }

    def test_relay_error_without_details_gets_default(self):
        payload = tool_error_payload(ExternalServiceError("API down"), tool="browsePublishers")
        assert payload["error"] is True
        assert payload["details"]

    def test_generic_exception(self):
        payload = tool_error_payload(RuntimeError("boom"), tool="viewCart")
        assert payload["message"] == "boom"
        assert "unexpected" in payload["details"]


class TestHandleAsyncToolErrors:

    def test_success_passthrough(self):
        @handle_async_tool_errors("viewCart")
        async def tool():
            return {"success": True}

        assert asyncio.run(tool()) == {"success": True}

    def test_relay_error_becomes_payload(self):
        @handle_async_tool_errors("getPublisherDetails")
        async def tool():
            raise NotFoundError("Publisher not found: x", resource_type="publisher")

        result = asyncio.run(tool())
        assert result["error"] is True
        assert result["function"] == "getPublisherDetails"
        assert result["message"] == "Publisher not found: x"

    def test_generic_exception_becomes_payload(self):
        @handle_async_tool_errors("addToCart")
        async def tool():
            raise KeyError("price")

        result = asyncio.run(tool())
        assert result["error"] is True
        assert result["function"] == "addToCart"

    def test_logging(self, caplog):
        @handle_async_tool_errors("clearCart")
        async def tool():
            raise ExternalServiceError("down", service="publishers")

        with caplog.at_level(logging.ERROR):
            asyncio.run(tool())
        assert "[clearCart]" in caplog.text
        assert "EXTERNAL_PUBLISHERS_FAILED" in caplog.text

    def test_preserves_function_metadata(self):
        @handle_async_tool_errors("viewCart")
        async def execute_view_cart():
            """Docstring."""
            return {}

        assert execute_view_cart.__name__ == "execute_view_cart"
        assert execute_view_cart.__doc__ == "Docstring."


class TestLogError:

    def test_relay_error_with_context(self, caplog):
        logger = logging.getLogger("test.errors")
        with caplog.at_level(logging.ERROR):
            log_error(logger, ExternalServiceError("Query failed", service="vectorstore"), context="RAG",
                      include_traceback=False)
        assert "[RAG] EXTERNAL_VECTORSTORE_FAILED: Query failed" in caplog.text
