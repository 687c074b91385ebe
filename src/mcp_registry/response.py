"""Standard response envelope and error codes."""

from typing import Any


class ResponseEnvelope:
    """Standard response envelope for backend routes and MCP tools."""

    @staticmethod
    def success(message: str, data: Any = None) -> dict:
        """Create a success response."""
        return {
            "ok": True,
            "error": None,
            "message": message,
            "data": data if data is not None else {}
        }

    @staticmethod
    def error(code: str, message: str, data: Any = None) -> dict:
        """Create an error response."""
        return {
            "ok": False,
            "error": code,
            "message": message,
            "data": data if data is not None else {}
        }


class ErrorCodes:
    """Error codes shared by the backend, the CLI and the MCP server."""
    UNEXPECTED_EXCEPTION = "unexpected_exception"
    INVALID_ARGUMENT = "invalid_argument"
    VALIDATION_ERROR = "validation_error"
    NOT_FOUND = "not_found"
    UNAUTHORIZED = "unauthorized"
    PERSISTENCE_ERROR = "persistence_error"
    UNSUPPORTED_AUTH = "unsupported_auth"
    TIMEOUT = "timeout"
    TRANSPORT_ERROR = "transport_error"
    PROTOCOL_ERROR = "protocol_error"
    EXTERNAL_SERVICE_ERROR = "external_service_error"
