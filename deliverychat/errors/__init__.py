"""Error handling framework for the delivery chat service.

This package provides:
- Error code registry with E-XXXX format codes
- Typed domain exceptions mapped to those codes
- Formatting for HTTP bodies and tool outputs

Error categories:
- E-1xxx: Conversation errors
- E-2xxx: Validation errors
- E-4xxx: System/internal errors
"""

from deliverychat.errors.domain import (
    DatabaseError,
    DeliveryChatError,
    QueryValidationError,
    RunFailedError,
    RunNotFoundError,
    RunTimeoutError,
    ThreadBusyError,
    ThreadNotFoundError,
    ToolArgumentsParseError,
    TransportError,
    UnknownToolCallError,
)
from deliverychat.errors.formatter import error_payload, format_tool_error
from deliverychat.errors.registry import ERROR_REGISTRY, ErrorCategory, ErrorCode, get_error

__all__ = [
    # Registry
    "ErrorCode",
    "ErrorCategory",
    "ERROR_REGISTRY",
    "get_error",
    # Exceptions
    "DeliveryChatError",
    "ThreadNotFoundError",
    "ThreadBusyError",
    "RunNotFoundError",
    "QueryValidationError",
    "ToolArgumentsParseError",
    "UnknownToolCallError",
    "DatabaseError",
    "RunFailedError",
    "RunTimeoutError",
    "TransportError",
    # Formatter
    "error_payload",
    "format_tool_error",
]
