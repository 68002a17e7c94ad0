"""Error code registry with E-XXXX format codes.

Error categories:
- E-1xxx: Conversation errors (unknown or busy threads)
- E-2xxx: Tool call validation errors (rejected SQL, malformed arguments)
- E-4xxx: System errors (database, assistant backend, push channel)

Each error includes a code, title, HTTP status, and remediation text.
"""

from dataclasses import dataclass
from enum import Enum


class ErrorCategory(str, Enum):
    """Categories for error codes."""

    CONVERSATION = "conversation"  # E-1xxx
    VALIDATION = "validation"  # E-2xxx
    SYSTEM = "system"  # E-4xxx


@dataclass(frozen=True)
class ErrorCode:
    """Definition of an error code with metadata.

    Attributes:
        code: Error code in E-XXXX format.
        category: Error category for grouping.
        title: Short title for display.
        http_status: Status code returned when the error reaches a route.
        remediation: Action the caller should take to resolve.
        is_retryable: Whether the operation can be retried without changes.
    """

    code: str
    category: ErrorCategory
    title: str
    http_status: int
    remediation: str
    is_retryable: bool = False


ERROR_REGISTRY: dict[str, ErrorCode] = {
    # Conversation errors (E-1xxx)
    "E-1001": ErrorCode(
        code="E-1001",
        category=ErrorCategory.CONVERSATION,
        title="Conversation Not Found",
        http_status=404,
        remediation="Start a new conversation without a thread id.",
    ),
    "E-1002": ErrorCode(
        code="E-1002",
        category=ErrorCategory.CONVERSATION,
        title="Conversation Busy",
        http_status=409,
        remediation="Wait for the current answer to finish and send the message again.",
        is_retryable=True,
    ),
    "E-1003": ErrorCode(
        code="E-1003",
        category=ErrorCategory.CONVERSATION,
        title="Run Not Available",
        http_status=409,
        remediation="Start a new run for the conversation.",
    ),
    # Validation errors (E-2xxx)
    "E-2001": ErrorCode(
        code="E-2001",
        category=ErrorCategory.VALIDATION,
        title="Query Rejected",
        http_status=400,
        remediation="Only read-only SELECT statements are allowed.",
    ),
    "E-2002": ErrorCode(
        code="E-2002",
        category=ErrorCategory.VALIDATION,
        title="Malformed Tool Arguments",
        http_status=400,
        remediation="Tool arguments must be a single JSON object.",
    ),
    "E-2003": ErrorCode(
        code="E-2003",
        category=ErrorCategory.VALIDATION,
        title="Unknown Tool",
        http_status=400,
        remediation="Call one of the declared tools by name.",
    ),
    # System errors (E-4xxx)
    "E-4001": ErrorCode(
        code="E-4001",
        category=ErrorCategory.SYSTEM,
        title="Database Error",
        http_status=500,
        remediation="Check the statement against the schema and retry.",
    ),
    "E-4002": ErrorCode(
        code="E-4002",
        category=ErrorCategory.SYSTEM,
        title="Assistant Run Failed",
        http_status=500,
        remediation="Retry the message. Check the assistant backend status if it persists.",
        is_retryable=True,
    ),
    "E-4003": ErrorCode(
        code="E-4003",
        category=ErrorCategory.SYSTEM,
        title="Assistant Run Timed Out",
        http_status=500,
        remediation="Retry the message or raise DELIVERYCHAT_MAX_POLL_ATTEMPTS.",
        is_retryable=True,
    ),
    "E-4004": ErrorCode(
        code="E-4004",
        category=ErrorCategory.SYSTEM,
        title="Status Delivery Failed",
        http_status=500,
        remediation="Reconnect to the status stream.",
        is_retryable=True,
    ),
}


def get_error(code: str) -> ErrorCode | None:
    """Get error definition by code.

    Args:
        code: Error code in E-XXXX format.

    Returns:
        ErrorCode if found, None otherwise.
    """
    return ERROR_REGISTRY.get(code)
