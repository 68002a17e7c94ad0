"""Error formatting for API responses and tool outputs."""

from typing import Any

from deliverychat.errors.domain import DeliveryChatError


def error_payload(error: Exception, summary: str = "Failed to process request") -> dict[str, Any]:
    """Build the ``{error, details}`` body returned to HTTP clients.

    Only the message reaches the client; stack traces stay in the logs.
    """
    details = error.message if isinstance(error, DeliveryChatError) else str(error)
    return {"error": summary, "details": details}


def format_tool_error(error: DeliveryChatError) -> str:
    """Format an error as a tool output the model can read and react to.

    The remediation text is appended so the model knows what to change
    before retrying the call.
    """
    return f"Error ({error.code} {error.title}): {error.message.rstrip('.')}. {error.remediation}"
