"""Typed domain exceptions for the delivery chat service.

Every exception carries a registry code so routes can map it to an HTTP
status and tool handlers can hand a readable message back to the model.

Usage:
    # In service layer
    raise QueryValidationError("Only SELECT operations are allowed")

    # In route handler (done centrally by the app exception handler)
    except DeliveryChatError as e:
        return JSONResponse(status_code=e.http_status, content=error_payload(e))
"""

from typing import Any

from deliverychat.errors.registry import get_error


class DeliveryChatError(Exception):
    """Base exception for all domain errors."""

    code = "E-4000"

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    @property
    def title(self) -> str:
        error_def = get_error(self.code)
        return error_def.title if error_def else "Internal Error"

    @property
    def http_status(self) -> int:
        error_def = get_error(self.code)
        return error_def.http_status if error_def else 500

    @property
    def remediation(self) -> str:
        error_def = get_error(self.code)
        return error_def.remediation if error_def else "Contact support."

    def __str__(self) -> str:
        return f"{self.code}: {self.message}"


class ThreadNotFoundError(DeliveryChatError):
    """Conversation handle is unknown to the assistant backend."""

    code = "E-1001"

    def __init__(self, thread_id: str) -> None:
        super().__init__(f"Thread '{thread_id}' not found", {"thread_id": thread_id})
        self.thread_id = thread_id


class ThreadBusyError(DeliveryChatError):
    """Thread already has an active run."""

    code = "E-1002"

    def __init__(self, thread_id: str, run_id: str) -> None:
        super().__init__(
            f"Thread '{thread_id}' already has an active run '{run_id}'",
            {"thread_id": thread_id, "run_id": run_id},
        )
        self.thread_id = thread_id
        self.run_id = run_id


class RunNotFoundError(DeliveryChatError):
    """Run id is unknown for the thread, or already submitted."""

    code = "E-1003"


class QueryValidationError(DeliveryChatError):
    """SQL statement or its parameters were rejected before execution."""

    code = "E-2001"


class ToolArgumentsParseError(DeliveryChatError):
    """Assembled tool-call arguments are not a JSON object."""

    code = "E-2002"

    def __init__(self, message: str, raw_arguments: str = "") -> None:
        super().__init__(message, {"raw_arguments": raw_arguments})
        self.raw_arguments = raw_arguments


class UnknownToolCallError(DeliveryChatError):
    """Tool call names a tool that is not registered, or cannot be attributed."""

    code = "E-2003"


class DatabaseError(DeliveryChatError):
    """Driver-level failure, wrapped with the failing statement."""

    code = "E-4001"

    def __init__(self, message: str, statement: str) -> None:
        super().__init__(f"Database query failed: {message}", {"statement": statement})
        self.statement = statement


class RunFailedError(DeliveryChatError):
    """Assistant backend reported the run as failed or expired."""

    code = "E-4002"

    def __init__(self, run_id: str, status: str, reason: str | None = None) -> None:
        message = f"Run {run_id} {status}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message, {"run_id": run_id, "status": status})
        self.run_id = run_id
        self.status = status


class RunTimeoutError(DeliveryChatError):
    """Run did not reach a terminal state within the poll budget."""

    code = "E-4003"

    def __init__(self, run_id: str, attempts: int) -> None:
        super().__init__(
            f"Run {run_id} did not complete after {attempts} status checks",
            {"run_id": run_id, "attempts": attempts},
        )
        self.run_id = run_id
        self.attempts = attempts


class TransportError(DeliveryChatError):
    """Push-channel delivery to one listener failed."""

    code = "E-4004"
