"""Status events published to connected viewers.

Events are transient: never persisted, delivered at most once to each
listener connected at publish time.
"""

from typing import Any, Literal

from pydantic import BaseModel

StatusType = Literal["connected", "thinking", "querying", "results", "error", "complete"]


class StatusEvent(BaseModel):
    """One progress update.

    Only ``type`` and ``message`` are always present; the JSON form omits
    unset fields.
    """

    type: StatusType
    message: str
    thread_id: str | None = None
    query: str | None = None
    parameters: dict[str, Any] | list[Any] | None = None
    results: list[dict[str, Any]] | None = None
    row_count: int | None = None
    error: str | None = None
    clients: int | None = None

    def to_json(self) -> str:
        return self.model_dump_json(exclude_none=True)

    @classmethod
    def connected(cls, clients: int) -> "StatusEvent":
        return cls(type="connected", message="SSE connection established", clients=clients)

    @classmethod
    def thinking(cls, thread_id: str) -> "StatusEvent":
        return cls(type="thinking", message="Assistant is working on the request", thread_id=thread_id)

    @classmethod
    def querying(cls, thread_id: str, query: str, parameters: Any) -> "StatusEvent":
        return cls(
            type="querying",
            message="Executing database query",
            thread_id=thread_id,
            query=query,
            parameters=parameters,
        )

    @classmethod
    def results_ready(cls, thread_id: str, query: str, rows: list[dict[str, Any]]) -> "StatusEvent":
        return cls(
            type="results",
            message=f"Query returned {len(rows)} row(s)",
            thread_id=thread_id,
            query=query,
            results=rows,
            row_count=len(rows),
        )

    @classmethod
    def failed(cls, thread_id: str | None, error: str, query: str | None = None) -> "StatusEvent":
        return cls(type="error", message="Request failed", thread_id=thread_id, error=error, query=query)

    @classmethod
    def complete(cls, thread_id: str) -> "StatusEvent":
        return cls(type="complete", message="Response complete", thread_id=thread_id)
