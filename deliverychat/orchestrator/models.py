"""Data models shared by the assistant backend, assembler and orchestrator.

Backend-neutral representations of threads, runs, tool calls, stream
events and query results. Backends translate their wire formats into
these types; nothing outside ``orchestrator.backend`` sees SDK objects.
"""

import json
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from types import MappingProxyType
from typing import Any, Literal, Mapping, Sequence, Union
from uuid import uuid4

from deliverychat.errors import DeliveryChatError

Scalar = Union[str, int, float, bool, None]
SCALAR_TYPES = (str, int, float, bool, type(None))


def new_id(prefix: str) -> str:
    """Generate an opaque identifier such as ``thread_3f2a...``."""
    return f"{prefix}_{uuid4().hex}"


def utc_now() -> datetime:
    return datetime.now(UTC)


class RunStatus(str, Enum):
    """Lifecycle of a run.

    queued -> in_progress -> completed | requires_action | failed | expired
    requires_action -> queued (after tool outputs are submitted)
    """

    queued = "queued"
    in_progress = "in_progress"
    requires_action = "requires_action"
    completed = "completed"
    failed = "failed"
    expired = "expired"

    @property
    def is_terminal(self) -> bool:
        return self in (RunStatus.completed, RunStatus.failed, RunStatus.expired)


@dataclass
class Message:
    """One turn of a conversation.

    ``content`` is a list of blocks; text blocks look like
    ``{"type": "text", "text": "..."}``.
    """

    role: Literal["user", "assistant"]
    content: list[dict[str, Any]]
    id: str = field(default_factory=lambda: new_id("msg"))
    created_at: datetime = field(default_factory=utc_now)

    @property
    def text(self) -> str | None:
        """First text-typed content block, or None."""
        for block in self.content:
            if block.get("type") == "text":
                return block.get("text", "")
        return None


@dataclass
class Thread:
    """Conversation handle plus its ordered turns."""

    id: str = field(default_factory=lambda: new_id("thread"))
    messages: list[Message] = field(default_factory=list)
    created_at: datetime = field(default_factory=utc_now)
    active_run_id: str | None = None

    def latest_assistant_message(self) -> Message | None:
        for message in reversed(self.messages):
            if message.role == "assistant":
                return message
        return None


@dataclass(frozen=True)
class ToolCall:
    """A complete tool call as delivered by a ``requires_action`` run."""

    id: str
    name: str
    arguments: str | Mapping[str, Any]


@dataclass(frozen=True)
class ToolOutput:
    """Result of one tool call, submitted back to the run."""

    tool_call_id: str
    output: str
    is_error: bool = False


@dataclass
class Run:
    """A single assistant processing attempt bound to one thread."""

    thread_id: str
    id: str = field(default_factory=lambda: new_id("run"))
    status: RunStatus = RunStatus.queued
    required_action: list[ToolCall] = field(default_factory=list)
    last_error: str | None = None
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)

    def transition(self, status: RunStatus) -> None:
        self.status = status
        self.updated_at = utc_now()


# ---------------------------------------------------------------------------
# Stream events
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TextDelta:
    """Partial assistant text."""

    text: str


@dataclass(frozen=True)
class ToolCallDelta:
    """Partial tool call.

    ``call_id`` and ``index`` identify the call when the protocol provides
    them; ``name`` is usually only present on the first fragment.
    """

    arguments: str = ""
    name: str | None = None
    call_id: str | None = None
    index: int | None = None


@dataclass(frozen=True)
class RunFinished:
    """Terminal stream event carrying the run in its settled status."""

    run: Run


StreamEvent = Union[TextDelta, ToolCallDelta, RunFinished]


@dataclass
class AssembledCall:
    """A tool call whose arguments are complete.

    Exactly one of ``arguments`` and ``error`` is set.
    """

    id: str
    name: str
    raw_arguments: str
    arguments: dict[str, Any] | None = None
    error: DeliveryChatError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class QueryRequest:
    """A statement plus its parameters.

    ``parameters`` is either a named mapping (``:name`` placeholders) or an
    ordered sequence (``$n`` placeholders).
    """

    statement: str
    parameters: Mapping[str, Scalar] | Sequence[Scalar] = field(default_factory=dict)

    @property
    def is_positional(self) -> bool:
        return not isinstance(self.parameters, Mapping)


@dataclass(frozen=True)
class ColumnInfo:
    name: str
    type: str


def _json_default(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)


@dataclass(frozen=True)
class QueryResult:
    """Immutable rows returned by one query execution."""

    rows: tuple[Mapping[str, Any], ...]
    columns: tuple[ColumnInfo, ...]
    row_count: int
    truncated: bool = False

    @classmethod
    def build(
        cls,
        column_names: Sequence[str],
        raw_rows: Sequence[Sequence[Any]],
        truncated: bool = False,
    ) -> "QueryResult":
        rows = tuple(MappingProxyType(dict(zip(column_names, row))) for row in raw_rows)
        columns = []
        for index, name in enumerate(column_names):
            sample = next((row[index] for row in raw_rows if row[index] is not None), None)
            columns.append(ColumnInfo(name=name, type=type(sample).__name__ if sample is not None else "unknown"))
        return cls(rows=rows, columns=tuple(columns), row_count=len(rows), truncated=truncated)

    def row_dicts(self) -> list[dict[str, Any]]:
        return [dict(row) for row in self.rows]

    def to_json(self) -> str:
        """Serialize for tool outputs and status events (UUIDs and dates as strings)."""
        return json.dumps(self.row_dicts(), default=_json_default)

    def to_payload(self) -> dict[str, Any]:
        return {
            "rows": json.loads(self.to_json()),
            "row_count": self.row_count,
            "columns": [{"name": c.name, "type": c.type} for c in self.columns],
            "truncated": self.truncated,
        }
