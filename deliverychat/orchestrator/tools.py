"""The ``query_database`` tool: declaration and handler.

Two argument forms exist and a deployment uses exactly one:

- named: ``{"query": "... WHERE status = :status", "parameters": {"status": "pending"}}``
- positional: ``{"sql": "... WHERE status = $1", "values": ["pending"]}``

The handler validates the arguments, runs the statement through the
tool-path QueryGuard, then executes it.
"""

import logging
from dataclasses import dataclass
from typing import Any, Literal, Protocol

from deliverychat.errors import QueryValidationError
from deliverychat.orchestrator.executor import QueryExecutor
from deliverychat.orchestrator.guard import QueryGuard
from deliverychat.orchestrator.models import QueryRequest, QueryResult

logger = logging.getLogger(__name__)

QUERY_DATABASE = "query_database"

ToolForm = Literal["named", "positional"]

_SCALAR_SCHEMA: dict[str, Any] = {
    "anyOf": [
        {"type": "string"},
        {"type": "number"},
        {"type": "boolean"},
        {"type": "null"},
    ]
}


@dataclass(frozen=True)
class ToolDefinition:
    """Backend-neutral tool declaration (JSON Schema input)."""

    name: str
    description: str
    input_schema: dict[str, Any]


class Tool(Protocol):
    """Anything the orchestrator can dispatch a tool call to."""

    name: str

    @property
    def definition(self) -> ToolDefinition: ...

    def describe_call(self, arguments: dict[str, Any]) -> QueryRequest: ...

    async def run(self, arguments: dict[str, Any]) -> QueryResult: ...


def build_definition(form: ToolForm = "named") -> ToolDefinition:
    """Build the ``query_database`` declaration for the given argument form."""
    if form == "named":
        return ToolDefinition(
            name=QUERY_DATABASE,
            description=(
                "Executes a parameterized SQL query against the delivery management "
                "database. Always use :param syntax for parameters to prevent SQL injection."
            ),
            input_schema={
                "type": "object",
                "properties": {
                    "query": {
                        "type": "string",
                        "description": (
                            "The SQL query to execute. Must use :param syntax for "
                            "parameters (e.g., WHERE customer_id = :customerId)"
                        ),
                    },
                    "parameters": {
                        "type": "object",
                        "description": (
                            "Object containing parameter values that match the "
                            ":param placeholders in the query"
                        ),
                        "additionalProperties": _SCALAR_SCHEMA,
                    },
                },
                "required": ["query", "parameters"],
                "additionalProperties": False,
            },
        )
    if form == "positional":
        return ToolDefinition(
            name=QUERY_DATABASE,
            description=(
                "Executes a SQL query with placeholders ($1, $2, etc.) plus parameter "
                "values on the deliveries database."
            ),
            input_schema={
                "type": "object",
                "properties": {
                    "sql": {
                        "type": "string",
                        "description": "Full SQL statement with placeholders ($1, $2, etc.).",
                    },
                    "values": {
                        "type": "array",
                        "items": _SCALAR_SCHEMA,
                        "description": "Parameter values to fill in for $1, $2, etc.",
                    },
                },
                "required": ["sql", "values"],
                "additionalProperties": False,
            },
        )
    raise ValueError(f"Unknown tool form: {form!r}")


class QueryDatabaseTool:
    """Guarded ``query_database`` handler for the assistant tool path.

    Args:
        executor: Query executor bound to the shared engine.
        guard: Checks applied before execution on this path.
        form: Argument form declared to the model.
    """

    name = QUERY_DATABASE

    def __init__(self, executor: QueryExecutor, guard: QueryGuard, form: ToolForm = "named") -> None:
        self.executor = executor
        self.guard = guard
        self.form = form
        self._definition = build_definition(form)
        if not guard.enabled:
            logger.warning(
                "query_database runs without statement checks; "
                "relying on database privileges for safety"
            )

    @property
    def definition(self) -> ToolDefinition:
        return self._definition

    def describe_call(self, arguments: dict[str, Any]) -> QueryRequest:
        """Turn tool arguments into a QueryRequest.

        Raises:
            QueryValidationError: If the arguments don't match the declared form.
        """
        if self.form == "named":
            statement, parameters = arguments.get("query"), arguments.get("parameters", {})
            if parameters is None:
                parameters = {}
            if not isinstance(parameters, dict):
                raise QueryValidationError("'parameters' must be an object")
        else:
            statement, parameters = arguments.get("sql"), arguments.get("values", [])
            if parameters is None:
                parameters = []
            if not isinstance(parameters, list):
                raise QueryValidationError("'values' must be an array")
        if not isinstance(statement, str) or not statement.strip():
            key = "query" if self.form == "named" else "sql"
            raise QueryValidationError(f"'{key}' must be a non-empty SQL string")
        return QueryRequest(statement=statement, parameters=parameters)

    async def run(self, arguments: dict[str, Any]) -> QueryResult:
        request = self.describe_call(arguments)
        self.guard.validate(request.statement)
        return await self.executor.execute(request)
