"""Parameterized query executor.

Statements arrive with named placeholders (``WHERE status = :status``) or
positional ones (``WHERE status = $1``). Both are rewritten to sequential
positional markers before execution:

- each distinct placeholder gets the next marker number in order of first
  occurrence, and every repeat of that placeholder reuses its marker;
- values are bound by looking up each marker's placeholder name in the
  supplied parameters. Mapping iteration order is never used to decide
  which value goes where.

Markers are rendered as SQLAlchemy bind names (``:p1``, ``:p2``, ...) so
the same statement runs on every driver SQLAlchemy supports.
"""

import logging
import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine

from deliverychat.errors import DatabaseError, QueryValidationError
from deliverychat.orchestrator.models import SCALAR_TYPES, QueryRequest, QueryResult

logger = logging.getLogger(__name__)

# Same lookarounds SQLAlchemy's text() uses: skip ``::type`` casts and
# escaped colons.
_NAMED_PLACEHOLDER = re.compile(r"(?<![:\w\\]):(\w+)(?!:)")
_POSITIONAL_PLACEHOLDER = re.compile(r"\$(\d+)\b")

MARKER_PREFIX = "p"


@dataclass(frozen=True)
class CompiledQuery:
    """A statement rewritten to positional markers.

    Attributes:
        sql: Statement with ``:p1``, ``:p2``, ... markers.
        names: Placeholder for each marker; ``names[0]`` is marker 1.
    """

    sql: str
    names: tuple[str, ...]

    @property
    def marker_count(self) -> int:
        return len(self.names)

    def marker_for(self, name: str) -> str:
        return f"{MARKER_PREFIX}{self.names.index(name) + 1}"


def _compile(statement: str, pattern: re.Pattern[str]) -> CompiledQuery:
    markers: dict[str, str] = {}

    def _replace(match: re.Match[str]) -> str:
        name = match.group(1)
        if name not in markers:
            markers[name] = f"{MARKER_PREFIX}{len(markers) + 1}"
        return f":{markers[name]}"

    sql = pattern.sub(_replace, statement)
    return CompiledQuery(sql=sql, names=tuple(markers))


def compile_named(statement: str) -> CompiledQuery:
    """Rewrite ``:identifier`` placeholders to sequential markers."""
    return _compile(statement, _NAMED_PLACEHOLDER)


def compile_positional(statement: str) -> CompiledQuery:
    """Rewrite ``$n`` placeholders to sequential markers.

    ``names`` holds the original numbers as strings (``"1"``, ``"2"``).
    """
    return _compile(statement, _POSITIONAL_PLACEHOLDER)


def _check_scalar(name: str, value: Any) -> None:
    if not isinstance(value, SCALAR_TYPES):
        raise QueryValidationError(
            f"Parameter '{name}' must be a string, number, boolean or null, "
            f"got {type(value).__name__}",
            {"reason": "parameter_type", "parameter": name},
        )


def bind_named(compiled: CompiledQuery, parameters: Mapping[str, Any]) -> dict[str, Any]:
    """Resolve each marker's value by placeholder name.

    Raises:
        QueryValidationError: If a placeholder has no value or a value is
            not scalar.
    """
    missing = [name for name in compiled.names if name not in parameters]
    if missing:
        raise QueryValidationError(
            f"Missing value for parameter(s): {', '.join(missing)}",
            {"reason": "missing_parameter", "parameters": missing},
        )
    unused = set(parameters) - set(compiled.names)
    if unused:
        logger.debug("Ignoring parameters without placeholders: %s", sorted(unused))

    binds: dict[str, Any] = {}
    for position, name in enumerate(compiled.names, start=1):
        value = parameters[name]
        _check_scalar(name, value)
        binds[f"{MARKER_PREFIX}{position}"] = value
    return binds


def bind_positional(compiled: CompiledQuery, values: Sequence[Any]) -> dict[str, Any]:
    """Resolve each ``$n`` marker to ``values[n - 1]``."""
    binds: dict[str, Any] = {}
    for position, number in enumerate(compiled.names, start=1):
        index = int(number) - 1
        if index < 0 or index >= len(values):
            raise QueryValidationError(
                f"No value supplied for placeholder ${number} ({len(values)} value(s) given)",
                {"reason": "missing_parameter", "parameters": [f"${number}"]},
            )
        value = values[index]
        _check_scalar(f"${number}", value)
        binds[f"{MARKER_PREFIX}{position}"] = value
    return binds


def prepare(request: QueryRequest) -> tuple[CompiledQuery, dict[str, Any]]:
    """Compile and bind a query request."""
    parameters = request.parameters if request.parameters is not None else {}
    if isinstance(parameters, Mapping):
        compiled = compile_named(request.statement)
        return compiled, bind_named(compiled, parameters)
    if isinstance(parameters, (str, bytes)) or not isinstance(parameters, Sequence):
        raise QueryValidationError(
            "Parameters must be an object of named values or an array of values",
            {"reason": "parameter_type"},
        )
    compiled = compile_positional(request.statement)
    return compiled, bind_positional(compiled, parameters)


class QueryExecutor:
    """Executes prepared queries on a pooled async engine.

    Each execution checks out one connection for its duration; the
    ``async with`` block returns it to the pool on every exit path.

    Args:
        engine: Shared SQLAlchemy async engine.
        read_only: Run inside a transaction that is always rolled back
            (and declared READ ONLY on PostgreSQL).
        max_rows: Maximum number of rows returned; extra rows are dropped
            and the result is marked truncated.
    """

    def __init__(self, engine: AsyncEngine, read_only: bool = True, max_rows: int = 200) -> None:
        self._engine = engine
        self.read_only = read_only
        self.max_rows = max_rows

    @property
    def dialect(self) -> str:
        return self._engine.dialect.name

    async def execute(self, request: QueryRequest) -> QueryResult:
        """Run one statement and return its rows.

        Raises:
            QueryValidationError: If parameters can't be bound.
            DatabaseError: If the driver rejects or fails the statement.
        """
        compiled, binds = prepare(request)
        logger.info(
            "Executing query markers=%d read_only=%s: %s",
            compiled.marker_count,
            self.read_only,
            compiled.sql,
        )

        try:
            async with self._engine.connect() as conn:
                trans = await conn.begin()
                try:
                    if self.read_only and self.dialect == "postgresql":
                        await conn.execute(text("SET TRANSACTION READ ONLY"))
                    result = await conn.execute(text(compiled.sql), binds)
                    if result.returns_rows:
                        columns = list(result.keys())
                        fetched = result.fetchmany(self.max_rows + 1)
                    else:
                        columns, fetched = [], []
                        logger.info("Statement affected %s row(s)", result.rowcount)
                except BaseException:
                    await trans.rollback()
                    raise
                if self.read_only:
                    await trans.rollback()
                else:
                    await trans.commit()
        except SQLAlchemyError as e:
            # DBAPI errors carry the driver message in .orig
            reason = str(getattr(e, "orig", None) or e)
            logger.warning("Database query failed: %s", reason)
            raise DatabaseError(reason, statement=request.statement) from e

        truncated = len(fetched) > self.max_rows
        rows = [tuple(row) for row in fetched[: self.max_rows]]
        if truncated:
            logger.info("Query result truncated to %d rows", self.max_rows)
        return QueryResult.build(columns, rows, truncated=truncated)
