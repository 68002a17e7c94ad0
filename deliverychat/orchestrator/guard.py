"""Query guard: reject SQL statements before they reach the database.

Two checks are available and combined per call path:

- ``keywords``: case-insensitive substring match against data-mutating
  keywords. This is a coarse lexical filter, not a parser: it rejects
  harmless identifiers such as ``updated_at`` and misses obfuscated
  statements. It is kept because the public query path has always applied
  it.
- ``statement``: parses the text with sqlglot and requires exactly one
  top-level read statement (SELECT, a set operation, or WITH ... SELECT)
  with no INTO target and no row-locking clause.

Neither check replaces a read-only database credential; the executor also
runs queries in a rolled-back, read-only transaction.
"""

import logging
from collections.abc import Iterable

import sqlglot
from sqlglot import exp

from deliverychat.errors import QueryValidationError

logger = logging.getLogger(__name__)

DISALLOWED_KEYWORDS: tuple[str, ...] = ("drop", "truncate", "delete", "update", "insert")

KEYWORDS = "keywords"
STATEMENT = "statement"

_READ_EXPRESSIONS = (exp.Select, exp.Union, exp.Intersect, exp.Except)

# Nodes that write or take row locks even when the root is a SELECT.
_WRITE_EXPRESSIONS = (exp.Insert, exp.Update, exp.Delete, exp.Merge, exp.Drop, exp.Into, exp.Lock)


class QueryGuard:
    """Validates statements against a configured set of checks.

    Args:
        checks: Names of the checks to apply, in order. An empty set
            disables validation for the path using this guard.
        dialect: sqlglot dialect used by the ``statement`` check.
    """

    def __init__(self, checks: Iterable[str] = (KEYWORDS,), dialect: str | None = None) -> None:
        self.checks = tuple(checks)
        unknown = set(self.checks) - {KEYWORDS, STATEMENT}
        if unknown:
            raise ValueError(f"Unknown guard check(s): {', '.join(sorted(unknown))}")
        self.dialect = dialect

    @property
    def enabled(self) -> bool:
        return bool(self.checks)

    def validate(self, statement: str) -> None:
        """Raise QueryValidationError if the statement fails any check."""
        if not statement or not statement.strip():
            raise QueryValidationError("Query text is empty")
        for check in self.checks:
            if check == KEYWORDS:
                check_keywords(statement)
            elif check == STATEMENT:
                check_statement(statement, self.dialect)

    def __repr__(self) -> str:
        return f"QueryGuard(checks={self.checks!r}, dialect={self.dialect!r})"


def check_keywords(statement: str) -> None:
    """Reject statements containing any disallowed keyword as a substring."""
    normalized = statement.lower()
    for keyword in DISALLOWED_KEYWORDS:
        if keyword in normalized:
            logger.info("Query rejected by keyword filter (%s)", keyword)
            raise QueryValidationError(
                "Only SELECT operations are allowed",
                {"reason": "keyword", "keyword": keyword},
            )


def check_statement(statement: str, dialect: str | None = None) -> None:
    """Require exactly one top-level read statement."""
    try:
        parsed = [node for node in sqlglot.parse(statement, read=dialect) if node is not None]
    except (sqlglot.errors.ParseError, sqlglot.errors.TokenError) as e:
        raise QueryValidationError(
            f"Could not parse SQL: {e}", {"reason": "syntax"}
        ) from e

    if len(parsed) != 1:
        raise QueryValidationError(
            "Exactly one SQL statement is allowed",
            {"reason": "statement_count", "count": len(parsed)},
        )

    root = parsed[0]
    if not isinstance(root, _READ_EXPRESSIONS):
        kind = root.key.upper()
        logger.info("Query rejected by statement check (%s)", kind)
        raise QueryValidationError(
            f"Only SELECT operations are allowed, got {kind}",
            {"reason": "statement_type", "statement_type": kind},
        )

    for node in root.find_all(*_WRITE_EXPRESSIONS):
        kind = node.key.upper()
        raise QueryValidationError(
            f"Only SELECT operations are allowed, found nested {kind}",
            {"reason": "statement_type", "statement_type": kind},
        )
