"""Tests for placeholder rewriting, binding and query execution."""

import pytest
from sqlalchemy import text

from deliverychat.errors import DatabaseError, QueryValidationError
from deliverychat.orchestrator.executor import (
    QueryExecutor,
    bind_named,
    bind_positional,
    compile_named,
    compile_positional,
    prepare,
)
from deliverychat.orchestrator.models import QueryRequest
from tests.conftest import PENDING_DELIVERIES


class TestCompileNamed:
    """Tests for :identifier -> :pN rewriting."""

    def test_distinct_identifiers_get_sequential_markers(self):
        compiled = compile_named("SELECT * FROM deliveries WHERE status = :status AND driver_id = :driverId")
        assert compiled.sql == "SELECT * FROM deliveries WHERE status = :p1 AND driver_id = :p2"
        assert compiled.names == ("status", "driverId")

    def test_repeated_identifier_reuses_marker(self):
        compiled = compile_named(
            "SELECT * FROM deliveries WHERE customer_id = :id OR driver_id = :other OR delivery_id = :id"
        )
        assert compiled.sql.count(":p1") == 2
        assert compiled.sql.count(":p2") == 1
        assert compiled.marker_count == 2
        assert compiled.marker_for("id") == "p1"

    @pytest.mark.parametrize(
        "statement",
        [
            "SELECT :a, :b, :a, :c, :b",
            "SELECT * FROM t WHERE x = :x",
            "SELECT :one FROM t WHERE :two = :one AND :three IN (:two, :one)",
        ],
    )
    def test_marker_count_equals_distinct_identifiers(self, statement):
        compiled = compile_named(statement)
        distinct = []
        for token in statement.replace(",", " ").replace("(", " ").replace(")", " ").split():
            if token.startswith(":") and token[1:] not in distinct:
                distinct.append(token[1:])
        assert compiled.names == tuple(distinct)
        for position, name in enumerate(distinct, start=1):
            assert compiled.marker_for(name) == f"p{position}"

    def test_casts_and_literals_are_not_placeholders(self):
        compiled = compile_named(
            "SELECT created_at::date, '10:30' AS t FROM deliveries WHERE status = :status"
        )
        assert compiled.names == ("status",)
        assert "created_at::date" in compiled.sql
        assert "'10:30'" in compiled.sql

    def test_no_placeholders(self):
        compiled = compile_named("SELECT count(*) FROM deliveries")
        assert compiled.names == ()
        assert compiled.sql == "SELECT count(*) FROM deliveries"


class TestBinding:
    """Tests for name-keyed binding."""

    def test_binding_ignores_mapping_order(self):
        compiled = compile_named("SELECT * FROM t WHERE a = :a AND b = :b")
        binds = bind_named(compiled, {"b": "second", "a": "first"})
        assert binds == {"p1": "first", "p2": "second"}

    def test_missing_parameter(self):
        compiled = compile_named("SELECT * FROM t WHERE a = :a AND b = :b")
        with pytest.raises(QueryValidationError, match="b") as exc_info:
            bind_named(compiled, {"a": 1})
        assert exc_info.value.details["parameters"] == ["b"]

    def test_extra_parameters_are_ignored(self):
        compiled = compile_named("SELECT * FROM t WHERE a = :a")
        assert bind_named(compiled, {"a": 1, "unused": 2}) == {"p1": 1}

    def test_non_scalar_value_rejected(self):
        compiled = compile_named("SELECT * FROM t WHERE a = :a")
        with pytest.raises(QueryValidationError, match="must be a string, number, boolean or null"):
            bind_named(compiled, {"a": ["x"]})

    def test_positional_values_follow_placeholder_numbers(self):
        compiled = compile_positional("SELECT * FROM t WHERE a = $2 AND b = $1 OR c = $2")
        assert compiled.sql == "SELECT * FROM t WHERE a = :p1 AND b = :p2 OR c = :p1"
        assert bind_positional(compiled, ["one", "two"]) == {"p1": "two", "p2": "one"}

    def test_positional_missing_value(self):
        compiled = compile_positional("SELECT * FROM t WHERE a = $3")
        with pytest.raises(QueryValidationError, match=r"\$3"):
            bind_positional(compiled, ["x"])

    def test_prepare_selects_form_from_parameters(self):
        named_sql, named_binds = prepare(QueryRequest("SELECT :a", {"a": 1}))
        positional_sql, positional_binds = prepare(QueryRequest("SELECT $1", [1]))
        assert named_sql.sql == positional_sql.sql == "SELECT :p1"
        assert named_binds == positional_binds == {"p1": 1}

    def test_prepare_rejects_string_parameters(self):
        with pytest.raises(QueryValidationError):
            prepare(QueryRequest("SELECT $1", "abc"))


class TestQueryExecutor:
    """Tests for execution against a seeded SQLite database."""

    @pytest.mark.asyncio
    async def test_named_query_returns_rows(self, engine):
        executor = QueryExecutor(engine)
        result = await executor.execute(QueryRequest(
            "SELECT delivery_id, status FROM deliveries WHERE status = :status ORDER BY delivery_id",
            {"status": "pending"},
        ))
        assert result.row_count == PENDING_DELIVERIES
        assert [c.name for c in result.columns] == ["delivery_id", "status"]
        assert all(row["status"] == "pending" for row in result.rows)

    @pytest.mark.asyncio
    async def test_repeated_placeholder_binds_once(self, engine):
        executor = QueryExecutor(engine)
        result = await executor.execute(QueryRequest(
            "SELECT count(*) AS n FROM deliveries WHERE status = :s OR (status = :s AND driver_id IS NULL)",
            {"s": "pending"},
        ))
        assert result.rows[0]["n"] == PENDING_DELIVERIES

    @pytest.mark.asyncio
    async def test_positional_query(self, engine):
        executor = QueryExecutor(engine)
        result = await executor.execute(QueryRequest(
            "SELECT name FROM customers WHERE email = $1", ["alice@example.com"]
        ))
        assert result.row_dicts() == [{"name": "Alice Martin"}]

    @pytest.mark.asyncio
    async def test_rows_are_read_only(self, engine):
        result = await QueryExecutor(engine).execute(QueryRequest("SELECT name FROM customers"))
        with pytest.raises(TypeError):
            result.rows[0]["name"] = "changed"

    @pytest.mark.asyncio
    async def test_row_cap_marks_result_truncated(self, engine):
        executor = QueryExecutor(engine, max_rows=1)
        result = await executor.execute(QueryRequest("SELECT * FROM deliveries"))
        assert result.row_count == 1
        assert result.truncated is True

    @pytest.mark.asyncio
    async def test_driver_error_is_wrapped_with_statement(self, engine):
        executor = QueryExecutor(engine)
        statement = "SELECT * FROM parcels"
        with pytest.raises(DatabaseError) as exc_info:
            await executor.execute(QueryRequest(statement))
        assert exc_info.value.statement == statement
        assert "parcels" in exc_info.value.message
        assert exc_info.value.details["statement"] == statement

    @pytest.mark.asyncio
    async def test_read_only_executor_rolls_back_writes(self, engine):
        executor = QueryExecutor(engine, read_only=True)
        await executor.execute(QueryRequest(
            "INSERT INTO customers (customer_id, name, email, address) VALUES (:id, :name, :email, :address)",
            {"id": "c-new", "name": "Carol", "email": "carol@example.com", "address": "1 Elm"},
        ))
        async with engine.connect() as conn:
            count = (await conn.execute(text("SELECT count(*) FROM customers WHERE name = 'Carol'"))).scalar()
        assert count == 0

    @pytest.mark.asyncio
    async def test_failures_do_not_leak_connections(self, engine):
        """Failed executions release their connection; later queries still run."""
        executor = QueryExecutor(engine)
        for _ in range(8):
            with pytest.raises(DatabaseError):
                await executor.execute(QueryRequest("SELECT * FROM parcels"))
        result = await executor.execute(QueryRequest("SELECT count(*) AS n FROM customers"))
        assert result.rows[0]["n"] == 2
