"""Tests for the public /query path, /schema and /health."""

from fastapi.testclient import TestClient

from deliverychat import __version__


def _count_deliveries(client) -> int:
    response = client.post("/query", json={"query": "SELECT count(*) AS n FROM deliveries"})
    return response.json()["data"][0]["n"]


class TestQuery:
    def test_named_parameters(self, client):
        response = client.post(
            "/query",
            json={
                "query": "SELECT delivery_id FROM deliveries WHERE status = :status ORDER BY delivery_id",
                "params": {"status": "pending"},
            },
        )
        assert response.status_code == 200
        assert response.json() == {
            "data": [
                {"delivery_id": "e0000000-0000-0000-0000-000000000001"},
                {"delivery_id": "e0000000-0000-0000-0000-000000000002"},
            ]
        }

    def test_write_rejected_before_execution(self, client):
        response = client.post("/query", json={"query": "DELETE FROM deliveries"})

        assert response.status_code == 400
        assert response.json() == {
            "error": "Query rejected",
            "details": "Only SELECT operations are allowed",
        }
        assert _count_deliveries(client) == 4

    def test_keyword_filter_is_lexical(self, client):
        response = client.post("/query", json={"query": "SELECT updated_at FROM deliveries"})
        assert response.status_code == 400

    def test_multiple_statements_rejected(self, client):
        response = client.post("/query", json={"query": "SELECT 1; SELECT 2"})
        assert response.status_code == 400
        assert "one SQL statement" in response.json()["details"]

    def test_missing_parameter_rejected(self, client):
        response = client.post(
            "/query", json={"query": "SELECT * FROM deliveries WHERE status = :status", "params": {}}
        )
        assert response.status_code == 400
        assert "status" in response.json()["details"]

    def test_database_error_is_500(self, client):
        response = client.post("/query", json={"query": "SELECT * FROM parcels"})
        assert response.status_code == 500
        body = response.json()
        assert body["error"] == "Failed to execute query"
        assert body["details"].startswith("Database query failed")


def test_schema_lists_tables(client):
    tables = client.get("/schema").json()["tables"]
    assert set(tables) == {"customers", "drivers", "deliveries"}
    assert tables["deliveries"]["columns"]["customer_id"]["references"] == {
        "table": "customers",
        "column": "customer_id",
    }


def test_health(client):
    assert client.get("/health").json() == {"status": "healthy", "version": __version__, "listeners": 0}


def test_shutdown_closes_backend(app, backend):
    with TestClient(app):
        assert backend.closed is False
    assert backend.closed is True
