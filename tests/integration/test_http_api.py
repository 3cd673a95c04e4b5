"""
Integration tests for the read-only inspection API.

Uses FastAPI's TestClient against an engine populated in-process.
"""

import pytest
from fastapi.testclient import TestClient

from sdk.livecache.api.app import create_app
from sdk.livecache.api.config import Settings
from sdk.livecache.engine import CacheEngine
from sdk.livecache.router.routes import default_routes


@pytest.fixture
def engine():
    engine = CacheEngine(routes=default_routes())
    engine.route_subscription("flowCreated", {"id": "1", "title": "Scan"})
    engine.route_subscription("terminalLogAdded", {"id": "7", "text": "$ ls"}, {"flowId": 1})
    return engine


@pytest.fixture
def client(engine):
    return TestClient(create_app(engine, Settings()))


class TestInspectionApi:
    """Tests for the inspection API routes."""

    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_get_entity(self, client):
        response = client.get("/api/v1/entities/Flow/1")

        assert response.status_code == 200
        body = response.json()
        assert body["fields"] == {"title": "Scan"}
        assert body["version"] == 1
        assert body["streaming"] is False

    def test_get_entity_streaming(self, client, engine):
        engine.route(
            {"kind": "partial_update", "type": "AssistantLog", "id": "3", "fields": {"message": "Hel"}}
        )

        body = client.get("/api/v1/entities/AssistantLog/3").json()

        assert body["streaming"] is True
        assert body["fields"]["message"] == "Hel"

    def test_get_entity_missing(self, client):
        response = client.get("/api/v1/entities/Flow/404")

        assert response.status_code == 404

    def test_get_list(self, client):
        response = client.get("/api/v1/lists/terminalLogs:flowId=1")

        assert response.status_code == 200
        body = response.json()
        assert body["fetched"] is True
        assert body["policy"] == "append-if-absent"
        assert body["items"] == [{"type": "TerminalLog", "id": "7"}]

    def test_get_list_never_fetched(self, client):
        body = client.get("/api/v1/lists/terminalLogs:flowId=2").json()

        assert body["fetched"] is False
        assert body["items"] == []

    def test_get_list_fetched_empty(self, client, engine):
        engine.hydrate({"listKey": "tasks:flowId=1", "items": []})

        body = client.get("/api/v1/lists/tasks:flowId=1").json()

        assert body["fetched"] is True
        assert body["items"] == []
        assert body["policy"] == "prepend-if-absent"

    def test_stats(self, client):
        body = client.get("/api/v1/stats").json()

        assert body["entities"] == 2
        assert body["lists"] == 2
        assert body["router"]["routed_count"] == 2

    def test_read_only(self, client):
        response = client.post("/api/v1/stats")

        assert response.status_code == 405


class TestSettings:
    """Tests for the API settings."""

    def test_env_prefix(self, monkeypatch):
        monkeypatch.setenv("LIVECACHE_API_PORT", "9999")

        assert Settings().port == 9999
