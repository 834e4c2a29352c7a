"""Tests for the graph, temporal and usage endpoints."""

from datetime import date, datetime, timezone
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import pytest

from quest_core.api.v1.deps import (
    UserContext,
    get_extraction_service,
    get_graph_sync,
    get_temporal_manager,
    get_user_context,
)
from quest_core.core.exceptions import AuthorizationError, ReadOnlyQueryViolation, ValidationError
from quest_core.main import app

USER = UserContext(user_id=uuid4(), external_user_id="auth|alice")


@pytest.fixture
def graph():
    return MagicMock()


@pytest.fixture
def manager():
    return MagicMock()


@pytest.fixture
def client(test_client, graph, manager):
    app.dependency_overrides[get_user_context] = lambda: USER
    app.dependency_overrides[get_graph_sync] = lambda: graph
    app.dependency_overrides[get_temporal_manager] = lambda: manager
    return test_client


class TestGraphIntelligence:

    def test_network_is_the_default_view(self, client, graph):
        graph.get_user_professional_network = AsyncMock(return_value={"nodes": [], "relationships": []})

        response = client.get("/api/v1/graph/intelligence")

        assert response.status_code == 200
        assert response.json()["data"] == {"nodes": [], "relationships": []}
        graph.get_user_professional_network.assert_awaited_once_with(str(USER.user_id))

    def test_career_paths_require_both_roles(self, client, graph):
        graph.find_career_paths = AsyncMock()

        response = client.get("/api/v1/graph/intelligence?type=career-paths&from=Engineer")

        assert response.status_code == 400
        graph.find_career_paths.assert_not_awaited()

    def test_career_paths_pass_hops_through(self, client, graph):
        graph.find_career_paths = AsyncMock(return_value=[{"roles": ["Engineer", "CTO"], "hops": 1, "frequency": 3}])

        response = client.get("/api/v1/graph/intelligence?type=career-paths&from=Engineer&to=CTO&maxHops=3")

        assert response.status_code == 200
        assert response.json()["data"]["paths"][0]["frequency"] == 3
        graph.find_career_paths.assert_awaited_once_with("Engineer", "CTO", max_hops=3, limit=50)

    def test_hop_bound_violation_is_a_bad_request(self, client, graph):
        graph.find_career_paths = AsyncMock(side_effect=ValidationError("maxHops must be between 1 and 6"))

        response = client.get("/api/v1/graph/intelligence?type=career-paths&from=A&to=B&maxHops=9")

        assert response.status_code == 400

    def test_skill_migration_requires_a_skill(self, client, graph):
        response = client.get("/api/v1/graph/intelligence?type=skill-migration")

        assert response.status_code == 400

    def test_stats_view(self, client, graph):
        graph.get_database_stats = AsyncMock(return_value={"userCount": 3})

        response = client.get("/api/v1/graph/intelligence?type=stats")

        assert response.json()["data"] == {"stats": {"userCount": 3}}

    def test_unknown_view_is_rejected(self, client):
        response = client.get("/api/v1/graph/intelligence?type=horoscope")

        assert response.status_code == 422


class TestGraphAdministration:

    def test_write_query_is_forbidden(self, client, graph):
        graph.run_custom_query = AsyncMock(side_effect=ReadOnlyQueryViolation("Write operation 'CREATE' is not allowed"))

        response = client.post("/api/v1/graph/custom", json={"query": "CREATE (n) RETURN n"})

        assert response.status_code == 403
        assert response.json()["detail"]["title"] == "Read-Only Query Violation"

    def test_read_query_returns_records(self, client, graph):
        graph.run_custom_query = AsyncMock(return_value=[{"value": 1}])

        response = client.post("/api/v1/graph/custom", json={"query": "MATCH (n) RETURN count(n) AS value"})

        assert response.status_code == 200
        assert response.json()["data"] == {"records": [{"value": 1}]}

    def test_cleanup_blocked_in_production(self, client, graph):
        graph.cleanup_user_data = AsyncMock(side_effect=AuthorizationError("Graph cleanup is disabled in production"))

        response = client.delete("/api/v1/graph/cleanup")

        assert response.status_code == 403

    def test_snapshot(self, client, graph):
        graph.get_graph_snapshot = AsyncMock(return_value={"nodes": [], "relationships": [], "stats": {"nodeCount": 0}})

        response = client.get("/api/v1/graph/snapshot")

        assert response.json()["data"]["stats"] == {"nodeCount": 0}


class TestTemporalEndpoints:

    def test_timeline_window_is_parsed(self, client, manager):
        manager.get_timeline = AsyncMock(return_value={"nodes": [], "links": [], "timeRange": {}})

        response = client.get("/api/v1/temporal/?startDate=2020-01-01&endDate=2021-01-01")

        assert response.status_code == 200
        manager.get_timeline.assert_awaited_once_with(USER.user_id, start=date(2020, 1, 1), end=date(2021, 1, 1))

    def test_append_event(self, client, manager):
        event = SimpleNamespace(
            id=uuid4(),
            entity_id="company-1",
            entity_name="Acme",
            relation_type="job",
            event_metadata={"role": "Engineer"},
            t_valid=datetime(2020, 1, 1, tzinfo=timezone.utc),
            t_invalid=None,
            t_created=datetime(2024, 1, 1, tzinfo=timezone.utc),
        )
        manager.append_event = AsyncMock(return_value=event)

        response = client.post(
            "/api/v1/temporal/",
            json={"type": "job", "entityId": "company-1", "entityName": "Acme", "t_valid": "2020-01-01T00:00:00Z"},
        )

        assert response.status_code == 201
        wire = response.json()["data"]["event"]
        assert wire["type"] == "job"
        assert wire["metadata"] == {"role": "Engineer"}
        assert manager.append_event.await_args.kwargs["relation_type"] == "job"

    def test_inverted_interval_is_rejected_before_the_service(self, client, manager):
        manager.append_event = AsyncMock()

        response = client.post(
            "/api/v1/temporal/",
            json={
                "type": "job",
                "entityId": "company-1",
                "t_valid": "2022-01-01T00:00:00Z",
                "t_invalid": "2021-01-01T00:00:00Z",
            },
        )

        assert response.status_code == 422
        manager.append_event.assert_not_awaited()


def test_usage_totals(test_client):
    service = MagicMock()
    service.usage_totals = AsyncMock(return_value={"extractions": 2, "actions_extracted": 3, "commits_created": 3})
    app.dependency_overrides[get_user_context] = lambda: USER
    app.dependency_overrides[get_extraction_service] = lambda: service

    response = test_client.get("/api/v1/usage/")

    assert response.status_code == 200
    assert response.json()["data"]["usage"]["extractions"] == 2
