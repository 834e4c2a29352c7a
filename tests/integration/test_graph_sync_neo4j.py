"""Graph projection against a live Neo4j server.

Runs only when ``NEO4J_TEST_HOST`` points at a disposable instance.
"""

import os
from uuid import uuid4

import pytest
import pytest_asyncio

from quest_core.core.config import settings
from quest_core.core.neo4j_client import Neo4jClientManager
from quest_core.schemas.graph import UserGraphSnapshot, UserSkillSnapshot, WorkExperienceSnapshot
from quest_core.services.graph_sync import GraphSyncManager

pytestmark = pytest.mark.skipif(not os.getenv("NEO4J_TEST_HOST"), reason="NEO4J_TEST_HOST is not set")

COUNT_USER_GRAPH = """
MATCH (u:User {id: $userId})
OPTIONAL MATCH (u)-[r]->()
RETURN count(DISTINCT r) AS relationships
"""


@pytest_asyncio.fixture
async def graph(monkeypatch):
    monkeypatch.setattr(settings.neo4j, "enabled", True)
    monkeypatch.setattr(settings.neo4j, "host", os.environ["NEO4J_TEST_HOST"])
    monkeypatch.setattr(settings.neo4j, "password", os.getenv("NEO4J_TEST_PASSWORD", settings.neo4j.password))
    await Neo4jClientManager.ensure_constraints()
    yield GraphSyncManager(Neo4jClientManager, environment="test")
    await Neo4jClientManager.close()


@pytest.mark.asyncio
async def test_replayed_sync_leaves_counts_unchanged(graph):
    user_id = str(uuid4())
    snapshot = UserGraphSnapshot(
        user_id=user_id,
        name="Integration",
        work_experiences=[
            WorkExperienceSnapshot(
                id=str(uuid4()), company_id=str(uuid4()), company_name="Acme", title="Engineer",
                start_date="2018-01-01", end_date="2020-01-01",
            ),
            WorkExperienceSnapshot(
                id=str(uuid4()), company_id=str(uuid4()), company_name="Globex", title="Lead Engineer",
                start_date="2020-02-01", is_current=True,
            ),
        ],
        skills=[UserSkillSnapshot(id=str(uuid4()), skill_id=str(uuid4()), skill_name="Python")],
    )

    try:
        await graph.sync_user_data(snapshot)
        first = await Neo4jClientManager.run_read_query(COUNT_USER_GRAPH, {"userId": user_id})
        second_counters = await graph.sync_user_data(snapshot)
        second = await Neo4jClientManager.run_read_query(COUNT_USER_GRAPH, {"userId": user_id})

        assert first == second
        assert first[0]["relationships"] == 5
        assert second_counters.get("nodes_created", 0) == 0
        assert second_counters.get("relationships_created", 0) == 0
    finally:
        await graph.cleanup_user_data(user_id)
