"""Tests for the graph projector and its query guards."""

from unittest.mock import AsyncMock

import pytest

from quest_core.core.exceptions import AuthorizationError, ReadOnlyQueryViolation, ValidationError
from quest_core.schemas.graph import UserGraphSnapshot, UserSkillSnapshot, WorkExperienceSnapshot
from quest_core.services.graph_sync import (
    NEXT_ROLE_UPSERT,
    ROLE_UPSERT,
    STATS_QUERIES,
    GraphSyncManager,
    assert_read_only,
)
from quest_core.utils.canonical_key import role_key


@pytest.fixture
def snapshot() -> UserGraphSnapshot:
    return UserGraphSnapshot(
        user_id="user-1",
        external_user_id="auth|alice",
        email="alice@example.com",
        name="Alice",
        work_experiences=[
            WorkExperienceSnapshot(
                id="w2",
                company_id="c2",
                company_name="Globex",
                title="Senior Engineer",
                start_date="2021-01-01",
                is_current=True,
            ),
            WorkExperienceSnapshot(
                id="w1",
                company_id="c1",
                company_name="Acme",
                title="Engineer",
                start_date="2018-01-01",
                end_date="2020-12-31",
            ),
        ],
        skills=[UserSkillSnapshot(id="us1", skill_id="s1", skill_name="Python", proficiency_level="expert")],
    )


def _params_for(client, query):
    return [call.args[1] for call in client.execute_write_query.await_args_list if call.args[0] == query]


class TestSyncUserData:

    @pytest.mark.asyncio
    async def test_replaying_a_snapshot_issues_identical_merges(self, mock_graph_client, snapshot):
        manager = GraphSyncManager(mock_graph_client, environment="development")

        await manager.sync_user_data(snapshot)
        first = list(mock_graph_client.execute_write_query.await_args_list)
        mock_graph_client.execute_write_query.reset_mock()
        await manager.sync_user_data(snapshot)
        second = list(mock_graph_client.execute_write_query.await_args_list)

        assert first == second
        for call in first:
            assert "CREATE" not in call.args[0].upper()

    @pytest.mark.asyncio
    async def test_roles_are_ordered_and_chained(self, mock_graph_client, snapshot):
        await GraphSyncManager(mock_graph_client, environment="development").sync_user_data(snapshot)

        [role_params] = _params_for(mock_graph_client, ROLE_UPSERT)
        assert [row["title"] for row in role_params["rows"]] == ["Engineer", "Senior Engineer"]
        assert role_params["rows"][0]["roleId"] == role_key("  engineer ")

        [next_params] = _params_for(mock_graph_client, NEXT_ROLE_UPSERT)
        assert next_params["rows"] == [{
            "id": "w1->w2",
            "fromRoleId": role_key("Engineer"),
            "toRoleId": role_key("Senior Engineer"),
        }]

    @pytest.mark.asyncio
    async def test_stale_edges_are_pruned_by_kept_ids(self, mock_graph_client, snapshot):
        await GraphSyncManager(mock_graph_client, environment="development").sync_user_data(snapshot)

        prune_calls = [
            call.args for call in mock_graph_client.execute_write_query.await_args_list
            if "keepIds" in call.args[1]
        ]
        assert prune_calls[0][1]["keepIds"] == ["us1", "w1", "w2"]
        assert prune_calls[1][1]["keepIds"] == ["w1->w2"]

    @pytest.mark.asyncio
    async def test_write_counters_are_summed(self, mock_graph_client, snapshot):
        mock_graph_client.execute_write_query = AsyncMock(return_value={"nodes_created": 1})

        totals = await GraphSyncManager(mock_graph_client, environment="development").sync_user_data(snapshot)

        assert totals["nodes_created"] == mock_graph_client.execute_write_query.await_count


class TestReadGuards:

    @pytest.mark.parametrize(
        "query",
        ["CREATE (n) RETURN n", "  merge (n:User {id: 1})", "DELETE n", "set n.x = 1", "Remove n.x"],
    )
    def test_write_verbs_are_rejected(self, query):
        with pytest.raises(ReadOnlyQueryViolation):
            assert_read_only(query)

    def test_read_query_passes(self):
        assert_read_only("MATCH (n) RETURN count(n)")

    @pytest.mark.asyncio
    async def test_write_query_never_reaches_the_store(self, mock_graph_client):
        manager = GraphSyncManager(mock_graph_client, environment="development")

        with pytest.raises(ReadOnlyQueryViolation):
            await manager.run_custom_query("CREATE (n) RETURN n")

        mock_graph_client.run_read_query.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_write_check_runs_before_production_check(self, mock_graph_client):
        manager = GraphSyncManager(mock_graph_client, environment="production")

        with pytest.raises(ReadOnlyQueryViolation):
            await manager.run_custom_query("MERGE (n) RETURN n")

    @pytest.mark.asyncio
    async def test_custom_queries_are_disabled_in_production(self, mock_graph_client):
        manager = GraphSyncManager(mock_graph_client, environment="production")

        with pytest.raises(AuthorizationError):
            await manager.run_custom_query("MATCH (n) RETURN n")

    @pytest.mark.asyncio
    async def test_cleanup_is_disabled_in_production(self, mock_graph_client):
        manager = GraphSyncManager(mock_graph_client, environment="production")

        with pytest.raises(AuthorizationError):
            await manager.cleanup_user_data("user-1")

        mock_graph_client.execute_write_query.assert_not_awaited()


class TestReadViews:

    @pytest.mark.asyncio
    @pytest.mark.parametrize("from_role,to_role", [("", "CTO"), ("Engineer", "  ")])
    async def test_career_paths_need_both_roles(self, mock_graph_client, from_role, to_role):
        with pytest.raises(ValidationError):
            await GraphSyncManager(mock_graph_client).find_career_paths(from_role, to_role)

    @pytest.mark.asyncio
    async def test_career_paths_bound_the_hop_count(self, mock_graph_client):
        manager = GraphSyncManager(mock_graph_client)

        with pytest.raises(ValidationError):
            await manager.find_career_paths("Engineer", "CTO", max_hops=7)

        await manager.find_career_paths("Engineer", "CTO", max_hops=3)
        query = mock_graph_client.run_read_query.await_args.args[0]
        assert "*1..3" in query

    @pytest.mark.asyncio
    async def test_database_stats_read_every_counter(self, mock_graph_client):
        mock_graph_client.run_read_query = AsyncMock(return_value=[{"value": 4}])

        stats = await GraphSyncManager(mock_graph_client).get_database_stats()

        assert set(stats) == set(STATS_QUERIES)
        assert all(value == 4 for value in stats.values())

    @pytest.mark.asyncio
    async def test_network_without_user_node_is_empty(self, mock_graph_client):
        network = await GraphSyncManager(mock_graph_client).get_user_professional_network("user-1")

        assert network == {"nodes": [], "relationships": []}

    @pytest.mark.asyncio
    async def test_snapshot_counts_node_types(self, mock_graph_client):
        mock_graph_client.run_read_query = AsyncMock(return_value=[{
            "user": {"id": "user-1", "name": "Alice"},
            "connections": [
                {"node": {"id": "c1", "name": "Acme"}, "labels": ["Company"], "type": "WORKED_AT",
                 "relationship": {"id": "w1"}},
                {"node": {"id": "s1", "name": "Python"}, "labels": ["Skill"], "type": "HAS_SKILL",
                 "relationship": {"id": "us1"}},
            ],
        }])

        snapshot = await GraphSyncManager(mock_graph_client).get_graph_snapshot("user-1")

        assert snapshot["stats"]["nodeCount"] == 3
        assert snapshot["stats"]["relationshipCount"] == 2
        assert snapshot["stats"]["companyCount"] == 1
        assert snapshot["stats"]["skillCount"] == 1
        assert snapshot["relationships"][0]["startNode"] == "user-1"
