"""Tests for the realtime fan-out registry."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from quest_core.services.event_broadcaster import GRAPH_UPDATE, EventBroadcaster


def make_socket(fail: bool = False) -> MagicMock:
    websocket = MagicMock()
    websocket.accept = AsyncMock()
    websocket.send_json = AsyncMock(side_effect=RuntimeError("socket closed") if fail else None)
    return websocket


@pytest.mark.asyncio
async def test_failing_socket_is_dropped_and_others_still_receive():
    events = EventBroadcaster()
    healthy, broken = make_socket(), make_socket(fail=True)
    events.join("auth|alice", healthy)
    events.join("auth|alice", broken)

    delivered = await events.node_added("auth|alice", "s1", "Python", "skill")

    assert delivered == 1
    frame = healthy.send_json.await_args.args[0]
    assert frame["event"] == GRAPH_UPDATE
    assert frame["data"]["type"] == "node_added"
    assert frame["data"]["userId"] == "auth|alice"
    assert frame["data"]["data"]["color"] == "#8b5cf6"
    assert events.connection_count("auth|alice") == 1


@pytest.mark.asyncio
async def test_rooms_are_isolated():
    events = EventBroadcaster()
    alice, bob = make_socket(), make_socket()
    events.join("auth|alice", alice)
    events.join("auth|bob", bob)

    await events.relationship_added("auth|alice", "user-1", "s1", "HAS_SKILL")

    alice.send_json.assert_awaited_once()
    bob.send_json.assert_not_awaited()
    assert alice.send_json.await_args.args[0]["data"]["data"]["id"] == "user-1-has_skill-s1"


@pytest.mark.asyncio
async def test_publishing_to_an_empty_room_delivers_nothing():
    assert await EventBroadcaster().publish_conversation_update("auth|nobody", {"status": "done"}) == 0


def test_disconnect_removes_empty_rooms():
    events = EventBroadcaster()
    websocket = make_socket()
    events.join("auth|alice", websocket)

    events.disconnect(websocket)

    assert events.rooms == {}
