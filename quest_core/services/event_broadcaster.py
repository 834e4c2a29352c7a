"""Best-effort fan-out of graph deltas to a user's live WebSocket sessions.

Delivery is at-most-once with no replay buffer; a subscriber that missed
deltas fetches the full snapshot instead.
"""

from typing import Any, Dict, List, Set

from fastapi import WebSocket

from quest_core.schemas.graph import GraphDelta, GraphDeltaType
from quest_core.utils.logging import get_logger

LOGGER = get_logger(__name__)

GRAPH_UPDATE = "graph_update"
CONVERSATION_UPDATE = "conversation_update"
SYSTEM_MESSAGE = "system_message"

NODE_COLORS = {
    "company": "#10b981",
    "skill": "#8b5cf6",
    "institution": "#f59e0b",
}


class EventBroadcaster:
    """Registry of authenticated sockets grouped by user id."""

    def __init__(self):
        self.rooms: Dict[str, Set[WebSocket]] = {}

    async def connect(self, websocket: WebSocket) -> None:
        await websocket.accept()

    def join(self, user_id: str, websocket: WebSocket) -> None:
        self.rooms.setdefault(user_id, set()).add(websocket)
        LOGGER.info("Realtime session authenticated", extra={"user_id": user_id})

    def disconnect(self, websocket: WebSocket) -> None:
        for user_id in list(self.rooms):
            sockets = self.rooms[user_id]
            sockets.discard(websocket)
            if not sockets:
                del self.rooms[user_id]

    def connection_count(self, user_id: str) -> int:
        return len(self.rooms.get(user_id, ()))

    @staticmethod
    async def send(websocket: WebSocket, event: str, data: Dict[str, Any]) -> None:
        await websocket.send_json({"event": event, "data": data})

    async def _emit(self, user_id: str, event: str, data: Dict[str, Any]) -> int:
        """Send to every session of ``user_id``; failing sockets are dropped, never raised."""
        delivered = 0
        dead: List[WebSocket] = []
        for websocket in list(self.rooms.get(user_id, ())):
            try:
                await self.send(websocket, event, data)
                delivered += 1
            except Exception as e:
                LOGGER.warning(
                    f"Dropping realtime session after send failure: {e}",
                    extra={"user_id": user_id, "event": event, "operation": "publish"},
                )
                dead.append(websocket)
        for websocket in dead:
            self.disconnect(websocket)
        return delivered

    async def publish(self, user_id: str, delta: GraphDelta) -> int:
        """Fan a graph delta out to the user's sessions.

        Returns:
            Number of sessions the delta was written to
        """
        payload = delta.model_dump(mode="json", by_alias=True)
        return await self._emit(user_id, GRAPH_UPDATE, payload)

    async def publish_conversation_update(self, user_id: str, data: Dict[str, Any]) -> int:
        return await self._emit(user_id, CONVERSATION_UPDATE, data)

    async def node_added(self, user_id: str, node_id: str, name: str, node_type: str, metadata=None) -> int:
        return await self.publish(user_id, GraphDelta(
            type=GraphDeltaType.NODE_ADDED,
            user_id=user_id,
            data={
                "id": node_id,
                "name": name,
                "type": node_type,
                "color": NODE_COLORS.get(node_type, "#6b7280"),
                "metadata": metadata or {},
            },
        ))

    async def relationship_added(
        self, user_id: str, source: str, target: str, relationship_type: str, metadata=None
    ) -> int:
        return await self.publish(user_id, GraphDelta(
            type=GraphDeltaType.RELATIONSHIP_ADDED,
            user_id=user_id,
            data={
                "id": f"{source}-{relationship_type.lower()}-{target}",
                "source": source,
                "target": target,
                "relationshipType": relationship_type,
                "metadata": metadata or {},
            },
        ))


broadcaster = EventBroadcaster()


def get_broadcaster() -> EventBroadcaster:
    return broadcaster
