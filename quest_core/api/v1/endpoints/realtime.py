"""WebSocket channel delivering graph deltas and conversation updates."""

from typing import Optional

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from pydantic import ValidationError as PydanticValidationError

from quest_core.core.auth import verify_realtime_identity
from quest_core.schemas.realtime import AuthenticatePayload, ClientEvent, RealtimeMessage, SystemMessageKind
from quest_core.services.event_broadcaster import SYSTEM_MESSAGE, get_broadcaster
from quest_core.utils.logging import get_logger

LOGGER = get_logger(__name__)

router = APIRouter()


async def _system_message(websocket: WebSocket, kind: SystemMessageKind, message: str, **extra) -> None:
    await get_broadcaster().send(websocket, SYSTEM_MESSAGE, {"kind": kind.value, "message": message, **extra})


@router.websocket("/realtime")
async def realtime(websocket: WebSocket):
    """Sessions join their user's room after an ``authenticate`` message.

    Unauthenticated sessions receive nothing but system messages.
    """
    events = get_broadcaster()
    await events.connect(websocket)
    user_id: Optional[str] = None

    try:
        while True:
            raw = await websocket.receive_text()
            try:
                message = RealtimeMessage.model_validate_json(raw)
            except PydanticValidationError:
                await _system_message(websocket, SystemMessageKind.ERROR, "Malformed message")
                continue

            if message.event == ClientEvent.AUTHENTICATE.value:
                try:
                    payload = AuthenticatePayload.model_validate(message.data)
                except PydanticValidationError:
                    await _system_message(websocket, SystemMessageKind.ERROR, "userId is required")
                    continue

                if not verify_realtime_identity(payload.user_id, payload.token):
                    await _system_message(websocket, SystemMessageKind.ERROR, "Authentication failed")
                    continue

                if user_id is not None and user_id != payload.user_id:
                    events.disconnect(websocket)
                user_id = payload.user_id
                events.join(user_id, websocket)
                await _system_message(websocket, SystemMessageKind.AUTHENTICATED, "Authenticated", userId=user_id)

            elif message.event == ClientEvent.PING.value:
                await _system_message(websocket, SystemMessageKind.PONG, "pong")

            else:
                await _system_message(websocket, SystemMessageKind.ERROR, f"Unknown event '{message.event}'")

    except WebSocketDisconnect:
        LOGGER.info("Realtime session closed", extra={"user_id": user_id})
    finally:
        events.disconnect(websocket)
