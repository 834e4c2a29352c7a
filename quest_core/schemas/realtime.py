from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field

from quest_core.schemas.common import CamelModel


class ClientEvent(str, Enum):
    AUTHENTICATE = "authenticate"
    PING = "ping"


class SystemMessageKind(str, Enum):
    AUTHENTICATED = "authenticated"
    ERROR = "error"
    PONG = "pong"


class RealtimeMessage(BaseModel):
    """Envelope for every frame on the realtime channel."""

    event: str
    data: Dict[str, Any] = Field(default_factory=dict)


class AuthenticatePayload(CamelModel):
    user_id: str = Field(..., min_length=1)
    token: Optional[str] = None
