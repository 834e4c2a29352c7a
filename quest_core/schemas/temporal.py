from datetime import datetime
from typing import Any, Dict, Literal, Optional
from uuid import UUID

from pydantic import Field, model_validator

from quest_core.schemas.common import CamelModel

EventType = Literal["job", "skill", "education", "certification", "project", "okr", "todo"]


class TemporalEventCreate(CamelModel):
    """A relationship validity interval reported by the caller."""

    type: EventType
    entity_id: str = Field(..., min_length=1)
    entity_name: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    t_valid: Optional[datetime] = Field(None, alias="t_valid")
    t_invalid: Optional[datetime] = Field(None, alias="t_invalid")

    @model_validator(mode="after")
    def check_interval(self):
        if self.t_valid and self.t_invalid and self.t_invalid < self.t_valid:
            raise ValueError("t_invalid must not precede t_valid")
        return self


class TemporalEventResponse(CamelModel):
    id: UUID
    entity_id: str
    entity_name: Optional[str] = None
    relation_type: str = Field(..., serialization_alias="type")
    metadata: Dict[str, Any] = Field(default_factory=dict, validation_alias="event_metadata")
    t_valid: datetime = Field(..., alias="t_valid")
    t_invalid: Optional[datetime] = Field(None, alias="t_invalid")
    t_created: Optional[datetime] = Field(None, alias="t_created")
