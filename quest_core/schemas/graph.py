"""
Graph projection schema definitions.

Pydantic models for the relational snapshot projected into the graph store
and the deltas pushed over the realtime channel.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class IntelligenceType(str, Enum):
    """Read views exposed by the graph intelligence endpoint."""
    NETWORK = "network"
    COLLEAGUES = "colleagues"
    CAREER_PATHS = "career-paths"
    SKILL_MIGRATION = "skill-migration"
    STATS = "stats"
    INSIGHTS = "insights"


class GraphDeltaType(str, Enum):
    NODE_ADDED = "node_added"
    RELATIONSHIP_ADDED = "relationship_added"
    NODE_UPDATED = "node_updated"
    NODE_REMOVED = "node_removed"


# Snapshot models
class GraphEntity(BaseModel):
    """
    Base model for projected rows.

    `id` is the relational primary key of the row; graph writes MERGE on it
    so the projection never holds an identity of its own.
    """
    id: str = Field(..., description="Relational id of the projected row")


class WorkExperienceSnapshot(GraphEntity):
    company_id: str
    company_name: str
    industry: Optional[str] = None
    title: Optional[str] = None
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    is_current: bool = False


class UserSkillSnapshot(GraphEntity):
    skill_id: str
    skill_name: str
    category: Optional[str] = None
    proficiency_level: Optional[str] = None
    years_of_experience: Optional[int] = None
    is_showcase: bool = False


class EducationSnapshot(GraphEntity):
    institution_id: str
    institution_name: str
    institution_type: Optional[str] = None
    country: Optional[str] = None
    degree: Optional[str] = None
    field_of_study: Optional[str] = None
    start_date: Optional[str] = None
    end_date: Optional[str] = None


class UserGraphSnapshot(BaseModel):
    """One user's canonical relational state, as projected into the graph."""
    user_id: str
    external_user_id: Optional[str] = None
    email: Optional[str] = None
    name: Optional[str] = None
    work_experiences: List[WorkExperienceSnapshot] = Field(default_factory=list)
    skills: List[UserSkillSnapshot] = Field(default_factory=list)
    education: List[EducationSnapshot] = Field(default_factory=list)


class GraphDelta(BaseModel):
    """A single change pushed to live subscribers."""
    type: GraphDeltaType
    user_id: str = Field(..., serialization_alias="userId")
    data: Dict[str, Any]
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class CustomQueryRequest(BaseModel):
    query: str = Field(..., min_length=1, description="Read-only Cypher query")
    parameters: Dict[str, Any] = Field(default_factory=dict)
