"""SQLAlchemy models for the professional record, commit ledger and temporal log."""

import uuid
from datetime import date, datetime, timezone
from typing import Any, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    func,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from quest_core.core.database import Base

JSONType = JSON().with_variant(JSONB(), "postgresql")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class User(Base):
    """Internal user row mapped from the identity provider subject."""

    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    external_user_id: Mapped[str] = mapped_column(String, unique=True, nullable=False)
    email: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    full_name: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), onupdate=utcnow
    )


class CanonicalEntityMixin:
    """Columns shared by the deduplicated reference entities."""

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String, nullable=False)
    normalized_name: Mapped[str] = mapped_column(String, nullable=False, unique=True, index=True)
    verified: Mapped[bool] = mapped_column(Boolean, default=False, server_default=text("false"))
    attributes: Mapped[dict[str, Any]] = mapped_column(JSONType, default=dict)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )


class Company(CanonicalEntityMixin, Base):
    __tablename__ = "companies"

    industry: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    website: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    location: Mapped[Optional[str]] = mapped_column(String, nullable=True)


class Skill(CanonicalEntityMixin, Base):
    __tablename__ = "skills"

    category: Mapped[Optional[str]] = mapped_column(String, nullable=True)


class Institution(CanonicalEntityMixin, Base):
    __tablename__ = "institutions"

    type: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    country: Mapped[Optional[str]] = mapped_column(String, nullable=True)


class WorkExperience(Base):
    __tablename__ = "work_experiences"

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True)
    company_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("companies.id"), index=True)
    title: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    start_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    end_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    is_current: Mapped[bool] = mapped_column(Boolean, default=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    source_commit_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid(as_uuid=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )

    company: Mapped["Company"] = relationship("Company")


class UserSkill(Base):
    __tablename__ = "user_skills"
    __table_args__ = (UniqueConstraint("user_id", "skill_id", name="uq_user_skills_user_skill"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True)
    skill_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("skills.id"), index=True)
    proficiency_level: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    years_of_experience: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    is_showcase: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )

    skill: Mapped["Skill"] = relationship("Skill")


class UserEducation(Base):
    __tablename__ = "user_education"

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True)
    institution_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("institutions.id"), index=True)
    degree: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    field_of_study: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    start_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    end_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    grade: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )

    institution: Mapped["Institution"] = relationship("Institution")


class Objective(Base):
    __tablename__ = "objectives"

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True)
    title: Mapped[str] = mapped_column(String, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    category: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    priority: Mapped[str] = mapped_column(String, default="medium")
    timeframe: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    target_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    status: Mapped[str] = mapped_column(String, default="active")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )

    key_results: Mapped[list["KeyResult"]] = relationship(
        "KeyResult", back_populates="objective", cascade="all, delete-orphan"
    )


class KeyResult(Base):
    __tablename__ = "key_results"

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    objective_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("objectives.id", ondelete="CASCADE"), index=True)
    title: Mapped[str] = mapped_column(String, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    measurement_type: Mapped[str] = mapped_column(String, default="number")
    target_value: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    current_value: Mapped[float] = mapped_column(Float, default=0.0)
    unit: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    due_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    status: Mapped[str] = mapped_column(String, default="not_started")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )

    objective: Mapped["Objective"] = relationship("Objective", back_populates="key_results")


class CommitBatch(Base):
    """Groups the commits of one conversation with aggregated status counters."""

    __tablename__ = "commit_batches"
    __table_args__ = (
        CheckConstraint(
            "total_commits = pending_commits + approved_commits + rejected_commits + committed_commits",
            name="ck_commit_batches_counters_balanced",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True)
    batch_title: Mapped[str] = mapped_column(String, nullable=False)
    batch_type: Mapped[str] = mapped_column(String, default="chat_session")
    session_summary: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    ai_insights: Mapped[Optional[dict[str, Any]]] = mapped_column(JSONType, nullable=True)
    session_metadata: Mapped[Optional[dict[str, Any]]] = mapped_column(JSONType, nullable=True)
    batch_status: Mapped[str] = mapped_column(String, default="active")

    total_commits: Mapped[int] = mapped_column(Integer, default=0, server_default="0", nullable=False)
    pending_commits: Mapped[int] = mapped_column(Integer, default=0, server_default="0", nullable=False)
    approved_commits: Mapped[int] = mapped_column(Integer, default=0, server_default="0", nullable=False)
    rejected_commits: Mapped[int] = mapped_column(Integer, default=0, server_default="0", nullable=False)
    committed_commits: Mapped[int] = mapped_column(Integer, default=0, server_default="0", nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), onupdate=utcnow
    )
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    commits: Mapped[list["ConversationCommit"]] = relationship(
        "ConversationCommit", back_populates="batch", cascade="all, delete-orphan", passive_deletes=True
    )


class ConversationCommit(Base):
    """A reviewable structured update derived from one extracted action."""

    __tablename__ = "conversation_commits"
    __table_args__ = (
        CheckConstraint("confidence >= 0 AND confidence <= 1", name="ck_conversation_commits_confidence"),
        Index("ix_conversation_commits_user_status", "user_id", "status"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True)
    batch_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        ForeignKey("commit_batches.id", ondelete="CASCADE"), nullable=True, index=True
    )
    conversation_id: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    extraction_type: Mapped[str] = mapped_column(String, nullable=False)
    confidence: Mapped[float] = mapped_column(Float, nullable=False)
    original_text_snippet: Mapped[str] = mapped_column(Text, nullable=False)
    extracted_data: Mapped[dict[str, Any]] = mapped_column(JSONType, default=dict)
    summary: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    target_layer: Mapped[str] = mapped_column(String, default="surface")
    status: Mapped[str] = mapped_column(String, default="pending", nullable=False)
    commit_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    suggested_edits: Mapped[Optional[dict[str, Any]]] = mapped_column(JSONType, nullable=True)
    review_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    reviewed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    committed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), onupdate=utcnow
    )

    batch: Mapped[Optional["CommitBatch"]] = relationship("CommitBatch", back_populates="commits")


class TemporalEvent(Base):
    """Bi-temporal validity record of a user-to-entity relationship."""

    __tablename__ = "temporal_events"
    __table_args__ = (
        # At most one open event per (user, entity, relation)
        Index(
            "uq_temporal_events_open",
            "user_id",
            "entity_id",
            "relation_type",
            unique=True,
            postgresql_where=text("t_invalid IS NULL"),
            sqlite_where=text("t_invalid IS NULL"),
        ),
        Index("ix_temporal_events_user_valid", "user_id", "t_valid"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    entity_id: Mapped[str] = mapped_column(String, nullable=False)
    entity_name: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    relation_type: Mapped[str] = mapped_column(String, nullable=False)
    event_metadata: Mapped[dict[str, Any]] = mapped_column("metadata", JSONType, default=dict)
    t_valid: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    t_invalid: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    t_created: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )


class UsageCounter(Base):
    """Persisted per-user running total for one metric."""

    __tablename__ = "usage_counters"
    __table_args__ = (UniqueConstraint("user_id", "metric", name="uq_usage_counters_user_metric"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    metric: Mapped[str] = mapped_column(String, nullable=False)
    value: Mapped[int] = mapped_column(Integer, default=0, server_default="0", nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), onupdate=utcnow
    )
