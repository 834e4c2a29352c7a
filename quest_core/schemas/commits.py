"""Request and response models for batches, commits and extraction."""

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional
from uuid import UUID

from pydantic import Field

from quest_core.schemas.common import CamelModel

CommitStatus = Literal["pending", "approved", "rejected", "committed"]
CommitType = Literal["skill", "experience", "education", "objective", "key_result"]
BatchType = Literal["voice_session", "chat_session", "document_upload", "manual"]
BatchStatus = Literal["active", "completed", "archived"]


# Batches
class BatchCreate(CamelModel):
    batch_title: str = Field(..., min_length=1)
    batch_type: BatchType = "chat_session"
    session_summary: Optional[str] = None
    ai_insights: Optional[Dict[str, Any]] = None
    session_metadata: Optional[Dict[str, Any]] = None


class BatchUpdate(CamelModel):
    batch_title: Optional[str] = None
    batch_type: Optional[BatchType] = None
    session_summary: Optional[str] = None
    ai_insights: Optional[Dict[str, Any]] = None
    session_metadata: Optional[Dict[str, Any]] = None
    batch_status: Optional[BatchStatus] = None


class BatchResponse(CamelModel):
    id: UUID
    batch_title: str
    batch_type: str
    session_summary: Optional[str] = None
    ai_insights: Optional[Dict[str, Any]] = None
    session_metadata: Optional[Dict[str, Any]] = None
    batch_status: str
    total_commits: int
    pending_commits: int
    approved_commits: int
    rejected_commits: int
    committed_commits: int
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None


# Commits
class CommitCreate(CamelModel):
    extraction_type: CommitType
    confidence: float = Field(..., ge=0, le=1)
    original_text_snippet: str = ""
    extracted_data: Dict[str, Any] = Field(default_factory=dict)
    batch_id: Optional[UUID] = None
    conversation_id: Optional[str] = None
    summary: Optional[str] = None
    target_layer: Literal["surface", "personal"] = "surface"
    commit_message: Optional[str] = None


class CommitUpdate(CamelModel):
    """Reviewer decision: a status transition and/or edits and notes."""

    status: Optional[CommitStatus] = None
    suggested_edits: Optional[Dict[str, Any]] = None
    review_notes: Optional[str] = None
    commit_message: Optional[str] = None


class CommitResponse(CamelModel):
    id: UUID
    batch_id: Optional[UUID] = None
    conversation_id: Optional[str] = None
    extraction_type: str
    confidence: float
    original_text_snippet: str
    extracted_data: Dict[str, Any] = Field(default_factory=dict)
    summary: Optional[str] = None
    target_layer: str
    status: str
    commit_message: Optional[str] = None
    suggested_edits: Optional[Dict[str, Any]] = None
    review_notes: Optional[str] = None
    reviewed_at: Optional[datetime] = None
    committed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None


class ProcessCommitsRequest(CamelModel):
    commit_ids: Optional[List[UUID]] = None
    batch_id: Optional[UUID] = None


# Extraction
class ExtractionRequest(CamelModel):
    conversation_text: str = Field(..., min_length=1)
    batch_id: Optional[UUID] = None
    conversation_id: Optional[str] = None
    extraction_mode: Literal["auto", "specific"] = "auto"
    target_types: Optional[List[CommitType]] = None


class ExtractionFailure(CamelModel):
    type: str
    entity: str
    error: str


class ExtractionSummary(CamelModel):
    total: int = 0
    by_type: Dict[str, int] = Field(default_factory=dict)


class ExtractionResult(CamelModel):
    commits: List[CommitResponse] = Field(default_factory=list)
    summary: ExtractionSummary = Field(default_factory=ExtractionSummary)
    failures: List[ExtractionFailure] = Field(default_factory=list)
    actions_detected: int = 0
