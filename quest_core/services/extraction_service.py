"""Turns conversation text into pending commits."""

from typing import Any, Dict, List, Optional, Sequence
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from quest_core.core.exceptions import AppError, ValidationError
from quest_core.repositories.usage_repository import UsageRepository
from quest_core.schemas.commits import (
    CommitResponse,
    ExtractionFailure,
    ExtractionResult,
    ExtractionSummary,
)
from quest_core.services.base_service import BaseService
from quest_core.services.commit_ledger import COMMIT_TYPES, CommitLedger
from quest_core.services.event_broadcaster import EventBroadcaster, get_broadcaster
from quest_core.services.extraction.confidence import ConfidencePolicy
from quest_core.services.extraction.engine import ExtractionEngine
from quest_core.services.extraction.structuring import (
    relevant_snippet,
    structure_extracted_data,
    summarize,
    target_layer,
)

EXTRACTION_MODES = ("auto", "specific")

USAGE_EXTRACTIONS = "extractions"
USAGE_ACTIONS = "actions_extracted"
USAGE_COMMITS = "commits_created"


class ExtractionService(BaseService):
    """Parses text, scores each action and records it as a pending commit.

    Each commit is created in its own transaction; a failing action is
    logged and reported without affecting the others.
    """

    def __init__(
        self,
        session: AsyncSession,
        engine: Optional[ExtractionEngine] = None,
        policy: Optional[ConfidencePolicy] = None,
        events: Optional[EventBroadcaster] = None,
    ):
        super().__init__(session)
        self.engine = engine or ExtractionEngine()
        self.policy = policy or ConfidencePolicy.from_settings()
        self.ledger = CommitLedger(session)
        self.usage = UsageRepository(session)
        self.events = events or get_broadcaster()

    def validate(
        self,
        user_id: UUID,
        room: str,
        conversation_text: str,
        batch_id: Optional[UUID] = None,
        conversation_id: Optional[str] = None,
        extraction_mode: str = "auto",
        target_types: Optional[Sequence[str]] = None,
    ):
        if not conversation_text or not conversation_text.strip():
            raise ValidationError("conversationText is required")
        if extraction_mode not in EXTRACTION_MODES:
            raise ValidationError(f"extractionMode must be one of {', '.join(EXTRACTION_MODES)}")
        if extraction_mode == "specific":
            if not target_types:
                raise ValidationError("targetTypes is required when extractionMode is 'specific'")
            unknown = [t for t in target_types if t not in COMMIT_TYPES]
            if unknown:
                raise ValidationError(f"Unknown target types: {', '.join(unknown)}")

    async def run(
        self,
        user_id: UUID,
        room: str,
        conversation_text: str,
        batch_id: Optional[UUID] = None,
        conversation_id: Optional[str] = None,
        extraction_mode: str = "auto",
        target_types: Optional[Sequence[str]] = None,
    ) -> ExtractionResult:
        if batch_id is not None:
            await self.ledger.get_batch(user_id, batch_id)

        actions = [action for action in self.engine.parse(conversation_text) if action.is_actionable]
        if extraction_mode == "specific":
            wanted = set(target_types)
            actions = [action for action in actions if action.type in wanted]

        commits: List[CommitResponse] = []
        failures: List[ExtractionFailure] = []
        by_type: Dict[str, int] = {}

        for action in actions:
            try:
                commit, _ = await self.ledger.create_commit(
                    user_id,
                    extraction_type=action.type,
                    confidence=self.policy.score(action),
                    original_text_snippet=relevant_snippet(conversation_text, action.entity),
                    extracted_data=structure_extracted_data(action),
                    batch_id=batch_id,
                    conversation_id=conversation_id,
                    summary=summarize(action),
                    target_layer=target_layer(action.type),
                )
            except AppError as e:
                self.logger.error(
                    f"Failed to create commit for extracted {action.type}: {e.message}",
                    extra={"user_id": str(user_id), "entity": action.entity, "operation": "create_commit"},
                )
                failures.append(ExtractionFailure(type=action.type, entity=action.entity, error=e.message))
                continue

            commits.append(CommitResponse.model_validate(commit))
            by_type[action.type] = by_type.get(action.type, 0) + 1

        await self._record_usage(user_id, len(actions), len(commits))

        result = ExtractionResult(
            commits=commits,
            summary=ExtractionSummary(total=len(commits), by_type=by_type),
            failures=failures,
            actions_detected=len(actions),
        )
        if commits:
            await self.events.publish_conversation_update(room, {
                "action": "commits_created",
                "batchId": str(batch_id) if batch_id else None,
                "conversationId": conversation_id,
                "commitIds": [str(c.id) for c in commits],
                "summary": result.summary.to_wire(),
            })

        self.logger.info(
            "Extraction finished",
            extra={
                "user_id": str(user_id),
                "actions": len(actions),
                "commits": len(commits),
                "failures": len(failures),
            },
        )
        return result

    async def _record_usage(self, user_id: UUID, actions: int, commits: int) -> None:
        try:
            await self.usage.increment(user_id, USAGE_EXTRACTIONS, 1)
            if actions:
                await self.usage.increment(user_id, USAGE_ACTIONS, actions)
            if commits:
                await self.usage.increment(user_id, USAGE_COMMITS, commits)
        except SQLAlchemyError:
            await self.session.rollback()
            self.logger.error(
                "Failed to record usage counters",
                exc_info=True,
                extra={"user_id": str(user_id), "operation": "record_usage"},
            )

    async def usage_totals(self, user_id: UUID) -> Dict[str, Any]:
        totals = await self.usage.totals_for_user(user_id)
        return {metric: totals.get(metric, 0) for metric in (USAGE_EXTRACTIONS, USAGE_ACTIONS, USAGE_COMMITS)}
