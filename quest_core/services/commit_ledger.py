"""Review ledger for conversation commits and their batches.

Every public mutation is one transaction: the commit row change, the
batch counter adjustment and (for ``committed``) the materialized profile
record plus its temporal event are flushed together and committed once.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Tuple, TypeVar
from uuid import UUID

from sqlalchemy import delete as sql_delete
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from quest_core.core.exceptions import (
    AppError,
    DatabaseError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from quest_core.database.models import CommitBatch, ConversationCommit, utcnow
from quest_core.repositories.batch_repository import BatchRepository
from quest_core.repositories.commit_repository import CommitRepository
from quest_core.repositories.profile_repository import ProfileRepository
from quest_core.services.entity_resolver import EntityResolver
from quest_core.services.extraction.actions import EDUCATION, EXPERIENCE, KEY_RESULT, OBJECTIVE, SKILL
from quest_core.services.temporal_graph import TemporalGraphManager
from quest_core.utils.canonical_key import parse_iso_date, to_datetime
from quest_core.utils.logging import get_logger

LOGGER = get_logger(__name__)

T = TypeVar("T")

COMMIT_STATUSES = ("pending", "approved", "rejected", "committed")

ALLOWED_TRANSITIONS = {
    "pending": frozenset({"approved", "rejected", "committed"}),
    "approved": frozenset({"rejected", "committed"}),
    "rejected": frozenset(),
    "committed": frozenset(),
}

COMMIT_TYPES = (SKILL, EXPERIENCE, EDUCATION, OBJECTIVE, KEY_RESULT)

BATCH_TYPES = ("voice_session", "chat_session", "document_upload", "manual")
BATCH_STATUSES = ("active", "completed", "archived")

# Temporal relation written when a commit of each type is materialized
RELATION_TYPES = {
    SKILL: "skill",
    EXPERIENCE: "job",
    EDUCATION: "education",
    OBJECTIVE: "okr",
    KEY_RESULT: "okr",
}


@dataclass
class MaterializedRecord:
    """Profile record written for a committed commit."""

    commit_id: UUID
    commit_type: str
    record_id: UUID
    entity_kind: str
    entity_id: str
    entity_name: str
    relationship: str
    properties: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ProcessResult:
    successful: List[Dict[str, Any]] = field(default_factory=list)
    failed: List[Dict[str, Any]] = field(default_factory=list)
    materialized: List[MaterializedRecord] = field(default_factory=list)


def can_transition(current: str, target: str) -> bool:
    return target in ALLOWED_TRANSITIONS.get(current, frozenset())


def event_interval(
    start: Optional[date], end: Optional[date]
) -> Tuple[Optional[datetime], Optional[datetime]]:
    """Temporal interval for a dated profile record.

    A record known only by its end date ("graduated in 2015") becomes a
    closed event at that date. With neither date the event starts now.
    """
    t_valid = to_datetime(start) or to_datetime(end)
    return t_valid, to_datetime(end)


class CommitLedger:
    """Creates, reviews and commits conversation commits."""

    def __init__(self, session: AsyncSession):
        self.session = session
        self.batches = BatchRepository(session)
        self.commits = CommitRepository(session)
        self.profile = ProfileRepository(session)
        self.resolver = EntityResolver(session)
        self.temporal = TemporalGraphManager(session)

    async def _transaction(self, operation: str, work: Callable[[], Awaitable[T]]) -> T:
        try:
            result = await work()
            await self.session.commit()
            return result
        except AppError:
            await self.session.rollback()
            raise
        except SQLAlchemyError as e:
            await self.session.rollback()
            LOGGER.error(f"Failed to {operation}", exc_info=True, extra={"operation": operation})
            raise DatabaseError(f"Could not {operation}", original_error=e)
        except Exception as e:
            await self.session.rollback()
            LOGGER.error(f"Failed to {operation}", exc_info=True, extra={"operation": operation})
            raise AppError(f"Could not {operation}", original_error=e)

    # Batches

    async def create_batch(
        self,
        user_id: UUID,
        batch_title: str,
        batch_type: str = "chat_session",
        session_summary: Optional[str] = None,
        ai_insights: Optional[Dict[str, Any]] = None,
        session_metadata: Optional[Dict[str, Any]] = None,
    ) -> CommitBatch:
        if not batch_title or not batch_title.strip():
            raise ValidationError("batchTitle is required")
        if batch_type not in BATCH_TYPES:
            raise ValidationError(f"batchType must be one of {', '.join(BATCH_TYPES)}")

        async def work():
            return await self.batches.create(
                user_id=user_id,
                batch_title=batch_title.strip(),
                batch_type=batch_type,
                session_summary=session_summary,
                ai_insights=ai_insights,
                session_metadata=session_metadata,
            )

        return await self._transaction("create batch", work)

    async def list_batches(
        self,
        user_id: UUID,
        status: Optional[str] = None,
        batch_type: Optional[str] = None,
        limit: int = 20,
    ) -> List[CommitBatch]:
        return await self.batches.list_for_user(user_id, status=status, batch_type=batch_type, limit=limit)

    async def get_batch(self, user_id: UUID, batch_id: UUID) -> CommitBatch:
        batch = await self.batches.get_for_user(batch_id, user_id)
        if batch is None:
            raise NotFoundError("Batch not found")
        return batch

    async def update_batch(self, user_id: UUID, batch_id: UUID, **changes) -> CommitBatch:
        """Update descriptive fields; moving to ``completed`` stamps ``completed_at``."""
        batch_status = changes.get("batch_status")
        if batch_status is not None and batch_status not in BATCH_STATUSES:
            raise ValidationError(f"batchStatus must be one of {', '.join(BATCH_STATUSES)}")
        if changes.get("batch_type") is not None and changes["batch_type"] not in BATCH_TYPES:
            raise ValidationError(f"batchType must be one of {', '.join(BATCH_TYPES)}")

        async def work():
            batch = await self.batches.get_for_user(batch_id, user_id, for_update=True)
            if batch is None:
                raise NotFoundError("Batch not found")
            values = {key: value for key, value in changes.items() if value is not None}
            if batch_status == "completed" and batch.batch_status != "completed":
                values["completed_at"] = utcnow()
            return await self.batches.update(batch, **values)

        return await self._transaction("update batch", work)

    async def delete_batch(self, user_id: UUID, batch_id: UUID) -> None:
        """Delete a batch together with all of its commits."""

        async def work():
            batch = await self.batches.get_for_user(batch_id, user_id, for_update=True)
            if batch is None:
                raise NotFoundError("Batch not found")
            await self.session.execute(
                sql_delete(ConversationCommit)
                .where(ConversationCommit.batch_id == batch.id)
                .execution_options(synchronize_session=False)
            )
            await self.batches.delete(batch)

        await self._transaction("delete batch", work)

    # Commits

    async def list_commits(
        self,
        user_id: UUID,
        status: Optional[str] = None,
        batch_id: Optional[UUID] = None,
        extraction_type: Optional[str] = None,
        limit: int = 50,
    ) -> List[ConversationCommit]:
        if status is not None and status not in COMMIT_STATUSES:
            raise ValidationError(f"status must be one of {', '.join(COMMIT_STATUSES)}")
        return await self.commits.list_for_user(
            user_id, status=status, batch_id=batch_id, extraction_type=extraction_type, limit=limit
        )

    async def get_commit(self, user_id: UUID, commit_id: UUID) -> ConversationCommit:
        commit = await self.commits.get_for_user(commit_id, user_id)
        if commit is None:
            raise NotFoundError("Commit not found")
        return commit

    async def create_commit(
        self,
        user_id: UUID,
        extraction_type: str,
        confidence: float,
        original_text_snippet: str,
        extracted_data: Dict[str, Any],
        batch_id: Optional[UUID] = None,
        conversation_id: Optional[str] = None,
        summary: Optional[str] = None,
        target_layer: str = "surface",
        commit_message: Optional[str] = None,
        status: str = "pending",
    ) -> tuple[ConversationCommit, Optional[MaterializedRecord]]:
        """Create a commit and count it on its batch in the same transaction.

        Raises:
            ValidationError: Unknown type or status, confidence outside [0, 1]
            NotFoundError: ``batch_id`` missing or owned by another user
        """
        if extraction_type not in COMMIT_TYPES:
            raise ValidationError(f"Unknown extraction type '{extraction_type}'")
        if status not in COMMIT_STATUSES:
            raise ValidationError(f"status must be one of {', '.join(COMMIT_STATUSES)}")
        if confidence is None or not 0 <= confidence <= 1:
            raise ValidationError("confidence must be between 0 and 1")

        async def work():
            if batch_id is not None:
                batch = await self.batches.get_for_user(batch_id, user_id, for_update=True)
                if batch is None:
                    raise NotFoundError("Batch not found")

            now = utcnow()
            commit = await self.commits.create(
                user_id=user_id,
                batch_id=batch_id,
                conversation_id=conversation_id,
                extraction_type=extraction_type,
                confidence=confidence,
                original_text_snippet=original_text_snippet or "",
                extracted_data=extracted_data or {},
                summary=summary,
                target_layer=target_layer,
                commit_message=commit_message,
                status=status,
                reviewed_at=now if status != "pending" else None,
                committed_at=now if status == "committed" else None,
            )
            if batch_id is not None:
                await self.batches.apply_counter_delta(batch_id, {"total": 1, status: 1})

            materialized = None
            if status == "committed":
                materialized = await self._materialize(commit)
            return commit, materialized

        return await self._transaction("create commit", work)

    async def update_commit(
        self,
        user_id: UUID,
        commit_id: UUID,
        status: Optional[str] = None,
        suggested_edits: Optional[Dict[str, Any]] = None,
        review_notes: Optional[str] = None,
        commit_message: Optional[str] = None,
    ) -> tuple[ConversationCommit, Optional[MaterializedRecord]]:
        """Apply a reviewer decision and/or edits.

        A status change moves one unit between the batch's status counters
        atomically with the row write. Committing materializes the profile
        record in the same transaction.

        Raises:
            NotFoundError: Commit missing or owned by another user
            InvalidTransitionError: ``status`` is not reachable from the current status
        """
        if status is not None and status not in COMMIT_STATUSES:
            raise ValidationError(f"status must be one of {', '.join(COMMIT_STATUSES)}")

        async def work():
            commit = await self.commits.get_for_user(commit_id, user_id, for_update=True)
            if commit is None:
                raise NotFoundError("Commit not found")

            if suggested_edits is not None:
                commit.suggested_edits = suggested_edits
            if review_notes is not None:
                commit.review_notes = review_notes
            if commit_message is not None:
                commit.commit_message = commit_message

            materialized = None
            if status is not None and status != commit.status:
                materialized = await self._transition(commit, status)
            await self.session.flush()
            return commit, materialized

        return await self._transaction("update commit", work)

    async def delete_commit(self, user_id: UUID, commit_id: UUID) -> None:
        async def work():
            commit = await self.commits.get_for_user(commit_id, user_id, for_update=True)
            if commit is None:
                raise NotFoundError("Commit not found")
            if commit.batch_id is not None:
                await self.batches.apply_counter_delta(commit.batch_id, {"total": -1, commit.status: -1})
            await self.commits.delete(commit)

        await self._transaction("delete commit", work)

    async def process_approved(
        self,
        user_id: UUID,
        commit_ids: Optional[Sequence[UUID]] = None,
        batch_id: Optional[UUID] = None,
    ) -> ProcessResult:
        """Commit every approved commit in scope, one transaction per commit.

        A failing commit is rolled back and reported without stopping the rest.
        """
        if batch_id is not None:
            await self.get_batch(user_id, batch_id)

        approved = await self.commits.list_approved(user_id, commit_ids=commit_ids, batch_id=batch_id)
        if not approved:
            raise ValidationError("No approved commits found to process")
        targets = [(commit.id, commit.extraction_type) for commit in approved]

        result = ProcessResult()
        for commit_id, commit_type in targets:
            try:
                _, materialized = await self.update_commit(user_id, commit_id, status="committed")
            except AppError as e:
                LOGGER.warning(
                    f"Approved commit could not be committed: {e.message}",
                    extra={"user_id": str(user_id), "commit_id": str(commit_id), "operation": "process_approved"},
                )
                result.failed.append({"commitId": str(commit_id), "type": commit_type, "error": e.message})
                continue

            result.successful.append({
                "commitId": str(commit_id),
                "type": commit_type,
                "recordId": str(materialized.record_id) if materialized else None,
            })
            if materialized:
                result.materialized.append(materialized)

        LOGGER.info(
            "Processed approved commits",
            extra={"user_id": str(user_id), "successful": len(result.successful), "failed": len(result.failed)},
        )
        return result

    # Internals

    async def _transition(self, commit: ConversationCommit, target: str) -> Optional[MaterializedRecord]:
        current = commit.status
        if not can_transition(current, target):
            raise InvalidTransitionError(f"Cannot move commit from '{current}' to '{target}'")

        now = utcnow()
        commit.status = target
        if current == "pending":
            commit.reviewed_at = now
        if target == "committed":
            commit.committed_at = now
        await self.session.flush()

        if commit.batch_id is not None:
            await self.batches.apply_counter_delta(commit.batch_id, {current: -1, target: 1})

        if target == "committed":
            return await self._materialize(commit)
        return None

    async def _materialize(self, commit: ConversationCommit) -> MaterializedRecord:
        data = {**(commit.extracted_data or {}), **(commit.suggested_edits or {})}
        handlers = {
            SKILL: self._materialize_skill,
            EXPERIENCE: self._materialize_experience,
            EDUCATION: self._materialize_education,
            OBJECTIVE: self._materialize_objective,
            KEY_RESULT: self._materialize_key_result,
        }
        record = await handlers[commit.extraction_type](commit, data)
        LOGGER.info(
            "Materialized commit",
            extra={
                "user_id": str(commit.user_id),
                "commit_id": str(commit.id),
                "commit_type": commit.extraction_type,
                "record_id": str(record.record_id),
            },
        )
        return record

    @staticmethod
    def _required(data: Dict[str, Any], key: str) -> str:
        value = data.get(key)
        if not value or not str(value).strip():
            raise ValidationError(f"'{key}' is required to commit this change")
        return str(value).strip()

    async def _materialize_skill(self, commit: ConversationCommit, data: Dict[str, Any]) -> MaterializedRecord:
        skill = await self.resolver.resolve_skill(self._required(data, "skillName"), data.get("category"))
        proficiency = data.get("proficiencyLevel") or "intermediate"
        years = data.get("yearsOfExperience")
        user_skill = await self.profile.upsert_user_skill(
            commit.user_id,
            skill.id,
            proficiency_level=proficiency,
            years_of_experience=int(years) if years is not None else None,
            is_showcase=bool(data.get("isShowcase", False)),
        )
        await self.temporal.add_event(
            commit.user_id,
            str(skill.id),
            RELATION_TYPES[SKILL],
            entity_name=skill.name,
            metadata={"proficiencyLevel": proficiency, "yearsOfExperience": years, "commitId": str(commit.id)},
        )
        return MaterializedRecord(
            commit_id=commit.id,
            commit_type=SKILL,
            record_id=user_skill.id,
            entity_kind="Skill",
            entity_id=str(skill.id),
            entity_name=skill.name,
            relationship="HAS_SKILL",
            properties={"proficiencyLevel": proficiency, "yearsOfExperience": years},
        )

    async def _materialize_experience(self, commit: ConversationCommit, data: Dict[str, Any]) -> MaterializedRecord:
        company = await self.resolver.resolve_company(self._required(data, "companyName"), data.get("industry"))
        start_date = parse_iso_date(data.get("startDate"))
        end_date = parse_iso_date(data.get("endDate"))
        # An explicit isCurrent wins; past roles with no end date stay open-ended but not current.
        current_flag = data.get("isCurrent")
        is_current = bool(current_flag) if current_flag is not None else end_date is None
        t_valid, t_invalid = event_interval(start_date, None if is_current else end_date)
        experience = await self.profile.add_work_experience(
            commit.user_id,
            company.id,
            title=data.get("position"),
            start_date=start_date,
            end_date=None if is_current else end_date,
            is_current=is_current,
            description=data.get("description"),
            source_commit_id=commit.id,
        )
        await self.temporal.add_event(
            commit.user_id,
            str(company.id),
            RELATION_TYPES[EXPERIENCE],
            t_valid=t_valid,
            t_invalid=t_invalid,
            entity_name=company.name,
            metadata={
                "role": data.get("position"),
                "isCurrent": is_current,
                "workExperienceId": str(experience.id),
            },
        )
        return MaterializedRecord(
            commit_id=commit.id,
            commit_type=EXPERIENCE,
            record_id=experience.id,
            entity_kind="Company",
            entity_id=str(company.id),
            entity_name=company.name,
            relationship="WORKED_AT",
            properties={"title": data.get("position"), "isCurrent": is_current},
        )

    async def _materialize_education(self, commit: ConversationCommit, data: Dict[str, Any]) -> MaterializedRecord:
        institution = await self.resolver.resolve_institution(
            self._required(data, "institutionName"), data.get("institutionType")
        )
        start_date = parse_iso_date(data.get("startDate"))
        end_date = parse_iso_date(data.get("endDate"))
        education = await self.profile.add_education(
            commit.user_id,
            institution.id,
            degree=data.get("degree"),
            field_of_study=data.get("fieldOfStudy"),
            start_date=start_date,
            end_date=end_date,
        )
        t_valid, t_invalid = event_interval(start_date, end_date)
        await self.temporal.add_event(
            commit.user_id,
            str(institution.id),
            RELATION_TYPES[EDUCATION],
            t_valid=t_valid,
            t_invalid=t_invalid,
            entity_name=institution.name,
            metadata={"degree": data.get("degree"), "fieldOfStudy": data.get("fieldOfStudy")},
        )
        return MaterializedRecord(
            commit_id=commit.id,
            commit_type=EDUCATION,
            record_id=education.id,
            entity_kind="Institution",
            entity_id=str(institution.id),
            entity_name=institution.name,
            relationship="STUDIED_AT",
            properties={"degree": data.get("degree"), "fieldOfStudy": data.get("fieldOfStudy")},
        )

    async def _materialize_objective(self, commit: ConversationCommit, data: Dict[str, Any]) -> MaterializedRecord:
        title = self._required(data, "title")
        objective = await self.profile.add_objective(
            commit.user_id,
            title=title,
            description=data.get("description"),
            category=data.get("category"),
            priority=data.get("priority") or "medium",
            timeframe=data.get("timeframe"),
            target_date=parse_iso_date(data.get("deadline")),
        )
        await self.temporal.add_event(
            commit.user_id,
            str(objective.id),
            RELATION_TYPES[OBJECTIVE],
            entity_name=title,
            metadata={"kind": "objective", "category": objective.category, "priority": objective.priority},
        )
        return MaterializedRecord(
            commit_id=commit.id,
            commit_type=OBJECTIVE,
            record_id=objective.id,
            entity_kind="Objective",
            entity_id=str(objective.id),
            entity_name=title,
            relationship="HAS_OBJECTIVE",
        )

    async def _materialize_key_result(self, commit: ConversationCommit, data: Dict[str, Any]) -> MaterializedRecord:
        title = self._required(data, "title")
        objective_ref = data.get("objectiveId")
        if objective_ref:
            try:
                objective_id = UUID(str(objective_ref))
            except ValueError:
                raise ValidationError("objectiveId is not a valid identifier")
            objective = await self.profile.get_objective_for_user(objective_id, commit.user_id)
            if objective is None:
                raise ValidationError("objectiveId does not reference one of your objectives")
        else:
            objective = await self.profile.latest_active_objective(commit.user_id)
            if objective is None:
                raise ValidationError("A key result needs an active objective to attach to")

        target_value = data.get("targetValue")
        key_result = await self.profile.add_key_result(
            objective.id,
            title=title,
            measurement_type=data.get("measurementType") or "number",
            target_value=float(target_value) if target_value is not None else None,
            unit=data.get("unit"),
        )
        await self.temporal.add_event(
            commit.user_id,
            str(key_result.id),
            RELATION_TYPES[KEY_RESULT],
            entity_name=title,
            metadata={"kind": "key_result", "objectiveId": str(objective.id), "targetValue": target_value},
        )
        return MaterializedRecord(
            commit_id=commit.id,
            commit_type=KEY_RESULT,
            record_id=key_result.id,
            entity_kind="KeyResult",
            entity_id=str(key_result.id),
            entity_name=title,
            relationship="HAS_KEY_RESULT",
            properties={"objectiveId": str(objective.id)},
        )
