"""Bi-temporal event log of user-to-entity relationships and its derived views."""

from datetime import date, datetime, timezone
from itertools import combinations
from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from quest_core.core.exceptions import DatabaseError, ValidationError
from quest_core.database.models import TemporalEvent
from quest_core.repositories.temporal_event_repository import TemporalEventRepository
from quest_core.utils.canonical_key import ensure_utc, to_datetime
from quest_core.utils.logging import get_logger

LOGGER = get_logger(__name__)

EVENT_TYPES = ("job", "skill", "education", "certification", "project", "okr", "todo")

NODE_TYPES = {
    "job": "company",
    "skill": "skill",
    "education": "institution",
}

NODE_COLORS = {
    "company": "#10b981",
    "skill": "#8b5cf6",
    "institution": "#f59e0b",
}
DEFAULT_COLOR = "#6b7280"

DAYS_PER_MONTH = 30
MAX_LINK_STRENGTH = 5.0


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def months_between(start: datetime, end: datetime) -> int:
    """Whole 30-day months between two instants, never negative."""
    days = abs((end - start).total_seconds()) / 86400
    return round(days / DAYS_PER_MONTH)


def overlap_months(
    start_a: datetime, end_a: Optional[datetime], start_b: datetime, end_b: Optional[datetime], now: datetime
) -> int:
    """Months shared by two intervals; open ends run to ``now``; 0 when disjoint."""
    overlap_start = max(start_a, start_b)
    overlap_end = min(end_a or now, end_b or now)
    if overlap_end <= overlap_start:
        return 0
    return months_between(overlap_start, overlap_end)


def link_strength(months: int) -> float:
    return min(months / 12, MAX_LINK_STRENGTH)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


class TemporalGraphManager:
    """Maintains the temporal event log for one database session.

    ``add_event`` only flushes so it can join a larger unit of work such as
    committing a conversation commit; ``append_event`` is the standalone
    variant that commits on its own.
    """

    def __init__(self, session: AsyncSession):
        self.session = session
        self.repository = TemporalEventRepository(session)

    async def add_event(
        self,
        user_id: UUID,
        entity_id: str,
        relation_type: str,
        t_valid: Optional[datetime] = None,
        t_invalid: Optional[datetime] = None,
        entity_name: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> TemporalEvent:
        """Close the relation's open event (if any) and append the new one.

        Both writes happen in the caller's transaction. The prior event is
        closed at the new event's ``t_valid``, or at its own ``t_valid`` if
        that is later, so no event ends before it starts.

        Raises:
            ValidationError: Unknown relation type or ``t_invalid < t_valid``
        """
        if relation_type not in EVENT_TYPES:
            raise ValidationError(f"Unknown event type '{relation_type}'")

        t_valid = ensure_utc(t_valid) or _utcnow()
        t_invalid = ensure_utc(t_invalid)
        if t_invalid is not None and t_invalid < t_valid:
            raise ValidationError("t_invalid must not precede t_valid")

        entity_id = str(entity_id)
        closed = await self.repository.close_open(user_id, entity_id, relation_type, t_valid)
        if closed is not None:
            LOGGER.info(
                "Closed prior open temporal event",
                extra={"user_id": str(user_id), "event_id": str(closed.id), "relation_type": relation_type},
            )

        event = await self.repository.create(
            user_id=user_id,
            entity_id=entity_id,
            entity_name=entity_name,
            relation_type=relation_type,
            event_metadata=metadata or {},
            t_valid=t_valid,
            t_invalid=t_invalid,
            t_created=_utcnow(),
        )
        return event

    async def append_event(self, user_id: UUID, **event) -> TemporalEvent:
        try:
            created = await self.add_event(user_id, **event)
            await self.session.commit()
            return created
        except ValidationError:
            await self.session.rollback()
            raise
        except SQLAlchemyError as e:
            await self.session.rollback()
            LOGGER.error("Failed to append temporal event", exc_info=True, extra={"user_id": str(user_id)})
            raise DatabaseError("Could not record temporal event", original_error=e)

    async def get_timeline(
        self,
        user_id: UUID,
        start: Optional[date] = None,
        end: Optional[date] = None,
    ) -> Dict[str, Any]:
        """Nodes per touched entity plus links between overlapping entities.

        With a window, only events intersecting ``[start, end]`` are used.
        """
        start_at = to_datetime(start)
        end_at = to_datetime(end)
        if start_at and end_at and end_at < start_at:
            raise ValidationError("endDate must not precede startDate")

        events = await self.repository.list_for_user(user_id, start_at, end_at)
        now = _utcnow()

        nodes = self._build_nodes(events, now)
        links = []
        for a, b in combinations(nodes, 2):
            months = overlap_months(a["_start"], a["_end"], b["_start"], b["_end"], now)
            if months <= 0:
                continue
            links.append({
                "source": a["id"],
                "target": b["id"],
                "type": f"{a['relationType']}_{b['relationType']}",
                "strength": link_strength(months),
                "overlapMonths": months,
            })

        dates = []
        for event in events:
            dates.append(ensure_utc(event.t_valid))
            if event.t_invalid is not None:
                dates.append(ensure_utc(event.t_invalid))
        time_range = {
            "start": _iso(min(dates)) if dates else _iso(now),
            "end": _iso(max(dates)) if dates else _iso(now),
        }

        for node in nodes:
            node.pop("_start")
            node.pop("_end")
        return {"nodes": nodes, "links": links, "timeRange": time_range}

    def _build_nodes(self, events: List[TemporalEvent], now: datetime) -> List[Dict[str, Any]]:
        grouped: Dict[str, List[TemporalEvent]] = {}
        for event in events:
            grouped.setdefault(event.entity_id, []).append(event)

        nodes = []
        for entity_id, entity_events in grouped.items():
            first = entity_events[0]
            start = min(ensure_utc(e.t_valid) for e in entity_events)
            # Open events explicitly flagged not current have an unknown end, not an ongoing one.
            is_active = any(
                e.t_invalid is None and (e.event_metadata or {}).get("isCurrent") is not False
                for e in entity_events
            )
            closed_at = [ensure_utc(e.t_invalid) for e in entity_events if e.t_invalid is not None]
            end = None if is_active or not closed_at else max(closed_at)
            node_type = NODE_TYPES.get(first.relation_type, first.relation_type)
            nodes.append({
                "id": entity_id,
                "name": entity_events[-1].entity_name or entity_id,
                "type": node_type,
                "relationType": first.relation_type,
                "t_valid": _iso(start),
                "t_invalid": _iso(end),
                "isActive": is_active,
                "durationMonths": months_between(start, end or now),
                "color": NODE_COLORS.get(node_type, DEFAULT_COLOR),
                "metadata": entity_events[-1].event_metadata or {},
                "_start": start,
                "_end": end,
            })
        return nodes

    async def get_career_progression(self, user_id: UUID) -> Dict[str, Any]:
        """Chronological skill, job and education steps with derived insights."""
        events = [
            e for e in await self.repository.list_for_user(user_id)
            if e.relation_type in ("skill", "job", "education")
        ]
        now = _utcnow()

        steps = []
        for index, event in enumerate(events, start=1):
            t_valid = ensure_utc(event.t_valid)
            t_invalid = ensure_utc(event.t_invalid)
            steps.append({
                "order": index,
                "type": event.relation_type,
                "entityId": event.entity_id,
                "entityName": event.entity_name,
                "t_valid": _iso(t_valid),
                "t_invalid": _iso(t_invalid),
                "durationMonths": months_between(t_valid, t_invalid or now),
            })

        jobs = [e for e in events if e.relation_type == "job"]
        skills = [e for e in events if e.relation_type == "skill"]
        education = [e for e in events if e.relation_type == "education"]

        career_path = [
            {
                "company": job.entity_name,
                "role": (job.event_metadata or {}).get("role"),
                "startDate": _iso(ensure_utc(job.t_valid)),
                "endDate": _iso(ensure_utc(job.t_invalid)),
            }
            for job in jobs
        ]

        skill_progression: Dict[str, Dict[str, Any]] = {}
        for skill in skills:
            entry = skill_progression.setdefault(
                skill.entity_id, {"skill": skill.entity_name, "timeline": [], "proficiencyGrowth": []}
            )
            entry["timeline"].append(_iso(ensure_utc(skill.t_valid)))
            entry["proficiencyGrowth"].append((skill.event_metadata or {}).get("proficiencyLevel"))

        education_impact = []
        for edu in education:
            metadata = edu.event_metadata or {}
            label = " in ".join(p for p in (metadata.get("degree"), metadata.get("fieldOfStudy")) if p)
            finished = ensure_utc(edu.t_invalid)
            following = [
                job.entity_name for job in jobs
                if finished is not None and ensure_utc(job.t_valid) >= finished
            ]
            education_impact.append({
                "education": label or edu.entity_name,
                "institution": edu.entity_name,
                "followingOpportunities": following,
            })

        overlaps = []
        for skill in skills:
            for job in jobs:
                months = overlap_months(
                    ensure_utc(skill.t_valid), ensure_utc(skill.t_invalid),
                    ensure_utc(job.t_valid), ensure_utc(job.t_invalid),
                    now,
                )
                if months > 0:
                    overlaps.append({
                        "skill": skill.entity_name,
                        "company": job.entity_name,
                        "overlapMonths": months,
                        "strength": link_strength(months),
                    })

        return {
            "steps": steps,
            "careerPath": career_path,
            "skillProgression": list(skill_progression.values()),
            "educationImpact": education_impact,
            "skillJobOverlaps": overlaps,
        }
