"""Typed candidate actions produced by the extraction engine."""

from dataclasses import dataclass, field
from typing import Any

SKILL = "skill"
EXPERIENCE = "experience"
EDUCATION = "education"
OBJECTIVE = "objective"
KEY_RESULT = "key_result"
NONE = "none"

ACTION_TYPES = (SKILL, EXPERIENCE, EDUCATION, OBJECTIVE, KEY_RESULT)


@dataclass(frozen=True)
class ExtractedAction:
    """One structured fact recognised in free text.

    Attributes:
        type: One of ``ACTION_TYPES`` or ``"none"`` for an unmatched span
        entity: Primary entity name (skill, company, institution, title)
        details: Optional attributes captured alongside the entity
        span: ``(start, end)`` character offsets of the match in the input
    """

    type: str
    entity: str
    details: dict[str, Any] = field(default_factory=dict)
    span: tuple[int, int] = (0, 0)

    @property
    def is_actionable(self) -> bool:
        return self.type != NONE and bool(self.entity)
