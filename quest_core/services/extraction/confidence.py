"""Named, configurable confidence scoring for extracted actions."""

from dataclasses import dataclass
from typing import Any, Mapping

from quest_core.core.config import ConfidenceSettings, settings
from quest_core.services.extraction.actions import EXPERIENCE, SKILL, ExtractedAction


@dataclass(frozen=True)
class ConfidencePolicy:
    """Deterministic score in ``[floor, ceiling]`` for one action.

    ``base`` plus ``detail_weight`` for each populated detail (capped at
    ``detail_cap``), plus ``long_name_bonus`` when the entity name is
    longer than ``long_name_threshold`` characters, plus
    ``reliable_type_bonus`` for skill and experience actions.
    """

    base: float = 0.70
    detail_weight: float = 0.05
    detail_cap: float = 0.20
    long_name_bonus: float = 0.05
    long_name_threshold: int = 10
    reliable_type_bonus: float = 0.05
    reliable_types: frozenset = frozenset({SKILL, EXPERIENCE})
    ceiling: float = 0.95
    floor: float = 0.70

    @classmethod
    def from_settings(cls, config: ConfidenceSettings | None = None) -> "ConfidencePolicy":
        config = config or settings.confidence
        return cls(
            base=config.base,
            detail_weight=config.detail_weight,
            detail_cap=config.detail_cap,
            long_name_bonus=config.long_name_bonus,
            long_name_threshold=config.long_name_threshold,
            reliable_type_bonus=config.reliable_type_bonus,
            ceiling=config.ceiling,
            floor=config.floor,
        )

    @staticmethod
    def populated_details(details: Mapping[str, Any]) -> int:
        return sum(1 for value in details.values() if value not in (None, "", [], {}))

    def score(self, action: ExtractedAction) -> float:
        confidence = self.base
        confidence += min(self.populated_details(action.details) * self.detail_weight, self.detail_cap)
        if len(action.entity) > self.long_name_threshold:
            confidence += self.long_name_bonus
        if action.type in self.reliable_types:
            confidence += self.reliable_type_bonus
        return round(min(max(confidence, self.floor), self.ceiling), 4)
