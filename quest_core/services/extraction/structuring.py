"""Turn extracted actions into commit payloads."""

import re
from typing import Any

from quest_core.services.extraction.actions import (
    EDUCATION,
    EXPERIENCE,
    KEY_RESULT,
    OBJECTIVE,
    SKILL,
    ExtractedAction,
)
from quest_core.services.extraction.vocabulary import skill_category

SURFACE_LAYER = "surface"
PERSONAL_LAYER = "personal"

TARGET_LAYERS = {
    SKILL: SURFACE_LAYER,
    EXPERIENCE: SURFACE_LAYER,
    EDUCATION: SURFACE_LAYER,
    OBJECTIVE: PERSONAL_LAYER,
    KEY_RESULT: PERSONAL_LAYER,
}

SNIPPET_WINDOW_WORDS = 10
SNIPPET_FALLBACK_CHARS = 200


def target_layer(action_type: str) -> str:
    return TARGET_LAYERS.get(action_type, SURFACE_LAYER)


def structure_extracted_data(action: ExtractedAction) -> dict[str, Any]:
    """Commit ``extractedData`` for an action, with per-type defaults."""
    details = action.details
    if action.type == SKILL:
        return {
            "skillName": action.entity,
            "category": skill_category(action.entity),
            "proficiencyLevel": details.get("proficiency", "intermediate"),
            "yearsOfExperience": details.get("experience"),
            "isShowcase": False,
        }
    if action.type == EXPERIENCE:
        return {
            "companyName": action.entity,
            "position": details.get("role"),
            "industry": details.get("industry"),
            "startDate": details.get("startDate"),
            "endDate": details.get("endDate"),
            "isCurrent": bool(details.get("isCurrent", False)),
            "durationYears": details.get("durationYears"),
        }
    if action.type == EDUCATION:
        return {
            "institutionName": action.entity,
            "institutionType": details.get("institutionType"),
            "degree": details.get("degree"),
            "fieldOfStudy": details.get("field"),
            "startDate": details.get("startDate"),
            "endDate": details.get("endDate"),
        }
    if action.type == OBJECTIVE:
        return {
            "title": action.entity,
            "category": details.get("category", "personal"),
            "priority": details.get("priority", "medium"),
            "timeframe": details.get("timeframe", "quarterly"),
            "deadline": details.get("deadline"),
        }
    if action.type == KEY_RESULT:
        return {
            "title": action.entity,
            "targetValue": details.get("targetValue"),
            "unit": details.get("unit"),
            "measurementType": details.get("measurementType", "number"),
            "direction": details.get("direction"),
            "objectiveId": details.get("objectiveId"),
        }
    return {"entity": action.entity, **details}


def summarize(action: ExtractedAction) -> str:
    """One-line human readable description shown to the reviewer."""
    details = action.details
    if action.type == SKILL:
        parts = []
        if details.get("proficiency"):
            parts.append(f"{details['proficiency']} level")
        if details.get("experience"):
            parts.append(f"{details['experience']} years")
        suffix = f" ({', '.join(parts)})" if parts else ""
        return f"Add skill {action.entity}{suffix}"
    if action.type == EXPERIENCE:
        role = f" as {details['role']}" if details.get("role") else ""
        return f"Add work experience at {action.entity}{role}"
    if action.type == EDUCATION:
        degree = f"{details['degree']} " if details.get("degree") else ""
        field = f" in {details['field']}" if details.get("field") else ""
        return f"Add {degree}education at {action.entity}{field}".replace("  ", " ")
    if action.type == OBJECTIVE:
        return f"Set objective: {action.entity}"
    if action.type == KEY_RESULT:
        return f"Track key result: {action.entity}"
    return action.entity


def relevant_snippet(text: str, entity: str) -> str:
    """Words around the first mention of ``entity``, else the opening of ``text``."""
    words = text.split()
    entity_words = [w.lower() for w in entity.split()]
    if entity_words:
        lowered = [re.sub(r"[^\w+#.\-]", "", w.lower()).rstrip(".") for w in words]
        for index in range(len(lowered)):
            window = lowered[index:index + len(entity_words)]
            if [w.rstrip(".") for w in entity_words] == window:
                start = max(0, index - SNIPPET_WINDOW_WORDS)
                end = min(len(words), index + len(entity_words) + SNIPPET_WINDOW_WORDS)
                return " ".join(words[start:end])

    if len(text) <= SNIPPET_FALLBACK_CHARS:
        return text.strip()
    return text[:SNIPPET_FALLBACK_CHARS] + "..."
