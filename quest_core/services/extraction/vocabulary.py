"""Keyword tables used to classify extracted entities."""

import re
from typing import Optional

ROLE_NOUNS = (
    "co-founder", "founder", "engineer", "developer", "programmer", "manager", "director",
    "designer", "analyst", "scientist", "consultant", "architect", "leader", "lead", "intern",
    "cto", "ceo", "cfo", "coo", "vp", "president", "specialist", "administrator", "officer",
    "researcher", "recruiter", "teacher", "professor", "lecturer", "accountant", "associate",
    "owner", "coordinator", "strategist", "technician", "writer", "editor", "marketer", "head",
)

PROFICIENCY_LEVELS = {
    "expert": "expert",
    "advanced": "advanced",
    "proficient": "advanced",
    "fluent": "advanced",
    "experienced": "advanced",
    "strong": "advanced",
    "intermediate": "intermediate",
    "beginner": "beginner",
    "novice": "beginner",
}

# Proficiency implied by the phrase that introduced a skill list
LIST_TRIGGER_PROFICIENCY = (
    ("good at", "intermediate"),
    ("good with", "intermediate"),
    ("skilled", "advanced"),
    ("speciali", "advanced"),
    ("familiar", "beginner"),
    ("learning", "beginner"),
)

INDUSTRY_KEYWORDS = {
    "Technology": (
        "tech", "software", "saas", "startup", "cloud", "ai", "google", "meta", "facebook",
        "microsoft", "apple", "amazon", "netflix", "openai", "stripe",
    ),
    "Finance": ("bank", "banking", "finance", "fintech", "investment", "trading", "goldman", "jpmorgan", "insurance"),
    "Healthcare": ("health", "healthcare", "hospital", "medical", "pharma", "biotech", "clinic"),
    "Education": ("university", "school", "education", "edtech", "college"),
    "Consulting": ("consulting", "consultancy", "mckinsey", "deloitte", "accenture", "bcg", "kpmg", "pwc"),
    "Retail": ("retail", "ecommerce", "e-commerce", "store", "shop"),
    "Media": ("media", "news", "entertainment", "publishing", "spotify", "gaming"),
}

SKILL_CATEGORIES = {
    "Programming Languages": (
        "python", "javascript", "typescript", "java", "go", "golang", "rust", "c", "c++", "c#",
        "ruby", "php", "swift", "kotlin", "scala", "r", "sql",
    ),
    "Frameworks": (
        "react", "angular", "vue", "django", "flask", "fastapi", "spring", "spring boot", "rails",
        "ruby on rails", "node.js", "node", "next.js", "express", ".net",
    ),
    "Data & AI": (
        "machine learning", "deep learning", "data science", "ai", "nlp", "computer vision",
        "tensorflow", "pytorch", "pandas", "statistics", "data analysis",
    ),
    "Cloud & DevOps": (
        "aws", "azure", "gcp", "google cloud", "docker", "kubernetes", "terraform", "ci/cd",
        "devops", "linux",
    ),
    "Design": ("figma", "ux", "ui", "ux design", "ui design", "product design", "photoshop"),
    "Leadership": ("leadership", "management", "mentoring", "team leadership", "project management"),
    "Communication": ("communication", "public speaking", "writing", "presentation", "negotiation"),
}

OBJECTIVE_CATEGORIES = (
    ("learning", ("learn", "study", "master", "course", "certif", "degree", "read")),
    ("career", ("promot", "lead", "manager", "job", "role", "career", "senior", "position", "team")),
    ("financial", ("save", "earn", "salary", "revenue", "money", "income", "invest")),
    ("health", ("run", "marathon", "fitness", "health", "weight", "gym", "sleep")),
)

HIGH_PRIORITY_MARKERS = ("really", "top priority", "most important", "must", "definitely", "urgent", "need to")
LOW_PRIORITY_MARKERS = ("maybe", "eventually", "someday", "some day", "would be nice", "might")

INSTITUTION_TYPES = (
    ("university", "university"),
    ("college", "college"),
    ("institute", "institute"),
    ("academy", "academy"),
    ("bootcamp", "bootcamp"),
    ("school", "school"),
)


def _contains_word(haystack: str, word: str) -> bool:
    return re.search(r"(?<![\w])" + re.escape(word) + r"(?![\w])", haystack) is not None


def detect_industry(context: str) -> Optional[str]:
    lowered = context.lower()
    for industry, keywords in INDUSTRY_KEYWORDS.items():
        if any(_contains_word(lowered, keyword) for keyword in keywords):
            return industry
    return None


def skill_category(name: str) -> str:
    lowered = name.strip().lower()
    for category, names in SKILL_CATEGORIES.items():
        if lowered in names:
            return category
    for category, names in SKILL_CATEGORIES.items():
        if any(_contains_word(lowered, candidate) for candidate in names if len(candidate) > 2):
            return category
    return "General"


def objective_category(title: str) -> str:
    lowered = title.lower()
    for category, stems in OBJECTIVE_CATEGORIES:
        if any(re.search(r"\b" + re.escape(stem), lowered) for stem in stems):
            return category
    return "personal"


def objective_priority(sentence: str) -> str:
    lowered = sentence.lower()
    if any(marker in lowered for marker in HIGH_PRIORITY_MARKERS):
        return "high"
    if any(marker in lowered for marker in LOW_PRIORITY_MARKERS):
        return "low"
    return "medium"


def institution_type(name: str) -> Optional[str]:
    lowered = name.lower()
    for marker, kind in INSTITUTION_TYPES:
        if marker in lowered:
            return kind
    return None
