"""Rule-based extraction of professional facts from conversational text.

The engine recognises phrasing patterns for skills, work experience,
education, objectives and key results. It is a pure function of its
input: no I/O, no shared mutable state, and the same text always yields
the same ordered list of actions. Overlapping mentions are not merged;
every matched pattern produces its own action and deduplication is left
to entity resolution.
"""

import re
from typing import Callable, Iterator, Optional

from quest_core.services.extraction.actions import (
    EDUCATION,
    EXPERIENCE,
    KEY_RESULT,
    NONE,
    OBJECTIVE,
    SKILL,
    ExtractedAction,
)
from quest_core.services.extraction.vocabulary import (
    LIST_TRIGGER_PROFICIENCY,
    PROFICIENCY_LEVELS,
    ROLE_NOUNS,
    detect_industry,
    institution_type,
    objective_category,
    objective_priority,
)
from quest_core.utils.logging import get_logger

LOGGER = get_logger(__name__)

_APOS = "['’]"
_YEAR = r"(?:19|20)\d{2}"
_MONTH = r"(?:jan|feb|mar|apr|may|jun|jul|aug|sep|sept|oct|nov|dec)[a-z]*\.?"
_DATE = r"(?:(?i:" + _MONTH + r")\s+)?" + _YEAR
_YEARS = r"(?P<years>\d{1,2})\+?\s*(?:years?|yrs?)"

# Skill names: up to four tokens, dots allowed only inside a token (Node.js)
_FIRST_TOKEN = r"[A-Za-z][\w+#/\-]*(?:\.[\w+#/\-]+)*"
_NEXT_TOKEN = r"[\w+#/\-]+(?:\.[\w+#/\-]+)*"
_SKILL = r"(?P<skill>" + _FIRST_TOKEN + r"(?:\s+" + _NEXT_TOKEN + r"){0,3}?)"
_SKILL_END = (
    r"(?=\s*(?:[,;:!?()]|\.(?!\S)|$)"
    r"|\s+(?:and|but|or|for|at|since|with|as|in|to|i|while|because|so|which|who|when|where|now|too|also)\b)"
)

# Proper names start upper-case; matched without the global ignore-case flag
_NAME_TOKEN = r"[A-Z][\w&'\-]*(?:\.[\w&'\-]+)*"
_COMPANY = r"(?P<company>" + _NAME_TOKEN + r"(?:\s+(?:&\s+)?" + _NAME_TOKEN + r"){0,4})"
_INSTITUTION = r"(?P<institution>" + _NAME_TOKEN + r"(?:\s+(?:(?:of|for|the)\s+)?" + _NAME_TOKEN + r"){0,5})"
_ROLE = (
    r"(?P<role>(?:[A-Za-z][\w\-/&]*\s+){0,4}?(?i:"
    + "|".join(re.escape(noun) for noun in ROLE_NOUNS)
    + r")s?)\b"
)
_ANY_PHRASE = r"[A-Za-z][\w&'\-]*(?:\s+[A-Za-z][\w&'\-]*){0,4}?"

_DURATION_TAIL = (
    r"(?:\s+(?i:for)\s+(?:(?i:about|over|nearly|almost|around)\s+)?(?P<years>\d{1,2})\+?\s*(?i:years?|yrs?))?"
)
_DATE_TAIL = (
    r"(?:,?\s+(?i:from|since|starting\s+in|starting|in)\s+(?P<start>" + _DATE + r")"
    r"(?:\s+(?i:to|until|till|through|-)\s+(?P<end>" + _DATE + r"|(?i:present|now|today)))?)?"
)

_CLAUSE = r"(?:[^.;!?\n]|\.(?=\S))+?"
_CLAUSE_END = r"(?=\s*(?:[;!?\n]|\.(?!\S)|$)"

_LIST_TRIGGERS = (
    r"i\s+know",
    r"i\s+(?:can\s+)?use",
    r"i(?:" + _APOS + r"m|\s+am)\s+good\s+(?:at|with)",
    r"i(?:" + _APOS + r"m|\s+am)\s+skilled\s+(?:in|at|with)",
    r"i(?:" + _APOS + r"m|\s+am)\s+familiar\s+with",
    r"i\s+have\s+(?:some\s+)?experience\s+(?:with|in)",
    r"i(?:" + _APOS + r"ve|\s+have)?\s*learned",
    r"i(?:" + _APOS + r"m|\s+am)\s+(?:currently\s+)?learning",
    r"i\s+speciali[sz]e\s+in",
    r"my\s+(?:main\s+|core\s+|technical\s+)?skills\s+(?:include|are)",
    r"skills\s*:",
)

_LIST_SPLIT = re.compile(r"\s*(?:,\s*(?:and\s+|or\s+)?|\s+(?:and|or|plus|as\s+well\s+as)\s+|&)\s*", re.I)
_TRAILING_FILLER = re.compile(
    r"\s+(?:(?:very|quite|really|pretty)\s+)?(?:well|too|also|a\s+bit|a\s+little|fluently|extensively|daily)$",
    re.I,
)
_LEADING_FILLER = re.compile(r"^(?:the|a|an|some|my|basic|basics\s+of)\s+", re.I)
_LIST_ITEM_REJECT = re.compile(
    r"\b(?:expert|advanced|proficient|beginner|intermediate|years?|it|them|this|that|everything|stuff)\b", re.I
)
_UNIT_STOPWORDS = {
    "this", "next", "by", "in", "and", "for", "per", "within", "before", "a", "the", "every", "each",
    "to", "of", "on", "at", "until", "over", "i", "my",
}
_MONTHS = {
    "jan": 1, "feb": 2, "mar": 3, "apr": 4, "may": 5, "jun": 6,
    "jul": 7, "aug": 8, "sep": 9, "oct": 10, "nov": 11, "dec": 12,
}
_SENTENCE = re.compile(r"\S[^\n]*?(?:[.!?](?=\s|$)|(?=\n)|$)")


def _clean_entity(raw: Optional[str]) -> str:
    if not raw:
        return ""
    value = raw.strip().strip(" \t,;:!?\"'")
    value = value.rstrip(".")
    value = _LEADING_FILLER.sub("", value)
    value = _TRAILING_FILLER.sub("", value)
    return re.sub(r"\s+", " ", value).strip()


def _normalize_date(raw: Optional[str]) -> Optional[str]:
    """Render ``"March 2019"`` or ``"2019"`` as an ISO ``YYYY-MM-DD`` string."""
    if not raw:
        return None
    year_match = re.search(_YEAR, raw)
    if not year_match:
        return None
    month = 1
    month_match = re.match(r"\s*([A-Za-z]{3})", raw)
    if month_match:
        month = _MONTHS.get(month_match.group(1).lower(), 1)
    return f"{year_match.group(0)}-{month:02d}-01"


def _capitalize(value: str) -> str:
    return value[:1].upper() + value[1:] if value else value


class ExtractionEngine:
    """Deterministic parser from free text to ordered candidate actions.

    Actions are ordered by the offset at which their match starts; ties
    keep the extractor order (skills, experience, education, objectives,
    key results). Sentences that no pattern touches are returned as
    ``none`` actions so callers can account for them and drop them.
    """

    SKILL_YEARS_OF = re.compile(
        r"\b" + _YEARS + r"\s+of\s+(?:professional\s+|hands[\s-]on\s+|solid\s+)?(?:experience|exp)\s+"
        r"(?:with|in|using|on|doing)\s+" + _SKILL + _SKILL_END,
        re.I,
    )
    SKILL_YEARS_PREFIX = re.compile(
        r"\b" + _YEARS + r"\s+of\s+(?P<skill>" + _FIRST_TOKEN + r"(?:\s+" + _NEXT_TOKEN + r"){0,2}?)"
        r"\s+(?:experience|exp)\b",
        re.I,
    )
    SKILL_YEARS_SUFFIX = re.compile(
        r"\b(?:i(?:" + _APOS + r"ve|\s+have)\s+)?(?:been\s+)?"
        r"(?:using|used|working\s+with|worked\s+with|coding\s+in|coded\s+in|programming\s+in|programmed\s+in)\s+"
        + _SKILL
        + r"\s+for\s+(?:about\s+|over\s+|nearly\s+|almost\s+|around\s+|the\s+(?:past|last)\s+)?"
        + _YEARS,
        re.I,
    )
    SKILL_LEVEL = re.compile(
        r"\b(?P<level>" + "|".join(PROFICIENCY_LEVELS) + r")\s+(?:in|at|with)\s+" + _SKILL + _SKILL_END,
        re.I,
    )
    SKILL_LIST = re.compile(
        r"\b(?P<trigger>" + "|".join(_LIST_TRIGGERS) + r")\s+(?P<items>" + _CLAUSE + r")"
        r"(?=\s*(?:[;!?\n]|\.(?!\S)|$)"
        r"|,?\s+(?:and\s+|but\s+|so\s+)?(?:i|my|we|also|currently|which|because)\b"
        r"|\s+(?:to|for|at|in|when|while|every|since|daily)\b)",
        re.I,
    )

    EXPERIENCE_AT_COMPANY = re.compile(
        r"\b(?P<trigger>(?i:i\s+(?:currently\s+)?(?:work|worked|am\s+working|was\s+working|have\s+been\s+working|"
        r"started\s+working)\s+(?:at|for)|i(?:" + _APOS + r"ve|\s+have)\s+been\s+(?:working\s+)?at|"
        r"i(?:" + _APOS + r"m|\s+am)\s+(?:currently\s+)?(?:working\s+)?at|employed\s+(?:at|by)|i\s+joined|"
        r"my\s+(?:current\s+|previous\s+|last\s+|first\s+)?job\s+(?:is|was)\s+at))\s+"
        + _COMPANY
        + _DURATION_TAIL
        + r"(?:,?\s+(?i:as)\s+(?:(?i:an?|the)\s+)?"
        + _ROLE
        + r")?"
        + _DATE_TAIL
    )
    EXPERIENCE_ROLE_AT = re.compile(
        r"\b(?P<trigger>(?i:i\s+work\s+as|i\s+worked\s+as|i" + _APOS + r"m|i\s+am|i\s+was|i\s+have\s+been|"
        r"i" + _APOS + r"ve\s+been))\s+(?:(?i:currently|now|previously|formerly)\s+)?(?:(?i:an?|the)\s+)?"
        + _ROLE
        + r"\s+(?i:at|for|with)\s+"
        + _COMPANY
        + _DURATION_TAIL
        + _DATE_TAIL
    )

    EDUCATION_STUDIED = re.compile(
        r"\b(?i:i\s+(?:studied|majored\s+in))\s+(?P<field>" + _ANY_PHRASE + r")\s+(?i:at|in|from)\s+"
        + _INSTITUTION
        + r"(?:\s+(?i:from)\s+(?P<start>" + _YEAR + r")\s+(?i:to|until|-)\s+(?P<end>" + _YEAR + r"))?"
    )
    EDUCATION_DEGREE = re.compile(
        r"\b(?i:(?:i\s+|i" + _APOS + r"ve\s+)?(?:have|hold|got|earned|received|completed|finished|did))\s+"
        r"(?:(?i:an?|my|the)\s+)?"
        r"(?P<degree>(?i:bachelor(?:" + _APOS + r"s)?(?:\s+of\s+\w+)?|master(?:" + _APOS + r"s|s)?(?:\s+of\s+\w+)?|"
        r"ph\.?d\.?|doctorate|mba|associate(?:" + _APOS + r"s)?|b\.?sc\.?|m\.?sc\.?|b\.?tech|m\.?tech|"
        r"b\.?s\.?|m\.?s\.?|b\.?a\.?|m\.?a\.?|diploma|certificate))"
        r"(?:\s+(?i:degree))?"
        r"(?:\s+(?i:in|of)\s+(?P<field>" + _ANY_PHRASE + r"))?"
        r"\s+(?i:from|at)\s+" + _INSTITUTION
        + r"(?:\s+(?i:in)\s+(?P<end>" + _YEAR + r"))?"
    )
    EDUCATION_ATTENDED = re.compile(
        r"\b(?i:i\s+graduated\s+from|graduated\s+from|i\s+went\s+to|i\s+attended|i\s+studied\s+at|studied\s+at)\s+"
        + _INSTITUTION
        + r"(?:\s+(?i:in)\s+(?P<end>" + _YEAR + r"))?"
        + r"(?:\s+(?i:from)\s+(?P<start>" + _YEAR + r")\s+(?i:to|until|-)\s+(?P<end2>" + _YEAR + r"))?"
    )

    OBJECTIVE = re.compile(
        r"\b(?i:my\s+(?:main\s+|primary\s+|long[\s-]term\s+|short[\s-]term\s+|next\s+)?(?:goal|objective|aim|ambition)\s+"
        r"(?:is|was)\s+to|i\s+want\s+to|i\s+would\s+like\s+to|i" + _APOS + r"d\s+like\s+to|i\s+plan\s+to|"
        r"i" + _APOS + r"m\s+planning\s+to|i\s+aim\s+to|i\s+hope\s+to|i\s+intend\s+to)\s+"
        r"(?P<title>" + _CLAUSE + r")"
        r"(?=\s*(?:[;!?\n,]|\.(?!\S)|$)"
        r"|\s+(?i:by|within|before|in\s+the\s+next|this|next|and\s+(?:then\s+)?i|so\s+(?:that\s+)?i)\b)"
    )
    TIMEFRAME = re.compile(
        r"\b(?:by\s+(?:the\s+end\s+of\s+)?(?P<by>" + _YEAR + r"|q[1-4](?:\s+" + _YEAR + r")?|"
        r"(?:next|this)\s+(?:year|quarter|month)|" + _MONTH + r"(?:\s+" + _YEAR + r")?)"
        r"|within\s+(?:the\s+next\s+)?(?P<within>\d+|a|one|two|three|six)\s+(?P<within_unit>weeks?|months?|years?)"
        r"|(?:in\s+the\s+)?(?P<rel>next|this|coming)\s+(?P<rel_unit>year|quarter|month|few\s+months))\b",
        re.I,
    )

    _KR_VALUE = (
        r"(?P<currency>\$)?(?P<value>\d[\d,]*(?:\.\d+)?)(?P<mult>[kKmM]\b)?"
        r"(?:\s*(?P<unit>%|percent\b|[a-z]+(?:\s+[a-z]+)?))?"
    )
    KEY_RESULT_CHANGE = re.compile(
        r"\b(?P<verb>increase|grow|boost|raise|improve|reduce|decrease|cut|lower)\s+"
        r"(?P<metric>[a-z][\w'\-]*(?:\s+[\w'\-]+){0,4}?)\s+(?P<prep>to|by)\s+" + _KR_VALUE,
        re.I,
    )
    KEY_RESULT_TARGET = re.compile(
        r"\b(?P<verb>reach|hit|achieve|get\s+to|ship|publish|complete|finish|close|hire|land|earn|save|sign|"
        r"launch|write|read|gain|acquire|onboard|mentor)\s+" + _KR_VALUE,
        re.I,
    )

    def __init__(self):
        self._extractors: list[Callable[[str], Iterator[ExtractedAction]]] = [
            self._skill_actions,
            self._experience_actions,
            self._education_actions,
            self._objective_actions,
            self._key_result_actions,
        ]

    def parse(self, text: str) -> list[ExtractedAction]:
        """Convert free text into an ordered list of candidate actions.

        Args:
            text: Conversation text

        Returns:
            Actions ordered by position; unmatched sentences appear as
            ``none`` actions. Empty input returns an empty list.
        """
        if not text or not text.strip():
            return []

        ranked: list[tuple[int, int, ExtractedAction]] = []
        for order, extractor in enumerate(self._extractors):
            try:
                for action in extractor(text):
                    ranked.append((action.span[0], order, action))
            except Exception as e:
                # A faulty rule must not hide the output of the others
                LOGGER.error(
                    f"Extractor {extractor.__name__} failed: {e}",
                    exc_info=True,
                    extra={"extractor": extractor.__name__},
                )

        starts = [start for start, _, _ in ranked]
        unmatched_order = len(self._extractors)
        for sentence in _SENTENCE.finditer(text):
            if not any(sentence.start() <= start < sentence.end() for start in starts):
                ranked.append(
                    (sentence.start(), unmatched_order, ExtractedAction(NONE, sentence.group(0).strip(), {}, sentence.span()))
                )

        ranked.sort(key=lambda item: (item[0], item[1]))
        return [action for _, _, action in ranked]

    def _skill_actions(self, text: str) -> Iterator[ExtractedAction]:
        for match in self.SKILL_YEARS_OF.finditer(text):
            yield from self._skill(match, {"experience": int(match.group("years"))})

        for match in self.SKILL_YEARS_PREFIX.finditer(text):
            yield from self._skill(match, {"experience": int(match.group("years"))})

        for match in self.SKILL_YEARS_SUFFIX.finditer(text):
            yield from self._skill(match, {"experience": int(match.group("years"))})

        for match in self.SKILL_LEVEL.finditer(text):
            level = PROFICIENCY_LEVELS[match.group("level").lower()]
            yield from self._skill(match, {"proficiency": level})

        for match in self.SKILL_LIST.finditer(text):
            trigger = match.group("trigger").lower()
            details = {}
            for marker, level in LIST_TRIGGER_PROFICIENCY:
                if marker in trigger:
                    details["proficiency"] = level
                    break

            items = match.group("items")
            offset = match.start("items")
            cursor = 0
            pieces = []
            for separator in _LIST_SPLIT.finditer(items):
                pieces.append((cursor, items[cursor:separator.start()]))
                cursor = separator.end()
            pieces.append((cursor, items[cursor:]))

            for index, (piece_start, piece) in enumerate(pieces):
                name = _clean_entity(piece)
                if not name or len(name.split()) > 4 or _LIST_ITEM_REJECT.search(name):
                    continue
                start = match.start() if index == 0 else offset + piece_start
                yield ExtractedAction(SKILL, name, dict(details), (start, offset + piece_start + len(piece)))

    def _skill(self, match: re.Match, details: dict) -> Iterator[ExtractedAction]:
        name = _clean_entity(match.group("skill"))
        if name:
            yield ExtractedAction(SKILL, name, details, match.span())

    def _experience_actions(self, text: str) -> Iterator[ExtractedAction]:
        for pattern in (self.EXPERIENCE_AT_COMPANY, self.EXPERIENCE_ROLE_AT):
            for match in pattern.finditer(text):
                company = _clean_entity(match.group("company"))
                if not company:
                    continue

                groups = match.groupdict()
                trigger = groups["trigger"].lower()
                details = {}
                if groups.get("role"):
                    details["role"] = _clean_entity(groups["role"])

                industry = detect_industry(f"{self._sentence_around(text, match.start())} {company}")
                if industry:
                    details["industry"] = industry

                if groups.get("years"):
                    details["durationYears"] = int(groups["years"])

                start_date = _normalize_date(groups.get("start"))
                if start_date:
                    details["startDate"] = start_date

                end_raw = groups.get("end")
                end_date = _normalize_date(end_raw)
                if end_date:
                    details["endDate"] = end_date

                ongoing = end_raw is not None and end_raw.lower() in ("present", "now", "today")
                present_tense = not any(word in trigger for word in ("worked", "was", "previous", "last", "first"))
                if ongoing or (present_tense and not end_date and "joined" not in trigger):
                    details["isCurrent"] = True

                yield ExtractedAction(EXPERIENCE, company, details, match.span())

    def _education_actions(self, text: str) -> Iterator[ExtractedAction]:
        for pattern in (self.EDUCATION_STUDIED, self.EDUCATION_DEGREE, self.EDUCATION_ATTENDED):
            for match in pattern.finditer(text):
                institution = _clean_entity(match.group("institution"))
                if not institution:
                    continue

                groups = match.groupdict()
                details = {}
                if groups.get("degree"):
                    details["degree"] = groups["degree"].strip()
                if groups.get("field"):
                    details["field"] = _clean_entity(groups["field"])
                if groups.get("start"):
                    details["startDate"] = _normalize_date(groups["start"])
                end = groups.get("end") or groups.get("end2")
                if end:
                    details["endDate"] = _normalize_date(end)
                kind = institution_type(institution)
                if kind:
                    details["institutionType"] = kind

                yield ExtractedAction(EDUCATION, institution, details, match.span())

    def _objective_actions(self, text: str) -> Iterator[ExtractedAction]:
        for match in self.OBJECTIVE.finditer(text):
            title = _capitalize(_clean_entity(match.group("title")))
            if not title:
                continue

            sentence = self._sentence_around(text, match.start())
            details = {
                "category": objective_category(title),
                "priority": objective_priority(sentence),
            }
            timeframe = self.TIMEFRAME.search(sentence)
            if timeframe:
                details["deadline"] = timeframe.group(0)
                details["timeframe"] = self._timeframe_bucket(timeframe)

            yield ExtractedAction(OBJECTIVE, title, details, match.span())

    def _key_result_actions(self, text: str) -> Iterator[ExtractedAction]:
        for pattern in (self.KEY_RESULT_CHANGE, self.KEY_RESULT_TARGET):
            for match in pattern.finditer(text):
                value = float(match.group("value").replace(",", ""))
                multiplier = (match.group("mult") or "").lower()
                if multiplier == "k":
                    value *= 1_000
                elif multiplier == "m":
                    value *= 1_000_000

                unit = self._clean_unit(match.group("unit"))
                if unit:
                    # Title ends at the kept unit words, not at dropped stop words
                    end = match.start("unit") + match.group("unit").lower().find(unit) + len(unit)
                elif match.group("mult"):
                    end = match.end("mult")
                else:
                    end = match.end("value")

                if match.group("currency") or unit in ("dollars", "usd"):
                    measurement, unit = "currency", "USD"
                elif unit in ("%", "percent"):
                    measurement, unit = "percentage", "%"
                else:
                    measurement = "number"

                details = {"targetValue": value, "measurementType": measurement}
                if unit:
                    details["unit"] = unit
                verb = match.group("verb").lower()
                if verb in ("reduce", "decrease", "cut", "lower"):
                    details["direction"] = "decrease"
                elif verb in ("increase", "grow", "boost", "raise", "improve"):
                    details["direction"] = "increase"

                title = _capitalize(re.sub(r"\s+", " ", text[match.start():end]).strip())
                yield ExtractedAction(KEY_RESULT, title, details, match.span())

    @staticmethod
    def _clean_unit(raw: Optional[str]) -> Optional[str]:
        if not raw:
            return None
        words = raw.strip().lower().split()
        if words and words[0] == "%":
            return "%"
        while words and words[-1] in _UNIT_STOPWORDS:
            words.pop()
        while words and words[0] in _UNIT_STOPWORDS:
            words.pop(0)
        return " ".join(words) or None

    @staticmethod
    def _timeframe_bucket(match: re.Match) -> str:
        """Map a deadline phrase to monthly, quarterly or yearly."""
        words = {"a": 1, "one": 1, "two": 2, "three": 3, "six": 6}
        within_unit = (match.group("within_unit") or "").lower()
        if within_unit:
            raw = match.group("within").lower()
            count = words.get(raw) or int(raw)
            months = count / 4 if within_unit.startswith("week") else count * 12 if within_unit.startswith("year") else count
            if months <= 1:
                return "monthly"
            return "quarterly" if months <= 3 else "yearly"

        phrase = match.group(0).lower()
        if "quarter" in phrase or "few months" in phrase or re.search(r"\bq[1-4]\b", phrase):
            return "quarterly"
        if "month" in phrase:
            return "monthly"
        return "yearly"

    @staticmethod
    def _sentence_around(text: str, position: int) -> str:
        start = max(text.rfind(mark, 0, position) for mark in ".!?\n") + 1
        ends = [index for index in (text.find(mark, position) for mark in "!?\n") if index != -1]
        period = re.search(r"\.(?!\S)", text[position:])
        if period:
            ends.append(position + period.start())
        end = min(ends) if ends else len(text)
        return text[start:end].strip()
