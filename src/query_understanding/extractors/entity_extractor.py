"""
Deterministic regex entity extractor.

Pulls graduation years, location, branch, skills/services, person name and
organization out of a directory query, scores how much it recognised, and
flags queries that need the generation backend.

Each sub-extractor is a separate method and can be switched off per
instance:

    extractor = EntityExtractor(enabled={"years", "branch"})
"""

import re
from datetime import date
from typing import Any, Iterable, List, Optional, Set, Tuple

from query_understanding.feature_flags import flags
from query_understanding.logger import logger
from query_understanding.models import ExtractedEntities, RegexExtractionResult, clamp_confidence
from .vocabulary import (
    BRANCHES,
    GRADUATION_KEYWORDS,
    IT_BRANCH,
    LOCATIONS,
    ROLE_WORDS,
    SERVICE_CUES,
    SKILL_LOOKUP,
    STOP_WORDS,
    TERM_HEADS,
)


SUB_EXTRACTORS = ("years", "location", "branch", "skills", "name", "organization")

# Confidence scoring
PATTERN_TYPE_WEIGHT = 0.25
YEAR_BONUS = 0.1
BRANCH_BONUS = 0.1
LOCATION_BONUS = 0.05
SHORT_QUERY_PENALTY = 0.1
SHORT_QUERY_WORDS = 3
ESCALATION_THRESHOLD = 0.5

# Years
MIN_GRADUATION_YEAR = 1950
FUTURE_YEARS_ALLOWED = 5
MAX_RANGE_SPAN = 20
TWO_DIGIT_PIVOT = 30
FOUR_DIGIT_WINDOW = 3
TWO_DIGIT_WINDOW = 2
SERVICE_CUE_WINDOW = 3

_TOKEN_RE = re.compile(r"[a-z]+|\d+")
_YEAR_RANGE_RE = re.compile(r"(?<!\d)'?(\d{2}|\d{4})\s*(?:-|–|to)\s*'?(\d{2}|\d{4})(?!\d)", re.IGNORECASE)
_YEAR_RE = re.compile(r"(?<!\d)'?(\d{4}|\d{2})(?!\d)")

_LOCATION_RE = re.compile(
    r"\b(?i:based in|located in|living in|settled in|working in|in|at|from|near|around)\s+"
    r"([A-Z][A-Za-z]+(?:\s+[A-Z][A-Za-z]+)?)"
)
_IT_RE = re.compile(r"\bIT\b")
_NAME_RE = re.compile(
    r"\b(?:[Ff]ind|[Ss]earch for|[Ll]ocate|[Cc]ontact|[Ww]here is|[Nn]amed|[Cc]alled)\s+"
    r"([A-Z][a-z]+(?:\s+[A-Z][a-z]+)?)"
)
_ORGANIZATION_RE = re.compile(
    r"\b(?i:works|working|work|employed|job)\s+(?i:at|with|for|in)\s+"
    r"([A-Z][A-Za-z0-9&]+(?:\s+[A-Z][A-Za-z0-9&]+){0,2})"
)

_FILLER_RE = re.compile(
    r"\b(can you|could you|would you|please|help me|i want|i need|i'm looking|i am looking"
    r"|looking for|recommend|suggest|my)\b"
)
_CONNECTIVE_RE = re.compile(r"\b(or|either|neither|compare|comparing|versus|vs)\b")


def _term_regex(term: str) -> re.Pattern:
    return re.compile(r"(?<![A-Za-z0-9])" + re.escape(term) + r"(?![A-Za-z0-9])", re.IGNORECASE)


# Longest phrase first so "mobile app development" wins over "app development"
_SKILL_PATTERNS = [
    (_term_regex(term), canonical)
    for term, canonical in sorted(SKILL_LOOKUP.items(), key=lambda item: -len(item[0]))
]
_BRANCH_PATTERNS = [
    (_term_regex(alias), canonical)
    for alias, canonical in sorted(BRANCHES.items(), key=lambda item: -len(item[0]))
]
_LOCATION_PATTERNS = [
    (_term_regex(alias), canonical)
    for alias, canonical in sorted(LOCATIONS.items(), key=lambda item: -len(item[0]))
]


def expand_two_digit_year(value: int) -> int:
    """00-30 -> 2000-2030, 31-99 -> 1931-1999."""
    return 2000 + value if value <= TWO_DIGIT_PIVOT else 1900 + value


def _tokenize(text: str) -> List[Tuple[int, int, str]]:
    return [(m.start(), m.end(), m.group()) for m in _TOKEN_RE.finditer(text.lower())]


def _token_span(tokens: List[Tuple[int, int, str]], start: int, end: int) -> Tuple[int, int]:
    """Indices of the first and last token overlapping [start, end)."""
    inside = [i for i, (s, e, _) in enumerate(tokens) if s < end and e > start]
    if not inside:
        return 0, -1
    return inside[0], inside[-1]


def _near(tokens, first: int, last: int, window: int, words) -> bool:
    lo = max(0, first - window)
    hi = min(len(tokens), last + window + 1)
    return any(
        tokens[i][2] in words
        for i in range(lo, hi)
        if i < first or i > last
    )


def _known_term(word: str) -> bool:
    lowered = word.lower()
    return (
        lowered in STOP_WORDS
        or lowered in TERM_HEADS
        or lowered in SKILL_LOOKUP
        or lowered in GRADUATION_KEYWORDS
        or lowered in ROLE_WORDS
    )


class EntityExtractor:
    """Regex extractor producing RegexExtractionResult."""

    def __init__(self, enabled: Optional[Iterable[str]] = None, current_year: Optional[int] = None,
                 escalation_threshold: float = ESCALATION_THRESHOLD):
        self.enabled: Set[str] = set(enabled) if enabled is not None else set(SUB_EXTRACTORS)
        self.current_year = current_year
        self.escalation_threshold = escalation_threshold

    @property
    def max_year(self) -> int:
        return (self.current_year or date.today().year) + FUTURE_YEARS_ALLOWED

    # =========================================================================
    # Sub-extractors
    # =========================================================================

    def _valid_year(self, year: int) -> bool:
        return MIN_GRADUATION_YEAR <= year <= self.max_year

    def _to_year(self, digits: str) -> int:
        value = int(digits)
        return expand_two_digit_year(value) if len(digits) == 2 else value

    def extract_years(self, query: str) -> Tuple[Tuple[int, ...], List[str]]:
        tokens = _tokenize(query)
        years: Set[int] = set()
        consumed: List[Tuple[int, int]] = []

        # Rejected ranges fall through so their endpoints are read as single years
        for match in _YEAR_RANGE_RE.finditer(query):
            start, end = self._to_year(match.group(1)), self._to_year(match.group(2))
            if end < start or end - start > MAX_RANGE_SPAN:
                continue
            if not (self._valid_year(start) and self._valid_year(end)):
                continue
            consumed.append(match.span())
            window = TWO_DIGIT_WINDOW if len(match.group(1)) == 2 else FOUR_DIGIT_WINDOW
            first, last = _token_span(tokens, *match.span())
            if _near(tokens, first, last, window, GRADUATION_KEYWORDS):
                years.update(range(start, end + 1))

        for match in _YEAR_RE.finditer(query):
            if any(s <= match.start() < e for s, e in consumed):
                continue
            digits = match.group(1)
            year = self._to_year(digits)
            if not self._valid_year(year):
                continue
            window = TWO_DIGIT_WINDOW if len(digits) == 2 else FOUR_DIGIT_WINDOW
            first, last = _token_span(tokens, match.start(1), match.end(1))
            if _near(tokens, first, last, window, GRADUATION_KEYWORDS):
                years.add(year)

        patterns = []
        if years:
            patterns.append("graduation_year")
        if any(token in GRADUATION_KEYWORDS for _, _, token in tokens):
            patterns.append("cohort_keyword")
        return tuple(sorted(years)), patterns

    def extract_location(self, query: str, exclude: Optional[str] = None) -> Optional[str]:
        for match in _LOCATION_RE.finditer(query):
            preposition = query[match.start():match.start(1)].strip().lower()
            candidate = match.group(1)
            words = candidate.split()

            if candidate.lower() in LOCATIONS:
                return LOCATIONS[candidate.lower()]
            if words[0].lower() in LOCATIONS:
                return LOCATIONS[words[0].lower()]

            if preposition == "at":
                continue
            if exclude and exclude.startswith(words[0]):
                continue
            if words[0].isupper() or _known_term(words[0]):
                continue
            if len(words) > 1 and (words[1].isupper() or _known_term(words[1])):
                candidate = words[0]
            return candidate

        # Lower-case queries: scan known place names
        best = None
        for pattern, canonical in _LOCATION_PATTERNS:
            match = pattern.search(query)
            if match and (best is None or match.start() < best[0]):
                best = (match.start(), canonical)
        return best[1] if best else None

    def extract_branch(self, query: str) -> Optional[str]:
        best = None
        for pattern, canonical in _BRANCH_PATTERNS:
            match = pattern.search(query)
            if match and (best is None or match.start() < best[0]):
                best = (match.start(), canonical)
        # Upper-case "IT" is a branch only alongside a cohort keyword
        it_match = _IT_RE.search(query)
        if it_match and not any(token in GRADUATION_KEYWORDS for _, _, token in _tokenize(query)):
            it_match = None
        if it_match and (best is None or it_match.start() < best[0]):
            best = (it_match.start(), IT_BRANCH)
        return best[1] if best else None

    def extract_skills(self, query: str) -> Tuple[Tuple[str, ...], Tuple[str, ...]]:
        """Split vocabulary hits into (skills, services) by nearby service cues."""
        tokens = _tokenize(query)
        hits = []
        consumed: List[Tuple[int, int]] = []

        for pattern, canonical in _SKILL_PATTERNS:
            for match in pattern.finditer(query):
                start, end = match.span()
                if any(s < end and start < e for s, e in consumed):
                    continue
                consumed.append((start, end))
                hits.append((start, end, canonical))

        skills: List[str] = []
        services: List[str] = []
        for start, end, canonical in sorted(hits):
            first, last = _token_span(tokens, start, end)
            target = services if _near(tokens, first, last, SERVICE_CUE_WINDOW, SERVICE_CUES) else skills
            if canonical not in skills and canonical not in services:
                target.append(canonical)
        return tuple(skills), tuple(services)

    def extract_name(self, query: str) -> Optional[str]:
        for match in _NAME_RE.finditer(query):
            words = match.group(1).split()
            if _known_term(words[0]) or words[0].lower() in LOCATIONS:
                continue
            if len(words) > 1 and (_known_term(words[1]) or words[1].lower() in LOCATIONS):
                words = words[:1]
            return " ".join(words)
        return None

    def extract_organization(self, query: str) -> Optional[str]:
        match = _ORGANIZATION_RE.search(query)
        if not match:
            return None
        candidate = match.group(1)
        lowered = candidate.lower()
        if lowered in LOCATIONS or lowered in BRANCHES or _known_term(candidate.split()[0]):
            return None
        return candidate

    # =========================================================================
    # Scoring
    # =========================================================================

    def score(self, query: str, pattern_types: List[str], entities: ExtractedEntities) -> float:
        confidence = PATTERN_TYPE_WEIGHT * len(set(pattern_types))
        if entities.graduation_year:
            confidence += YEAR_BONUS
        if entities.branch:
            confidence += BRANCH_BONUS
        if entities.location:
            confidence += LOCATION_BONUS
        if len(query.split()) < SHORT_QUERY_WORDS:
            confidence -= SHORT_QUERY_PENALTY
        return round(clamp_confidence(confidence), 4)

    def escalation_reasons(self, query: str, confidence: float, pattern_types: List[str]) -> List[str]:
        lowered = query.lower()
        reasons = []
        if confidence < self.escalation_threshold:
            reasons.append(f"low confidence ({confidence:.2f})")
        if not pattern_types:
            reasons.append("no patterns matched")
        filler = _FILLER_RE.search(lowered)
        if filler:
            reasons.append(f"conversational filler '{filler.group(1)}'")
        connective = _CONNECTIVE_RE.search(lowered)
        if connective:
            reasons.append(f"multi-clause connective '{connective.group(1)}'")
        return reasons

    # =========================================================================
    # Public API
    # =========================================================================

    def extract(self, query: Any) -> RegexExtractionResult:
        """
        Extract entities from a query. Never raises.

        Blank or non-string input gives empty entities, zero confidence
        and escalate=True.
        """
        if not isinstance(query, str) or not query.strip():
            return RegexExtractionResult(
                entities=ExtractedEntities(),
                confidence=0.0,
                escalate=True,
                escalation_reasons=("empty query",),
            )

        try:
            return self._extract(query.strip())
        except Exception as e:
            logger.exception("Regex extraction failed", query=query[:100], error=str(e))
            return RegexExtractionResult(
                entities=ExtractedEntities(),
                confidence=0.0,
                escalate=True,
                escalation_reasons=(f"extractor error: {type(e).__name__}",),
            )

    def _extract(self, query: str) -> RegexExtractionResult:
        patterns: List[str] = []
        fields = {}

        if "years" in self.enabled:
            years, year_patterns = self.extract_years(query)
            fields["graduation_year"] = years
            patterns.extend(year_patterns)

        if "branch" in self.enabled:
            branch = self.extract_branch(query)
            if branch:
                fields["branch"] = branch
                patterns.append("branch")

        if "skills" in self.enabled:
            skills, services = self.extract_skills(query)
            fields["skills"] = skills
            fields["services"] = services
            if skills:
                patterns.append("skills")
            if services:
                patterns.append("services")

        names_on = flags.name_extraction
        organization = None
        if names_on and "organization" in self.enabled:
            organization = self.extract_organization(query)
            if organization:
                fields["organization_name"] = organization
                patterns.append("organization")

        if "location" in self.enabled:
            location = self.extract_location(query, exclude=organization)
            if location:
                fields["location"] = location
                patterns.append("location")

        if names_on and "name" in self.enabled:
            name = self.extract_name(query)
            if name:
                fields["name"] = name
                patterns.append("name")

        entities = ExtractedEntities(**fields)
        confidence = self.score(query, patterns, entities)
        reasons = self.escalation_reasons(query, confidence, patterns)

        logger.debug(
            "Regex extraction",
            confidence=confidence,
            patterns=patterns,
            escalate=bool(reasons),
        )

        return RegexExtractionResult(
            entities=entities,
            confidence=confidence,
            matched_patterns=tuple(patterns),
            escalate=bool(reasons),
            escalation_reasons=tuple(reasons),
        )


_default_extractor = EntityExtractor()


def extract_with_regex(query: Any) -> RegexExtractionResult:
    """Extract with the module-level extractor."""
    return _default_extractor.extract(query)
