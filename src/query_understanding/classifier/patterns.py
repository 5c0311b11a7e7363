"""
Weighted intent patterns.

Each intent owns an ordered tuple of (tag, regex, weight). Weights stay in
the 0.7-1.2 band: 1.2 for the strongest single signal of an intent, 0.7 for
weak supporting context.

Person-name patterns are case-sensitive, everything else ignores case.
"""

import re
from dataclasses import dataclass
from typing import Dict, Pattern, Tuple

from query_understanding.extractors.vocabulary import NON_NAME_WORDS, ROLE_NOUNS
from query_understanding.models import Intent


@dataclass(frozen=True)
class WeightedPattern:
    tag: str
    pattern: Pattern
    weight: float


def _p(tag: str, regex: str, weight: float, flags: int = re.IGNORECASE) -> WeightedPattern:
    return WeightedPattern(tag=tag, pattern=re.compile(regex, flags), weight=weight)


# Rejects a capitalized word that is a role, vocabulary term or stop word
_NOT_A_NAME = (
    r"(?!(?i:"
    + "|".join(re.escape(word) for word in sorted(NON_NAME_WORDS, key=len, reverse=True))
    + r")\b)"
)
_ROLES = "|".join(ROLE_NOUNS)


INTENT_PATTERNS: Dict[Intent, Tuple[WeightedPattern, ...]] = {
    Intent.FIND_BUSINESS: (
        _p("service_keyword",
           r"\b(?:compan(?:y|ies)|business(?:es)?|firms?|agenc(?:y|ies)|startups?|vendors?"
           r"|suppliers?|providers?|services?|solutions?)\b", 1.2),
        _p("professional_role", r"\b(?:" + _ROLES + r")s?\b", 1.0),
        _p("skill_domain",
           r"\b(?:web|software|app|mobile|digital|it|cloud|data|graphic|interior)\s+"
           r"(?:development|design|marketing|consulting|services?|solutions?|analytics)\b", 1.0),
        _p("hire_phrase",
           r"\b(?:need (?:a|an|some(?:one)?)|looking for (?:a|an|some(?:one)?)"
           r"|anyone (?:doing|who can)|who (?:can|does)|hire|find (?:a|an|me a))\b", 0.9),
        _p("place_qualifier", r"\b(?:in|at|near|around)\s+[a-z]{3,}", 0.7),
    ),
    Intent.FIND_PEERS: (
        _p("cohort_keyword",
           r"\b(?:batch(?:mates?|es)?|pass\s?outs?|passed out|alumni|alumnus|classmates?"
           r"|graduated|graduates?|class of)\b", 1.2),
        _p("graduation_year", r"(?<!\d)(?:19[5-9]\d|20[0-4]\d)(?!\d)", 1.0),
        _p("branch_mention",
           r"\b(?:mechanical|mech|civil|ece|eee|cse|eie|textile|chemical|electrical|electronics"
           r"|computer science|information technology|biotech(?:nology)?|mba|mca)\b", 0.9),
        _p("people_word",
           r"\b(?:people|folks|friends|seniors|juniors|peers|members|students|guys)\b", 0.8),
        _p("same_cohort",
           r"\b(?:same (?:year|batch|class)|year of (?:passing|passout|graduation)"
           r"|my batch|our batch)\b", 1.1),
    ),
    Intent.FIND_SPECIFIC_PERSON: (
        _p("person_lookup",
           r"\b(?:where is|contact (?:of|for|details)|phone (?:number )?of|number of|email of"
           r"|anyone named|someone named|named|called)\b", 1.2),
        _p("find_name",
           r"\b(?:[Ff]ind|[Ss]earch for|[Ll]ocate|[Cc]ontact|[Gg]et)\s+"
           + _NOT_A_NAME + r"[A-Z][a-z]{2,}\b", 1.1, flags=0),
        _p("full_name",
           r"\b" + _NOT_A_NAME + r"[A-Z][a-z]{2,}\s+" + _NOT_A_NAME + r"[A-Z][a-z]{2,}\b", 0.9, flags=0),
        _p("contact_request",
           r"\b(?:his|her|their)\s+(?:number|email|phone|contact|address)\b", 0.8),
    ),
    Intent.FIND_ALUMNI_BUSINESS: (
        _p("alumni_offering",
           r"\b(?:batch(?:mates?)?|pass\s?out|alumni|classmates?|graduates?)\b.*?"
           r"\b(?:who|that)\s+(?:are|is|run|runs|own|owns|offer|offers|provide|provides|do|does)\b", 1.2),
        _p("running_business",
           r"\b(?:running|runs?|owns?|owning|started|providing|offering)\s+"
           r"(?:a\s+|an\s+|their\s+own\s+|own\s+)?"
           r"(?:business(?:es)?|compan(?:y|ies)|startups?|firms?|agenc(?:y|ies)|services?)\b", 1.1),
        _p("entrepreneur",
           r"\b(?:entrepreneurs?|founders?|co-?founders?|business\s*(?:owners?|men|people)"
           r"|self[- ]employed)\b", 1.0),
        _p("alumni_professional",
           r"\b(?:batch(?:mates?)?|pass\s?out|alumni|classmates?)\b.*?"
           r"\b(?:developers?|consultants?|designers?|services?|business(?:es)?|startups?|companies)\b", 0.9),
    ),
}

# Tie-break order for equal scores: most specific intent first
INTENT_PRIORITY: Tuple[Intent, ...] = (
    Intent.FIND_ALUMNI_BUSINESS,
    Intent.FIND_SPECIFIC_PERSON,
    Intent.FIND_PEERS,
    Intent.FIND_BUSINESS,
)

DEFAULT_INTENT = Intent.FIND_PEERS

# score / (max_possible * SCALE + OFFSET)
NORMALIZATION_SCALE = 0.35
NORMALIZATION_OFFSET = 0.7

# Secondary intent must reach this share of the primary score
SECONDARY_INTENT_RATIO = 0.5

MAX_POSSIBLE_SCORES: Dict[Intent, float] = {
    intent: sum(p.weight for p in patterns)
    for intent, patterns in INTENT_PATTERNS.items()
}
