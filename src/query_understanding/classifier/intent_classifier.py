"""
Weighted-pattern intent classifier.

Scores every intent by summing the weights of its matching patterns, then
normalizes each score against what that intent could reach at most:

    confidence = score / (max_possible * 0.35 + 0.7), clipped to [0, 1]

Pure regex, no I/O, no state: safe to call from any thread.
"""

from typing import Any, Dict, List, Optional, Tuple

from query_understanding.models import Intent, IntentResult, clamp_confidence
from .patterns import (
    DEFAULT_INTENT,
    INTENT_PATTERNS,
    INTENT_PRIORITY,
    MAX_POSSIBLE_SCORES,
    NORMALIZATION_OFFSET,
    NORMALIZATION_SCALE,
    SECONDARY_INTENT_RATIO,
)


def normalize_score(score: float, max_possible: float) -> float:
    """Map a raw weight sum onto [0, 1]."""
    if score <= 0:
        return 0.0
    return round(clamp_confidence(score / (max_possible * NORMALIZATION_SCALE + NORMALIZATION_OFFSET)), 4)


def rank_intents(scores: Dict[Intent, float]) -> List[Tuple[Intent, float]]:
    """Order intents by score, ties broken by INTENT_PRIORITY."""
    priority = {intent: index for index, intent in enumerate(INTENT_PRIORITY)}
    return sorted(
        scores.items(),
        key=lambda item: (-item[1], priority.get(item[0], len(priority))),
    )


class IntentClassifier:
    """Regex intent classifier producing IntentResult."""

    def __init__(self, patterns=None):
        self.patterns = patterns or INTENT_PATTERNS
        if patterns is None:
            self.max_possible = MAX_POSSIBLE_SCORES
        else:
            self.max_possible = {
                intent: sum(p.weight for p in intent_patterns)
                for intent, intent_patterns in self.patterns.items()
            }

    def score(self, query: str) -> Tuple[Dict[Intent, float], List[str]]:
        """
        Score every intent.

        Returns:
            (normalized scores per intent, matched pattern tags)
        """
        scores: Dict[Intent, float] = {}
        matched: List[str] = []

        for intent, intent_patterns in self.patterns.items():
            raw = 0.0
            for weighted in intent_patterns:
                if weighted.pattern.search(query):
                    raw += weighted.weight
                    matched.append(f"{intent.value}:{weighted.tag}")
            scores[intent] = normalize_score(raw, self.max_possible[intent])

        return scores, matched

    def classify(self, query: Any) -> IntentResult:
        """
        Classify a query. Never raises.

        Args:
            query: Query text; anything that is not a non-blank string
                   yields the default intent with zero confidence.
        """
        if not isinstance(query, str) or not query.strip():
            return IntentResult(primary=DEFAULT_INTENT, confidence=0.0)

        scores, matched = self.score(query)
        ranked = rank_intents(scores)
        primary, primary_score = ranked[0]

        if primary_score <= 0:
            return IntentResult(
                primary=DEFAULT_INTENT,
                confidence=0.0,
                scores={intent.value: 0.0 for intent in scores},
            )

        secondary: Optional[Intent] = None
        for intent, value in ranked[1:]:
            if value > 0 and value >= primary_score * SECONDARY_INTENT_RATIO:
                secondary = intent
            break

        return IntentResult(
            primary=primary,
            secondary=secondary,
            confidence=primary_score,
            matched_patterns=tuple(matched),
            scores={intent.value: value for intent, value in scores.items()},
        )


_default_classifier = IntentClassifier()


def classify_intent(query: Any) -> IntentResult:
    """Classify with the module-level classifier."""
    return _default_classifier.classify(query)
