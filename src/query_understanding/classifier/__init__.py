"""
Intent classification package

Exports:
- IntentClassifier: weighted-pattern classifier
- classify_intent: module-level shortcut
- INTENT_PATTERNS, INTENT_PRIORITY, DEFAULT_INTENT: pattern tables
"""

from .patterns import INTENT_PATTERNS, INTENT_PRIORITY, DEFAULT_INTENT, WeightedPattern
from .intent_classifier import IntentClassifier, classify_intent, normalize_score, rank_intents

__all__ = [
    'IntentClassifier',
    'classify_intent',
    'normalize_score',
    'rank_intents',
    'WeightedPattern',
    'INTENT_PATTERNS',
    'INTENT_PRIORITY',
    'DEFAULT_INTENT',
]
