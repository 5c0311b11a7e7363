"""
Hybrid query understanding for alumni directory search.

    from query_understanding import extract_entities

    parsed = extract_entities("Find web development companies in Chennai")
    parsed.intent        # Intent.FIND_BUSINESS
    parsed.entities      # ExtractedEntities(skills=('web development',), location='Chennai')
"""

from .models import (
    ExtractedEntities,
    ExtractionMethod,
    Intent,
    IntentResult,
    ParsedQuery,
    QueryMetadata,
    RegexExtractionResult,
)
from .classifier import IntentClassifier, classify_intent
from .extractors import EntityExtractor, extract_with_regex
from .hybrid import HybridCoordinator, extract_entities, log_extraction_performance

__version__ = "1.0.0"

__all__ = [
    'EntityExtractor',
    'ExtractedEntities',
    'ExtractionMethod',
    'HybridCoordinator',
    'Intent',
    'IntentClassifier',
    'IntentResult',
    'ParsedQuery',
    'QueryMetadata',
    'RegexExtractionResult',
    'classify_intent',
    'extract_entities',
    'extract_with_regex',
    'log_extraction_performance',
]
