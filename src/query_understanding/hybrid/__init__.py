"""
Hybrid coordinator package

Exports:
- HybridCoordinator: regex first, generation backend for hard queries
- extract_entities: module-level entry point (lazy default coordinator)
- log_extraction_performance: per-query metric
"""

from .coordinator import (
    HybridCoordinator,
    extract_entities,
    get_default_coordinator,
    log_extraction_performance,
    reset_default_coordinator,
)
from .merge import blend_confidence, merge_entities, parse_generated
from .schemas import GeneratedEntities, GeneratedQuery

__all__ = [
    'GeneratedEntities',
    'GeneratedQuery',
    'HybridCoordinator',
    'blend_confidence',
    'extract_entities',
    'get_default_coordinator',
    'log_extraction_performance',
    'merge_entities',
    'parse_generated',
    'reset_default_coordinator',
]
