"""
Regex entity extraction package

Exports:
- EntityExtractor: deterministic slot extractor
- extract_with_regex: module-level shortcut
- expand_two_digit_year: century rule for '05-style years
- MIN_GRADUATION_YEAR, FUTURE_YEARS_ALLOWED: plausible graduation year bounds
"""

from .entity_extractor import (
    FUTURE_YEARS_ALLOWED,
    MIN_GRADUATION_YEAR,
    EntityExtractor,
    expand_two_digit_year,
    extract_with_regex,
)

__all__ = [
    'EntityExtractor',
    'expand_two_digit_year',
    'extract_with_regex',
    'MIN_GRADUATION_YEAR',
    'FUTURE_YEARS_ALLOWED',
]
