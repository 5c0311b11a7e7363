"""
Parsing generated replies and merging them with regex results.

Merge precedence:
    graduation_year, location, branch  regex wins when present
    skills, services                   generated first, then new regex values
    name, organization_name            generated wins when present
"""

import json
from typing import Iterable, Tuple

from pydantic import ValidationError

from query_understanding.exceptions import ResponseParseError
from query_understanding.models import ExtractedEntities
from .schemas import GeneratedQuery


def extract_json_object(text: str) -> str:
    """Substring from the first '{' to the last '}'."""
    if not text:
        raise ResponseParseError("empty reply")
    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end <= start:
        raise ResponseParseError("no JSON object in reply")
    return text[start:end + 1]


def parse_generated(text: str) -> GeneratedQuery:
    """
    Parse a backend reply into GeneratedQuery.

    Raises:
        ResponseParseError: no JSON object, invalid JSON or wrong shape
    """
    raw = extract_json_object(text)
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ResponseParseError(f"invalid JSON: {e.msg}")
    if not isinstance(data, dict):
        raise ResponseParseError("reply is not a JSON object")
    try:
        return GeneratedQuery.model_validate(data)
    except ValidationError as e:
        raise ResponseParseError(f"unexpected reply shape: {e.error_count()} errors")


def union_terms(primary: Iterable[str], secondary: Iterable[str]) -> Tuple[str, ...]:
    """primary order first, then secondary values not seen (case-insensitive)."""
    seen = set()
    result = []
    for term in list(primary) + list(secondary):
        key = term.strip().lower()
        if key and key not in seen:
            seen.add(key)
            result.append(term)
    return tuple(result)


def merge_entities(regex: ExtractedEntities, generated: ExtractedEntities) -> ExtractedEntities:
    return ExtractedEntities(
        graduation_year=regex.graduation_year or generated.graduation_year,
        location=regex.location or generated.location,
        branch=regex.branch or generated.branch,
        skills=union_terms(generated.skills, regex.skills),
        services=union_terms(generated.services, regex.services),
        name=generated.name or regex.name,
        organization_name=generated.organization_name or regex.organization_name,
    )


def blend_confidence(regex_confidence: float, generated_confidence: float,
                     regex_weight: float = 0.4, generated_weight: float = 0.6) -> float:
    return round(regex_weight * regex_confidence + generated_weight * generated_confidence, 4)
