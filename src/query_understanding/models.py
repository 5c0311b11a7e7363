"""
Result types shared by the classifier, extractor and coordinator.

All results are frozen dataclasses: they are created once per query and
never mutated afterwards.
"""

from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Any, Dict, Optional, Tuple


class Intent(str, Enum):
    """Coarse category of what a directory query is looking for."""

    FIND_BUSINESS = "find_business"
    FIND_PEERS = "find_peers"
    FIND_SPECIFIC_PERSON = "find_specific_person"
    FIND_ALUMNI_BUSINESS = "find_alumni_business"

    @classmethod
    def parse(cls, value: Any) -> Optional["Intent"]:
        """Return the Intent for a string value, or None if it is not one."""
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            return None
        try:
            return cls(value.strip().lower())
        except ValueError:
            return None


class ExtractionMethod(str, Enum):
    REGEX = "regex"
    GENERATED = "generated"
    HYBRID = "hybrid"


def clamp_confidence(value: float) -> float:
    """Clip a confidence score into [0, 1]."""
    return max(0.0, min(1.0, float(value)))


@dataclass(frozen=True)
class IntentResult:
    """Classifier output."""

    primary: Intent
    confidence: float
    secondary: Optional[Intent] = None
    matched_patterns: Tuple[str, ...] = ()
    scores: Dict[str, float] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "primary": self.primary.value,
            "secondary": self.secondary.value if self.secondary else None,
            "confidence": round(self.confidence, 3),
            "matched_patterns": list(self.matched_patterns),
            "scores": {k: round(v, 3) for k, v in self.scores.items()},
        }


@dataclass(frozen=True)
class ExtractedEntities:
    """Structured slot values pulled out of a query. Every slot is optional."""

    graduation_year: Tuple[int, ...] = ()
    location: Optional[str] = None
    branch: Optional[str] = None
    skills: Tuple[str, ...] = ()
    services: Tuple[str, ...] = ()
    name: Optional[str] = None
    organization_name: Optional[str] = None

    def is_empty(self) -> bool:
        return not any((
            self.graduation_year, self.location, self.branch,
            self.skills, self.services, self.name, self.organization_name,
        ))

    def to_dict(self) -> Dict[str, Any]:
        """Only populated slots, lists instead of tuples."""
        result: Dict[str, Any] = {}
        for key, value in asdict(self).items():
            if value in (None, (), []):
                continue
            result[key] = list(value) if isinstance(value, tuple) else value
        return result


@dataclass(frozen=True)
class RegexExtractionResult:
    """Entity extractor output."""

    entities: ExtractedEntities
    confidence: float
    matched_patterns: Tuple[str, ...] = ()
    escalate: bool = True
    escalation_reasons: Tuple[str, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "entities": self.entities.to_dict(),
            "confidence": round(self.confidence, 3),
            "matched_patterns": list(self.matched_patterns),
            "escalate": self.escalate,
            "escalation_reasons": list(self.escalation_reasons),
        }


@dataclass(frozen=True)
class QueryMetadata:
    """Observability data attached to every ParsedQuery."""

    intent_result: IntentResult
    regex_result: RegexExtractionResult
    generation_invoked: bool = False
    generation_succeeded: bool = False
    backend: Optional[str] = None
    escalation_reason: Optional[str] = None
    fallback_reason: Optional[str] = None
    generated_entities: Optional[ExtractedEntities] = None
    timings_ms: Dict[str, float] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "intent_result": self.intent_result.to_dict(),
            "regex_result": self.regex_result.to_dict(),
            "generation_invoked": self.generation_invoked,
            "generation_succeeded": self.generation_succeeded,
            "backend": self.backend,
            "escalation_reason": self.escalation_reason,
            "fallback_reason": self.fallback_reason,
            "generated_entities": self.generated_entities.to_dict() if self.generated_entities else None,
            "timings_ms": {k: round(v, 2) for k, v in self.timings_ms.items()},
        }


@dataclass(frozen=True)
class ParsedQuery:
    """Unified coordinator output consumed by the search service."""

    intent: Intent
    entities: ExtractedEntities
    confidence: float
    extraction_method: ExtractionMethod
    metadata: QueryMetadata

    @property
    def llm_used(self) -> bool:
        return self.metadata.generation_succeeded

    def to_dict(self, include_metadata: bool = True) -> Dict[str, Any]:
        result = {
            "intent": self.intent.value,
            "entities": self.entities.to_dict(),
            "confidence": round(self.confidence, 3),
            "extraction_method": self.extraction_method.value,
        }
        if include_metadata:
            result["metadata"] = self.metadata.to_dict()
        return result
