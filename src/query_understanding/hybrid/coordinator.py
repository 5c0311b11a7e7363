"""
Hybrid query understanding.

Runs the regex classifier and extractor, decides whether the query is hard
enough for the generation backend, and merges both answers into one
ParsedQuery.

    regex only  -> cheap, deterministic, used for most queries
    + generated -> fillers, multi-clause queries, low confidence, unnamed people

Usage:
    from query_understanding.hybrid import extract_entities

    parsed = extract_entities("ECE people from 2005 batch")
    parsed.intent, parsed.entities.graduation_year
"""

import re
import threading
import time
import uuid
from concurrent.futures import Executor, ThreadPoolExecutor
from typing import Any, Callable, Dict, List, Optional, Tuple

from query_understanding.classifier import DEFAULT_INTENT, IntentClassifier
from query_understanding.exceptions import (
    AllBackendsFailedError,
    ConfigurationError,
    QueryUnderstandingError,
    ResponseParseError,
)
from query_understanding.extractors import EntityExtractor
from query_understanding.feature_flags import flags
from query_understanding.llm import create_gateway
from query_understanding.llm.types import GenerateRequest
from query_understanding.logger import logger
from query_understanding.models import (
    ExtractedEntities,
    ExtractionMethod,
    Intent,
    IntentResult,
    ParsedQuery,
    QueryMetadata,
    RegexExtractionResult,
    clamp_confidence,
)
from query_understanding.settings import settings as default_settings
from .merge import blend_confidence, merge_entities, parse_generated
from .prompts import build_messages


NEGATION_MARKERS = (" but ", " except ", " excluding ", " without ", " not ")
_SENTENCE_SPLIT_RE = re.compile(r"[.!?]+(?:\s+|$)")


def _elapsed_ms(start: float) -> float:
    return (time.perf_counter() - start) * 1000


class HybridCoordinator:
    """
    Classifier + extractor + optional generation backend.

    Args:
        gateway: GenerationGateway (or anything with .generate); None disables escalation
        classifier: IntentClassifier instance
        extractor: EntityExtractor instance
        executor: run classifier and extractor concurrently on this executor
        understanding: thresholds and weights (settings.understanding by default)
    """

    def __init__(
        self,
        gateway=None,
        classifier: Optional[IntentClassifier] = None,
        extractor: Optional[EntityExtractor] = None,
        executor: Optional[Executor] = None,
        understanding: Optional[Dict[str, Any]] = None,
    ):
        config = dict(default_settings.get("understanding", {}))
        config.update(understanding or {})

        self.gateway = gateway
        self.classifier = classifier or IntentClassifier()
        self.extractor = extractor or EntityExtractor(
            escalation_threshold=float(config.get("extractor_escalation_threshold", 0.5))
        )
        self.executor = executor
        self._own_executor: Optional[ThreadPoolExecutor] = None

        self.intent_threshold = float(config.get("intent_confidence_threshold", 0.5))
        self.regex_weight = float(config.get("regex_weight", 0.4))
        self.generated_weight = float(config.get("generated_weight", 0.6))
        self.generated_default_confidence = float(config.get("generated_default_confidence", 0.7))
        self.complex_query_max_words = int(config.get("complex_query_max_words", 20))
        self.temperature = float(config.get("generation_temperature", 0.1))
        self.max_tokens = int(config.get("generation_max_tokens", 512))

    # =========================================================================
    # Escalation
    # =========================================================================

    def complexity_reasons(self, query: str) -> List[str]:
        reasons = []
        padded = f" {query.lower()} "
        markers = [m.strip() for m in NEGATION_MARKERS if m in padded]
        if markers:
            reasons.append(f"negation/exception ({', '.join(markers)})")
        words = len(query.split())
        if words > self.complex_query_max_words:
            reasons.append(f"long query ({words} words)")
        sentences = [s for s in _SENTENCE_SPLIT_RE.split(query) if s.strip()]
        if len(sentences) > 1:
            reasons.append(f"multiple sentences ({len(sentences)})")
        return reasons

    def escalation_reasons(self, query: str, intent_result: IntentResult,
                           regex_result: RegexExtractionResult) -> List[str]:
        reasons = []
        if regex_result.escalate:
            reasons.append("regex: " + ", ".join(regex_result.escalation_reasons))
        if intent_result.confidence < self.intent_threshold:
            reasons.append(f"low intent confidence ({intent_result.confidence:.2f})")
        reasons.extend(self.complexity_reasons(query))
        if intent_result.primary == Intent.FIND_SPECIFIC_PERSON and not regex_result.entities.name:
            reasons.append("person query without a name")
        return reasons

    def should_escalate(self, query: str, intent_result: IntentResult,
                        regex_result: RegexExtractionResult) -> bool:
        return bool(self.escalation_reasons(query, intent_result, regex_result))

    # =========================================================================
    # Steps
    # =========================================================================

    def _timed(self, func: Callable[[str], Any], query: str) -> Tuple[Any, float]:
        start = time.perf_counter()
        result = func(query)
        return result, _elapsed_ms(start)

    def _get_executor(self) -> Optional[Executor]:
        if self.executor is not None:
            return self.executor
        if not flags.parallel_understanding:
            return None
        if self._own_executor is None:
            self._own_executor = ThreadPoolExecutor(max_workers=2, thread_name_prefix="understanding")
        return self._own_executor

    def analyze(self, query: str) -> Tuple[IntentResult, RegexExtractionResult, Dict[str, float]]:
        """Classifier and extractor, concurrently when an executor is available."""
        executor = self._get_executor()
        if executor is not None:
            intent_future = executor.submit(self._timed, self.classifier.classify, query)
            regex_future = executor.submit(self._timed, self.extractor.extract, query)
            intent_result, classify_ms = intent_future.result()
            regex_result, extract_ms = regex_future.result()
        else:
            intent_result, classify_ms = self._timed(self.classifier.classify, query)
            regex_result, extract_ms = self._timed(self.extractor.extract, query)
        return intent_result, regex_result, {"classify": classify_ms, "extract": extract_ms}

    def generate(self, query: str, intent: Intent, context: Optional[str] = None):
        """
        Ask the generation backend.

        Returns:
            (GeneratedQuery, backend name)

        Raises:
            AllBackendsFailedError: gateway exhausted
            ResponseParseError: reply is not the expected JSON
        """
        request = GenerateRequest(
            messages=build_messages(query, intent, context),
            temperature=self.temperature,
            max_tokens=self.max_tokens,
        )
        response = self.gateway.generate(request)
        return parse_generated(response.text), response.backend

    # =========================================================================
    # Public API
    # =========================================================================

    def extract_entities(self, query: Any, context: Optional[str] = None) -> ParsedQuery:
        """Understand one query. Never raises."""
        start = time.perf_counter()
        logger.set_request(uuid.uuid4().hex[:8])
        try:
            parsed = self._understand(query if isinstance(query, str) else "", context, start)
        except Exception as e:
            logger.exception("Query understanding failed", error=str(e))
            parsed = self._minimal_result(start, f"internal error: {type(e).__name__}")

        logger.metric(
            "query_understood",
            round(parsed.metadata.timings_ms.get("total", 0.0), 2),
            intent=parsed.intent.value,
            method=parsed.extraction_method.value,
            confidence=round(parsed.confidence, 3),
            generation_invoked=parsed.metadata.generation_invoked,
            backend=parsed.metadata.backend,
        )
        logger.clear_request()
        return parsed

    def _understand(self, query: str, context: Optional[str], start: float) -> ParsedQuery:
        query = query.strip()
        intent_result, regex_result, timings = self.analyze(query)

        reasons = self.escalation_reasons(query, intent_result, regex_result) if query else []
        if not query:
            reasons = ["empty query"]

        if not reasons:
            timings["total"] = _elapsed_ms(start)
            return ParsedQuery(
                intent=intent_result.primary,
                entities=regex_result.entities,
                confidence=regex_result.confidence,
                extraction_method=ExtractionMethod.REGEX,
                metadata=QueryMetadata(
                    intent_result=intent_result,
                    regex_result=regex_result,
                    timings_ms=timings,
                ),
            )

        escalation_reason = "; ".join(reasons)
        logger.info("Escalating to generation", reason=escalation_reason)

        fallback_reason = None
        if not query:
            fallback_reason = "empty query"
        elif not flags.llm_escalation:
            fallback_reason = "generation disabled"
        elif self.gateway is None:
            fallback_reason = "no generation backend"

        if fallback_reason:
            return self._regex_only(intent_result, regex_result, timings, start,
                                    escalation_reason, fallback_reason, invoked=False)

        generate_start = time.perf_counter()
        try:
            generated, backend = self.generate(query, intent_result.primary, context)
        except AllBackendsFailedError as e:
            timings["generate"] = _elapsed_ms(generate_start)
            logger.warning("Generation unavailable, using regex result", error=str(e))
            return self._regex_only(intent_result, regex_result, timings, start,
                                    escalation_reason, "all backends failed", invoked=True)
        except ResponseParseError as e:
            timings["generate"] = _elapsed_ms(generate_start)
            logger.warning("Generated reply unusable, using regex result", error=str(e))
            return self._regex_only(intent_result, regex_result, timings, start,
                                    escalation_reason, f"unparseable reply: {e}", invoked=True)
        except QueryUnderstandingError as e:
            timings["generate"] = _elapsed_ms(generate_start)
            logger.warning("Generation failed, using regex result", error=str(e))
            return self._regex_only(intent_result, regex_result, timings, start,
                                    escalation_reason, f"generation error: {e}", invoked=True)
        timings["generate"] = _elapsed_ms(generate_start)

        generated_entities = generated.entities.to_entities()
        if generated_entities.is_empty() and generated.parsed_intent is None:
            logger.warning("Generated reply has no intent or entities, using regex result", backend=backend)
            return self._regex_only(intent_result, regex_result, timings, start,
                                    escalation_reason, "empty reply", invoked=True)

        entities = merge_entities(regex_result.entities, generated_entities)
        intent = generated.parsed_intent or intent_result.primary

        generated_confidence = generated.confidence
        if generated_confidence is None:
            generated_confidence = self.generated_default_confidence
        confidence = clamp_confidence(blend_confidence(
            regex_result.confidence, generated_confidence,
            self.regex_weight, self.generated_weight,
        ))

        method = ExtractionMethod.HYBRID if regex_result.matched_patterns else ExtractionMethod.GENERATED
        timings["total"] = _elapsed_ms(start)

        return ParsedQuery(
            intent=intent,
            entities=entities,
            confidence=confidence,
            extraction_method=method,
            metadata=QueryMetadata(
                intent_result=intent_result,
                regex_result=regex_result,
                generation_invoked=True,
                generation_succeeded=True,
                backend=backend,
                escalation_reason=escalation_reason,
                generated_entities=generated_entities,
                timings_ms=timings,
            ),
        )

    def _regex_only(self, intent_result: IntentResult, regex_result: RegexExtractionResult,
                    timings: Dict[str, float], start: float, escalation_reason: Optional[str],
                    fallback_reason: str, invoked: bool) -> ParsedQuery:
        timings["total"] = _elapsed_ms(start)
        return ParsedQuery(
            intent=intent_result.primary,
            entities=regex_result.entities,
            confidence=regex_result.confidence,
            extraction_method=ExtractionMethod.REGEX,
            metadata=QueryMetadata(
                intent_result=intent_result,
                regex_result=regex_result,
                generation_invoked=invoked,
                escalation_reason=escalation_reason,
                fallback_reason=fallback_reason,
                timings_ms=timings,
            ),
        )

    def _minimal_result(self, start: float, reason: str) -> ParsedQuery:
        return ParsedQuery(
            intent=DEFAULT_INTENT,
            entities=ExtractedEntities(),
            confidence=0.0,
            extraction_method=ExtractionMethod.REGEX,
            metadata=QueryMetadata(
                intent_result=IntentResult(primary=DEFAULT_INTENT, confidence=0.0),
                regex_result=RegexExtractionResult(
                    entities=ExtractedEntities(), confidence=0.0, escalate=True,
                    escalation_reasons=(reason,),
                ),
                fallback_reason=reason,
                timings_ms={"total": _elapsed_ms(start)},
            ),
        )

    def close(self) -> None:
        if self._own_executor is not None:
            self._own_executor.shutdown(wait=False)
            self._own_executor = None


# =============================================================================
# Module-level entry point
# =============================================================================

_default_coordinator: Optional[HybridCoordinator] = None
_default_lock = threading.Lock()


def get_default_coordinator() -> HybridCoordinator:
    """Coordinator with the gateway from settings; regex-only if no backend is usable."""
    global _default_coordinator
    with _default_lock:
        if _default_coordinator is None:
            try:
                gateway = create_gateway()
            except ConfigurationError as e:
                logger.warning("Generation gateway unavailable, regex only", error=str(e))
                gateway = None
            _default_coordinator = HybridCoordinator(gateway=gateway)
        return _default_coordinator


def reset_default_coordinator() -> None:
    global _default_coordinator
    with _default_lock:
        if _default_coordinator is not None:
            _default_coordinator.close()
        _default_coordinator = None


def extract_entities(query: Any, context: Optional[str] = None) -> ParsedQuery:
    """Understand a query with the default coordinator."""
    return get_default_coordinator().extract_entities(query, context)


def log_extraction_performance(parsed: ParsedQuery) -> None:
    """Emit a performance metric for one understood query."""
    logger.metric(
        "extraction_performance",
        round(parsed.metadata.timings_ms.get("total", 0.0), 2),
        method=parsed.extraction_method.value,
        confidence=round(parsed.confidence, 3),
        llm_used=parsed.llm_used,
        backend=parsed.metadata.backend,
    )
