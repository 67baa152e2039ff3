"""Primary LLM-backed intent classifier with a classify-then-refine prompt."""

import asyncio
import json
import logging
import time
from collections import Counter
from datetime import datetime
from typing import Any, Dict, Optional, Tuple

from opik import track

from app.core.errors import ErrorCode, IntentProcessingError
from app.core.intent_types import (
    INTENT_GROUPS,
    UNKNOWN_INTENT_MAX_CONFIDENCE,
    ClassificationSource,
    IntentCategory,
    PageMode,
)
from app.core.model_provider import CancellationToken, ModelProvider, ModelSettings
from app.models.context_analysis import ContextualAnalysis
from app.models.intent_classification import ClassificationResult
from app.models.orchestration_config import PrimaryClassifierConfig
from app.models.processing import ClassificationMetrics, ModelMetrics
from app.utils.json_extract import extract_first_json_object

logger = logging.getLogger(__name__)

REFINEMENT_CONFIDENCE_CEILING = 0.9
PARSE_FAILURE_CONFIDENCE = 0.1
MAX_PROMPT_ELEMENTS = 10
MAX_PROMPT_PREVIOUS_INTENTS = 3


class IntentClassificationEngine:
    """Classifies utterances against the closed intent taxonomy."""

    def __init__(self, provider: ModelProvider, config: Optional[PrimaryClassifierConfig] = None):
        """Initialize the engine.

        Args:
            provider: Chat-completion capability
            config: Primary classifier model settings
        """
        self.provider = provider
        self.config = config or PrimaryClassifierConfig()
        self._model_stats: Dict[str, Dict[str, Any]] = {}
        self._intent_distribution: Counter = Counter()
        self._totals: Dict[str, float] = {
            "classifications": 0,
            "failures": 0,
            "total_time_ms": 0.0,
            "total_confidence": 0.0,
        }

    @property
    def model_settings(self) -> ModelSettings:
        return ModelSettings(
            model=self.config.model,
            temperature=self.config.temperature,
            max_tokens=self.config.max_tokens,
            timeout_ms=self.config.timeout_ms,
        )

    @track
    async def classify(
        self,
        text: str,
        context: ContextualAnalysis,
        cancellation: Optional[CancellationToken] = None,
    ) -> ClassificationResult:
        """Classify an utterance in context.

        Runs the primary classification and, when its confidence is below 0.9,
        a refinement pass whose output is merged into the primary result.

        Args:
            text: Raw utterance
            context: Analyzed request context
            cancellation: Request cancellation token

        Returns:
            ClassificationResult with source ``primary``

        Raises:
            IntentProcessingError: TIMEOUT or MODEL_ERROR, both retryable
        """
        start = time.perf_counter()
        settings = self.model_settings
        try:
            primary = await self._invoke_and_parse(
                self.build_system_prompt(context),
                self.build_user_prompt(text, context),
                settings,
                ClassificationSource.PRIMARY,
                cancellation,
            )
        except asyncio.CancelledError:
            raise
        except asyncio.TimeoutError as e:
            self._record_failure(start)
            raise IntentProcessingError(
                f"Intent classification timed out after {settings.timeout_ms}ms",
                code=ErrorCode.TIMEOUT,
                details={"model": settings.model},
            ) from e
        except Exception as e:
            self._record_failure(start)
            logger.error("Intent classification failed for %r: %s", text[:100], e)
            raise IntentProcessingError(
                f"Intent classification failed: {e}",
                code=ErrorCode.MODEL_ERROR,
                retryable=True,
                details={"model": settings.model},
            ) from e

        result = primary
        cancelled = cancellation is not None and cancellation.cancelled
        if primary.confidence < REFINEMENT_CONFIDENCE_CEILING and not cancelled:
            result = await self._refine(primary, text, context, settings, cancellation)

        elapsed = (time.perf_counter() - start) * 1000
        result = result.model_copy(update={"processing_time_ms": elapsed})
        self._record_success(result, elapsed)
        logger.info(
            "Classified %r as %s (%.2f) in %.0fms",
            text[:100],
            result.intent.value,
            result.confidence,
            elapsed,
        )
        return result

    async def classify_single(
        self,
        text: str,
        context: ContextualAnalysis,
        settings: ModelSettings,
        source: ClassificationSource = ClassificationSource.SECONDARY,
        cancellation: Optional[CancellationToken] = None,
    ) -> ClassificationResult:
        """One classification call without refinement, used for cross-validation.

        Provider errors propagate unchanged so callers can isolate them.
        """
        start = time.perf_counter()
        try:
            result = await self._invoke_and_parse(
                self.build_system_prompt(context),
                self.build_user_prompt(text, context),
                settings,
                source,
                cancellation,
            )
        except asyncio.CancelledError:
            raise
        except Exception:
            self._record_model(settings.model, (time.perf_counter() - start) * 1000, error=True)
            raise
        return result.model_copy(update={"processing_time_ms": (time.perf_counter() - start) * 1000})

    async def _refine(
        self,
        primary: ClassificationResult,
        text: str,
        context: ContextualAnalysis,
        settings: ModelSettings,
        cancellation: Optional[CancellationToken],
    ) -> ClassificationResult:
        try:
            raw = await self.provider.invoke(
                self.build_refinement_prompt(primary, text),
                f"Refine this classification: {primary.model_dump_json(include={'intent', 'confidence', 'parameters', 'reasoning'})}",
                settings=settings,
                cancellation=cancellation,
            )
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning("Classification refinement failed, using primary result: %s", e)
            return primary

        refined, parsed = self._parse(raw, ClassificationSource.PRIMARY, settings.model)
        if not parsed:
            return primary

        confidence = max(primary.confidence, refined.confidence)
        if primary.intent == IntentCategory.UNKNOWN_INTENT:
            confidence = min(confidence, UNKNOWN_INTENT_MAX_CONFIDENCE)
        return primary.model_copy(
            update={
                "confidence": confidence,
                "parameters": {**primary.parameters, **refined.parameters},
                "reasoning": refined.reasoning or primary.reasoning,
                "sub_intents": primary.sub_intents or refined.sub_intents,
            }
        )

    async def _invoke_and_parse(
        self,
        system_prompt: str,
        user_prompt: str,
        settings: ModelSettings,
        source: ClassificationSource,
        cancellation: Optional[CancellationToken],
    ) -> ClassificationResult:
        start = time.perf_counter()
        raw = await self.provider.invoke(
            system_prompt,
            user_prompt,
            settings=settings,
            cancellation=cancellation,
        )
        self._record_model(settings.model, (time.perf_counter() - start) * 1000, error=False)
        result, _ = self._parse(raw, source, settings.model)
        return result

    def parse_response(
        self, response_text: str, source: ClassificationSource = ClassificationSource.PRIMARY
    ) -> ClassificationResult:
        """Parse model output; malformed output degrades to ``unknown_intent``."""
        result, _ = self._parse(response_text, source, self.config.model)
        return result

    def _parse(
        self, response_text: str, source: ClassificationSource, model: str
    ) -> Tuple[ClassificationResult, bool]:
        payload = extract_first_json_object(response_text)
        if payload is None:
            logger.warning("No JSON object in classification response: %r", (response_text or "")[:200])
            return self._fallback(source, model, "Parse error: no JSON found in response"), False

        raw_intent = payload.get("intent")
        raw_confidence = payload.get("confidence")
        if not raw_intent or isinstance(raw_confidence, bool) or not isinstance(raw_confidence, (int, float)):
            logger.warning("Classification response missing intent or confidence: %s", payload)
            return self._fallback(source, model, "Parse error: missing intent or confidence"), False

        confidence = max(0.0, min(1.0, float(raw_confidence)))
        try:
            intent = IntentCategory.parse(raw_intent)
        except ValueError:
            logger.warning("Intent %r is outside the taxonomy, using unknown_intent", raw_intent)
            intent = IntentCategory.UNKNOWN_INTENT
        if intent == IntentCategory.UNKNOWN_INTENT:
            confidence = min(confidence, UNKNOWN_INTENT_MAX_CONFIDENCE)

        parameters = payload.get("parameters")
        sub_intents = payload.get("subIntents") or payload.get("sub_intents") or []
        return (
            ClassificationResult(
                intent=intent,
                confidence=confidence,
                parameters=parameters if isinstance(parameters, dict) else {},
                reasoning=str(payload.get("reasoning") or ""),
                source=source,
                model_used=model,
                sub_intents=[str(item) for item in sub_intents] if isinstance(sub_intents, list) else [],
            ),
            True,
        )

    @staticmethod
    def _fallback(source: ClassificationSource, model: str, reasoning: str) -> ClassificationResult:
        return ClassificationResult(
            intent=IntentCategory.UNKNOWN_INTENT,
            confidence=PARSE_FAILURE_CONFIDENCE,
            reasoning=reasoning,
            source=source,
            model_used=model,
        )

    def build_system_prompt(self, context: ContextualAnalysis) -> str:
        page = context.page_context
        capabilities = ", ".join(capability.value for capability in page.capabilities) or "none detected"
        taxonomy = "\n".join(
            f"{group}: {', '.join(intent.value for intent in intents)}" for group, intents in INTENT_GROUPS.items()
        )
        return f"""You are an expert voice interface intent classifier for website interactions. Classify the user's voice command into exactly one intent category.

CONTEXT INFORMATION:
- Website Type: {page.content_type.value}
- Page Type: {page.page_type.value}
- Current Mode: {page.current_mode.value}
- Available Capabilities: {capabilities}
- User Role: {context.user_context.role.value}
- Previous Intents: {self._format_previous_intents(context)}

INTENT CATEGORIES:
{taxonomy}

CLASSIFICATION RULES:
1. Consider the current page context and available capabilities
2. Prefer intents that make sense for this kind of website
3. Extract specific parameters when present (element names, values, quantities)
4. Confidence reflects both the clarity of the command and its fit with the context
5. Consider the user's role and permissions
6. Use unknown_intent with low confidence when the command is not understandable

RESPONSE FORMAT:
Return ONLY a JSON object with this structure:
{{
  "intent": "intent_category",
  "confidence": 0.85,
  "subIntents": [],
  "parameters": {{"target": "element_name", "value": "specific_value"}},
  "reasoning": "Brief explanation of the choice and confidence"
}}

Use 0.6-0.7 for ambiguous commands, 0.8-0.9 for clear context-appropriate commands, and above 0.9 only for unambiguous matches."""

    def build_user_prompt(self, text: str, context: ContextualAnalysis) -> str:
        elements = []
        for element in context.page_context.available_elements:
            if not element.is_interactable:
                continue
            label = element.tag_name
            if element.id:
                label += f"#{element.id}"
            if element.class_name and element.class_name.split():
                label += f".{element.class_name.split()[0]}"
            elements.append(f'{label}: "{(element.text_content or "N/A")[:50]}"')
            if len(elements) >= MAX_PROMPT_ELEMENTS:
                break

        return f"""USER COMMAND: "{text}"

CURRENT PAGE ELEMENTS: {", ".join(elements) or "None detected"}

RECENT CONTEXT: {self._format_recent_context(context)}

Classify this voice command considering the words used, the page elements, the user's previous actions and whether the action is possible on this page. Respond with the JSON object only."""

    @staticmethod
    def build_refinement_prompt(primary: ClassificationResult, text: str) -> str:
        initial = json.dumps(
            {
                "intent": primary.intent.value,
                "confidence": primary.confidence,
                "parameters": primary.parameters,
                "reasoning": primary.reasoning,
            }
        )
        return f"""You are refining an intent classification to tighten its confidence and parameters.

ORIGINAL COMMAND: "{text}"
INITIAL CLASSIFICATION: {initial}

REFINEMENT TASKS:
1. Validate the intent against the page capabilities
2. Extract more specific parameters where possible
3. Adjust confidence for command specificity, target availability, context fit and user permissions
4. Give a more detailed reasoning

Return the refined classification as a JSON object with the same structure."""

    @staticmethod
    def _format_previous_intents(context: ContextualAnalysis) -> str:
        previous = context.session_context.previous_intents[-MAX_PROMPT_PREVIOUS_INTENTS:]
        if not previous:
            return "None"
        return " -> ".join(f"{entry.intent.value}({entry.confidence:.2f})" for entry in previous)

    @staticmethod
    def _format_recent_context(context: ContextualAnalysis) -> str:
        session = context.session_context
        parts = []
        if session.current_task is not None:
            parts.append(f"Task: {session.current_task.task_type} ({session.current_task.progress}%)")
        if session.conversation_state.current_topic:
            parts.append(f"Topic: {session.conversation_state.current_topic}")
        if context.page_context.current_mode != PageMode.VIEW:
            parts.append(f"Mode: {context.page_context.current_mode.value}")
        return ", ".join(parts) or "No specific context"

    # ------------------------------------------------------------------
    # Metrics and administration
    # ------------------------------------------------------------------

    def _record_model(self, model: str, latency_ms: float, error: bool) -> None:
        stats = self._model_stats.setdefault(model, {"requests": 0, "errors": 0, "total_latency_ms": 0.0})
        stats["requests"] += 1
        stats["total_latency_ms"] += latency_ms
        stats["last_used"] = datetime.utcnow()
        if error:
            stats["errors"] += 1

    def _record_success(self, result: ClassificationResult, elapsed_ms: float) -> None:
        self._totals["classifications"] += 1
        self._totals["total_time_ms"] += elapsed_ms
        self._totals["total_confidence"] += result.confidence
        self._intent_distribution[result.intent.value] += 1

    def _record_failure(self, start: float) -> None:
        self._totals["classifications"] += 1
        self._totals["failures"] += 1
        self._totals["total_time_ms"] += (time.perf_counter() - start) * 1000
        self._record_model(self.config.model, (time.perf_counter() - start) * 1000, error=True)

    def get_metrics(self) -> ClassificationMetrics:
        total = int(self._totals["classifications"])
        succeeded = total - int(self._totals["failures"])
        model_performance = {
            name: ModelMetrics(
                name=name,
                total_requests=stats["requests"],
                average_latency_ms=stats["total_latency_ms"] / stats["requests"] if stats["requests"] else 0.0,
                error_rate=stats["errors"] / stats["requests"] if stats["requests"] else 0.0,
                last_used=stats.get("last_used"),
            )
            for name, stats in self._model_stats.items()
        }
        return ClassificationMetrics(
            total_classifications=total,
            average_processing_time_ms=self._totals["total_time_ms"] / total if total else 0.0,
            average_confidence=self._totals["total_confidence"] / succeeded if succeeded else 0.0,
            success_rate=succeeded / total if total else 0.0,
            model_performance=model_performance,
            intent_distribution=dict(self._intent_distribution),
            error_rates={name: metrics.error_rate for name, metrics in model_performance.items()},
        )

    def update_config(self, **changes: Any) -> None:
        """Apply partial model settings (model, temperature, max_tokens, timeout_ms)."""
        self.config = self.config.model_copy(update=changes)
        logger.info("Classification config updated: %s", sorted(changes))

    async def health_check(self) -> Dict[str, Any]:
        """Probe the primary model with a trivial prompt."""
        start = time.perf_counter()
        try:
            await self.provider.invoke(
                'You are a test classifier. Return {"intent": "help_request", "confidence": 1.0}',
                "test command",
                settings=self.model_settings,
            )
        except asyncio.CancelledError:
            raise
        except Exception as e:
            return {"healthy": False, "model": self.config.model, "error": str(e)}
        return {"healthy": True, "model": self.config.model, "latency_ms": (time.perf_counter() - start) * 1000}


__all__ = ["IntentClassificationEngine"]
