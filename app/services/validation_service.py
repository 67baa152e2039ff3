"""Cross-validation of the primary classification with secondary models."""

import asyncio
import logging
import time
from collections import Counter
from typing import Any, Dict, List, Optional, Tuple

from app.core.intent_types import (
    UNKNOWN_INTENT_MAX_CONFIDENCE,
    ClassificationSource,
    ConflictType,
    EnsembleStrategy,
    IntentCategory,
    ResolutionStrategy,
)
from app.core.model_provider import CancellationToken, ModelSettings
from app.models.context_analysis import ContextualAnalysis
from app.models.intent_classification import ClassificationResult
from app.models.orchestration_config import EnsembleConfig, SecondaryValidationConfig
from app.models.validation import (
    EnsembleDecision,
    IntentConflict,
    IntentResolution,
    ValidationResult,
)
from app.services.classification_engine import IntentClassificationEngine

logger = logging.getLogger(__name__)

AMBIGUITY_AGREEMENT_THRESHOLD = 0.7
CONTRADICTION_CONFIDENCE = 0.8
FAILED_MODEL_CONFIDENCE = 0.1
MIN_MODEL_WEIGHT = 0.1
MAX_MODEL_WEIGHT = 2.0
VALID_RESOLUTION_CONFIDENCE = 0.5

# Unordered pairs; each pair yields at most one conflict.
CONTRADICTORY_PAIRS: List[Tuple[IntentCategory, IntentCategory]] = [
    (IntentCategory.ADD_TO_CART, IntentCategory.REMOVE_FROM_CART),
    (IntentCategory.EDIT_TEXT, IntentCategory.DELETE_CONTENT),
    (IntentCategory.DELETE_CONTENT, IntentCategory.ADD_CONTENT),
    (IntentCategory.UNDO_ACTION, IntentCategory.REDO_ACTION),
    (IntentCategory.CONFIRM_ACTION, IntentCategory.DENY_ACTION),
    (IntentCategory.CONFIRM_ACTION, IntentCategory.CANCEL_OPERATION),
]

INTENT_DESCRIPTIONS: Dict[IntentCategory, str] = {
    IntentCategory.NAVIGATE_TO_PAGE: "navigate to a page",
    IntentCategory.CLICK_ELEMENT: "click on something",
    IntentCategory.EDIT_TEXT: "edit text",
    IntentCategory.ADD_TO_CART: "add to cart",
    IntentCategory.REMOVE_FROM_CART: "remove from cart",
    IntentCategory.SEARCH_CONTENT: "search for content",
    IntentCategory.SUBMIT_FORM: "submit a form",
    IntentCategory.HELP_REQUEST: "get help",
}


def describe_intent(intent: IntentCategory) -> str:
    """Human readable phrase for an intent, used in clarification questions."""
    return INTENT_DESCRIPTIONS.get(intent, intent.value.replace("_", " "))


def find_contradictory_pairs(intents: List[IntentCategory]) -> List[Tuple[IntentCategory, IntentCategory]]:
    present = set(intents)
    return [(first, second) for first, second in CONTRADICTORY_PAIRS if first in present and second in present]


class IntentValidationService:
    """Runs secondary classifiers, detects conflicts and builds an ensemble decision."""

    def __init__(
        self,
        engine: IntentClassificationEngine,
        config: Optional[SecondaryValidationConfig] = None,
        ensemble: Optional[EnsembleConfig] = None,
    ):
        """Initialize the validation service.

        Args:
            engine: Classification engine used for single secondary calls
            config: Secondary validation settings
            ensemble: Ensemble strategy settings
        """
        self.engine = engine
        self.config = config or SecondaryValidationConfig()
        self.ensemble_config = ensemble or EnsembleConfig()
        self._model_weights: Dict[str, float] = {name: 1.0 for name in self.config.validation_models}
        self._metrics: Dict[str, Any] = {
            "total_validations": 0,
            "total_time_ms": 0.0,
            "with_conflicts": 0,
            "resolved": 0,
            "failures": 0,
        }
        self._conflict_counts: Counter = Counter()
        self._strategy_usage: Counter = Counter()

    async def validate(
        self,
        primary: ClassificationResult,
        text: str,
        context: ContextualAnalysis,
        cancellation: Optional[CancellationToken] = None,
    ) -> ValidationResult:
        """Validate a primary classification.

        Never raises for model or resolution failures: a timeout or unexpected
        error yields a valid result with reduced confidence so the request can
        still complete.

        Args:
            primary: Primary classification result
            text: Raw utterance
            context: Analyzed request context
            cancellation: Request cancellation token

        Returns:
            ValidationResult
        """
        if not self.config.enabled:
            return ValidationResult(is_valid=True, confidence=primary.confidence, skipped=True)

        start = time.perf_counter()
        try:
            result = await asyncio.wait_for(
                self._validate(primary, text, context, cancellation),
                timeout=self.config.timeout_ms / 1000,
            )
        except asyncio.CancelledError:
            raise
        except asyncio.TimeoutError:
            logger.warning("Validation timed out after %sms, keeping primary result", self.config.timeout_ms)
            return self._degraded(primary, "Validation timed out", start)
        except Exception as e:
            logger.exception("Validation failed, keeping primary result")
            return self._degraded(primary, f"Validation failed: {e}", start)

        elapsed = (time.perf_counter() - start) * 1000
        result = result.model_copy(update={"validation_time_ms": elapsed})
        self._record(result, elapsed)
        logger.info(
            "Validation of %s finished: valid=%s conflicts=%d confidence=%.2f in %.0fms",
            primary.intent.value,
            result.is_valid,
            len(result.conflicts),
            result.confidence,
            elapsed,
        )
        return result

    async def _validate(
        self,
        primary: ClassificationResult,
        text: str,
        context: ContextualAnalysis,
        cancellation: Optional[CancellationToken],
    ) -> ValidationResult:
        secondaries = await self.cross_validate(text, context, cancellation)
        results = [primary] + secondaries
        conflicts = self.detect_conflicts(primary, results, context)
        decision = self.make_ensemble_decision(results, context)
        resolution, conflicts = self.resolve_conflicts(conflicts, decision, context)

        if resolution is not None:
            confidence = resolution.confidence
            is_valid = resolution.confidence >= VALID_RESOLUTION_CONFIDENCE
        else:
            confidence = decision.confidence
            is_valid = True
        return ValidationResult(
            is_valid=is_valid,
            confidence=confidence,
            conflicts=conflicts,
            resolution=resolution,
            fallback_intent=None if is_valid else IntentCategory.HELP_REQUEST,
            ensemble=decision,
        )

    async def cross_validate(
        self,
        text: str,
        context: ContextualAnalysis,
        cancellation: Optional[CancellationToken] = None,
    ) -> List[ClassificationResult]:
        """Classify with every secondary model concurrently.

        A failing model contributes a low-confidence ``unknown_intent`` result
        instead of cancelling its siblings.
        """
        models = list(self.config.validation_models)
        if not models:
            return []

        outcomes = await asyncio.gather(
            *(self._classify_with(model, text, context, cancellation) for model in models),
            return_exceptions=True,
        )
        results: List[ClassificationResult] = []
        for model, outcome in zip(models, outcomes):
            if isinstance(outcome, asyncio.CancelledError):
                raise outcome
            if isinstance(outcome, BaseException):
                logger.warning("Secondary model %s failed: %s", model, outcome or type(outcome).__name__)
                results.append(
                    ClassificationResult(
                        intent=IntentCategory.UNKNOWN_INTENT,
                        confidence=FAILED_MODEL_CONFIDENCE,
                        reasoning=f"Model {model} validation failed: {outcome or type(outcome).__name__}",
                        source=ClassificationSource.SECONDARY,
                        model_used=model,
                    )
                )
            else:
                results.append(outcome)
        return results

    async def _classify_with(
        self,
        model: str,
        text: str,
        context: ContextualAnalysis,
        cancellation: Optional[CancellationToken],
    ) -> ClassificationResult:
        primary = self.engine.config
        settings = ModelSettings(
            model=model,
            temperature=primary.temperature,
            max_tokens=primary.max_tokens,
            timeout_ms=self.config.model_timeout_ms,
        )
        return await asyncio.wait_for(
            self.engine.classify_single(
                text,
                context,
                settings,
                source=ClassificationSource.SECONDARY,
                cancellation=cancellation,
            ),
            timeout=self.config.model_timeout_ms / 1000,
        )

    # ------------------------------------------------------------------
    # Conflict detection
    # ------------------------------------------------------------------

    def detect_conflicts(
        self,
        primary: ClassificationResult,
        results: List[ClassificationResult],
        context: ContextualAnalysis,
    ) -> List[IntentConflict]:
        """Detect ambiguous, contradictory and low-confidence outcomes across ``results``."""
        conflicts: List[IntentConflict] = []
        counts = Counter(result.intent for result in results)
        unique_intents = list(counts)

        if len(unique_intents) > 1:
            dominant, dominant_count = counts.most_common(1)[0]
            agreement = dominant_count / len(results)
            if agreement < AMBIGUITY_AGREEMENT_THRESHOLD:
                conflicts.append(
                    IntentConflict(
                        conflict_type=ConflictType.AMBIGUOUS,
                        conflicting_intents=unique_intents,
                        confidence=1 - agreement,
                        description="Multiple intents detected with low agreement: "
                        + ", ".join(intent.value for intent in unique_intents),
                        suggested_resolution=IntentResolution(
                            strategy=ResolutionStrategy.CLARIFICATION,
                            selected_intent=dominant,
                            confidence=agreement,
                            clarification_question=self.clarification_question(unique_intents),
                        ),
                    )
                )

        for first, second in find_contradictory_pairs(unique_intents):
            conflicts.append(
                IntentConflict(
                    conflict_type=ConflictType.CONTRADICTORY,
                    conflicting_intents=[first, second],
                    confidence=CONTRADICTION_CONFIDENCE,
                    description=f"Contradictory intents detected: {first.value} vs {second.value}",
                    suggested_resolution=IntentResolution(
                        strategy=ResolutionStrategy.CONTEXT_BOOST,
                        selected_intent=self.select_intent_by_context(first, second, context),
                        confidence=0.6,
                        context_factors=self.context_factors(context),
                    ),
                )
            )

        average = sum(result.confidence for result in results) / len(results)
        if average < self.config.threshold:
            conflicts.append(
                IntentConflict(
                    conflict_type=ConflictType.INSUFFICIENT_CONTEXT,
                    conflicting_intents=[primary.intent],
                    confidence=1 - average,
                    description=f"Low confidence across all models: {average:.2f}",
                    suggested_resolution=IntentResolution(
                        strategy=ResolutionStrategy.USER_CONFIRMATION,
                        selected_intent=primary.intent,
                        confidence=average,
                        clarification_question=(
                            "I'm not completely sure about your intent. "
                            f"Did you want to {describe_intent(primary.intent)}?"
                        ),
                    ),
                )
            )
        return conflicts

    @staticmethod
    def select_intent_by_context(
        first: IntentCategory, second: IntentCategory, context: ContextualAnalysis
    ) -> IntentCategory:
        """Pick the contextually favoured intent of a contradictory pair."""
        first_constrained = first in context.constrained_intents
        second_constrained = second in context.constrained_intents
        if first_constrained and not second_constrained:
            return second
        if second_constrained and not first_constrained:
            return first
        first_boost = context.contextual_boosts.get(first, 0.0)
        second_boost = context.contextual_boosts.get(second, 0.0)
        return first if first_boost > second_boost else second

    @staticmethod
    def clarification_question(intents: List[IntentCategory]) -> str:
        if len(intents) == 2:
            return (
                f"I'm not sure if you want to {describe_intent(intents[0])} or "
                f"{describe_intent(intents[1])}. Which one did you mean?"
            )
        if len(intents) > 2:
            options = ", ".join(describe_intent(intent) for intent in intents)
            return f"I detected multiple possible actions: {options}. Which one would you like to do?"
        return "I'm not completely sure about your request. Could you please clarify what you'd like to do?"

    @staticmethod
    def context_factors(context: ContextualAnalysis) -> List[str]:
        page = context.page_context
        factors = [
            f"Page type: {page.page_type.value}",
            f"Content type: {page.content_type.value}",
            f"Mode: {page.current_mode.value}",
        ]
        if page.capabilities:
            factors.append("Capabilities: " + ", ".join(c.value for c in page.capabilities[:3]))
        if context.session_context.previous_intents:
            factors.append(f"Previous action: {context.session_context.previous_intents[-1].intent.value}")
        return factors

    # ------------------------------------------------------------------
    # Ensemble decision
    # ------------------------------------------------------------------

    def make_ensemble_decision(
        self, results: List[ClassificationResult], context: ContextualAnalysis
    ) -> EnsembleDecision:
        """Combine every result with the configured strategy."""
        start = time.perf_counter()
        strategy = self.ensemble_config.strategy
        if strategy == EnsembleStrategy.MAJORITY_VOTE:
            intent, confidence = self.majority_vote(results)
        elif strategy == EnsembleStrategy.WEIGHTED_AVERAGE:
            intent, confidence = self.weighted_average(results)
        elif strategy == EnsembleStrategy.CONFIDENCE_THRESHOLD:
            intent, confidence = self.confidence_threshold(results)
        else:
            intent, confidence = self.contextual_boost(results, context)

        if intent == IntentCategory.UNKNOWN_INTENT:
            confidence = min(confidence, UNKNOWN_INTENT_MAX_CONFIDENCE)
        agreements = sum(1 for result in results if result.intent == intent)
        return EnsembleDecision(
            final_intent=intent,
            confidence=max(0.0, min(1.0, confidence)),
            contributing_models=[result.model_used or "unknown" for result in results],
            weights={result.model_used or "unknown": self.model_weight(result.model_used) for result in results},
            agreements=agreements,
            disagreements=len(results) - agreements,
            strategy=strategy,
            decision_time_ms=(time.perf_counter() - start) * 1000,
        )

    @staticmethod
    def majority_vote(results: List[ClassificationResult]) -> Tuple[IntentCategory, float]:
        """Most frequent intent; ties go to the intent seen first."""
        voters: Dict[IntentCategory, List[float]] = {}
        for result in results:
            voters.setdefault(result.intent, []).append(result.confidence)
        winner = max(voters, key=lambda intent: len(voters[intent]))
        return winner, sum(voters[winner]) / len(voters[winner])

    def weighted_average(self, results: List[ClassificationResult]) -> Tuple[IntentCategory, float]:
        scores: Dict[IntentCategory, float] = {}
        for result in results:
            scores[result.intent] = scores.get(result.intent, 0.0) + result.confidence * self.model_weight(
                result.model_used
            )
        winner = max(scores, key=lambda intent: scores[intent])
        return winner, min(1.0, scores[winner] / len(results))

    def confidence_threshold(self, results: List[ClassificationResult]) -> Tuple[IntentCategory, float]:
        for result in results:
            if result.confidence >= self.config.threshold:
                return result.intent, result.confidence
        best = max(results, key=lambda result: result.confidence)
        return best.intent, best.confidence

    @staticmethod
    def contextual_boost(
        results: List[ClassificationResult], context: ContextualAnalysis
    ) -> Tuple[IntentCategory, float]:
        best_intent = results[0].intent
        best_score = -1.0
        for result in results:
            if result.intent in context.constrained_intents:
                score = result.confidence * 0.5
            else:
                score = result.confidence + context.contextual_boosts.get(result.intent, 0.0)
            if score > best_score:
                best_intent, best_score = result.intent, score
        return best_intent, min(1.0, best_score)

    def model_weight(self, model: Optional[str]) -> float:
        return self._model_weights.get(model or "unknown", 1.0)

    def update_model_weight(self, model: str, weight: float) -> None:
        """Set a model's ensemble weight, clamped to [0.1, 2.0]."""
        self._model_weights[model] = max(MIN_MODEL_WEIGHT, min(MAX_MODEL_WEIGHT, weight))
        logger.debug("Model weight for %s set to %.2f", model, self._model_weights[model])

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    def resolve_conflicts(
        self,
        conflicts: List[IntentConflict],
        decision: EnsembleDecision,
        context: ContextualAnalysis,
    ) -> Tuple[Optional[IntentResolution], List[IntentConflict]]:
        """Resolve the highest-confidence conflict only.

        Returns:
            The resolution (None without conflicts) and the conflict list with
            the resolved conflict flagged
        """
        if not conflicts:
            return None, conflicts

        critical_index = max(range(len(conflicts)), key=lambda i: conflicts[i].confidence)
        critical = conflicts[critical_index]
        strategy = critical.suggested_resolution.strategy if critical.suggested_resolution else None
        try:
            if strategy == ResolutionStrategy.CLARIFICATION:
                resolution = IntentResolution(
                    strategy=ResolutionStrategy.CLARIFICATION,
                    selected_intent=decision.final_intent,
                    confidence=max(0.4, decision.confidence - 0.2),
                    clarification_question=critical.suggested_resolution.clarification_question
                    or self.clarification_question(critical.conflicting_intents),
                    context_factors=self.context_factors(context),
                )
            elif strategy == ResolutionStrategy.CONTEXT_BOOST:
                selected = critical.suggested_resolution.selected_intent
                if selected == decision.final_intent:
                    confidence = min(0.9, decision.confidence + 0.2)
                else:
                    confidence = critical.suggested_resolution.confidence
                resolution = IntentResolution(
                    strategy=ResolutionStrategy.CONTEXT_BOOST,
                    selected_intent=selected,
                    confidence=confidence,
                    context_factors=self.context_factors(context),
                )
            elif strategy == ResolutionStrategy.USER_CONFIRMATION:
                resolution = IntentResolution(
                    strategy=ResolutionStrategy.USER_CONFIRMATION,
                    selected_intent=decision.final_intent,
                    confidence=max(0.4, decision.confidence),
                    clarification_question=f"Just to confirm, you want to {describe_intent(decision.final_intent)}?",
                )
            elif strategy == ResolutionStrategy.FALLBACK:
                resolution = self.fallback_resolution()
            else:
                resolution = IntentResolution(
                    strategy=ResolutionStrategy.ENSEMBLE_VOTE,
                    selected_intent=decision.final_intent,
                    confidence=decision.confidence,
                )
        except Exception:
            logger.exception("Conflict resolution failed for %s", critical.conflict_type.value)
            resolution = self.fallback_resolution()

        if resolution.selected_intent == IntentCategory.UNKNOWN_INTENT:
            resolution = resolution.model_copy(update={"confidence": min(resolution.confidence, UNKNOWN_INTENT_MAX_CONFIDENCE)})
        updated = [
            conflict.model_copy(update={"resolved": True}) if index == critical_index else conflict
            for index, conflict in enumerate(conflicts)
        ]
        return resolution, updated

    @staticmethod
    def fallback_resolution() -> IntentResolution:
        return IntentResolution(
            strategy=ResolutionStrategy.FALLBACK,
            selected_intent=IntentCategory.HELP_REQUEST,
            confidence=0.3,
            clarification_question=(
                "I'm having trouble understanding your request. Could you please try again or ask for help?"
            ),
        )

    def _degraded(self, primary: ClassificationResult, reason: str, start: float) -> ValidationResult:
        elapsed = (time.perf_counter() - start) * 1000
        self._metrics["failures"] += 1
        self._metrics["total_validations"] += 1
        self._metrics["total_time_ms"] += elapsed
        self._conflict_counts[ConflictType.INSUFFICIENT_CONTEXT.value] += 1
        return ValidationResult(
            is_valid=True,
            confidence=max(0.3, primary.confidence - 0.2),
            conflicts=[
                IntentConflict(
                    conflict_type=ConflictType.INSUFFICIENT_CONTEXT,
                    conflicting_intents=[primary.intent],
                    confidence=0.3,
                    description=reason,
                )
            ],
            validation_time_ms=elapsed,
        )

    # ------------------------------------------------------------------
    # Metrics
    # ------------------------------------------------------------------

    def _record(self, result: ValidationResult, elapsed_ms: float) -> None:
        self._metrics["total_validations"] += 1
        self._metrics["total_time_ms"] += elapsed_ms
        if result.conflicts:
            self._metrics["with_conflicts"] += 1
            if result.is_valid:
                self._metrics["resolved"] += 1
        for conflict in result.conflicts:
            self._conflict_counts[conflict.conflict_type.value] += 1
        if result.ensemble is not None:
            self._strategy_usage[result.ensemble.strategy.value] += 1

    def get_metrics(self) -> Dict[str, Any]:
        total = self._metrics["total_validations"]
        with_conflicts = self._metrics["with_conflicts"]
        return {
            "total_validations": total,
            "average_validation_time_ms": self._metrics["total_time_ms"] / total if total else 0.0,
            "conflict_rate": with_conflicts / total if total else 0.0,
            "resolution_success_rate": self._metrics["resolved"] / with_conflicts if with_conflicts else 0.0,
            "failures": self._metrics["failures"],
            "conflicts_by_type": dict(self._conflict_counts),
            "strategy_usage": dict(self._strategy_usage),
            "model_weights": dict(self._model_weights),
        }

    def update_config(
        self,
        config: Optional[SecondaryValidationConfig] = None,
        ensemble: Optional[EnsembleConfig] = None,
    ) -> None:
        if config is not None:
            self.config = config
            for name in config.validation_models:
                self._model_weights.setdefault(name, 1.0)
        if ensemble is not None:
            self.ensemble_config = ensemble

    async def health_check(self) -> Dict[str, Any]:
        """Probe each secondary model with a trivial prompt."""
        active: List[str] = []
        errors: List[str] = []
        for model in self.config.validation_models:
            settings = ModelSettings(model=model, timeout_ms=self.config.model_timeout_ms)
            try:
                await self.engine.provider.invoke("Health check", "test", settings=settings)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                errors.append(f"{model}: {e}")
            else:
                active.append(model)
        return {"healthy": not errors, "models": active, "errors": errors}


__all__ = [
    "CONTRADICTORY_PAIRS",
    "IntentValidationService",
    "describe_intent",
    "find_contradictory_pairs",
]
