"""Intent orchestrator coordinating the five pipeline layers.

Initiation Point: Called from the intents router in app/api/intents.py
"""

import asyncio
import logging
import time
import uuid
from collections import deque
from datetime import datetime
from typing import Any, Deque, Dict, List, Optional, Sequence, Tuple

from opik import track

from app.core.errors import ErrorCode, IntentProcessingError
from app.core.intent_types import (
    UNKNOWN_INTENT_MAX_CONFIDENCE,
    ClassificationSource,
    ContentType,
    DedupScope,
    HealthStatus,
    IntentCategory,
    PageMode,
    SiteCapability,
    UserRole,
)
from app.core.model_provider import CancellationToken
from app.models.context_analysis import ContextualAnalysis, RawPageData, SessionData
from app.models.intent_classification import ClassificationResult, IntentSuggestion
from app.models.orchestration_config import IntentOrchestrationConfig
from app.models.processing import (
    CacheStatus,
    ClassificationMetrics,
    ErrorRecord,
    LayerBreakdown,
    NextIntentPrediction,
    OrchestrationMetrics,
    ProcessingOptions,
    ProcessingRequest,
    ProcessingResponse,
    ResponseMetrics,
    SystemHealth,
)
from app.models.validation import ValidationResult
from app.services.classification_engine import IntentClassificationEngine
from app.services.context_analyzer import ContextAnalyzer
from app.services.intent_cache import IntentCacheManager, normalize_text
from app.services.validation_service import IntentValidationService
from app.utils.opik_wrapper import annotate_current_span, log_feedback_score

logger = logging.getLogger(__name__)

CLASSIFICATION_RETRIES = 1
LOW_CONFIDENCE = 0.5
ALTERNATIVES_BELOW = 0.7
MAX_RECOMMENDATIONS = 5
MAX_OVERRIDE_RECOMMENDATIONS = 3
THROUGHPUT_WINDOW_S = 60.0
UNHEALTHY_ERROR_RATE = 0.1
DEGRADED_ERROR_RATE = 0.05
DEGRADED_LATENCY_FACTOR = 1.5
MAX_ERROR_RECORDS = 10
STAGES = ("context_analysis", "cache_lookup", "classification", "validation", "response_generation")


class IntentOrchestrator:
    """Runs context analysis, cache lookup, classification, validation and
    recommendation generation for one utterance at a time.

    Concurrent identical requests share one in-flight task. Every request is
    bounded by a timeout; a request that loses the race is cancelled and its
    cancellation token is bumped so a late classification is never cached.
    """

    def __init__(
        self,
        analyzer: ContextAnalyzer,
        cache: IntentCacheManager,
        engine: IntentClassificationEngine,
        validator: IntentValidationService,
        config: Optional[IntentOrchestrationConfig] = None,
    ):
        """Initialize the orchestrator.

        Args:
            analyzer: Context analyzer
            cache: Cache and pattern manager
            engine: Primary classification engine
            validator: Secondary validation and ensemble service
            config: Pipeline configuration shared with the components
        """
        self.analyzer = analyzer
        self.cache = cache
        self.engine = engine
        self.validator = validator
        self.config = config or IntentOrchestrationConfig()
        self._in_flight: Dict[str, asyncio.Task] = {}
        self._monitor_task: Optional[asyncio.Task] = None
        self._started_at = time.monotonic()
        self._completions: Deque[float] = deque()
        self._stage_totals: Dict[str, float] = {stage: 0.0 for stage in STAGES}
        self._errors: Dict[str, ErrorRecord] = {}
        self._counters: Dict[str, float] = {
            "total_requests": 0,
            "completed": 0,
            "failed": 0,
            "fallbacks": 0,
            "cache_hits": 0,
            "validations": 0,
            "total_time_ms": 0.0,
        }

    # ------------------------------------------------------------------
    # Processing
    # ------------------------------------------------------------------

    async def process_intent(
        self,
        text: str,
        page_data: RawPageData,
        session_data: SessionData,
        role: UserRole = UserRole.GUEST,
        options: Optional[ProcessingOptions] = None,
    ) -> ProcessingResponse:
        """Classify an utterance in its page, session and user context.

        Args:
            text: Raw utterance
            page_data: Page snapshot sent by the client
            session_data: Session snapshot sent by the client
            role: Role of the current user
            options: Per-request processing options

        Returns:
            ProcessingResponse; a best-effort ``unknown_intent`` response with
            warnings when classification fails

        Raises:
            IntentProcessingError: TIMEOUT (retryable) when the request exceeds
                its time budget
        """
        options = options or ProcessingOptions()
        key = self.dedup_key(text, session_data)
        task = self._in_flight.get(key)
        if task is None or task.done():
            task = asyncio.get_running_loop().create_task(
                self._process_with_timeout(text, page_data, session_data, role, options)
            )
            self._in_flight[key] = task
            task.add_done_callback(lambda done, key=key: self._release(key, done))
        else:
            logger.debug("Joining in-flight request for %r", key[:80])
        return await asyncio.shield(task)

    def dedup_key(self, text: str, session_data: SessionData) -> str:
        normalized = normalize_text(text)
        if self.config.performance.dedup_scope == DedupScope.TEXT:
            return normalized
        return f"{session_data.tenant_id}:{session_data.session_id}:{normalized}"

    def _release(self, key: str, task: asyncio.Task) -> None:
        if self._in_flight.get(key) is task:
            del self._in_flight[key]

    async def _process_with_timeout(
        self,
        text: str,
        page_data: RawPageData,
        session_data: SessionData,
        role: UserRole,
        options: ProcessingOptions,
    ) -> ProcessingResponse:
        correlation_id = uuid.uuid4().hex
        token = CancellationToken()
        timeout_ms = options.timeout_ms or self.config.performance.request_timeout_ms
        self._counters["total_requests"] += 1
        start = time.perf_counter()
        try:
            return await asyncio.wait_for(
                self._run_pipeline(text, page_data, session_data, role, options, token, correlation_id),
                timeout=timeout_ms / 1000,
            )
        except asyncio.TimeoutError as e:
            token.cancel()
            elapsed = (time.perf_counter() - start) * 1000
            self._record_failure(f"Processing timeout after {timeout_ms}ms", elapsed)
            logger.warning("Intent processing for %r timed out after %.0fms", text[:100], elapsed)
            raise IntentProcessingError(
                f"Intent processing exceeded {timeout_ms}ms",
                code=ErrorCode.TIMEOUT,
                correlation_id=correlation_id,
                details={"timeout_ms": timeout_ms},
            ) from e
        except IntentProcessingError as e:
            token.cancel()
            self._record_failure(str(e), (time.perf_counter() - start) * 1000)
            if e.correlation_id is None:
                e.correlation_id = correlation_id
            raise
        except asyncio.CancelledError:
            token.cancel()
            raise
        except Exception as e:
            token.cancel()
            self._record_failure(str(e), (time.perf_counter() - start) * 1000)
            logger.exception("Intent processing failed for %r", text[:100])
            raise IntentProcessingError(
                f"Intent processing failed: {e}",
                code=ErrorCode.UNKNOWN,
                correlation_id=correlation_id,
            ) from e

    @track(name="process_intent")
    async def _run_pipeline(
        self,
        text: str,
        page_data: RawPageData,
        session_data: SessionData,
        role: UserRole,
        options: ProcessingOptions,
        token: CancellationToken,
        correlation_id: str,
    ) -> ProcessingResponse:
        start = time.perf_counter()
        stage_times: Dict[str, float] = {}
        warnings: List[str] = []
        errors: List[str] = []

        # Stage 1: context analysis
        stage_start = time.perf_counter()
        context = await self.analyzer.analyze(page_data, session_data, role)
        stage_times["context_analysis"] = (time.perf_counter() - stage_start) * 1000

        request = ProcessingRequest(
            text=text,
            context=context,
            options=options,
            session_id=session_data.session_id,
            user_id=session_data.user_id,
            correlation_id=correlation_id,
        )

        # Stage 2: cache lookup
        cached: Optional[ClassificationResult] = None
        stage_start = time.perf_counter()
        if not options.skip_cache:
            cached = await self.cache.lookup(request)
        stage_times["cache_lookup"] = (time.perf_counter() - stage_start) * 1000

        # Stage 3: classification, only on a miss
        stage_start = time.perf_counter()
        if cached is not None:
            classification = cached
            fell_back = False
        else:
            generation = token.generation
            classification, fell_back = await self._classify(request, token, warnings, errors)
            if fell_back:
                logger.debug("Not caching fallback classification for %r", text[:100])
            elif token.is_current(generation):
                await self.cache.store_result(request, classification)
                await self._refresh_learning_profile(request.user_id)
            else:
                logger.warning("Discarding late classification for %r", text[:100])
        stage_times["classification"] = (time.perf_counter() - stage_start) * 1000

        # Stage 4: validation
        stage_start = time.perf_counter()
        if self._should_validate(classification, cached, options, fell_back):
            validation = await self.validator.validate(classification, text, context, cancellation=token)
        else:
            validation = ValidationResult(is_valid=True, confidence=classification.confidence, skipped=True)
        stage_times["validation"] = (time.perf_counter() - stage_start) * 1000

        # Stage 5: response
        stage_start = time.perf_counter()
        final = self.final_classification(classification, validation)
        recommendations = self.generate_recommendations(final, context, validation)
        warnings.extend(self._warnings(final, validation, cached, options))
        stage_times["response_generation"] = (time.perf_counter() - stage_start) * 1000

        total_ms = (time.perf_counter() - start) * 1000
        models_used = [final.model_used] if final.model_used else []
        if validation.ensemble is not None:
            models_used = list(dict.fromkeys(models_used + validation.ensemble.contributing_models))
        response = ProcessingResponse(
            classification=final,
            validation=validation,
            contextual_analysis=context,
            ensemble=validation.ensemble,
            recommendations=recommendations,
            metrics=ResponseMetrics(
                total_processing_time_ms=total_ms,
                cache_hit=cached is not None,
                models_used=models_used,
                confidence_breakdown={
                    "classification": classification.confidence,
                    "validation": validation.confidence,
                    "final": final.confidence,
                },
                stage_times_ms=stage_times,
            ),
            warnings=warnings,
            errors=errors,
            correlation_id=correlation_id,
        )

        self._record_success(total_ms, stage_times, cached is not None, not validation.skipped, fell_back)
        annotate_current_span(
            {
                "correlation_id": correlation_id,
                "intent": final.intent.value,
                "confidence": final.confidence,
                "source": final.source.value,
                "cache_hit": cached is not None,
                "total_ms": round(total_ms, 1),
            }
        )
        logger.info(
            "Processed %r -> %s (%.2f, %s) in %.0fms",
            text[:100],
            final.intent.value,
            final.confidence,
            final.source.value,
            total_ms,
        )
        return response

    async def _classify(
        self,
        request: ProcessingRequest,
        token: CancellationToken,
        warnings: List[str],
        errors: List[str],
    ) -> Tuple[ClassificationResult, bool]:
        """Classify with one retry on retryable errors.

        Returns:
            The classification and whether it is a fallback result
        """
        attempts = CLASSIFICATION_RETRIES + 1
        last_error: Optional[IntentProcessingError] = None
        for attempt in range(attempts):
            try:
                return await self.engine.classify(request.text, request.context, cancellation=token), False
            except IntentProcessingError as e:
                last_error = e
                self._record_error(str(e))
                if not e.retryable or attempt + 1 >= attempts:
                    break
                logger.warning("Classification attempt %d failed, retrying: %s", attempt + 1, e)

        logger.error("Classification failed for %r: %s", request.text[:100], last_error)
        errors.append(str(last_error))
        warnings.append("Classification failed, returning a fallback result")
        return (
            ClassificationResult(
                intent=IntentCategory.UNKNOWN_INTENT,
                confidence=0.1,
                reasoning=f"Classification failed: {last_error}",
                source=ClassificationSource.PRIMARY,
                model_used=self.engine.config.model,
            ),
            True,
        )

    def _should_validate(
        self,
        classification: ClassificationResult,
        cached: Optional[ClassificationResult],
        options: ProcessingOptions,
        fell_back: bool,
    ) -> bool:
        if not self.config.secondary_validation.enabled or options.skip_validation or fell_back:
            return False
        if cached is not None and classification.confidence >= self.config.performance.skip_validation_confidence:
            return False
        return True

    async def _refresh_learning_profile(self, user_id: Optional[str]) -> None:
        if not user_id or not self.config.learning.enabled:
            return
        profile = await self.cache.get_learning_profile(user_id)
        if profile is not None:
            self.analyzer.set_learning_profile(user_id, profile)

    @staticmethod
    def final_classification(
        classification: ClassificationResult, validation: ValidationResult
    ) -> ClassificationResult:
        """Apply the ensemble outcome to the primary classification."""
        final = classification
        if not validation.skipped and validation.ensemble is not None:
            if validation.is_valid:
                if validation.resolution is not None:
                    intent = validation.resolution.selected_intent
                else:
                    intent = validation.ensemble.final_intent
                final = classification.model_copy(
                    update={
                        "intent": intent,
                        "confidence": validation.confidence,
                        "parameters": classification.parameters if intent == classification.intent else {},
                        "source": ClassificationSource.ENSEMBLE,
                    }
                )
            else:
                final = classification.model_copy(
                    update={"confidence": min(classification.confidence, validation.confidence)}
                )
        elif not validation.skipped:
            final = classification.model_copy(update={"confidence": validation.confidence})

        if final.intent == IntentCategory.UNKNOWN_INTENT and final.confidence > UNKNOWN_INTENT_MAX_CONFIDENCE:
            final = final.model_copy(update={"confidence": UNKNOWN_INTENT_MAX_CONFIDENCE})
        return final

    @staticmethod
    def generate_recommendations(
        classification: ClassificationResult,
        context: ContextualAnalysis,
        validation: ValidationResult,
    ) -> List[IntentSuggestion]:
        """Suggest alternative intents for the response, at most five."""
        recommendations: List[IntentSuggestion] = []
        if classification.intent == IntentCategory.UNKNOWN_INTENT or classification.confidence < LOW_CONFIDENCE:
            recommendations.append(
                IntentSuggestion(
                    intent=IntentCategory.HELP_REQUEST,
                    phrase="What can I do here?",
                    context="The command was not understood",
                    confidence=0.8,
                    reasoning="Low confidence classification",
                )
            )

        recommendations.extend(context.suggestion_overrides[:MAX_OVERRIDE_RECOMMENDATIONS])

        if classification.confidence < ALTERNATIVES_BELOW:
            page = context.page_context
            if page.content_type == ContentType.E_COMMERCE or SiteCapability.E_COMMERCE in page.capabilities:
                recommendations.append(
                    IntentSuggestion(
                        intent=IntentCategory.ADD_TO_CART,
                        phrase="Add this to my cart",
                        context="Shopping page",
                        confidence=0.6,
                    )
                )
            if SiteCapability.SEARCH in page.capabilities:
                recommendations.append(
                    IntentSuggestion(
                        intent=IntentCategory.SEARCH_CONTENT,
                        phrase="Search for something",
                        context="Search is available",
                        confidence=0.6,
                    )
                )
            if SiteCapability.FORMS in page.capabilities:
                recommendations.append(
                    IntentSuggestion(
                        intent=IntentCategory.SUBMIT_FORM,
                        phrase="Submit the form",
                        context="A form is on the page",
                        confidence=0.6,
                    )
                )
            if page.current_mode == PageMode.EDIT:
                recommendations.append(
                    IntentSuggestion(
                        intent=IntentCategory.EDIT_TEXT,
                        phrase="Change this text",
                        context="Edit mode is active",
                        confidence=0.7,
                    )
                )

        resolution = validation.resolution
        if resolution is not None and resolution.clarification_question:
            recommendations.append(
                IntentSuggestion(
                    intent=IntentCategory.NEED_CLARIFICATION,
                    phrase=resolution.clarification_question,
                    context="Clarification",
                    confidence=resolution.confidence,
                    reasoning=f"Resolved by {resolution.strategy.value}",
                )
            )

        unique: List[IntentSuggestion] = []
        seen = set()
        for suggestion in recommendations:
            marker = (suggestion.intent, suggestion.phrase)
            if marker not in seen:
                seen.add(marker)
                unique.append(suggestion)
        return unique[:MAX_RECOMMENDATIONS]

    @staticmethod
    def _warnings(
        final: ClassificationResult,
        validation: ValidationResult,
        cached: Optional[ClassificationResult],
        options: ProcessingOptions,
    ) -> List[str]:
        warnings: List[str] = []
        if final.confidence < LOW_CONFIDENCE:
            warnings.append(f"Low confidence classification ({final.confidence:.2f})")
        if validation.conflicts:
            warnings.append(f"{len(validation.conflicts)} conflict(s) detected during validation")
        if options.require_high_confidence and cached is not None:
            warnings.append("Result served from cache while high confidence was required")
        if not validation.is_valid:
            warnings.append("Validation could not confirm the classification")
        return warnings

    # ------------------------------------------------------------------
    # Learning and prediction
    # ------------------------------------------------------------------

    async def learn_from_feedback(
        self,
        text: str,
        actual_intent: IntentCategory,
        was_correct: bool,
        feedback: Optional[str] = None,
        context: Optional[ContextualAnalysis] = None,
        page_data: Optional[RawPageData] = None,
        session_data: Optional[SessionData] = None,
        role: UserRole = UserRole.GUEST,
    ) -> None:
        """Fold user feedback on a past classification into the cache and patterns.

        The cache key is rebuilt from ``context`` when given, otherwise from a
        fresh analysis of ``page_data``/``session_data``.
        """
        if not self.config.learning.enabled:
            return

        session_data = session_data or SessionData(session_id="feedback")
        if context is None:
            if page_data is not None:
                context = await self.analyzer.analyze(page_data, session_data, role)
            else:
                context = self.analyzer.create_fallback_context(RawPageData(url="about:blank"), session_data, role)

        request = ProcessingRequest(
            text=text,
            context=context,
            session_id=context.session_context.session_id,
            user_id=context.session_context.user_id,
        )
        await self.cache.record_feedback(request, actual_intent, was_correct)
        await self._refresh_learning_profile(request.user_id)
        log_feedback_score("intent_correct", 1.0 if was_correct else 0.0, reason=feedback)
        logger.info("Feedback for %r: actual=%s correct=%s", text[:100], actual_intent.value, was_correct)

    async def predict_next_intent(
        self,
        user_id: str,
        recent_intents: Sequence[IntentCategory],
        context: Optional[ContextualAnalysis] = None,
    ) -> Optional[NextIntentPrediction]:
        """Predict the next intent from the user's learned sequences.

        Falls back to the strongest contextual suggestion when no sequence
        matches. Returns None when prediction is disabled.
        """
        if not self.config.performance.enable_predictive:
            return None

        prediction = await self.cache.predict_next(user_id, recent_intents)
        if prediction is not None:
            return prediction
        if context is not None and context.suggestion_overrides:
            best = max(context.suggestion_overrides, key=lambda suggestion: suggestion.confidence)
            return NextIntentPrediction(intent=best.intent, confidence=min(0.5, best.confidence))
        return None

    # ------------------------------------------------------------------
    # Metrics and health
    # ------------------------------------------------------------------

    def _record_success(
        self,
        total_ms: float,
        stage_times: Dict[str, float],
        cache_hit: bool,
        validated: bool,
        fell_back: bool,
    ) -> None:
        self._counters["completed"] += 1
        self._counters["total_time_ms"] += total_ms
        if cache_hit:
            self._counters["cache_hits"] += 1
        if validated:
            self._counters["validations"] += 1
        if fell_back:
            self._counters["fallbacks"] += 1
        for stage, elapsed in stage_times.items():
            self._stage_totals[stage] = self._stage_totals.get(stage, 0.0) + elapsed
        self._completions.append(time.monotonic())

    def _record_failure(self, message: str, elapsed_ms: float) -> None:
        self._counters["failed"] += 1
        self._counters["total_time_ms"] += elapsed_ms
        self._completions.append(time.monotonic())
        self._record_error(message)

    def _record_error(self, message: str) -> None:
        record = self._errors.get(message)
        if record is None:
            self._errors[message] = ErrorRecord(timestamp=datetime.utcnow(), error=message)
        else:
            self._errors[message] = record.model_copy(
                update={"timestamp": datetime.utcnow(), "frequency": record.frequency + 1}
            )

    def _throughput(self) -> int:
        cutoff = time.monotonic() - THROUGHPUT_WINDOW_S
        while self._completions and self._completions[0] < cutoff:
            self._completions.popleft()
        return len(self._completions)

    def get_metrics(self) -> OrchestrationMetrics:
        total = int(self._counters["total_requests"])
        finished = int(self._counters["completed"] + self._counters["failed"])
        completed = int(self._counters["completed"])
        stage_sum = sum(self._stage_totals.values())
        return OrchestrationMetrics(
            total_requests=total,
            average_processing_time_ms=self._counters["total_time_ms"] / finished if finished else 0.0,
            cache_hit_rate=self._counters["cache_hits"] / completed if completed else 0.0,
            validation_rate=self._counters["validations"] / completed if completed else 0.0,
            success_rate=(completed - self._counters["fallbacks"]) / finished if finished else 0.0,
            fallback_rate=self._counters["fallbacks"] / completed if completed else 0.0,
            error_rate=self._counters["failed"] / finished if finished else 0.0,
            current_throughput=self._throughput(),
            performance_target_ms=self.config.performance.target_processing_time_ms,
            layer_breakdown=LayerBreakdown(
                **{stage: (self._stage_totals.get(stage, 0.0) / stage_sum if stage_sum else 0.0) for stage in STAGES}
            ),
        )

    def get_classification_metrics(self) -> ClassificationMetrics:
        metrics = self.engine.get_metrics()
        return metrics.model_copy(update={"cache_hit_rate": self.get_metrics().cache_hit_rate})

    def health_status(self, metrics: OrchestrationMetrics) -> HealthStatus:
        if metrics.error_rate > UNHEALTHY_ERROR_RATE:
            return HealthStatus.UNHEALTHY
        target = self.config.performance.target_processing_time_ms
        if (
            metrics.error_rate > DEGRADED_ERROR_RATE
            or metrics.average_processing_time_ms > target * DEGRADED_LATENCY_FACTOR
        ):
            return HealthStatus.DEGRADED
        return HealthStatus.HEALTHY

    async def get_system_health(self) -> SystemHealth:
        metrics = self.get_metrics()
        statistics = await self.cache.get_statistics()
        active_models = [self.config.primary_classifier.model]
        if self.config.secondary_validation.enabled:
            active_models.extend(self.config.secondary_validation.validation_models)
        recent_errors = sorted(self._errors.values(), key=lambda record: record.timestamp, reverse=True)
        return SystemHealth(
            status=self.health_status(metrics),
            uptime_s=time.monotonic() - self._started_at,
            total_requests=metrics.total_requests,
            recent_performance=self.get_classification_metrics(),
            active_models=active_models,
            cache_status=CacheStatus(
                size=statistics.size,
                hit_rate=statistics.hit_rate,
                memory_usage_mb=statistics.memory_usage_mb,
            ),
            errors=recent_errors[:MAX_ERROR_RECORDS],
        )

    async def perform_performance_check(self) -> HealthStatus:
        """Evaluate health and, when enabled, relax settings on degradation."""
        metrics = self.get_metrics()
        status = self.health_status(metrics)
        if status == HealthStatus.HEALTHY:
            return status

        logger.warning(
            "Intent pipeline %s: avg=%.0fms target=%dms error_rate=%.2f",
            status.value,
            metrics.average_processing_time_ms,
            self.config.performance.target_processing_time_ms,
            metrics.error_rate,
        )
        if self.config.performance.auto_optimize:
            self.update_configuration(
                {
                    "caching": {"ttl_ms": int(self.config.caching.ttl_ms * 1.5)},
                    "performance": {
                        "skip_validation_confidence": max(
                            0.7, self.config.performance.skip_validation_confidence - 0.05
                        )
                    },
                }
            )
            logger.info("Applied automatic relaxations after %s health check", status.value)
        return status

    async def _monitor_loop(self) -> None:
        while True:
            await asyncio.sleep(self.config.performance.monitoring_interval_s)
            try:
                await self.perform_performance_check()
            except Exception as e:
                logger.exception("Performance check failed: %s", e)

    # ------------------------------------------------------------------
    # Configuration and lifecycle
    # ------------------------------------------------------------------

    def update_configuration(self, changes: Dict[str, Any]) -> IntentOrchestrationConfig:
        """Deep-merge ``changes`` into the running configuration and propagate it."""
        self.config = self.config.merged(changes)
        self.engine.update_config(**self.config.primary_classifier.model_dump())
        self.validator.update_config(self.config.secondary_validation, self.config.ensemble)
        self.cache.config = self.config.caching
        self.cache.learning = self.config.learning
        self.analyzer.config = self.config.context_analysis
        logger.info("Orchestration config updated: %s", sorted(changes))
        return self.config

    def start(self) -> None:
        """Start cache maintenance and performance monitoring on the running loop."""
        self.cache.start()
        if self._monitor_task is None or self._monitor_task.done():
            self._monitor_task = asyncio.get_running_loop().create_task(self._monitor_loop())

    async def close(self) -> None:
        if self._monitor_task is not None:
            self._monitor_task.cancel()
            try:
                await self._monitor_task
            except asyncio.CancelledError:
                pass
            self._monitor_task = None
        for task in list(self._in_flight.values()):
            task.cancel()
        self._in_flight.clear()
        await self.cache.close()
        logger.info("Intent orchestrator closed after %d requests", int(self._counters["total_requests"]))


__all__ = ["IntentOrchestrator"]
