"""Structured configuration for the intent orchestration pipeline."""

from typing import Any, Dict, List

from pydantic import BaseModel, Field

from app.core.intent_types import CacheKeyStrategy, DedupScope, EnsembleStrategy


class PrimaryClassifierConfig(BaseModel):
    model: str = Field(default="claude-sonnet-4-5", description="Primary model identifier")
    temperature: float = Field(default=0.2, ge=0.0, le=2.0)
    max_tokens: int = Field(default=300, gt=0)
    timeout_ms: int = Field(default=8000, gt=0, description="Per-call provider timeout")


class SecondaryValidationConfig(BaseModel):
    enabled: bool = True
    threshold: float = Field(default=0.7, ge=0.0, le=1.0, description="Minimum mean confidence")
    validation_models: List[str] = Field(default_factory=lambda: ["claude-haiku-4-5"])
    timeout_ms: int = Field(default=5000, gt=0, description="Budget for the whole validation stage")
    model_timeout_ms: int = Field(default=3000, gt=0, description="Budget for one secondary call")


class ContextAnalysisConfig(BaseModel):
    enabled: bool = True
    max_elements: int = Field(default=50, gt=0)
    enable_schema_detection: bool = True
    enable_capability_detection: bool = True
    enable_learning_profile: bool = True
    page_cache_ttl_ms: int = Field(default=300000, ge=0)
    boost_threshold: float = Field(default=0.1, ge=0.0)


class CachingConfig(BaseModel):
    enabled: bool = True
    ttl_ms: int = Field(default=300000, gt=0)
    max_entries: int = Field(default=10000, gt=0)
    key_strategy: CacheKeyStrategy = CacheKeyStrategy.TEXT_CONTEXT
    memory_limit_mb: float = Field(default=100.0, gt=0)
    pattern_min_occurrences: int = Field(default=3, ge=1)
    maintenance_interval_s: float = Field(default=300.0, gt=0)


class PerformanceConfig(BaseModel):
    target_processing_time_ms: int = Field(default=300, gt=0)
    max_retries: int = Field(default=2, ge=0)
    request_timeout_ms: int = Field(default=1000, gt=0)
    enable_predictive: bool = True
    auto_optimize: bool = False
    monitoring_interval_s: float = Field(default=30.0, gt=0)
    dedup_scope: DedupScope = DedupScope.SESSION
    skip_validation_confidence: float = Field(
        default=0.9, ge=0.0, le=1.0, description="Cache hits at or above this skip validation"
    )


class EnsembleConfig(BaseModel):
    enabled: bool = True
    strategy: EnsembleStrategy = EnsembleStrategy.CONTEXTUAL_BOOST
    minimum_agreement: float = Field(default=0.6, ge=0.0, le=1.0)
    weight_adjustment: bool = True


class LearningConfig(BaseModel):
    enabled: bool = True
    adaptive_thresholds: bool = True
    user_feedback_weight: float = Field(default=0.3, ge=0.0, le=1.0)
    pattern_detection: bool = True


class IntentOrchestrationConfig(BaseModel):
    """Full pipeline configuration."""

    primary_classifier: PrimaryClassifierConfig = Field(default_factory=PrimaryClassifierConfig)
    secondary_validation: SecondaryValidationConfig = Field(default_factory=SecondaryValidationConfig)
    context_analysis: ContextAnalysisConfig = Field(default_factory=ContextAnalysisConfig)
    caching: CachingConfig = Field(default_factory=CachingConfig)
    performance: PerformanceConfig = Field(default_factory=PerformanceConfig)
    ensemble: EnsembleConfig = Field(default_factory=EnsembleConfig)
    learning: LearningConfig = Field(default_factory=LearningConfig)

    @classmethod
    def from_settings(cls, settings: Any) -> "IntentOrchestrationConfig":
        """Build configuration from an environment-backed ``Settings`` object."""
        return cls(
            primary_classifier=PrimaryClassifierConfig(
                model=settings.PRIMARY_MODEL,
                temperature=settings.MODEL_TEMPERATURE,
                max_tokens=settings.MODEL_MAX_TOKENS,
                timeout_ms=settings.MODEL_TIMEOUT_MS,
            ),
            secondary_validation=SecondaryValidationConfig(
                enabled=settings.VALIDATION_ENABLED,
                threshold=settings.VALIDATION_THRESHOLD,
                validation_models=list(settings.SECONDARY_MODELS),
            ),
            caching=CachingConfig(
                enabled=settings.CACHE_ENABLED,
                ttl_ms=settings.CACHE_TTL_MS,
                max_entries=settings.CACHE_MAX_ENTRIES,
                key_strategy=CacheKeyStrategy(settings.CACHE_KEY_STRATEGY),
                memory_limit_mb=settings.CACHE_MEMORY_LIMIT_MB,
            ),
            performance=PerformanceConfig(
                target_processing_time_ms=settings.TARGET_PROCESSING_TIME_MS,
                max_retries=settings.MAX_RETRIES,
                request_timeout_ms=settings.REQUEST_TIMEOUT_MS,
                enable_predictive=settings.PREDICTIVE_ENABLED,
                auto_optimize=settings.AUTO_OPTIMIZE,
                dedup_scope=DedupScope(settings.DEDUP_SCOPE),
            ),
            ensemble=EnsembleConfig(strategy=EnsembleStrategy(settings.ENSEMBLE_STRATEGY)),
            learning=LearningConfig(
                enabled=settings.LEARNING_ENABLED,
                pattern_detection=settings.PATTERN_DETECTION_ENABLED,
            ),
        )

    def merged(self, overrides: Dict[str, Any]) -> "IntentOrchestrationConfig":
        """Return a copy with ``overrides`` deep-merged section by section."""
        data = self.model_dump()
        for section, values in (overrides or {}).items():
            if isinstance(values, BaseModel):
                values = values.model_dump()
            if isinstance(values, dict) and isinstance(data.get(section), dict):
                data[section].update(values)
            else:
                data[section] = values
        return IntentOrchestrationConfig.model_validate(data)


__all__ = [
    "CachingConfig",
    "ContextAnalysisConfig",
    "EnsembleConfig",
    "IntentOrchestrationConfig",
    "LearningConfig",
    "PerformanceConfig",
    "PrimaryClassifierConfig",
    "SecondaryValidationConfig",
]
