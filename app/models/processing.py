"""Request, response and metrics models for intent processing."""

from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from app.core.intent_types import HealthStatus, IntentCategory
from app.models.context_analysis import ContextualAnalysis
from app.models.intent_classification import ClassificationResult, IntentSuggestion
from app.models.validation import EnsembleDecision, ValidationResult


class ProcessingOptions(BaseModel):
    skip_cache: bool = False
    skip_validation: bool = False
    require_high_confidence: bool = False
    timeout_ms: Optional[int] = Field(default=None, gt=0, description="Overrides the configured request timeout")
    preferred_models: List[str] = Field(default_factory=list)


class ProcessingRequest(BaseModel):
    """A single intent request after context analysis."""

    text: str
    context: ContextualAnalysis
    options: ProcessingOptions = Field(default_factory=ProcessingOptions)
    session_id: Optional[str] = None
    user_id: Optional[str] = None
    correlation_id: Optional[str] = None
    timestamp: datetime = Field(default_factory=datetime.utcnow)


class ResponseMetrics(BaseModel):
    total_processing_time_ms: float = 0.0
    cache_hit: bool = False
    models_used: List[str] = Field(default_factory=list)
    confidence_breakdown: Dict[str, float] = Field(default_factory=dict)
    stage_times_ms: Dict[str, float] = Field(default_factory=dict)


class ProcessingResponse(BaseModel):
    classification: ClassificationResult
    validation: ValidationResult
    contextual_analysis: ContextualAnalysis
    ensemble: Optional[EnsembleDecision] = None
    recommendations: List[IntentSuggestion] = Field(default_factory=list)
    metrics: ResponseMetrics = Field(default_factory=ResponseMetrics)
    warnings: List[str] = Field(default_factory=list)
    errors: List[str] = Field(default_factory=list)
    correlation_id: Optional[str] = None


class NextIntentPrediction(BaseModel):
    intent: IntentCategory
    confidence: float = Field(..., ge=0.0, le=1.0)


class ModelMetrics(BaseModel):
    name: str
    total_requests: int = 0
    average_latency_ms: float = 0.0
    error_rate: float = 0.0
    last_used: Optional[datetime] = None


class ClassificationMetrics(BaseModel):
    total_classifications: int = 0
    average_processing_time_ms: float = 0.0
    average_confidence: float = 0.0
    success_rate: float = 0.0
    cache_hit_rate: float = 0.0
    model_performance: Dict[str, ModelMetrics] = Field(default_factory=dict)
    intent_distribution: Dict[str, int] = Field(default_factory=dict)
    error_rates: Dict[str, float] = Field(default_factory=dict)


class LayerBreakdown(BaseModel):
    """Share of total pipeline time spent in each stage."""

    context_analysis: float = 0.0
    cache_lookup: float = 0.0
    classification: float = 0.0
    validation: float = 0.0
    response_generation: float = 0.0


class OrchestrationMetrics(BaseModel):
    total_requests: int = 0
    average_processing_time_ms: float = 0.0
    cache_hit_rate: float = 0.0
    validation_rate: float = 0.0
    success_rate: float = 0.0
    fallback_rate: float = 0.0
    error_rate: float = 0.0
    current_throughput: int = Field(default=0, description="Requests completed in the last 60 seconds")
    performance_target_ms: int = 300
    layer_breakdown: LayerBreakdown = Field(default_factory=LayerBreakdown)


class CacheStatus(BaseModel):
    size: int = 0
    hit_rate: float = 0.0
    memory_usage_mb: float = 0.0


class ErrorRecord(BaseModel):
    timestamp: datetime
    error: str
    frequency: int = 1


class SystemHealth(BaseModel):
    status: HealthStatus
    uptime_s: float = 0.0
    total_requests: int = 0
    recent_performance: ClassificationMetrics = Field(default_factory=ClassificationMetrics)
    active_models: List[str] = Field(default_factory=list)
    cache_status: CacheStatus = Field(default_factory=CacheStatus)
    errors: List[ErrorRecord] = Field(default_factory=list)


__all__ = [
    "CacheStatus",
    "ClassificationMetrics",
    "ErrorRecord",
    "LayerBreakdown",
    "ModelMetrics",
    "NextIntentPrediction",
    "OrchestrationMetrics",
    "ProcessingOptions",
    "ProcessingRequest",
    "ProcessingResponse",
    "ResponseMetrics",
    "SystemHealth",
]
