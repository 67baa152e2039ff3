"""Data models package."""

from app.models.cache_entry import CacheEntry, CacheStatistics, IntentPattern, UserPattern
from app.models.context_analysis import ContextualAnalysis, RawPageData, SessionData
from app.models.intent_classification import ClassificationResult, IntentSuggestion
from app.models.orchestration_config import IntentOrchestrationConfig
from app.models.processing import ProcessingOptions, ProcessingRequest, ProcessingResponse, SystemHealth
from app.models.validation import EnsembleDecision, IntentConflict, IntentResolution, ValidationResult

__all__ = [
    "CacheEntry",
    "CacheStatistics",
    "ClassificationResult",
    "ContextualAnalysis",
    "EnsembleDecision",
    "IntentConflict",
    "IntentOrchestrationConfig",
    "IntentPattern",
    "IntentResolution",
    "IntentSuggestion",
    "ProcessingOptions",
    "ProcessingRequest",
    "ProcessingResponse",
    "RawPageData",
    "SessionData",
    "SystemHealth",
    "UserPattern",
    "ValidationResult",
]
