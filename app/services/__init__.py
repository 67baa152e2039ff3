"""Services package."""

from app.services.classification_engine import IntentClassificationEngine
from app.services.context_analyzer import ContextAnalyzer
from app.services.factory import create_intent_orchestrator
from app.services.intent_cache import IntentCacheManager
from app.services.intent_orchestrator import IntentOrchestrator
from app.services.validation_service import IntentValidationService

__all__ = [
    "ContextAnalyzer",
    "IntentCacheManager",
    "IntentClassificationEngine",
    "IntentOrchestrator",
    "IntentValidationService",
    "create_intent_orchestrator",
]
