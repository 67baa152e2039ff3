"""Wiring of the intent pipeline from presets and overrides."""

import logging
from typing import Any, Dict, Optional

from app.core.model_provider import ClaudeModelProvider, ModelProvider
from app.models.orchestration_config import IntentOrchestrationConfig
from app.repositories.intent_store import IntentStore
from app.services.classification_engine import IntentClassificationEngine
from app.services.context_analyzer import ContextAnalyzer
from app.services.intent_cache import IntentCacheManager
from app.services.intent_orchestrator import IntentOrchestrator
from app.services.validation_service import IntentValidationService

logger = logging.getLogger(__name__)

PRESETS: Dict[str, Dict[str, Dict[str, Any]]] = {
    "high_performance": {
        "secondary_validation": {"enabled": False},
        "caching": {"ttl_ms": 600000, "max_entries": 20000},
        "performance": {"target_processing_time_ms": 200, "max_retries": 1, "request_timeout_ms": 500},
    },
    "balanced": {},
    "conservative": {
        "secondary_validation": {"threshold": 0.8},
        "caching": {"enabled": False},
        "performance": {"target_processing_time_ms": 500, "max_retries": 3, "request_timeout_ms": 2000},
        "learning": {"enabled": False},
    },
    "development": {
        "caching": {"ttl_ms": 60000, "max_entries": 1000},
        "performance": {"target_processing_time_ms": 1000, "max_retries": 1, "request_timeout_ms": 3000},
    },
}


def build_config(
    preset: str = "balanced",
    overrides: Optional[Dict[str, Any]] = None,
    base: Optional[IntentOrchestrationConfig] = None,
) -> IntentOrchestrationConfig:
    """Apply a named preset and then ``overrides`` on top of ``base``.

    Raises:
        ValueError: If the preset is unknown
    """
    if preset not in PRESETS:
        raise ValueError(f"Unknown preset {preset!r}, expected one of: {', '.join(PRESETS)}")
    config = (base or IntentOrchestrationConfig()).merged(PRESETS[preset])
    if overrides:
        config = config.merged(overrides)
    return config


def create_intent_orchestrator(
    preset: str = "balanced",
    overrides: Optional[Dict[str, Any]] = None,
    provider: Optional[ModelProvider] = None,
    store: Optional[IntentStore] = None,
    base: Optional[IntentOrchestrationConfig] = None,
) -> IntentOrchestrator:
    """Build a fully wired orchestrator.

    Args:
        preset: One of ``high_performance``, ``balanced``, ``conservative``, ``development``
        overrides: Partial configuration deep-merged after the preset
        provider: Model provider; ``ClaudeModelProvider`` when omitted
        store: Cache backing store; a fresh in-memory store when omitted
        base: Starting configuration, e.g. ``IntentOrchestrationConfig.from_settings(settings)``

    Returns:
        IntentOrchestrator sharing one configuration across its components
    """
    config = build_config(preset, overrides, base)
    provider = provider or ClaudeModelProvider()
    engine = IntentClassificationEngine(provider, config.primary_classifier)
    orchestrator = IntentOrchestrator(
        analyzer=ContextAnalyzer(config.context_analysis),
        cache=IntentCacheManager(config.caching, config.learning, store=store),
        engine=engine,
        validator=IntentValidationService(engine, config.secondary_validation, config.ensemble),
        config=config,
    )
    logger.info(
        "Created intent orchestrator (preset=%s, primary=%s, validation=%s, cache=%s)",
        preset,
        config.primary_classifier.model,
        config.secondary_validation.enabled,
        config.caching.enabled,
    )
    return orchestrator


__all__ = ["PRESETS", "build_config", "create_intent_orchestrator"]
