import pytest

from app.core.config import settings
from app.core.errors import ErrorCode, IntentProcessingError
from app.core.intent_types import CacheKeyStrategy, IntentCategory
from app.models.orchestration_config import IntentOrchestrationConfig
from app.services.factory import PRESETS, build_config


def test_timeout_error_is_retryable_with_suggestion():
    error = IntentProcessingError("too slow", code=ErrorCode.TIMEOUT, correlation_id="abc")

    assert error.retryable is True
    assert error.to_dict() == {
        "error": "too slow",
        "code": "TIMEOUT",
        "retryable": True,
        "suggested_action": "Try again with a simpler command",
        "correlation_id": "abc",
    }


def test_validation_failure_is_not_retryable_by_default():
    error = IntentProcessingError("no agreement", code=ErrorCode.VALIDATION_FAILED)

    assert error.retryable is False
    assert error.suggested_action == "Please be more specific"


def test_retryable_override():
    error = IntentProcessingError("boom", code=ErrorCode.UNKNOWN, retryable=True)

    assert error.retryable is True


def test_intent_category_parse_is_lenient():
    assert IntentCategory.parse("Add-To-Cart") == IntentCategory.ADD_TO_CART
    assert IntentCategory.parse(" search content ") == IntentCategory.SEARCH_CONTENT
    with pytest.raises(ValueError):
        IntentCategory.parse("fly_to_the_moon")


def test_merged_keeps_untouched_fields():
    config = IntentOrchestrationConfig().merged({"caching": {"ttl_ms": 1000}})

    assert config.caching.ttl_ms == 1000
    assert config.caching.max_entries == 10000
    assert config.caching.key_strategy == CacheKeyStrategy.TEXT_CONTEXT


def test_from_settings_uses_environment_values():
    config = IntentOrchestrationConfig.from_settings(settings)

    assert config.primary_classifier.model == settings.PRIMARY_MODEL
    assert config.secondary_validation.validation_models == settings.SECONDARY_MODELS
    assert config.performance.request_timeout_ms == settings.REQUEST_TIMEOUT_MS


def test_presets():
    assert set(PRESETS) == {"high_performance", "balanced", "conservative", "development"}

    fast = build_config("high_performance")
    assert fast.secondary_validation.enabled is False
    assert fast.performance.request_timeout_ms == 500

    careful = build_config("conservative", overrides={"performance": {"request_timeout_ms": 4000}})
    assert careful.caching.enabled is False
    assert careful.secondary_validation.threshold == 0.8
    assert careful.performance.request_timeout_ms == 4000
    assert careful.performance.target_processing_time_ms == 500

    with pytest.raises(ValueError):
        build_config("turbo")
