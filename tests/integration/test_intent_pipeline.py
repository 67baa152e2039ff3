import asyncio

import pytest

from conftest import FakeProvider, classification_json

from app.core.errors import ErrorCode, IntentProcessingError, ModelProviderError
from app.core.intent_types import ClassificationSource, HealthStatus, IntentCategory
from app.models.context_analysis import RawPageData, SessionData
from app.models.processing import ProcessingOptions

PRIMARY = "claude-sonnet-4-5"
SECONDARY = "claude-haiku-4-5"


def confident_cart_provider(**kwargs):
    return FakeProvider(
        {
            PRIMARY: classification_json("add_to_cart", 0.92, parameters={"target": "blue shirt"}),
            SECONDARY: classification_json("add_to_cart", 0.88),
        },
        **kwargs,
    )


@pytest.mark.asyncio
async def test_clear_command_is_validated_and_boosted(make_orchestrator, product_page, session_data):
    provider = confident_cart_provider()
    orchestrator = make_orchestrator(provider)

    response = await orchestrator.process_intent("add this to my cart", product_page, session_data)

    assert response.classification.intent == IntentCategory.ADD_TO_CART
    assert response.classification.source == ClassificationSource.ENSEMBLE
    assert response.classification.confidence == pytest.approx(1.0)
    assert response.classification.parameters == {"target": "blue shirt"}
    assert response.validation.is_valid is True
    assert response.validation.conflicts == []
    assert response.metrics.cache_hit is False
    assert response.metrics.models_used == [PRIMARY, SECONDARY]
    assert set(response.metrics.stage_times_ms) == {
        "context_analysis",
        "cache_lookup",
        "classification",
        "validation",
        "response_generation",
    }
    assert response.correlation_id
    assert provider.models_called() == [PRIMARY, SECONDARY]


@pytest.mark.asyncio
async def test_repeated_command_is_served_from_cache(make_orchestrator, product_page, session_data):
    provider = confident_cart_provider()
    orchestrator = make_orchestrator(provider)

    await orchestrator.process_intent("add this to my cart", product_page, session_data)
    calls_after_first = len(provider.calls)
    response = await orchestrator.process_intent("Add this to my cart!", product_page, session_data)

    assert len(provider.calls) == calls_after_first
    assert response.metrics.cache_hit is True
    assert response.classification.source == ClassificationSource.CACHE
    assert response.classification.confidence == pytest.approx(0.92)
    assert response.validation.skipped is True
    assert orchestrator.get_metrics().cache_hit_rate == pytest.approx(0.5)


@pytest.mark.asyncio
async def test_skip_cache_reclassifies(make_orchestrator, product_page, session_data):
    provider = confident_cart_provider()
    orchestrator = make_orchestrator(provider)

    await orchestrator.process_intent("add this to my cart", product_page, session_data)
    response = await orchestrator.process_intent(
        "add this to my cart",
        product_page,
        session_data,
        options=ProcessingOptions(skip_cache=True, skip_validation=True),
    )

    assert response.metrics.cache_hit is False
    assert response.validation.skipped is True
    assert provider.models_called() == [PRIMARY, SECONDARY, PRIMARY]


@pytest.mark.asyncio
async def test_gibberish_returns_capped_unknown_with_help(make_orchestrator, plain_page, session_data):
    provider = FakeProvider(
        {
            PRIMARY: classification_json("unknown_intent", 0.2),
            SECONDARY: classification_json("unknown_intent", 0.15),
        }
    )
    orchestrator = make_orchestrator(provider)

    response = await orchestrator.process_intent("xyzzy", plain_page, session_data)

    assert response.classification.intent == IntentCategory.UNKNOWN_INTENT
    assert response.classification.confidence <= 0.3
    assert response.validation.is_valid is False
    assert response.validation.fallback_intent == IntentCategory.HELP_REQUEST
    assert response.recommendations[0].intent == IntentCategory.HELP_REQUEST
    assert len(response.recommendations) <= 5
    assert any("Low confidence" in warning for warning in response.warnings)
    assert provider.models_called() == [PRIMARY, PRIMARY, SECONDARY]


@pytest.mark.asyncio
async def test_timeout_raises_and_never_caches(make_orchestrator, product_page, session_data):
    provider = confident_cart_provider(delay_s=0.5)
    orchestrator = make_orchestrator(provider)

    with pytest.raises(IntentProcessingError) as exc_info:
        await orchestrator.process_intent(
            "add this to my cart", product_page, session_data, options=ProcessingOptions(timeout_ms=100)
        )

    assert exc_info.value.code == ErrorCode.TIMEOUT
    assert exc_info.value.retryable is True
    assert exc_info.value.correlation_id
    await asyncio.sleep(0.6)
    assert provider.completed == 0
    assert await orchestrator.cache.store.count_entries() == 0
    assert orchestrator.get_metrics().error_rate == 1.0


@pytest.mark.asyncio
async def test_concurrent_identical_requests_share_work(make_orchestrator, product_page, session_data):
    provider = confident_cart_provider(delay_s=0.05)
    orchestrator = make_orchestrator(provider)

    first, second = await asyncio.gather(
        orchestrator.process_intent("add this to my cart", product_page, session_data),
        orchestrator.process_intent("add this to my cart", product_page, session_data),
    )

    assert len(provider.calls) == 2
    assert first.correlation_id == second.correlation_id
    assert orchestrator.get_metrics().total_requests == 1


@pytest.mark.asyncio
async def test_different_sessions_do_not_share_work(make_orchestrator, product_page, session_data):
    provider = confident_cart_provider(delay_s=0.05)
    orchestrator = make_orchestrator(provider)
    other_session = session_data.model_copy(update={"session_id": "session-2"})

    first, second = await asyncio.gather(
        orchestrator.process_intent("add this to my cart", product_page, session_data),
        orchestrator.process_intent("add this to my cart", product_page, other_session),
    )

    assert len(provider.calls) == 4
    assert first.correlation_id != second.correlation_id


@pytest.mark.asyncio
async def test_text_scope_dedups_across_sessions(make_orchestrator, product_page, session_data):
    provider = confident_cart_provider(delay_s=0.05)
    orchestrator = make_orchestrator(provider, overrides={"performance": {"dedup_scope": "text"}})
    other_session = session_data.model_copy(update={"session_id": "session-2"})

    await asyncio.gather(
        orchestrator.process_intent("add this to my cart", product_page, session_data),
        orchestrator.process_intent("add this to my cart", product_page, other_session),
    )

    assert len(provider.calls) == 2


@pytest.mark.asyncio
async def test_classification_failure_returns_fallback(make_orchestrator, product_page, session_data):
    provider = FakeProvider({PRIMARY: ModelProviderError("overloaded")})
    orchestrator = make_orchestrator(provider)

    response = await orchestrator.process_intent("add this to my cart", product_page, session_data)

    assert provider.models_called() == [PRIMARY, PRIMARY]
    assert response.classification.intent == IntentCategory.UNKNOWN_INTENT
    assert response.classification.confidence == pytest.approx(0.1)
    assert response.validation.skipped is True
    assert response.errors
    assert "Classification failed, returning a fallback result" in response.warnings
    assert await orchestrator.cache.store.count_entries() == 0
    assert orchestrator.get_metrics().fallback_rate == 1.0


@pytest.mark.asyncio
async def test_negative_feedback_rewrites_cached_intent(make_orchestrator, product_page, session_data):
    orchestrator = make_orchestrator(confident_cart_provider())
    response = await orchestrator.process_intent("add this to my cart", product_page, session_data)

    await orchestrator.learn_from_feedback(
        "add this to my cart",
        IntentCategory.REMOVE_FROM_CART,
        was_correct=False,
        feedback="I wanted to remove it",
        context=response.contextual_analysis,
    )

    key = orchestrator.cache.cache_key("add this to my cart", response.contextual_analysis)
    entry = await orchestrator.cache.store.get_entry(key)
    assert entry.intent == IntentCategory.REMOVE_FROM_CART
    assert entry.confidence == pytest.approx(0.6)


@pytest.mark.asyncio
async def test_predicts_next_intent_from_history(make_orchestrator, product_page, session_data):
    provider = FakeProvider(
        commands={
            "find running shoes": classification_json("search_content", 0.95),
            "show me the first one": classification_json("view_product", 0.95),
            "add it to the cart": classification_json("add_to_cart", 0.95),
        }
    )
    orchestrator = make_orchestrator(provider)
    for text in ("find running shoes", "show me the first one", "add it to the cart"):
        await orchestrator.process_intent(text, product_page, session_data)

    prediction = await orchestrator.predict_next_intent(
        "user-1", [IntentCategory.SEARCH_CONTENT, IntentCategory.VIEW_PRODUCT]
    )

    assert prediction.intent == IntentCategory.ADD_TO_CART
    assert prediction.confidence == pytest.approx(0.1)

    orchestrator.update_configuration({"performance": {"enable_predictive": False}})
    assert await orchestrator.predict_next_intent("user-1", [IntentCategory.SEARCH_CONTENT]) is None


@pytest.mark.asyncio
async def test_prediction_falls_back_to_context_suggestion(make_orchestrator, product_page, session_data):
    orchestrator = make_orchestrator(FakeProvider())
    context = await orchestrator.analyzer.analyze(product_page, session_data)

    prediction = await orchestrator.predict_next_intent("new-user", [IntentCategory.VIEW_PRODUCT], context)

    assert prediction.intent in {suggestion.intent for suggestion in context.suggestion_overrides}
    assert prediction.confidence <= 0.5


@pytest.mark.asyncio
async def test_system_health_reflects_errors(make_orchestrator, product_page, session_data):
    provider = confident_cart_provider()
    orchestrator = make_orchestrator(provider)
    await orchestrator.process_intent("add this to my cart", product_page, session_data)

    healthy = await orchestrator.get_system_health()

    assert healthy.status == HealthStatus.HEALTHY
    assert healthy.active_models == [PRIMARY, SECONDARY]
    assert healthy.cache_status.size == 1
    assert healthy.total_requests == 1

    provider.delay_s = 0.5
    with pytest.raises(IntentProcessingError):
        await orchestrator.process_intent(
            "remove it", product_page, session_data, options=ProcessingOptions(timeout_ms=50)
        )

    unhealthy = await orchestrator.get_system_health()
    assert unhealthy.status == HealthStatus.UNHEALTHY
    assert unhealthy.errors[0].error == "Processing timeout after 50ms"


@pytest.mark.asyncio
async def test_update_configuration_propagates(make_orchestrator, product_page, session_data):
    provider = FakeProvider()
    orchestrator = make_orchestrator(provider)

    orchestrator.update_configuration(
        {"primary_classifier": {"model": "claude-opus-4-1"}, "secondary_validation": {"enabled": False}}
    )
    response = await orchestrator.process_intent("help me", product_page, session_data)

    assert orchestrator.engine.config.model == "claude-opus-4-1"
    assert provider.models_called() == ["claude-opus-4-1"]
    assert response.validation.skipped is True


@pytest.mark.asyncio
async def test_auto_optimize_relaxes_settings_when_degraded(make_orchestrator, product_page, session_data):
    provider = confident_cart_provider(delay_s=0.01)
    orchestrator = make_orchestrator(
        provider,
        overrides={"performance": {"auto_optimize": True, "target_processing_time_ms": 1}},
    )
    await orchestrator.process_intent("add this to my cart", product_page, session_data)

    status = await orchestrator.perform_performance_check()

    assert status == HealthStatus.DEGRADED
    assert orchestrator.config.caching.ttl_ms == 450000
    assert orchestrator.cache.config.ttl_ms == 450000
    assert orchestrator.config.performance.skip_validation_confidence == pytest.approx(0.85)


@pytest.mark.asyncio
async def test_start_and_close_manage_background_tasks(make_orchestrator):
    orchestrator = make_orchestrator(FakeProvider())

    orchestrator.start()
    await asyncio.sleep(0)
    await orchestrator.close()

    assert orchestrator.cache._maintenance_task is None


@pytest.mark.asyncio
async def test_feedback_without_page_uses_fallback_context(make_orchestrator):
    orchestrator = make_orchestrator(FakeProvider())

    await orchestrator.learn_from_feedback(
        "go home", IntentCategory.NAVIGATE_TO_PAGE, was_correct=True, session_data=SessionData(session_id="s")
    )

    assert await orchestrator.cache.store.count_entries() == 0


@pytest.mark.asyncio
async def test_malformed_page_url_is_processed(make_orchestrator, session_data):
    orchestrator = make_orchestrator(confident_cart_provider())
    page = RawPageData(url="http://[::1/cart", html_content="<button>Add to cart</button>")

    response = await orchestrator.process_intent("add this to my cart", page, session_data)

    assert response.classification.intent == IntentCategory.ADD_TO_CART
    assert response.contextual_analysis.page_context.domain == ""


class LateProvider(FakeProvider):
    """Provider that answers even though its request was cancelled mid-call."""

    async def invoke(self, system_prompt, user_prompt, *, settings, cancellation=None):
        if cancellation is not None:
            cancellation.cancel()
        return await super().invoke(system_prompt, user_prompt, settings=settings, cancellation=cancellation)


@pytest.mark.asyncio
async def test_result_from_cancelled_generation_is_not_cached(make_orchestrator, product_page, session_data):
    provider = LateProvider({PRIMARY: classification_json("add_to_cart", 0.95)})
    orchestrator = make_orchestrator(provider)

    response = await orchestrator.process_intent(
        "add this to my cart", product_page, session_data, options=ProcessingOptions(skip_validation=True)
    )

    assert response.classification.intent == IntentCategory.ADD_TO_CART
    assert await orchestrator.cache.store.count_entries() == 0
    assert await orchestrator.cache.store.list_patterns() == []
