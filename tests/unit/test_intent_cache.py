from datetime import datetime, timedelta
from unittest.mock import AsyncMock

import pytest

from app.core.intent_types import ClassificationSource, IntentCategory, PageType
from app.models.intent_classification import ClassificationResult
from app.models.orchestration_config import CachingConfig
from app.models.processing import ProcessingRequest
from app.models.cache_entry import IntentPattern
from app.services.intent_cache import IntentCacheManager, normalize_text, text_similarity


class FakeClock:
    def __init__(self):
        self.now = datetime(2024, 1, 1, 12, 0, 0)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


def make_result(intent=IntentCategory.ADD_TO_CART, confidence=0.9):
    return ClassificationResult(
        intent=intent,
        confidence=confidence,
        parameters={"target": "item"},
        source=ClassificationSource.PRIMARY,
        model_used="test-model",
    )


def on_page(context, page_type):
    return context.model_copy(
        update={"page_context": context.page_context.model_copy(update={"page_type": page_type})}
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(clock):
    return IntentCacheManager(clock=clock)


def test_normalize_and_similarity():
    assert normalize_text("  Add THIS to my cart!! ") == "add this to my cart"
    assert text_similarity("add to cart", "add to cart") == 1.0
    assert text_similarity("open the menu", "open menu") == pytest.approx(2 / 3)
    assert text_similarity("", "") == 0.0
    assert text_similarity("cart cart cart", "add to cart") == pytest.approx(1 / 3)


@pytest.mark.asyncio
async def test_store_then_lookup_hits_cache(cache, minimal_context):
    request = ProcessingRequest(text="Add this to my cart", context=minimal_context)
    await cache.store_result(request, make_result())

    hit = await cache.lookup(ProcessingRequest(text="add   this to my cart!", context=minimal_context))

    assert hit is not None
    assert hit.source == ClassificationSource.CACHE
    assert hit.intent == IntentCategory.ADD_TO_CART
    assert hit.parameters == {"target": "item"}
    stats = await cache.get_statistics()
    assert stats.size == 1
    assert stats.hit_rate == 1.0


@pytest.mark.asyncio
async def test_context_strategy_separates_page_types(cache, minimal_context):
    await cache.store_result(ProcessingRequest(text="go back", context=minimal_context), make_result())

    miss = await cache.lookup(ProcessingRequest(text="go back", context=on_page(minimal_context, PageType.CART)))

    assert miss is None


@pytest.mark.asyncio
async def test_expired_entry_is_dropped(cache, clock, minimal_context):
    request = ProcessingRequest(text="show details", context=minimal_context)
    await cache.store_result(request, make_result(IntentCategory.SHOW_DETAILS))

    clock.advance(milliseconds=CachingConfig().ttl_ms + 1)

    assert await cache.lookup(request) is None
    assert await cache.store.count_entries() == 0


@pytest.mark.asyncio
async def test_pattern_becomes_usable_after_minimum_occurrences(cache, minimal_context):
    text = "put it in the basket"
    for user in ("a", "b", "c"):
        request = ProcessingRequest(text=text, context=minimal_context, user_id=user)
        await cache.store_result(request, make_result(confidence=0.95))

    elsewhere = on_page(minimal_context, PageType.PRODUCT)
    result = await cache.lookup(ProcessingRequest(text=text, context=elsewhere))

    assert result is not None
    assert result.source == ClassificationSource.PATTERN
    assert result.model_used == "pattern"
    assert result.intent == IntentCategory.ADD_TO_CART
    assert result.confidence <= 0.85

    pattern = await cache.store.get_pattern(cache.pattern_key(normalize_text(text), IntentCategory.ADD_TO_CART))
    assert pattern.occurrences == 3
    assert set(pattern.users) == {"a", "b", "c"}


@pytest.mark.asyncio
async def test_pattern_not_used_below_minimum(cache, minimal_context):
    text = "put it in the basket"
    for _ in range(2):
        await cache.store_result(ProcessingRequest(text=text, context=minimal_context), make_result())

    result = await cache.lookup(ProcessingRequest(text=text, context=on_page(minimal_context, PageType.PRODUCT)))

    assert result is None


@pytest.mark.asyncio
async def test_user_pattern_exact_match(cache, minimal_context):
    text = "open the pricing page"
    await cache.store_result(
        ProcessingRequest(text=text, context=minimal_context, user_id="user-1"),
        make_result(IntentCategory.NAVIGATE_TO_PAGE, 0.9),
    )

    result = await cache.lookup(
        ProcessingRequest(text=text, context=on_page(minimal_context, PageType.BLOG), user_id="user-1")
    )

    assert result is not None
    assert result.source == ClassificationSource.PATTERN
    assert result.model_used == "user_pattern"
    assert result.intent == IntentCategory.NAVIGATE_TO_PAGE
    assert result.confidence == pytest.approx(0.8)


@pytest.mark.asyncio
async def test_positive_feedback_never_lowers_confidence(cache, minimal_context):
    request = ProcessingRequest(text="search for shoes", context=minimal_context)
    await cache.store_result(request, make_result(IntentCategory.SEARCH_CONTENT, 0.75))
    key = cache.cache_key(request.text, request.context)

    previous = (await cache.store.get_entry(key)).confidence
    for _ in range(5):
        await cache.record_feedback(request, IntentCategory.SEARCH_CONTENT, was_correct=True)
        current = (await cache.store.get_entry(key)).confidence
        assert current >= previous
        assert current <= 1.0
        previous = current

    assert previous == pytest.approx(1.0)


@pytest.mark.asyncio
async def test_negative_feedback_replaces_intent(cache, minimal_context):
    request = ProcessingRequest(text="remove that", context=minimal_context)
    await cache.store_result(request, make_result(IntentCategory.DELETE_CONTENT, 0.8))

    await cache.record_feedback(request, IntentCategory.REMOVE_FROM_CART, was_correct=False)

    entry = await cache.store.get_entry(cache.cache_key(request.text, request.context))
    assert entry.intent == IntentCategory.REMOVE_FROM_CART
    assert entry.confidence == pytest.approx(0.6)
    assert entry.success is False


@pytest.mark.asyncio
async def test_eviction_keeps_the_strongest_entry(clock, minimal_context):
    cache = IntentCacheManager(CachingConfig(max_entries=10), clock=clock)
    favourite = ProcessingRequest(text="favourite command", context=minimal_context)
    await cache.store_result(favourite, make_result(confidence=0.99))
    for _ in range(5):
        assert await cache.lookup(favourite) is not None

    for index in range(10):
        request = ProcessingRequest(text=f"rare command {index}", context=minimal_context)
        await cache.store_result(request, make_result(IntentCategory.CLICK_ELEMENT, 0.5))

    assert await cache.store.count_entries() <= 8
    assert await cache.store.get_entry(cache.cache_key(favourite.text, minimal_context)) is not None
    assert (await cache.get_statistics()).evictions >= 3


@pytest.mark.asyncio
async def test_predict_next_from_recorded_sequences(cache, minimal_context):
    for text, intent in (
        ("find running shoes", IntentCategory.SEARCH_CONTENT),
        ("show me the first one", IntentCategory.VIEW_PRODUCT),
        ("add it to the cart", IntentCategory.ADD_TO_CART),
    ):
        await cache.store_result(
            ProcessingRequest(text=text, context=minimal_context, user_id="user-1"), make_result(intent, 0.9)
        )

    prediction = await cache.predict_next(
        "user-1", [IntentCategory.SEARCH_CONTENT, IntentCategory.VIEW_PRODUCT]
    )

    assert prediction is not None
    assert prediction.intent == IntentCategory.ADD_TO_CART
    assert prediction.confidence == pytest.approx(0.1)
    assert await cache.predict_next("nobody", [IntentCategory.SEARCH_CONTENT]) is None

    profile = await cache.get_learning_profile("user-1")
    assert profile.preferred_intents["add_to_cart"] == 1


@pytest.mark.asyncio
async def test_maintenance_and_clear_user(cache, clock, minimal_context):
    await cache.store_result(
        ProcessingRequest(text="next page", context=minimal_context, user_id="user-1"),
        make_result(IntentCategory.NAVIGATE_FORWARD, 0.9),
    )

    clock.advance(days=4)
    removed = await cache.run_maintenance()

    assert removed == {"expired_entries": 1, "pruned_patterns": 1}

    await cache.clear_user("user-1")
    assert await cache.store.get_user_pattern("user-1") is None


@pytest.mark.asyncio
async def test_disabled_cache_is_bypassed(minimal_context):
    cache = IntentCacheManager(CachingConfig(enabled=False))
    request = ProcessingRequest(text="hello", context=minimal_context)

    await cache.store_result(request, make_result())

    assert await cache.lookup(request) is None
    assert await cache.store.count_entries() == 0


@pytest.mark.asyncio
async def test_store_failures_bypass_the_cache(minimal_context):
    store = AsyncMock()
    store.get_entry.side_effect = RuntimeError("store unavailable")
    cache = IntentCacheManager(store=store)
    request = ProcessingRequest(text="open the menu", context=minimal_context)

    assert await cache.lookup(request) is None
    await cache.store_result(request, make_result(IntentCategory.OPEN_MENU))

    store.put_entry.assert_not_awaited()


@pytest.mark.asyncio
async def test_fuzzy_pattern_match_scales_confidence(cache, clock, minimal_context):
    text = "add this item to my cart"
    await cache.store.put_pattern(
        IntentPattern(
            key=cache.pattern_key(text, IntentCategory.ADD_TO_CART),
            text=text,
            intent=IntentCategory.ADD_TO_CART,
            confidence=0.8,
            occurrences=3,
            last_seen=clock(),
        )
    )

    result = await cache.lookup(ProcessingRequest(text="add this item to cart", context=minimal_context))

    assert result is not None
    assert result.source == ClassificationSource.PATTERN
    assert result.intent == IntentCategory.ADD_TO_CART
    assert result.confidence == pytest.approx(0.8 * 5 / 6)


@pytest.mark.asyncio
async def test_repeated_tokens_do_not_match_a_pattern(cache, clock, minimal_context):
    await cache.store.put_pattern(
        IntentPattern(
            key=cache.pattern_key("add to cart", IntentCategory.ADD_TO_CART),
            text="add to cart",
            intent=IntentCategory.ADD_TO_CART,
            confidence=0.8,
            occurrences=3,
            last_seen=clock(),
        )
    )

    assert await cache.lookup(ProcessingRequest(text="cart cart cart", context=minimal_context)) is None


@pytest.mark.asyncio
async def test_often_hit_low_confidence_entry_is_dropped(cache, minimal_context):
    request = ProcessingRequest(text="close the popup", context=minimal_context)
    await cache.store_result(request, make_result(IntentCategory.CANCEL_OPERATION, 0.9))
    key = cache.cache_key(request.text, request.context)
    entry = await cache.store.get_entry(key)
    await cache.store.put_entry(entry.model_copy(update={"hit_count": 4, "average_confidence": 0.4}))

    assert await cache.lookup(request) is None
    assert await cache.store.get_entry(key) is None


@pytest.mark.asyncio
async def test_store_failures_do_not_break_prediction_or_profiles():
    store = AsyncMock()
    store.get_user_pattern.side_effect = RuntimeError("store unavailable")
    cache = IntentCacheManager(store=store)

    assert await cache.predict_next("user-1", [IntentCategory.SEARCH_CONTENT]) is None
    assert await cache.get_learning_profile("user-1") is None
