import pytest

from conftest import FakeProvider, classification_json

from app.core.errors import ModelProviderError
from app.core.intent_types import (
    ClassificationSource,
    ConflictType,
    EnsembleStrategy,
    IntentCategory,
    ResolutionStrategy,
)
from app.models.intent_classification import ClassificationResult
from app.models.orchestration_config import EnsembleConfig, SecondaryValidationConfig
from app.services.classification_engine import IntentClassificationEngine
from app.services.validation_service import (
    IntentValidationService,
    describe_intent,
    find_contradictory_pairs,
)

SECONDARY = "claude-haiku-4-5"


def result(intent, confidence, model="claude-sonnet-4-5", source=ClassificationSource.PRIMARY):
    return ClassificationResult(intent=intent, confidence=confidence, source=source, model_used=model)


def make_service(provider=None, config=None, ensemble=None):
    engine = IntentClassificationEngine(provider or FakeProvider())
    return IntentValidationService(engine, config, ensemble)


@pytest.mark.asyncio
async def test_disabled_validation_is_skipped(minimal_context):
    provider = FakeProvider()
    service = make_service(provider, SecondaryValidationConfig(enabled=False))

    validation = await service.validate(result(IntentCategory.ADD_TO_CART, 0.8), "add it", minimal_context)

    assert validation.is_valid is True
    assert validation.skipped is True
    assert validation.confidence == pytest.approx(0.8)
    assert provider.calls == []


@pytest.mark.asyncio
async def test_agreeing_models_validate_without_conflicts(minimal_context):
    provider = FakeProvider({SECONDARY: classification_json("add_to_cart", 0.88)})
    service = make_service(provider)

    validation = await service.validate(result(IntentCategory.ADD_TO_CART, 0.92), "add it", minimal_context)

    assert validation.is_valid is True
    assert validation.conflicts == []
    assert validation.resolution is None
    assert validation.ensemble.final_intent == IntentCategory.ADD_TO_CART
    assert validation.ensemble.agreements == 2
    assert validation.ensemble.contributing_models == ["claude-sonnet-4-5", SECONDARY]
    assert validation.confidence == pytest.approx(0.92)
    assert provider.models_called() == [SECONDARY]


@pytest.mark.asyncio
async def test_contradiction_resolved_by_context(minimal_context):
    context = minimal_context.model_copy(update={"contextual_boosts": {IntentCategory.ADD_TO_CART: 0.3}})
    provider = FakeProvider({SECONDARY: classification_json("remove_from_cart", 0.85)})
    service = make_service(provider)

    validation = await service.validate(result(IntentCategory.ADD_TO_CART, 0.9), "cart it", context)

    contradictions = [c for c in validation.conflicts if c.conflict_type == ConflictType.CONTRADICTORY]
    assert len(contradictions) == 1
    assert contradictions[0].resolved is True
    assert set(contradictions[0].conflicting_intents) == {
        IntentCategory.ADD_TO_CART,
        IntentCategory.REMOVE_FROM_CART,
    }
    assert validation.resolution.strategy == ResolutionStrategy.CONTEXT_BOOST
    assert validation.resolution.selected_intent == IntentCategory.ADD_TO_CART
    assert validation.resolution.confidence == pytest.approx(0.9)
    assert validation.is_valid is True
    assert sum(1 for c in validation.conflicts if c.resolved) == 1


@pytest.mark.asyncio
async def test_failed_secondary_contributes_low_confidence_unknown(minimal_context):
    provider = FakeProvider({SECONDARY: ModelProviderError("overloaded")})
    service = make_service(provider)

    secondaries = await service.cross_validate("add it", minimal_context)

    assert len(secondaries) == 1
    assert secondaries[0].intent == IntentCategory.UNKNOWN_INTENT
    assert secondaries[0].confidence == pytest.approx(0.1)
    assert secondaries[0].model_used == SECONDARY
    assert "overloaded" in secondaries[0].reasoning


@pytest.mark.asyncio
async def test_low_confidence_asks_for_confirmation(minimal_context):
    provider = FakeProvider({SECONDARY: classification_json("unknown_intent", 0.15)})
    service = make_service(provider)

    validation = await service.validate(result(IntentCategory.UNKNOWN_INTENT, 0.2), "xyzzy", minimal_context)

    insufficient = [c for c in validation.conflicts if c.conflict_type == ConflictType.INSUFFICIENT_CONTEXT]
    assert len(insufficient) == 1
    assert validation.resolution.strategy == ResolutionStrategy.USER_CONFIRMATION
    assert validation.resolution.confidence <= 0.3
    assert validation.is_valid is False
    assert validation.fallback_intent == IntentCategory.HELP_REQUEST


@pytest.mark.asyncio
async def test_slow_validation_degrades_instead_of_failing(minimal_context):
    provider = FakeProvider(delay_s=0.5)
    service = make_service(provider, SecondaryValidationConfig(timeout_ms=50))

    validation = await service.validate(result(IntentCategory.SEARCH_CONTENT, 0.8), "find", minimal_context)

    assert validation.is_valid is True
    assert validation.confidence == pytest.approx(0.6)
    assert validation.conflicts[0].conflict_type == ConflictType.INSUFFICIENT_CONTEXT
    assert validation.conflicts[0].confidence == pytest.approx(0.3)
    assert service.get_metrics()["failures"] == 1


def test_majority_vote_averages_winner_confidence():
    votes = [
        result(IntentCategory.ADD_TO_CART, 0.9),
        result(IntentCategory.ADD_TO_CART, 0.8),
        result(IntentCategory.CHECKOUT_PROCESS, 0.95),
    ]

    intent, confidence = IntentValidationService.majority_vote(votes)

    assert intent == IntentCategory.ADD_TO_CART
    assert confidence == pytest.approx(0.85)


def test_majority_vote_tie_goes_to_first_seen():
    votes = [result(IntentCategory.OPEN_MENU, 0.6), result(IntentCategory.CLOSE_MENU, 0.9)]

    intent, _ = IntentValidationService.majority_vote(votes)

    assert intent == IntentCategory.OPEN_MENU


def test_weighted_average_uses_clamped_model_weights():
    service = make_service(ensemble=EnsembleConfig(strategy=EnsembleStrategy.WEIGHTED_AVERAGE))
    service.update_model_weight("trusted", 5.0)
    service.update_model_weight("noisy", 0.0)

    intent, confidence = service.weighted_average(
        [result(IntentCategory.OPEN_MENU, 0.6, model="trusted"), result(IntentCategory.CLOSE_MENU, 0.9, model="noisy")]
    )

    assert service.model_weight("trusted") == 2.0
    assert service.model_weight("noisy") == pytest.approx(0.1)
    assert intent == IntentCategory.OPEN_MENU
    assert confidence == pytest.approx(0.6)


def test_confidence_threshold_takes_first_passing_result():
    service = make_service()

    assert service.confidence_threshold(
        [result(IntentCategory.OPEN_MENU, 0.5), result(IntentCategory.CLOSE_MENU, 0.75), result(IntentCategory.HELP_REQUEST, 0.9)]
    ) == (IntentCategory.CLOSE_MENU, 0.75)
    assert service.confidence_threshold(
        [result(IntentCategory.OPEN_MENU, 0.5), result(IntentCategory.CLOSE_MENU, 0.6)]
    ) == (IntentCategory.CLOSE_MENU, 0.6)


def test_contextual_boost_penalizes_constrained_intents(minimal_context):
    context = minimal_context.model_copy(
        update={
            "constrained_intents": [IntentCategory.ADD_TO_CART],
            "contextual_boosts": {IntentCategory.SEARCH_CONTENT: 0.2},
        }
    )

    intent, confidence = IntentValidationService.contextual_boost(
        [result(IntentCategory.ADD_TO_CART, 0.95), result(IntentCategory.SEARCH_CONTENT, 0.6)], context
    )

    assert intent == IntentCategory.SEARCH_CONTENT
    assert confidence == pytest.approx(0.8)


def test_ensemble_caps_unknown_intent(minimal_context):
    service = make_service(ensemble=EnsembleConfig(strategy=EnsembleStrategy.MAJORITY_VOTE))

    decision = service.make_ensemble_decision(
        [result(IntentCategory.UNKNOWN_INTENT, 0.3), result(IntentCategory.UNKNOWN_INTENT, 0.3)], minimal_context
    )

    assert decision.final_intent == IntentCategory.UNKNOWN_INTENT
    assert decision.confidence <= 0.3
    assert decision.strategy == EnsembleStrategy.MAJORITY_VOTE


def test_resolve_without_conflicts_returns_nothing(minimal_context):
    service = make_service()
    decision = service.make_ensemble_decision([result(IntentCategory.HELP_REQUEST, 0.9)], minimal_context)

    resolution, conflicts = service.resolve_conflicts([], decision, minimal_context)

    assert resolution is None
    assert conflicts == []


def test_contradictory_pairs_are_unordered():
    assert find_contradictory_pairs([IntentCategory.REMOVE_FROM_CART, IntentCategory.ADD_TO_CART]) == [
        (IntentCategory.ADD_TO_CART, IntentCategory.REMOVE_FROM_CART)
    ]
    assert find_contradictory_pairs([IntentCategory.ADD_TO_CART]) == []


def test_clarification_questions():
    two = IntentValidationService.clarification_question([IntentCategory.ADD_TO_CART, IntentCategory.SEARCH_CONTENT])
    many = IntentValidationService.clarification_question(
        [IntentCategory.OPEN_MENU, IntentCategory.CLOSE_MENU, IntentCategory.HELP_REQUEST]
    )

    assert two == "I'm not sure if you want to add to cart or search for content. Which one did you mean?"
    assert "open menu, close menu, get help" in many
    assert describe_intent(IntentCategory.TRACK_ORDER) == "track order"


@pytest.mark.asyncio
async def test_metrics_and_health(minimal_context):
    provider = FakeProvider({SECONDARY: classification_json("remove_from_cart", 0.85)})
    service = make_service(provider)

    await service.validate(result(IntentCategory.ADD_TO_CART, 0.9), "cart", minimal_context)

    metrics = service.get_metrics()
    assert metrics["total_validations"] == 1
    assert metrics["conflict_rate"] == 1.0
    assert metrics["conflicts_by_type"]["contradictory"] == 1
    assert metrics["strategy_usage"] == {"contextual_boost": 1}
    assert metrics["model_weights"] == {SECONDARY: 1.0}

    health = await service.health_check()
    assert health == {"healthy": True, "models": [SECONDARY], "errors": []}


@pytest.mark.asyncio
async def test_low_agreement_is_ambiguous_and_asks_for_clarification(minimal_context):
    provider = FakeProvider({SECONDARY: classification_json("filter_results", 0.85)})
    service = make_service(provider)

    validation = await service.validate(result(IntentCategory.SEARCH_CONTENT, 0.9), "show me shoes", minimal_context)

    assert len(validation.conflicts) == 1
    conflict = validation.conflicts[0]
    assert conflict.conflict_type == ConflictType.AMBIGUOUS
    assert conflict.confidence == pytest.approx(0.5)
    assert conflict.resolved is True
    assert set(conflict.conflicting_intents) == {IntentCategory.SEARCH_CONTENT, IntentCategory.FILTER_RESULTS}
    assert validation.resolution.strategy == ResolutionStrategy.CLARIFICATION
    assert validation.resolution.clarification_question == (
        "I'm not sure if you want to search for content or filter results. Which one did you mean?"
    )
