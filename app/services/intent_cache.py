"""Classification cache with pattern learning and per-user adaptation.

The manager is the only writer of cache entries, patterns and user patterns.
Records are immutable and replaced wholesale through the injected
``IntentStore``; read-modify-write sequences run under one ``asyncio.Lock``.
Lookups and writes never raise: failures are logged and the cache is bypassed.
"""

import asyncio
import logging
import re
import time
from collections import Counter
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from app.core.intent_types import CacheKeyStrategy, ClassificationSource, IntentCategory
from app.models.cache_entry import (
    CacheEntry,
    CacheStatistics,
    CacheableContext,
    IntentPattern,
    IntentSequence,
    UserPattern,
)
from app.models.context_analysis import ContextualAnalysis, UserLearningProfile
from app.models.intent_classification import ClassificationResult
from app.models.orchestration_config import CachingConfig, LearningConfig
from app.models.processing import NextIntentPrediction, ProcessingRequest
from app.repositories.intent_store import InMemoryIntentStore, IntentStore

logger = logging.getLogger(__name__)

MAX_NORMALIZED_LENGTH = 200
DIRECT_HIT_MIN_AVERAGE_CONFIDENCE = 0.5
DIRECT_HIT_MAX_LOW_CONFIDENCE_HITS = 3
PATTERN_LEARN_MIN_CONFIDENCE = 0.7
PATTERN_MATCH_MIN_CONFIDENCE = 0.6
PATTERN_FUZZY_THRESHOLD = 0.8
PATTERN_CONFIDENCE_CAP = 0.85
USER_LEARN_MIN_CONFIDENCE = 0.6
USER_FUZZY_THRESHOLD = 0.85
USER_EXACT_CONFIDENCE = 0.8
USER_FUZZY_SCALE = 0.7
USER_CONFIDENCE_CAP = 0.8
SUCCESS_CONFIDENCE = 0.7
DEFAULT_ADAPTIVE_THRESHOLD = 0.7
ADAPTIVE_THRESHOLD_BOUNDS = (0.3, 0.9)
PREDICTION_CONFIDENCE_CAP = 0.7
EVICTION_TARGET_RATIO = 0.8
MAX_PATTERN_CONTEXTS = 5
MAX_PATTERN_USERS = 10
MAX_SEQUENCE_LENGTH = 4
MAX_SEQUENCES_PER_USER = 100
ENTRIES_PER_MB = 1024


def normalize_text(text: str) -> str:
    """Lowercase, strip punctuation, collapse whitespace, cap length."""
    normalized = re.sub(r"[^\w\s]", "", text.lower().strip())
    normalized = re.sub(r"\s+", " ", normalized).strip()
    return normalized[:MAX_NORMALIZED_LENGTH]


def text_similarity(first: str, second: str) -> float:
    """Token-overlap ratio: common tokens / max(token counts).

    Common tokens are counted as a multiset intersection, so a repeated token
    only matches as often as it occurs in both texts.
    """
    first_tokens = first.split(" ") if first else []
    second_tokens = second.split(" ") if second else []
    total = max(len(first_tokens), len(second_tokens))
    if total == 0:
        return 0.0
    common = sum((Counter(first_tokens) & Counter(second_tokens)).values())
    return common / total


def cacheable_context(context: ContextualAnalysis) -> CacheableContext:
    """Reduce an analysis to the privacy-safe fields kept with cached results."""
    page = context.page_context
    return CacheableContext(
        page_type=page.page_type,
        content_type=page.content_type,
        current_mode=page.current_mode,
        capabilities=tuple(capability.value for capability in page.capabilities[:5]),
        role=context.user_context.role,
        tenant_id=context.session_context.tenant_id,
        site_id=context.session_context.site_id,
    )


class IntentCacheManager:
    """Memoizes classifications and learns reusable phrase patterns."""

    def __init__(
        self,
        config: Optional[CachingConfig] = None,
        learning: Optional[LearningConfig] = None,
        store: Optional[IntentStore] = None,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        """Initialize the cache manager.

        Args:
            config: Cache configuration
            learning: Learning configuration (pattern detection, user learning)
            store: Backing store; a fresh in-memory store when omitted
            clock: Wall clock used for expiry, ageing and eviction scoring
        """
        self.config = config or CachingConfig()
        self.learning = learning or LearningConfig()
        self.store: IntentStore = store or InMemoryIntentStore()
        self._clock = clock
        self._lock = asyncio.Lock()
        self._maintenance_task: Optional[asyncio.Task] = None
        self._metrics: Dict[str, float] = {
            "total_lookups": 0,
            "hits": 0,
            "misses": 0,
            "pattern_hits": 0,
            "user_pattern_hits": 0,
            "adaptations": 0,
            "evictions": 0,
            "total_hit_time_ms": 0.0,
        }

    # ------------------------------------------------------------------
    # Keys
    # ------------------------------------------------------------------

    def cache_key(self, text: str, context: ContextualAnalysis) -> str:
        normalized = normalize_text(text)
        page = context.page_context
        strategy = self.config.key_strategy
        if strategy == CacheKeyStrategy.TEXT_CONTEXT:
            return f"text_ctx:{normalized}:{page.page_type.value}_{page.current_mode.value}"
        if strategy == CacheKeyStrategy.FULL_CONTEXT:
            capabilities = ",".join(capability.value for capability in page.capabilities[:3])
            full_context = "_".join(
                [
                    page.page_type.value,
                    page.content_type.value,
                    page.current_mode.value,
                    context.user_context.role.value,
                    capabilities,
                ]
            )
            return f"full:{normalized}:{full_context}"
        return f"text:{normalized}"

    @staticmethod
    def pattern_key(normalized_text: str, intent: IntentCategory) -> str:
        return f"pattern:{normalized_text}:{intent.value}"

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    async def lookup(self, request: ProcessingRequest) -> Optional[ClassificationResult]:
        """Return a cached, pattern or user-pattern classification, or None.

        Args:
            request: Request carrying the utterance and analyzed context

        Returns:
            ClassificationResult with source ``cache`` or ``pattern``, or None on miss
        """
        if not self.config.enabled:
            return None

        start = time.perf_counter()
        self._metrics["total_lookups"] += 1
        try:
            key = self.cache_key(request.text, request.context)
            entry = await self.store.get_entry(key)
            if entry is not None:
                if self._is_valid(entry):
                    await self._record_hit(key)
                    elapsed = (time.perf_counter() - start) * 1000
                    self._metrics["hits"] += 1
                    self._metrics["total_hit_time_ms"] += elapsed
                    logger.debug("Cache hit for %s (intent=%s)", key[:50], entry.intent.value)
                    return ClassificationResult(
                        intent=entry.intent,
                        confidence=entry.confidence,
                        parameters=dict(entry.parameters),
                        reasoning="Retrieved from cache",
                        source=ClassificationSource.CACHE,
                        processing_time_ms=elapsed,
                        model_used="cache",
                    )
                async with self._lock:
                    await self.store.delete_entry(key)
                logger.debug("Dropped stale cache entry %s", key[:50])

            if self.learning.pattern_detection:
                match = await self._find_pattern_match(normalize_text(request.text))
                if match is not None:
                    pattern, confidence = match
                    self._metrics["pattern_hits"] += 1
                    result = ClassificationResult(
                        intent=pattern.intent,
                        confidence=min(PATTERN_CONFIDENCE_CAP, confidence),
                        reasoning=f"Matched learned pattern: {pattern.text}",
                        source=ClassificationSource.PATTERN,
                        processing_time_ms=(time.perf_counter() - start) * 1000,
                        model_used="pattern",
                    )
                    await self.store_result(request, result)
                    return result

            if self.learning.enabled and request.user_id:
                user_match = await self._find_user_pattern(request.user_id, normalize_text(request.text))
                if user_match is not None:
                    intent, confidence = user_match
                    self._metrics["user_pattern_hits"] += 1
                    return ClassificationResult(
                        intent=intent,
                        confidence=min(USER_CONFIDENCE_CAP, confidence),
                        reasoning="Matched user learning pattern",
                        source=ClassificationSource.PATTERN,
                        processing_time_ms=(time.perf_counter() - start) * 1000,
                        model_used="user_pattern",
                    )

            self._metrics["misses"] += 1
            return None
        except Exception as e:
            self._metrics["misses"] += 1
            logger.exception("Cache lookup failed, bypassing cache: %s", e)
            return None

    def _is_valid(self, entry: CacheEntry) -> bool:
        if entry.expires_at <= self._clock():
            return False
        if (
            entry.average_confidence < DIRECT_HIT_MIN_AVERAGE_CONFIDENCE
            and entry.hit_count > DIRECT_HIT_MAX_LOW_CONFIDENCE_HITS
        ):
            return False
        return True

    async def _record_hit(self, key: str) -> None:
        async with self._lock:
            current = await self.store.get_entry(key)
            if current is not None:
                await self.store.put_entry(
                    current.model_copy(update={"hit_count": current.hit_count + 1, "last_used": self._clock()})
                )

    async def _find_pattern_match(self, normalized: str) -> Optional[Tuple[IntentPattern, float]]:
        usable = [
            pattern
            for pattern in await self.store.list_patterns()
            if pattern.occurrences >= self.config.pattern_min_occurrences
        ]

        for pattern in usable:
            if pattern.text == normalized and pattern.confidence >= PATTERN_MATCH_MIN_CONFIDENCE:
                async with self._lock:
                    current = await self.store.get_pattern(pattern.key)
                    if current is not None:
                        await self.store.put_pattern(current.model_copy(update={"last_seen": self._clock()}))
                return pattern, pattern.confidence

        best: Optional[Tuple[IntentPattern, float]] = None
        best_similarity = 0.0
        for pattern in usable:
            similarity = text_similarity(normalized, pattern.text)
            if similarity >= PATTERN_FUZZY_THRESHOLD and similarity > best_similarity:
                best_similarity = similarity
                best = (pattern, pattern.confidence * similarity)
        return best

    async def _find_user_pattern(self, user_id: str, normalized: str) -> Optional[Tuple[IntentCategory, float]]:
        user_pattern = await self.store.get_user_pattern(user_id)
        if user_pattern is None:
            return None

        exact = user_pattern.phrases.get(normalized)
        if exact is not None:
            return exact, USER_EXACT_CONFIDENCE

        for phrase, intent in user_pattern.phrases.items():
            similarity = text_similarity(normalized, phrase)
            if similarity >= USER_FUZZY_THRESHOLD:
                return intent, USER_FUZZY_SCALE * similarity
        return None

    # ------------------------------------------------------------------
    # Store
    # ------------------------------------------------------------------

    async def store_result(self, request: ProcessingRequest, result: ClassificationResult) -> None:
        """Write or merge the cache entry and fold the result into learned patterns.

        Pattern-sourced results refresh the cache entry only, so a pattern
        never reinforces itself.
        """
        if not self.config.enabled:
            return

        try:
            key = self.cache_key(request.text, request.context)
            now = self._clock()
            async with self._lock:
                existing = await self.store.get_entry(key)
                if existing is not None:
                    hit_count = existing.hit_count + 1
                    average = (existing.average_confidence * existing.hit_count + result.confidence) / hit_count
                else:
                    hit_count = 1
                    average = result.confidence
                await self.store.put_entry(
                    CacheEntry(
                        key=key,
                        intent=result.intent,
                        confidence=result.confidence,
                        parameters=dict(result.parameters),
                        context=cacheable_context(request.context),
                        hit_count=hit_count,
                        last_used=now,
                        success=result.confidence >= SUCCESS_CONFIDENCE,
                        average_confidence=min(1.0, average),
                        expires_at=now + timedelta(milliseconds=self.config.ttl_ms),
                        source=result.source.value,
                    )
                )

                if result.source != ClassificationSource.PATTERN:
                    if self.learning.pattern_detection:
                        await self._learn_pattern(request, result, now)
                    if self.learning.enabled and request.user_id:
                        await self._update_user_pattern(request, result, now)

                if await self._over_capacity():
                    await self._evict()
            logger.debug("Cached %s as %s (%.2f)", key[:50], result.intent.value, result.confidence)
        except Exception as e:
            logger.exception("Failed to cache intent %s: %s", result.intent.value, e)

    async def _learn_pattern(self, request: ProcessingRequest, result: ClassificationResult, now: datetime) -> None:
        if result.confidence < PATTERN_LEARN_MIN_CONFIDENCE:
            return

        normalized = normalize_text(request.text)
        key = self.pattern_key(normalized, result.intent)
        existing = await self.store.get_pattern(key)
        snapshot = cacheable_context(request.context)

        if existing is None:
            pattern = IntentPattern(
                key=key,
                text=normalized,
                intent=result.intent,
                confidence=result.confidence,
                occurrences=1,
                last_seen=now,
                contexts=(snapshot,),
                users=(request.user_id,) if request.user_id else (),
            )
        else:
            occurrences = existing.occurrences + 1
            contexts = existing.contexts if snapshot in existing.contexts else existing.contexts + (snapshot,)
            users = existing.users
            if request.user_id and request.user_id not in users:
                users = users + (request.user_id,)
            pattern = existing.model_copy(
                update={
                    "confidence": (existing.confidence * existing.occurrences + result.confidence) / occurrences,
                    "occurrences": occurrences,
                    "last_seen": now,
                    "contexts": contexts[-MAX_PATTERN_CONTEXTS:],
                    "users": users[-MAX_PATTERN_USERS:],
                }
            )
        await self.store.put_pattern(pattern)
        if pattern.occurrences == self.config.pattern_min_occurrences:
            logger.debug("Pattern became usable: %s -> %s", normalized[:50], result.intent.value)

    async def _update_user_pattern(
        self, request: ProcessingRequest, result: ClassificationResult, now: datetime
    ) -> None:
        if result.confidence < USER_LEARN_MIN_CONFIDENCE:
            return

        user_id = request.user_id
        normalized = normalize_text(request.text)
        existing = await self.store.get_user_pattern(user_id)
        if existing is None:
            existing = UserPattern(
                user_id=user_id,
                recent_intents=tuple(request.context.recent_intents(MAX_SEQUENCE_LENGTH - 1)),
                last_updated=now,
            )

        phrases = dict(existing.phrases)
        phrases[normalized] = result.intent

        thresholds = dict(existing.adaptive_thresholds)
        if self.learning.adaptive_thresholds:
            current = thresholds.get(result.intent, DEFAULT_ADAPTIVE_THRESHOLD)
            adjustment = 0.02 if result.confidence > 0.8 else -0.01
            low, high = ADAPTIVE_THRESHOLD_BOUNDS
            thresholds[result.intent] = round(max(low, min(high, current + adjustment)), 4)

        recent = existing.recent_intents + (result.intent,)
        sequences = _record_sequences(existing.sequences, recent, now)

        await self.store.put_user_pattern(
            existing.model_copy(
                update={
                    "phrases": phrases,
                    "adaptive_thresholds": thresholds,
                    "sequences": sequences,
                    "recent_intents": recent[-(MAX_SEQUENCE_LENGTH - 1):],
                    "last_updated": now,
                }
            )
        )

    # ------------------------------------------------------------------
    # Feedback and prediction
    # ------------------------------------------------------------------

    async def record_feedback(
        self,
        request: ProcessingRequest,
        actual_intent: IntentCategory,
        was_correct: bool,
    ) -> None:
        """Adjust the cached entry, patterns and user pattern from user feedback.

        Args:
            request: Request the feedback refers to
            actual_intent: Intent the user actually meant
            was_correct: Whether the returned classification was correct
        """
        if not self.learning.enabled:
            return

        try:
            key = self.cache_key(request.text, request.context)
            normalized = normalize_text(request.text)
            now = self._clock()
            async with self._lock:
                entry = await self.store.get_entry(key)
                if entry is not None:
                    await self.store.put_entry(entry.model_copy(update=_feedback_update(entry, actual_intent, was_correct)))

                if self.learning.pattern_detection:
                    await self._apply_pattern_feedback(normalized, actual_intent, was_correct)

                if request.user_id:
                    user_pattern = await self.store.get_user_pattern(request.user_id)
                    if user_pattern is not None:
                        phrases = dict(user_pattern.phrases)
                        thresholds = dict(user_pattern.adaptive_thresholds)
                        if was_correct or normalized in phrases:
                            phrases[normalized] = actual_intent
                        if self.learning.adaptive_thresholds:
                            current = thresholds.get(actual_intent, DEFAULT_ADAPTIVE_THRESHOLD)
                            adjustment = -0.01 if was_correct else 0.02
                            low, high = ADAPTIVE_THRESHOLD_BOUNDS
                            thresholds[actual_intent] = round(max(low, min(high, current + adjustment)), 4)
                        await self.store.put_user_pattern(
                            user_pattern.model_copy(
                                update={"phrases": phrases, "adaptive_thresholds": thresholds, "last_updated": now}
                            )
                        )
            self._metrics["adaptations"] += 1
            logger.debug("Applied feedback for %s: actual=%s correct=%s", key[:50], actual_intent.value, was_correct)
        except Exception as e:
            logger.exception("Failed to learn from feedback: %s", e)

    async def _apply_pattern_feedback(
        self, normalized: str, actual_intent: IntentCategory, was_correct: bool
    ) -> None:
        if was_correct:
            pattern = await self.store.get_pattern(self.pattern_key(normalized, actual_intent))
            if pattern is not None:
                await self.store.put_pattern(
                    pattern.model_copy(
                        update={
                            "success_rate": min(1.0, pattern.success_rate + 0.05),
                            "confidence": min(1.0, pattern.confidence + 0.02),
                        }
                    )
                )
            return

        for pattern in await self.store.list_patterns():
            if pattern.text == normalized and pattern.intent != actual_intent:
                await self.store.put_pattern(
                    pattern.model_copy(
                        update={
                            "success_rate": max(0.0, pattern.success_rate - 0.1),
                            "confidence": max(0.1, pattern.confidence - 0.05),
                        }
                    )
                )

    async def predict_next(
        self, user_id: str, recent_intents: Sequence[IntentCategory]
    ) -> Optional[NextIntentPrediction]:
        """Predict the intent most likely to follow ``recent_intents`` for a user."""
        if not self.learning.enabled or not user_id or not recent_intents:
            return None

        try:
            user_pattern = await self.store.get_user_pattern(user_id)
        except Exception as e:
            logger.exception("Failed to load user pattern for prediction: %s", e)
            return None
        if user_pattern is None:
            return None

        prefix = tuple(recent_intents)
        candidates: Counter = Counter()
        for sequence in user_pattern.sequences:
            if len(sequence.intents) > len(prefix) and sequence.intents[: len(prefix)] == prefix:
                candidates[sequence.intents[len(prefix)]] += sequence.frequency

        if not candidates:
            return None

        intent, frequency = candidates.most_common(1)[0]
        return NextIntentPrediction(intent=intent, confidence=min(PREDICTION_CONFIDENCE_CAP, frequency / 10))

    async def get_learning_profile(self, user_id: str) -> Optional[UserLearningProfile]:
        try:
            user_pattern = await self.store.get_user_pattern(user_id)
        except Exception as e:
            logger.exception("Failed to load learning profile for %s: %s", user_id, e)
            return None
        if user_pattern is None:
            return None
        preferred = Counter(intent.value for intent in user_pattern.phrases.values())
        return UserLearningProfile(
            preferred_intents=dict(preferred),
            adaptive_thresholds={intent.value: value for intent, value in user_pattern.adaptive_thresholds.items()},
            frequently_used_commands=list(user_pattern.phrases.keys())[:10],
        )

    # ------------------------------------------------------------------
    # Eviction and maintenance
    # ------------------------------------------------------------------

    def memory_usage_mb(self, entry_count: int) -> float:
        return entry_count / ENTRIES_PER_MB

    async def _over_capacity(self) -> bool:
        count = await self.store.count_entries()
        return count > self.config.max_entries or self.memory_usage_mb(count) > self.config.memory_limit_mb

    def eviction_score(self, entry: CacheEntry) -> float:
        """Lower scores are evicted first."""
        age_days = (self._clock() - entry.last_used).total_seconds() / 86400
        score = 100.0
        score -= min(50.0, age_days * 10)
        score += min(30.0, entry.hit_count * 2)
        score += 20 if entry.success else -20
        score += entry.average_confidence * 20
        return max(0.0, score)

    async def _evict(self) -> int:
        entries = await self.store.list_entries()
        target = int(self.config.max_entries * EVICTION_TARGET_RATIO)
        memory_target = int(self.config.memory_limit_mb * EVICTION_TARGET_RATIO * ENTRIES_PER_MB)
        target = min(target, memory_target)
        excess = len(entries) - target
        if excess <= 0:
            return 0

        entries.sort(key=self.eviction_score)
        for entry in entries[:excess]:
            await self.store.delete_entry(entry.key)
        self._metrics["evictions"] += excess
        logger.debug("Evicted %d cache entries", excess)
        return excess

    async def run_maintenance(self) -> Dict[str, int]:
        """Drop invalid entries and stale, low-value patterns."""
        now = self._clock()
        expired = 0
        pruned = 0
        async with self._lock:
            for entry in await self.store.list_entries():
                if not self._is_valid(entry):
                    await self.store.delete_entry(entry.key)
                    expired += 1

            for pattern in await self.store.list_patterns():
                idle_days = (now - pattern.last_seen).total_seconds() / 86400
                if (pattern.success_rate < 0.3 and idle_days > 7) or (
                    pattern.occurrences < self.config.pattern_min_occurrences and idle_days > 3
                ):
                    await self.store.delete_pattern(pattern.key)
                    pruned += 1

        if expired or pruned:
            logger.info("Cache maintenance removed %d entries and %d patterns", expired, pruned)
        return {"expired_entries": expired, "pruned_patterns": pruned}

    async def _maintenance_loop(self) -> None:
        while True:
            await asyncio.sleep(self.config.maintenance_interval_s)
            try:
                await self.run_maintenance()
            except Exception as e:
                logger.exception("Cache maintenance failed: %s", e)

    def start(self) -> None:
        """Start the periodic maintenance sweep on the running loop."""
        if self._maintenance_task is None or self._maintenance_task.done():
            self._maintenance_task = asyncio.get_running_loop().create_task(self._maintenance_loop())

    async def close(self) -> None:
        if self._maintenance_task is not None:
            self._maintenance_task.cancel()
            try:
                await self._maintenance_task
            except asyncio.CancelledError:
                pass
            self._maintenance_task = None

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    async def get_statistics(self) -> CacheStatistics:
        entries = await self.store.list_entries()
        total = int(self._metrics["total_lookups"])
        hits = int(self._metrics["hits"])
        intent_counts = Counter(entry.intent.value for entry in entries)
        return CacheStatistics(
            size=len(entries),
            hit_rate=hits / total if total else 0.0,
            memory_usage_mb=self.memory_usage_mb(len(entries)),
            pattern_count=len(await self.store.list_patterns()),
            user_pattern_count=len(await self.store.list_user_patterns()),
            average_confidence=sum(entry.confidence for entry in entries) / len(entries) if entries else 0.0,
            top_intents=[{"intent": intent, "count": count} for intent, count in intent_counts.most_common(5)],
            total_lookups=total,
            hits=hits,
            pattern_hits=int(self._metrics["pattern_hits"] + self._metrics["user_pattern_hits"]),
            evictions=int(self._metrics["evictions"]),
        )

    async def clear(self) -> None:
        async with self._lock:
            await self.store.clear()
        logger.info("Intent cache cleared")

    async def clear_user(self, user_id: str) -> None:
        """Forget everything learned for one user."""
        async with self._lock:
            await self.store.delete_user_pattern(user_id)
            for pattern in await self.store.list_patterns():
                if user_id in pattern.users:
                    users = tuple(user for user in pattern.users if user != user_id)
                    await self.store.put_pattern(pattern.model_copy(update={"users": users}))
        logger.debug("Cleared learned data for user %s", user_id)

    async def export(self) -> Dict[str, List[Dict[str, Any]]]:
        return {
            "entries": [entry.model_dump(mode="json") for entry in await self.store.list_entries()],
            "patterns": [pattern.model_dump(mode="json") for pattern in await self.store.list_patterns()],
            "user_patterns": [pattern.model_dump(mode="json") for pattern in await self.store.list_user_patterns()],
        }


def _feedback_update(entry: CacheEntry, actual_intent: IntentCategory, was_correct: bool) -> Dict[str, Any]:
    if was_correct:
        return {"success": True, "confidence": min(1.0, entry.confidence + 0.1)}
    if actual_intent != entry.intent:
        return {"success": False, "intent": actual_intent, "confidence": 0.6}
    return {"success": False, "confidence": max(0.1, entry.confidence - 0.2)}


def _record_sequences(
    sequences: Tuple[IntentSequence, ...],
    recent: Tuple[IntentCategory, ...],
    now: datetime,
) -> Tuple[IntentSequence, ...]:
    """Fold every suffix window ending at the newest intent into the sequence list."""
    by_intents = {sequence.intents: sequence for sequence in sequences}
    window = recent[-MAX_SEQUENCE_LENGTH:]
    for length in range(2, len(window) + 1):
        key = window[-length:]
        current = by_intents.get(key)
        if current is None:
            by_intents[key] = IntentSequence(intents=key, frequency=1, last_seen=now)
        else:
            by_intents[key] = current.model_copy(update={"frequency": current.frequency + 1, "last_seen": now})

    ordered = sorted(by_intents.values(), key=lambda sequence: (sequence.frequency, sequence.last_seen), reverse=True)
    return tuple(ordered[:MAX_SEQUENCES_PER_USER])


__all__ = ["IntentCacheManager", "cacheable_context", "normalize_text", "text_similarity"]
