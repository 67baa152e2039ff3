"""Context analysis for voice intent recognition.

Turns the raw page snapshot, session data and user role sent with a command
into a ``ContextualAnalysis``: page type, content type, capabilities, ranked
interactable elements, contextual boosts and constrained intents. Analysis
never raises; any internal failure yields a minimal fallback context.
"""

import asyncio
import json
import logging
import re
import time
from typing import Any, Callable, Dict, List, Optional, Tuple
from urllib.parse import urlparse

from app.core import context_rules as rules
from app.core.intent_types import (
    ContentType,
    IntentCategory,
    PageMode,
    PageType,
    SiteCapability,
    UserRole,
)
from app.models.context_analysis import (
    ContextualAnalysis,
    ConversationState,
    ElementContextInfo,
    PageContext,
    RawElement,
    RawPageData,
    SessionContext,
    SessionData,
    TaskContext,
    UserContext,
    UserLearningProfile,
)
from app.models.intent_classification import IntentSuggestion
from app.models.orchestration_config import ContextAnalysisConfig

logger = logging.getLogger(__name__)

CapabilityDetector = Callable[[RawPageData], List[SiteCapability]]

_JSON_LD_RE = re.compile(
    r"<script[^>]*type=[\"']application/ld\+json[\"'][^>]*>([\s\S]*?)</script>",
    re.IGNORECASE,
)
_TITLE_RE = re.compile(r"<title[^>]*>([^<]+)</title>", re.IGNORECASE)
_META_DESCRIPTION_RE = re.compile(
    r"<meta[^>]*name=[\"']description[\"'][^>]*content=[\"']([^\"']+)[\"']",
    re.IGNORECASE,
)

MAX_SUGGESTION_OVERRIDES = 5
MAX_PREVIOUS_INTENTS = 5


class ContextAnalyzer:
    """Builds the structured context every downstream stage reads."""

    def __init__(
        self,
        config: Optional[ContextAnalysisConfig] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize the analyzer.

        Args:
            config: Context analysis configuration
            clock: Monotonic clock in seconds, used for the page cache TTL
        """
        self.config = config or ContextAnalysisConfig()
        self._clock = clock
        self._page_cache: Dict[str, Tuple[float, PageContext]] = {}
        self._capability_detectors: Dict[str, CapabilityDetector] = {}
        self._learning_profiles: Dict[str, UserLearningProfile] = {}
        self._metrics: Dict[str, float] = {
            "total_analyses": 0,
            "failed_analyses": 0,
            "total_time_ms": 0.0,
            "page_cache_hits": 0,
        }

    async def analyze(
        self,
        page_data: RawPageData,
        session_data: SessionData,
        role: UserRole = UserRole.GUEST,
    ) -> ContextualAnalysis:
        """Analyze the request context.

        Args:
            page_data: Raw page snapshot
            session_data: Session snapshot
            role: Role of the current user

        Returns:
            ContextualAnalysis; a minimal fallback analysis on any failure
        """
        start = time.perf_counter()
        try:
            page_context, session_context, user_context = await asyncio.gather(
                self._analyze_page(page_data),
                self._analyze_session(session_data),
                self._analyze_user(session_data.user_id, role),
            )
            analysis = ContextualAnalysis(
                page_context=page_context,
                session_context=session_context,
                user_context=user_context,
                available_actions=self.extract_available_actions(page_context),
                contextual_boosts=self.calculate_contextual_boosts(page_context, user_context),
                constrained_intents=self.determine_constrained_intents(page_context, user_context),
                suggestion_overrides=self.generate_suggestion_overrides(page_context),
            )
            self._record(start, success=True)
            logger.debug(
                "Context analyzed for %s: page_type=%s capabilities=%d actions=%d",
                page_data.url,
                page_context.page_type.value,
                len(page_context.capabilities),
                len(analysis.available_actions),
            )
            return analysis
        except Exception as e:
            self._record(start, success=False)
            logger.exception("Context analysis failed for %s: %s", page_data.url, e)
            return self.create_fallback_context(page_data, session_data, role)

    async def _analyze_page(self, page_data: RawPageData) -> PageContext:
        cache_key = self._page_cache_key(page_data.url)
        cached = self._page_cache.get(cache_key)
        ttl_s = self.config.page_cache_ttl_ms / 1000
        if cached and self._clock() - cached[0] < ttl_s:
            self._metrics["page_cache_hits"] += 1
            return cached[1]

        url = page_data.url.lower()
        html = (page_data.html_content or "").lower()
        title = (page_data.title or "").lower()

        capabilities = self.detect_capabilities(page_data) if self.config.enable_capability_detection else []
        page_context = PageContext(
            url=page_data.url,
            domain=_domain(page_data.url),
            page_type=PageType(rules.first_match(rules.PAGE_TYPE_RULES, url, html, title) or PageType.OTHER.value),
            content_type=ContentType(
                rules.first_match(rules.CONTENT_TYPE_RULES, url, html, title) or ContentType.OTHER.value
            ),
            available_elements=self.analyze_elements(page_data.dom_elements),
            schema_data=self.extract_schema_data(page_data) if self.config.enable_schema_detection else None,
            capabilities=capabilities,
            current_mode=PageMode(rules.first_match(rules.MODE_RULES, url, html, title) or PageMode.VIEW.value),
        )
        self._store_page_context(cache_key, page_context)
        return page_context

    async def _analyze_session(self, session_data: SessionData) -> SessionContext:
        current_task = None
        if session_data.current_task is not None:
            task = session_data.current_task
            current_task = TaskContext(
                task_type=task.task_type or "navigation",
                current_step=task.current_step,
                total_steps=task.total_steps,
                sub_tasks=list(task.sub_tasks),
                progress=task.progress,
                blockers=list(task.blockers),
            )

        previous = session_data.previous_intents[-MAX_PREVIOUS_INTENTS:]
        conversation_state = ConversationState(
            current_topic=session_data.conversation_topic
            or ("voice_interaction" if session_data.previous_commands else None),
            last_action=previous[-1].intent.value if previous else None,
        )
        return SessionContext(
            session_id=session_data.session_id,
            tenant_id=session_data.tenant_id,
            site_id=session_data.site_id,
            user_id=session_data.user_id,
            start_time=session_data.start_time,
            previous_intents=list(previous),
            conversation_state=conversation_state,
            current_task=current_task,
        )

    async def _analyze_user(self, user_id: Optional[str], role: UserRole) -> UserContext:
        learning_profile = None
        if self.config.enable_learning_profile and user_id:
            learning_profile = self._learning_profiles.get(user_id)
        return UserContext(
            user_id=user_id,
            role=role,
            permissions=self.permissions_for_role(role),
            learning_profile=learning_profile,
        )

    def detect_capabilities(self, page_data: RawPageData) -> List[SiteCapability]:
        """Union of every matching capability rule and registered detector."""
        html = (page_data.html_content or "").lower()
        url = page_data.url.lower()
        title = (page_data.title or "").lower()
        capabilities = [SiteCapability(value) for value in rules.all_matches(rules.CAPABILITY_RULES, url, html, title)]
        for name, detector in self._capability_detectors.items():
            try:
                for capability in detector(page_data):
                    if capability not in capabilities:
                        capabilities.append(capability)
            except Exception as e:
                logger.warning("Capability detector %s failed: %s", name, e)
        return capabilities

    def register_capability_detector(self, name: str, detector: CapabilityDetector) -> None:
        """Register a custom detector evaluated after the rule table."""
        self._capability_detectors[name] = detector
        self._page_cache.clear()

    def analyze_elements(self, elements: List[RawElement]) -> List[ElementContextInfo]:
        """Score elements and return the most important ones first."""
        analyzed: List[ElementContextInfo] = []
        for index, element in enumerate(elements):
            try:
                analyzed.append(self._analyze_element(element))
            except Exception as e:
                logger.warning("Skipping element %d: %s", index, e)
        analyzed.sort(key=lambda info: info.contextual_importance, reverse=True)
        return analyzed[: self.config.max_elements]

    def _analyze_element(self, element: RawElement) -> ElementContextInfo:
        tag = (element.tag_name or "unknown").lower()
        text = element.text_content[:100] if element.text_content else None
        return ElementContextInfo(
            selector=element.selector or generate_selector(element),
            tag_name=tag,
            type=element.type,
            id=element.id,
            class_name=element.class_name,
            text_content=text,
            attributes=dict(element.attributes),
            bounding_rect=element.bounding_rect,
            is_visible=element.is_visible is not False,
            is_interactable=is_interactable(element),
            semantic_role=element.attributes.get("role") or rules.TAG_ROLES.get(tag),
            contextual_importance=element_importance(element),
        )

    def extract_schema_data(self, page_data: RawPageData) -> Optional[Dict[str, Any]]:
        """Schema.org JSON-LD, falling back to title and meta description."""
        html = page_data.html_content
        if not html:
            return None

        for match in _JSON_LD_RE.finditer(html):
            try:
                schema = json.loads(match.group(1).strip())
            except json.JSONDecodeError:
                continue
            if isinstance(schema, dict) and "@type" in schema:
                return schema

        title = _TITLE_RE.search(html)
        description = _META_DESCRIPTION_RE.search(html)
        if not title and not description:
            return None
        schema_data: Dict[str, Any] = {"@type": "WebPage", "url": page_data.url}
        if title:
            schema_data["name"] = title.group(1).strip()
        if description:
            schema_data["description"] = description.group(1).strip()
        return schema_data

    def calculate_contextual_boosts(
        self, page_context: PageContext, user_context: UserContext
    ) -> Dict[IntentCategory, float]:
        """Sum every boost row that applies to this page, mode and role."""
        tables: List[Dict[IntentCategory, float]] = [rules.PAGE_TYPE_BOOSTS.get(page_context.page_type, {})]
        for capability in page_context.capabilities:
            tables.append(rules.CAPABILITY_BOOSTS.get(capability, {}))
        tables.append(rules.MODE_BOOSTS.get(page_context.current_mode, {}))
        tables.append(rules.ROLE_BOOSTS.get(user_context.role, {}))

        boosts: Dict[IntentCategory, float] = {}
        for table in tables:
            for intent, boost in table.items():
                boosts[intent] = round(boosts.get(intent, 0.0) + boost, 4)
        return boosts

    def determine_constrained_intents(
        self, page_context: PageContext, user_context: UserContext
    ) -> List[IntentCategory]:
        constrained: List[IntentCategory] = []

        def add(intents: List[IntentCategory]) -> None:
            constrained.extend(intent for intent in intents if intent not in constrained)

        for capability, intents in rules.CAPABILITY_REQUIREMENTS.items():
            if capability not in page_context.capabilities:
                add(intents)
        add(rules.MODE_CONSTRAINTS.get(page_context.current_mode, []))
        add(rules.ROLE_CONSTRAINTS.get(user_context.role, []))
        return constrained

    def generate_suggestion_overrides(self, page_context: PageContext) -> List[IntentSuggestion]:
        suggestions: List[IntentSuggestion] = []
        if page_context.page_type == PageType.PRODUCT:
            suggestions.append(
                IntentSuggestion(
                    intent=IntentCategory.ADD_TO_CART,
                    phrase="Add this to my cart",
                    context="Product page suggestion",
                    confidence=0.9,
                    reasoning="Common action on product pages",
                )
            )
        elif page_context.page_type == PageType.CART:
            suggestions.append(
                IntentSuggestion(
                    intent=IntentCategory.CHECKOUT_PROCESS,
                    phrase="Proceed to checkout",
                    context="Cart page suggestion",
                    confidence=0.9,
                    reasoning="Natural next step in cart",
                )
            )
        if SiteCapability.SEARCH in page_context.capabilities:
            suggestions.append(
                IntentSuggestion(
                    intent=IntentCategory.SEARCH_CONTENT,
                    phrase="Search for something",
                    context="Search capability available",
                    confidence=0.7,
                    reasoning="Search functionality detected",
                )
            )
        return suggestions[:MAX_SUGGESTION_OVERRIDES]

    def extract_available_actions(self, page_context: PageContext) -> List[str]:
        actions: List[str] = list(rules.BASE_ACTIONS)
        for capability in page_context.capabilities:
            actions.extend(rules.CAPABILITY_ACTIONS.get(capability, []))
        for element in page_context.available_elements:
            if element.is_interactable:
                actions.append("click_element")
                if element.tag_name in ("input", "textarea"):
                    actions.append("edit_text")
        actions.extend(rules.MODE_ACTIONS.get(page_context.current_mode, []))
        return list(dict.fromkeys(actions))

    @staticmethod
    def permissions_for_role(role: UserRole) -> List[str]:
        return list(rules.ROLE_PERMISSIONS.get(role, []))

    def set_learning_profile(self, user_id: str, profile: UserLearningProfile) -> None:
        self._learning_profiles[user_id] = profile

    def create_fallback_context(
        self, page_data: RawPageData, session_data: SessionData, role: UserRole
    ) -> ContextualAnalysis:
        """Minimal valid analysis used when analysis fails."""
        return ContextualAnalysis(
            page_context=PageContext(
                url=page_data.url,
                domain=_domain(page_data.url),
                capabilities=[SiteCapability.NAVIGATION],
                current_mode=PageMode.VIEW,
            ),
            session_context=SessionContext(
                session_id=session_data.session_id,
                tenant_id=session_data.tenant_id,
                site_id=session_data.site_id,
                user_id=session_data.user_id,
                start_time=session_data.start_time,
            ),
            user_context=UserContext(
                user_id=session_data.user_id,
                role=role,
                permissions=self.permissions_for_role(role),
            ),
            available_actions=["navigate_back", "help_request"],
        )

    def clear_page_cache(self) -> None:
        self._page_cache.clear()

    def get_metrics(self) -> Dict[str, float]:
        total = self._metrics["total_analyses"]
        return {
            "total_analyses": total,
            "average_time_ms": self._metrics["total_time_ms"] / total if total else 0.0,
            "success_rate": (total - self._metrics["failed_analyses"]) / total if total else 1.0,
            "page_cache_hit_rate": self._metrics["page_cache_hits"] / total if total else 0.0,
            "page_cache_size": len(self._page_cache),
        }

    def _record(self, start: float, success: bool) -> None:
        self._metrics["total_analyses"] += 1
        self._metrics["total_time_ms"] += (time.perf_counter() - start) * 1000
        if not success:
            self._metrics["failed_analyses"] += 1

    def _store_page_context(self, cache_key: str, page_context: PageContext) -> None:
        now = self._clock()
        ttl_s = self.config.page_cache_ttl_ms / 1000
        expired = [key for key, (stored_at, _) in self._page_cache.items() if now - stored_at >= ttl_s]
        for key in expired:
            del self._page_cache[key]
        self._page_cache[cache_key] = (now, page_context)

    @staticmethod
    def _page_cache_key(url: str) -> str:
        """Host, path and query of the page; the raw URL when it cannot be parsed."""
        try:
            parsed = urlparse(url)
            host = (parsed.hostname or "").lower()
        except ValueError:
            return url
        key = f"{host}{parsed.path or '/'}"
        return f"{key}?{parsed.query}" if parsed.query else key


def _domain(url: str) -> str:
    try:
        return urlparse(url).hostname or ""
    except ValueError:
        return ""


def is_interactable(element: RawElement) -> bool:
    if (element.tag_name or "").lower() in rules.INTERACTABLE_TAGS:
        return True
    if element.type and element.type in rules.INTERACTABLE_TYPES:
        return True
    if element.attributes.get("role") == "button" or element.attributes.get("onclick"):
        return True
    class_name = element.class_name or ""
    return any(marker in class_name for marker in rules.INTERACTABLE_CLASS_MARKERS)


def element_importance(element: RawElement) -> float:
    """Importance in [0, 10] from tag, position, size, keywords and attributes."""
    importance = float(rules.TAG_IMPORTANCE.get((element.tag_name or "").lower(), 0))

    rect = element.bounding_rect
    if element.is_visible is not False and rect is not None:
        importance += max(0.0, 5 - rect.y / 200)
        importance += min(3.0, rect.width * rect.height / 10000)

    if element.text_content:
        text = element.text_content.lower()
        importance += 2 * sum(1 for word in rules.IMPORTANT_WORDS if word in text)

    if element.id:
        importance += 1
    if element.attributes.get("role"):
        importance += 1
    if element.attributes.get("aria-label"):
        importance += 1

    return min(10.0, importance)


def generate_selector(element: RawElement) -> str:
    if element.id:
        return f"#{element.id}"
    tag = (element.tag_name or "").lower()
    classes = (element.class_name or "").split()
    if classes and tag:
        return f"{tag}.{classes[0]}"
    return tag or "unknown"


__all__ = ["ContextAnalyzer", "element_importance", "generate_selector", "is_interactable"]
