"""Intent taxonomy and context enumerations."""

from enum import Enum
from typing import Dict, List


class IntentCategory(str, Enum):
    """Closed intent taxonomy for voice commands.

    Adding a category is a code change: prompts, rule tables and
    validation descriptions all enumerate this class.
    """

    # Navigation
    NAVIGATE_TO_PAGE = "navigate_to_page"
    NAVIGATE_TO_SECTION = "navigate_to_section"
    NAVIGATE_BACK = "navigate_back"
    NAVIGATE_FORWARD = "navigate_forward"
    SCROLL_TO_ELEMENT = "scroll_to_element"
    OPEN_MENU = "open_menu"
    CLOSE_MENU = "close_menu"

    # Action
    CLICK_ELEMENT = "click_element"
    SUBMIT_FORM = "submit_form"
    CLEAR_FORM = "clear_form"
    SELECT_OPTION = "select_option"
    TOGGLE_ELEMENT = "toggle_element"
    DRAG_DROP = "drag_drop"
    COPY_CONTENT = "copy_content"
    PASTE_CONTENT = "paste_content"

    # Content
    EDIT_TEXT = "edit_text"
    ADD_CONTENT = "add_content"
    DELETE_CONTENT = "delete_content"
    REPLACE_CONTENT = "replace_content"
    FORMAT_CONTENT = "format_content"
    UNDO_ACTION = "undo_action"
    REDO_ACTION = "redo_action"

    # Query
    SEARCH_CONTENT = "search_content"
    FILTER_RESULTS = "filter_results"
    SORT_RESULTS = "sort_results"
    GET_INFORMATION = "get_information"
    EXPLAIN_FEATURE = "explain_feature"
    SHOW_DETAILS = "show_details"

    # Commerce
    ADD_TO_CART = "add_to_cart"
    REMOVE_FROM_CART = "remove_from_cart"
    VIEW_PRODUCT = "view_product"
    COMPARE_PRODUCTS = "compare_products"
    CHECKOUT_PROCESS = "checkout_process"
    TRACK_ORDER = "track_order"

    # Control
    STOP_ACTION = "stop_action"
    CANCEL_OPERATION = "cancel_operation"
    PAUSE_PROCESS = "pause_process"
    RESUME_PROCESS = "resume_process"
    RESET_STATE = "reset_state"
    SAVE_PROGRESS = "save_progress"

    # Confirmation
    CONFIRM_ACTION = "confirm_action"
    DENY_ACTION = "deny_action"
    MAYBE_LATER = "maybe_later"
    NEED_CLARIFICATION = "need_clarification"

    # Meta
    HELP_REQUEST = "help_request"
    TUTORIAL_REQUEST = "tutorial_request"
    FEEDBACK_PROVIDE = "feedback_provide"
    ERROR_REPORT = "error_report"
    UNKNOWN_INTENT = "unknown_intent"

    @classmethod
    def parse(cls, value: str) -> "IntentCategory":
        """Parse a label leniently (case, hyphens and spaces tolerated).

        Raises:
            ValueError: If the label is not part of the taxonomy.
        """
        normalized = str(value).strip().lower().replace("-", "_").replace(" ", "_")
        return cls(normalized)


# Grouping used when rendering the taxonomy into prompts.
INTENT_GROUPS: Dict[str, List[IntentCategory]] = {
    "Navigation": [
        IntentCategory.NAVIGATE_TO_PAGE,
        IntentCategory.NAVIGATE_TO_SECTION,
        IntentCategory.NAVIGATE_BACK,
        IntentCategory.NAVIGATE_FORWARD,
        IntentCategory.SCROLL_TO_ELEMENT,
        IntentCategory.OPEN_MENU,
        IntentCategory.CLOSE_MENU,
    ],
    "Actions": [
        IntentCategory.CLICK_ELEMENT,
        IntentCategory.SUBMIT_FORM,
        IntentCategory.CLEAR_FORM,
        IntentCategory.SELECT_OPTION,
        IntentCategory.TOGGLE_ELEMENT,
        IntentCategory.DRAG_DROP,
        IntentCategory.COPY_CONTENT,
        IntentCategory.PASTE_CONTENT,
    ],
    "Content": [
        IntentCategory.EDIT_TEXT,
        IntentCategory.ADD_CONTENT,
        IntentCategory.DELETE_CONTENT,
        IntentCategory.REPLACE_CONTENT,
        IntentCategory.FORMAT_CONTENT,
        IntentCategory.UNDO_ACTION,
        IntentCategory.REDO_ACTION,
    ],
    "Query": [
        IntentCategory.SEARCH_CONTENT,
        IntentCategory.FILTER_RESULTS,
        IntentCategory.SORT_RESULTS,
        IntentCategory.GET_INFORMATION,
        IntentCategory.EXPLAIN_FEATURE,
        IntentCategory.SHOW_DETAILS,
    ],
    "E-commerce": [
        IntentCategory.ADD_TO_CART,
        IntentCategory.REMOVE_FROM_CART,
        IntentCategory.VIEW_PRODUCT,
        IntentCategory.COMPARE_PRODUCTS,
        IntentCategory.CHECKOUT_PROCESS,
        IntentCategory.TRACK_ORDER,
    ],
    "Control": [
        IntentCategory.STOP_ACTION,
        IntentCategory.CANCEL_OPERATION,
        IntentCategory.PAUSE_PROCESS,
        IntentCategory.RESUME_PROCESS,
        IntentCategory.RESET_STATE,
        IntentCategory.SAVE_PROGRESS,
    ],
    "Confirmation": [
        IntentCategory.CONFIRM_ACTION,
        IntentCategory.DENY_ACTION,
        IntentCategory.MAYBE_LATER,
        IntentCategory.NEED_CLARIFICATION,
    ],
    "Meta": [
        IntentCategory.HELP_REQUEST,
        IntentCategory.TUTORIAL_REQUEST,
        IntentCategory.FEEDBACK_PROVIDE,
        IntentCategory.ERROR_REPORT,
        IntentCategory.UNKNOWN_INTENT,
    ],
}

# Ceiling applied wherever an unknown_intent result is produced or assembled.
UNKNOWN_INTENT_MAX_CONFIDENCE = 0.3


class SiteCapability(str, Enum):
    """Capabilities a page can expose."""

    NAVIGATION = "navigation"
    SEARCH = "search"
    FORMS = "forms"
    E_COMMERCE = "e-commerce"
    USER_ACCOUNTS = "user-accounts"
    CONTENT_CREATION = "content-creation"
    MEDIA_UPLOAD = "media-upload"
    REAL_TIME_UPDATES = "real-time-updates"
    MULTI_LANGUAGE = "multi-language"
    ACCESSIBILITY = "accessibility"
    OFFLINE_SUPPORT = "offline-support"
    GEOLOCATION = "geolocation"
    NOTIFICATIONS = "notifications"
    SOCIAL_SHARING = "social-sharing"
    COMMENTS = "comments"
    RATINGS_REVIEWS = "ratings-reviews"
    SUBSCRIPTIONS = "subscriptions"
    PAYMENTS = "payments"
    CHAT_SUPPORT = "chat-support"
    API_INTEGRATION = "api-integration"


class PageType(str, Enum):
    HOME = "home"
    PRODUCT = "product"
    CATEGORY = "category"
    CART = "cart"
    CHECKOUT = "checkout"
    ACCOUNT = "account"
    BLOG = "blog"
    CONTACT = "contact"
    OTHER = "other"


class ContentType(str, Enum):
    E_COMMERCE = "e-commerce"
    BLOG = "blog"
    DOCUMENTATION = "documentation"
    FORM = "form"
    MEDIA = "media"
    DASHBOARD = "dashboard"
    OTHER = "other"


class PageMode(str, Enum):
    VIEW = "view"
    EDIT = "edit"
    PREVIEW = "preview"


class UserRole(str, Enum):
    ADMIN = "admin"
    EDITOR = "editor"
    VIEWER = "viewer"
    GUEST = "guest"


class ClassificationSource(str, Enum):
    """Which pipeline layer produced a classification."""

    PRIMARY = "primary"
    SECONDARY = "secondary"
    CACHE = "cache"
    PATTERN = "pattern"
    ENSEMBLE = "ensemble"


class CacheKeyStrategy(str, Enum):
    TEXT_ONLY = "text_only"
    TEXT_CONTEXT = "text_context"
    FULL_CONTEXT = "full_context"


class EnsembleStrategy(str, Enum):
    WEIGHTED_AVERAGE = "weighted_average"
    MAJORITY_VOTE = "majority_vote"
    CONFIDENCE_THRESHOLD = "confidence_threshold"
    CONTEXTUAL_BOOST = "contextual_boost"


class ConflictType(str, Enum):
    AMBIGUOUS = "ambiguous"
    CONTRADICTORY = "contradictory"
    INSUFFICIENT_CONTEXT = "insufficient_context"


class ResolutionStrategy(str, Enum):
    CLARIFICATION = "clarification"
    CONTEXT_BOOST = "context_boost"
    USER_CONFIRMATION = "user_confirmation"
    FALLBACK = "fallback"
    ENSEMBLE_VOTE = "ensemble_vote"


class DedupScope(str, Enum):
    """How concurrent identical requests are coalesced."""

    TEXT = "text"
    SESSION = "session"


class HealthStatus(str, Enum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


__all__ = [
    "CacheKeyStrategy",
    "ClassificationSource",
    "ConflictType",
    "ContentType",
    "DedupScope",
    "EnsembleStrategy",
    "HealthStatus",
    "INTENT_GROUPS",
    "IntentCategory",
    "PageMode",
    "PageType",
    "ResolutionStrategy",
    "SiteCapability",
    "UNKNOWN_INTENT_MAX_CONFIDENCE",
    "UserRole",
]
