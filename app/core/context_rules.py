"""Rule tables for page classification and contextual intent adjustment.

Each table is ordered data consumed by ``ContextAnalyzer``. New site verticals
are supported by adding rows here, not by branching in the analyzer.
"""

from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, Field

from app.core.intent_types import (
    ContentType,
    IntentCategory,
    PageMode,
    PageType,
    SiteCapability,
    UserRole,
)


class MarkerRule(BaseModel):
    """Matches when any URL, content or title marker is present (case-insensitive)."""

    value: str = Field(..., description="Label emitted when the rule matches")
    url_markers: Tuple[str, ...] = ()
    content_markers: Tuple[str, ...] = ()
    title_markers: Tuple[str, ...] = ()
    url_suffixes: Tuple[str, ...] = ()

    def matches(self, url: str, html: str, title: str) -> bool:
        return (
            any(marker in url for marker in self.url_markers)
            or any(url.endswith(suffix) for suffix in self.url_suffixes)
            or any(marker in html for marker in self.content_markers)
            or any(marker in title for marker in self.title_markers)
        )


def first_match(rules: List[MarkerRule], url: str, html: str, title: str) -> Optional[str]:
    """Value of the first matching rule in table order."""
    for rule in rules:
        if rule.matches(url, html, title):
            return rule.value
    return None


def all_matches(rules: List[MarkerRule], url: str, html: str, title: str) -> List[str]:
    """Values of every matching rule, without duplicates, in table order."""
    matched: List[str] = []
    for rule in rules:
        if rule.value not in matched and rule.matches(url, html, title):
            matched.append(rule.value)
    return matched


PAGE_TYPE_RULES: List[MarkerRule] = [
    MarkerRule(value=PageType.PRODUCT.value, url_markers=("/product/", "/item/"), content_markers=("add to cart", "buy now")),
    MarkerRule(value=PageType.CART.value, url_markers=("/cart", "/basket"), content_markers=("shopping cart", "checkout")),
    MarkerRule(
        value=PageType.CHECKOUT.value,
        url_markers=("/checkout", "/payment"),
        content_markers=("payment method", "billing address"),
    ),
    MarkerRule(value=PageType.CATEGORY.value, url_markers=("/category/", "/shop/"), content_markers=("product grid", "filter by")),
    MarkerRule(
        value=PageType.ACCOUNT.value,
        url_markers=("/account", "/profile", "/dashboard"),
        content_markers=("my account", "profile settings"),
    ),
    MarkerRule(
        value=PageType.BLOG.value,
        url_markers=("/blog/", "/article/", "/post/"),
        content_markers=("<article", "blog post"),
    ),
    MarkerRule(value=PageType.CONTACT.value, url_markers=("/contact",), content_markers=("contact form", "get in touch", "contact us")),
    MarkerRule(value=PageType.HOME.value, url_markers=("/home",), url_suffixes=("/",), title_markers=("home", "welcome")),
]

CONTENT_TYPE_RULES: List[MarkerRule] = [
    MarkerRule(
        value=ContentType.E_COMMERCE.value,
        url_markers=("/store", "/shop"),
        content_markers=("add to cart", "price", "product", "shop"),
    ),
    MarkerRule(value=ContentType.FORM.value, content_markers=("<form", "input type", "submit", "form-control")),
    MarkerRule(value=ContentType.BLOG.value, url_markers=("/blog/",), content_markers=("<article", "blog", "post")),
    MarkerRule(
        value=ContentType.DOCUMENTATION.value,
        url_markers=("/docs/",),
        content_markers=("documentation", "api reference", "getting started"),
    ),
    MarkerRule(
        value=ContentType.DASHBOARD.value,
        url_markers=("/admin",),
        content_markers=("dashboard", "analytics", "admin panel"),
    ),
    MarkerRule(value=ContentType.MEDIA.value, content_markers=("<video", "<audio", "media player", "gallery")),
]

CAPABILITY_RULES: List[MarkerRule] = [
    MarkerRule(value=SiteCapability.NAVIGATION.value, content_markers=("<nav", "menu", "navigation")),
    MarkerRule(value=SiteCapability.SEARCH.value, content_markers=("search",)),
    MarkerRule(value=SiteCapability.FORMS.value, content_markers=("<form", "input type")),
    MarkerRule(value=SiteCapability.E_COMMERCE.value, content_markers=("cart", "checkout", "add to cart")),
    MarkerRule(value=SiteCapability.PAYMENTS.value, content_markers=("payment", "stripe", "paypal")),
    MarkerRule(value=SiteCapability.USER_ACCOUNTS.value, content_markers=("login", "register", "account", "profile")),
    MarkerRule(value=SiteCapability.MEDIA_UPLOAD.value, content_markers=("upload", "file input")),
    MarkerRule(value=SiteCapability.COMMENTS.value, content_markers=("comment", "reply")),
    MarkerRule(value=SiteCapability.RATINGS_REVIEWS.value, content_markers=("rating", "review", "stars")),
    MarkerRule(value=SiteCapability.SOCIAL_SHARING.value, content_markers=("share", "social", "facebook", "twitter")),
    MarkerRule(value=SiteCapability.REAL_TIME_UPDATES.value, content_markers=("websocket", "real-time", "live")),
    MarkerRule(value=SiteCapability.GEOLOCATION.value, content_markers=("geolocation", "location")),
    MarkerRule(value=SiteCapability.NOTIFICATIONS.value, content_markers=("notification", "push")),
    MarkerRule(value=SiteCapability.ACCESSIBILITY.value, content_markers=("aria-", "role=", "alt=")),
    MarkerRule(value=SiteCapability.CHAT_SUPPORT.value, content_markers=("chat", "support", "help")),
]

MODE_RULES: List[MarkerRule] = [
    MarkerRule(value=PageMode.EDIT.value, url_markers=("/edit", "/admin"), content_markers=("editor", "edit mode")),
    MarkerRule(value=PageMode.PREVIEW.value, url_markers=("/preview",), content_markers=("preview mode",)),
]

# Element scoring
TAG_IMPORTANCE: Dict[str, float] = {
    "button": 8,
    "input": 7,
    "a": 6,
    "select": 6,
    "textarea": 5,
    "form": 4,
    "nav": 3,
    "header": 2,
    "main": 2,
    "footer": 1,
}
IMPORTANT_WORDS: Tuple[str, ...] = ("submit", "buy", "add", "cart", "save", "delete", "edit", "login", "register")
INTERACTABLE_TAGS = frozenset({"button", "a", "input", "select", "textarea", "label"})
INTERACTABLE_TYPES = frozenset({"button", "submit", "reset", "checkbox", "radio", "file"})
INTERACTABLE_CLASS_MARKERS: Tuple[str, ...] = ("btn", "button", "clickable", "link")
TAG_ROLES: Dict[str, str] = {
    "button": "button",
    "a": "link",
    "input": "textbox",
    "select": "combobox",
    "textarea": "textbox",
    "nav": "navigation",
    "header": "banner",
    "main": "main",
    "footer": "contentinfo",
    "aside": "complementary",
    "article": "article",
    "section": "region",
}

# Contextual boosts, summed across every matching row.
PAGE_TYPE_BOOSTS: Dict[PageType, Dict[IntentCategory, float]] = {
    PageType.PRODUCT: {IntentCategory.ADD_TO_CART: 0.3, IntentCategory.VIEW_PRODUCT: 0.2},
    PageType.CART: {IntentCategory.REMOVE_FROM_CART: 0.3, IntentCategory.CHECKOUT_PROCESS: 0.3},
    PageType.CHECKOUT: {IntentCategory.SUBMIT_FORM: 0.4},
}
CAPABILITY_BOOSTS: Dict[SiteCapability, Dict[IntentCategory, float]] = {
    SiteCapability.SEARCH: {IntentCategory.SEARCH_CONTENT: 0.2},
    SiteCapability.FORMS: {IntentCategory.SUBMIT_FORM: 0.2, IntentCategory.CLEAR_FORM: 0.1},
}
MODE_BOOSTS: Dict[PageMode, Dict[IntentCategory, float]] = {
    PageMode.EDIT: {
        IntentCategory.EDIT_TEXT: 0.3,
        IntentCategory.ADD_CONTENT: 0.2,
        IntentCategory.DELETE_CONTENT: 0.2,
    },
}
ROLE_BOOSTS: Dict[UserRole, Dict[IntentCategory, float]] = {
    UserRole.ADMIN: {IntentCategory.EDIT_TEXT: 0.1, IntentCategory.DELETE_CONTENT: 0.1},
    UserRole.EDITOR: {IntentCategory.EDIT_TEXT: 0.1, IntentCategory.DELETE_CONTENT: 0.1},
}

# Constraints: intents disallowed when a capability is missing, in a mode, or for a role.
CAPABILITY_REQUIREMENTS: Dict[SiteCapability, List[IntentCategory]] = {
    SiteCapability.E_COMMERCE: [
        IntentCategory.ADD_TO_CART,
        IntentCategory.REMOVE_FROM_CART,
        IntentCategory.CHECKOUT_PROCESS,
    ],
    SiteCapability.FORMS: [IntentCategory.SUBMIT_FORM, IntentCategory.CLEAR_FORM],
}
MODE_CONSTRAINTS: Dict[PageMode, List[IntentCategory]] = {
    PageMode.VIEW: [IntentCategory.EDIT_TEXT, IntentCategory.ADD_CONTENT, IntentCategory.DELETE_CONTENT],
}
ROLE_CONSTRAINTS: Dict[UserRole, List[IntentCategory]] = {
    UserRole.VIEWER: [
        IntentCategory.EDIT_TEXT,
        IntentCategory.ADD_CONTENT,
        IntentCategory.DELETE_CONTENT,
        IntentCategory.SUBMIT_FORM,
    ],
    UserRole.GUEST: [
        IntentCategory.EDIT_TEXT,
        IntentCategory.ADD_CONTENT,
        IntentCategory.DELETE_CONTENT,
        IntentCategory.SUBMIT_FORM,
    ],
}

ROLE_PERMISSIONS: Dict[UserRole, List[str]] = {
    UserRole.ADMIN: ["read", "write", "delete", "admin", "edit", "publish"],
    UserRole.EDITOR: ["read", "write", "edit", "publish"],
    UserRole.VIEWER: ["read"],
    UserRole.GUEST: ["read"],
}

# Available actions
BASE_ACTIONS: List[str] = ["navigate_back", "navigate_forward", "scroll_to_element"]
CAPABILITY_ACTIONS: Dict[SiteCapability, List[str]] = {
    SiteCapability.SEARCH: ["search_content"],
    SiteCapability.FORMS: ["submit_form", "clear_form"],
    SiteCapability.E_COMMERCE: ["add_to_cart", "view_product"],
    SiteCapability.NAVIGATION: ["navigate_to_page", "open_menu"],
}
MODE_ACTIONS: Dict[PageMode, List[str]] = {
    PageMode.EDIT: ["edit_text", "add_content", "delete_content", "undo_action", "redo_action"],
}


__all__ = [
    "BASE_ACTIONS",
    "CAPABILITY_ACTIONS",
    "CAPABILITY_BOOSTS",
    "CAPABILITY_REQUIREMENTS",
    "CAPABILITY_RULES",
    "CONTENT_TYPE_RULES",
    "IMPORTANT_WORDS",
    "INTERACTABLE_CLASS_MARKERS",
    "INTERACTABLE_TAGS",
    "INTERACTABLE_TYPES",
    "MODE_ACTIONS",
    "MODE_BOOSTS",
    "MODE_CONSTRAINTS",
    "MODE_RULES",
    "MarkerRule",
    "PAGE_TYPE_BOOSTS",
    "PAGE_TYPE_RULES",
    "ROLE_BOOSTS",
    "ROLE_CONSTRAINTS",
    "ROLE_PERMISSIONS",
    "TAG_IMPORTANCE",
    "TAG_ROLES",
    "all_matches",
    "first_match",
]
