"""Context analysis data models (raw inputs and the structured analysis)."""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from app.core.intent_types import (
    ContentType,
    IntentCategory,
    PageMode,
    PageType,
    SiteCapability,
    UserRole,
)
from app.models.intent_classification import IntentSuggestion


class BoundingRect(BaseModel):
    x: float = 0.0
    y: float = 0.0
    width: float = 0.0
    height: float = 0.0


class RawElement(BaseModel):
    """An element as reported by the client-side DOM summary."""

    tag_name: str = ""
    selector: Optional[str] = None
    type: Optional[str] = None
    id: Optional[str] = None
    class_name: Optional[str] = None
    text_content: Optional[str] = None
    attributes: Dict[str, str] = Field(default_factory=dict)
    bounding_rect: Optional[BoundingRect] = None
    is_visible: Optional[bool] = None


class RawPageData(BaseModel):
    """Page snapshot sent with a voice command."""

    url: str
    title: Optional[str] = None
    html_content: Optional[str] = None
    dom_elements: List[RawElement] = Field(default_factory=list)
    metadata: Dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=datetime.utcnow)


class IntentHistory(BaseModel):
    intent: IntentCategory
    timestamp: datetime = Field(default_factory=datetime.utcnow)
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    success: bool = True
    parameters: Dict[str, Any] = Field(default_factory=dict)


class TaskContext(BaseModel):
    task_type: str = Field(default="navigation", description="navigation, editing, creation, deletion, query or support")
    current_step: int = 0
    total_steps: Optional[int] = None
    sub_tasks: List[str] = Field(default_factory=list)
    progress: float = 0.0
    blockers: List[str] = Field(default_factory=list)


class SessionData(BaseModel):
    """Session snapshot sent with a voice command."""

    session_id: str
    tenant_id: str = "default"
    site_id: str = "default"
    user_id: Optional[str] = None
    start_time: datetime = Field(default_factory=datetime.utcnow)
    previous_commands: List[str] = Field(default_factory=list)
    previous_intents: List[IntentHistory] = Field(default_factory=list)
    current_task: Optional[TaskContext] = None
    user_preferences: Dict[str, Any] = Field(default_factory=dict)
    conversation_topic: Optional[str] = None


class ElementContextInfo(BaseModel):
    selector: str
    tag_name: str
    type: Optional[str] = None
    id: Optional[str] = None
    class_name: Optional[str] = None
    text_content: Optional[str] = None
    attributes: Dict[str, str] = Field(default_factory=dict)
    bounding_rect: Optional[BoundingRect] = None
    is_visible: bool = True
    is_interactable: bool = False
    semantic_role: Optional[str] = None
    contextual_importance: float = 0.0


class PageContext(BaseModel):
    url: str
    domain: str = ""
    page_type: PageType = PageType.OTHER
    content_type: ContentType = ContentType.OTHER
    available_elements: List[ElementContextInfo] = Field(default_factory=list)
    schema_data: Optional[Dict[str, Any]] = Field(default=None, description="Schema.org data if present")
    capabilities: List[SiteCapability] = Field(default_factory=list)
    current_mode: PageMode = PageMode.VIEW


class ConversationState(BaseModel):
    current_topic: Optional[str] = None
    last_action: Optional[str] = None
    pending_actions: List[str] = Field(default_factory=list)


class SessionContext(BaseModel):
    session_id: str
    tenant_id: str = "default"
    site_id: str = "default"
    user_id: Optional[str] = None
    start_time: datetime = Field(default_factory=datetime.utcnow)
    previous_intents: List[IntentHistory] = Field(default_factory=list)
    conversation_state: ConversationState = Field(default_factory=ConversationState)
    current_task: Optional[TaskContext] = None


class UserLearningProfile(BaseModel):
    preferred_intents: Dict[str, int] = Field(default_factory=dict)
    adaptive_thresholds: Dict[str, float] = Field(default_factory=dict)
    frequently_used_commands: List[str] = Field(default_factory=list)


class UserContext(BaseModel):
    user_id: Optional[str] = None
    role: UserRole = UserRole.GUEST
    permissions: List[str] = Field(default_factory=list)
    learning_profile: Optional[UserLearningProfile] = None
    timezone: str = "UTC"
    locale: str = "en-US"


class ContextualAnalysis(BaseModel):
    """Structured context built once per request and read-only afterwards."""

    page_context: PageContext
    session_context: SessionContext
    user_context: UserContext
    available_actions: List[str] = Field(default_factory=list)
    contextual_boosts: Dict[IntentCategory, float] = Field(default_factory=dict)
    constrained_intents: List[IntentCategory] = Field(default_factory=list)
    suggestion_overrides: List[IntentSuggestion] = Field(default_factory=list)

    def recent_intents(self, limit: int = 3) -> List[IntentCategory]:
        """Most recent prior intents, oldest first."""
        return [entry.intent for entry in self.session_context.previous_intents[-limit:]]


__all__ = [
    "BoundingRect",
    "ContextualAnalysis",
    "ConversationState",
    "ElementContextInfo",
    "IntentHistory",
    "PageContext",
    "RawElement",
    "RawPageData",
    "SessionContext",
    "SessionData",
    "TaskContext",
    "UserContext",
    "UserLearningProfile",
]
