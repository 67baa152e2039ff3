"""Cache, pattern and user-pattern records.

Records are frozen: the cache manager replaces a record wholesale on every
write (``model_copy(update=...)``) so no reader ever sees a half-updated entry.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from app.core.intent_types import ContentType, IntentCategory, PageMode, PageType, UserRole


class CacheableContext(BaseModel):
    """Privacy-stripped context snapshot kept alongside cached results.

    Never holds URLs, element lists, permissions or session identifiers.
    """

    model_config = ConfigDict(frozen=True)

    page_type: PageType = PageType.OTHER
    content_type: ContentType = ContentType.OTHER
    current_mode: PageMode = PageMode.VIEW
    capabilities: Tuple[str, ...] = ()
    role: UserRole = UserRole.GUEST
    tenant_id: Optional[str] = None
    site_id: Optional[str] = None


class CacheEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    key: str
    intent: IntentCategory
    confidence: float = Field(..., ge=0.0, le=1.0)
    parameters: Dict[str, Any] = Field(default_factory=dict)
    context: CacheableContext = Field(default_factory=CacheableContext)
    hit_count: int = 0
    last_used: datetime
    success: bool = False
    average_confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    expires_at: datetime
    source: str = ""


class IntentPattern(BaseModel):
    """A cross-user phrase to intent association."""

    model_config = ConfigDict(frozen=True)

    key: str
    text: str = Field(..., description="Normalized phrase")
    intent: IntentCategory
    confidence: float = Field(..., ge=0.0, le=1.0)
    occurrences: int = 1
    last_seen: datetime
    contexts: Tuple[CacheableContext, ...] = ()
    users: Tuple[str, ...] = ()
    success_rate: float = Field(default=1.0, ge=0.0, le=1.0)


class IntentSequence(BaseModel):
    model_config = ConfigDict(frozen=True)

    intents: Tuple[IntentCategory, ...]
    frequency: int = 1
    last_seen: datetime


class UserPattern(BaseModel):
    """Per-user phrase map, intent sequences and adaptive thresholds."""

    model_config = ConfigDict(frozen=True)

    user_id: str
    phrases: Dict[str, IntentCategory] = Field(default_factory=dict)
    sequences: Tuple[IntentSequence, ...] = ()
    recent_intents: Tuple[IntentCategory, ...] = ()
    adaptive_thresholds: Dict[IntentCategory, float] = Field(default_factory=dict)
    last_updated: datetime


class CacheStatistics(BaseModel):
    size: int = 0
    hit_rate: float = 0.0
    memory_usage_mb: float = 0.0
    pattern_count: int = 0
    user_pattern_count: int = 0
    average_confidence: float = 0.0
    top_intents: List[Dict[str, Any]] = Field(default_factory=list)
    total_lookups: int = 0
    hits: int = 0
    pattern_hits: int = 0
    evictions: int = 0


__all__ = [
    "CacheEntry",
    "CacheStatistics",
    "CacheableContext",
    "IntentPattern",
    "IntentSequence",
    "UserPattern",
]
