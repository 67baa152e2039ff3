"""Intent classification data models."""

from typing import Any, Dict, List

from pydantic import BaseModel, Field

from app.core.intent_types import ClassificationSource, IntentCategory


class ClassificationResult(BaseModel):
    """A fully populated classification produced by one pipeline layer."""

    intent: IntentCategory = Field(..., description="Classified intent")
    confidence: float = Field(..., ge=0.0, le=1.0, description="Confidence score (0-1)")
    parameters: Dict[str, Any] = Field(default_factory=dict, description="Extracted intent parameters")
    reasoning: str = Field(default="", description="Short explanation of the classification")
    source: ClassificationSource = Field(..., description="Layer that produced the result")
    processing_time_ms: float = Field(default=0.0, ge=0.0)
    model_used: str = Field(default="", description="Model or store that produced the result")
    sub_intents: List[str] = Field(default_factory=list)


class IntentSuggestion(BaseModel):
    """A suggested intent offered to the user alongside a classification."""

    intent: IntentCategory
    phrase: str = Field(..., description="Example phrase the user could say")
    context: str = Field(default="", description="Why this suggestion applies here")
    confidence: float = Field(..., ge=0.0, le=1.0)
    reasoning: str = ""


__all__ = ["ClassificationResult", "IntentSuggestion"]
