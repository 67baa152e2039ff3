"""Validation and ensemble data models."""

from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from app.core.intent_types import (
    ConflictType,
    EnsembleStrategy,
    IntentCategory,
    ResolutionStrategy,
)


class IntentResolution(BaseModel):
    strategy: ResolutionStrategy
    selected_intent: IntentCategory
    confidence: float = Field(..., ge=0.0, le=1.0)
    clarification_question: Optional[str] = None
    context_factors: List[str] = Field(default_factory=list)


class IntentConflict(BaseModel):
    conflict_type: ConflictType
    conflicting_intents: List[IntentCategory]
    confidence: float = Field(..., ge=0.0, le=1.0)
    description: str = ""
    suggested_resolution: Optional[IntentResolution] = None
    resolved: bool = Field(default=False, description="Whether this conflict drove the final resolution")


class EnsembleDecision(BaseModel):
    final_intent: IntentCategory
    confidence: float = Field(..., ge=0.0, le=1.0)
    contributing_models: List[str] = Field(default_factory=list)
    weights: Dict[str, float] = Field(default_factory=dict)
    agreements: int = 0
    disagreements: int = 0
    strategy: EnsembleStrategy
    decision_time_ms: float = 0.0


class ValidationResult(BaseModel):
    is_valid: bool
    confidence: float = Field(..., ge=0.0, le=1.0)
    conflicts: List[IntentConflict] = Field(default_factory=list)
    resolution: Optional[IntentResolution] = None
    fallback_intent: Optional[IntentCategory] = None
    ensemble: Optional[EnsembleDecision] = None
    validation_time_ms: float = 0.0
    skipped: bool = Field(default=False, description="True when validation did not run")


__all__ = ["EnsembleDecision", "IntentConflict", "IntentResolution", "ValidationResult"]
