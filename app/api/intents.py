from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel, Field

from app.core.errors import ErrorCode, IntentProcessingError
from app.core.intent_types import IntentCategory, UserRole
from app.models.context_analysis import RawPageData, SessionData
from app.models.processing import (
    ClassificationMetrics,
    NextIntentPrediction,
    OrchestrationMetrics,
    ProcessingOptions,
    ProcessingResponse,
)
from app.services.intent_orchestrator import IntentOrchestrator


class ProcessIntentRequest(BaseModel):
    text: str = Field(..., min_length=1, description="Transcribed voice command")
    page_data: RawPageData
    session_data: SessionData
    role: UserRole = UserRole.GUEST
    options: Optional[ProcessingOptions] = None


class FeedbackRequest(BaseModel):
    text: str = Field(..., min_length=1)
    actual_intent: IntentCategory
    was_correct: bool
    feedback: Optional[str] = None
    page_data: Optional[RawPageData] = None
    session_data: Optional[SessionData] = None
    role: UserRole = UserRole.GUEST


class FeedbackResponse(BaseModel):
    status: str = "recorded"


class PredictRequest(BaseModel):
    user_id: str
    recent_intents: List[IntentCategory] = Field(default_factory=list)
    page_data: Optional[RawPageData] = None
    session_data: Optional[SessionData] = None
    role: UserRole = UserRole.GUEST


class PredictResponse(BaseModel):
    prediction: Optional[NextIntentPrediction] = None


class MetricsResponse(BaseModel):
    orchestration: OrchestrationMetrics
    classification: ClassificationMetrics
    validation: Dict[str, Any]
    context_analysis: Dict[str, float]


router = APIRouter(prefix="/intents", tags=["intents"])


def get_orchestrator(request: Request) -> IntentOrchestrator:
    """Return the orchestrator created by the application lifespan.

    Raises:
        HTTPException: If the pipeline has not been started
    """
    orchestrator = getattr(request.app.state, "orchestrator", None)
    if orchestrator is None:
        raise HTTPException(status_code=503, detail="Intent pipeline is not ready")
    return orchestrator


def _error_response(error: IntentProcessingError) -> HTTPException:
    status_code = 504 if error.code == ErrorCode.TIMEOUT else 503
    return HTTPException(status_code=status_code, detail=error.to_dict())


@router.post("/process", response_model=ProcessingResponse)
async def process_intent(
    request: ProcessIntentRequest,
    orchestrator: IntentOrchestrator = Depends(get_orchestrator),
) -> ProcessingResponse:
    """Classify a voice command in its page and session context."""
    try:
        return await orchestrator.process_intent(
            request.text,
            request.page_data,
            request.session_data,
            role=request.role,
            options=request.options,
        )
    except IntentProcessingError as e:
        raise _error_response(e) from e


@router.post("/feedback", response_model=FeedbackResponse)
async def submit_feedback(
    request: FeedbackRequest,
    orchestrator: IntentOrchestrator = Depends(get_orchestrator),
) -> FeedbackResponse:
    """Record whether a past classification was correct."""
    await orchestrator.learn_from_feedback(
        request.text,
        request.actual_intent,
        request.was_correct,
        feedback=request.feedback,
        page_data=request.page_data,
        session_data=request.session_data,
        role=request.role,
    )
    return FeedbackResponse()


@router.post("/predict", response_model=PredictResponse)
async def predict_next_intent(
    request: PredictRequest,
    orchestrator: IntentOrchestrator = Depends(get_orchestrator),
) -> PredictResponse:
    context = None
    if request.page_data is not None:
        session_data = request.session_data or SessionData(session_id="predict", user_id=request.user_id)
        context = await orchestrator.analyzer.analyze(request.page_data, session_data, request.role)
    prediction = await orchestrator.predict_next_intent(request.user_id, request.recent_intents, context)
    return PredictResponse(prediction=prediction)


@router.get("/metrics", response_model=MetricsResponse)
async def get_metrics(orchestrator: IntentOrchestrator = Depends(get_orchestrator)) -> MetricsResponse:
    return MetricsResponse(
        orchestration=orchestrator.get_metrics(),
        classification=orchestrator.get_classification_metrics(),
        validation=orchestrator.validator.get_metrics(),
        context_analysis=orchestrator.analyzer.get_metrics(),
    )


__all__ = ["router"]
