import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request

from app.api.intents import get_orchestrator
from app.api.intents import router as intents_router
from app.core.config import settings
from app.models.orchestration_config import IntentOrchestrationConfig
from app.models.processing import SystemHealth
from app.services.factory import create_intent_orchestrator

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL, logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifespan events."""
    # Startup: Configure Opik (optional)
    if settings.OPIK_ENABLED:
        import opik

        configure_kwargs = {"use_local": False}
        if settings.OPIK_API_KEY:
            configure_kwargs["api_key"] = settings.OPIK_API_KEY
        if settings.OPIK_WORKSPACE:
            configure_kwargs["workspace"] = settings.OPIK_WORKSPACE
        if settings.OPIK_URL_OVERRIDE:
            configure_kwargs["url"] = settings.OPIK_URL_OVERRIDE

        opik.configure(**configure_kwargs)

    # Startup: build the pipeline unless a test already installed one
    if getattr(app.state, "orchestrator", None) is None:
        app.state.orchestrator = create_intent_orchestrator(
            preset=settings.INTENT_PRESET,
            base=IntentOrchestrationConfig.from_settings(settings),
        )
    app.state.orchestrator.start()
    yield
    # Shutdown: stop background maintenance and monitoring
    await app.state.orchestrator.close()


def create_app() -> FastAPI:
    app = FastAPI(
        title="Voice Intent Recognition Service",
        description=(
            "FastAPI service classifying website voice commands with context "
            "analysis, caching, LLM classification and ensemble validation."
        ),
        version="0.1.0",
        lifespan=lifespan,
    )

    app.include_router(intents_router, prefix="/api")

    @app.get("/health", response_model=SystemHealth)
    async def health_check(request: Request) -> SystemHealth:
        """Health check endpoint."""
        return await get_orchestrator(request).get_system_health()

    return app


app = create_app()
