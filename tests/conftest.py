"""Shared test fixtures and configuration."""

import asyncio
import json
import os
from typing import Any, Dict, List, Optional

import pytest

os.environ.setdefault("OPIK_TRACK_DISABLE", "true")

from app.core.intent_types import PageMode, UserRole
from app.core.model_provider import CancellationToken, ModelSettings
from app.models.context_analysis import (
    ContextualAnalysis,
    PageContext,
    RawElement,
    RawPageData,
    SessionContext,
    SessionData,
    UserContext,
)
from app.services.factory import create_intent_orchestrator

REFINEMENT_MARKER = "You are refining an intent classification"


def classification_json(intent: str, confidence: float, **extra: Any) -> str:
    """Model output with some surrounding prose, as real models produce."""
    payload: Dict[str, Any] = {"intent": intent, "confidence": confidence, "reasoning": f"looks like {intent}"}
    payload.update(extra)
    return f"Here is the classification:\n{json.dumps(payload)}\nDone."


class FakeProvider:
    """Scripted ``ModelProvider`` returning canned text per model id.

    ``responses`` maps model id to response text (or an exception to raise).
    ``commands`` maps a quoted user command to a response for every model and
    wins over ``responses``. ``refinement`` is returned for refinement prompts
    when set, otherwise the normal response is reused. ``delay_s`` delays
    every call.
    """

    name = "fake"

    def __init__(
        self,
        responses: Optional[Dict[str, Any]] = None,
        default: Any = None,
        refinement: Optional[str] = None,
        delay_s: float = 0.0,
        commands: Optional[Dict[str, Any]] = None,
    ):
        self.responses = responses or {}
        self.commands = commands or {}
        self.default = default if default is not None else classification_json("help_request", 0.95)
        self.refinement = refinement
        self.delay_s = delay_s
        self.calls: List[Dict[str, Any]] = []
        self.completed = 0

    async def invoke(
        self,
        system_prompt: str,
        user_prompt: str,
        *,
        settings: ModelSettings,
        cancellation: Optional[CancellationToken] = None,
    ) -> str:
        self.calls.append({"model": settings.model, "system_prompt": system_prompt, "user_prompt": user_prompt})
        if self.delay_s:
            await asyncio.sleep(self.delay_s)
        response = self.responses.get(settings.model, self.default)
        for command, scripted in self.commands.items():
            if f'"{command}"' in user_prompt:
                response = scripted
                break
        if self.refinement is not None and system_prompt.startswith(REFINEMENT_MARKER):
            response = self.refinement
        if isinstance(response, BaseException):
            raise response
        self.completed += 1
        return response

    def models_called(self) -> List[str]:
        return [call["model"] for call in self.calls]


@pytest.fixture
def product_page() -> RawPageData:
    """Product page of a shop with cart, search and a form."""
    return RawPageData(
        url="https://shop.example.com/product/blue-shirt",
        title="Blue Shirt | Example Shop",
        html_content=(
            "<html><head><title>Blue Shirt</title></head><body>"
            "<nav>menu</nav><input type='search' placeholder='Search'>"
            "<div class='price'>$20</div><button>Add to cart</button>"
            "<form><input type='text' name='qty'></form>"
            "</body></html>"
        ),
        dom_elements=[
            RawElement(tag_name="button", id="add-to-cart", class_name="btn primary", text_content="Add to cart"),
            RawElement(tag_name="input", type="search", text_content=""),
            RawElement(tag_name="div", class_name="price", text_content="$20"),
        ],
    )


@pytest.fixture
def plain_page() -> RawPageData:
    """Static page without any detectable capability."""
    return RawPageData(
        url="https://example.com/about",
        title="About",
        html_content="<html><body><p>We are a small team.</p></body></html>",
    )


@pytest.fixture
def session_data() -> SessionData:
    return SessionData(session_id="session-1", tenant_id="tenant-1", site_id="site-1", user_id="user-1")


@pytest.fixture
def minimal_context() -> ContextualAnalysis:
    """A bare analysis for component tests that do not need the analyzer."""
    return ContextualAnalysis(
        page_context=PageContext(url="https://example.com/", current_mode=PageMode.VIEW),
        session_context=SessionContext(session_id="session-1", user_id="user-1"),
        user_context=UserContext(user_id="user-1", role=UserRole.GUEST),
    )


@pytest.fixture
def make_orchestrator():
    """Build an orchestrator around a scripted provider."""

    def _make(provider: FakeProvider, preset: str = "balanced", overrides: Optional[Dict[str, Any]] = None):
        return create_intent_orchestrator(preset=preset, overrides=overrides, provider=provider)

    return _make

