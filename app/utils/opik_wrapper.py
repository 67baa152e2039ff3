"""Small wrappers around Opik to keep instrumentation consistent.

All helpers are best-effort and guarded behind Settings: tracing never
changes pipeline results when Opik is disabled or misconfigured.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from app.core.config import settings

logger = logging.getLogger(__name__)


def store_prompt(
    *,
    name: str,
    prompt: str,
    metadata: Optional[Dict[str, Any]] = None,
) -> None:
    """Store a prompt template in Opik using `opik.Prompt`.

    No-op when Opik is disabled or the arguments are empty.
    """
    if not settings.OPIK_ENABLED or not prompt or not name:
        return

    try:
        import opik

        opik.Prompt(name=name, prompt=prompt, metadata=metadata or None)
    except Exception as e:
        logger.debug("Opik prompt storage failed for %s: %s", name, e)


def annotate_current_span(metadata: Dict[str, Any]) -> None:
    """Attach request metadata to the active Opik span, if any."""
    if not settings.OPIK_ENABLED or not metadata:
        return

    try:
        from opik import opik_context

        opik_context.update_current_span(metadata=metadata)
    except Exception as e:
        logger.debug("Opik span annotation failed: %s", e)


def log_feedback_score(name: str, value: float, reason: Optional[str] = None) -> None:
    """Record a user feedback score on the active Opik trace."""
    if not settings.OPIK_ENABLED:
        return

    score: Dict[str, Any] = {"name": name, "value": value}
    if reason:
        score["reason"] = reason
    try:
        from opik import opik_context

        opik_context.update_current_trace(feedback_scores=[score])
    except Exception as e:
        logger.debug("Opik feedback logging failed for %s: %s", name, e)


__all__ = ["annotate_current_span", "log_feedback_score", "store_prompt"]
