"""Chat-completion capability used by the classifiers, backed by the Claude SDK."""

import asyncio
import logging
from typing import Optional, Protocol, Set, runtime_checkable

from claude_agent_sdk import (
    AssistantMessage,
    ClaudeAgentOptions,
    ResultMessage,
    TextBlock,
    query,
)
from opik import track
from pydantic import BaseModel, Field

from app.core.errors import ModelProviderError
from app.utils.opik_wrapper import store_prompt

logger = logging.getLogger(__name__)


class ModelSettings(BaseModel):
    """Per-call model parameters."""

    model: str
    temperature: float = Field(default=0.2, ge=0.0, le=2.0)
    max_tokens: int = Field(default=300, gt=0)
    timeout_ms: int = Field(default=8000, gt=0)


class CancellationToken:
    """Generation-stamped cancellation signal shared by one request.

    Callers capture ``generation`` before awaiting a provider and call
    ``is_current`` afterwards; a result that arrives after ``cancel`` was
    called belongs to a stale generation and must be dropped.
    """

    def __init__(self) -> None:
        self._generation = 0
        self._cancelled = False

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        self._cancelled = True
        self._generation += 1

    def is_current(self, generation: int) -> bool:
        return not self._cancelled and generation == self._generation


@runtime_checkable
class ModelProvider(Protocol):
    """Opaque ``invoke(system_prompt, user_prompt) -> text`` capability."""

    name: str

    async def invoke(
        self,
        system_prompt: str,
        user_prompt: str,
        *,
        settings: ModelSettings,
        cancellation: Optional[CancellationToken] = None,
    ) -> str:
        ...


class ClaudeModelProvider:
    """Model provider built on ``claude_agent_sdk.query``.

    The Agent SDK exposes no sampling controls, so ``temperature`` and
    ``max_tokens`` are recorded in trace metadata only. The timeout is
    enforced locally with ``asyncio.wait_for``.
    """

    name = "claude"

    def __init__(self, caller: str = "IntentPipeline"):
        """Initialize the provider.

        Args:
            caller: Name used when storing prompts in Opik
        """
        self.caller = caller
        self._opik_logged_system_prompts: Set[str] = set()

    @track
    async def invoke(
        self,
        system_prompt: str,
        user_prompt: str,
        *,
        settings: ModelSettings,
        cancellation: Optional[CancellationToken] = None,
    ) -> str:
        """Run one single-turn completion.

        Args:
            system_prompt: Instruction prompt
            user_prompt: User message
            settings: Model id, sampling parameters and timeout
            cancellation: Optional token; the stream is abandoned once cancelled

        Returns:
            Final response text

        Raises:
            asyncio.TimeoutError: If the call exceeds ``settings.timeout_ms``
            ModelProviderError: If the SDK call fails
        """
        prompt_name = f"{self.caller}_{settings.model}_system_prompt"
        if prompt_name not in self._opik_logged_system_prompts:
            store_prompt(
                name=prompt_name,
                prompt=system_prompt,
                metadata={
                    "component": "ClaudeModelProvider",
                    "model": settings.model,
                    "temperature": settings.temperature,
                    "max_tokens": settings.max_tokens,
                },
            )
            self._opik_logged_system_prompts.add(prompt_name)

        options = ClaudeAgentOptions(system_prompt=system_prompt)
        options.model = settings.model
        options.max_turns = 1

        try:
            return await asyncio.wait_for(
                self._collect(user_prompt, options, cancellation),
                timeout=settings.timeout_ms / 1000,
            )
        except asyncio.TimeoutError:
            logger.warning("Model %s timed out after %sms", settings.model, settings.timeout_ms)
            raise
        except asyncio.CancelledError:
            raise
        except ModelProviderError:
            raise
        except Exception as e:
            logger.exception("Model %s call failed: %s", settings.model, e)
            raise ModelProviderError(str(e), provider=self.name) from e

    async def _collect(
        self,
        user_prompt: str,
        options: ClaudeAgentOptions,
        cancellation: Optional[CancellationToken],
    ) -> str:
        last_result = None
        last_assistant = None
        async for message in query(prompt=user_prompt, options=options):
            if cancellation is not None and cancellation.cancelled:
                break
            if isinstance(message, ResultMessage):
                last_result = message
            elif isinstance(message, AssistantMessage):
                last_assistant = message

        if last_result is not None and getattr(last_result, "is_error", False):
            raise ModelProviderError(str(last_result.result or "model returned an error"), provider=self.name)
        if last_result is not None and last_result.result:
            return last_result.result
        if last_assistant is not None:
            return self._extract_assistant_text(last_assistant)
        raise ModelProviderError("empty response from model", provider=self.name)

    @staticmethod
    def _extract_assistant_text(message: AssistantMessage) -> str:
        """Extract text content from an AssistantMessage."""
        if isinstance(message.content, str):
            return message.content
        return "".join(item.text for item in message.content if isinstance(item, TextBlock))


__all__ = ["CancellationToken", "ClaudeModelProvider", "ModelProvider", "ModelSettings"]
