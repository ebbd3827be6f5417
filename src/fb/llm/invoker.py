"""
Model invoker: one grounded (or plain) model call under the retry policy.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from fb.llm.base import LLMClient, LLMRequest, LLMResponse
from fb.llm.retry import RetryPolicy
from fb.logging import get_logger
from fb.prompts import Prompt

logger = get_logger(__name__)


@dataclass
class ModelReply:
    """Raw model text plus grounding side-channel."""

    text: str
    model: str
    grounding_chunks: list[dict[str, Any]] = field(default_factory=list)
    attempts: int = 1
    latency_ms: int = 0


class ModelInvoker:
    """Calls the model through a RetryPolicy.

    Transient failures (quota, overload, transport, empty response) are
    retried with backoff; everything else propagates on the first attempt.
    """

    def __init__(
        self,
        client: LLMClient,
        policy: RetryPolicy | None = None,
        temperature: float = 0.7,
    ) -> None:
        self.client = client
        self.policy = policy or RetryPolicy()
        self.temperature = temperature

    async def invoke(
        self,
        prompt: Prompt,
        model: str,
        use_search: bool = True,
        json_mode: bool = False,
    ) -> ModelReply:
        """Send a prompt and return the raw reply.

        Args:
            prompt: System instruction + content.
            model: Model identifier.
            use_search: Enable the Google Search grounding tool.
            json_mode: Ask for a JSON response (ignored with search enabled).

        Returns:
            ModelReply with text and grounding chunks.

        Raises:
            LLMError: Last error after retries, or the first fatal one.
            ConfigurationError: If credentials are missing.
        """
        request = LLMRequest(
            messages=prompt.to_messages(),
            model=model,
            temperature=self.temperature,
            response_format={"type": "json_object"} if json_mode else None,
        )
        attempts = 0

        async def _call() -> LLMResponse:
            nonlocal attempts
            attempts += 1
            return await self.client.complete_with_grounding(
                request, enable_google_search=use_search
            )

        logger.info("Invoking model", model=model, use_search=use_search)
        response = await self.policy.call(_call)

        return ModelReply(
            text=response.content,
            model=response.model,
            grounding_chunks=response.grounding_chunks,
            attempts=attempts,
            latency_ms=response.latency_ms,
        )
