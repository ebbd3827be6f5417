"""
Base classes and interfaces for LLM clients.

This module defines:
- LLMRequest: Standardized request format
- LLMResponse: Standardized response format
- LLMClient: Protocol for the model client
- The LLM error hierarchy, split into transient (retryable) and fatal errors
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable


@dataclass
class LLMRequest:
    """Standardized LLM request format."""

    messages: list[dict[str, Any]]  # [{"role": "system"|"user"|"assistant", "content": "..."}]
    model: str
    temperature: float = 0.7
    max_tokens: int | None = None
    response_format: dict[str, Any] | None = None  # {"type": "json_object"}
    stop: list[str] | None = None


@dataclass
class LLMResponse:
    """Standardized LLM response format."""

    content: str
    model: str
    provider: str
    input_tokens: int = 0
    output_tokens: int = 0
    finish_reason: str = "stop"
    latency_ms: int = 0
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def total_tokens(self) -> int:
        """Total tokens used."""
        return self.input_tokens + self.output_tokens

    @property
    def grounding_chunks(self) -> list[dict[str, Any]]:
        """Citation chunks attached by the search tool, if any."""
        return list(self.metadata.get("grounding_chunks") or [])


@runtime_checkable
class LLMClient(Protocol):
    """Protocol for LLM clients used by the invoker."""

    @property
    def provider(self) -> str:
        """Name of this provider."""
        ...

    async def complete(self, request: LLMRequest) -> LLMResponse:
        """Send a completion request without tools."""
        ...

    async def complete_with_grounding(
        self,
        request: LLMRequest,
        enable_google_search: bool = True,
    ) -> LLMResponse:
        """Send a completion request with web search grounding."""
        ...

    async def close(self) -> None:
        """Close any open connections."""
        ...


class LLMError(Exception):
    """Base exception for LLM errors."""

    pass


class TransientLLMError(LLMError):
    """Failure that may succeed when retried."""

    pass


class RateLimitError(TransientLLMError):
    """Rate limit exceeded."""

    def __init__(self, message: str, retry_after: float | None = None) -> None:
        super().__init__(message)
        self.retry_after = retry_after


class QuotaExceededError(RateLimitError):
    """Quota exhausted (HTTP 429 / RESOURCE_EXHAUSTED)."""

    pass


class ServiceUnavailableError(TransientLLMError):
    """Server-side capacity problem (503, unavailable, overloaded)."""

    pass


class TransportError(TransientLLMError):
    """Network failure before a response was received."""

    pass


class EmptyResponseError(TransientLLMError):
    """Response without candidates or text."""

    pass


class AuthenticationError(LLMError):
    """Authentication failed."""

    pass


class ModelNotFoundError(LLMError):
    """Model not found or not accessible."""

    pass


class InvalidRequestError(LLMError):
    """Request rejected as malformed."""

    pass
