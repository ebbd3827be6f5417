"""
LLM client package.

This package wraps Google Gemini with Search grounding:
- GeminiClient: SDK adapter with error classification
- RetryPolicy: linear backoff for transient failures
- ModelInvoker: client + retry policy
- extract_json / collect_sources: reply post-processing
"""

from fb.llm.base import (
    AuthenticationError,
    EmptyResponseError,
    LLMError,
    LLMRequest,
    LLMResponse,
    QuotaExceededError,
    RateLimitError,
    ServiceUnavailableError,
    TransientLLMError,
    TransportError,
)
from fb.llm.extract import extract_json
from fb.llm.grounding import collect_sources, format_source_section
from fb.llm.invoker import ModelInvoker, ModelReply
from fb.llm.retry import RetryPolicy

__all__ = [
    "AuthenticationError",
    "EmptyResponseError",
    "LLMError",
    "LLMRequest",
    "LLMResponse",
    "ModelInvoker",
    "ModelReply",
    "QuotaExceededError",
    "RateLimitError",
    "RetryPolicy",
    "ServiceUnavailableError",
    "TransientLLMError",
    "TransportError",
    "collect_sources",
    "extract_json",
    "format_source_section",
]
