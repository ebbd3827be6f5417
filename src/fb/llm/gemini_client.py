"""
Google Gemini LLM client implementation.

Uses the google-genai SDK (Google AI Studio API, not Vertex AI). Supports
plain completions and completions grounded with Google Search. SDK and
transport exceptions are classified into the fb.llm.base hierarchy so the
retry policy can tell transient failures from fatal ones.
"""

from __future__ import annotations

import time
from typing import Any, Callable

import httpx
from google import genai
from google.genai import errors as genai_errors
from google.genai import types

from fb.exceptions import ConfigurationError
from fb.llm.base import (
    AuthenticationError,
    EmptyResponseError,
    InvalidRequestError,
    LLMError,
    LLMRequest,
    LLMResponse,
    ModelNotFoundError,
    QuotaExceededError,
    ServiceUnavailableError,
    TransportError,
)
from fb.logging import get_logger

logger = get_logger(__name__)

CredentialProvider = Callable[[], "str | None"]


def classify_error(error: Exception, model: str) -> LLMError:
    """Map an SDK or transport exception onto the LLM error hierarchy.

    Args:
        error: Exception raised while calling the API.
        model: Model that was being called (for messages).

    Returns:
        An LLMError subclass instance. Transient classes are retryable.
    """
    if isinstance(error, LLMError):
        return error

    message = str(error)
    lowered = message.lower()
    code: int | None = None
    status = ""
    if isinstance(error, genai_errors.APIError):
        code = error.code
        status = (error.status or "").upper()

    if isinstance(error, (httpx.TransportError, ConnectionError, TimeoutError)):
        return TransportError(f"Gemini transport error: {message}")

    if (
        code == 429
        or status == "RESOURCE_EXHAUSTED"
        or "429" in message
        or "resource_exhausted" in lowered
        or "quota" in lowered
    ):
        return QuotaExceededError(f"Gemini quota exceeded: {message}")

    if (
        code in (500, 502, 503, 504)
        or status in ("UNAVAILABLE", "INTERNAL", "DEADLINE_EXCEEDED")
        or "503" in message
        or "unavailable" in lowered
        or "overloaded" in lowered
    ):
        return ServiceUnavailableError(f"Gemini unavailable: {message}")

    if (
        code in (401, 403)
        or status in ("UNAUTHENTICATED", "PERMISSION_DENIED")
        or "api key" in lowered
    ):
        return AuthenticationError(f"Gemini authentication failed: {message}")

    if code == 404 or "not found" in lowered:
        return ModelNotFoundError(f"Model not found: {model}")

    if code == 400 or status == "INVALID_ARGUMENT":
        return InvalidRequestError(f"Gemini rejected the request: {message}")

    return LLMError(f"Gemini API error: {message}")


class GeminiClient:
    """Google Gemini LLM client using google-genai SDK.

    The API key is looked up through a credential provider on every call,
    and the SDK client is rebuilt only when the key changes.
    """

    def __init__(
        self,
        api_key: str | None = None,
        credential_provider: CredentialProvider | None = None,
    ) -> None:
        """Initialize the Gemini client.

        Args:
            api_key: Fixed Google AI Studio API key.
            credential_provider: Callable returning the current key. Takes
                precedence over api_key.
        """
        if credential_provider is None:
            credential_provider = lambda: api_key  # noqa: E731
        self._credentials = credential_provider
        self._client: genai.Client | None = None
        self._client_key: str | None = None
        self._provider = "google"

    @property
    def provider(self) -> str:
        """Name of this provider."""
        return self._provider

    def _get_client(self) -> genai.Client:
        """Return an SDK client for the current credential.

        Raises:
            ConfigurationError: If no API key is available.
        """
        key = self._credentials()
        if not key:
            raise ConfigurationError(
                "Gemini API key is missing. Set GEMINI_API_KEY (or API_KEY).",
                context={"provider": self._provider},
            )
        if self._client is None or key != self._client_key:
            self._client = genai.Client(api_key=key)
            self._client_key = key
        return self._client

    def _convert_messages(
        self, messages: list[dict[str, Any]]
    ) -> tuple[str | None, list[types.Content]]:
        """Convert OpenAI-style messages to Gemini format.

        Args:
            messages: OpenAI-style messages.

        Returns:
            Tuple of (system_instruction, contents).
        """
        system_instruction: str | None = None
        contents: list[types.Content] = []

        for msg in messages:
            role = msg.get("role", "user")
            content = msg.get("content", "")

            if role == "system":
                # Gemini takes system instruction separately
                if system_instruction:
                    system_instruction += f"\n\n{content}"
                else:
                    system_instruction = content
            else:
                contents.append(
                    types.Content(
                        role="model" if role == "assistant" else "user",
                        parts=[types.Part.from_text(text=content)],
                    )
                )

        return system_instruction, contents

    async def complete(self, request: LLMRequest) -> LLMResponse:
        """Send a completion request without tools.

        Args:
            request: The LLM request.

        Returns:
            LLM response.

        Raises:
            LLMError: If the request fails (classified).
        """
        return await self.complete_with_grounding(request, enable_google_search=False)

    async def complete_with_grounding(
        self,
        request: LLMRequest,
        enable_google_search: bool = True,
    ) -> LLMResponse:
        """Send a completion request with Google Search grounding.

        Args:
            request: The LLM request.
            enable_google_search: Whether to enable Google Search grounding.

        Returns:
            LLM response; grounding chunks are in metadata["grounding_chunks"].

        Raises:
            ConfigurationError: If no API key is configured.
            LLMError: If the request fails (classified).
        """
        client = self._get_client()
        start_time = time.monotonic()

        system_instruction, contents = self._convert_messages(request.messages)

        config = types.GenerateContentConfig(
            temperature=request.temperature,
            max_output_tokens=request.max_tokens,
            stop_sequences=request.stop,
            tools=[types.Tool(google_search=types.GoogleSearch())] if enable_google_search else None,
        )

        # JSON mode cannot be combined with the search tool
        if (
            request.response_format
            and request.response_format.get("type") == "json_object"
            and not enable_google_search
        ):
            config.response_mime_type = "application/json"

        if system_instruction:
            config.system_instruction = system_instruction

        try:
            response = await client.aio.models.generate_content(
                model=request.model,
                contents=contents,
                config=config,
            )
        except Exception as e:
            error = classify_error(e, request.model)
            logger.warning(
                "Gemini call failed",
                model=request.model,
                error_type=type(error).__name__,
                error=str(e)[:300],
            )
            raise error from e

        latency_ms = int((time.monotonic() - start_time) * 1000)

        if not response or not response.candidates:
            raise EmptyResponseError(f"Gemini returned no candidates ({request.model})")

        candidate = response.candidates[0]
        content = ""
        if candidate.content and candidate.content.parts:
            for part in candidate.content.parts:
                if part.text:
                    content += part.text

        if not content.strip():
            raise EmptyResponseError(f"Gemini returned an empty response ({request.model})")

        input_tokens = 0
        output_tokens = 0
        if response.usage_metadata:
            input_tokens = response.usage_metadata.prompt_token_count or 0
            output_tokens = response.usage_metadata.candidates_token_count or 0

        finish_reason = "stop"
        if candidate.finish_reason:
            finish_reason = str(candidate.finish_reason).lower()

        metadata: dict[str, Any] = {}
        gm = getattr(candidate, "grounding_metadata", None)
        if gm:
            chunks = []
            for chunk in gm.grounding_chunks or []:
                web = getattr(chunk, "web", None)
                if not web:
                    continue
                chunks.append({
                    "title": getattr(web, "title", None) or "",
                    "url": getattr(web, "uri", None) or "",
                    "source": getattr(web, "domain", None) or "",
                })
            if chunks:
                metadata["grounding_chunks"] = chunks
            if getattr(gm, "web_search_queries", None):
                metadata["web_search_queries"] = list(gm.web_search_queries)

        logger.debug(
            "Gemini call complete",
            model=request.model,
            latency_ms=latency_ms,
            output_tokens=output_tokens,
            grounding_chunks=len(metadata.get("grounding_chunks", [])),
        )

        return LLMResponse(
            content=content,
            model=request.model,
            provider=self._provider,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            finish_reason=finish_reason,
            latency_ms=latency_ms,
            metadata=metadata,
        )

    async def close(self) -> None:
        """Close the client.

        Note: google-genai client doesn't require explicit close.
        """
        self._client = None
        self._client_key = None
