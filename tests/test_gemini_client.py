"""
Tests for the Gemini client adapter and error classification.
"""

from __future__ import annotations

from types import SimpleNamespace
from typing import Any
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest
from google.genai import errors as genai_errors

from fb.exceptions import ConfigurationError
from fb.llm.base import (
    AuthenticationError,
    EmptyResponseError,
    InvalidRequestError,
    LLMError,
    LLMRequest,
    ModelNotFoundError,
    QuotaExceededError,
    ServiceUnavailableError,
    TransientLLMError,
    TransportError,
)
from fb.llm.gemini_client import GeminiClient, classify_error


def _api_error(cls: type, code: int, status: str, message: str) -> Exception:
    return cls(code, {"error": {"code": code, "message": message, "status": status}})


def _response(text: str, chunks: list[Any] | None = None) -> SimpleNamespace:
    grounding = None
    if chunks is not None:
        grounding = SimpleNamespace(grounding_chunks=chunks, web_search_queries=["amd stock news"])
    candidate = SimpleNamespace(
        content=SimpleNamespace(parts=[SimpleNamespace(text=text)]),
        finish_reason="STOP",
        grounding_metadata=grounding,
    )
    return SimpleNamespace(
        candidates=[candidate],
        usage_metadata=SimpleNamespace(prompt_token_count=11, candidates_token_count=22),
    )


def _request(**kwargs: Any) -> LLMRequest:
    return LLMRequest(
        messages=[
            {"role": "system", "content": "schema"},
            {"role": "user", "content": "pick a stock"},
        ],
        model="gemini-test",
        **kwargs,
    )


class TestClassifyError:
    """Tests for classify_error."""

    def test_quota(self) -> None:
        """Test that 429 / RESOURCE_EXHAUSTED is a quota error."""
        error = _api_error(genai_errors.ClientError, 429, "RESOURCE_EXHAUSTED", "Quota exceeded")
        classified = classify_error(error, "m")

        assert isinstance(classified, QuotaExceededError)
        assert isinstance(classified, TransientLLMError)

    def test_unavailable(self) -> None:
        """Test that 503 is a transient service error."""
        error = _api_error(genai_errors.ServerError, 503, "UNAVAILABLE", "The model is overloaded")
        assert isinstance(classify_error(error, "m"), ServiceUnavailableError)

    def test_internal(self) -> None:
        """Test that 500 is a transient service error."""
        error = _api_error(genai_errors.ServerError, 500, "INTERNAL", "Internal error")
        assert isinstance(classify_error(error, "m"), ServiceUnavailableError)

    def test_authentication(self) -> None:
        """Test that 403 is fatal authentication."""
        error = _api_error(genai_errors.ClientError, 403, "PERMISSION_DENIED", "Permission denied")
        classified = classify_error(error, "m")

        assert isinstance(classified, AuthenticationError)
        assert not isinstance(classified, TransientLLMError)

    def test_model_not_found(self) -> None:
        """Test that 404 names the model."""
        error = _api_error(genai_errors.ClientError, 404, "NOT_FOUND", "models/x is not found")
        classified = classify_error(error, "gemini-missing")

        assert isinstance(classified, ModelNotFoundError)
        assert "gemini-missing" in str(classified)

    def test_invalid_request(self) -> None:
        """Test that 400 is a fatal invalid request."""
        error = _api_error(genai_errors.ClientError, 400, "INVALID_ARGUMENT", "Bad schema")
        assert isinstance(classify_error(error, "m"), InvalidRequestError)

    def test_transport(self) -> None:
        """Test that connection failures are transport errors."""
        assert isinstance(classify_error(httpx.ConnectError("refused"), "m"), TransportError)
        assert isinstance(classify_error(ConnectionResetError("reset"), "m"), TransportError)
        assert isinstance(classify_error(TimeoutError(), "m"), TransportError)

    def test_unknown_is_generic(self) -> None:
        """Test that unrecognized errors are generic and not retryable."""
        classified = classify_error(RuntimeError("weird"), "m")

        assert type(classified) is LLMError

    def test_llm_error_passthrough(self) -> None:
        """Test that already-classified errors are returned unchanged."""
        error = QuotaExceededError("q")
        assert classify_error(error, "m") is error


class TestGeminiClient:
    """Tests for GeminiClient."""

    async def test_missing_key_fails_before_network(self) -> None:
        """Test that no SDK client is built without a key."""
        with patch("fb.llm.gemini_client.genai") as mock_genai:
            client = GeminiClient(credential_provider=lambda: None)

            with pytest.raises(ConfigurationError):
                await client.complete_with_grounding(_request())

            mock_genai.Client.assert_not_called()

    async def test_grounded_call(self) -> None:
        """Test text, usage and flattened grounding chunks."""
        chunks = [
            SimpleNamespace(web=SimpleNamespace(uri="https://a.example/1", title="A", domain="a.example")),
            SimpleNamespace(web=None),
        ]
        with patch("fb.llm.gemini_client.genai") as mock_genai:
            sdk = MagicMock()
            sdk.aio.models.generate_content = AsyncMock(return_value=_response('{"ticker": "AMD"}', chunks))
            mock_genai.Client.return_value = sdk

            client = GeminiClient(api_key="key-1")
            response = await client.complete_with_grounding(_request())

        assert response.content == '{"ticker": "AMD"}'
        assert response.provider == "google"
        assert response.input_tokens == 11
        assert response.output_tokens == 22
        assert response.grounding_chunks == [
            {"title": "A", "url": "https://a.example/1", "source": "a.example"}
        ]
        assert response.metadata["web_search_queries"] == ["amd stock news"]

        kwargs = sdk.aio.models.generate_content.await_args.kwargs
        assert kwargs["model"] == "gemini-test"
        config = kwargs["config"]
        assert config.tools
        assert config.system_instruction == "schema"
        assert config.response_mime_type is None

    async def test_json_mode_without_search(self) -> None:
        """Test that JSON mime type is requested only without the search tool."""
        with patch("fb.llm.gemini_client.genai") as mock_genai:
            sdk = MagicMock()
            sdk.aio.models.generate_content = AsyncMock(return_value=_response("{}"))
            mock_genai.Client.return_value = sdk

            client = GeminiClient(api_key="key-1")
            await client.complete_with_grounding(
                _request(response_format={"type": "json_object"}),
                enable_google_search=False,
            )

        config = sdk.aio.models.generate_content.await_args.kwargs["config"]
        assert not config.tools
        assert config.response_mime_type == "application/json"

    async def test_empty_text_is_transient(self) -> None:
        """Test that an empty reply raises EmptyResponseError."""
        with patch("fb.llm.gemini_client.genai") as mock_genai:
            sdk = MagicMock()
            sdk.aio.models.generate_content = AsyncMock(return_value=_response("   "))
            mock_genai.Client.return_value = sdk

            with pytest.raises(EmptyResponseError):
                await GeminiClient(api_key="key-1").complete_with_grounding(_request())

    async def test_no_candidates(self) -> None:
        """Test that a reply without candidates raises EmptyResponseError."""
        with patch("fb.llm.gemini_client.genai") as mock_genai:
            sdk = MagicMock()
            sdk.aio.models.generate_content = AsyncMock(
                return_value=SimpleNamespace(candidates=[], usage_metadata=None)
            )
            mock_genai.Client.return_value = sdk

            with pytest.raises(EmptyResponseError):
                await GeminiClient(api_key="key-1").complete_with_grounding(_request())

    async def test_sdk_error_is_classified(self) -> None:
        """Test that SDK exceptions surface as classified LLM errors."""
        error = _api_error(genai_errors.ClientError, 429, "RESOURCE_EXHAUSTED", "Quota exceeded")
        with patch("fb.llm.gemini_client.genai") as mock_genai:
            sdk = MagicMock()
            sdk.aio.models.generate_content = AsyncMock(side_effect=error)
            mock_genai.Client.return_value = sdk

            with pytest.raises(QuotaExceededError) as exc_info:
                await GeminiClient(api_key="key-1").complete_with_grounding(_request())

        assert exc_info.value.__cause__ is error

    async def test_client_rebuilt_when_key_changes(self) -> None:
        """Test that the latest credential is used on each call."""
        keys = iter(["key-1", "key-1", "key-2"])
        with patch("fb.llm.gemini_client.genai") as mock_genai:
            sdk = MagicMock()
            sdk.aio.models.generate_content = AsyncMock(return_value=_response("{}"))
            mock_genai.Client.return_value = sdk

            client = GeminiClient(credential_provider=lambda: next(keys))
            for _ in range(3):
                await client.complete(_request())

        assert [c.kwargs["api_key"] for c in mock_genai.Client.call_args_list] == ["key-1", "key-2"]
