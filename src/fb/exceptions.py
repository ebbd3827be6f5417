"""
Custom exception hierarchy for FinanceBot.

All exceptions inherit from FBError, which provides optional context
for structured error handling and logging. LLM call failures live in
fb.llm.base so the client layer stays importable on its own.
"""

from __future__ import annotations

from typing import Any


class FBError(Exception):
    """Base exception for all FinanceBot errors.

    Attributes:
        message: Human-readable error message.
        context: Optional structured context for logging/debugging.
    """

    def __init__(self, message: str, context: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def __str__(self) -> str:
        if self.context:
            ctx_str = ", ".join(f"{k}={v!r}" for k, v in self.context.items())
            return f"{self.message} ({ctx_str})"
        return self.message

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, context={self.context!r})"


class ConfigurationError(FBError):
    """Raised when configuration is invalid or missing.

    Examples:
        - Missing GEMINI_API_KEY
        - Unknown market timezone
    """

    pass


class DataFetchError(FBError):
    """Raised when fetching external data fails.

    Context should include:
        - source: The data source (e.g., "yahoo")
        - url: The URL that was being fetched
        - status_code: HTTP status code if applicable
    """

    pass


class ReportValidationError(FBError):
    """Raised when a report dict does not satisfy the report schema.

    Context should include:
        - field: The field that failed validation
        - value: The invalid value
        - expected: Description of what was expected
    """

    pass


class MalformedResponseError(FBError):
    """Raised when no JSON object can be recovered from a model reply.

    The raw reply is kept on the exception for diagnostics.
    """

    def __init__(
        self,
        message: str,
        raw_text: str,
        context: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, context)
        self.raw_text = raw_text


class GenerationInProgressError(FBError):
    """Raised when a publish is requested while another one is running."""

    pass


class PipelineError(FBError):
    """Raised when the discovery pipeline cannot complete.

    Context should include:
        - run_id: The run ID
        - phase: The phase that failed
    """

    pass
