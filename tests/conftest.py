"""
Pytest configuration and fixtures for FinanceBot tests.
"""

from __future__ import annotations

import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Generator
from unittest.mock import patch

import pytest

from fb.config import Settings, clear_settings_cache
from fb.llm.base import LLMRequest, LLMResponse
from fb.types import AnalysisReport, generate_id


@pytest.fixture
def temp_dir(tmp_path: Path) -> Path:
    """Provide a temporary directory for test outputs."""
    return tmp_path


@pytest.fixture
def mock_env_vars() -> Generator[dict[str, str], None, None]:
    """Provide mock environment variables for testing.

    Sets up a fake API key and small limits.
    """
    env_vars = {
        "GEMINI_API_KEY": "AIza-test-fake-gemini-key-1234567890",
        "MODEL_RESEARCH": "gemini-test-research",
        "MODEL_WRITER": "gemini-test-writer",
        "MAX_RETRIES": "3",
        "MAX_REPORTS": "50",
        "LOG_LEVEL": "DEBUG",
    }

    with patch.dict(os.environ, env_vars, clear=False):
        clear_settings_cache()
        yield env_vars


@pytest.fixture
def mock_settings(mock_env_vars: dict[str, str], temp_dir: Path) -> Generator[Settings, None, None]:
    """Provide a Settings instance with mock configuration.

    Uses temp_dir for the report collection.
    """
    with patch.dict(os.environ, {"REPORTS_PATH": str(temp_dir / "data" / "reports.json")}):
        clear_settings_cache()
        from fb.config import get_settings

        settings = get_settings()
        settings.ensure_directories()
        yield settings
        clear_settings_cache()


@pytest.fixture
def report_dict() -> Callable[..., dict[str, Any]]:
    """Factory for valid stored-report dicts (camelCase keys)."""

    def _make(**overrides: Any) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": generate_id("report"),
            "timestamp": datetime(2026, 10, 14, 3, 0, tzinfo=timezone.utc).isoformat(),
            "market": "US",
            "ticker": "AMD",
            "title": "AMD rallies on data center demand",
            "summary": "MI-series accelerators keep selling out.",
            "fullContent": "## Overview\n\nAMD gained 4% after guidance.",
            "price": 172.3,
            "currency": "USD",
        }
        data.update(overrides)
        return data

    return _make


@pytest.fixture
def make_report(report_dict: Callable[..., dict[str, Any]]) -> Callable[..., AnalysisReport]:
    """Factory for AnalysisReport instances."""

    def _make(**overrides: Any) -> AnalysisReport:
        return AnalysisReport.from_dict(report_dict(**overrides))

    return _make


class ScriptedLLMClient:
    """LLMClient double that replays a script of responses or exceptions."""

    def __init__(self, script: list[Any]) -> None:
        self.script = list(script)
        self.requests: list[tuple[LLMRequest, bool]] = []

    @property
    def provider(self) -> str:
        return "fake"

    async def complete(self, request: LLMRequest) -> LLMResponse:
        return await self.complete_with_grounding(request, enable_google_search=False)

    async def complete_with_grounding(
        self,
        request: LLMRequest,
        enable_google_search: bool = True,
    ) -> LLMResponse:
        self.requests.append((request, enable_google_search))
        item = self.script.pop(0)
        if isinstance(item, BaseException):
            raise item
        if isinstance(item, LLMResponse):
            return item
        return LLMResponse(content=item, model=request.model, provider="fake")

    async def close(self) -> None:
        pass


@pytest.fixture
def scripted_client() -> Callable[[list[Any]], ScriptedLLMClient]:
    """Factory for a scripted LLM client."""
    return ScriptedLLMClient


@pytest.fixture
def sleep_recorder() -> tuple[list[float], Callable[[float], Any]]:
    """Sleep replacement that records requested waits."""
    waits: list[float] = []

    async def _sleep(seconds: float) -> None:
        waits.append(seconds)

    return waits, _sleep


@pytest.fixture(autouse=True)
def reset_settings_cache() -> Generator[None, None, None]:
    """Automatically reset settings cache before and after each test."""
    clear_settings_cache()
    yield
    clear_settings_cache()
