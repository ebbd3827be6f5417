"""
Tests for prompt builders.
"""

from __future__ import annotations

import json

from fb.prompts import (
    RESEARCH_INSTRUCTION,
    build_discovery_prompt,
    build_research_prompt,
    build_writing_prompt,
    system_instruction,
)
from fb.types import Market


class TestSystemInstruction:
    """Tests for the fixed schema instruction."""

    def test_language_rendered(self) -> None:
        """Test that the narrative language is substituted."""
        text = system_instruction("English")

        assert "Write every narrative field in English." in text
        assert "{language}" not in text

    def test_schema_braces_survive_formatting(self) -> None:
        """Test that the JSON schema keeps single braces."""
        text = system_instruction()

        assert '"technicalAnalysis": {' in text
        assert "{{" not in text
        assert "StrongBuy | Buy | Hold | Sell" in text


class TestDiscoveryPrompt:
    """Tests for build_discovery_prompt."""

    def test_market_and_exclusions(self) -> None:
        """Test that market and excluded tickers appear verbatim."""
        prompt = build_discovery_prompt(Market.US, ["NVDA", "TSLA"])

        assert prompt.content.startswith("[Market: US]")
        assert "NVDA, TSLA" in prompt.content
        assert "NASDAQ" in prompt.content
        assert "Google Search" in prompt.content

    def test_empty_exclusions(self) -> None:
        """Test the wording when nothing is excluded."""
        prompt = build_discovery_prompt(Market.KR, [])

        assert prompt.content.startswith("[Market: KR]")
        assert "(excluded)]: none." in prompt.content
        assert "KOSPI" in prompt.content

    def test_pinned_ticker_with_prefetched_data(self) -> None:
        """Test that a pinned ticker replaces discovery and embeds market data."""
        prefetched = {"quote": {"symbol": "AMD", "price": 172.3, "currency": "USD"}}
        prompt = build_discovery_prompt(Market.US, ["NVDA"], prefetched=prefetched, ticker="AMD")

        assert "Analyze the stock AMD" in prompt.content
        assert "NVDA" not in prompt.content
        assert '"price": 172.3' in prompt.content
        assert "ground truth" in prompt.content

    def test_messages(self) -> None:
        """Test the OpenAI-style message pair."""
        messages = build_discovery_prompt(Market.US, []).to_messages()

        assert [m["role"] for m in messages] == ["system", "user"]


class TestTwoPassPrompts:
    """Tests for the research and writing prompts."""

    def test_research_prompt(self) -> None:
        """Test the research pass prompt."""
        prompt = build_research_prompt(Market.US, ["NVDA"])

        assert prompt.system == RESEARCH_INSTRUCTION
        assert "NVDA" in prompt.content
        assert "research JSON" in prompt.content

    def test_writing_prompt_embeds_research_verbatim(self) -> None:
        """Test that the pass-1 JSON is embedded unchanged."""
        research = {"ticker": "005930", "name": "삼성전자", "price": 71500, "catalysts": ["HBM"]}
        prompt = build_writing_prompt(research, Market.KR, language="Korean")

        assert json.dumps(research, ensure_ascii=False, indent=2) in prompt.content
        assert "Write every narrative field in Korean." in prompt.system
