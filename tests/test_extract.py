"""
Tests for JSON recovery from model replies.
"""

from __future__ import annotations

import json

import pytest

from fb.exceptions import MalformedResponseError
from fb.llm.extract import extract_json, strip_code_fences

SAMPLE = {
    "ticker": "AMD",
    "title": "AMD: data center momentum",
    "price": 100,
    "reasons": ["MI300 demand", "Server share gains"],
    "technicalAnalysis": {"support": 95, "resistance": 110, "trend": "up"},
}


class TestExtractJson:
    """Tests for extract_json."""

    def test_bare_object(self) -> None:
        """Test that a bare JSON object parses unchanged."""
        assert extract_json(json.dumps(SAMPLE)) == SAMPLE

    def test_fenced_object(self) -> None:
        """Test that ```json fences are removed."""
        raw = "```json\n" + json.dumps(SAMPLE, indent=2) + "\n```"
        assert extract_json(raw) == SAMPLE

    def test_unlabelled_fence(self) -> None:
        """Test that plain ``` fences are removed."""
        raw = "```\n" + json.dumps(SAMPLE) + "\n```"
        assert extract_json(raw) == SAMPLE

    def test_object_surrounded_by_prose(self) -> None:
        """Test that leading and trailing prose is ignored."""
        raw = "Here is the report you asked for:\n" + json.dumps(SAMPLE) + "\nLet me know!"
        assert extract_json(raw) == SAMPLE

    def test_fenced_object_with_prose(self) -> None:
        """Test prose around a fenced block."""
        raw = "Sure.\n```json\n" + json.dumps(SAMPLE) + "\n```\nDone."
        assert extract_json(raw) == SAMPLE

    def test_markdown_fences_inside_values_survive(self) -> None:
        """Test that code fences inside string values are not stripped."""
        data = {"ticker": "NVDA", "fullContent": "Intro\n```python\nprint(1)\n```\nEnd"}
        raw = "```json\n" + json.dumps(data) + "\n```"

        assert extract_json(raw) == data

    def test_korean_text_preserved(self) -> None:
        """Test that non-ASCII narrative survives extraction."""
        data = {"ticker": "005930", "summary": "삼성전자, HBM 공급 확대"}
        assert extract_json(json.dumps(data, ensure_ascii=False)) == data

    def test_no_braces_fails(self) -> None:
        """Test that input without an object raises."""
        with pytest.raises(MalformedResponseError) as exc_info:
            extract_json("I could not find a suitable stock today.")

        assert exc_info.value.raw_text == "I could not find a suitable stock today."

    def test_invalid_json_between_braces_fails(self) -> None:
        """Test that a broken object raises rather than returning a placeholder."""
        with pytest.raises(MalformedResponseError):
            extract_json('{"ticker": "AMD", "price": }')

    def test_array_is_not_an_object(self) -> None:
        """Test that a top-level array is rejected."""
        with pytest.raises(MalformedResponseError):
            extract_json("[1, 2, 3]")

    @pytest.mark.parametrize("raw", ["", None, "   "])
    def test_empty_input_fails(self, raw: str | None) -> None:
        """Test that empty replies raise."""
        with pytest.raises(MalformedResponseError):
            extract_json(raw)


class TestStripCodeFences:
    """Tests for strip_code_fences."""

    def test_strips_wrapping_only(self) -> None:
        """Test that only the outer fence pair is removed."""
        assert strip_code_fences("```json\n{}\n```") == "{}"

    def test_no_fences_is_noop(self) -> None:
        """Test that unfenced text is only trimmed."""
        assert strip_code_fences("  {\"a\": 1}  ") == '{"a": 1}'
