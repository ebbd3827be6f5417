"""
JSON recovery from model replies.

Models are told to answer with a bare JSON object but sometimes wrap it in
code fences or surround it with prose. extract_json() is permissive about
the wrapping and strict about the content: it returns a dict or raises
MalformedResponseError, never an empty placeholder.
"""

from __future__ import annotations

import json
import re
from typing import Any

from fb.exceptions import MalformedResponseError

# Only wrapping fences are removed; fences inside string values (markdown
# bodies) must survive untouched.
_OPENING_FENCE = re.compile(r"^\s*```[a-zA-Z0-9_-]*[ \t]*\n?")
_CLOSING_FENCE = re.compile(r"\n?[ \t]*```\s*$")


def strip_code_fences(text: str) -> str:
    """Remove wrapping Markdown code-fence markers (```json ... ```)."""
    text = _OPENING_FENCE.sub("", text, count=1)
    text = _CLOSING_FENCE.sub("", text, count=1)
    return text.strip()


def _parse_object(text: str) -> dict[str, Any] | None:
    try:
        value = json.loads(text)
    except (json.JSONDecodeError, ValueError):
        return None
    return value if isinstance(value, dict) else None


def extract_json(raw_text: str | None) -> dict[str, Any]:
    """Recover a JSON object from a raw model reply.

    Order of attempts:
    1. Strip code-fence markers.
    2. Parse the cleaned text.
    3. Parse the span from the first '{' to the last '}'.

    Args:
        raw_text: The model's text reply.

    Returns:
        The parsed object.

    Raises:
        MalformedResponseError: If no JSON object can be recovered.
    """
    raw = raw_text or ""
    cleaned = strip_code_fences(raw)

    data = _parse_object(cleaned)
    if data is not None:
        return data

    start = cleaned.find("{")
    end = cleaned.rfind("}")
    if start != -1 and end > start:
        data = _parse_object(cleaned[start:end + 1])
        if data is not None:
            return data

    raise MalformedResponseError(
        "Model reply does not contain a valid JSON object",
        raw_text=raw,
        context={"length": len(raw), "preview": raw[:120]},
    )
