"""
Grounding citations.

Turns the search tool's grounding chunks into a deduplicated source list
and, optionally, a Markdown reference section for the article body.
"""

from __future__ import annotations

from typing import Any, Iterable
from urllib.parse import urlparse

from fb.types import Source

PLACEHOLDER_TITLE = "reference source"
SECTION_HEADING = "### Sources"


def _field(obj: Any, *names: str) -> Any:
    for name in names:
        if isinstance(obj, dict):
            value = obj.get(name)
        else:
            value = getattr(obj, name, None)
        if value:
            return value
    return None


def collect_sources(chunks: Iterable[Any] | None) -> list[Source]:
    """Build a deduplicated source list from grounding chunks.

    Accepts SDK chunk objects (chunk.web.uri / chunk.web.title), raw dicts
    of the same shape, or the flattened dicts produced by GeminiClient
    ({"url": ..., "title": ...}).

    Args:
        chunks: Grounding chunks in response order.

    Returns:
        Sources in first-seen order. Chunks without a URI are dropped and
        missing titles are replaced by a placeholder.
    """
    sources: list[Source] = []
    seen: set[str] = set()

    for chunk in chunks or []:
        web = _field(chunk, "web") or chunk
        uri = _field(web, "uri", "url")
        if not isinstance(uri, str) or not uri.strip():
            continue
        uri = uri.strip()
        if uri in seen:
            continue
        seen.add(uri)
        title = _field(web, "title")
        title = title.strip() if isinstance(title, str) and title.strip() else PLACEHOLDER_TITLE
        sources.append(Source(title=title, uri=uri))

    return sources


def _link_label(source: Source) -> str:
    if source.title != PLACEHOLDER_TITLE:
        return source.title
    host = urlparse(source.uri).hostname
    return host or source.title


def format_source_section(sources: Iterable[Source]) -> str:
    """Render sources as a Markdown reference section.

    Returns:
        The section (leading separator included), or "" when there are no
        sources.
    """
    lines = [f"- [{_link_label(s)}]({s.uri})" for s in sources]
    if not lines:
        return ""
    return "\n\n---\n" + SECTION_HEADING + "\n" + "\n".join(lines)
