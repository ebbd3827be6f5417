"""
Prompt templates for the discovery pipeline.

SYSTEM_INSTRUCTION carries the fixed role and output schema. The builders
produce the per-call content: acting market, exclusion list, optional
prefetched market data and the instruction to ground the answer with web
search. The two-pass variant splits the work into a grounded research call
and a writing call that receives the research JSON verbatim.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any

from fb.types import Market

SYSTEM_INSTRUCTION = """# Role
You are a global equity analyst and technical SEO strategist writing in the
style of Seeking Alpha and The Motley Fool.

# Mission
Write an in-depth stock analysis report that search engines classify as
authoritative content, targeting the featured snippet for searches such as
"<company> outlook" or "why is <company> up".

# Analysis framework
1. Macro context: rates, dollar index, oil and how the sector reacts to them.
2. Growth catalysts: what is driving the move and whether it can last.
3. Peer comparison: valuation (PER, EV/EBITDA) and technology gap versus peers.
4. Technical indicators: support, resistance, moving-average crosses, RSI.
5. Risk assessment: regulation, competition, cost pressure.

# Writing rules
- Write every narrative field in {language}.
- Short sentences; explain jargon.
- FAQ questions should be long-tail, conversational search queries.

# Output schema
Respond with ONE JSON object and nothing else: no prose before or after it,
no Markdown code fences.
{{
  "title": "string, H1 headline",
  "ticker": "string, exchange symbol",
  "price": number,
  "currency": "KRW | USD",
  "summary": "string, ~150 characters, usable as a meta description",
  "sentimentScore": number (0-100, 70+ is positive),
  "fearGreedIndex": number (0-100, 0 = extreme fear, 100 = extreme greed),
  "targetPrice": number,
  "investmentRating": "StrongBuy | Buy | Hold | Sell",
  "reasons": ["string", "string", "string"],
  "macroContext": "string",
  "valuationCheck": "string",
  "technicalAnalysis": {{
    "support": number,
    "resistance": number,
    "trend": "up | down | flat",
    "details": "string"
  }},
  "peers": [{{"name": "string", "symbol": "string", "price": number, "performance": "string", "differentiator": "string"}}],
  "fullContent": "string, Markdown body of 1500+ characters using H2/H3 headings",
  "faqs": [{{"question": "string", "answer": "string"}}]
}}
"""

RESEARCH_INSTRUCTION = """# Role
You are a market researcher. Use Google Search to collect current facts.

# Output schema
Respond with ONE JSON object and nothing else:
{
  "ticker": "string",
  "name": "string",
  "price": number,
  "currency": "KRW | USD",
  "changePercent": number,
  "targetPrice": number,
  "investmentRating": "StrongBuy | Buy | Hold | Sell",
  "sentimentScore": number (0-100),
  "fearGreedIndex": number (0-100),
  "technicalAnalysis": {"support": number, "resistance": number, "trend": "up | down | flat", "details": "string"},
  "peers": [{"name": "string", "symbol": "string", "price": number, "performance": "string", "differentiator": "string"}],
  "catalysts": ["string"],
  "news": [{"headline": "string", "date": "string"}]
}
"""

_MARKET_BRIEFS = {
    Market.KR: (
        "Pick ONE stock on the Korean KOSPI or KOSDAQ market whose trading "
        "volume is surging or that is leading a market theme right now."
    ),
    Market.US: (
        "Pick ONE volatile stock on NASDAQ or NYSE that global investors are "
        "focused on right now."
    ),
}


@dataclass(frozen=True)
class Prompt:
    """System instruction plus per-call content."""

    system: str
    content: str

    def to_messages(self) -> list[dict[str, Any]]:
        """OpenAI-style messages consumed by the LLM clients."""
        return [
            {"role": "system", "content": self.system},
            {"role": "user", "content": self.content},
        ]


def system_instruction(language: str = "Korean") -> str:
    """Render the fixed schema instruction for a narrative language."""
    return SYSTEM_INSTRUCTION.format(language=language)


def _exclusion_line(excluded: list[str] | tuple[str, ...]) -> str:
    listed = ", ".join(excluded) if excluded else "none"
    return (
        f"[Recently analyzed tickers (excluded)]: {listed}.\n"
        "Never pick a ticker from this list."
    )


def _subject_line(market: Market, ticker: str | None) -> str:
    if ticker:
        return f"Analyze the stock {ticker} ({market.value} market)."
    return _MARKET_BRIEFS[market]


def _prefetched_block(prefetched: dict[str, Any] | None) -> str:
    if not prefetched:
        return ""
    payload = json.dumps(prefetched, ensure_ascii=False, indent=2)
    return (
        "\n[Market data already fetched - treat these numbers as ground truth]\n"
        f"{payload}\n"
    )


def build_discovery_prompt(
    market: Market,
    excluded: list[str] | tuple[str, ...],
    prefetched: dict[str, Any] | None = None,
    ticker: str | None = None,
    language: str = "Korean",
) -> Prompt:
    """Single combined prompt: select, analyze and write.

    Args:
        market: Acting market.
        excluded: Tickers the model must not pick, listed verbatim.
        prefetched: Optional market data to embed.
        ticker: Pin the subject instead of letting the model discover one.
        language: Narrative language.

    Returns:
        Prompt for a grounded call.
    """
    content = (
        f"[Market: {market.value}]\n"
        f"{_subject_line(market, ticker)}\n\n"
        f"{_exclusion_line(excluded) if not ticker else ''}\n"
        f"{_prefetched_block(prefetched)}\n"
        "You MUST use the Google Search tool to:\n"
        "1. Confirm the current price and the change versus the previous close.\n"
        "2. Analyze at least 3 of the most influential news articles from the last 24 hours.\n"
        "3. Collect the latest analyst target price consensus.\n\n"
        "Then write the report as a single JSON object following the system instruction."
    )
    return Prompt(system=system_instruction(language), content=content)


def build_research_prompt(
    market: Market,
    excluded: list[str] | tuple[str, ...],
    prefetched: dict[str, Any] | None = None,
    ticker: str | None = None,
) -> Prompt:
    """Pass 1 of the two-pass variant: select a ticker and gather facts."""
    content = (
        f"[Market: {market.value}]\n"
        f"{_subject_line(market, ticker)}\n\n"
        f"{_exclusion_line(excluded) if not ticker else ''}\n"
        f"{_prefetched_block(prefetched)}\n"
        "Use the Google Search tool to collect the current price, change, "
        "analyst consensus, the latest news and peer prices. Return only the "
        "research JSON."
    )
    return Prompt(system=RESEARCH_INSTRUCTION, content=content)


def build_writing_prompt(
    research: dict[str, Any],
    market: Market,
    prefetched: dict[str, Any] | None = None,
    language: str = "Korean",
) -> Prompt:
    """Pass 2 of the two-pass variant: long-form article from research facts.

    The research object is embedded verbatim.
    """
    research_json = json.dumps(research, ensure_ascii=False, indent=2)
    content = (
        f"[Market: {market.value}]\n"
        "Write the full report for the stock described by the research below. "
        "Use only these facts for numbers; do not invent new figures.\n\n"
        "[Research]\n"
        f"{research_json}\n"
        f"{_prefetched_block(prefetched)}\n"
        "Return the report as a single JSON object following the system instruction."
    )
    return Prompt(system=system_instruction(language), content=content)
