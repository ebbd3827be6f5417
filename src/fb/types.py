"""
Core types for FinanceBot.

This module defines the data structures used throughout the system:
- Enums for markets, trends, ratings and pipeline phases
- Frozen dataclasses for the report schema (AnalysisReport and its parts)
- Market data records (MarketSnapshot, ChartPoint, MarketData)
- Helper functions for ID generation and timestamps

Reports are built with a parse-then-validate step: model output is parsed
into a plain dict elsewhere, and AnalysisReport.from_dict() turns that dict
into a typed, immutable record or raises ReportValidationError.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from uuid6 import uuid7

from fb.exceptions import ReportValidationError


def generate_id(prefix: str = "") -> str:
    """Generate a time-ordered unique ID using UUID7.

    Args:
        prefix: Optional prefix for the ID (e.g., "run", "report")

    Returns:
        A unique ID string, optionally prefixed.
    """
    uid = str(uuid7())
    return f"{prefix}_{uid}" if prefix else uid


def utc_now() -> datetime:
    """Get current UTC time with timezone info."""
    return datetime.now(timezone.utc)


def parse_timestamp(value: Any) -> datetime:
    """Parse an ISO 8601 timestamp, assuming UTC when no offset is given.

    Raises:
        ValueError: If the value is not an ISO 8601 string or datetime.
    """
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, str) and value.strip():
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        dt = datetime.fromisoformat(text)
    else:
        raise ValueError(f"Not an ISO 8601 timestamp: {value!r}")
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


class Market(str, Enum):
    """Markets the bot writes about."""

    KR = "KR"
    US = "US"

    @property
    def home_currency(self) -> str:
        """Currency reports default to when the model omits it."""
        return "KRW" if self is Market.KR else "USD"


class Trend(str, Enum):
    """Technical trend direction."""

    UP = "up"
    DOWN = "down"
    FLAT = "flat"


class InvestmentRating(str, Enum):
    """Investment rating attached to a report."""

    STRONG_BUY = "StrongBuy"
    BUY = "Buy"
    HOLD = "Hold"
    SELL = "Sell"


class Phase(str, Enum):
    """States of one discovery run."""

    IDLE = "idle"
    SELECTING_SUBJECT = "selecting_subject"
    FETCHING_MARKET_DATA = "fetching_market_data"
    INVOKING = "invoking"
    EXTRACTING = "extracting"
    RECONCILING = "reconciling"
    FINALIZING = "finalizing"
    DONE = "done"
    FAILED = "failed"


# Korean labels plus common English spellings
_TREND_ALIASES = {
    "상승": Trend.UP,
    "하락": Trend.DOWN,
    "횡보": Trend.FLAT,
    "uptrend": Trend.UP,
    "bullish": Trend.UP,
    "downtrend": Trend.DOWN,
    "bearish": Trend.DOWN,
    "sideways": Trend.FLAT,
    "neutral": Trend.FLAT,
}

_RATING_ALIASES = {
    "강력매수": InvestmentRating.STRONG_BUY,
    "매수": InvestmentRating.BUY,
    "중립": InvestmentRating.HOLD,
    "보유": InvestmentRating.HOLD,
    "매도": InvestmentRating.SELL,
}

_NUMBER_NOISE = re.compile(r"[^0-9.\-]")
_ENUM_NOISE = re.compile(r"[\s_\-]")


# ============== Validation helpers ==============


def _fail(field_name: str, value: Any, expected: str) -> ReportValidationError:
    return ReportValidationError(
        f"Invalid report field '{field_name}': expected {expected}",
        context={"field": field_name, "value": value, "expected": expected},
    )


def _to_float(value: Any) -> float | None:
    """Best-effort numeric coercion ("$1,234.5" -> 1234.5)."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        cleaned = _NUMBER_NOISE.sub("", value)
        if not cleaned or cleaned in {"-", ".", "-."}:
            return None
        try:
            number = float(cleaned)
        except ValueError:
            return None
    else:
        return None
    return number if math.isfinite(number) else None


def _required_float(data: dict[str, Any], key: str) -> float:
    value = data.get(key)
    number = _to_float(value)
    if number is None:
        raise _fail(key, value, "a number")
    return number


def _optional_float(data: dict[str, Any], key: str) -> float | None:
    return _to_float(data.get(key))


def _required_str(data: dict[str, Any], key: str) -> str:
    value = data.get(key)
    if not isinstance(value, str) or not value.strip():
        raise _fail(key, value, "a non-empty string")
    return value.strip()


def _optional_str(data: dict[str, Any], key: str) -> str:
    value = data.get(key)
    if value is None:
        return ""
    return str(value).strip()


def _enum(enum_cls: type[Enum], value: Any, field_name: str, aliases: dict[str, Any] | None = None) -> Any:
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    if isinstance(value, enum_cls):
        return value
    key = _ENUM_NOISE.sub("", str(value)).lower()
    for member in enum_cls:
        if _ENUM_NOISE.sub("", member.value).lower() == key:
            return member
    if aliases and key in aliases:
        return aliases[key]
    allowed = ", ".join(m.value for m in enum_cls)
    raise _fail(field_name, value, f"one of {allowed}")


def _entries(data: dict[str, Any], key: str) -> list[dict[str, Any]]:
    value = data.get(key)
    if value is None:
        return []
    if not isinstance(value, list):
        raise _fail(key, value, "a list")
    for item in value:
        if not isinstance(item, dict):
            raise _fail(key, item, "a list of objects")
    return value


def _string_list(data: dict[str, Any], key: str) -> tuple[str, ...]:
    value = data.get(key)
    if value is None:
        return ()
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, list):
        raise _fail(key, value, "a list of strings")
    return tuple(str(item).strip() for item in value if item is not None and str(item).strip())


# ============== Report parts ==============


@dataclass(frozen=True)
class TechnicalAnalysis:
    """Support/resistance levels and trend read from the chart."""

    support: float | None = None
    resistance: float | None = None
    trend: Trend | None = None
    details: str = ""

    @classmethod
    def from_dict(cls, data: Any) -> TechnicalAnalysis | None:
        if data is None:
            return None
        if not isinstance(data, dict):
            raise _fail("technicalAnalysis", data, "an object")
        return cls(
            support=_optional_float(data, "support"),
            resistance=_optional_float(data, "resistance"),
            trend=_enum(Trend, data.get("trend"), "technicalAnalysis.trend", _TREND_ALIASES),
            details=_optional_str(data, "details"),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "support": self.support,
            "resistance": self.resistance,
            "trend": self.trend.value if self.trend else None,
            "details": self.details,
        }


@dataclass(frozen=True)
class Faq:
    """Question/answer pair rendered as an FAQ block."""

    question: str
    answer: str

    def to_dict(self) -> dict[str, Any]:
        return {"question": self.question, "answer": self.answer}


@dataclass(frozen=True)
class Peer:
    """Competitor comparison row."""

    name: str
    symbol: str = ""
    price: float | None = None
    performance: str = ""
    differentiator: str = ""

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Peer:
        differentiator = data.get("differentiator")
        if differentiator is None:
            differentiator = data.get("diffReason")
        return cls(
            name=_required_str(data, "name") if data.get("name") else _required_str(data, "symbol"),
            symbol=_optional_str(data, "symbol"),
            price=_optional_float(data, "price"),
            performance=_optional_str(data, "performance"),
            differentiator=str(differentiator).strip() if differentiator is not None else "",
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "symbol": self.symbol,
            "price": self.price,
            "performance": self.performance,
            "differentiator": self.differentiator,
        }


@dataclass(frozen=True)
class Source:
    """Grounding citation."""

    title: str
    uri: str

    def to_dict(self) -> dict[str, Any]:
        return {"title": self.title, "uri": self.uri}


@dataclass(frozen=True)
class ChartPoint:
    """One price point of the intraday chart."""

    time_label: str
    price: float

    def to_dict(self) -> dict[str, Any]:
        return {"timeLabel": self.time_label, "price": self.price}


@dataclass(frozen=True)
class MarketSnapshot:
    """Current quote for a ticker."""

    symbol: str
    price: float | None
    currency: str | None = None
    change_percent: float | None = None
    market_cap: float | None = None
    volume: float | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "symbol": self.symbol,
            "price": self.price,
            "currency": self.currency,
            "changePercent": self.change_percent,
            "marketCap": self.market_cap,
            "volume": self.volume,
        }


@dataclass
class MarketData:
    """Supplemental market data for one ticker. Either part may be missing."""

    snapshot: MarketSnapshot | None = None
    history: list[ChartPoint] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return self.snapshot is None and not self.history

    def to_prompt_dict(self) -> dict[str, Any]:
        """Compact form embedded into prompts."""
        data: dict[str, Any] = {}
        if self.snapshot is not None:
            data["quote"] = self.snapshot.to_dict()
        if self.history:
            prices = [p.price for p in self.history]
            data["history"] = {
                "points": len(prices),
                "first": self.history[0].to_dict(),
                "last": self.history[-1].to_dict(),
                "high": max(prices),
                "low": min(prices),
            }
        return data


# ============== Report ==============


@dataclass(frozen=True)
class AnalysisReport:
    """Immutable analysis article.

    Created once by the discovery pipeline, then only appended to or evicted
    from the report collection.
    """

    id: str
    timestamp: datetime
    market: Market
    ticker: str
    title: str
    summary: str
    full_content: str
    price: float
    currency: str

    target_price: float | None = None
    technical_analysis: TechnicalAnalysis | None = None
    reasons: tuple[str, ...] = ()
    macro_context: str = ""
    valuation_check: str = ""
    faqs: tuple[Faq, ...] = ()
    peers: tuple[Peer, ...] = ()

    sentiment_score: float | None = None
    fear_greed_index: float | None = None
    investment_rating: InvestmentRating | None = None
    sources: tuple[Source, ...] = ()
    chart_data: tuple[ChartPoint, ...] = ()

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AnalysisReport:
        """Validate a plain dict and build a report.

        Accepts the camelCase keys used by the stored JSON and by the model
        output schema.

        Raises:
            ReportValidationError: On missing required fields, wrong shapes
                or out-of-range enum values.
        """
        if not isinstance(data, dict):
            raise _fail("report", data, "an object")

        market = _enum(Market, data.get("market"), "market")
        if market is None:
            raise _fail("market", data.get("market"), "KR or US")

        try:
            timestamp = parse_timestamp(data.get("timestamp"))
        except ValueError as e:
            raise _fail("timestamp", data.get("timestamp"), "an ISO 8601 timestamp") from e

        faqs = []
        for entry in _entries(data, "faqs"):
            faqs.append(Faq(
                question=_required_str(entry, "question"),
                answer=_optional_str(entry, "answer"),
            ))

        sources = []
        for entry in _entries(data, "sources"):
            uri = entry.get("uri") or entry.get("url")
            if not isinstance(uri, str) or not uri.strip():
                raise _fail("sources.uri", uri, "a URI")
            sources.append(Source(title=_optional_str(entry, "title"), uri=uri.strip()))

        chart_data = []
        for entry in _entries(data, "chartData"):
            label = entry.get("timeLabel", entry.get("time"))
            chart_data.append(ChartPoint(
                time_label=str(label) if label is not None else "",
                price=_required_float(entry, "price"),
            ))

        currency = _optional_str(data, "currency").upper() or market.home_currency

        return cls(
            id=_required_str(data, "id"),
            timestamp=timestamp,
            market=market,
            ticker=_required_str(data, "ticker").upper(),
            title=_required_str(data, "title"),
            summary=_required_str(data, "summary"),
            full_content=_required_str(data, "fullContent"),
            price=_required_float(data, "price"),
            currency=currency,
            target_price=_optional_float(data, "targetPrice"),
            technical_analysis=TechnicalAnalysis.from_dict(data.get("technicalAnalysis")),
            reasons=_string_list(data, "reasons"),
            macro_context=_optional_str(data, "macroContext"),
            valuation_check=_optional_str(data, "valuationCheck"),
            faqs=tuple(faqs),
            peers=tuple(Peer.from_dict(p) for p in _entries(data, "peers")),
            sentiment_score=_optional_float(data, "sentimentScore"),
            fear_greed_index=_optional_float(data, "fearGreedIndex"),
            investment_rating=_enum(
                InvestmentRating,
                data.get("investmentRating"),
                "investmentRating",
                _RATING_ALIASES,
            ),
            sources=tuple(sources),
            chart_data=tuple(chart_data),
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the JSON shape the front end reads."""
        return {
            "id": self.id,
            "timestamp": self.timestamp.isoformat(),
            "market": self.market.value,
            "ticker": self.ticker,
            "title": self.title,
            "summary": self.summary,
            "price": self.price,
            "currency": self.currency,
            "targetPrice": self.target_price,
            "technicalAnalysis": (
                self.technical_analysis.to_dict() if self.technical_analysis else None
            ),
            "reasons": list(self.reasons),
            "macroContext": self.macro_context,
            "valuationCheck": self.valuation_check,
            "fullContent": self.full_content,
            "faqs": [f.to_dict() for f in self.faqs],
            "peers": [p.to_dict() for p in self.peers],
            "sentimentScore": self.sentiment_score,
            "fearGreedIndex": self.fear_greed_index,
            "investmentRating": (
                self.investment_rating.value if self.investment_rating else None
            ),
            "sources": [s.to_dict() for s in self.sources],
            "chartData": [p.to_dict() for p in self.chart_data],
        }

    def summary_entry(self) -> dict[str, Any]:
        """Lightweight manifest entry for listing pages."""
        return {
            "id": self.id,
            "title": self.title,
            "ticker": self.ticker,
            "market": self.market.value,
            "timestamp": self.timestamp.isoformat(),
            "summary": self.summary,
        }
