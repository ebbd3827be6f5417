"""
Market data client for quote and intraday history.

Uses yfinance, which is not async-native, so every call runs in a worker
thread. Market data only enriches a report: every failure (provider error,
timeout, empty or unexpected data) is logged and degrades to "no data"
instead of raising. Nothing here is retried.
"""

from __future__ import annotations

import asyncio
import math
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable

import pandas as pd
import yfinance as yf

from fb.exceptions import DataFetchError
from fb.logging import get_logger
from fb.types import ChartPoint, Market, MarketData, MarketSnapshot

logger = get_logger(__name__)

# Thread pool for yfinance (it's not async-native)
_executor = ThreadPoolExecutor(max_workers=4)


def format_symbol(ticker: str, market: Market | str, kr_suffix: str = ".KS") -> str:
    """Adapt a ticker to the provider's symbol format.

    Numeric-only KR tickers (e.g. "005930") get the exchange suffix.
    Already-suffixed symbols and US tickers are only upper-cased, so the
    function is idempotent.

    Args:
        ticker: Ticker as written by the model or the user.
        market: Market the ticker trades in.
        kr_suffix: Suffix for domestic tickers (".KS" KOSPI, ".KQ" KOSDAQ).

    Returns:
        Provider symbol.
    """
    symbol = ticker.strip().upper()
    if Market(market) is Market.KR and symbol.isdigit():
        return f"{symbol}{kr_suffix.upper()}"
    return symbol


def _number(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return None if math.isnan(number) else number


class MarketDataClient:
    """Best-effort Yahoo Finance client.

    get_snapshot() and get_history() return None / [] on any failure.
    fetch() runs both concurrently.
    """

    def __init__(
        self,
        timeout: float = 10.0,
        kr_suffix: str = ".KS",
        history_days: int = 5,
        ticker_factory: Callable[[str], Any] = yf.Ticker,
    ) -> None:
        """Initialize market data client.

        Args:
            timeout: Per-request timeout in seconds.
            kr_suffix: Symbol suffix for numeric KR tickers.
            history_days: Lookback window for the hourly history.
            ticker_factory: Builds the provider ticker object for a symbol.
        """
        self.timeout = timeout
        self.kr_suffix = kr_suffix
        self.history_days = history_days
        self.ticker_factory = ticker_factory

    @classmethod
    def from_settings(cls, settings: Any) -> MarketDataClient:
        return cls(
            timeout=settings.MARKET_DATA_TIMEOUT,
            kr_suffix=settings.KR_SYMBOL_SUFFIX,
            history_days=settings.MARKET_HISTORY_DAYS,
        )

    async def close(self) -> None:
        """Nothing to release; the worker pool is shared."""

    def symbol_for(self, ticker: str, market: Market | str) -> str:
        return format_symbol(ticker, market, self.kr_suffix)

    async def _call(self, symbol: str, what: str, fn: Callable[[Any], Any]) -> Any:
        """Run fn(ticker object) in the worker pool.

        Raises:
            DataFetchError: On provider failure or timeout.
        """
        loop = asyncio.get_running_loop()

        def _fetch() -> Any:
            return fn(self.ticker_factory(symbol))

        try:
            return await asyncio.wait_for(
                loop.run_in_executor(_executor, _fetch),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError as e:
            raise DataFetchError(
                f"Market data {what} timed out",
                context={"source": "yfinance", "symbol": symbol, "timeout": self.timeout},
            ) from e
        except Exception as e:
            raise DataFetchError(
                f"Market data {what} failed: {e}",
                context={"source": "yfinance", "symbol": symbol, "error": str(e)},
            ) from e

    async def get_snapshot(self, ticker: str, market: Market | str) -> MarketSnapshot | None:
        """Get the current quote.

        Args:
            ticker: Ticker symbol.
            market: Market the ticker trades in.

        Returns:
            MarketSnapshot, or None when no usable quote is available.
        """
        symbol = self.symbol_for(ticker, market)

        try:
            info = await self._call(symbol, "quote", lambda stock: stock.info)
        except DataFetchError as e:
            logger.warning("Quote unavailable", symbol=symbol, error=str(e))
            return None

        if not isinstance(info, dict) or not info:
            logger.warning("Quote missing from response", symbol=symbol)
            return None

        price = _number(info.get("currentPrice") or info.get("regularMarketPrice"))
        currency = info.get("currency")
        snapshot = MarketSnapshot(
            symbol=symbol,
            price=price if price and price > 0 else None,
            currency=currency.upper() if isinstance(currency, str) and currency else None,
            change_percent=_number(info.get("regularMarketChangePercent")),
            market_cap=_number(info.get("marketCap")),
            volume=_number(info.get("volume") or info.get("regularMarketVolume")),
        )
        logger.info("Fetched quote", symbol=symbol, price=snapshot.price, currency=snapshot.currency)
        return snapshot

    async def get_history(
        self,
        ticker: str,
        market: Market | str,
        days: int | None = None,
    ) -> list[ChartPoint]:
        """Get hourly closes over the lookback window.

        Points with missing or non-positive prices are dropped. Labels are
        "MM/DD HH:MM" in exchange-local time.

        Args:
            ticker: Ticker symbol.
            market: Market the ticker trades in.
            days: Lookback window; defaults to the client's history_days.

        Returns:
            Chart points in time order, or [] when unavailable.
        """
        symbol = self.symbol_for(ticker, market)
        period = f"{days or self.history_days}d"

        try:
            df = await self._call(
                symbol,
                "history",
                lambda stock: stock.history(period=period, interval="1h"),
            )
        except DataFetchError as e:
            logger.warning("History unavailable", symbol=symbol, error=str(e))
            return []

        if not isinstance(df, pd.DataFrame) or df.empty or "Close" not in df.columns:
            logger.warning("History missing from response", symbol=symbol)
            return []

        points: list[ChartPoint] = []
        for ts, close in df["Close"].sort_index().items():
            price = _number(close)
            if price is None or price <= 0:
                continue
            label = pd.Timestamp(ts).strftime("%m/%d %H:%M")
            points.append(ChartPoint(time_label=label, price=round(price, 4)))

        logger.info("Fetched history", symbol=symbol, period=period, points=len(points))
        return points

    async def fetch(self, ticker: str, market: Market | str) -> MarketData:
        """Fetch quote and history concurrently."""
        snapshot, history = await asyncio.gather(
            self.get_snapshot(ticker, market),
            self.get_history(ticker, market),
        )
        return MarketData(snapshot=snapshot, history=history)
