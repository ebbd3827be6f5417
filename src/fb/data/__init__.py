"""
Market data package.

Best-effort quote and intraday history from Yahoo Finance. Used to
reconcile model-asserted prices and to attach chart data to reports.
"""

from fb.data.market_client import MarketDataClient, format_symbol

__all__ = [
    "MarketDataClient",
    "format_symbol",
]
