"""
FinanceBot - grounded stock discovery and analysis articles.

Asks a Gemini model (with Google Search grounding) to pick a trending stock,
writes a structured analysis report, reconciles it with market data and
appends it to a capped report collection.
"""

__version__ = "0.3.0"
