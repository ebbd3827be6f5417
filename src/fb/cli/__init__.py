"""Command line interface for FinanceBot."""
