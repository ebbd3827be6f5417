"""
Report persistence.

Capped, most-recent-first report collection stored as a JSON file,
plus a lightweight manifest of summaries.
"""

from fb.store.report_store import ReportStore

__all__ = ["ReportStore"]
