"""
Report collection stored as a JSON file.

The collection is capped and ordered most-recent-first. Appending writes
the whole list atomically (temp file + replace) and refreshes a manifest of
lightweight summaries next to it.
"""

from __future__ import annotations

import os
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

import orjson

from fb.exceptions import ReportValidationError
from fb.logging import get_logger
from fb.types import AnalysisReport, utc_now

logger = get_logger(__name__)

DEFAULT_MAX_REPORTS = 500


class ReportStore:
    """Capped, most-recent-first report collection.

    Single writer: callers that publish concurrently must serialize
    append() themselves (the Publisher holds a lock).
    """

    def __init__(
        self,
        path: Path,
        max_reports: int = DEFAULT_MAX_REPORTS,
        manifest_path: Path | None = None,
    ) -> None:
        """Initialize the store.

        Args:
            path: JSON file holding the collection.
            max_reports: Cap; the oldest reports are evicted beyond it.
            manifest_path: Summary file; defaults to manifest.json next to path.
        """
        if max_reports < 1:
            raise ValueError("max_reports must be at least 1")
        self.path = Path(path)
        self.max_reports = max_reports
        self.manifest_path = manifest_path or self.path.with_name("manifest.json")

    def _read_entries(self) -> list[Any]:
        """Raw stored entries, most recent first.

        A missing, empty or unreadable file yields []. An unreadable file is
        copied aside before the next write replaces it.
        """
        if not self.path.exists():
            return []

        raw = self.path.read_bytes()
        if not raw.strip():
            return []

        try:
            data = orjson.loads(raw)
        except orjson.JSONDecodeError as e:
            logger.error("Report collection is not valid JSON, starting fresh", path=str(self.path), error=str(e))
            return []

        if not isinstance(data, list):
            logger.error("Report collection is not a list, starting fresh", path=str(self.path))
            return []
        return data

    def load(self) -> list[AnalysisReport]:
        """Load the collection, most recent first.

        A missing or empty file is an empty collection. An unreadable file
        is logged and treated as empty; the next append backs it up and
        starts it fresh. Entries that do not parse are skipped here but kept
        in the file.
        """
        reports: list[AnalysisReport] = []
        # File order is insertion order, newest first
        for entry in self._read_entries()[: self.max_reports]:
            try:
                reports.append(AnalysisReport.from_dict(entry))
            except ReportValidationError as e:
                logger.warning("Skipping invalid stored report", error=str(e))
        return reports

    def get(self, report_id: str) -> AnalysisReport | None:
        """Find a report by ID."""
        for report in self.load():
            if report.id == report_id:
                return report
        return None

    def append(self, report: AnalysisReport) -> list[AnalysisReport]:
        """Add a report at the front and evict beyond the cap.

        Existing entries are written back exactly as stored, including ones
        that no longer parse, so only eviction removes a report.

        Args:
            report: Finalized report.

        Returns:
            The new collection, most recent first.
        """
        existing = self._read_entries()
        if not existing:
            self._backup_unreadable()

        entries = [report.to_dict()] + [
            e for e in existing if not (isinstance(e, dict) and e.get("id") == report.id)
        ]
        evicted = len(entries) - self.max_reports
        entries = entries[: self.max_reports]

        self._atomic_write(self.path, orjson.dumps(entries, option=orjson.OPT_INDENT_2))
        reports = self.load()
        self.write_manifest(reports)

        logger.info(
            "Report stored",
            report_id=report.id,
            ticker=report.ticker,
            total=len(entries),
            evicted=max(evicted, 0),
        )
        return reports

    def _backup_unreadable(self) -> None:
        if not self.path.exists():
            return
        raw = self.path.read_bytes()
        if not raw.strip():
            return
        try:
            readable = isinstance(orjson.loads(raw), list)
        except orjson.JSONDecodeError:
            readable = False
        if readable:
            return

        backup = self.path.with_name(f"{self.path.name}.{utc_now():%Y%m%dT%H%M%S}.bak")
        backup.write_bytes(raw)
        logger.warning("Backed up unreadable report collection", backup=str(backup))

    def excluded_tickers(
        self,
        count: int = 10,
        within_days: int | None = 7,
        now: datetime | None = None,
    ) -> list[str]:
        """Tickers to exclude from the next discovery run.

        Args:
            count: Look at this many most recent reports.
            within_days: Only consider reports newer than this many days
                (None or 0 disables the window).
            now: Reference time (defaults to now; naive is taken as UTC).

        Returns:
            Unique tickers, most recent first.
        """
        reports = self.load()[:count] if count > 0 else []
        if within_days:
            now = now or utc_now()
            if now.tzinfo is None:
                now = now.replace(tzinfo=timezone.utc)
            cutoff = now - timedelta(days=within_days)
            reports = [r for r in reports if r.timestamp > cutoff]

        tickers: list[str] = []
        for report in reports:
            if report.ticker not in tickers:
                tickers.append(report.ticker)
        return tickers

    def write_manifest(self, reports: list[AnalysisReport] | None = None) -> Path:
        """Write the summary manifest and return its path."""
        if reports is None:
            reports = self.load()
        payload = {
            "updated_at": utc_now().isoformat(),
            "count": len(reports),
            "reports": [r.summary_entry() for r in reports],
        }
        self._atomic_write(self.manifest_path, orjson.dumps(payload, option=orjson.OPT_INDENT_2))
        return self.manifest_path

    @staticmethod
    def _atomic_write(path: Path, content: bytes) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = path.with_name(f".{path.name}.tmp")
        with open(tmp_path, "wb") as f:
            f.write(content)
        os.replace(tmp_path, path)
