"""
Publisher: runs the pipeline on behalf of a caller and persists the result.

Owns the caller-side concerns around one discovery run: the weekend gate
for scheduled runs, the re-entrancy guard, exclusion lookup, persistence
and a short human-readable status.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING

from fb.coordinator.schedule import is_weekend, to_local
from fb.exceptions import (
    ConfigurationError,
    GenerationInProgressError,
    MalformedResponseError,
    ReportValidationError,
)
from fb.llm.base import (
    AuthenticationError,
    EmptyResponseError,
    QuotaExceededError,
    RateLimitError,
    ServiceUnavailableError,
    TransportError,
)
from fb.logging import get_logger
from fb.types import AnalysisReport, Market

if TYPE_CHECKING:
    from fb.config import Settings
    from fb.coordinator.pipeline import DiscoveryPipeline
    from fb.store.report_store import ReportStore

logger = get_logger(__name__)

STATUS_PUBLISHED = "published"
STATUS_WEEKEND = "weekend: market closed"


def status_for_error(exc: BaseException) -> str:
    """Short status line for a failed run."""
    if isinstance(exc, QuotaExceededError):
        return "quota exceeded: retry later"
    if isinstance(exc, RateLimitError):
        return "rate limited: retry later"
    if isinstance(exc, (TransportError, ServiceUnavailableError, EmptyResponseError)):
        return "network error: model service unavailable"
    if isinstance(exc, (MalformedResponseError, ReportValidationError)):
        return "malformed response: model output could not be parsed"
    if isinstance(exc, (AuthenticationError, ConfigurationError)):
        return "authentication error: check GEMINI_API_KEY"
    if isinstance(exc, OSError):
        return "storage error: report could not be saved"
    return f"error: {type(exc).__name__}"


@dataclass
class PublishResult:
    """Outcome of one publish call."""

    report: AnalysisReport | None
    status: str
    error: BaseException | None = None
    skipped: bool = False

    @property
    def ok(self) -> bool:
        return self.report is not None


class Publisher:
    """Runs one discovery at a time and stores the result.

    A second publish() while one is in flight raises
    GenerationInProgressError instead of queueing.
    """

    def __init__(
        self,
        pipeline: DiscoveryPipeline,
        store: ReportStore,
        settings: Settings,
    ) -> None:
        self.pipeline = pipeline
        self.store = store
        self.settings = settings
        self._in_flight = False
        self._write_lock = asyncio.Lock()

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    async def publish(
        self,
        now: datetime | None = None,
        manual: bool = False,
        market: Market | str | None = None,
        ticker: str | None = None,
    ) -> PublishResult:
        """Run the pipeline once and append the report.

        Args:
            now: Reference time for the weekend gate and market selection.
            manual: Manual runs bypass the weekend gate.
            market: Force a market instead of the time-of-day choice.
            ticker: Pin the subject.

        Returns:
            PublishResult; on failure report is None and nothing was stored.

        Raises:
            GenerationInProgressError: If another publish is running.
        """
        if self._in_flight:
            raise GenerationInProgressError("A report is already being generated")

        if now is not None:
            now = to_local(now, self.settings.timezone)

        if not manual and is_weekend(now, self.settings.timezone):
            logger.info("Skipping scheduled run on weekend")
            return PublishResult(report=None, status=STATUS_WEEKEND, skipped=True)

        self._in_flight = True
        try:
            try:
                excluded = self.store.excluded_tickers(
                    count=self.settings.EXCLUDE_RECENT_COUNT,
                    within_days=self.settings.EXCLUDE_WINDOW_DAYS,
                    now=now,
                )
                report = await self.pipeline.run(
                    market=market,
                    excluded=excluded,
                    ticker=ticker,
                    now=now,
                )
                async with self._write_lock:
                    self.store.append(report)
            except Exception as e:
                status = status_for_error(e)
                logger.error("Publish failed", status=status, error_type=type(e).__name__)
                return PublishResult(report=None, status=status, error=e)

            logger.info("Published report", report_id=report.id, ticker=report.ticker)
            return PublishResult(report=report, status=STATUS_PUBLISHED)
        finally:
            self._in_flight = False
