"""
Discovery pipeline: "discover and analyze".

Sequences one run:

    idle -> selecting_subject -> [fetching_market_data] -> invoking ->
    extracting -> [invoking -> extracting] -> reconciling -> finalizing -> done

or -> failed from any state on an unrecovered model or extraction error.
Market data is optional enrichment: when it is missing the report keeps
the model's own numbers.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, tzinfo
from typing import TYPE_CHECKING, Any

from fb.coordinator.schedule import DEFAULT_TIMEZONE, select_market
from fb.data.market_client import MarketDataClient
from fb.exceptions import FBError, PipelineError, ReportValidationError
from fb.llm.base import LLMError
from fb.llm.extract import extract_json
from fb.llm.gemini_client import GeminiClient
from fb.llm.grounding import collect_sources, format_source_section
from fb.llm.invoker import ModelInvoker
from fb.llm.retry import RetryPolicy
from fb.logging import get_logger, log_context, set_phase
from fb.prompts import build_discovery_prompt, build_research_prompt, build_writing_prompt
from fb.types import (
    AnalysisReport,
    Market,
    MarketData,
    MarketSnapshot,
    Phase,
    Source,
    generate_id,
    utc_now,
)

if TYPE_CHECKING:
    from fb.config import Settings

logger = get_logger(__name__)


@dataclass
class PipelineConfig:
    """Configuration for the discovery pipeline."""

    research_model: str = "gemini-3-flash-preview"
    writer_model: str = "gemini-3-flash-preview"
    two_pass: bool = False
    language: str = "Korean"
    append_source_section: bool = True
    timezone: tzinfo = DEFAULT_TIMEZONE
    kr_window_start: int = 9
    kr_window_end: int = 16

    @classmethod
    def from_settings(cls, settings: Settings) -> PipelineConfig:
        return cls(
            research_model=settings.MODEL_RESEARCH,
            writer_model=settings.MODEL_WRITER,
            two_pass=settings.two_pass,
            language=settings.REPORT_LANGUAGE,
            append_source_section=settings.APPEND_SOURCE_SECTION,
            timezone=settings.timezone,
            kr_window_start=settings.KR_WINDOW_START,
            kr_window_end=settings.KR_WINDOW_END,
        )


def reconcile_numerics(data: dict[str, Any], snapshot: MarketSnapshot | None) -> dict[str, Any]:
    """Overwrite model-asserted price/currency with the market snapshot.

    Narrative fields are left untouched. Returns a new dict.
    """
    merged = dict(data)
    if snapshot is None or snapshot.price is None:
        return merged

    if merged.get("price") != snapshot.price:
        logger.info(
            "Reconciled price with market data",
            model_price=merged.get("price"),
            market_price=snapshot.price,
            currency=snapshot.currency,
        )
    merged["price"] = snapshot.price
    if snapshot.currency:
        merged["currency"] = snapshot.currency
    return merged


def merge_passes(research: dict[str, Any], article: dict[str, Any]) -> dict[str, Any]:
    """Combine research facts (pass 1) with the written article (pass 2).

    The article wins for every field it fills in; research fills the gaps.
    The ticker always comes from research.
    """
    merged = dict(research)
    for key, value in article.items():
        if value is None or value == "" or value == [] or value == {}:
            continue
        merged[key] = value
    merged["ticker"] = research["ticker"]
    return merged


def finalize_report(
    data: dict[str, Any],
    market: Market,
    market_data: MarketData | None = None,
    sources: list[Source] | None = None,
    append_source_section: bool = True,
    now: datetime | None = None,
) -> AnalysisReport:
    """Assign identity and attachments and validate the record.

    Raises:
        ReportValidationError: If the merged record violates the schema.
    """
    record = dict(data)
    record["id"] = generate_id("report")
    record["timestamp"] = (now or utc_now()).isoformat()
    record["market"] = market.value

    if market_data is not None and market_data.history:
        record["chartData"] = [p.to_dict() for p in market_data.history]
    else:
        record.pop("chartData", None)

    if sources:
        record["sources"] = [s.to_dict() for s in sources]
        body = record.get("fullContent")
        if append_source_section and isinstance(body, str) and body.strip():
            record["fullContent"] = body + format_source_section(sources)
    else:
        record.pop("sources", None)

    return AnalysisReport.from_dict(record)


class DiscoveryPipeline:
    """Selects a subject, calls the model, reconciles and finalizes a report.

    Usage:
        pipeline = DiscoveryPipeline.from_settings(settings)
        report = await pipeline.run(excluded=["NVDA"])
    """

    def __init__(
        self,
        invoker: ModelInvoker,
        market_client: MarketDataClient | None = None,
        config: PipelineConfig | None = None,
    ) -> None:
        """Initialize the pipeline.

        Args:
            invoker: Model invoker (client + retry policy).
            market_client: Market data client; None disables enrichment.
            config: Pipeline configuration.
        """
        self.invoker = invoker
        self.market_client = market_client
        self.config = config or PipelineConfig()
        self.phase = Phase.IDLE

    @classmethod
    def from_settings(cls, settings: Settings) -> DiscoveryPipeline:
        """Build the production pipeline.

        Raises:
            ConfigurationError: If the Gemini API key is missing.
        """
        settings.require_api_key()
        client = GeminiClient(credential_provider=lambda: settings.gemini_api_key)
        invoker = ModelInvoker(
            client,
            RetryPolicy.from_settings(settings),
            temperature=settings.TEMPERATURE,
        )
        return cls(
            invoker=invoker,
            market_client=MarketDataClient.from_settings(settings),
            config=PipelineConfig.from_settings(settings),
        )

    async def close(self) -> None:
        if self.market_client is not None:
            await self.market_client.close()
        await self.invoker.client.close()

    def _set_phase(self, phase: Phase) -> None:
        self.phase = phase
        set_phase(phase.value)
        logger.debug("Phase transition", phase=phase.value)

    async def _fetch_market_data(self, ticker: str, market: Market) -> MarketData:
        self._set_phase(Phase.FETCHING_MARKET_DATA)
        if self.market_client is None:
            return MarketData()
        return await self.market_client.fetch(ticker, market)

    async def run(
        self,
        market: Market | str | None = None,
        excluded: list[str] | tuple[str, ...] = (),
        ticker: str | None = None,
        now: datetime | None = None,
    ) -> AnalysisReport:
        """Run one discovery.

        Args:
            market: Acting market; chosen from the local hour when None.
            excluded: Tickers the model must not pick.
            ticker: Pin the subject instead of discovering one.
            now: Reference time for market selection.

        Returns:
            The finalized report (not yet persisted).

        Raises:
            LLMError: Model call failed after retries or fatally.
            MalformedResponseError: Reply contained no JSON object.
            ReportValidationError: Reply did not satisfy the report schema.
        """
        run_id = generate_id("run")
        with log_context(run_id=run_id):
            try:
                report = await self._run(market, list(excluded), ticker, now)
            except (FBError, LLMError) as e:
                failed_in = self.phase
                self._set_phase(Phase.FAILED)
                logger.error(
                    "Discovery run failed",
                    failed_phase=failed_in.value,
                    error_type=type(e).__name__,
                    error=str(e),
                )
                raise
            except Exception as e:
                failed_in = self.phase
                self._set_phase(Phase.FAILED)
                logger.exception("Unexpected error in discovery run", failed_phase=failed_in.value)
                raise PipelineError(
                    f"Discovery run failed: {e}",
                    context={"run_id": run_id, "phase": failed_in.value},
                ) from e
            self._set_phase(Phase.DONE)
            logger.info(
                "Discovery run complete",
                report_id=report.id,
                ticker=report.ticker,
                price=report.price,
                currency=report.currency,
            )
            return report

    async def _run(
        self,
        market: Market | str | None,
        excluded: list[str],
        ticker: str | None,
        now: datetime | None,
    ) -> AnalysisReport:
        cfg = self.config
        self._set_phase(Phase.SELECTING_SUBJECT)
        if market is None:
            market = select_market(now, cfg.timezone, cfg.kr_window_start, cfg.kr_window_end)
        market = Market(market)

        with log_context(market=market.value):
            logger.info("Selected market", excluded=excluded, pinned_ticker=ticker)

            market_data: MarketData | None = None
            prefetched: dict[str, Any] | None = None
            if ticker:
                market_data = await self._fetch_market_data(ticker, market)
                prefetched = market_data.to_prompt_dict() or None

            if cfg.two_pass:
                data, chunks, market_data = await self._two_pass(
                    market, excluded, ticker, market_data, prefetched
                )
            else:
                self._set_phase(Phase.INVOKING)
                reply = await self.invoker.invoke(
                    build_discovery_prompt(market, excluded, prefetched, ticker, cfg.language),
                    model=cfg.research_model,
                    use_search=True,
                )
                self._set_phase(Phase.EXTRACTING)
                data = extract_json(reply.text)
                chunks = reply.grounding_chunks

            if ticker:
                chosen = str(data.get("ticker") or "").strip().upper()
                if chosen != ticker.strip().upper():
                    logger.warning("Model changed the pinned ticker", pinned=ticker, returned=chosen)
                    data["ticker"] = ticker.strip().upper()
            elif market_data is None:
                chosen = data.get("ticker")
                if isinstance(chosen, str) and chosen.strip():
                    market_data = await self._fetch_market_data(chosen, market)

            self._set_phase(Phase.RECONCILING)
            data = reconcile_numerics(data, market_data.snapshot if market_data else None)

            self._set_phase(Phase.FINALIZING)
            return finalize_report(
                data,
                market,
                market_data=market_data,
                sources=collect_sources(chunks),
                append_source_section=cfg.append_source_section,
            )

    async def _two_pass(
        self,
        market: Market,
        excluded: list[str],
        ticker: str | None,
        market_data: MarketData | None,
        prefetched: dict[str, Any] | None,
    ) -> tuple[dict[str, Any], list[dict[str, Any]], MarketData | None]:
        """Research call with search, then a writing call without it."""
        cfg = self.config

        self._set_phase(Phase.INVOKING)
        research_reply = await self.invoker.invoke(
            build_research_prompt(market, excluded, prefetched, ticker),
            model=cfg.research_model,
            use_search=True,
        )
        self._set_phase(Phase.EXTRACTING)
        research = extract_json(research_reply.text)

        chosen = research.get("ticker")
        if not isinstance(chosen, str) or not chosen.strip():
            raise ReportValidationError(
                "Research pass did not name a ticker",
                context={"field": "ticker", "value": chosen},
            )
        research["ticker"] = ticker.strip().upper() if ticker else chosen.strip().upper()

        if market_data is None:
            market_data = await self._fetch_market_data(research["ticker"], market)
            prefetched = market_data.to_prompt_dict() or None

        self._set_phase(Phase.INVOKING)
        article_reply = await self.invoker.invoke(
            build_writing_prompt(research, market, prefetched, cfg.language),
            model=cfg.writer_model,
            use_search=False,
            json_mode=True,
        )
        self._set_phase(Phase.EXTRACTING)
        article = extract_json(article_reply.text)

        chunks = research_reply.grounding_chunks + article_reply.grounding_chunks
        return merge_passes(research, article), chunks, market_data
