"""
CLI for FinanceBot.

Commands:
    fb run - Discover a stock, write a report and store it
    fb watch - Publish on the run interval until interrupted
    fb list - List stored reports
    fb show ID - Print one stored report
    fb config - Show current configuration
    fb version - Print version
"""

from __future__ import annotations

import asyncio
from typing import Annotated, Optional

import typer
from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.table import Table

from fb import __version__
from fb.config import Settings, clear_settings_cache, get_settings
from fb.coordinator.pipeline import DiscoveryPipeline
from fb.coordinator.publisher import Publisher, PublishResult, status_for_error
from fb.coordinator.schedule import next_run_at, seconds_until_next_run
from fb.exceptions import ConfigurationError, GenerationInProgressError
from fb.logging import setup_logging
from fb.store.report_store import ReportStore
from fb.types import AnalysisReport, Market

app = typer.Typer(
    name="fb",
    help="FinanceBot - grounded stock discovery and analysis reports",
    no_args_is_help=True,
)

console = Console()
error_console = Console(stderr=True)


def _get_settings_safe() -> Settings | None:
    """Get settings, returning None if configuration is invalid."""
    try:
        clear_settings_cache()
        return get_settings()
    except Exception:
        return None


def _load_settings() -> Settings:
    settings = _get_settings_safe()
    if settings is None:
        error_console.print(
            "[red]Error:[/red] Configuration is invalid. "
            "Run 'fb config' to see what's wrong."
        )
        raise typer.Exit(1)
    setup_logging(settings.LOG_LEVEL, settings.LOG_FILE)
    return settings


def _open_store(settings: Settings) -> ReportStore:
    return ReportStore(
        settings.REPORTS_PATH,
        max_reports=settings.MAX_REPORTS,
        manifest_path=settings.manifest_path,
    )


def _build_publisher(settings: Settings) -> Publisher:
    try:
        pipeline = DiscoveryPipeline.from_settings(settings)
    except ConfigurationError as e:
        error_console.print(f"[red]{status_for_error(e)}[/red]")
        error_console.print(f"[dim]{e.message}[/dim]")
        raise typer.Exit(1)
    settings.ensure_directories()
    return Publisher(pipeline, _open_store(settings), settings)


def _print_result(result: PublishResult) -> None:
    report = result.report
    if report is None:
        style = "yellow" if result.skipped else "red"
        error_console.print(f"[{style}]{result.status}[/{style}]")
        if result.error is not None:
            error_console.print(f"[dim]{result.error}[/dim]")
        return

    target = f"{report.target_price:,.2f}" if report.target_price is not None else "-"
    rating = report.investment_rating.value if report.investment_rating else "-"
    console.print(
        Panel(
            f"[bold]Title:[/bold] {report.title}\n"
            f"[bold]Market:[/bold] {report.market.value}\n"
            f"[bold]Price:[/bold] {report.price:,.2f} {report.currency}\n"
            f"[bold]Target:[/bold] {target}\n"
            f"[bold]Rating:[/bold] {rating}\n"
            f"[bold]Sources:[/bold] {len(report.sources)}\n\n"
            f"{report.summary}\n\n"
            f"[dim]ID: {report.id}[/dim]",
            title=f"[bold green]{report.ticker} published[/bold green]",
            border_style="green",
        )
    )


@app.command()
def run(
    market: Annotated[
        Optional[str],
        typer.Option("--market", "-m", help="Force market (KR or US)"),
    ] = None,
    ticker: Annotated[
        Optional[str],
        typer.Option("--ticker", "-t", help="Analyze this ticker instead of discovering one"),
    ] = None,
    two_pass: Annotated[
        bool,
        typer.Option("--two-pass", help="Separate research and writing calls"),
    ] = False,
    force: Annotated[
        bool,
        typer.Option("--force", "-f", help="Run even on weekends"),
    ] = False,
) -> None:
    """Discover a stock, write an analysis report and store it."""
    settings = _load_settings()
    if two_pass:
        settings = settings.model_copy(update={"PIPELINE_MODE": "two_pass"})

    selected: Market | None = None
    if market is not None:
        try:
            selected = Market(market.strip().upper())
        except ValueError:
            error_console.print(f"[red]Error:[/red] Unknown market '{market}'. Use KR or US.")
            raise typer.Exit(1)

    publisher = _build_publisher(settings)

    async def _publish() -> PublishResult:
        try:
            return await publisher.publish(manual=force, market=selected, ticker=ticker)
        finally:
            await publisher.pipeline.close()

    with console.status("Generating report..."):
        result = asyncio.run(_publish())

    _print_result(result)
    if result.error is not None:
        raise typer.Exit(1)


@app.command()
def watch() -> None:
    """Publish a report every RUN_INTERVAL_HOURS until interrupted.

    Weekend slots are skipped.
    """
    settings = _load_settings()
    publisher = _build_publisher(settings)
    interval = settings.RUN_INTERVAL_HOURS

    async def _loop() -> None:
        try:
            while True:
                wait = seconds_until_next_run(interval_hours=interval, tz=settings.timezone)
                console.print(
                    f"[dim]Next run at {next_run_at(interval_hours=interval, tz=settings.timezone):%Y-%m-%d %H:%M %Z}"
                    f" ({wait // 60} min)[/dim]"
                )
                await asyncio.sleep(max(wait, 1))
                try:
                    result = await publisher.publish()
                except GenerationInProgressError as e:
                    error_console.print(f"[yellow]{e.message}[/yellow]")
                    continue
                _print_result(result)
        finally:
            await publisher.pipeline.close()

    console.print(f"[bold]Watching[/bold] every {interval}h ({settings.MARKET_TIMEZONE}). Ctrl+C to stop.")
    try:
        asyncio.run(_loop())
    except KeyboardInterrupt:
        console.print("\n[dim]Stopped.[/dim]")


@app.command("list")
def list_reports(
    limit: Annotated[
        int,
        typer.Option("--limit", "-n", help="Number of reports to show"),
    ] = 20,
) -> None:
    """List stored reports, most recent first."""
    settings = _load_settings()
    reports = _open_store(settings).load()

    if not reports:
        console.print("[yellow]No reports stored yet.[/yellow]")
        return

    table = Table(title=f"Reports ({len(reports)} stored)", show_header=True)
    table.add_column("Time", style="dim")
    table.add_column("Market")
    table.add_column("Ticker", style="cyan")
    table.add_column("Price", justify="right")
    table.add_column("Title")
    table.add_column("ID", style="dim")

    for report in reports[:limit]:
        local_time = report.timestamp.astimezone(settings.timezone)
        table.add_row(
            f"{local_time:%Y-%m-%d %H:%M}",
            report.market.value,
            report.ticker,
            f"{report.price:,.2f} {report.currency}",
            report.title,
            report.id,
        )

    console.print(table)


def _render_report(report: AnalysisReport) -> None:
    console.print(Panel(report.summary, title=f"[bold]{report.title}[/bold]", border_style="cyan"))

    facts = Table(show_header=False, box=None)
    facts.add_column("Field", style="cyan")
    facts.add_column("Value")
    facts.add_row("Ticker", f"{report.ticker} ({report.market.value})")
    facts.add_row("Price", f"{report.price:,.2f} {report.currency}")
    if report.target_price is not None:
        facts.add_row("Target", f"{report.target_price:,.2f}")
    if report.investment_rating:
        facts.add_row("Rating", report.investment_rating.value)
    if report.sentiment_score is not None:
        facts.add_row("Sentiment", f"{report.sentiment_score:g}")
    if report.fear_greed_index is not None:
        facts.add_row("Fear & Greed", f"{report.fear_greed_index:g}")
    if report.technical_analysis is not None:
        ta = report.technical_analysis
        trend = ta.trend.value if ta.trend else "-"
        facts.add_row("Technicals", f"support {ta.support} / resistance {ta.resistance} / {trend}")
    facts.add_row("Published", report.timestamp.isoformat())
    console.print(facts)
    console.print()
    console.print(Markdown(report.full_content))

    if report.peers:
        peers = Table(title="Peers", show_header=True)
        peers.add_column("Name", style="cyan")
        peers.add_column("Price", justify="right")
        peers.add_column("Performance")
        peers.add_column("Differentiator")
        for peer in report.peers:
            price = f"{peer.price:,.2f}" if peer.price is not None else "-"
            peers.add_row(peer.name, price, peer.performance, peer.differentiator)
        console.print(peers)


@app.command()
def show(
    report_id: Annotated[str, typer.Argument(help="Report ID (see 'fb list')")],
) -> None:
    """Print one stored report."""
    settings = _load_settings()
    report = _open_store(settings).get(report_id)
    if report is None:
        error_console.print(f"[red]Error:[/red] No report with ID '{report_id}'.")
        raise typer.Exit(1)
    _render_report(report)


@app.command()
def config() -> None:
    """Show current configuration.

    Displays all configuration values with the API key redacted.
    """
    console.print()
    console.print("[bold]FinanceBot Configuration[/bold]")
    console.print()

    settings = _get_settings_safe()

    if settings is None:
        error_console.print("[red]Configuration is invalid or incomplete.[/red]")
        error_console.print()
        error_console.print("Check these environment variables:")
        error_console.print("  - GEMINI_API_KEY (required for 'fb run' and 'fb watch')")
        error_console.print("  - MARKET_TIMEZONE (must be an IANA zone name)")
        error_console.print("  - KR_WINDOW_START / KR_WINDOW_END (start before end)")
        error_console.print()
        error_console.print("Create a .env file or set environment variables.")
        raise typer.Exit(1)

    table = Table(title="Settings", show_header=True)
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="green")

    for key, value in settings.redacted_display().items():
        display_value = str(value) if value is not None else "[dim]not set[/dim]"
        table.add_row(key, display_value)

    console.print(table)

    console.print()
    if settings.gemini_api_key:
        console.print("[bold]Gemini:[/bold] API key configured")
    else:
        console.print("[yellow]GEMINI_API_KEY is not set; 'fb run' will fail.[/yellow]")
    console.print()


@app.command()
def version() -> None:
    """Print the version number."""
    console.print(f"financebot version {__version__}")


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
