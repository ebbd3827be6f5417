"""
Structured logging for FinanceBot.

Provides:
- Context variables for run_id, market, phase (using contextvars)
- JSONFormatter for machine-readable logs to file
- ContextRichHandler for pretty console output
- ContextLogger wrapper that attaches context to all log calls
- setup_logging() that configures both file and console handlers
- log_context() context manager for scoped context
- get_logger() factory
"""

from __future__ import annotations

import json
import logging
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Generator

from rich.console import Console
from rich.logging import RichHandler
from rich.text import Text

_run_id_var: ContextVar[str | None] = ContextVar("run_id", default=None)
_market_var: ContextVar[str | None] = ContextVar("market", default=None)
_phase_var: ContextVar[str | None] = ContextVar("phase", default=None)


def get_run_id() -> str | None:
    """Get the current run ID from context."""
    return _run_id_var.get()


def get_market() -> str | None:
    """Get the acting market from context."""
    return _market_var.get()


def get_phase() -> str | None:
    """Get the current phase from context."""
    return _phase_var.get()


def set_phase(phase: str | None) -> None:
    """Set the current phase in context."""
    _phase_var.set(phase)


@contextmanager
def log_context(
    run_id: str | None = None,
    market: str | None = None,
    phase: str | None = None,
) -> Generator[None, None, None]:
    """Context manager for scoped logging context.

    Args:
        run_id: Run ID to set in context.
        market: Acting market to set in context.
        phase: Phase to set in context.

    Yields:
        None. Context variables are set for the duration of the context.
    """
    old_run_id = _run_id_var.get()
    old_market = _market_var.get()
    old_phase = _phase_var.get()

    try:
        if run_id is not None:
            _run_id_var.set(run_id)
        if market is not None:
            _market_var.set(market)
        if phase is not None:
            _phase_var.set(phase)
        yield
    finally:
        _run_id_var.set(old_run_id)
        _market_var.set(old_market)
        _phase_var.set(old_phase)


def _context_fields() -> dict[str, str]:
    fields: dict[str, str] = {}
    run_id = get_run_id()
    market = get_market()
    phase = get_phase()
    if run_id:
        fields["run_id"] = run_id
    if market:
        fields["market"] = market
    if phase:
        fields["phase"] = phase
    return fields


class JSONFormatter(logging.Formatter):
    """JSON formatter for machine-readable log files.

    Produces JSON Lines format with structured context.
    """

    def format(self, record: logging.LogRecord) -> str:
        """Format a log record as JSON."""
        log_obj: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        log_obj.update(_context_fields())

        if hasattr(record, "extra"):
            log_obj["extra"] = record.extra

        if record.exc_info:
            log_obj["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_obj, default=str, ensure_ascii=False)


class ContextRichHandler(RichHandler):
    """Rich handler that includes context in console output."""

    def get_level_text(self, record: logging.LogRecord) -> Text:
        """Override to add context prefix."""
        level_text = super().get_level_text(record)

        parts: list[str] = []
        run_id = get_run_id()
        market = get_market()
        phase = get_phase()

        if run_id:
            # uuid7 ids share a time prefix, the tail is more distinctive
            parts.append(f"[dim]{run_id[-8:]}[/dim]")
        if market:
            parts.append(f"[magenta]{market}[/magenta]")
        if phase:
            parts.append(f"[cyan]{phase}[/cyan]")

        if parts:
            prefix = " ".join(parts)
            return Text.from_markup(f"{level_text} {prefix}")

        return level_text


class ContextLogger:
    """Logger wrapper that automatically attaches context to log calls.

    Keyword arguments other than the logging module's own are collected
    as structured fields.
    """

    def __init__(self, logger: logging.Logger) -> None:
        self._logger = logger

    @property
    def name(self) -> str:
        """Get the logger name."""
        return self._logger.name

    def _log(
        self,
        level: int,
        msg: str,
        *args: Any,
        exc_info: bool = False,
        **kwargs: Any,
    ) -> None:
        extra = kwargs.pop("extra", {})
        extra.update(_context_fields())

        for key in list(kwargs.keys()):
            if key not in ("exc_info", "stack_info", "stacklevel"):
                extra[key] = kwargs.pop(key)

        self._logger.log(level, msg, *args, exc_info=exc_info, extra={"extra": extra})

    def debug(self, msg: str, *args: Any, **kwargs: Any) -> None:
        """Log debug message."""
        self._log(logging.DEBUG, msg, *args, **kwargs)

    def info(self, msg: str, *args: Any, **kwargs: Any) -> None:
        """Log info message."""
        self._log(logging.INFO, msg, *args, **kwargs)

    def warning(self, msg: str, *args: Any, **kwargs: Any) -> None:
        """Log warning message."""
        self._log(logging.WARNING, msg, *args, **kwargs)

    def error(self, msg: str, *args: Any, exc_info: bool = False, **kwargs: Any) -> None:
        """Log error message."""
        self._log(logging.ERROR, msg, *args, exc_info=exc_info, **kwargs)

    def exception(self, msg: str, *args: Any, **kwargs: Any) -> None:
        """Log exception with traceback."""
        self._log(logging.ERROR, msg, *args, exc_info=True, **kwargs)


_console: Console | None = None
_setup_done: bool = False


def get_console() -> Console:
    """Get the global rich console."""
    global _console
    if _console is None:
        _console = Console(stderr=True)
    return _console


def setup_logging(
    log_level: str = "INFO",
    log_file: Path | None = None,
    console_output: bool = True,
) -> None:
    """Set up logging with JSON file handler and rich console handler.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        log_file: Path to log file. If None, only console logging is enabled.
        console_output: Whether to enable console output.
    """
    global _setup_done

    root_logger = logging.getLogger("fb")
    root_logger.setLevel(getattr(logging, log_level.upper()))
    root_logger.handlers.clear()

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, mode="a", encoding="utf-8")
        file_handler.setFormatter(JSONFormatter())
        file_handler.setLevel(logging.DEBUG)
        root_logger.addHandler(file_handler)

    if console_output:
        rich_handler = ContextRichHandler(
            console=get_console(),
            show_time=True,
            show_path=False,
            rich_tracebacks=True,
            tracebacks_show_locals=False,
            markup=True,
        )
        rich_handler.setLevel(getattr(logging, log_level.upper()))
        root_logger.addHandler(rich_handler)

    root_logger.propagate = False

    for noisy_logger in ["httpx", "httpcore", "google_genai", "yfinance", "asyncio"]:
        logging.getLogger(noisy_logger).setLevel(logging.WARNING)

    _setup_done = True


def get_logger(name: str) -> ContextLogger:
    """Get a context-aware logger.

    Args:
        name: Logger name (usually __name__).

    Returns:
        ContextLogger wrapper around the standard logger.
    """
    if not _setup_done:
        setup_logging()

    if not name.startswith("fb"):
        name = f"fb.{name}"

    return ContextLogger(logging.getLogger(name))
