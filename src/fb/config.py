"""
Configuration management using pydantic-settings.

Loads configuration from environment variables and .env files.
Validates fields and provides typed access to settings.
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import AliasChoices, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from fb.exceptions import ConfigurationError


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Required for generation runs:
        GEMINI_API_KEY: Google AI Studio API key (API_KEY is accepted too)

    Optional:
        MODEL_RESEARCH / MODEL_WRITER: Gemini models for the two passes
        PIPELINE_MODE: single | two_pass
        MAX_RETRIES: Attempts per model call
        REPORTS_PATH: JSON file holding the report collection
        MAX_REPORTS: Collection cap
        MARKET_TIMEZONE: Timezone of the market-selection gate
        LOG_LEVEL: Logging level
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # LLM credentials - checked lazily so read-only commands work without them
    GEMINI_API_KEY: str | None = Field(
        default=None,
        validation_alias=AliasChoices("GEMINI_API_KEY", "API_KEY"),
        description="Google Gemini API key",
    )

    # Models
    MODEL_RESEARCH: str = Field(
        default="gemini-3-flash-preview",
        description="Grounded model used for discovery/research calls",
    )
    MODEL_WRITER: str = Field(
        default="gemini-3-flash-preview",
        description="Model used for the long-form writing pass",
    )
    PIPELINE_MODE: Literal["single", "two_pass"] = Field(
        default="single",
        description="Single combined prompt or research + writing passes",
    )
    REPORT_LANGUAGE: str = Field(
        default="Korean", description="Language of the narrative fields"
    )
    TEMPERATURE: float = Field(default=0.7, ge=0.0, le=2.0)

    # Retry policy
    MAX_RETRIES: int = Field(
        default=3, ge=1, le=10, description="Attempts per model call"
    )
    QUOTA_BACKOFF_SECONDS: float = Field(
        default=10.0, ge=0.0, description="Backoff base for quota errors"
    )
    ERROR_BACKOFF_SECONDS: float = Field(
        default=5.0, ge=0.0, description="Backoff base for other transient errors"
    )

    # Report collection
    REPORTS_PATH: Path = Field(
        default=Path("data/reports.json"), description="Report collection file"
    )
    MAX_REPORTS: int = Field(default=500, ge=1, le=10000)
    EXCLUDE_RECENT_COUNT: int = Field(
        default=10, ge=0, description="Recent reports whose tickers are excluded"
    )
    EXCLUDE_WINDOW_DAYS: int = Field(
        default=7, ge=0, description="Only exclude reports this recent (0 disables)"
    )

    # Scheduling
    MARKET_TIMEZONE: str = Field(default="Asia/Seoul")
    KR_WINDOW_START: int = Field(default=9, ge=0, le=23)
    KR_WINDOW_END: int = Field(default=16, ge=1, le=24)
    RUN_INTERVAL_HOURS: int = Field(default=3, ge=1, le=24)

    # Market data
    KR_SYMBOL_SUFFIX: str = Field(default=".KS")
    MARKET_HISTORY_DAYS: int = Field(default=5, ge=1, le=7)
    MARKET_DATA_TIMEOUT: float = Field(default=10.0, gt=0.0)

    # Output
    APPEND_SOURCE_SECTION: bool = Field(
        default=True, description="Append a references section to the article body"
    )

    # Logging
    LOG_LEVEL: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO", description="Logging level"
    )
    LOG_FILE: Path | None = Field(default=None, description="JSON Lines log file")

    @property
    def gemini_api_key(self) -> str | None:
        """Get Gemini API key (lowercase alias)."""
        return self.GEMINI_API_KEY or None

    @property
    def two_pass(self) -> bool:
        """Whether the research/writing split is enabled."""
        return self.PIPELINE_MODE == "two_pass"

    @property
    def manifest_path(self) -> Path:
        """Manifest file kept next to the report collection."""
        return self.REPORTS_PATH.with_name("manifest.json")

    @property
    def timezone(self) -> ZoneInfo:
        """Timezone used by the market-selection gate."""
        return ZoneInfo(self.MARKET_TIMEZONE)

    @field_validator("MARKET_TIMEZONE")
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        """Validate that MARKET_TIMEZONE is a known IANA zone."""
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"Unknown timezone: {v}") from e
        return v

    @field_validator("KR_SYMBOL_SUFFIX")
    @classmethod
    def validate_suffix(cls, v: str) -> str:
        """Normalize the domestic symbol suffix to '.XX' form."""
        v = v.strip().upper()
        if not v.startswith("."):
            v = f".{v}"
        return v

    @model_validator(mode="after")
    def validate_kr_window(self) -> Settings:
        """Ensure the domestic window is a non-empty hour range."""
        if self.KR_WINDOW_START >= self.KR_WINDOW_END:
            raise ValueError(
                "KR_WINDOW_START must be earlier than KR_WINDOW_END"
            )
        return self

    def require_api_key(self) -> str:
        """Return the Gemini API key or fail before any network call.

        Raises:
            ConfigurationError: If no key is configured.
        """
        key = self.gemini_api_key
        if not key:
            raise ConfigurationError(
                "GEMINI_API_KEY is not set. Add it to your environment or .env "
                "file (API_KEY is also accepted).",
                context={"setting": "GEMINI_API_KEY"},
            )
        return key

    def ensure_directories(self) -> None:
        """Create the report directory if it doesn't exist."""
        self.REPORTS_PATH.parent.mkdir(parents=True, exist_ok=True)

    def redacted_display(self) -> dict[str, str | int | float | bool | None]:
        """Return settings with API keys redacted for display."""
        def redact(value: str | None) -> str | None:
            if not value:
                return None
            return f"{value[:8]}...{value[-4:]}" if len(value) > 12 else "***"

        return {
            "GEMINI_API_KEY": redact(self.GEMINI_API_KEY),
            "MODEL_RESEARCH": self.MODEL_RESEARCH,
            "MODEL_WRITER": self.MODEL_WRITER,
            "PIPELINE_MODE": self.PIPELINE_MODE,
            "REPORT_LANGUAGE": self.REPORT_LANGUAGE,
            "MAX_RETRIES": self.MAX_RETRIES,
            "QUOTA_BACKOFF_SECONDS": self.QUOTA_BACKOFF_SECONDS,
            "ERROR_BACKOFF_SECONDS": self.ERROR_BACKOFF_SECONDS,
            "REPORTS_PATH": str(self.REPORTS_PATH),
            "MAX_REPORTS": self.MAX_REPORTS,
            "EXCLUDE_RECENT_COUNT": self.EXCLUDE_RECENT_COUNT,
            "EXCLUDE_WINDOW_DAYS": self.EXCLUDE_WINDOW_DAYS,
            "MARKET_TIMEZONE": self.MARKET_TIMEZONE,
            "KR_WINDOW": f"{self.KR_WINDOW_START:02d}:00-{self.KR_WINDOW_END:02d}:00",
            "RUN_INTERVAL_HOURS": self.RUN_INTERVAL_HOURS,
            "KR_SYMBOL_SUFFIX": self.KR_SYMBOL_SUFFIX,
            "MARKET_HISTORY_DAYS": self.MARKET_HISTORY_DAYS,
            "APPEND_SOURCE_SECTION": self.APPEND_SOURCE_SECTION,
            "LOG_LEVEL": self.LOG_LEVEL,
        }


@lru_cache
def get_settings() -> Settings:
    """Get cached settings singleton.

    Returns:
        Settings instance loaded from environment.

    Raises:
        ValidationError: If settings are invalid.
    """
    return Settings()


def clear_settings_cache() -> None:
    """Clear the settings cache (useful for testing)."""
    get_settings.cache_clear()
