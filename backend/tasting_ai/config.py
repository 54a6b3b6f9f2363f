"""
Tasting AI — Application Configuration
=======================================

What:  Centralized, immutable configuration using Pydantic Settings.
Why:   Type-safe environment variable loading with validation on startup.
How:   Pydantic Settings reads from environment variables (or .env file),
       validates types/ranges, and exposes a default `settings` object.
Who:   Passed explicitly into `build_pipeline_service()`; the HTTP entry point
       uses the module-level default.
When:  Loaded once at import time.

Design Decision:
    Settings are frozen. Services never read a global mutable config; they
    receive a Settings (or a derived frozen config) in their constructor.
    Reconfiguring at runtime means:

        new_settings = settings.model_copy(update={"cache_ttl_hours": 6})
        service = build_pipeline_service(new_settings)

    Runs already in flight keep the configuration they started with.
"""

from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ProviderLimits(BaseModel):
    """Per-provider call ceilings. `None` means no ceiling for that window."""

    model_config = ConfigDict(frozen=True)

    per_minute: Optional[int] = Field(default=None, ge=1)
    per_day: Optional[int] = Field(default=None, ge=1)


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    All settings have sensible defaults for development.
    Production deployments MUST set GEMINI_API_KEY.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        frozen=True,
        extra="ignore",
    )

    # ── Database ──────────────────────────────────────────────────────────
    # What: Async SQLAlchemy URL backing the cache and the session log
    # Default: local SQLite file; use postgresql+asyncpg://... in production
    database_url: str = Field(
        default="sqlite+aiosqlite:///./tasting_ai.db",
        description="Async database URL for cache entries and session logs",
    )
    # Pool sizing is ignored for SQLite (single-file database, no server pool)
    db_pool_size: int = Field(default=10, ge=1, le=100)
    db_max_overflow: int = Field(default=5, ge=0, le=50)
    db_pool_pre_ping: bool = Field(default=True)

    # ── Media ─────────────────────────────────────────────────────────────
    # What: Root directory that image/audio references are resolved against
    media_root: str = Field(default="./media")
    # Default: 25MB; voice notes are larger than label photos
    max_media_size: int = Field(default=26_214_400, ge=1_048_576, le=104_857_600)

    # ── Google Gemini ─────────────────────────────────────────────────────
    # Required: YES, every provider adapter calls Gemini
    gemini_api_key: str = Field(default="", description="Google Gemini API key")
    vision_model: str = Field(default="gemini-1.5-flash")
    language_model: str = Field(default="gemini-1.5-flash")
    request_timeout_seconds: int = Field(default=60, ge=5, le=600)
    analysis_temperature: float = Field(default=0.3, ge=0.0, le=2.0)
    # What: Second pass that fixes misheard wine vocabulary in transcripts
    improve_wine_terminology: bool = Field(default=True)

    # ── Cache ─────────────────────────────────────────────────────────────
    cache_enabled: bool = Field(default=True)
    cache_ttl_hours: float = Field(default=24.0, gt=0, le=24 * 30)
    # Minimum confidence a provider result needs before it is cached
    vision_cache_min_confidence: int = Field(default=30, ge=0, le=100)
    transcription_cache_min_confidence: int = Field(default=70, ge=0, le=100)
    analysis_cache_min_confidence: int = Field(default=50, ge=0, le=100)

    # ── Retry ─────────────────────────────────────────────────────────────
    # Linear backoff: wait = attempt × retry_base_delay seconds
    vision_max_retries: int = Field(default=3, ge=1, le=10)
    language_max_retries: int = Field(default=2, ge=1, le=10)
    retry_base_delay: float = Field(default=1.0, ge=0.0, le=30.0)

    # ── Provider Rate Limits ──────────────────────────────────────────────
    rate_limiting_enabled: bool = Field(default=True)
    vision_requests_per_minute: int = Field(default=60, ge=1)
    vision_requests_per_day: int = Field(default=1000, ge=1)
    language_requests_per_minute: int = Field(default=60, ge=1)
    language_requests_per_day: int = Field(default=500, ge=1)

    # ── Cost Estimates ────────────────────────────────────────────────────
    # USD per provider request that was not served from cache
    vision_cost_per_request: float = Field(default=0.0025, ge=0.0)
    transcription_cost_per_request: float = Field(default=0.006, ge=0.0)
    analysis_cost_per_request: float = Field(default=0.002, ge=0.0)

    # ── Pipeline ──────────────────────────────────────────────────────────
    session_timeout_seconds: float = Field(default=60.0, gt=0, le=600)
    session_log_retention: int = Field(default=100, ge=1, le=100_000)
    # Requests slower than this are logged at WARNING
    slow_request_ms: int = Field(default=20_000, ge=100)

    # ── CORS ──────────────────────────────────────────────────────────────
    cors_origins: str = Field(default="http://localhost:8081,http://localhost:19006")

    @property
    def cors_origins_list(self) -> List[str]:
        """Splits comma-separated CORS origins into a list."""
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    # ── Server ────────────────────────────────────────────────────────────
    backend_host: str = Field(default="0.0.0.0")
    backend_port: int = Field(default=8000, ge=1024, le=65535)
    log_level: str = Field(default="INFO")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Ensures log level is a valid Python logging level name."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        upper = v.upper()
        if upper not in valid_levels:
            raise ValueError(f"Invalid log_level '{v}'. Must be one of: {valid_levels}")
        return upper

    @property
    def cache_ttl_seconds(self) -> float:
        return self.cache_ttl_hours * 3600

    def provider_limits(self) -> Dict[str, ProviderLimits]:
        """
        What:  Rate-limit table keyed by provider id.
        How:   Transcription and analysis share one language-model quota
               in Gemini, but are counted separately here so one chatty
               capability cannot starve the other.
        """
        language = ProviderLimits(
            per_minute=self.language_requests_per_minute,
            per_day=self.language_requests_per_day,
        )
        return {
            "vision": ProviderLimits(
                per_minute=self.vision_requests_per_minute,
                per_day=self.vision_requests_per_day,
            ),
            "transcription": language,
            "analysis": language,
        }

    def unit_costs(self) -> Dict[str, float]:
        """Estimated USD per billable request, keyed by provider id."""
        return {
            "vision": self.vision_cost_per_request,
            "transcription": self.transcription_cost_per_request,
            "analysis": self.analysis_cost_per_request,
        }

    def validate_required_for_production(self) -> None:
        """
        What:  Validates that critical settings are configured.
        When:  Called during app startup (lifespan).
        Raises: ValueError listing every missing setting.
        """
        errors = []
        if not self.gemini_api_key or self.gemini_api_key == "your_gemini_api_key_here":
            errors.append(
                "GEMINI_API_KEY is not set. "
                "Get a key at https://aistudio.google.com/app/apikey"
            )
        if errors:
            raise ValueError(
                "Configuration validation failed:\n" + "\n".join(f"  - {e}" for e in errors)
            )


# Default instance for the HTTP entry point
settings = Settings()
