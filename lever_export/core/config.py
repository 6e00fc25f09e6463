"""
Application configuration using pydantic-settings.

All settings are loaded from environment variables or .env file.

    LEVER_API_KEY=xxxx
    REQUESTS_PER_SECOND=10
    COOLDOWN_MS=5000
"""
from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        env_nested_delimiter="__",
    )

    # Lever API
    lever_api_key: str = Field(
        default="",
        description="Lever API key (Basic auth username, empty password)",
    )
    lever_api_root: str = Field(
        default="https://api.lever.co/v1",
        description="Base URL every request path is appended to",
    )
    request_timeout: float = Field(
        default=30.0,
        description="Per-request timeout in seconds",
    )

    # Rate limiting / retry
    requests_per_second: float = Field(
        default=10.0,
        gt=0,
        description="Global ceiling on outbound requests per second.",
    )
    retry_count: int = Field(
        default=5,
        ge=0,
        description="Retries after the first attempt for throttled/transient failures.",
    )
    backoff_base_seconds: float = Field(
        default=1.0,
        ge=0,
        description="Quadratic backoff base: attempt n waits n*n*base seconds.",
    )
    cooldown_ms: int = Field(
        default=5000,
        ge=0,
        description="Global pause applied to all requests after an HTTP 429.",
    )

    # Extraction
    page_limit: int = Field(
        default=100,
        gt=0,
        description="Default `limit` query parameter for paginated collections.",
    )
    max_in_flight_expansions: int = Field(
        default=0,
        ge=0,
        description="Soft cap on concurrently expanding records (0 = unbounded).",
    )
    fetch_plan_path: str = Field(
        default="config/fetch_plan.yaml",
        description="YAML fetch plan; built-in Lever plan is used when missing.",
    )

    # Output
    data_dir: str = Field(default="data", description="Output directory")
    output_file: str = Field(
        default="lever-export.json",
        description="Output JSON file name inside data_dir",
    )
    progress_log_every: int = Field(
        default=25,
        gt=0,
        description="Log progress every N completed records.",
    )

    # Application
    app_debug: bool = Field(default=False, description="Debug mode")

    @property
    def cooldown_seconds(self) -> float:
        """cooldown_ms expressed in seconds."""
        return self.cooldown_ms / 1000.0


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance (Singleton pattern)."""
    return Settings()


# Global settings instance
settings = get_settings()
