"""Configuration models."""

from typing import Optional

from pydantic import BaseModel, Field, field_validator


class PostgresConfig(BaseModel):
    """Postgres configuration."""

    host: str = Field("localhost", description="Database host")
    port: int = Field(5432, description="Database port")
    database: str = Field("nlarchive", description="Database name")
    user: str = Field("nlarchive_user", description="Database user")
    password: Optional[str] = Field(None, description="Database password")
    password_env: Optional[str] = Field(None, description="Environment variable for password")


class ApiConfig(BaseModel):
    """MailerLite API configuration."""

    base_url: str = Field("https://connect.mailerlite.com/api", description="API base URL")
    api_key: Optional[str] = Field(None, description="API key (prefer api_key_env)")
    api_key_env: Optional[str] = Field("MAILERLITE_API_KEY", description="Environment variable for API key")
    timeout: float = Field(30.0, description="HTTP timeout in seconds", gt=0)
    page_delay_seconds: float = Field(2.0, description="Delay between page fetches", ge=0)
    rate_limit_backoff_seconds: float = Field(10.0, description="Sleep after a 429 response", ge=0)
    time_budget_seconds: Optional[float] = Field(
        300.0,
        description="Wall-clock budget for a sync run (None disables)",
        gt=0,
    )

    @field_validator("base_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        """Normalize base URL."""
        return v.rstrip("/")


class SearchConfig(BaseModel):
    """Search defaults."""

    per_page: int = Field(20, description="Default results per page", ge=1, le=100)
    excerpt_words: int = Field(64, description="Excerpt word budget", ge=8, le=256)


class MatchingConfig(BaseModel):
    """Batch import file matching configuration."""

    similarity_threshold: float = Field(
        70.0,
        description="Minimum similarity percentage to accept a content file",
        ge=0.0,
        le=100.0,
    )


class ConfigModel(BaseModel):
    """Main configuration model."""

    archive_root: str = Field("~/Newsletter-Archive", description="Root directory for archived content")
    log_level: str = Field("INFO", description="Logging level")
    postgres: PostgresConfig = Field(default_factory=PostgresConfig)
    api: ApiConfig = Field(default_factory=ApiConfig)
    search: SearchConfig = Field(default_factory=SearchConfig)
    matching: MatchingConfig = Field(default_factory=MatchingConfig)

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Accept standard logging level names only."""
        level = v.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {v}")
        return level
