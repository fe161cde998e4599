from functools import lru_cache
from typing import Any

from pydantic import AnyUrl, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


_DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (iPhone; CPU iPhone OS 18_5 like Mac OS X) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/18.5 Mobile/15E148 Safari/604.1"
)

_QUERY_RUNTIMES = {"server", "client"}


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    debug: bool = Field(False, description="Enable FastAPI debug mode")
    environment: str = Field(
        default="development",
        description="Runtime environment (development|staging|production)",
    )
    log_level: str = Field(
        default="INFO",
        description="Minimum loguru level written to stderr",
    )
    clob_base_url: AnyUrl = Field(
        default="https://clob.polymarket.com",
        description="Base URL for the Polymarket CLOB API",
    )
    clob_books_path: str = Field(
        default="/books?token_ids",
        description="Relative path for the batched order-book endpoint",
    )
    data_api_base_url: AnyUrl = Field(
        default="https://data-api.polymarket.com",
        description="Base URL for the Polymarket data API (holders, activity)",
    )
    upstream_timeout_seconds: float = Field(
        default=10.0,
        description="Timeout applied to every upstream Polymarket request",
        gt=0,
    )
    upstream_user_agent: str = Field(
        default=_DEFAULT_USER_AGENT,
        description="User-Agent header sent to the CLOB API",
    )
    upstream_referer: str = Field(
        default="https://polymarket.com/",
        description="Referer header sent to the CLOB API",
    )
    top_holders_limit: int = Field(
        default=15,
        description="Maximum number of holders returned per outcome",
        ge=1,
    )
    activity_batch_size: int = Field(
        default=25,
        description="Number of activity records requested per upstream call",
        ge=1,
    )
    activity_batch_delay_seconds: float = Field(
        default=0.1,
        description="Pause between activity batches to stay under upstream rate limits",
        ge=0,
    )
    activity_default_limit: int = Field(
        default=50,
        description="Number of activity records returned when the caller sets no limit",
        ge=1,
    )
    dashboard_api_base_url: AnyUrl | str = Field(
        default="http://localhost:4000/api",
        description="Base URL the query layer uses to reach the dashboard API",
    )
    dashboard_api_timeout_seconds: float = Field(
        default=30.0,
        description="Timeout for query layer requests",
        gt=0,
    )
    query_stale_time_seconds: float = Field(
        default=60.0,
        description="Default window after which cached query data is refetched in the background",
        ge=0,
    )
    query_gc_time_seconds: float = Field(
        default=300.0,
        description="Inactivity window after which unobserved cache entries are evicted",
        ge=0,
    )
    query_retry_attempts: int = Field(
        default=3,
        description="Number of retries after a failed query fetch",
        ge=0,
    )
    query_retry_base_delay_seconds: float = Field(
        default=1.0,
        description="Delay before the first retry; doubled on each further retry",
        gt=0,
    )
    query_retry_max_delay_seconds: float = Field(
        default=30.0,
        description="Upper bound on the delay between retries",
        gt=0,
    )
    query_retry_jitter: float = Field(
        default=0.0,
        description="Fraction of each retry delay added as random jitter",
        ge=0,
        le=1,
    )
    events_page_size: int = Field(
        default=20,
        description="Page size for paginated event queries",
        ge=1,
    )
    events_stale_time_seconds: float = Field(
        default=30.0,
        description="Staleness window for paginated event queries",
        ge=0,
    )
    query_runtime: str = Field(
        default="client",
        description="Whether query clients run per request (server) or per session (client)",
    )

    @field_validator("query_runtime", mode="before")
    @classmethod
    def _validate_query_runtime(cls, value: Any) -> str:
        normalized = str(value or "").strip().lower()
        if normalized not in _QUERY_RUNTIMES:
            raise ValueError("QUERY_RUNTIME must be either 'server' or 'client'")
        return normalized

    @field_validator("log_level", mode="before")
    @classmethod
    def _normalize_log_level(cls, value: Any) -> str:
        if value in (None, ""):
            return "INFO"
        return str(value).strip().upper()

    @property
    def is_server_runtime(self) -> bool:
        return self.query_runtime == "server"


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
