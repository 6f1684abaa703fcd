"""
Shipment Relay Configuration

Settings loaded from environment variables or a .env file. Per-store
OrderDesk API keys are not settings fields; they are read by the account
directory from ``STORE_<store_id>`` variables.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Shipment relay settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",  # STORE_<id> keys live in the same .env file
    )

    # Service Configuration
    service_name: str = "shipment-relay"
    port: int = 4000
    log_level: str = "INFO"

    # OrderDesk API Configuration
    orderdesk_base_url: str = "https://app.orderdesk.me/api/v2"
    request_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        description="HTTP timeout for a single OrderDesk request",
    )

    # Dispatch Configuration
    dispatch_interval_ms: int = Field(
        default=5000,
        ge=100,
        description="Delay between dispatch cycles in milliseconds",
    )
    resolve_concurrency: int = Field(
        default=10,
        ge=1,
        description="Maximum number of order lookups in flight at once",
    )
    call_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        description="Upper bound on one lookup or batch submission, retries included",
    )
    drain_on_shutdown: bool = Field(
        default=True,
        description="Run one final dispatch cycle for queued shipments on shutdown",
    )

    # Credential source for STORE_<id> keys (None = process environment only)
    dotenv_path: str | None = ".env"


# Global settings instance
settings = Settings()
