from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class DeliverySettings(BaseSettings):
    """Tunables for webhook delivery. Defaults match the production policy.

    Every field can be overridden with a ``WEBHOOK_``-prefixed environment
    variable, e.g. ``WEBHOOK_MAX_ATTEMPTS=3``. Blank variables are ignored.
    """

    model_config = SettingsConfigDict(
        env_prefix="WEBHOOK_",
        env_ignore_empty=True,
        extra="ignore",
        frozen=True,
    )

    # Retry policy
    max_attempts: int = Field(default=5, ge=1, description="Attempts per delivery before it fails")
    initial_backoff_seconds: float = Field(default=5.0, ge=0, description="Delay after the first failure")
    backoff_multiplier: float = Field(default=4.0, ge=1, description="Growth factor between retry delays")

    # HTTP
    request_timeout_seconds: float = Field(default=10.0, gt=0, description="Deadline for one attempt")
    response_body_limit: int = Field(default=2048, ge=1, description="Characters of response body kept")

    # Scheduling
    retry_poll_interval_seconds: float = Field(default=30.0, gt=0, description="Seconds between retry sweeps")
    retry_batch_size: int = Field(default=50, ge=1, description="Records attempted per sweep")
    max_workers: int = Field(default=8, ge=1, description="Delivery worker threads")
    lease_seconds: float = Field(default=60.0, gt=0, description="How long a claimed attempt holds its record")

    # Storage and logging
    data_dir: str | None = Field(default=None, description="Directory for JSON persistence; in-memory if unset")
    log_level: str = Field(default="INFO", description="Root logging level")

    @model_validator(mode="after")
    def lease_outlasts_request(self) -> "DeliverySettings":
        if self.lease_seconds <= self.request_timeout_seconds:
            raise ValueError("lease_seconds must exceed request_timeout_seconds")
        return self
