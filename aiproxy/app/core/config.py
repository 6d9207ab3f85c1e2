import json
from typing import Annotated, Any, Literal

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class RateLimitTierConfig(BaseModel):
    """One rate limit tier as declared in configuration."""

    name: str = Field(..., min_length=1)
    max_requests: int = Field(..., ge=1)
    window_seconds: int = Field(..., ge=1)


DEFAULT_RATE_LIMIT_TIERS = [
    RateLimitTierConfig(name="minute", max_requests=10, window_seconds=60),
    RateLimitTierConfig(name="hour", max_requests=50, window_seconds=60 * 60),
    RateLimitTierConfig(name="day", max_requests=200, window_seconds=24 * 60 * 60),
]


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    All settings can be configured via environment variables or .env file.
    """

    # Debug mode - enables detailed error responses
    debug: bool = False

    # Logging settings
    log_level: str = "INFO"
    log_format: str = "text"  # text | structured | json

    # Rate limiting settings
    # Tiers are checked in declaration order; keep the shortest window first.
    rate_limit_tiers: Annotated[list[RateLimitTierConfig], NoDecode] = Field(
        default_factory=lambda: list(DEFAULT_RATE_LIMIT_TIERS)
    )
    rate_limit_sweep_interval: int = 100  # Sweep idle clients every N decisions

    # Clients without a usable forwarded address share one quota ("pool")
    # or are turned away ("reject").
    unknown_client_policy: Literal["pool", "reject"] = "pool"
    unknown_client_identity: str = "unknown"

    # Payload limits
    max_prompt_length: int = 500
    max_conversation_turns: int = 10

    # HuggingFace inference settings
    huggingface_api_key: str = ""
    huggingface_model_url: str = (
        "https://api-inference.huggingface.co/models/microsoft/DialoGPT-medium"
    )

    # HTTP Client connection pool settings
    httpx_connect_timeout: float = 10.0  # Time to establish connection
    httpx_read_timeout: float = 30.0  # Time to read response data
    httpx_write_timeout: float = 10.0  # Time to send request data
    httpx_pool_timeout: float = 5.0  # Time to acquire connection from pool
    httpx_keepalive_expiry: float = 30.0
    httpx_max_connections: int = 100
    httpx_max_keepalive_connections: int = 20

    # CORS
    cors_allow_origin: str = "*"

    @field_validator("rate_limit_tiers", mode="before")
    @classmethod
    def decode_rate_limit_tiers(cls, v: Any) -> Any:
        if isinstance(v, str):
            raw = v.strip()
            if not raw:
                return list(DEFAULT_RATE_LIMIT_TIERS)
            return json.loads(raw)
        return v

    @field_validator("rate_limit_tiers")
    @classmethod
    def validate_rate_limit_tiers(
        cls, v: list[RateLimitTierConfig]
    ) -> list[RateLimitTierConfig]:
        """Require at least one tier and unique tier names."""
        if not v:
            raise ValueError("At least one rate limit tier must be configured")
        names = [tier.name for tier in v]
        if len(set(names)) != len(names):
            raise ValueError("Rate limit tier names must be unique")
        return v

    @field_validator(
        "rate_limit_sweep_interval", "max_prompt_length", "max_conversation_turns"
    )
    @classmethod
    def validate_positive(cls, v: int) -> int:
        """Validate limit values are positive."""
        if v < 1:
            raise ValueError("Limit values must be at least 1")
        return v

    @field_validator("httpx_connect_timeout", "httpx_read_timeout", "httpx_write_timeout")
    @classmethod
    def validate_timeout_positive(cls, v: float) -> float:
        """Validate timeout values are positive."""
        if v <= 0:
            raise ValueError("Timeout values must be positive")
        return v

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


# Global settings instance
settings = Settings()
