import os
from datetime import timedelta

from dotenv import load_dotenv
from pydantic import BaseModel, Field

load_dotenv()


class Settings(BaseModel):
    # External API Configuration
    external_api_base_url: str = Field(
        default="https://reqres.in/api/", alias="EXTERNAL_API_BASE_URL"
    )
    external_api_key_header: str = Field(
        default="x-api-key", alias="EXTERNAL_API_KEY_HEADER"
    )
    external_api_key_value: str = Field(
        default="reqres-free-v1", alias="EXTERNAL_API_KEY_VALUE"
    )

    # HTTP Resilience Configuration
    retry_attempt_count: int = Field(default=3, ge=0, alias="RETRY_ATTEMPT_COUNT")
    retry_exponential_base: float = Field(
        default=2.0, gt=0, alias="RETRY_EXPONENTIAL_BASE"
    )
    circuit_breaker_failure_threshold: int = Field(
        default=2, ge=1, alias="CIRCUIT_BREAKER_FAILURE_THRESHOLD"
    )
    circuit_breaker_open_seconds: float = Field(
        default=30.0, gt=0, alias="CIRCUIT_BREAKER_OPEN_SECONDS"
    )
    response_timeout_minutes: float = Field(
        default=10.0, gt=0, alias="RESPONSE_TIMEOUT_MINUTES"
    )

    # Cache Configuration
    user_cache_ttl_minutes: float = Field(
        default=10.0, gt=0, alias="USER_CACHE_TTL_MINUTES"
    )
    cache_max_size: int = Field(default=1000, ge=1, alias="CACHE_MAX_SIZE")

    # Logging
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    @property
    def user_cache_ttl(self) -> timedelta:
        return timedelta(minutes=self.user_cache_ttl_minutes)

    @property
    def api_headers(self) -> dict[str, str]:
        return {self.external_api_key_header: self.external_api_key_value}


def load_settings() -> Settings:
    """Build settings from the process environment (and .env)."""
    return Settings.model_validate(dict(os.environ))


global_settings = load_settings()
