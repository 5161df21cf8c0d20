"""Configuration objects and helpers for the availability engine."""

from __future__ import annotations

from functools import lru_cache
from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime configuration sourced from ``BOOKING_*`` environment variables."""

    scheduling_api_url: str = "http://localhost:3000/api"
    scheduling_api_token: SecretStr | None = None
    request_timeout_seconds: float = Field(10.0, gt=0)

    debounce_ms: int = Field(400, ge=0)
    far_future_days: int = Field(30, ge=0)
    city_id: str = "1"
    # serve availability from the in-memory mock instead of the Scheduling API
    use_mock_api: bool = False
    # session-lifetime cache unless set
    slot_cache_ttl_seconds: float | None = Field(None, gt=0)

    log_level: str = "INFO"
    host: str = "0.0.0.0"
    port: int = 8000
    reload: bool = False

    model_config = SettingsConfigDict(
        env_prefix="BOOKING_",
        env_file=(".env",),
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("log_level")
    @classmethod
    def _upper_level(cls, value: str) -> str:
        return value.upper()

    @property
    def api_token(self) -> str | None:
        return self.scheduling_api_token.get_secret_value() if self.scheduling_api_token else None


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
