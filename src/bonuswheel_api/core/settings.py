from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="allow")

    environment: Literal["development", "staging", "production"] = "development"
    database_url: str = "sqlite+aiosqlite:///./bonuswheel.db"
    database_echo: bool = False
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    # Tracing
    tracing_enabled: bool = True
    otel_exporter_otlp_endpoint: str | None = None
    otel_exporter_otlp_headers: str | None = None

    # Operator-facing API security
    operator_api_key: str = ""
    staff_external_ids: list[int] = Field(default_factory=list)

    @field_validator("staff_external_ids", mode="before")
    @classmethod
    def _parse_staff_ids(cls, value: object) -> list[int]:
        if value is None:
            return []
        if isinstance(value, int):
            return [value]
        if isinstance(value, str):
            items = [item.strip() for item in value.split(",")]
        elif isinstance(value, (list, tuple, set)):
            items = [str(item).strip() for item in value]
        else:
            return []
        return [int(item) for item in items if item.lstrip("-").isdigit()]

    # Bonus ledger
    accrual_rate: float = Field(0.05, ge=0, le=1)
    redemption_cap_fraction: float = Field(0.30, ge=0, le=1)
    bonus_expiry_days: int = Field(60, gt=0)
    ledger_evict_expired_on_read: bool = True

    # Reward wheel
    wheel_bonus_expiry_days: int = Field(60, gt=0)
    wheel_full_turns: int = 6
    seed_prize_catalog: bool = True


@lru_cache
def get_settings() -> Settings:
    return Settings()  # type: ignore[arg-type]


settings = get_settings()
