from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="MEMOREDIS_", env_file=".env", extra="ignore")

    # Redis
    redis_url: str = Field(default="redis://localhost:6379/0", validation_alias="REDIS_URL")
    scan_count: int = Field(default=1000, ge=1)

    # Key namespace shared by every memoizer built from these settings
    prefix: str | None = None

    # Bypass mode: memoized functions always run, nothing touches Redis
    empty_mode: bool = False

    # Defaults for memoize() (seconds)
    default_ttl: float = Field(default=60.0, gt=0)
    default_lock_timeout: float = Field(default=5.0, gt=0)
    lock_retry_interval: float = Field(default=0.05, gt=0)

    # Observability
    log_level: str = "INFO"
    log_json: bool = False


settings = Settings()
