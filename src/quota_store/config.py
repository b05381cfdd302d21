from datetime import timedelta
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class StoreSettings(BaseSettings):
    """
    Settings for a Redis backed quota store.

    Every field can be given through the environment with the
    QUOTA_STORE_ prefix, e.g. QUOTA_STORE_TOKENS=15 or
    QUOTA_STORE_INTERVAL=PT1M (an ISO 8601 duration).
    """

    model_config = SettingsConfigDict(
        env_prefix="QUOTA_STORE_",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Defaults for keys that were never configured through set()
    tokens: int = Field(1, ge=1)
    interval: timedelta = Field(timedelta(seconds=1))

    redis_url: str = Field("redis://localhost:6379/0")
    key_prefix: str = Field("")

    # Pool tuning. Setting max_connections switches to a blocking pool that
    # waits up to pool_timeout seconds for a free connection.
    max_connections: Optional[int] = Field(None, ge=1)
    pool_timeout: Optional[float] = Field(None, gt=0)
    socket_timeout: Optional[float] = Field(None, gt=0)
    health_check_interval: int = Field(0, ge=0)

    @field_validator("interval")
    @classmethod
    def interval_positive(cls, v: timedelta) -> timedelta:
        if v <= timedelta(0):
            raise ValueError("interval must be positive")
        return v


_settings: Optional[StoreSettings] = None


def get_settings() -> StoreSettings:
    global _settings
    if _settings is None:
        _settings = StoreSettings()
    return _settings
