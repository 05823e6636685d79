from functools import lru_cache

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from ratewindow.core.errors import InvalidRate
from ratewindow.core.rate import Rate


class Settings(BaseSettings):
    redis_url: str = "redis://localhost:6379/0"
    key_prefix: str = "ratelimit"
    default_rate: str = "100-M"
    log_level: str = "INFO"
    log_json: bool = True

    model_config = SettingsConfigDict(
        env_prefix="RATEWINDOW_",
        env_file=".env",
        extra="ignore",
    )

    @field_validator("default_rate")
    @classmethod
    def _check_rate(cls, value: str) -> str:
        try:
            Rate.from_formatted(value)
        except InvalidRate as exc:
            raise ValueError(exc.message) from exc
        return value

    @property
    def rate(self) -> Rate:
        return Rate.from_formatted(self.default_rate)


@lru_cache
def get_settings() -> Settings:
    return Settings()
