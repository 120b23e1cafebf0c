"""Application configuration."""

from functools import lru_cache

from pydantic import AnyHttpUrl, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime configuration loaded from environment variables."""

    webhook_secret: str
    webhook_url: AnyHttpUrl | None = None
    webhook_timeout_seconds: float = Field(default=10.0, gt=0)
    max_concurrent_jobs: int = Field(default=4, ge=1)
    notify_send_timeout_seconds: float = Field(default=5.0, gt=0)
    phase_timeout_seconds: float | None = Field(default=None, gt=0)
    assumed_audio_bitrate: int = Field(default=128_000, gt=0)
    video_cost: int = Field(default=2, ge=0)
    animation_cost: int = Field(default=2, ge=0)
    audio_cost: int = Field(default=1, ge=0)
    trial_credits: int = Field(default=28, ge=0)

    model_config = SettingsConfigDict(env_prefix="CODEREEL_", extra="ignore")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
