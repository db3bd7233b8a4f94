"""Runtime settings, read from ``VITALSYNC_*`` environment variables or ``.env``."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Remote sink
    relay_base_url: str = "http://localhost:8787"
    request_timeout_sec: float = 10.0

    # Row context
    user_id: str = "u_dev"
    source: str = "apple_health"
    device_id: str = "ios_device"

    # Scheduler
    poll_interval_sec: float = 120.0
    lookback_hours: float = 48.0
    refresh_min_spacing_sec: float = 7.0

    # Queue
    chunk_size: int = 200
    backoff_steps: list[float] = [2.0, 5.0, 15.0, 60.0]

    # Analytics
    baseline_window: int = 28

    checkpoint_path: Path = Path.home() / ".vitalsync" / "checkpoints.json"

    model_config = SettingsConfigDict(
        env_prefix="VITALSYNC_",
        env_file=".env",
        extra="ignore",
        case_sensitive=False,
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
