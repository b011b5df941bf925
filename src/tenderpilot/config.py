"""Runtime configuration for TenderPilot."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Environment-backed configuration model."""

    model_config = SettingsConfigDict(env_prefix="tenderpilot_", env_file=".env", case_sensitive=False)

    environment: Literal["dev", "test", "prod"] = "dev"
    data_dir: Path = Path("./data")

    # Local persistence
    database_name: str = "tenderpilot.db"
    session_file_name: str = "session.json"

    # Remote generation service; the key is checked when a completion is requested
    gemini_api_key: str | None = None
    gemini_model: str = "gemini-2.5-pro"
    generation_temperature: float = 0.2

    max_tender_chars: int = 400_000
    completion_max_retries: int = 0
    completion_retry_base_seconds: float = 1.0

    # Upload safety
    max_upload_size_mb: int = 25

    # CORS
    cors_allow_origins: tuple[str, ...] = ()

    @property
    def is_test(self) -> bool:
        return self.environment == "test"

    @property
    def database_path(self) -> Path:
        return self.data_dir / self.database_name

    @property
    def session_path(self) -> Path:
        return self.data_dir / self.session_file_name


@lru_cache(maxsize=1)
def _cached_settings() -> Settings:
    return Settings()


def get_settings(override: Optional[dict[str, object]] = None) -> Settings:
    """Return settings, optionally overriding values without mutating cache."""

    if override:
        return Settings(**override)
    return _cached_settings()
