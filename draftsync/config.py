"""Configuration settings for draftsync."""

from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from draftsync.utils import get_draftsync_home


class Settings(BaseSettings):
    """Library settings loaded from environment (``DRAFTSYNC_*``)."""

    model_config = SettingsConfigDict(
        env_prefix="DRAFTSYNC_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",  # Ignore extra env vars not in model
    )

    # Local storage
    data_dir: Path | None = None  # Defaults to get_draftsync_home()
    db_filename: str = "drafts.db"

    # Autosave
    debounce_seconds: float = Field(default=2.0, gt=0)
    draft_max_age_days: int = Field(default=30, ge=1)

    # Remote record store
    backend_url: str | None = None
    auth_token: str | None = None
    request_timeout: float = Field(default=10.0, gt=0)

    # Logging
    log_level: str = "INFO"

    @field_validator("log_level")
    @classmethod
    def _upper_level(cls, v: str) -> str:
        return v.upper()

    @property
    def resolved_data_dir(self) -> Path:
        return self.data_dir or get_draftsync_home()

    @property
    def db_path(self) -> Path:
        return self.resolved_data_dir / self.db_filename


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
