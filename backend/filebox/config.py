"""Configuration from environment (no hardcoded secrets)."""

from pathlib import Path
from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Backend and worker settings from env."""

    model_config = SettingsConfigDict(env_prefix="FILEBOX_", extra="ignore")

    # Storage
    storage_base_path: Path = Path("/tmp/files_manager")
    db_path: Path = Path("/data/filebox.db")

    # Cache and job queues
    redis_url: str = "redis://localhost:6379/0"
    session_ttl_seconds: int = 24 * 60 * 60

    # Listing
    page_size: int = 20

    # Thumbnails: comma-separated widths in pixels
    thumbnail_widths: str = "100,250,500"
    thumbnail_attempts: int = 2
    worker_poll_seconds: float = 5.0

    # SMTP (welcome notification; empty host = log only)
    smtp_host: str = ""
    smtp_port: int = 587
    smtp_user: str = ""
    smtp_password: str = ""
    smtp_from: str = ""

    # CORS: set as comma-separated string in env (e.g. https://files.example.com)
    # so pydantic-settings does not try to JSON-decode it
    cors_origins: str = "http://localhost:3000"

    @property
    def cors_origins_list(self) -> List[str]:
        """CORS origins as a list (split on comma)."""
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    @property
    def thumbnail_widths_list(self) -> List[int]:
        """Thumbnail widths as sorted unique ints."""
        return sorted({int(w) for w in self.thumbnail_widths.split(",") if w.strip()})

    rate_limit_enabled: bool = True

    # Server
    port: int = 5000

    # Logging (empty log_file = stderr only; level DEBUG|INFO|WARNING|ERROR)
    log_level: str = "INFO"
    log_file: str = ""


def get_settings() -> Settings:
    """Return application settings."""
    return Settings()
