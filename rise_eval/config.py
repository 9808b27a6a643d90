"""Application configuration using Pydantic settings."""

from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Backend API
    api_base_url: str = "http://localhost:8000"
    api_timeout_seconds: int = 30
    auth_token: str = ""  # Used when no interactive login happened

    # Logging
    log_level: str = "INFO"

    # Metric catalog
    metrics_cache_ttl: int = 300  # 5 minutes

    # Scoring ranges
    score_min: int = 0
    score_max: int = 5
    stage2_score_min: int = 0  # 0 = likely real
    stage2_score_max: int = 2  # 2 = likely AI

    # Placeholder images
    placeholder_base_url: str = "https://picsum.photos"
    placeholder_width: int = 800
    placeholder_height: int = 600

    # Notifications
    notification_dedupe_seconds: float = 5.0

    @property
    def api_root(self) -> str:
        """Backend API root with the trailing ``api/`` segment."""
        base = self.api_base_url
        return f"{base}api/" if base.endswith("/") else f"{base}/api/"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        env_prefix = "RISE_"
        case_sensitive = False


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
