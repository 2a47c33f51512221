"""Application settings loaded from the environment."""
from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime configuration for the delivery tracking service.

    Every field can be overridden by an environment variable of the same name
    (case-insensitive) or by an entry in a local ``.env`` file.
    """

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    database_url: str = "sqlite:///./delivery.db"
    cors_origins: list[str] = Field(default_factory=lambda: ["*"])
    log_level: str = "INFO"

    # ASGI server used by the delivery-core-api script
    host: str = "127.0.0.1"
    port: int = 8000

    # Signed session tokens
    session_secret: str = "change-me-in-production-session-secret"
    session_algorithm: str = "HS256"
    session_ttl_seconds: int = 8 * 60 * 60

    # Attachment store
    attachment_dir: str = "./uploads/projects"

    # Department roster collaborator (disabled when unset)
    roster_url: Optional[str] = None
    roster_timeout_seconds: float = 5.0

    # Health thresholds
    health_overdue_grace_days: int = 3
    health_critical_blocker_count: int = 2


@lru_cache
def get_settings() -> Settings:
    """Return the process-wide settings instance."""
    return Settings()
