"""
Configuration management for Guideline Desk.
"""

from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings."""

    # Application
    app_name: str = Field(default="Guideline Desk", env="APP_NAME")
    debug: bool = Field(default=False, env="DEBUG")
    environment: str = Field(default="development", env="ENVIRONMENT")

    # API
    api_host: str = Field(default="0.0.0.0", env="API_HOST")
    api_port: int = Field(default=8000, env="API_PORT")
    api_workers: int = Field(default=1, env="API_WORKERS")

    # Database
    database_url: str = Field(
        default="sqlite:///./guideline_desk.db", env="DATABASE_URL"
    )

    # Logging
    log_level: str = Field(default="INFO", env="LOG_LEVEL")
    log_format: str = Field(default="json", env="LOG_FORMAT")

    # Storage
    content_store_uri: str = Field(
        default="file://./var/contributions",
        env="CONTENT_STORE_URI",
        description="Where submitted payloads are kept (file:// or memory://).",
    )
    public_store_uri: str = Field(
        default="file://./var/content",
        env="PUBLIC_STORE_URI",
        description="Where published guidelines are written.",
    )
    public_base_url: Optional[str] = Field(
        default=None,
        env="PUBLIC_BASE_URL",
        description="If set, published locations are reported under this URL instead of the store URI.",
    )

    # Moderation
    moderator_ids: str = Field(
        default="",
        env="MODERATOR_IDS",
        description="Comma-separated list of identities allowed to moderate. Empty string = nobody.",
    )

    # Quality reviewer
    reviewer_backend: str = Field(default="stub", env="REVIEWER_BACKEND")
    anthropic_api_key: Optional[str] = Field(default=None, env="ANTHROPIC_API_KEY")
    reviewer_model: str = Field(default="claude-sonnet-4-20250514", env="REVIEWER_MODEL")
    reviewer_timeout_seconds: int = Field(default=60, env="REVIEWER_TIMEOUT_SECONDS")

    # Review worker
    review_poll_interval: int = Field(default=5, env="REVIEW_POLL_INTERVAL")
    review_max_attempts: int = Field(default=5, env="REVIEW_MAX_ATTEMPTS")
    review_claim_timeout_seconds: int = Field(
        default=600, env="REVIEW_CLAIM_TIMEOUT_SECONDS"
    )
    review_retry_delay_seconds: int = Field(
        default=30, env="REVIEW_RETRY_DELAY_SECONDS"
    )

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


def parse_identity_list(raw: str) -> List[str]:
    """
    Parse a comma-separated list of identities.

    Examples:
        "alice,bob" -> ["alice", "bob"]
        "  alice , bob  " -> ["alice", "bob"]
        "" -> []
    """
    if not raw or not raw.strip():
        return []

    items = [item.strip() for item in raw.split(",")]
    return [i for i in items if i]


# Global settings instance
settings = Settings()


def get_settings() -> Settings:
    """Get application settings."""
    return settings
