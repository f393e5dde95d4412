"""Application configuration.

Settings are read from the environment (``QURANAKH_`` prefix) or a local
``.env`` file through Pydantic Settings, so local and production deployments
only differ in their environment.
"""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Core settings.

    - ``database_url``: SQLAlchemy URL, a local SQLite file by default.
    - ``secret_key``: HMAC key used to sign bearer tokens.
    - ``max_reopen_count``: how many times a completed assignment may be reopened.
    - ``max_attachments`` / ``max_attachment_bytes``: per-submission attachment limits.
    """

    database_url: str = Field(
        default="sqlite:///./storage/quranakh.db", description="SQLAlchemy database URL"
    )
    secret_key: str = Field(
        default="change-me-in-production", description="Bearer token signing key"
    )
    token_expire_hours: int = Field(default=24, ge=1)
    max_reopen_count: int = Field(default=10, ge=0)
    max_attachments: int = Field(default=10, ge=0)
    max_attachment_bytes: int = Field(default=10 * 1024 * 1024, gt=0)
    log_level: str = Field(default="INFO", description="Root logging level")

    model_config = {
        "env_prefix": "QURANAKH_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
    }


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Cached process-wide settings instance."""

    return Settings()
