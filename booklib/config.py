"""
Configuration and settings for the book library.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Environment-backed settings (``BOOKLIB_*`` variables or ``.env``)."""

    model_config = SettingsConfigDict(
        env_prefix="BOOKLIB_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Acting user; required because every write is checked against it.
    user_id: str = Field(..., min_length=1)

    # Primary backend: "sql" (any SQLAlchemy URL), "file" or "memory".
    backend: str = Field(default="sql")
    database_url: Optional[str] = Field(default=None)

    # File backend
    library_dir: str = Field(default="data/library")
    offline_dir: Optional[str] = Field(default=None)

    api_prefix: str = Field(default="/api")

    # Import job queue (Redis); in-memory queue when unset.
    redis_url: Optional[str] = Field(default=None)
    redis_queue_key: str = Field(default="booklib:imports")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
