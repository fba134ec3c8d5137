"""Pydantic Settings — typed configuration with .env auto-loading."""

from __future__ import annotations

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration loaded from environment / .env file."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # ── Service ──────────────────────────────────────────────
    service_port: int = 3000
    cors_origins: list[str] = ["*"]
    debug: bool = False

    # ── Blob Store ───────────────────────────────────────────
    blob_store_type: str = "local"  # "local" or "memory"
    upload_dir: str = "uploads"
    uploads_url_prefix: str = "/uploads"
    max_upload_bytes: int = 10 * 1024 * 1024  # 10 MiB hard cap at ingress
    max_concurrent_uploads: int = 8  # per worker

    # ── Catalog ──────────────────────────────────────────────
    catalog_store_type: str = "memory"  # "memory" or "redis"
    redis_url: str = ""  # e.g. redis://:password@host:6379/0
    catalog_max_retries: int = 5  # WATCH/MULTI attempts before Conflict


@lru_cache
def get_settings() -> Settings:
    """Singleton accessor for application settings."""
    return Settings()
