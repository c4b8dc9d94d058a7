"""Application configuration using Pydantic settings."""

from functools import lru_cache
from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Central application configuration."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", case_sensitive=False)

    app_name: str = "critcss"
    environment: str = "development"
    debug: bool = True

    api_v1_prefix: str = "/v1"
    cors_allowed_origins: List[str] = ["*"]

    redis_url: str = "redis://localhost:6379/0"

    celery_broker_url: str | None = None
    celery_result_backend: str | None = None

    auth_jwt_secret: str = "change-me"
    auth_token_header: str = "Authorization"

    default_viewport_profile: str = "desktop"
    match_workers: int = 1
    media_base_font_size_px: float = 16.0
    extraction_cache_size: int = 128
    deferred_stylesheet_href: str = "/static/app.css"


@lru_cache
def get_settings() -> Settings:
    """Return cached settings instance."""

    return Settings()


settings = get_settings()
