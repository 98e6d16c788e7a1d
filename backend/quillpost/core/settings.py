from __future__ import annotations

from functools import lru_cache

from pydantic import BaseModel
from pydantic_settings import BaseSettings, SettingsConfigDict


class ErrorOverride(BaseModel):
    """Replacement title/detail for one error kind."""

    title: str
    detail: str


class Settings(BaseSettings):
    """Runtime configuration loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="QUILLPOST_",
        case_sensitive=False,
    )

    # Design default: local async sqlite database.
    db_url: str = "sqlite+aiosqlite:///./data/dev.db"

    # Requests under this prefix always get JSON API error documents.
    api_prefix: str = "/api/v1"

    log_level: str = "INFO"

    # Maintenance mode
    maintenance_mode: bool = False
    maintenance_message: str | None = None
    maintenance_retry_after: int | None = None

    json_max_depth: int = 512

    # Error overrides keyed by error kind, e.g.
    # QUILLPOST_ERRORS='{"NotFound": {"title": "Foo", "detail": "Bar"}}'
    errors: dict[str, ErrorOverride] = {}


@lru_cache
def get_settings() -> Settings:
    return Settings()
