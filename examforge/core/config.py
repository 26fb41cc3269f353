"""
Application configuration with environment-based settings.
"""
from __future__ import annotations

from functools import lru_cache
from typing import List, Literal, Optional

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

from examforge.constants.about import APP_DESCRIPTION, APP_NAME, APP_VERSION
from examforge.constants.assessment_constants import (
    DEFAULT_ACCESS_CODE_LENGTH,
    DEFAULT_MAX_PRESENTED_ANSWERS,
    MAX_ANSWERS,
    MIN_ANSWERS,
)
from examforge.constants.network_constants import DEFAULT_HOST, DEFAULT_PORT


class Settings(BaseSettings):
    """Main application settings, read from ``EXAMFORGE_*`` variables or ``.env``."""

    model_config = SettingsConfigDict(
        env_prefix="EXAMFORGE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ============= Application Settings =============
    app_name: str = APP_NAME
    app_version: str = APP_VERSION
    app_description: str = APP_DESCRIPTION
    environment: str = Field(default="development")
    log_level: str = "INFO"

    # ============= Server Settings =============
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    cors_origins: str = "*"

    # ============= Storage Settings =============
    storage_backend: Literal["memory", "sql"] = "memory"
    database_url: str = "sqlite:///./examforge.db"
    database_echo: bool = False

    # ============= Security Settings =============
    auth_secret: SecretStr = Field(default=SecretStr("examforge-development-secret-change-me"))
    auth_algorithm: str = "HS256"
    access_token_expire_minutes: int = 120
    enable_dev_login: bool = False

    # ============= Assessment Settings =============
    access_code_length: int = Field(default=DEFAULT_ACCESS_CODE_LENGTH, ge=4, le=32)
    shuffle_answers: bool = True
    max_presented_answers: Optional[int] = Field(
        default=DEFAULT_MAX_PRESENTED_ANSWERS, ge=MIN_ANSWERS, le=MAX_ANSWERS
    )
    draw_seed: Optional[int] = None
    pool_delete_policy: Literal["cascade", "block"] = "cascade"

    # ============= Seeding =============
    seed_file: Optional[str] = None
    seed_owner_id: Optional[str] = None

    def get_cors_origins(self) -> List[str]:
        """Split the comma separated origin list."""
        return [i.strip() for i in self.cors_origins.split(",") if i.strip()]

    def is_production(self) -> bool:
        """Check if running in production."""
        return self.environment.lower() == "production"


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
