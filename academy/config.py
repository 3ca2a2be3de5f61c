"""Application configuration module."""

from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", case_sensitive=True, extra="ignore")

    # Database settings
    DATABASE_URL: str = "sqlite+aiosqlite:///./academy.db"
    SQL_ECHO: bool = False
    DB_POOL_SIZE: int = 5
    DB_MAX_OVERFLOW: int = 10
    DB_POOL_TIMEOUT: int = 30
    AUTO_CREATE_SCHEMA: bool = True

    # Logging settings
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = False
    LOG_FILE: str = ""

    # API settings
    API_V1_STR: str = "/api/v1"
    PROJECT_NAME: str = "Academy Quiz Engine"
    ALLOW_ORIGINS: List[str] = ["*"]

    # Quiz engine settings
    SCORE_TIMED_OUT_ATTEMPTS: bool = False
    QUIZ_LIST_PAGE_SIZE: int = 15


# Create global settings instance
settings = Settings()
