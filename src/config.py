"""Application configuration loaded from environment variables and .env file."""

from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

# 패키지에 포함된 기본 카탈로그 (src.data 패키지 데이터)
DEFAULT_QUEST_CATALOG = Path(__file__).resolve().parent / "data" / "quests.json"


class Settings(BaseSettings):
    """Application settings.

    Values are loaded from environment variables first,
    then from a .env file in the project root as fallback.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
    )

    DATABASE_URL: str = "sqlite:///./dev.db"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # Quest catalog
    QUEST_CATALOG_PATH: str = str(DEFAULT_QUEST_CATALOG)

    # Optimistic concurrency: attempts per logical write before Conflict
    WRITE_MAX_RETRIES: int = 5
    WRITE_RETRY_BACKOFF_MS: int = 10

    # Member fan-out
    FANOUT_MAX_WORKERS: int = 4


settings = Settings()
