"""
Catalog configuration.

Settings are read from the environment (prefix ``RECIPE_CATALOG_``) or an
optional ``.env`` file.
"""

from functools import lru_cache
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings for opening and querying a recipe catalog."""

    model_config = SettingsConfigDict(
        env_prefix="RECIPE_CATALOG_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Storage
    database_path: str = "recipes.db"
    echo_sql: bool = False

    # Full-text index
    fts_tokenizer: str = "porter unicode61"

    log_level: str = "INFO"


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
