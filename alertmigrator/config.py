# alertmigrator/config.py
from __future__ import annotations

import logging
import sys
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # --- Relational store ---
    DATABASE_URL: str = "sqlite:///./alertmigrator.db"

    # Silence files live under <DATA_PATH>/alerting/<orgId>/silences
    DATA_PATH: str = "./data"

    # --- Alerting mode ---
    UNIFIED_ALERTING_ENABLED: bool = True
    LEGACY_ALERTING_ENABLED: bool = False
    # Required to roll back from unified alerting (deletes unified data).
    FORCE_MIGRATION: bool = False

    # --- Migration run ---
    MIGRATION_LOCK_SECONDS: int = 600
    BASE_INTERVAL_SECONDS: int = 10
    # None -> derived from the DB dialect
    CASE_INSENSITIVE_TITLES: Optional[bool] = None

    LOG_LEVEL: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


settings = Settings()


def configure_logging(level: Optional[str] = None) -> logging.Logger:
    """
    Stream handler for scripts and CLI use. Library code only uses
    named loggers under "alertmigrator".
    """
    logger = logging.getLogger("alertmigrator")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s"))
    logger.addHandler(handler)
    logger.setLevel((level or settings.LOG_LEVEL).upper())
    return logger
