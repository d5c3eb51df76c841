"""Configuration settings for the Nepshift service."""

import logging
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    model_config = SettingsConfigDict(
        env_prefix="NEPSHIFT_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    app_name: str = "Nepshift API"
    debug: bool = False
    log_level: str = "INFO"

    # Verification document uploads
    max_upload_bytes: int = 5 * 1024 * 1024
    allowed_upload_types: list[str] = [
        "image/jpeg",
        "image/png",
        "image/webp",
        "application/pdf",
    ]
    upload_dir: str = "uploads"

    # Workers below this profile completion are hidden from search
    search_visibility_threshold: int = 80

    review_comment_max_length: int = 500
    bid_message_max_length: int = 500

    # Reject other pending bids once one bid on a shift is accepted
    auto_reject_sibling_bids: bool = True


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


def configure_logging(level: str | None = None) -> None:
    """Attach a single stream handler to the package logger."""
    logger = logging.getLogger("nepshift")
    logger.setLevel((level or get_settings().log_level).upper())
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
        )
        logger.addHandler(handler)
