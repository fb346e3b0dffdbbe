import logging
from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .retry import RetryPolicy


class Settings(BaseSettings):
    """
    Centralized configuration with type validation.
    Automatically reads variables from the environment and an optional .env file.
    """

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # --- Google Drive Settings ---
    GDRIVE_CREDENTIALS_JSON: Optional[str] = None
    GDRIVE_TOKEN_JSON: Optional[str] = None

    # --- Logging ---
    LOG_LEVEL: str = "INFO"
    LOG_FILE: Optional[Path] = None

    # --- Retry Settings ---
    RETRY_MAX_ATTEMPTS: int = Field(5, ge=1)
    RETRY_MAX_ATTEMPTS_EXTENDED: int = Field(6, ge=1)
    RETRY_BASE_DELAY_SECONDS: float = Field(1.0, ge=0.0)
    RETRY_MULTIPLIER: float = Field(3.0, ge=1.0)
    RETRY_MAX_DELAY_SECONDS: float = Field(60.0, ge=0.0)
    RETRY_JITTER: bool = True

    # --- Listing / Download ---
    PAGE_SIZE: int = Field(500, ge=1)
    PERMISSIONS_PAGE_SIZE: int = Field(100, ge=1, le=100)
    DOWNLOAD_CHUNK_SIZE: int = Field(100 * 1024 * 1024, ge=1)  # 100 MB default

    @field_validator("LOG_LEVEL")
    @classmethod
    def normalize_log_level(cls, value: str) -> str:
        level = value.strip().upper()
        if not isinstance(logging.getLevelName(level), int):
            raise ValueError(f"Unknown LOG_LEVEL '{value}'.")
        return level

    @model_validator(mode="after")
    def check_delay_bounds(self):
        if self.RETRY_MAX_DELAY_SECONDS < self.RETRY_BASE_DELAY_SECONDS:
            raise ValueError(
                "RETRY_MAX_DELAY_SECONDS must not be lower than RETRY_BASE_DELAY_SECONDS"
            )
        return self

    def retry_policy(self, extended: bool = False) -> RetryPolicy:
        """
        Builds the retry policy for an operation.

        :param extended: Use RETRY_MAX_ATTEMPTS_EXTENDED instead of RETRY_MAX_ATTEMPTS.
        """
        return RetryPolicy(
            max_attempts=(
                self.RETRY_MAX_ATTEMPTS_EXTENDED if extended else self.RETRY_MAX_ATTEMPTS
            ),
            base_delay=self.RETRY_BASE_DELAY_SECONDS,
            multiplier=self.RETRY_MULTIPLIER,
            max_delay=self.RETRY_MAX_DELAY_SECONDS,
            jitter=self.RETRY_JITTER,
        )


@lru_cache()
def get_settings() -> Settings:
    """
    Returns a cached instance of the settings.
    The first call to this function will initialize the settings.
    """
    return Settings()
