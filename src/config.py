"""
Calendar Engine: Centralized configuration.

Loads all settings from .env and validates them.
This module is the foundation for every other module in the project.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dotenv import load_dotenv
from pydantic import BaseModel, field_validator

# Load .env from project root (two levels up from src/config.py)
_ENV_PATH = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(_ENV_PATH)


class Settings(BaseModel):
    """Application settings loaded from environment variables."""

    # SQLite reference event store
    DATABASE_PATH: str = "data/calendar.db"

    # Single zone used for all calendar-day arithmetic
    TIMEZONE: str = "Europe/Madrid"

    # Event search pagination
    DEFAULT_PAGE_LIMIT: int = 50
    MAX_PAGE_LIMIT: int = 500

    @field_validator("TIMEZONE")
    @classmethod
    def check_timezone(cls, v: str) -> str:
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError(f"Unknown TIMEZONE: {v!r}") from exc
        return v

    @field_validator("DEFAULT_PAGE_LIMIT", "MAX_PAGE_LIMIT", mode="before")
    @classmethod
    def parse_limit(cls, v: str | int) -> int:
        limit = int(v)
        if limit < 1:
            raise ValueError("page limits must be at least 1")
        return limit


def _load_settings() -> Settings:
    """Load settings from environment, aborting on invalid values."""
    try:
        return Settings(
            DATABASE_PATH=os.getenv("DATABASE_PATH", "data/calendar.db"),
            TIMEZONE=os.getenv("TIMEZONE", "Europe/Madrid"),
            DEFAULT_PAGE_LIMIT=os.getenv("DEFAULT_PAGE_LIMIT", "50"),
            MAX_PAGE_LIMIT=os.getenv("MAX_PAGE_LIMIT", "500"),
        )
    except ValueError as exc:
        print(f"ERROR: invalid calendar engine configuration: {exc}", file=sys.stderr)
        sys.exit(1)


# Singleton: imported by all other modules as:
#   from src.config import settings
settings = _load_settings()
