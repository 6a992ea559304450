"""Engine configuration loaded from environment variables (and an optional .env file)."""
from __future__ import annotations

import os
from functools import lru_cache
from typing import Optional

from dotenv import load_dotenv

load_dotenv()


def _optional_int(raw: Optional[str]) -> Optional[int]:
    if raw is None or raw.strip() == "":
        return None
    return int(raw)


class Settings:
    """Application settings loaded from environment variables."""

    def __init__(self) -> None:
        # Storage
        self.DATABASE_URL: str = os.getenv(
            "DATABASE_URL", "sqlite:///./vttengine.sqlite3"
        )
        # memory | sql
        self.ENCOUNTER_STORE: str = os.getenv("ENCOUNTER_STORE", "memory").lower()

        # Logging
        self.LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()

        # Rules
        self.DEFAULT_PRESET: str = os.getenv("DEFAULT_PRESET", "QUICK_SKIRMISH")
        self.DICE_SEED: Optional[int] = _optional_int(os.getenv("DICE_SEED"))
        self.ROLL_HISTORY_SIZE: int = int(os.getenv("ROLL_HISTORY_SIZE", "1000"))


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
