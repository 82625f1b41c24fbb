"""
Configuration management.

All settings are read from environment variables (optionally from a `.env` file) with sensible defaults.
"""

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

from dotenv import load_dotenv

load_dotenv()


def _env_int(name: str, default: int) -> int:
    return int(os.getenv(name, default))


def _env_float(name: str, default: float) -> float:
    return float(os.getenv(name, default))


@dataclass(frozen=True)
class Settings:
    # Persistence
    database_url: str = "sqlite:///./csgames.db"
    database_echo: bool = False

    # Public URLs handed out with invite codes
    base_url: str = "https://csgames.dev"

    # Synchronization
    poll_interval_seconds: float = 3.0
    hold_to_flag_seconds: float = 0.5

    # Invite codes
    invite_code_bytes: int = 3  # 3 random bytes -> 6 hex characters
    invite_ttl_hours: int = 24

    # Leaderboard read-model cache
    leaderboard_cache_ttl_seconds: int = 5 * 60
    leaderboard_refresh_threshold: int = 10

    # Single player games
    minesweeper_rows: int = 9
    minesweeper_cols: int = 9
    minesweeper_mines: int = 10
    word_list_path: Optional[str] = None

    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            database_url=os.getenv("DATABASE_URL", cls.database_url),
            database_echo=os.getenv("DATABASE_ECHO", "false").lower() == "true",
            base_url=os.getenv("BASE_URL", cls.base_url).rstrip("/"),
            poll_interval_seconds=_env_float(
                "POLL_INTERVAL_SECONDS", cls.poll_interval_seconds
            ),
            hold_to_flag_seconds=_env_float(
                "HOLD_TO_FLAG_SECONDS", cls.hold_to_flag_seconds
            ),
            invite_code_bytes=_env_int("INVITE_CODE_BYTES", cls.invite_code_bytes),
            invite_ttl_hours=_env_int("INVITE_TTL_HOURS", cls.invite_ttl_hours),
            leaderboard_cache_ttl_seconds=_env_int(
                "LEADERBOARD_CACHE_TTL_SECONDS", cls.leaderboard_cache_ttl_seconds
            ),
            leaderboard_refresh_threshold=_env_int(
                "LEADERBOARD_REFRESH_THRESHOLD", cls.leaderboard_refresh_threshold
            ),
            minesweeper_rows=_env_int("MINESWEEPER_ROWS", cls.minesweeper_rows),
            minesweeper_cols=_env_int("MINESWEEPER_COLS", cls.minesweeper_cols),
            minesweeper_mines=_env_int("MINESWEEPER_MINES", cls.minesweeper_mines),
            word_list_path=os.getenv("WORD_LIST_PATH"),
            log_level=os.getenv("LOG_LEVEL", cls.log_level).upper(),
        )


@lru_cache
def get_settings() -> Settings:
    return Settings.from_env()
