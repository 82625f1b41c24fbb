"""Leaderboard read-model: aggregated wins per player, cached per (timeframe, sort)."""

import logging
import time
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Optional

from src.core.config import Settings, get_settings
from src.core.exceptions import InvalidRequestError, NotFoundError
from src.core.models import LeaderboardEntry, PlayerId
from src.db.repository import GameRepository

logger = logging.getLogger(__name__)

TIMEFRAMES: dict[str, Optional[timedelta]] = {
    "all": None,
    "month": timedelta(days=30),
    "week": timedelta(days=7),
    "day": timedelta(days=1),
}
SORT_KEYS = ("wins", "games_played", "win_percentage")


@dataclass
class CacheEntry:
    value: Any
    expires_at: float
    hit_count: int = 0


class LeaderboardCache:
    """
    Explicit cache (key -> value, expiry, hit count).
    ----

    An entry is served until its TTL has passed or it has been served `refresh_threshold` times, whichever comes first.
    """

    def __init__(
        self,
        ttl_seconds: float,
        refresh_threshold: int,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl_seconds = ttl_seconds
        self.refresh_threshold = refresh_threshold
        self.clock = clock
        self._entries: dict[str, CacheEntry] = {}

    def get(self, key: str) -> Any | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.hit_count >= self.refresh_threshold or self.clock() >= entry.expires_at:
            del self._entries[key]
            return None
        entry.hit_count += 1
        return entry.value

    def put(self, key: str, value: Any) -> None:
        self._entries[key] = CacheEntry(value, self.clock() + self.ttl_seconds)

    def clear(self) -> None:
        self._entries.clear()


class LeaderboardService:
    def __init__(
        self,
        repository: GameRepository,
        cache: Optional[LeaderboardCache] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        settings = settings or get_settings()
        self.repo = repository
        self.cache = cache or LeaderboardCache(
            settings.leaderboard_cache_ttl_seconds,
            settings.leaderboard_refresh_threshold,
        )

    def get_leaderboard(
        self, timeframe: str = "all", sort: str = "wins"
    ) -> list[LeaderboardEntry]:
        """Ranked entries, best first. Ties keep the same rank."""
        if timeframe not in TIMEFRAMES:
            raise InvalidRequestError(
                f"Unknown timeframe {timeframe!r}; expected one of {', '.join(TIMEFRAMES)}."
            )
        if sort not in SORT_KEYS:
            raise InvalidRequestError(
                f"Unknown sort {sort!r}; expected one of {', '.join(SORT_KEYS)}."
            )

        key = f"{timeframe}-{sort}"
        cached = self.cache.get(key)
        if cached is not None:
            return cached

        window = TIMEFRAMES[timeframe]
        since = datetime.now(timezone.utc) - window if window else None
        entries = _rank(self.repo.leaderboard(since), sort)
        self.cache.put(key, entries)
        logger.debug("Leaderboard %s recomputed (%d entries)", key, len(entries))
        return entries

    def player_rank(
        self, user_id: PlayerId, timeframe: str = "all", sort: str = "wins"
    ) -> LeaderboardEntry:
        for entry in self.get_leaderboard(timeframe, sort):
            if entry.id == user_id:
                return entry
        raise NotFoundError(f"User {user_id} not found in leaderboard.")


def _rank(entries: list[LeaderboardEntry], sort: str) -> list[LeaderboardEntry]:
    ordered = sorted(
        entries,
        key=lambda e: (-getattr(e, sort), -e.wins, e.username.lower()),
    )
    rank = 0
    previous = None
    for position, entry in enumerate(ordered, start=1):
        score = getattr(entry, sort)
        if score != previous:
            rank = position
            previous = score
        entry.rank = rank
    return ordered
