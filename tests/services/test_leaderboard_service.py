"""Unit tests for src/services/leaderboard_service.py"""

from datetime import datetime, timedelta, timezone

import pytest

from src.core.exceptions import InvalidRequestError, NotFoundError
from src.core.models import GameStateModel, ProfileModel
from src.core.shared_types import GameKind, GameStatus
from src.services.leaderboard_service import LeaderboardCache, LeaderboardService
from tests.conftest import MockRepository


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


def record_game(
    repo: MockRepository,
    game_id: str,
    player1: str,
    player2: str,
    winner: str | None,
    age: timedelta = timedelta(0),
) -> None:
    repo.games[game_id] = GameStateModel(
        id=game_id,
        lobby_id="lobby-1",
        game_kind=GameKind.TIC_TAC_TOE,
        board=[],
        player1=player1,
        player2=player2,
        current_player=player1,
        status=GameStatus.FINISHED,
        winner=winner,
        created_at=datetime.now(timezone.utc) - age,
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def service(mock_repository: MockRepository, clock: FakeClock) -> LeaderboardService:
    for user_id, name in [("a", "Alice"), ("b", "Bob"), ("c", "Carol")]:
        mock_repository.save_profile(ProfileModel(user_id, name))
    record_game(mock_repository, "g1", "a", "b", "a")
    record_game(mock_repository, "g2", "a", "c", "a")
    record_game(mock_repository, "g3", "b", "c", "b")
    record_game(mock_repository, "g4", "b", "c", None, age=timedelta(days=10))
    return LeaderboardService(mock_repository, LeaderboardCache(60, 3, clock))


# --- CACHE ---
def test_cache_expires_after_ttl(clock: FakeClock) -> None:
    cache = LeaderboardCache(ttl_seconds=60, refresh_threshold=100, clock=clock)
    cache.put("k", [1])
    clock.now += 59
    assert cache.get("k") == [1]
    clock.now += 1
    assert cache.get("k") is None


def test_cache_refreshes_after_threshold_hits(clock: FakeClock) -> None:
    cache = LeaderboardCache(ttl_seconds=60, refresh_threshold=2, clock=clock)
    cache.put("k", "v")
    assert cache.get("k") == "v"
    assert cache.get("k") == "v"
    assert cache.get("k") is None


def test_cache_clear(clock: FakeClock) -> None:
    cache = LeaderboardCache(60, 2, clock)
    cache.put("k", "v")
    cache.clear()
    assert cache.get("k") is None


# --- RANKING ---
def test_leaderboard_by_wins(service: LeaderboardService) -> None:
    entries = service.get_leaderboard("all", "wins")
    assert [(e.id, e.wins, e.games_played, e.rank) for e in entries] == [
        ("a", 2, 2, 1),
        ("b", 1, 3, 2),
        ("c", 0, 3, 3),
    ]
    assert entries[0].win_percentage == 100.0
    assert entries[1].win_percentage == 33.3


def test_leaderboard_timeframe(service: LeaderboardService) -> None:
    entries = service.get_leaderboard("week", "games_played")
    assert [(e.id, e.games_played, e.rank) for e in entries] == [
        ("a", 2, 1),
        ("b", 2, 1),
        ("c", 2, 1),
    ]


def test_leaderboard_is_served_from_the_cache(
    service: LeaderboardService, mock_repository: MockRepository, clock: FakeClock
) -> None:
    first = service.get_leaderboard()
    record_game(mock_repository, "g5", "c", "b", "c")
    assert service.get_leaderboard() is first

    clock.now += 61
    fresh = service.get_leaderboard()
    assert fresh is not first
    assert {e.id: e.wins for e in fresh}["c"] == 1


def test_invalid_parameters(service: LeaderboardService) -> None:
    with pytest.raises(InvalidRequestError):
        service.get_leaderboard("year", "wins")
    with pytest.raises(InvalidRequestError):
        service.get_leaderboard("all", "losses")


def test_player_rank(service: LeaderboardService) -> None:
    assert service.player_rank("b").rank == 2
    with pytest.raises(NotFoundError):
        service.player_rank("nobody")
