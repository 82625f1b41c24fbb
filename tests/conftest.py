"""
Pytest will auto-discover / import this file called 'conftest.py'.
This file defines fixtures/variables required for testing multiple layers.
"""

import random
from copy import deepcopy
from datetime import datetime, timedelta, timezone
from itertools import count
from typing import Callable, Generator, Optional

import pytest
from sqlalchemy import StaticPool, create_engine
from sqlalchemy.orm import Session, sessionmaker

from src.core.config import Settings
from src.core.models import (
    GameStateModel,
    InviteCodeModel,
    LeaderboardEntry,
    LobbyModel,
    PlayAgainRequestModel,
    ProfileModel,
    ShipPlacement,
)
from src.core.shared_types import GameKind, GameStatus
from src.db.schema import Base
from src.games.rules import new_game_state

# Setup an in-memory SQLite database for testing
DATABASE_URL = "sqlite:///:memory:"
engine = create_engine(
    DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

TestingSessionLocal = sessionmaker(autoflush=False, bind=engine)


@pytest.fixture
def db_session_repo() -> Generator[Session, None, None]:
    """Connection to a test database. Tables are removed at teardown to make unit tests of repository independent of each other."""
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


# --- DOMAIN HELPERS ---
@pytest.fixture
def settings() -> Settings:
    """Defaults only: the test run must not depend on the environment."""
    return Settings()


@pytest.fixture
def new_game(settings: Settings) -> Callable[..., GameStateModel]:
    """Factory for fresh game states: 'alice' is player1, 'bob' player2 (unless told otherwise)."""

    def _new_game(
        kind: GameKind, player2: Optional[str] = "bob", seed: int = 7
    ) -> GameStateModel:
        return new_game_state(
            kind,
            "lobby-1",
            "alice",
            settings,
            player2=player2,
            rng=random.Random(seed),
        )

    return _new_game


# Ships on every other row, starting at column 0: no two ships touch
SPREAD_FLEET = [
    ShipPlacement(ship_index=0, row=0, col=0),
    ShipPlacement(ship_index=1, row=2, col=0),
    ShipPlacement(ship_index=2, row=4, col=0),
    ShipPlacement(ship_index=3, row=6, col=0),
    ShipPlacement(ship_index=4, row=8, col=0),
]


@pytest.fixture
def spread_fleet() -> list[ShipPlacement]:
    return list(SPREAD_FLEET)


# --- MOCK REPOSITORY ---
class MockRepository:
    """
    Mock the GameRepository using dictionaries.

    Compare-and-swap writes behave like the SQL implementation. `before_write` (one-shot) runs right before the next
    compare-and-swap, which lets a test slip a concurrent writer in between a service's read and its write.
    """

    def __init__(self) -> None:
        self.lobbies: dict[str, LobbyModel] = {}
        self.games: dict[str, GameStateModel] = {}
        self.requests: dict[str, PlayAgainRequestModel] = {}
        self.invites: dict[str, InviteCodeModel] = {}
        self.profiles: dict[str, ProfileModel] = {}
        self.before_write: Optional[Callable[[], None]] = None
        self.game_writes = 0
        self._start = datetime.now(timezone.utc)
        self._ticks = count()

    def _now(self) -> datetime:
        return self._start + timedelta(microseconds=next(self._ticks))

    def _race(self) -> None:
        hook, self.before_write = self.before_write, None
        if hook is not None:
            hook()

    # --- lobbies ---
    def create_lobby(
        self, lobby: LobbyModel, game_state: GameStateModel
    ) -> tuple[LobbyModel, GameStateModel]:
        lobby = deepcopy(lobby)
        lobby.created_at = self._now()
        self.lobbies[lobby.id] = lobby
        return deepcopy(lobby), self.insert_game(game_state)

    def get_lobby(self, lobby_id: str) -> LobbyModel | None:
        return deepcopy(self.lobbies.get(lobby_id))

    def update_lobby(self, lobby: LobbyModel) -> LobbyModel | None:
        if lobby.id not in self.lobbies:
            return None
        self.lobbies[lobby.id] = deepcopy(lobby)
        return deepcopy(lobby)

    # --- game states ---
    def insert_game(self, game_state: GameStateModel) -> GameStateModel:
        stored = deepcopy(game_state)
        stored.created_at = self._now()
        self.games[stored.id] = stored
        return deepcopy(stored)

    def get_game_state(self, game_id: str) -> GameStateModel | None:
        return deepcopy(self.games.get(game_id))

    def get_latest_game_state(self, lobby_id: str) -> GameStateModel | None:
        in_lobby = [g for g in self.games.values() if g.lobby_id == lobby_id]
        if not in_lobby:
            return None
        return deepcopy(max(in_lobby, key=lambda g: g.created_at))

    def update_game_state(
        self, game_state: GameStateModel, expected_version: int
    ) -> GameStateModel | None:
        self._race()
        stored = self.games.get(game_state.id)
        if stored is None or stored.version != expected_version:
            return None
        new = deepcopy(game_state)
        new.version = expected_version + 1
        new.created_at = stored.created_at
        self.games[new.id] = new
        self.game_writes += 1
        return deepcopy(new)

    # --- rematch ---
    def get_play_again_request(
        self, original_game_id: str
    ) -> PlayAgainRequestModel | None:
        return deepcopy(self.requests.get(original_game_id))

    def save_play_again_request(
        self,
        request: PlayAgainRequestModel,
        expected_version: Optional[int],
        new_game: Optional[GameStateModel] = None,
    ) -> PlayAgainRequestModel | None:
        self._race()
        current = self.requests.get(request.original_game_id)
        stored = deepcopy(request)
        if expected_version is None:
            if current is not None:
                return None
            stored.version = 0
        else:
            if (
                current is None
                or current.version != expected_version
                or current.new_game_id is not None
            ):
                return None
            stored.version = expected_version + 1
        self.requests[stored.original_game_id] = stored
        if new_game is not None:
            self.insert_game(new_game)
        return deepcopy(stored)

    # --- invite codes ---
    def create_invite_code(self, invite: InviteCodeModel) -> InviteCodeModel:
        stored = deepcopy(invite)
        stored.created_at = self._now()
        self.invites[stored.code] = stored
        return deepcopy(stored)

    def get_invite_code(self, code: str) -> InviteCodeModel | None:
        return deepcopy(self.invites.get(code))

    def update_invite_code(self, invite: InviteCodeModel) -> InviteCodeModel | None:
        if invite.code not in self.invites:
            return None
        self.invites[invite.code] = deepcopy(invite)
        return deepcopy(invite)

    # --- profiles / leaderboard ---
    def get_profiles(self, player_ids: list[str]) -> list[ProfileModel]:
        return [deepcopy(self.profiles[p]) for p in player_ids if p in self.profiles]

    def save_profile(self, profile: ProfileModel) -> ProfileModel:
        self.profiles[profile.id] = deepcopy(profile)
        return profile

    def leaderboard(self, since: Optional[datetime]) -> list[LeaderboardEntry]:
        finished = [
            g
            for g in self.games.values()
            if g.status == GameStatus.FINISHED
            and (since is None or (g.created_at is not None and g.created_at >= since))
        ]
        entries = []
        for profile in self.profiles.values():
            played = sum(1 for g in finished if profile.id in g.players)
            wins = sum(1 for g in finished if g.winner == profile.id)
            entries.append(
                LeaderboardEntry(
                    id=profile.id,
                    username=profile.username,
                    wins=wins,
                    games_played=played,
                    win_percentage=round(100 * wins / played, 1) if played else 0.0,
                )
            )
        return entries

    def clear(self) -> None:
        """Clear the repository (useful in between tests)"""
        self.lobbies.clear()
        self.games.clear()
        self.requests.clear()
        self.invites.clear()
        self.profiles.clear()


@pytest.fixture
def mock_repository() -> Generator[MockRepository, None, None]:
    """Ensures to clear the repository between tests"""
    repo = MockRepository()
    try:
        yield repo
    finally:
        repo.clear()
