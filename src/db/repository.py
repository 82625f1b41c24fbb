"""
Protocol repository: the external relational store as seen by the Services.

Writes that must be atomic are single repository calls (the implementation wraps them in one transaction):
* `create_lobby` stores a lobby together with its first GameState
* `update_game_state` is a compare-and-swap on the GameState version
* `save_play_again_request` is a compare-and-swap on the request version that can insert the rematch GameState in the same transaction
"""

from datetime import datetime
from typing import Optional, Protocol

from src.core.models import (
    GameStateModel,
    InviteCodeModel,
    LeaderboardEntry,
    LobbyModel,
    PlayAgainRequestModel,
    ProfileModel,
)


class GameRepository(Protocol):
    """Persistence layer orchestration"""

    # --- lobbies ---
    def create_lobby(
        self, lobby: LobbyModel, game_state: GameStateModel
    ) -> tuple[LobbyModel, GameStateModel]:
        """Store a new lobby and its first GameState in one go."""
        ...

    def get_lobby(self, lobby_id: str) -> LobbyModel | None:
        ...

    def update_lobby(self, lobby: LobbyModel) -> LobbyModel | None:
        """Only the status of a lobby ever changes."""
        ...

    # --- game states ---
    def get_game_state(self, game_id: str) -> GameStateModel | None:
        ...

    def get_latest_game_state(self, lobby_id: str) -> GameStateModel | None:
        """Most recent GameState of a lobby (rematches add new ones)."""
        ...

    def update_game_state(
        self, game_state: GameStateModel, expected_version: int
    ) -> GameStateModel | None:
        """Write only if the stored version still equals `expected_version` (the stored version is then bumped). None if another writer got there first."""
        ...

    # --- rematch ---
    def get_play_again_request(
        self, original_game_id: str
    ) -> PlayAgainRequestModel | None:
        ...

    def save_play_again_request(
        self,
        request: PlayAgainRequestModel,
        expected_version: Optional[int],
        new_game: Optional[GameStateModel] = None,
    ) -> PlayAgainRequestModel | None:
        """
        Insert (expected_version None) or compare-and-swap update the request, optionally inserting `new_game` atomically.
        None if the request was created / changed concurrently.
        """
        ...

    # --- invite codes ---
    def create_invite_code(self, invite: InviteCodeModel) -> InviteCodeModel:
        ...

    def get_invite_code(self, code: str) -> InviteCodeModel | None:
        ...

    def update_invite_code(self, invite: InviteCodeModel) -> InviteCodeModel | None:
        ...

    # --- profiles / leaderboard read-model ---
    def get_profiles(self, player_ids: list[str]) -> list[ProfileModel]:
        ...

    def leaderboard(self, since: Optional[datetime]) -> list[LeaderboardEntry]:
        """Wins / games played per profile over finished games created after `since` (all time if None). Unsorted, unranked."""
        ...

    def save_profile(self, profile: ProfileModel) -> ProfileModel:
        """Profiles belong to the identity provider; this only mirrors one locally."""
        ...
