"""
Boundary layer data model(s).

These objects can be used to communicate with the Services.
Hence, the API layer (higher), the sync client and the domain/db layers (lower) all use the models defined here to send to/receive from the Services.
(Decouples the data model specific to the DB layer, API layer, or domain layer from the information needed to send across boundaries)
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional, TypeAlias

from src.core.shared_types import (
    GameKind,
    GameStatus,
    LobbyStatus,
    MoveAction,
    RejectionReason,
)

# Type aliases to make the models easier to read
PlayerId: TypeAlias = str
Cell: TypeAlias = Any  # domain depends on the game kind (str for tic-tac-toe, int elsewhere)
Grid: TypeAlias = list[list[Cell]]


@dataclass
class LobbyModel:
    """A matchmaking room. Immutable once a game starts, except for its status."""

    id: str
    creator_id: PlayerId
    game_kind: GameKind
    status: LobbyStatus = LobbyStatus.WAITING
    created_at: Optional[datetime] = None


@dataclass
class GameStateModel:
    """Authoritative record of one game instance.

    `version` goes up by one on every persisted mutation: the store uses it for compare-and-swap writes
    and clients use it to drop snapshots older than the one they already hold.
    """

    id: str
    lobby_id: str
    game_kind: GameKind
    board: Grid
    player1: PlayerId
    player2: Optional[PlayerId]
    current_player: PlayerId
    status: GameStatus
    winner: Optional[PlayerId] = None
    extras: dict[str, Any] = field(default_factory=dict)
    version: int = 0
    created_at: Optional[datetime] = None

    @property
    def players(self) -> list[PlayerId]:
        return [p for p in (self.player1, self.player2) if p is not None]

    def slot(self, player: PlayerId) -> Optional[str]:
        """'player1' / 'player2' for a participant, None for anybody else."""
        if player == self.player1:
            return "player1"
        if self.player2 is not None and player == self.player2:
            return "player2"
        return None


@dataclass
class PlayAgainRequestModel:
    """Rematch negotiation for a finished game, keyed by the original game id."""

    original_game_id: str
    lobby_id: str
    requested_by: list[PlayerId] = field(default_factory=list)
    new_game_id: Optional[str] = None
    version: int = 0


@dataclass
class InviteCodeModel:
    code: str
    lobby_id: str
    expires_at: datetime
    is_active: bool = True
    used_by: list[PlayerId] = field(default_factory=list)
    created_at: Optional[datetime] = None


@dataclass
class ProfileModel:
    id: PlayerId
    username: str


@dataclass
class LeaderboardEntry:
    id: PlayerId
    username: str
    wins: int
    games_played: int
    win_percentage: float
    rank: int = 0


@dataclass(frozen=True)
class Move:
    """A proposed move. Which fields matter depends on the action."""

    action: MoveAction
    row: Optional[int] = None
    col: Optional[int] = None
    word: Optional[str] = None


@dataclass(frozen=True)
class ShipPlacement:
    """Battleship setup: ship `ship_index` (position in the fleet) with its bow at (row, col)."""

    ship_index: int
    row: int
    col: int
    horizontal: bool = True


@dataclass(frozen=True)
class Rejected:
    """Tagged failure for an expected business-rule violation. Callers leave their state untouched."""

    reason: RejectionReason
    message: str = ""

    def __str__(self) -> str:
        return f"{self.reason}: {self.message}" if self.message else str(self.reason)
