"""Requests and Response models"""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, field_validator, model_validator
from pydantic.alias_generators import to_camel

from src.core.exceptions import InvalidRequestError
from src.core.models import Move, PlayerId, ShipPlacement
from src.core.shared_types import (
    GameKind,
    GameStatus,
    LobbyStatus,
    MoveAction,
    RejectionReason,
)
from src.games.battleship import FLEET


class CamelModel(BaseModel):
    """JSON keys in camelCase (the invite endpoints), snake_case still accepted on input."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# --- REQUEST MODELS ---
class CreateLobbyRequest(BaseModel):
    game_kind: GameKind


class MoveRequest(BaseModel):
    action: MoveAction
    row: Optional[int] = None
    col: Optional[int] = None
    word: Optional[str] = None

    @field_validator("word")
    @classmethod
    def validate_word(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return value
        if not value.strip().isalpha():
            raise InvalidRequestError(f"Cannot interpret {value!r} as a word.")
        return value.strip().lower()

    @model_validator(mode="after")
    def validate_target(self) -> "MoveRequest":
        if self.action == MoveAction.GUESS:
            if self.word is None:
                raise InvalidRequestError("A guess needs a word.")
        elif self.action == MoveAction.DROP:
            if self.col is None:
                raise InvalidRequestError("A drop needs a column.")
        elif self.action != MoveAction.FLIP_GRAVITY and (self.row is None or self.col is None):
            raise InvalidRequestError(f"{self.action} needs a row and a column.")
        return self

    def to_move(self) -> Move:
        return Move(action=self.action, row=self.row, col=self.col, word=self.word)


class ShipPlacementRequest(BaseModel):
    ship_index: int
    row: int
    col: int
    horizontal: bool = True

    @field_validator("ship_index")
    @classmethod
    def validate_ship_index(cls, value: int) -> int:
        if not 0 <= value < len(FLEET):
            raise InvalidRequestError(f"There is no ship number {value} in the fleet.")
        return value


class FleetRequest(BaseModel):
    """Either explicit placements, or `randomize` for a random valid fleet."""

    ships: list[ShipPlacementRequest] = []
    randomize: bool = False

    @model_validator(mode="after")
    def validate_fleet(self) -> "FleetRequest":
        if not self.randomize and len(self.ships) != len(FLEET):
            raise InvalidRequestError(
                f"Place exactly {len(FLEET)} ships (or ask for a random fleet)."
            )
        return self

    def to_placements(self) -> list[ShipPlacement]:
        return [
            ShipPlacement(s.ship_index, s.row, s.col, s.horizontal) for s in self.ships
        ]


class RematchRequest(BaseModel):
    lobby_id: str


class InviteRequest(CamelModel):
    lobby_id: str


class JoinCodeRequest(CamelModel):
    code: str

    @field_validator("code")
    @classmethod
    def validate_code(cls, value: str) -> str:
        code = value.strip().upper()
        if not code or any(c not in "0123456789ABCDEF" for c in code):
            raise InvalidRequestError(f"{value!r} is not an invitation code.")
        return code


class WordleValidateRequest(BaseModel):
    word: str


# --- RESPONSE MODELS ---
class LobbyResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    creator_id: PlayerId
    game_kind: GameKind
    status: LobbyStatus
    created_at: Optional[datetime] = None


class GameStateResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    lobby_id: str
    game_kind: GameKind
    board: list[list[Any]]
    player1: PlayerId
    player2: Optional[PlayerId]
    current_player: PlayerId
    status: GameStatus
    winner: Optional[PlayerId] = None
    extras: dict[str, Any] = {}
    version: int
    created_at: Optional[datetime] = None


class CreateLobbyResponse(BaseModel):
    lobby: LobbyResponse
    game: GameStateResponse


class PlayAgainResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    original_game_id: str
    lobby_id: str
    requested_by: list[PlayerId]
    new_game_id: Optional[str] = None
    version: int


class LeaderboardEntryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: PlayerId
    username: str
    wins: int
    games_played: int
    win_percentage: float
    rank: int


class RejectionResponse(BaseModel):
    reason: RejectionReason
    message: str


class InviteResponse(CamelModel):
    code: str
    full_url: str
    lobby_url: str


class JoinCodeResponse(CamelModel):
    lobby_id: str
    lobby_name: str
    lobby_url: str


class WordleValidateResponse(BaseModel):
    valid: bool


class ChangeEventResponse(BaseModel):
    """One message on the game websocket."""

    event: str  # a ChangeEvent, or SNAPSHOT for the state sent on connect
    new: GameStateResponse
