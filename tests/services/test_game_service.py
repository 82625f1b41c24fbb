"""Unit tests for src/services/game_service.py"""

import random

import pytest

from src.core.config import Settings
from src.core.exceptions import InvalidRequestError, NotFoundError, StoreUnavailableError
from src.core.models import GameStateModel, Move, Rejected, ShipPlacement
from src.core.shared_types import (
    AI_PLAYER_ID,
    ChangeEvent,
    GameKind,
    GameStatus,
    LobbyStatus,
    MoveAction,
    RejectionReason,
    Table,
)
from src.games import battleship
from src.services.game_service import GameService
from src.services.lobby_service import LobbyService
from src.sync.feed import ChangeFeed, ChangeMessage
from tests.conftest import MockRepository


def mark(row: int, col: int) -> Move:
    return Move(MoveAction.MARK, row=row, col=col)


@pytest.fixture
def feed() -> ChangeFeed:
    return ChangeFeed()


@pytest.fixture
def lobbies(mock_repository: MockRepository, settings: Settings, feed: ChangeFeed) -> LobbyService:
    return LobbyService(mock_repository, settings, feed, rng=random.Random(1))


@pytest.fixture
def service(mock_repository: MockRepository, feed: ChangeFeed) -> GameService:
    return GameService(mock_repository, feed, rng=random.Random(1))


def start(lobbies: LobbyService, kind: GameKind = GameKind.TIC_TAC_TOE) -> GameStateModel:
    lobby, _ = lobbies.create_lobby("alice", kind)
    state = lobbies.join_lobby(lobby.id, "bob")
    assert isinstance(state, GameStateModel)
    return state


# --- READS ---
def test_get_game_state(service: GameService, lobbies: LobbyService) -> None:
    game = start(lobbies)
    assert service.get_game_state(game.id) == game
    assert service.get_lobby_game_state(game.lobby_id) == game
    with pytest.raises(NotFoundError):
        service.get_game_state("nope")
    with pytest.raises(NotFoundError):
        service.get_lobby_game_state("nope")


# --- MOVES ---
def test_moves_alternate_and_bump_the_version(service: GameService, lobbies: LobbyService) -> None:
    game = start(lobbies)
    state = service.make_move(game.id, mark(0, 0), "alice")
    assert isinstance(state, GameStateModel)
    assert state.current_player == "bob"
    assert state.version == game.version + 1

    outcome = service.make_move(game.id, mark(1, 1), "alice")
    assert isinstance(outcome, Rejected)
    assert outcome.reason == RejectionReason.NOT_YOUR_TURN
    assert service.get_game_state(game.id) == state


def test_rejected_move_is_not_written(
    service: GameService, lobbies: LobbyService, mock_repository: MockRepository
) -> None:
    game = start(lobbies)
    service.make_move(game.id, mark(0, 0), "alice")
    writes = mock_repository.game_writes
    outcome = service.make_move(game.id, mark(0, 0), "bob")
    assert isinstance(outcome, Rejected)
    assert outcome.reason == RejectionReason.CELL_OCCUPIED
    assert mock_repository.game_writes == writes


def test_concurrent_moves_only_one_wins(
    service: GameService, lobbies: LobbyService, mock_repository: MockRepository
) -> None:
    """Two moves by alice read the same version; the one written first wins, the other is re-validated and rejected."""
    game = start(lobbies)
    mock_repository.before_write = lambda: service.make_move(game.id, mark(2, 2), "alice")

    outcome = service.make_move(game.id, mark(0, 0), "alice")
    assert isinstance(outcome, Rejected)
    assert outcome.reason == RejectionReason.NOT_YOUR_TURN

    state = service.get_game_state(game.id)
    assert state.board[2][2] == "X" and state.board[0][0] == ""
    assert state.version == game.version + 1


def test_store_that_keeps_losing_races_is_unavailable(
    service: GameService, lobbies: LobbyService, mock_repository: MockRepository
) -> None:
    game = start(lobbies)
    mock_repository.update_game_state = lambda state, expected_version: None  # type: ignore[method-assign]
    with pytest.raises(StoreUnavailableError):
        service.make_move(game.id, mark(0, 0), "alice")


def test_finishing_move_finishes_the_lobby(service: GameService, lobbies: LobbyService) -> None:
    game = start(lobbies)
    for player, cell in [("alice", (0, 0)), ("bob", (1, 0)), ("alice", (0, 1)), ("bob", (1, 1))]:
        service.make_move(game.id, mark(*cell), player)
    state = service.make_move(game.id, mark(0, 2), "alice")
    assert isinstance(state, GameStateModel)
    assert state.status == GameStatus.FINISHED
    assert state.winner == "alice"
    assert lobbies.get_lobby(game.lobby_id).status == LobbyStatus.FINISHED


def test_moves_are_published(service: GameService, lobbies: LobbyService, feed: ChangeFeed) -> None:
    game = start(lobbies)
    seen: list[ChangeMessage] = []
    feed.subscribe(Table.GAME_STATES, {"id": game.id}, seen.append)

    service.make_move(game.id, mark(0, 0), "alice")
    assert len(seen) == 1
    assert seen[0].event == ChangeEvent.UPDATE
    assert seen[0].old.version == game.version
    assert seen[0].new.version == game.version + 1


# --- AI ---
def test_ai_replies_straight_away(service: GameService, lobbies: LobbyService) -> None:
    lobby, _ = lobbies.create_lobby("alice", GameKind.TIC_TAC_TOE)
    game = lobbies.setup_ai_opponent(lobby.id, "alice")
    assert isinstance(game, GameStateModel)

    state = service.make_move(game.id, mark(0, 0), "alice")
    assert isinstance(state, GameStateModel)
    assert state.current_player == "alice"
    assert sum(row.count("O") for row in state.board) == 1
    assert state.board[1][1] == "O"  # centre reply to a corner opening
    assert state.version == game.version + 2


def test_ai_connect_four_blocks(service: GameService, lobbies: LobbyService) -> None:
    lobby, _ = lobbies.create_lobby("alice", GameKind.CONNECT_FOUR)
    game = lobbies.setup_ai_opponent(lobby.id, "alice")
    assert isinstance(game, GameStateModel)

    state = game
    for _ in range(3):
        outcome = service.make_move(game.id, Move(MoveAction.DROP, col=0), "alice")
        assert isinstance(outcome, GameStateModel)
        state = outcome
    # three of alice's pieces stacked in column 0: the AI must cap the column
    assert state.board[2][0] == 2
    assert state.status == GameStatus.PLAYING


# --- BATTLESHIP FLEETS ---
def test_submit_fleet(service: GameService, lobbies: LobbyService, spread_fleet: list[ShipPlacement]) -> None:
    game = start(lobbies, GameKind.BATTLESHIP)
    state = service.submit_fleet(game.id, "alice", spread_fleet)
    assert isinstance(state, GameStateModel)
    assert state.status == GameStatus.WAITING

    state = service.submit_fleet(game.id, "bob", service.random_fleet())
    assert isinstance(state, GameStateModel)
    assert state.status == GameStatus.PLAYING
    assert lobbies.get_lobby(game.lobby_id).status == LobbyStatus.PLAYING


def test_submit_fleet_against_the_ai_starts_the_game(
    service: GameService, lobbies: LobbyService, spread_fleet: list[ShipPlacement]
) -> None:
    lobby, _ = lobbies.create_lobby("alice", GameKind.BATTLESHIP)
    game = lobbies.setup_ai_opponent(lobby.id, "alice")
    assert isinstance(game, GameStateModel)
    state = service.submit_fleet(game.id, "alice", spread_fleet)
    assert isinstance(state, GameStateModel)
    assert state.status == GameStatus.PLAYING

    state = service.make_move(game.id, Move(MoveAction.FIRE, row=9, col=9), "alice")
    assert isinstance(state, GameStateModel)
    assert state.current_player == "alice"
    shots = [cell for row in battleship.ocean(state, "player1") for cell in row]
    assert shots.count(battleship.HIT) + shots.count(battleship.MISS) == 1
    assert state.player2 == AI_PLAYER_ID


def test_invalid_fleet_is_rejected(service: GameService, lobbies: LobbyService) -> None:
    game = start(lobbies, GameKind.BATTLESHIP)
    outcome = service.submit_fleet(game.id, "alice", [])
    assert isinstance(outcome, Rejected)
    assert outcome.reason == RejectionReason.INVALID_PLACEMENT


def test_fleet_for_another_game_kind(
    service: GameService, lobbies: LobbyService, spread_fleet: list[ShipPlacement]
) -> None:
    game = start(lobbies, GameKind.CONNECT_FOUR)
    with pytest.raises(InvalidRequestError):
        service.submit_fleet(game.id, "alice", spread_fleet)
