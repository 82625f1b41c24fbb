"""
Connect Four: 6 rows x 7 columns, pieces fall to the floor of the column, 4 in a row wins.

Row 0 is the top of the board. Normally the floor is the bottom row; after a gravity flip the floor is the top row.
Every player owns one single-use gravity flip. Flipping consumes the turn, and every column settles against the new floor
(order of the pieces is preserved), so a column with k pieces always fills exactly k cells at the floor end.
"""

import random
from typing import Any, Optional

from src.core.config import Settings
from src.core.models import GameStateModel, Grid, Move, PlayerId, Rejected
from src.core.shared_types import GameKind, MoveAction, RejectionReason
from src.games import turns
from src.games.grid import empty_grid, find_runs, is_full

ROWS = 6
COLS = 7
WIN_LENGTH = 4
EMPTY = 0
PIECES: dict[str, int] = {"player1": 1, "player2": 2}


def landing_row(board: Grid, col: int, flipped: bool = False) -> Optional[int]:
    """Row the next piece dropped in `col` would occupy, None if the column is full."""
    rows = range(ROWS) if flipped else range(ROWS - 1, -1, -1)
    for row in rows:
        if board[row][col] == EMPTY:
            return row
    return None


def is_column_full(board: Grid, col: int) -> bool:
    return all(board[row][col] != EMPTY for row in range(ROWS))


def legal_columns(board: Grid) -> list[int]:
    return [col for col in range(COLS) if not is_column_full(board, col)]


def settle(board: Grid, flipped: bool) -> None:
    """Let every column fall against the floor (top when flipped, bottom otherwise)."""
    for col in range(COLS):
        pieces = [board[row][col] for row in range(ROWS) if board[row][col] != EMPTY]
        padding = [EMPTY] * (ROWS - len(pieces))
        column = pieces + padding if flipped else padding + pieces
        for row in range(ROWS):
            board[row][col] = column[row]


def drop(board: Grid, col: int, piece: int, flipped: bool = False) -> Optional[int]:
    """Place `piece` in `col` (in place). Returns the landing row or None if the column is full."""
    row = landing_row(board, col, flipped)
    if row is not None:
        board[row][col] = piece
    return row


def winners(board: Grid) -> set[int]:
    return set(find_runs(board, WIN_LENGTH, EMPTY))


class ConnectFourRules:
    kind = GameKind.CONNECT_FOUR

    def new_board(
        self, settings: Settings, rng: random.Random
    ) -> tuple[Grid, dict[str, Any]]:
        extras = {
            "gravity_flipped": False,
            "flips_used": {"player1": False, "player2": False},
        }
        return empty_grid(ROWS, COLS, EMPTY), extras

    def resolve(
        self, state: GameStateModel, move: Move, player: PlayerId
    ) -> Optional[Rejected]:
        slot = state.slot(player)
        assert slot is not None

        if move.action == MoveAction.DROP:
            rejected = self._drop(state, move, slot)
        elif move.action == MoveAction.FLIP_GRAVITY:
            rejected = self._flip_gravity(state, slot)
        else:
            rejected = Rejected(
                RejectionReason.INVALID_MOVE, f"{move.action!r} is not a Connect Four move."
            )
        if rejected:
            return rejected

        self._evaluate(state)
        return None

    def _drop(self, state: GameStateModel, move: Move, slot: str) -> Optional[Rejected]:
        if move.col is None:
            return Rejected(RejectionReason.INVALID_MOVE, "Expected a column.")
        if not 0 <= move.col < COLS:
            return Rejected(
                RejectionReason.OUT_OF_BOUNDS, f"Column {move.col} does not exist."
            )
        flipped = bool(state.extras.get("gravity_flipped"))
        if drop(state.board, move.col, PIECES[slot], flipped) is None:
            return Rejected(RejectionReason.COLUMN_FULL, f"Column {move.col} is full.")
        return None

    def _flip_gravity(self, state: GameStateModel, slot: str) -> Optional[Rejected]:
        flips_used = state.extras.setdefault(
            "flips_used", {"player1": False, "player2": False}
        )
        if flips_used.get(slot):
            return Rejected(
                RejectionReason.ABILITY_USED, "Gravity flip already used this game."
            )
        flips_used[slot] = True
        flipped = not state.extras.get("gravity_flipped", False)
        state.extras["gravity_flipped"] = flipped
        settle(state.board, flipped)
        return None

    def _evaluate(self, state: GameStateModel) -> None:
        """Scan the entire board. A flip can complete lines for both players at once: that is a draw."""
        found = winners(state.board)
        if len(found) == 1:
            piece = found.pop()
            turns.finish(state, state.player1 if piece == PIECES["player1"] else state.player2)
        elif len(found) > 1 or is_full(state.board, EMPTY):
            turns.finish(state, None)
        else:
            turns.pass_turn(state)
