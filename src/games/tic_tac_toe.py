"""Tic-Tac-Toe: 3x3 grid, first to fill one of the 8 fixed lines wins."""

import random
from typing import Any, Optional

from src.core.config import Settings
from src.core.models import GameStateModel, Grid, Move, PlayerId, Rejected
from src.core.shared_types import GameKind, MoveAction, RejectionReason
from src.games import turns
from src.games.grid import Coordinate, empty_grid, in_bounds, is_full

SIZE = 3
EMPTY = ""
TOKENS: dict[str, str] = {"player1": "X", "player2": "O"}

# 3 rows, 3 columns, 2 diagonals
LINES: tuple[tuple[Coordinate, ...], ...] = (
    *(tuple((row, col) for col in range(SIZE)) for row in range(SIZE)),
    *(tuple((row, col) for row in range(SIZE)) for col in range(SIZE)),
    tuple((i, i) for i in range(SIZE)),
    tuple((i, SIZE - 1 - i) for i in range(SIZE)),
)


def winning_line(board: Grid) -> Optional[tuple[str, tuple[Coordinate, ...]]]:
    """The token and cells of the first completed line, if any."""
    for line in LINES:
        (r0, c0), *rest = line
        token = board[r0][c0]
        if token != EMPTY and all(board[r][c] == token for r, c in rest):
            return token, line
    return None


def empty_cells(board: Grid) -> list[Coordinate]:
    return [
        (r, c) for r in range(SIZE) for c in range(SIZE) if board[r][c] == EMPTY
    ]


class TicTacToeRules:
    kind = GameKind.TIC_TAC_TOE

    def new_board(
        self, settings: Settings, rng: random.Random
    ) -> tuple[Grid, dict[str, Any]]:
        return empty_grid(SIZE, SIZE, EMPTY), {}

    def resolve(
        self, state: GameStateModel, move: Move, player: PlayerId
    ) -> Optional[Rejected]:
        """Mark a cell, then evaluate the whole board for a line or a draw."""
        if move.action != MoveAction.MARK or move.row is None or move.col is None:
            return Rejected(RejectionReason.INVALID_MOVE, "Expected a cell to mark.")

        board = state.board
        if not in_bounds(board, move.row, move.col):
            return Rejected(
                RejectionReason.OUT_OF_BOUNDS, f"({move.row}, {move.col}) is off the board."
            )
        if board[move.row][move.col] != EMPTY:
            return Rejected(
                RejectionReason.CELL_OCCUPIED, f"({move.row}, {move.col}) is taken."
            )

        slot = state.slot(player)
        assert slot is not None  # only the current player gets this far
        board[move.row][move.col] = TOKENS[slot]

        line = winning_line(board)
        if line is not None:
            token, _ = line
            turns.finish(state, state.player1 if token == TOKENS["player1"] else state.player2)
        elif is_full(board, EMPTY):
            turns.finish(state, None)
        else:
            turns.pass_turn(state)
        return None
