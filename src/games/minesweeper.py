"""
Minesweeper (single player).

Visible board values: HIDDEN, FLAGGED, 0..8 (revealed, number of neighbouring mines) or MINE (revealed mine).
Mines are only placed when the first cell is revealed, so the first click is always safe.
"""

import random
from collections import deque
from typing import Any, Optional

from src.core.config import Settings
from src.core.models import GameStateModel, Grid, Move, PlayerId, Rejected
from src.core.shared_types import GameKind, MoveAction, RejectionReason
from src.games import turns
from src.games.grid import Coordinate, dimensions, empty_grid, in_bounds, neighbours

HIDDEN = -1
FLAGGED = -2
MINE = 9


def mine_set(state: GameStateModel) -> set[Coordinate]:
    return {(r, c) for r, c in state.extras["mines"]}


def adjacent_mines(board: Grid, mines: set[Coordinate], row: int, col: int) -> int:
    return sum(1 for cell in neighbours(board, row, col) if cell in mines)


def place_mines(
    board: Grid, count: int, safe: Coordinate, rng: random.Random
) -> list[Coordinate]:
    """Pick `count` mine cells, keeping the first click (and its neighbours, if there is room) clear."""
    rows, cols = dimensions(board)
    excluded = {safe, *neighbours(board, *safe)}
    if rows * cols - len(excluded) < count:
        excluded = {safe}
    candidates = [
        (r, c) for r in range(rows) for c in range(cols) if (r, c) not in excluded
    ]
    return sorted(rng.sample(candidates, min(count, len(candidates))))


def flood_reveal(board: Grid, mines: set[Coordinate], start: Coordinate) -> int:
    """Reveal `start`; zero cells keep revealing their hidden neighbours. Returns number of cells revealed."""
    revealed = 0
    queue = deque([start])
    while queue:
        row, col = queue.popleft()
        if board[row][col] != HIDDEN:
            continue
        count = adjacent_mines(board, mines, row, col)
        board[row][col] = count
        revealed += 1
        if count == 0:
            queue.extend(
                cell for cell in neighbours(board, row, col) if board[cell[0]][cell[1]] == HIDDEN
            )
    return revealed


def all_safe_cells_revealed(board: Grid, mines: set[Coordinate]) -> bool:
    rows, cols = dimensions(board)
    return all(
        board[r][c] >= 0
        for r in range(rows)
        for c in range(cols)
        if (r, c) not in mines
    )


class MinesweeperRules:
    kind = GameKind.MINESWEEPER

    def new_board(
        self, settings: Settings, rng: random.Random
    ) -> tuple[Grid, dict[str, Any]]:
        extras = {
            "mines": [],
            "mine_count": settings.minesweeper_mines,
            "seed": rng.randrange(2**32),
        }
        return (
            empty_grid(settings.minesweeper_rows, settings.minesweeper_cols, HIDDEN),
            extras,
        )

    def resolve(
        self, state: GameStateModel, move: Move, player: PlayerId
    ) -> Optional[Rejected]:
        if move.action not in (MoveAction.REVEAL, MoveAction.FLAG):
            return Rejected(
                RejectionReason.INVALID_MOVE, f"{move.action!r} is not a Minesweeper move."
            )
        if move.row is None or move.col is None:
            return Rejected(RejectionReason.INVALID_MOVE, "Expected a cell.")
        if not in_bounds(state.board, move.row, move.col):
            return Rejected(
                RejectionReason.OUT_OF_BOUNDS, f"({move.row}, {move.col}) is off the board."
            )
        if state.board[move.row][move.col] >= 0:
            return Rejected(
                RejectionReason.CELL_OCCUPIED, f"({move.row}, {move.col}) is already revealed."
            )

        if move.action == MoveAction.FLAG:
            cell = state.board[move.row][move.col]
            state.board[move.row][move.col] = HIDDEN if cell == FLAGGED else FLAGGED
            return None

        return self._reveal(state, (move.row, move.col), player)

    def _reveal(
        self, state: GameStateModel, cell: Coordinate, player: PlayerId
    ) -> Optional[Rejected]:
        board = state.board
        row, col = cell
        if board[row][col] == FLAGGED:
            return Rejected(RejectionReason.INVALID_MOVE, "Unflag the cell before revealing it.")

        if not state.extras["mines"]:
            rng = random.Random(state.extras["seed"])
            state.extras["mines"] = [
                list(mine) for mine in place_mines(board, state.extras["mine_count"], cell, rng)
            ]
        mines = mine_set(state)

        if cell in mines:
            for r, c in mines:
                board[r][c] = MINE
            turns.finish(state, None)
            return None

        flood_reveal(board, mines, cell)
        if all_safe_cells_revealed(board, mines):
            turns.finish(state, player)
        return None
