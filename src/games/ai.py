"""
Computer opponent. Plays as player2 (`AI_PLAYER_ID`) in the two player games.

Each function only picks a move; the move goes through `apply_move` like any human move.
"""

import random
from copy import deepcopy
from typing import Optional

from src.core.models import GameStateModel, Grid, Move, Rejected
from src.core.shared_types import AI_PLAYER_ID, GameKind, MoveAction
from src.games import battleship, connect_four, tic_tac_toe, turns
from src.games.grid import Coordinate

TIC_TAC_TOE_CORNERS: tuple[Coordinate, ...] = ((0, 0), (0, 2), (2, 0), (2, 2))
TIC_TAC_TOE_EDGES: tuple[Coordinate, ...] = ((0, 1), (1, 0), (1, 2), (2, 1))
CONNECT_FOUR_PREFERENCE: tuple[int, ...] = (3, 2, 4, 1, 5, 0, 6)  # centre columns first


# --- TIC-TAC-TOE ---
def _winning_cells(board: Grid, token: str) -> list[Coordinate]:
    """Empty cells that would complete a line for `token`."""
    cells = []
    for cell in tic_tac_toe.empty_cells(board):
        board[cell[0]][cell[1]] = token
        if tic_tac_toe.winning_line(board):
            cells.append(cell)
        board[cell[0]][cell[1]] = tic_tac_toe.EMPTY
    return cells


def _fork_cell(board: Grid, token: str) -> Optional[Coordinate]:
    """A cell that creates two winning threats at once."""
    for cell in tic_tac_toe.empty_cells(board):
        board[cell[0]][cell[1]] = token
        threats = len(_winning_cells(board, token))
        board[cell[0]][cell[1]] = tic_tac_toe.EMPTY
        if threats >= 2:
            return cell
    return None


def tic_tac_toe_cell(board: Grid, ai_token: str, human_token: str) -> Optional[Coordinate]:
    """win > block > fork > block fork > centre > corner > edge"""
    board = [row[:] for row in board]
    for token in (ai_token, human_token):
        cells = _winning_cells(board, token)
        if cells:
            return cells[0]
    for token in (ai_token, human_token):
        cell = _fork_cell(board, token)
        if cell:
            return cell

    free = set(tic_tac_toe.empty_cells(board))
    for cell in ((1, 1), *TIC_TAC_TOE_CORNERS, *TIC_TAC_TOE_EDGES):
        if cell in free:
            return cell
    return None


# --- CONNECT FOUR ---
def _column_wins(board: Grid, col: int, piece: int, flipped: bool) -> bool:
    trial = [row[:] for row in board]
    connect_four.drop(trial, col, piece, flipped)
    return piece in connect_four.winners(trial)


def connect_four_column(
    board: Grid, ai_piece: int, human_piece: int, flipped: bool = False
) -> Optional[int]:
    """win > block > centre-most open column"""
    columns = [c for c in CONNECT_FOUR_PREFERENCE if not connect_four.is_column_full(board, c)]
    for piece in (ai_piece, human_piece):
        for col in columns:
            if _column_wins(board, col, piece, flipped):
                return col
    return columns[0] if columns else None


# --- BATTLESHIP ---
def battleship_target(
    target_ocean: Grid,
    ship_cells: dict[str, int],
    health: list[int],
    rng: random.Random,
) -> Optional[Coordinate]:
    """
    Hunt / target.
    ----

    If a ship was hit but is not sunk yet, shoot at the unfired neighbours of its hits. Otherwise shoot a random unfired cell.
    """
    unfired = [
        (r, c)
        for r, row in enumerate(target_ocean)
        for c, value in enumerate(row)
        if value not in (battleship.HIT, battleship.MISS)
    ]
    if not unfired:
        return None
    unfired_set = set(unfired)

    for key, ship_index in ship_cells.items():
        row, col = (int(part) for part in key.split(","))
        if target_ocean[row][col] != battleship.HIT or health[ship_index] <= 0:
            continue
        for d_row, d_col in ((-1, 0), (1, 0), (0, -1), (0, 1)):
            candidate = (row + d_row, col + d_col)
            if candidate in unfired_set:
                return candidate

    return rng.choice(unfired)


def choose_move(state: GameStateModel, rng: random.Random) -> Optional[Move]:
    """Pick the AI's reply for the current position (None if it has nothing to play)."""
    if state.game_kind == GameKind.TIC_TAC_TOE:
        cell = tic_tac_toe_cell(
            state.board, tic_tac_toe.TOKENS["player2"], tic_tac_toe.TOKENS["player1"]
        )
        return Move(MoveAction.MARK, row=cell[0], col=cell[1]) if cell else None

    if state.game_kind == GameKind.CONNECT_FOUR:
        col = connect_four_column(
            state.board,
            connect_four.PIECES["player2"],
            connect_four.PIECES["player1"],
            bool(state.extras.get("gravity_flipped")),
        )
        return Move(MoveAction.DROP, col=col) if col is not None else None

    if state.game_kind == GameKind.BATTLESHIP:
        cell = battleship_target(
            battleship.ocean(state, "player1"),
            state.extras["ship_cells"]["player1"],
            state.extras["health"]["player1"],
            rng,
        )
        return Move(MoveAction.FIRE, row=cell[0], col=cell[1]) if cell else None

    return None


def seat_ai_opponent(state: GameStateModel, rng: random.Random) -> GameStateModel:
    """Copy of `state` with the AI as player2 (battleship: with a random fleet, ready to go)."""
    seated = deepcopy(state)
    seated.player2 = AI_PLAYER_ID
    if seated.game_kind == GameKind.BATTLESHIP:
        outcome = battleship.submit_fleet(seated, AI_PLAYER_ID, battleship.random_fleet(rng))
        assert not isinstance(outcome, Rejected)  # random fleets are always valid
        seated = outcome
    turns.start_if_ready(seated)
    return seated
