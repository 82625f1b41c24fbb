"""
Battleship: each player owns a 10x10 ocean and a fleet of 5 ships.

The ocean grid carries the player's own ships and, overlaid on it, the shots received (hit / miss markers are the
one overwrite rule: a ship or empty cell turns into a hit or a miss, and never back).
player1's ocean is the GameState board; everything else lives in the extension fields:

    extras = {
        "player2_board": Grid,
        "ship_cells": {"player1": {"r,c": ship_index}, "player2": {...}},
        "health": {"player1": [5, 4, 3, 3, 2], "player2": [...]},  # remaining hit points per ship
        "ready": {"player1": bool, "player2": bool},
    }

Placement rule: in bounds, straight, and no ship may overlap OR touch (also diagonally) another ship.
"""

import random
from copy import deepcopy
from dataclasses import dataclass
from typing import Any, Optional

from src.core.config import Settings
from src.core.models import (
    GameStateModel,
    Grid,
    Move,
    PlayerId,
    Rejected,
    ShipPlacement,
)
from src.core.shared_types import GameKind, GameStatus, MoveAction, RejectionReason
from src.games import turns
from src.games.grid import Coordinate, empty_grid, in_bounds

BOARD_SIZE = 10
EMPTY = 0
SHIP = 1
MISS = 2
HIT = 3

SLOTS = ("player1", "player2")


@dataclass(frozen=True)
class ShipType:
    name: str
    size: int


FLEET: tuple[ShipType, ...] = (
    ShipType("Carrier", 5),
    ShipType("Battleship", 4),
    ShipType("Cruiser", 3),
    ShipType("Submarine", 3),
    ShipType("Destroyer", 2),
)


def cell_key(row: int, col: int) -> str:
    """JSON object keys must be strings."""
    return f"{row},{col}"


def ship_cells(placement: ShipPlacement, size: int) -> list[Coordinate]:
    if placement.horizontal:
        return [(placement.row, placement.col + i) for i in range(size)]
    return [(placement.row + i, placement.col) for i in range(size)]


def is_valid_placement(ocean: Grid, cells: list[Coordinate]) -> bool:
    """In bounds, and nothing but water on the cells and all around them."""
    if not all(in_bounds(ocean, r, c) for r, c in cells):
        return False
    for row, col in cells:
        for r in range(row - 1, row + 2):
            for c in range(col - 1, col + 2):
                if in_bounds(ocean, r, c) and ocean[r][c] != EMPTY:
                    return False
    return True


@dataclass
class Fleet:
    """A fully placed fleet, ready to be written into a GameState."""

    ocean: Grid
    ship_cells: dict[str, int]
    health: list[int]


def place_fleet(placements: list[ShipPlacement]) -> Optional[Fleet]:
    """Place every ship of the fleet exactly once. None if any placement is invalid (no partial result)."""
    if sorted(p.ship_index for p in placements) != list(range(len(FLEET))):
        return None

    ocean = empty_grid(BOARD_SIZE, BOARD_SIZE, EMPTY)
    cells_by_key: dict[str, int] = {}
    for placement in sorted(placements, key=lambda p: p.ship_index):
        cells = ship_cells(placement, FLEET[placement.ship_index].size)
        if not is_valid_placement(ocean, cells):
            return None
        for row, col in cells:
            ocean[row][col] = SHIP
            cells_by_key[cell_key(row, col)] = placement.ship_index

    return Fleet(ocean, cells_by_key, [ship.size for ship in FLEET])


def random_fleet(rng: random.Random) -> list[ShipPlacement]:
    """Random valid placements, biggest ship first. Used for the AI and for the 'randomize' button."""
    while True:
        ocean = empty_grid(BOARD_SIZE, BOARD_SIZE, EMPTY)
        placements: list[ShipPlacement] = []
        for index, ship in enumerate(FLEET):
            for _ in range(200):
                candidate = ShipPlacement(
                    ship_index=index,
                    row=rng.randrange(BOARD_SIZE),
                    col=rng.randrange(BOARD_SIZE),
                    horizontal=rng.random() < 0.5,
                )
                cells = ship_cells(candidate, ship.size)
                if is_valid_placement(ocean, cells):
                    for row, col in cells:
                        ocean[row][col] = SHIP
                    placements.append(candidate)
                    break
            else:
                break  # painted ourselves into a corner: start over
        if len(placements) == len(FLEET):
            return placements


def ocean(state: GameStateModel, slot: str) -> Grid:
    return state.board if slot == "player1" else state.extras["player2_board"]


def remaining_health(state: GameStateModel, slot: str) -> int:
    return sum(state.extras["health"][slot])


def is_ready(state: GameStateModel, slot: str) -> bool:
    return bool(state.extras["ready"].get(slot))


def submit_fleet(
    state: GameStateModel, player: PlayerId, placements: list[ShipPlacement]
) -> GameStateModel | Rejected:
    """
    Setup phase: lock in one player's fleet and mark them ready.
    ----

    Works on a copy of the state. When both players are ready the game starts (player1 fires first).
    """
    slot = state.slot(player)
    if slot is None:
        return Rejected(RejectionReason.NOT_A_PLAYER, "Only players can place ships.")
    if state.status == GameStatus.FINISHED:
        return Rejected(RejectionReason.GAME_OVER, "The game is over.")
    if state.status == GameStatus.PLAYING or is_ready(state, slot):
        return Rejected(RejectionReason.INVALID_PLACEMENT, "Fleet is already locked in.")

    fleet = place_fleet(placements)
    if fleet is None:
        return Rejected(
            RejectionReason.INVALID_PLACEMENT,
            "Ships must be in bounds, straight, and may not overlap or touch.",
        )

    new_state = deepcopy(state)
    if slot == "player1":
        new_state.board = fleet.ocean
    else:
        new_state.extras["player2_board"] = fleet.ocean
    new_state.extras["ship_cells"][slot] = fleet.ship_cells
    new_state.extras["health"][slot] = fleet.health
    new_state.extras["ready"][slot] = True
    turns.start_if_ready(new_state)
    return new_state


def mask_for_viewer(state: GameStateModel, viewer: Optional[PlayerId]) -> GameStateModel:
    """Hide the opponent's ships that were not hit yet (copy). Spectators see neither fleet."""
    masked = deepcopy(state)
    viewer_slot = state.slot(viewer) if viewer is not None else None
    for slot in SLOTS:
        if slot == viewer_slot:
            continue
        grid = ocean(masked, slot)
        for row in grid:
            for col, value in enumerate(row):
                if value == SHIP:
                    row[col] = EMPTY
        masked.extras["ship_cells"][slot] = {}
    return masked


class BattleshipRules:
    kind = GameKind.BATTLESHIP

    def new_board(
        self, settings: Settings, rng: random.Random
    ) -> tuple[Grid, dict[str, Any]]:
        extras = {
            "player2_board": empty_grid(BOARD_SIZE, BOARD_SIZE, EMPTY),
            "ship_cells": {slot: {} for slot in SLOTS},
            "health": {slot: [] for slot in SLOTS},
            "ready": {slot: False for slot in SLOTS},
        }
        return empty_grid(BOARD_SIZE, BOARD_SIZE, EMPTY), extras

    def resolve(
        self, state: GameStateModel, move: Move, player: PlayerId
    ) -> Optional[Rejected]:
        """Fire at the opponent's ocean. Sinking the last ship (total health 0) wins."""
        if move.action != MoveAction.FIRE or move.row is None or move.col is None:
            return Rejected(RejectionReason.INVALID_MOVE, "Expected a cell to fire at.")

        shooter_slot = state.slot(player)
        assert shooter_slot is not None
        target_slot = "player2" if shooter_slot == "player1" else "player1"
        target = ocean(state, target_slot)

        if not in_bounds(target, move.row, move.col):
            return Rejected(
                RejectionReason.OUT_OF_BOUNDS, f"({move.row}, {move.col}) is off the board."
            )
        if target[move.row][move.col] in (HIT, MISS):
            return Rejected(
                RejectionReason.CELL_OCCUPIED,
                f"Already fired at ({move.row}, {move.col}).",
            )

        if target[move.row][move.col] == SHIP:
            target[move.row][move.col] = HIT
            ship_index = state.extras["ship_cells"][target_slot][cell_key(move.row, move.col)]
            state.extras["health"][target_slot][ship_index] -= 1
        else:
            target[move.row][move.col] = MISS

        if remaining_health(state, target_slot) == 0:
            turns.finish(state, player)
        else:
            turns.pass_turn(state)
        return None
