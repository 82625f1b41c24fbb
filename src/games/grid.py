"""
Structural queries on a rectangular grid (the part of the Board Model shared by every game).

Grids are plain `list[list[cell]]` so they serialize to JSON unchanged. Nothing in here knows about players or turns.
"""

from collections.abc import Iterator
from typing import Any, Optional, TypeAlias

from src.core.models import Grid

Coordinate: TypeAlias = tuple[int, int]

# right, down, down-right, down-left: together with their opposites these cover every line through a cell
LINE_DIRECTIONS: tuple[Coordinate, ...] = ((0, 1), (1, 0), (1, 1), (1, -1))

NEIGHBOURS8: tuple[Coordinate, ...] = (
    (-1, -1),
    (-1, 0),
    (-1, 1),
    (0, -1),
    (0, 1),
    (1, -1),
    (1, 0),
    (1, 1),
)


def empty_grid(rows: int, cols: int, fill: Any) -> Grid:
    return [[fill for _ in range(cols)] for _ in range(rows)]


def dimensions(grid: Grid) -> tuple[int, int]:
    return len(grid), len(grid[0]) if grid else 0


def in_bounds(grid: Grid, row: int, col: int) -> bool:
    rows, cols = dimensions(grid)
    return 0 <= row < rows and 0 <= col < cols


def is_empty(grid: Grid, row: int, col: int, empty: Any) -> bool:
    return grid[row][col] == empty


def is_full(grid: Grid, empty: Any) -> bool:
    return all(cell != empty for row in grid for cell in row)


def neighbours(grid: Grid, row: int, col: int) -> Iterator[Coordinate]:
    """The (up to 8) in-bounds cells touching (row, col)."""
    for d_row, d_col in NEIGHBOURS8:
        r, c = row + d_row, col + d_col
        if in_bounds(grid, r, c):
            yield r, c


def run_from(
    grid: Grid, row: int, col: int, direction: Coordinate, length: int, empty: Any
) -> Optional[list[Coordinate]]:
    """Cells of a run of `length` identical non-empty values starting at (row, col) in `direction`, if there is one."""
    d_row, d_col = direction
    cells = [(row + k * d_row, col + k * d_col) for k in range(length)]
    if not all(in_bounds(grid, r, c) for r, c in cells):
        return None
    first = grid[row][col]
    if first == empty:
        return None
    if all(grid[r][c] == first for r, c in cells):
        return cells
    return None


def find_runs(grid: Grid, length: int, empty: Any) -> dict[Any, list[Coordinate]]:
    """
    Scan every window of `length` cells in all four orientations over the entire board.
    ----

    Returns the first run found per value (value -> its cells). Checking every origin in every orientation
    means diagonals that touch the board edges are never skipped.
    """
    runs: dict[Any, list[Coordinate]] = {}
    rows, cols = dimensions(grid)
    for row in range(rows):
        for col in range(cols):
            value = grid[row][col]
            if value == empty or value in runs:
                continue
            for direction in LINE_DIRECTIONS:
                cells = run_from(grid, row, col, direction, length, empty)
                if cells:
                    runs[value] = cells
                    break
    return runs


def changed_cells(old: Grid, new: Grid) -> list[Coordinate]:
    """Cells whose value differs between two boards of the same shape (presentation feedback only)."""
    if dimensions(old) != dimensions(new):
        rows, cols = dimensions(new)
        return [(r, c) for r in range(rows) for c in range(cols)]
    return [
        (r, c)
        for r, row in enumerate(new)
        for c, value in enumerate(row)
        if old[r][c] != value
    ]
