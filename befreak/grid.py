"""
Program grid for the Befreak machine.

The grid is a read-only numpy array of single characters addressed by
(column, row). Movement wraps around every edge, so the grid is a torus.
"""

from __future__ import annotations

import enum
from typing import Iterable

import numpy as np

from .errors import GridError, InvalidPosition

START_MARKER = "@"
DEFAULT_EMPTY_SIZE = (10, 10)   # (width, height)


class Direction(enum.Enum):
    NORTH = "N"
    SOUTH = "S"
    EAST = "E"
    WEST = "W"

    def reversed(self) -> "Direction":
        return _OPPOSITE[self]


_OPPOSITE = {
    Direction.NORTH: Direction.SOUTH,
    Direction.SOUTH: Direction.NORTH,
    Direction.EAST: Direction.WEST,
    Direction.WEST: Direction.EAST,
}

# (dcol, drow)
_DELTA = {
    Direction.NORTH: (0, -1),
    Direction.SOUTH: (0, 1),
    Direction.EAST: (1, 0),
    Direction.WEST: (-1, 0),
}


def move(location: tuple[int, int], direction: Direction,
         width: int, height: int) -> tuple[int, int]:
    """Next cell from `location` heading `direction` on a width x height torus."""
    dcol, drow = _DELTA[direction]
    col, row = location
    return ((col + dcol) % width, (row + drow) % height)


class Grid:
    """Rectangular character grid. Never mutated after construction."""

    def __init__(self, cells: np.ndarray):
        if cells.ndim != 2 or cells.size == 0:
            raise GridError("grid must be a non-empty 2D array")
        self.cells = np.array(cells, dtype="<U1")
        self.cells.flags.writeable = False

    # -------------------------------------------------------------------
    # Construction
    # -------------------------------------------------------------------

    @classmethod
    def from_lines(cls, lines: Iterable[str]) -> "Grid":
        """Build a grid from program lines, padding each to the longest."""
        lines = [line.rstrip("\r\n") for line in lines]
        if not lines:
            raise GridError("empty program")
        width = max(len(line) for line in lines)
        if width == 0:
            raise GridError("empty program")
        cells = np.full((len(lines), width), " ", dtype="<U1")
        for row, line in enumerate(lines):
            if line:
                cells[row, :len(line)] = list(line)
        return cls(cells)

    @classmethod
    def from_text(cls, text: str) -> "Grid":
        return cls.from_lines(text.splitlines())

    @classmethod
    def empty(cls, width: int = DEFAULT_EMPTY_SIZE[0],
              height: int = DEFAULT_EMPTY_SIZE[1]) -> "Grid":
        """Blank grid with the start marker at (1, 1)."""
        if width < 2 or height < 2:
            raise GridError(f"empty grid must be at least 2x2, got {width}x{height}")
        cells = np.full((height, width), " ", dtype="<U1")
        cells[1, 1] = START_MARKER
        return cls(cells)

    # -------------------------------------------------------------------
    # Geometry
    # -------------------------------------------------------------------

    @property
    def width(self) -> int:
        return self.cells.shape[1]

    @property
    def height(self) -> int:
        return self.cells.shape[0]

    def __getitem__(self, location: tuple[int, int]) -> str:
        col, row = location
        if not (0 <= col < self.width and 0 <= row < self.height):
            raise InvalidPosition()
        return str(self.cells[row, col])

    def move(self, location: tuple[int, int], direction: Direction) -> tuple[int, int]:
        return move(location, direction, self.width, self.height)

    def find_start(self) -> tuple[int, int]:
        """Location of the unique start marker."""
        found = [(int(col), int(row))
                 for row, col in np.argwhere(self.cells == START_MARKER)]
        if not found:
            raise GridError("no start position")
        if len(found) > 1:
            raise GridError(f"multiple start positions: {found}")
        return found[0]

    # -------------------------------------------------------------------
    # Editing and output
    # -------------------------------------------------------------------

    def with_cell(self, location: tuple[int, int], char: str) -> "Grid":
        """Copy of this grid with one cell replaced."""
        if len(char) != 1:
            raise GridError(f"cell must hold one character, got {char!r}")
        col, row = location
        if not (0 <= col < self.width and 0 <= row < self.height):
            raise InvalidPosition()
        cells = self.cells.copy()
        cells[row, col] = char
        return Grid(cells)

    def rows(self) -> list[str]:
        return ["".join(row) for row in self.cells]

    def serialize(self) -> str:
        return "".join(row + "\n" for row in self.rows())

    def __eq__(self, other) -> bool:
        if not isinstance(other, Grid):
            return NotImplemented
        return self.cells.shape == other.cells.shape and bool(
            np.array_equal(self.cells, other.cells))

    def __repr__(self) -> str:
        return f"Grid({self.width}x{self.height})"
