#!/usr/bin/env python3
"""
Key-position geometry for keyboard layouts.

Defines the fixed, language-independent set of physical key sites that
characters are assigned to. The standard geometry is the 30-key block of a
row-staggered keyboard (three rows of ten keys, no number row), in
row-major canonical order:

     0  1  2  3  4    5  6  7  8  9
    10 11 12 13 14   15 16 17 18 19
    20 21 22 23 24   25 26 27 28 29

Fingers are numbered per hand as 1 = index, 2 = middle, 3 = ring, 4 = pinky.
The index fingers also cover the two inner columns (4 and 5).
"""

from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple


N_ROWS = 3
N_COLUMNS = 10
HOME_ROW = 1

# Column to (hand, finger)
COLUMN_FINGERS = {
    0: ('L', 4), 1: ('L', 3), 2: ('L', 2), 3: ('L', 1), 4: ('L', 1),
    5: ('R', 1), 6: ('R', 1), 7: ('R', 2), 8: ('R', 3), 9: ('R', 4),
}

# Inner index-finger columns, reached by stretching sideways
INNER_COLUMNS = {4, 5}

# Effort per key (lower = easier), home row index and middle fingers cheapest
DEFAULT_EFFORT = (
    (3.0, 2.4, 2.0, 2.2, 2.8,   2.8, 2.2, 2.0, 2.4, 3.0),
    (1.6, 1.3, 1.1, 1.0, 2.0,   2.0, 1.0, 1.1, 1.3, 1.6),
    (3.2, 2.6, 2.3, 1.6, 3.0,   3.0, 1.6, 2.3, 2.6, 3.2),
)

# QWERTY legends in canonical order, used for display and as default filler
QWERTY_LEGENDS = "qwertyuiopasdfghjkl;zxcvbnm,./"


@dataclass(frozen=True)
class KeyPosition:
    """A physical key site with fixed hand, finger and effort metadata."""
    index: int
    hand: str
    finger: int
    row: int
    column: int
    effort: float

    @property
    def is_inner(self) -> bool:
        """True for the index-finger stretch columns."""
        return self.column in INNER_COLUMNS

    @property
    def is_home(self) -> bool:
        return self.row == HOME_ROW


class Geometry:
    """
    Immutable ordered set of key positions.

    Positions are addressed by their canonical index; the position list
    order is the canonical encoding order of a layout.
    """

    def __init__(self, positions: Sequence[KeyPosition]):
        positions = tuple(positions)
        if not positions:
            raise ValueError("Geometry must contain at least one key position")
        for i, pos in enumerate(positions):
            if pos.index != i:
                raise ValueError(f"Key position {pos.index} listed at canonical index {i}")
            if pos.hand not in ('L', 'R'):
                raise ValueError(f"Key position {i} has unknown hand '{pos.hand}'")
        self._positions: Tuple[KeyPosition, ...] = positions

    def __len__(self) -> int:
        return len(self._positions)

    def __iter__(self):
        return iter(self._positions)

    def __getitem__(self, index: int) -> KeyPosition:
        return self._positions[index]

    def __eq__(self, other) -> bool:
        return isinstance(other, Geometry) and self._positions == other._positions

    def __hash__(self) -> int:
        return hash(self._positions)

    @property
    def positions(self) -> Tuple[KeyPosition, ...]:
        return self._positions

    @property
    def n_rows(self) -> int:
        return max(pos.row for pos in self._positions) + 1

    def rows(self) -> List[List[KeyPosition]]:
        """Positions grouped by row, each row ordered by column."""
        grouped: List[List[KeyPosition]] = [[] for _ in range(self.n_rows)]
        for pos in self._positions:
            grouped[pos.row].append(pos)
        return [sorted(row, key=lambda p: p.column) for row in grouped]


def standard_geometry(effort: Optional[Sequence[Sequence[float]]] = None) -> Geometry:
    """
    Build the standard 3x10 key-position geometry.

    Args:
        effort: Optional 3x10 grid of per-key effort values overriding the defaults

    Returns:
        Geometry with 30 key positions in row-major order

    Raises:
        ValueError: If the effort grid has the wrong shape or negative values
    """
    if effort is None:
        effort = DEFAULT_EFFORT

    if len(effort) != N_ROWS or any(len(row) != N_COLUMNS for row in effort):
        raise ValueError(f"Effort grid must be {N_ROWS} rows of {N_COLUMNS} values")

    positions = []
    for row in range(N_ROWS):
        for column in range(N_COLUMNS):
            value = float(effort[row][column])
            if value < 0:
                raise ValueError(f"Negative effort {value} at row {row}, column {column}")
            hand, finger = COLUMN_FINGERS[column]
            positions.append(KeyPosition(
                index=row * N_COLUMNS + column,
                hand=hand,
                finger=finger,
                row=row,
                column=column,
                effort=value,
            ))

    return Geometry(positions)


def geometry_from_config(config: dict) -> Geometry:
    """Build the geometry described by the geometry section of a configuration."""
    geometry_config = config.get('geometry') or {}
    return standard_geometry(geometry_config.get('effort'))
