"""
Line of sight and range.

Both are pure functions of map geometry. Movement-blocking edges (walls
figures cannot cross but can see over) do not block sight; blocking cells
and impassable edges do.
"""

from __future__ import annotations
from typing import Any, Iterable
import math

from .coords import parse_coord, col_row_to_coord, edge_key, to_coord_set

INVALID_RANGE = 999


def _round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def get_range(a: str, b: str) -> int:
    """Manhattan distance between two cells; INVALID_RANGE for bad coordinates."""
    ca, ra = parse_coord(a)
    cb, rb = parse_coord(b)
    if ca < 0 or ra < 0 or cb < 0 or rb < 0:
        return INVALID_RANGE
    return abs(ca - cb) + abs(ra - rb)


def footprint_range(cells_a: Iterable[str], cells_b: Iterable[str]) -> int:
    """Minimum range between any pair of cells from two footprints."""
    cells_b = list(cells_b)
    best = INVALID_RANGE
    for a in cells_a:
        for b in cells_b:
            best = min(best, get_range(a, b))
    return best


def has_line_of_sight(a: str, b: str, geometry: Any) -> bool:
    """
    Walk a rounded straight line from `a` to `b`.

    Blocked by any blocking cell on the line (endpoints included), by an
    impassable edge crossed orthogonally, or, on a diagonal step, by an
    impassable edge on either corner.
    """
    blocking = to_coord_set(geometry.blocking)
    impassable = {edge_key(e[0], e[1]) for e in geometry.impassable_edges}
    ca, ra = parse_coord(a)
    cb, rb = parse_coord(b)
    if ca < 0 or ra < 0 or cb < 0 or rb < 0:
        return False

    steps = max(abs(cb - ca), abs(rb - ra), 1)
    prev: tuple[int, int] | None = None
    for i in range(steps + 1):
        t = i / steps
        col = _round_half_up(ca + t * (cb - ca))
        row = _round_half_up(ra + t * (rb - ra))
        cell = col_row_to_coord(col, row)
        if cell in blocking:
            return False
        if prev is not None and prev != (col, row):
            pc, pr = prev
            prev_cell = col_row_to_coord(pc, pr)
            dc, dr = abs(col - pc), abs(row - pr)
            if dc + dr == 1 and edge_key(prev_cell, cell) in impassable:
                return False
            if dc == 1 and dr == 1:
                corner_a = col_row_to_coord(pc, row)
                corner_b = col_row_to_coord(col, pr)
                if (
                    edge_key(prev_cell, corner_a) in impassable
                    or edge_key(prev_cell, corner_b) in impassable
                ):
                    return False
        prev = (col, row)
    return True


def footprint_line_of_sight(cells_a: Iterable[str], cells_b: Iterable[str], geometry: Any) -> bool:
    """True if any cell of one footprint sees any cell of the other."""
    cells_b = list(cells_b)
    return any(has_line_of_sight(a, b, geometry) for a in cells_a for b in cells_b)
