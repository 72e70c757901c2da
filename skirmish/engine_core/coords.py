"""
Grid coordinates and figure sizes.

Cells are written as column letters followed by a 1-based row ("a1", "ab12").
Columns are base-26 with "a" = 0. Everything is normalized to lowercase.
Sizes are "CxR" strings: "1x1", "1x2", "2x2", "2x3", "3x2".
"""

from __future__ import annotations
import re
from typing import Iterable

_COORD_RE = re.compile(r"^([a-z]+)(\d+)$")


def normalize_coord(coord: str | None) -> str:
    return str(coord or "").strip().lower()


def parse_coord(coord: str | None) -> tuple[int, int]:
    """
    Parse a coordinate into (col, row), both 0-based.

    Returns (-1, -1) for anything that is not a valid coordinate.
    """
    match = _COORD_RE.match(normalize_coord(coord))
    if not match:
        return -1, -1
    letters, digits = match.groups()
    col = 0
    for ch in letters:
        col = col * 26 + (ord(ch) - 96)
    return col - 1, int(digits) - 1


def col_row_to_coord(col: int, row: int) -> str:
    """Inverse of parse_coord. Returns "" for negative positions."""
    if col < 0 or row < 0:
        return ""
    letters = ""
    c = col
    while c >= 0:
        letters = chr(97 + (c % 26)) + letters
        c = c // 26 - 1
    return f"{letters}{row + 1}"


def is_valid_coord(coord: str | None) -> bool:
    col, row = parse_coord(coord)
    return col >= 0 and row >= 0


def edge_key(a: str, b: str) -> str:
    """Order-independent key for the edge between two cells."""
    return "|".join(sorted((normalize_coord(a), normalize_coord(b))))


def to_coord_set(coords: Iterable[str] | None) -> set[str]:
    return {normalize_coord(c) for c in (coords or [])}


def parse_size(size: str | None) -> tuple[int, int]:
    """Parse "CxR" into (cols, rows). Malformed parts default to 1."""
    parts = str(size or "1x1").lower().split("x")
    values = []
    for part in parts[:2]:
        try:
            values.append(max(1, int(part)))
        except ValueError:
            values.append(1)
    while len(values) < 2:
        values.append(1)
    return values[0], values[1]


def size_to_string(cols: int, rows: int) -> str:
    return f"{max(1, cols)}x{max(1, rows)}"


def rotate_size(size: str) -> str:
    cols, rows = parse_size(size)
    return size_to_string(rows, cols)


def shift_coord(coord: str, dx: int, dy: int) -> str:
    col, row = parse_coord(coord)
    if col < 0:
        return ""
    return col_row_to_coord(col + dx, row + dy)


def footprint_cells(top_left: str, size: str | None) -> list[str]:
    """All cells covered by a figure whose top-left cell is `top_left`."""
    col, row = parse_coord(top_left)
    if col < 0 or row < 0:
        return [normalize_coord(top_left)]
    cols, rows = parse_size(size)
    return [
        col_row_to_coord(col + c, row + r)
        for r in range(rows)
        for c in range(cols)
    ]


def coord_sort_key(coord: str) -> tuple[int, int]:
    """Row-major ordering used wherever cells need a deterministic order."""
    col, row = parse_coord(coord)
    return row, col
