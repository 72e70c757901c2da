"""
Tests for grid coordinates, range and line of sight.
"""

from ..data import MapGeometry
from ..engine_core.coords import (
    parse_coord,
    col_row_to_coord,
    is_valid_coord,
    edge_key,
    parse_size,
    rotate_size,
    footprint_cells,
    coord_sort_key,
)
from ..engine_core.los import (
    INVALID_RANGE,
    get_range,
    footprint_range,
    has_line_of_sight,
    footprint_line_of_sight,
)


class TestCoordinates:
    """Tests for coordinate parsing."""

    def test_parse_single_letter(self):
        """Columns and rows are 0-based."""
        assert parse_coord("a1") == (0, 0)
        assert parse_coord("L10") == (11, 9)

    def test_parse_double_letter(self):
        """Columns past z continue as aa, ab, ..."""
        assert parse_coord("aa1") == (26, 0)
        assert parse_coord("ab12") == (27, 11)

    def test_round_trip_wide_column(self):
        """col_row_to_coord inverts parse_coord."""
        assert col_row_to_coord(27, 11) == "ab12"
        assert col_row_to_coord(0, 0) == "a1"

    def test_invalid_coordinates(self):
        """Malformed input parses to (-1, -1)."""
        assert parse_coord("1a") == (-1, -1)
        assert parse_coord("") == (-1, -1)
        assert parse_coord(None) == (-1, -1)
        assert not is_valid_coord("a0b")
        assert col_row_to_coord(-1, 3) == ""

    def test_edge_key_is_order_independent(self):
        """Both directions of an edge share one key."""
        assert edge_key("B2", "a1") == edge_key("a1", "b2") == "a1|b2"

    def test_row_major_sort(self):
        """Sorting goes by row, then column."""
        assert sorted(["b1", "a2", "a1"], key=coord_sort_key) == ["a1", "b1", "a2"]


class TestSizes:
    """Tests for figure sizes and footprints."""

    def test_parse_size(self):
        assert parse_size("2x3") == (2, 3)
        assert parse_size("bad") == (1, 1)
        assert parse_size(None) == (1, 1)

    def test_rotate_size(self):
        """Rotation swaps columns and rows."""
        assert rotate_size("2x3") == "3x2"
        assert rotate_size("2x2") == "2x2"

    def test_footprint_of_large_figure(self):
        """A 2x2 footprint covers four cells from its top-left."""
        assert footprint_cells("a1", "2x2") == ["a1", "b1", "a2", "b2"]

    def test_footprint_of_single_figure(self):
        assert footprint_cells("c3", "1x1") == ["c3"]


class TestRange:
    """Tests for range counting."""

    def test_manhattan_distance(self):
        """Range counts orthogonal steps."""
        assert get_range("a1", "c3") == 4
        assert get_range("e5", "e6") == 1

    def test_invalid_range(self):
        """Bad coordinates give the invalid range sentinel."""
        assert get_range("a1", "zz") == INVALID_RANGE

    def test_footprint_range_uses_closest_cells(self):
        """Range between footprints is the closest pair."""
        assert footprint_range(footprint_cells("a1", "2x2"), ["d1"]) == 2


class TestLineOfSight:
    """Tests for line of sight on the training grounds."""

    def test_clear_line(self, data):
        """An open row gives sight."""
        geometry = data.get_map("training_grounds")
        assert has_line_of_sight("a1", "l1", geometry)

    def test_blocking_cell_blocks(self, data):
        """A blocking cell on the line blocks sight."""
        geometry = data.get_map("training_grounds")
        assert not has_line_of_sight("d2", "h2", geometry)

    def test_impassable_edge_blocks(self, data):
        """Crossing an impassable edge blocks sight."""
        geometry = data.get_map("training_grounds")
        assert not has_line_of_sight("e1", "e6", geometry)

    def test_movement_blocking_edge_does_not_block(self, data):
        """Walls figures cannot cross can still be seen over."""
        geometry = data.get_map("training_grounds")
        assert has_line_of_sight("h1", "h8", geometry)

    def test_closed_door_does_not_block(self):
        """Doors stop movement but not sight."""
        geometry = MapGeometry.open_grid("grid4", 4, 4, doors=[["b1", "c1"]])
        assert has_line_of_sight("a1", "d1", geometry)

    def test_footprint_sight_needs_one_clear_pair(self, data):
        """A large figure sees a target if any of its cells does."""
        geometry = data.get_map("training_grounds")
        assert footprint_line_of_sight(footprint_cells("d2", "1x2"), ["h3"], geometry) is False
        assert footprint_line_of_sight(footprint_cells("d1", "1x2"), ["h1"], geometry)
