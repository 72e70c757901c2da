"""
Movement Engine - Reachable spaces and MP costs on the map grid.

The search runs over states (top_left, size) so large figures can rotate
in place. Costs:
- 1 MP per step or rotation
- +1 entering difficult terrain
- +1 entering a hostile-occupied cell (unless the profile ignores figure cost)

Figures may pass through occupied cells but only massive figures may end
there; anything they land on is pushed aside afterwards.
"""

from __future__ import annotations
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Iterable
import heapq
import logging

from .coords import (
    normalize_coord,
    parse_coord,
    col_row_to_coord,
    edge_key,
    to_coord_set,
    parse_size,
    rotate_size,
    shift_coord,
    footprint_cells,
    coord_sort_key,
)
from .errors import ValidationError, DataIntegrityError
from .state import Game, dc_name_of

logger = logging.getLogger(__name__)

ORTHOGONAL = ((1, 0), (-1, 0), (0, 1), (0, -1))
DIAGONAL = ((1, 1), (1, -1), (-1, 1), (-1, -1))


@dataclass(frozen=True)
class MovementProfile:
    """
    How a figure moves, derived from its footprint and keywords.

    Massive and Mobile figures ignore difficult terrain, blocking terrain
    and the extra cost of hostile figures. Only Massive may end on an
    occupied space.
    """
    size: str = "1x1"
    massive: bool = False
    mobile: bool = False

    @property
    def cols(self) -> int:
        return parse_size(self.size)[0]

    @property
    def rows(self) -> int:
        return parse_size(self.size)[1]

    @property
    def is_large(self) -> bool:
        return self.cols != 1 or self.rows != 1

    @property
    def allow_diagonal(self) -> bool:
        return not self.is_large

    @property
    def can_rotate(self) -> bool:
        return self.cols != self.rows

    @property
    def ignore_difficult(self) -> bool:
        return self.massive or self.mobile

    @property
    def ignore_blocking(self) -> bool:
        return self.massive or self.mobile

    @property
    def ignore_figure_cost(self) -> bool:
        return self.massive or self.mobile

    @property
    def can_end_on_occupied(self) -> bool:
        return self.massive

    def with_size(self, size: str) -> MovementProfile:
        return MovementProfile(size=size, massive=self.massive, mobile=self.mobile)

    @classmethod
    def from_stats(cls, stats: Any, size: str | None = None) -> MovementProfile:
        return cls(
            size=size or stats.size or "1x1",
            massive=stats.has_keyword("massive"),
            mobile=stats.has_keyword("mobile"),
        )


@dataclass
class BoardState:
    """Static map data merged with the current occupancy for one moving figure."""
    spaces: set[str] = field(default_factory=set)
    adjacency: dict[str, set[str]] = field(default_factory=dict)
    terrain: dict[str, str] = field(default_factory=dict)
    blocking: set[str] = field(default_factory=set)
    occupied: set[str] = field(default_factory=set)
    hostile_occupied: set[str] | None = None
    movement_blocking: set[str] = field(default_factory=set)

    def is_adjacent(self, a: str, b: str) -> bool:
        return b in self.adjacency.get(a, set()) and edge_key(a, b) not in self.movement_blocking

    def is_hostile(self, cell: str) -> bool:
        if self.hostile_occupied is None:
            return cell in self.occupied
        return cell in self.hostile_occupied

    @classmethod
    def from_geometry(
        cls,
        geometry: Any,
        occupied: Iterable[str] = (),
        hostile_occupied: Iterable[str] | None = None,
        opened_doors: Iterable[str] = (),
    ) -> BoardState:
        """
        Build a board from map geometry.

        Movement-blocking edges, impassable edges and closed doors all block
        movement; doors listed in `opened_doors` (edge keys) do not.
        """
        blocked_edges = {edge_key(a, b) for a, b in geometry.movement_blocking_edges}
        blocked_edges |= {edge_key(a, b) for a, b in geometry.impassable_edges}
        opened = {str(k).lower() for k in opened_doors}
        for a, b in geometry.doors:
            key = edge_key(a, b)
            if key not in opened:
                blocked_edges.add(key)
        return cls(
            spaces=to_coord_set(geometry.spaces),
            adjacency={
                normalize_coord(c): to_coord_set(n) for c, n in geometry.adjacency.items()
            },
            terrain={normalize_coord(c): t for c, t in geometry.terrain.items()},
            blocking=to_coord_set(geometry.blocking),
            occupied=to_coord_set(occupied),
            hostile_occupied=to_coord_set(hostile_occupied) if hostile_occupied is not None else None,
            movement_blocking=blocked_edges,
        )


@dataclass
class MovementTarget:
    """Cheapest way to cover a cell: the cost and the state that achieves it."""
    cost: int
    top_left: str
    size: str


@dataclass
class MovementNode:
    top_left: str
    size: str
    cost: int
    footprint: tuple[str, ...]
    can_end: bool


@dataclass
class MovementCache:
    """Result of one search; keyed by start cell, MP limit and profile."""
    start: str
    max_mp: int
    profile: MovementProfile
    nodes: dict[str, MovementNode] = field(default_factory=dict)
    cells: dict[str, MovementTarget] = field(default_factory=dict)
    parent: dict[str, str] = field(default_factory=dict)


def state_key(top_left: str, size: str) -> str:
    return f"{normalize_coord(top_left)}|{size}"


# ----------------------------------------------------------------------
# Game-aware helpers
# ----------------------------------------------------------------------

def figure_size(game: Game, data: Any, figure_key: str) -> str:
    """Stored orientation, else the card's printed size."""
    return game.figure_orientations.get(figure_key) or data.get_dc(dc_name_of(figure_key)).size


def figure_footprint(game: Game, data: Any, figure_key: str) -> list[str]:
    cell = game.position_of(figure_key)
    if not cell:
        return []
    return footprint_cells(cell, figure_size(game, data, figure_key))


def occupied_cells(game: Game, data: Any, exclude: str | None = None) -> set[str]:
    occupied: set[str] = set()
    for _, figure_key, cell in game.iter_figures():
        if figure_key == exclude:
            continue
        occupied.update(footprint_cells(cell, figure_size(game, data, figure_key)))
    return occupied


def hostile_cells(game: Game, data: Any, figure_key: str) -> set[str]:
    owner = game.owner_of(figure_key)
    hostile: set[str] = set()
    for player_id, other_key, cell in game.iter_figures():
        if player_id == owner:
            continue
        hostile.update(footprint_cells(cell, figure_size(game, data, other_key)))
    return hostile


def board_for_figure(game: Game, data: Any, figure_key: str) -> BoardState:
    """Board state as seen by `figure_key` (which is excluded from occupancy)."""
    geometry = data.get_map(game.selected_map)
    return BoardState.from_geometry(
        geometry,
        occupied=occupied_cells(game, data, exclude=figure_key),
        hostile_occupied=hostile_cells(game, data, figure_key),
        opened_doors=game.opened_doors,
    )


def profile_for_figure(game: Game, data: Any, figure_key: str) -> MovementProfile:
    stats = data.get_dc(dc_name_of(figure_key))
    return MovementProfile.from_stats(stats, figure_size(game, data, figure_key))


def board_snapshot(game: Game, data: Any) -> list[dict[str, Any]]:
    """Minimal per-figure data for presentation: position, size, owner, health."""
    figures = []
    for player_id, figure_key, top_left in game.iter_figures():
        health = game.figure_health(figure_key) or [0, 0]
        figures.append({
            "figure_key": figure_key,
            "owner": player_id,
            "top_left": top_left,
            "size": figure_size(game, data, figure_key),
            "health": list(health),
            "conditions": list(game.conditions.get(figure_key, [])),
            "contraband": bool(game.figure_contraband.get(figure_key)),
        })
    return figures


# ----------------------------------------------------------------------
# Search
# ----------------------------------------------------------------------

def _can_move_diagonally(start: str, dx: int, dy: int, board: BoardState) -> bool:
    col, row = parse_coord(start)
    side_a = col_row_to_coord(col + dx, row)
    side_b = col_row_to_coord(col, row + dy)
    if side_a not in board.spaces or side_b not in board.spaces:
        return False
    return board.is_adjacent(start, side_a) and board.is_adjacent(start, side_b)


def _neighbor_states(node: MovementNode, board: BoardState, profile: MovementProfile):
    vectors = ORTHOGONAL + (DIAGONAL if profile.allow_diagonal else ())
    for dx, dy in vectors:
        if dx and dy and not _can_move_diagonally(node.top_left, dx, dy, board):
            continue
        next_top_left = shift_coord(node.top_left, dx, dy)
        if not next_top_left or next_top_left not in board.spaces:
            continue
        yield "move", next_top_left, node.size, dx, dy
    if profile.can_rotate:
        yield "rotate", node.top_left, rotate_size(node.size), 0, 0


def _evaluate_step(
    node: MovementNode,
    step_type: str,
    top_left: str,
    size: str,
    dx: int,
    dy: int,
    board: BoardState,
    profile: MovementProfile,
) -> tuple[int, tuple[str, ...]] | None:
    """Return (cost, footprint) for a legal step, else None."""
    footprint = tuple(footprint_cells(top_left, size))
    if not footprint or any(cell not in board.spaces for cell in footprint):
        return None
    if not profile.ignore_blocking and any(cell in board.blocking for cell in footprint):
        return None

    previous = set(node.footprint)
    if step_type == "rotate":
        overlapping = any(cell in board.occupied for cell in footprint)
        if overlapping and not profile.can_end_on_occupied:
            return None
        return 1, footprint

    entering = [cell for cell in footprint if cell not in previous]
    if not entering:
        return None

    back_dx = -dx if dx else 0
    back_dy = -dy if dy else 0
    for cell in entering:
        col, row = parse_coord(cell)
        back = col_row_to_coord(col + back_dx, row + back_dy)
        if back in previous and edge_key(cell, back) in board.movement_blocking:
            return None

    cost = 1
    if not profile.ignore_difficult and any(
        board.terrain.get(cell, "normal") == "difficult" for cell in entering
    ):
        cost += 1
    if not profile.ignore_figure_cost and any(board.is_hostile(cell) for cell in entering):
        cost += 1
    return cost, footprint


def compute_movement_cache(
    start: str,
    mp_limit: int,
    board: BoardState,
    profile: MovementProfile,
) -> MovementCache:
    """
    Uniform-cost search from `start` up to `mp_limit` MP.

    The frontier is ordered by (cost, row, col, size) so equal-cost paths
    resolve the same way every time.
    """
    start = normalize_coord(start)
    cache = MovementCache(start=start, max_mp=mp_limit, profile=profile)
    if start not in board.spaces:
        return cache

    start_key = state_key(start, profile.size)
    best_cost = {start_key: 0}
    footprints = {start_key: tuple(footprint_cells(start, profile.size))}
    col, row = parse_coord(start)
    frontier = [(0, row, col, profile.size, start)]

    while frontier:
        cost, _, _, size, top_left = heapq.heappop(frontier)
        key = state_key(top_left, size)
        if key in cache.nodes or cost > best_cost.get(key, cost):
            continue
        footprint = footprints[key]
        occupied = any(cell in board.occupied for cell in footprint)
        can_end = not occupied or profile.can_end_on_occupied
        node = MovementNode(top_left, size, cost, footprint, can_end)
        cache.nodes[key] = node

        if can_end:
            for cell in footprint:
                if cell not in board.spaces:
                    continue
                if cost == 0 and cell == start:
                    continue
                known = cache.cells.get(cell)
                if known is None or cost < known.cost:
                    cache.cells[cell] = MovementTarget(cost, top_left, size)

        for step_type, next_top_left, next_size, dx, dy in _neighbor_states(node, board, profile):
            step = _evaluate_step(node, step_type, next_top_left, next_size, dx, dy, board, profile)
            if step is None:
                continue
            step_cost, next_footprint = step
            new_cost = cost + step_cost
            if new_cost > mp_limit:
                continue
            next_key = state_key(next_top_left, next_size)
            if next_key in best_cost and best_cost[next_key] <= new_cost:
                continue
            best_cost[next_key] = new_cost
            footprints[next_key] = next_footprint
            cache.parent[next_key] = key
            next_col, next_row = parse_coord(next_top_left)
            heapq.heappush(frontier, (new_cost, next_row, next_col, next_size, next_top_left))

    logger.debug(
        "Movement cache from %s (%s, %d MP): %d states, %d cells",
        start, profile.size, mp_limit, len(cache.nodes), len(cache.cells),
    )
    return cache


def get_spaces_at_cost(cache: MovementCache, mp_cost: int) -> list[str]:
    """Cells whose minimal cost is exactly `mp_cost`, in row-major order."""
    return sorted(
        (cell for cell, target in cache.cells.items() if target.cost == mp_cost),
        key=coord_sort_key,
    )


def spaces_by_cost(cache: MovementCache, mp_limit: int | None = None) -> dict[int, list[str]]:
    """Reachable cells grouped by their minimal cost."""
    grouped: dict[int, list[str]] = {}
    for cell, target in cache.cells.items():
        if mp_limit is not None and target.cost > mp_limit:
            continue
        grouped.setdefault(target.cost, []).append(cell)
    return {cost: sorted(cells, key=coord_sort_key) for cost, cells in sorted(grouped.items())}


def get_movement_target(cache: MovementCache, coord: str) -> MovementTarget | None:
    return cache.cells.get(normalize_coord(coord))


def get_movement_path(cache: MovementCache, dest_top_left: str, dest_size: str | None = None) -> list[str]:
    """Top-left cells from the start to the destination, inclusive."""
    start_key = state_key(cache.start, cache.profile.size)
    key: str | None = state_key(dest_top_left, dest_size or cache.profile.size)
    path: list[str] = []
    while key:
        node = cache.nodes.get(key)
        if node is None:
            break
        path.insert(0, node.top_left)
        if key == start_key:
            break
        key = cache.parent.get(key)
    return path


def ensure_movement_cache(
    move_state: Any,
    start: str,
    mp_limit: int,
    board: BoardState,
    profile: MovementProfile,
) -> MovementCache:
    """Reuse the session's cache unless the MP budget grew or the figure moved."""
    cache = move_state.movement_cache
    if (
        cache is None
        or move_state.cache_max_mp < mp_limit
        or move_state.cache_start != normalize_coord(start)
        or cache.profile != profile
    ):
        cache = compute_movement_cache(start, mp_limit, board, profile)
        move_state.movement_cache = cache
        move_state.cache_max_mp = mp_limit
        move_state.cache_start = normalize_coord(start)
    return cache


def get_reachable_spaces(
    start: str,
    mp: int,
    geometry: Any,
    occupied: Iterable[str] = (),
    profile: MovementProfile | None = None,
) -> dict[str, int]:
    """Reachable cells and their minimal cost for a figure on an otherwise static board."""
    if mp <= 0:
        return {}
    board = BoardState.from_geometry(geometry, occupied=occupied)
    cache = compute_movement_cache(start, mp, board, profile or MovementProfile())
    return {cell: target.cost for cell, target in cache.cells.items()}


def get_path_cost(start: str, dest: str, geometry: Any, occupied: Iterable[str] = ()) -> int | None:
    board = BoardState.from_geometry(geometry, occupied=occupied)
    cache = compute_movement_cache(start, 50, board, MovementProfile())
    target = cache.cells.get(normalize_coord(dest))
    return target.cost if target else None


# ----------------------------------------------------------------------
# Placement and massive push
# ----------------------------------------------------------------------

def filter_valid_top_left_spaces(
    candidates: Iterable[str],
    size: str,
    allowed: Iterable[str],
    occupied: Iterable[str] = (),
) -> list[str]:
    """Top-left cells whose whole footprint lies in `allowed` and is unoccupied."""
    allowed_set = to_coord_set(allowed)
    occupied_set = to_coord_set(occupied)
    valid = []
    for top_left in candidates:
        cells = footprint_cells(normalize_coord(top_left), size)
        if all(c in allowed_set and c not in occupied_set for c in cells):
            valid.append(normalize_coord(top_left))
    return sorted(valid, key=coord_sort_key)


def collect_overlapping_figures(
    game: Game, data: Any, moving_key: str, footprint: set[str]
) -> list[tuple[str, str]]:
    """(player_id, figure_key) of figures under `footprint`, friendly first."""
    moving_owner = game.owner_of(moving_key)
    friendly, enemy = [], []
    for player_id, figure_key, cell in game.iter_figures():
        if figure_key == moving_key:
            continue
        cells = footprint_cells(cell, figure_size(game, data, figure_key))
        if not any(c in footprint for c in cells):
            continue
        (friendly if player_id == moving_owner else enemy).append((player_id, figure_key))
    return friendly + enemy


def push_figure_to_nearest_valid(
    game: Game, data: Any, player_id: str, figure_key: str, forbidden: set[str]
) -> bool:
    """Breadth-first search for the nearest top-left where the figure fits."""
    start = game.figure_positions.get(player_id, {}).get(figure_key)
    if not start:
        return False
    board = board_for_figure(game, data, figure_key)
    profile = profile_for_figure(game, data, figure_key)
    queue = deque([normalize_coord(start)])
    visited = {normalize_coord(start)}
    while queue:
        top_left = queue.popleft()
        cells = footprint_cells(top_left, profile.size)
        fits = (
            all(c in board.spaces for c in cells)
            and not any(c in forbidden or c in board.occupied for c in cells)
            and (profile.ignore_blocking or not any(c in board.blocking for c in cells))
        )
        if fits:
            game.figure_positions[player_id][figure_key] = top_left
            return True
        for dx, dy in ORTHOGONAL:
            next_top_left = shift_coord(top_left, dx, dy)
            if next_top_left in board.spaces and next_top_left not in visited:
                visited.add(next_top_left)
                queue.append(next_top_left)
    return False


def resolve_massive_push(game: Game, data: Any, figure_key: str) -> list[str]:
    """Push every figure under a massive figure's footprint. Returns pushed keys."""
    profile = profile_for_figure(game, data, figure_key)
    if not profile.can_end_on_occupied:
        return []
    footprint = set(figure_footprint(game, data, figure_key))
    pushed = []
    for player_id, other_key in collect_overlapping_figures(game, data, figure_key, footprint):
        if push_figure_to_nearest_valid(game, data, player_id, other_key, footprint):
            pushed.append(other_key)
        else:
            logger.warning("Failed to push %s away from massive figure %s", other_key, figure_key)
    return pushed


# ----------------------------------------------------------------------
# Movement sessions
# ----------------------------------------------------------------------

CONTRABAND_SPEED_PENALTY = 2


def figure_speed(game: Game, data: Any, figure_key: str) -> int:
    """Printed speed, reduced while carrying contraband in mission b."""
    speed = data.get_dc(dc_name_of(figure_key)).speed
    if game.selected_mission == "b" and game.figure_contraband.get(figure_key):
        speed = max(0, speed - CONTRABAND_SPEED_PENALTY)
    return speed


def session_cache(game: Game, data: Any, figure_key: str) -> MovementCache:
    """Movement cache for the figure's current session, rebuilt when stale."""
    session = game.move_in_progress.get(figure_key)
    if session is None:
        raise DataIntegrityError(f"No movement in progress for {figure_key}", error_code="SESSION_MISSING")
    start = game.position_of(figure_key)
    if not start:
        raise DataIntegrityError(f"{figure_key} is not on the map", error_code="SESSION_MISSING")
    board = board_for_figure(game, data, figure_key)
    profile = profile_for_figure(game, data, figure_key)
    return ensure_movement_cache(session, start, session.mp_remaining, board, profile)


@dataclass
class MoveReport:
    figure_key: str
    previous_top_left: str
    previous_size: str
    mp_before: int
    destination: str
    size: str
    cost: int
    path: list[str]
    pushed: list[str]


def commit_move(game: Game, data: Any, figure_key: str, distance: int, destination: str) -> MoveReport:
    """
    Move a figure to a destination whose minimal cost is exactly `distance`.

    Spends the cost from the MP bank; the session ends when the bank is empty.
    """
    session = game.move_in_progress.get(figure_key)
    if session is None:
        raise DataIntegrityError(f"No movement in progress for {figure_key}", error_code="SESSION_MISSING")
    if distance <= 0 or distance > session.mp_remaining:
        raise ValidationError(
            f"Distance must be between 1 and {session.mp_remaining}",
            error_code="INSUFFICIENT_RESOURCES",
        )
    cache = session_cache(game, data, figure_key)
    target = get_movement_target(cache, destination)
    if target is None:
        raise ValidationError("Destination not valid for the selected MP")
    if target.cost != distance:
        raise ValidationError(
            f"Destination costs {target.cost} MP, not {distance}; pick from the selected distance"
        )

    owner = game.owner_of(figure_key)
    previous_top_left = game.position_of(figure_key)
    previous_size = figure_size(game, data, figure_key)
    mp_before = session.mp_remaining
    path = get_movement_path(cache, target.top_left, target.size)

    game.figure_positions[owner][figure_key] = target.top_left
    if target.size != previous_size:
        game.figure_orientations[figure_key] = target.size
    pushed = resolve_massive_push(game, data, figure_key)

    session.mp_remaining -= target.cost
    session.pending_distance = None
    session.movement_cache = None
    session.cache_max_mp = 0
    session.cache_start = None
    if session.mp_remaining <= 0:
        del game.move_in_progress[figure_key]

    logger.debug("%s moved %s -> %s for %d MP", figure_key, previous_top_left, target.top_left, target.cost)
    return MoveReport(
        figure_key=figure_key,
        previous_top_left=previous_top_left,
        previous_size=previous_size,
        mp_before=mp_before,
        destination=target.top_left,
        size=target.size,
        cost=target.cost,
        path=path,
        pushed=pushed,
    )
