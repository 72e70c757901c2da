"""
Mission Rules - data-driven end-of-round and start-of-round scoring.

Rules come from the mission table keyed by type; parameters may be written
in camelCase or snake_case. Every scoring rule re-checks the win condition
and stops the run as soon as the game ends.
"""

from __future__ import annotations
from typing import Any, Callable
import logging

from .combat import check_win_conditions
from .coords import normalize_coord, footprint_cells
from .movement import figure_size
from .state import Game

logger = logging.getLogger(__name__)


def _param(params: dict[str, Any], *keys: str, default: Any = None) -> Any:
    for key in keys:
        if key in params and params[key] is not None:
            return params[key]
    return default


# ----------------------------------------------------------------------
# Control
# ----------------------------------------------------------------------

def player_cells(game: Game, data: Any, player_id: str) -> set[str]:
    cells: set[str] = set()
    for figure_key, top_left in game.figure_positions.get(player_id, {}).items():
        cells.update(footprint_cells(top_left, figure_size(game, data, figure_key)))
    return cells


def get_space_controller(game: Game, data: Any, coord: str) -> str | None:
    """The only player with a figure on or adjacent to `coord`, else None."""
    geometry = data.get_map(game.selected_map)
    target = normalize_coord(coord)
    control = {target} | set(geometry.adjacency.get(target, []))
    present = [
        player_id for player_id in game.player_ids
        if control & player_cells(game, data, player_id)
    ]
    return present[0] if len(present) == 1 else None


def count_terminals_controlled(game: Game, data: Any, player_id: str) -> int:
    if not game.selected_map:
        return 0
    geometry = data.get_map(game.selected_map)
    return sum(
        1 for terminal in geometry.terminals
        if get_space_controller(game, data, terminal) == player_id
    )


def get_named_area_controller(game: Game, data: Any, area_name: str) -> str | None:
    """The player with more figures in the area; None on a tie."""
    geometry = data.get_map(game.selected_map)
    area = geometry.named_area(area_name)
    if not area or not area.get("cells"):
        return None
    cells = {normalize_coord(c) for c in area["cells"]}
    counts = {}
    for player_id in game.player_ids:
        counts[player_id] = sum(
            1 for figure_key, top_left in game.figure_positions.get(player_id, {}).items()
            if cells & set(footprint_cells(top_left, figure_size(game, data, figure_key)))
        )
    first, second = game.player_ids
    if counts[first] > counts[second]:
        return first
    if counts[second] > counts[first]:
        return second
    return None


def deployment_zone_of(game: Game, player_id: str) -> str | None:
    player = game.get_player(player_id)
    return player.deployment_zone if player else None


def is_figure_in_deployment_zone(game: Game, data: Any, player_id: str, figure_key: str) -> bool:
    zone = deployment_zone_of(game, player_id)
    top_left = game.figure_positions.get(player_id, {}).get(figure_key)
    if not zone or not top_left:
        return False
    geometry = data.get_map(game.selected_map)
    zone_cells = {normalize_coord(c) for c in geometry.deployment_zones.get(zone, [])}
    return any(c in zone_cells for c in footprint_cells(top_left, figure_size(game, data, figure_key)))


def _score(game: Game, player_id: str, vp: int, reason: str, changes: list[str]) -> bool:
    game.get_player(player_id).vp.add_objectives(vp)
    message = f"{player_id} gained {vp} VP for {reason}"
    game.log(message)
    changes.append(message)
    logger.info("Game %s: %s", game.game_id, message)
    return check_win_conditions(game)


# ----------------------------------------------------------------------
# End-of-round rules
# ----------------------------------------------------------------------

def _vp_for_controlling_named_area(game, data, params, changes) -> bool:
    area_name = _param(params, "area_name", "areaName")
    vp = _param(params, "vp")
    if not area_name or not isinstance(vp, int):
        return False
    controller = get_named_area_controller(game, data, area_name)
    if controller:
        return _score(game, controller, vp, f"controlling {area_name}", changes)
    return False


def _vp_per_contraband_in_deployment_zone(game, data, params, changes) -> bool:
    vp = _param(params, "vp")
    if not isinstance(vp, int):
        return False
    for player_id in game.player_ids:
        scored = 0
        for figure_key in list(game.figure_positions.get(player_id, {})):
            if not game.figure_contraband.get(figure_key):
                continue
            if not is_figure_in_deployment_zone(game, data, player_id, figure_key):
                continue
            game.figure_contraband.pop(figure_key, None)
            scored += 1
        if scored and _score(game, player_id, vp * scored, f"delivering {scored} contraband", changes):
            return True
    return False


def _vp_per_launch_panel_controlled(game, data, params, changes) -> bool:
    green = _param(params, "green")
    gray = _param(params, "gray")
    if not isinstance(green, int) or not isinstance(gray, int):
        return False
    geometry = data.get_map(game.selected_map)
    panels = geometry.mission_token_coords(game.selected_mission or "a", "launch_panels")
    totals = {player_id: 0 for player_id in game.player_ids}
    for coord in panels:
        side = game.launch_panel_state.get(normalize_coord(coord))
        if not side:
            continue
        controller = get_space_controller(game, data, coord)
        if controller:
            totals[controller] += green if side == "colored" else gray
    for player_id, vp in totals.items():
        if vp and _score(game, player_id, vp, "launch panels", changes):
            return True
    return False


def _vp_per_token_for_controlling_cell(game, data, params, changes) -> bool:
    control_cell = _param(params, "control_cell", "controlCell")
    vp_per_token = _param(params, "vp_per_token", "vpPerToken")
    count_key = _param(params, "token_count_key", "tokenCountKey")
    if not control_cell or not count_key or not isinstance(vp_per_token, int):
        return False
    count = int(game.mission_tokens.get(count_key, 0))
    if count <= 0:
        return False
    game.mission_tokens[count_key] = 0
    controller = get_space_controller(game, data, control_cell)
    if controller:
        return _score(
            game, controller, vp_per_token * count,
            f"controlling {control_cell.upper()} ({count} token(s))", changes,
        )
    return False


END_OF_ROUND_RULES: dict[str, Callable[..., bool]] = {
    "vpForControllingNamedArea": _vp_for_controlling_named_area,
    "vpPerContrabandInDeploymentZone": _vp_per_contraband_in_deployment_zone,
    "vpPerLaunchPanelControlled": _vp_per_launch_panel_controlled,
    "vpPerTokenForControllingCell": _vp_per_token_for_controlling_cell,
}


def run_end_of_round_rules(game: Game, data: Any) -> list[str]:
    """Apply the selected mission's end-of-round scoring. Returns change messages."""
    changes: list[str] = []
    if not game.selected_map or not game.selected_mission:
        return changes
    rules = data.get_mission_rules(game.selected_map, game.selected_mission).end_of_round
    for rule_type, handler in END_OF_ROUND_RULES.items():
        params = rules.get(rule_type)
        if params is None:
            continue
        if handler(game, data, params, changes):
            break
    return changes


# ----------------------------------------------------------------------
# Start-of-round rules
# ----------------------------------------------------------------------

def run_start_of_round_rules(game: Game, data: Any) -> list[str]:
    changes: list[str] = []
    if not game.selected_map or not game.selected_mission:
        return changes
    rules = data.get_mission_rules(game.selected_map, game.selected_mission).start_of_round
    params = rules.get("setTokenCountFromInitiativeHand")
    if params is not None:
        key = _param(params, "game_key", "gameKey")
        player = game.get_player(game.initiative_player_id)
        if key and player:
            game.mission_tokens[key] = len(player.hand)
            changes.append(f"{key} set to {len(player.hand)}")
    return changes
