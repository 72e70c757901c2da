"""
Interact - legal interact options for a figure, and applying one.

Options are derived from the map tokens:
- retrieve_contraband (mission b)
- launch_panel_{coord}_{colored|gray} (mission a, once per round per player)
- use_terminal
- open_door_{edge key}
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Any

from .coords import edge_key, normalize_coord, footprint_cells
from .errors import ValidationError
from .movement import figure_size
from .state import Game


@dataclass
class InteractOption:
    option_id: str
    label: str
    mission_specific: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.option_id, "label": self.label, "mission_specific": self.mission_specific}


def coords_near_figure(game: Game, data: Any, figure_key: str, coords: set[str]) -> list[str]:
    """Coordinates from `coords` the figure stands on or is adjacent to."""
    top_left = game.position_of(figure_key)
    if not top_left or not coords:
        return []
    geometry = data.get_map(game.selected_map)
    found = set()
    for cell in footprint_cells(top_left, figure_size(game, data, figure_key)):
        if cell in coords:
            found.add(cell)
        for neighbor in geometry.adjacency.get(cell, []):
            if neighbor in coords:
                found.add(neighbor)
    return sorted(found)


def get_legal_interact_options(game: Game, data: Any, figure_key: str) -> list[InteractOption]:
    if not game.selected_map:
        return []
    owner = game.owner_of(figure_key)
    player = game.get_player(owner)
    geometry = data.get_map(game.selected_map)
    variant = game.selected_mission
    options: list[InteractOption] = []

    if variant == "b" and not game.figure_contraband.get(figure_key):
        contraband = {normalize_coord(c) for c in geometry.mission_token_coords("b", "contraband")}
        if coords_near_figure(game, data, figure_key, contraband):
            options.append(InteractOption("retrieve_contraband", "Retrieve Contraband", True))

    if variant == "a" and player and not player.launch_panel_flipped_this_round:
        panels = {normalize_coord(c) for c in geometry.mission_token_coords("a", "launch_panels")}
        for coord in coords_near_figure(game, data, figure_key, panels):
            upper = coord.upper()
            options.append(InteractOption(f"launch_panel_{coord}_colored", f"Launch Panel ({upper}) -> Colored", True))
            options.append(InteractOption(f"launch_panel_{coord}_gray", f"Launch Panel ({upper}) -> Gray", True))

    terminals = {normalize_coord(c) for c in geometry.terminals}
    if coords_near_figure(game, data, figure_key, terminals):
        options.append(InteractOption("use_terminal", "Use Terminal"))

    opened = {str(k).lower() for k in game.opened_doors}
    for a, b in geometry.doors:
        key = edge_key(a, b)
        if key in opened:
            continue
        if coords_near_figure(game, data, figure_key, {normalize_coord(a), normalize_coord(b)}):
            options.append(InteractOption(f"open_door_{key}", f"Open Door ({a.upper()}-{b.upper()})"))
    return options


def apply_interact(game: Game, data: Any, figure_key: str, option_id: str) -> str:
    """
    Apply one legal option. Returns the log message.

    The caller spends the action and records the undo entry.
    """
    options = {o.option_id: o for o in get_legal_interact_options(game, data, figure_key)}
    option = options.get(option_id)
    if option is None:
        raise ValidationError(f"Interact option not available: {option_id}")
    owner = game.owner_of(figure_key)

    if option_id == "retrieve_contraband":
        game.figure_contraband[figure_key] = True
        return f"{figure_key} retrieved contraband"
    if option_id.startswith("launch_panel_"):
        coord, side = option_id[len("launch_panel_"):].rsplit("_", 1)
        game.launch_panel_state[coord] = side
        game.get_player(owner).launch_panel_flipped_this_round = True
        return f"{figure_key} flipped launch panel {coord.upper()} to {side}"
    if option_id.startswith("open_door_"):
        key = option_id[len("open_door_"):]
        if key not in game.opened_doors:
            game.opened_doors.append(key)
        return f"{figure_key} opened door {key.upper()}"
    return f"{figure_key}: {option.label}"
