"""
Static Rule Data - Read-only lookup tables for the engine.

Provides:
- Deployment card stats (health, figures, speed, attack, defense, keywords)
- Command card effects (cost, timing, restriction, scripted effect)
- Dice faces
- Ability library (surge costs, labels)
- Map geometry, tokens, deployment zones
- Mission rules

Lookups tolerate missing entries: an unknown deployment card resolves to a
one-figure card with no specials. Unknown maps are a data-integrity error
because nothing sensible can be played on them.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any
import json
import logging

from ..engine_core.coords import (
    normalize_coord,
    parse_coord,
    col_row_to_coord,
    to_coord_set,
)
from ..engine_core.errors import DataIntegrityError

logger = logging.getLogger(__name__)

DEFAULT_SPEED = 4
DEFAULT_HEALTH = 1
DEFAULT_FIGURES = 1
DEFAULT_SURGE_COST = 1


def _pick(raw: dict[str, Any], *keys: str, default: Any = None) -> Any:
    """Return the first present key; data files use both camelCase and snake_case."""
    for key in keys:
        if key in raw and raw[key] is not None:
            return raw[key]
    return default


@dataclass
class AttackProfile:
    """Attack dice pool, range band, and melee/ranged type."""
    dice: list[str] = field(default_factory=list)
    min_range: int = 1
    max_range: int = 1
    attack_type: str = "melee"

    @property
    def is_melee(self) -> bool:
        return self.attack_type == "melee"

    @classmethod
    def from_dict(cls, raw: dict[str, Any] | None) -> AttackProfile:
        if not raw:
            return cls()
        dice = [str(d).lower() for d in raw.get("dice", [])]
        rng = raw.get("range", [1, 1])
        if isinstance(rng, int):
            rng = [1, rng]
        min_range, max_range = int(rng[0]), int(rng[-1])
        attack_type = raw.get("type") or ("melee" if max_range <= 1 else "ranged")
        return cls(dice=dice, min_range=min_range, max_range=max_range, attack_type=attack_type)

    def to_dict(self) -> dict[str, Any]:
        return {
            "dice": list(self.dice),
            "range": [self.min_range, self.max_range],
            "type": self.attack_type,
        }


@dataclass
class DeploymentCardStats:
    """
    Stats for a deployment card.

    `sub_cost` is the VP value of one figure of a multi-figure group;
    when absent, defeating the whole group is worth `cost`.
    """
    name: str
    cost: int = 0
    sub_cost: int | None = None
    health: int = DEFAULT_HEALTH
    figures: int = DEFAULT_FIGURES
    speed: int = DEFAULT_SPEED
    defense: list[str] = field(default_factory=lambda: ["white"])
    attack: AttackProfile = field(default_factory=AttackProfile)
    surges: list[str] = field(default_factory=list)
    keywords: list[str] = field(default_factory=list)
    rerolls: int = 0
    size: str = "1x1"
    known: bool = True

    @property
    def group_vp(self) -> int:
        """VP credited when every figure of the group is defeated."""
        if self.sub_cost is not None:
            return self.sub_cost * self.figures
        return self.cost

    def has_keyword(self, keyword: str) -> bool:
        return keyword.lower() in {k.lower() for k in self.keywords}

    @classmethod
    def unknown(cls, name: str) -> DeploymentCardStats:
        return cls(name=name, known=False)

    @classmethod
    def from_dict(cls, name: str, raw: dict[str, Any]) -> DeploymentCardStats:
        defense = _pick(raw, "defense", default="white")
        if isinstance(defense, str):
            defense = [d.strip() for d in defense.split(",") if d.strip()]
        sub_cost = _pick(raw, "sub_cost", "subCost")
        return cls(
            name=name,
            cost=int(_pick(raw, "cost", default=0)),
            sub_cost=int(sub_cost) if sub_cost is not None else None,
            health=int(_pick(raw, "health", default=DEFAULT_HEALTH)),
            figures=int(_pick(raw, "figures", default=DEFAULT_FIGURES)),
            speed=int(_pick(raw, "speed", default=DEFAULT_SPEED)),
            defense=[str(d).lower() for d in defense],
            attack=AttackProfile.from_dict(raw.get("attack")),
            surges=list(_pick(raw, "surges", "surgeAbilities", default=[])),
            keywords=list(_pick(raw, "keywords", default=[])),
            rerolls=int(_pick(raw, "rerolls", default=0)),
            size=str(_pick(raw, "size", default="1x1")).lower(),
        )


@dataclass
class CommandCardData:
    """
    A command card and its scripted effect.

    `effect_type` selects the resolver case; `params` parameterize it.
    Cards without an `effect_type` resolve manually.
    """
    name: str
    cost: int = 0
    timing: str = ""
    playable_by: str = ""
    effect: str = ""
    effect_type: str | None = None
    params: dict[str, Any] = field(default_factory=dict)
    ability_id: str | None = None

    @property
    def is_special_action(self) -> bool:
        return self.timing.lower().strip() in {"specialaction", "doubleactionspecial"}

    @classmethod
    def from_dict(cls, name: str, raw: dict[str, Any]) -> CommandCardData:
        return cls(
            name=name,
            cost=int(_pick(raw, "cost", default=0)),
            timing=str(_pick(raw, "timing", default="")),
            playable_by=str(_pick(raw, "playable_by", "playableBy", default="")),
            effect=str(_pick(raw, "effect", default="")),
            effect_type=_pick(raw, "effect_type", "effectType"),
            params=dict(_pick(raw, "params", default={})),
            ability_id=_pick(raw, "ability_id", "abilityId"),
        )


@dataclass
class MissionRules:
    """Data-driven mission rules, keyed by rule type."""
    end_of_round: dict[str, dict[str, Any]] = field(default_factory=dict)
    start_of_round: dict[str, dict[str, Any]] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, raw: dict[str, Any] | None) -> MissionRules:
        raw = raw or {}
        return cls(
            end_of_round=dict(_pick(raw, "end_of_round", "endOfRound", default={})),
            start_of_round=dict(_pick(raw, "start_of_round", "startOfRound", default={})),
        )


@dataclass
class MapGeometry:
    """
    Everything the engine needs to know about one map.

    Spaces, adjacency, terrain and edges drive movement and line of sight.
    Tokens (doors, terminals, named areas, mission tokens) drive interact
    options and mission scoring.
    """
    map_id: str
    name: str = ""
    spaces: list[str] = field(default_factory=list)
    adjacency: dict[str, list[str]] = field(default_factory=dict)
    terrain: dict[str, str] = field(default_factory=dict)
    blocking: list[str] = field(default_factory=list)
    movement_blocking_edges: list[list[str]] = field(default_factory=list)
    impassable_edges: list[list[str]] = field(default_factory=list)
    doors: list[list[str]] = field(default_factory=list)
    terminals: list[str] = field(default_factory=list)
    named_areas: list[dict[str, Any]] = field(default_factory=list)
    deployment_zones: dict[str, list[str]] = field(default_factory=dict)
    mission_tokens: dict[str, dict[str, list[str]]] = field(default_factory=dict)
    grid_bounds: dict[str, int] | None = None

    def within_bounds(self, coord: str) -> bool:
        if not self.grid_bounds:
            return True
        col, row = parse_coord(coord)
        if col < 0 or row < 0:
            return False
        max_col = self.grid_bounds.get("max_col")
        max_row = self.grid_bounds.get("max_row")
        if max_col is not None and col > max_col:
            return False
        if max_row is not None and row > max_row:
            return False
        return True

    def bounded(self) -> MapGeometry:
        """Return a copy with everything outside the grid bounds removed."""
        if not self.grid_bounds:
            return self
        spaces = [s for s in self.spaces if self.within_bounds(s)]
        space_set = to_coord_set(spaces)
        adjacency = {
            coord: [n for n in neighbors if n in space_set]
            for coord, neighbors in self.adjacency.items()
            if coord in space_set
        }

        def edge_inside(edge: list[str]) -> bool:
            return len(edge) >= 2 and edge[0] in space_set and edge[1] in space_set

        return MapGeometry(
            map_id=self.map_id,
            name=self.name,
            spaces=spaces,
            adjacency=adjacency,
            terrain={c: t for c, t in self.terrain.items() if c in space_set},
            blocking=[c for c in self.blocking if c in space_set],
            movement_blocking_edges=[e for e in self.movement_blocking_edges if edge_inside(e)],
            impassable_edges=[e for e in self.impassable_edges if edge_inside(e)],
            doors=[e for e in self.doors if edge_inside(e)],
            terminals=[c for c in self.terminals if c in space_set],
            named_areas=self.named_areas,
            deployment_zones=self.deployment_zones,
            mission_tokens=self.mission_tokens,
            grid_bounds=None,
        )

    def mission_token_coords(self, variant: str, token: str) -> list[str]:
        return list(self.mission_tokens.get(variant, {}).get(token, []))

    def named_area(self, area_name: str) -> dict[str, Any] | None:
        wanted = str(area_name or "").lower()
        for area in self.named_areas:
            if str(area.get("name", "")).lower() == wanted:
                return area
        return None

    @classmethod
    def open_grid(cls, map_id: str, cols: int, rows: int, **kwargs: Any) -> MapGeometry:
        """
        Build a rectangular map with every cell adjacent to its eight neighbors.

        Extra keyword arguments are passed through (terrain, doors, ...).
        """
        spaces = [col_row_to_coord(c, r) for r in range(rows) for c in range(cols)]
        adjacency: dict[str, list[str]] = {}
        for r in range(rows):
            for c in range(cols):
                neighbors = []
                for dr in (-1, 0, 1):
                    for dc in (-1, 0, 1):
                        if dr == 0 and dc == 0:
                            continue
                        nc, nr = c + dc, r + dr
                        if 0 <= nc < cols and 0 <= nr < rows:
                            neighbors.append(col_row_to_coord(nc, nr))
                adjacency[col_row_to_coord(c, r)] = neighbors
        return cls(map_id=map_id, spaces=spaces, adjacency=adjacency, **kwargs)

    @classmethod
    def from_dict(
        cls,
        map_id: str,
        spaces_raw: dict[str, Any],
        tokens_raw: dict[str, Any] | None = None,
        zones_raw: dict[str, list[str]] | None = None,
    ) -> MapGeometry:
        tokens_raw = tokens_raw or {}

        def edges(raw_edges: list[list[str]] | None) -> list[list[str]]:
            return [
                [normalize_coord(e[0]), normalize_coord(e[1])]
                for e in (raw_edges or [])
                if len(e) >= 2
            ]

        mission_tokens: dict[str, dict[str, list[str]]] = {}
        for variant, key in (("a", "missionA"), ("b", "missionB")):
            block = _pick(tokens_raw, f"mission_{variant}", key, default={})
            mission_tokens[variant] = {
                _snake(name): [normalize_coord(c) for c in coords]
                for name, coords in block.items()
                if isinstance(coords, list)
            }

        bounds_raw = _pick(spaces_raw, "grid_bounds", "gridBounds")
        grid_bounds = None
        if bounds_raw:
            grid_bounds = {
                "max_col": _pick(bounds_raw, "max_col", "maxCol"),
                "max_row": _pick(bounds_raw, "max_row", "maxRow"),
            }

        return cls(
            map_id=map_id,
            name=str(spaces_raw.get("name", map_id)),
            spaces=[normalize_coord(s) for s in spaces_raw.get("spaces", [])],
            adjacency={
                normalize_coord(c): [normalize_coord(n) for n in neighbors]
                for c, neighbors in spaces_raw.get("adjacency", {}).items()
            },
            terrain={
                normalize_coord(c): str(t or "normal").lower()
                for c, t in spaces_raw.get("terrain", {}).items()
            },
            blocking=[normalize_coord(c) for c in spaces_raw.get("blocking", [])],
            movement_blocking_edges=edges(
                _pick(spaces_raw, "movement_blocking_edges", "movementBlockingEdges")
            ),
            impassable_edges=edges(_pick(spaces_raw, "impassable_edges", "impassableEdges")),
            doors=edges(tokens_raw.get("doors")),
            terminals=[normalize_coord(c) for c in tokens_raw.get("terminals", [])],
            named_areas=[
                {
                    "name": area.get("name", ""),
                    "cells": [normalize_coord(c) for c in area.get("cells", [])],
                }
                for area in _pick(tokens_raw, "named_areas", "namedAreas", default=[])
            ],
            deployment_zones={
                zone: [normalize_coord(c) for c in cells]
                for zone, cells in (zones_raw or {}).items()
            },
            mission_tokens=mission_tokens,
            grid_bounds=grid_bounds,
        )


def _snake(name: str) -> str:
    out = []
    for ch in name:
        if ch.isupper():
            out.append("_")
            out.append(ch.lower())
        else:
            out.append(ch)
    return "".join(out).lstrip("_")


@dataclass
class StaticData:
    """
    Read-only rule data for one engine instance.

    Usage:
        data = StaticData.builtin()
        stats = data.get_dc("Stormtrooper")
        geometry = data.get_map("training_grounds")
    """
    dc_stats: dict[str, DeploymentCardStats] = field(default_factory=dict)
    cc_effects: dict[str, CommandCardData] = field(default_factory=dict)
    dice: dict[str, dict[str, list[dict[str, int]]]] = field(default_factory=dict)
    abilities: dict[str, dict[str, Any]] = field(default_factory=dict)
    maps: dict[str, MapGeometry] = field(default_factory=dict)
    missions: dict[str, MissionRules] = field(default_factory=dict)

    def has_dc(self, name: str) -> bool:
        return self._find_dc_key(name) is not None

    def get_dc(self, name: str) -> DeploymentCardStats:
        """Stats for a deployment card; unknown names get the documented defaults."""
        key = self._find_dc_key(name)
        if key is None:
            logger.debug("Unknown deployment card %r, using defaults", name)
            return DeploymentCardStats.unknown(name)
        return self.dc_stats[key]

    def _find_dc_key(self, name: str) -> str | None:
        if name in self.dc_stats:
            return name
        lower = str(name or "").lower()
        for key in self.dc_stats:
            if key.lower() == lower:
                return key
        return None

    def get_cc(self, name: str) -> CommandCardData | None:
        if name in self.cc_effects:
            return self.cc_effects[name]
        lower = str(name or "").lower()
        for key, card in self.cc_effects.items():
            if key.lower() == lower:
                return card
        return None

    def get_map(self, map_id: str) -> MapGeometry:
        geometry = self.maps.get(map_id)
        if geometry is None:
            raise DataIntegrityError(f"Unknown map: {map_id}", error_code="UNKNOWN_MAP")
        return geometry.bounded()

    def get_mission_rules(self, map_id: str, variant: str) -> MissionRules:
        return self.missions.get(f"{map_id}:{variant}", MissionRules())

    def attack_faces(self, color: str) -> list[dict[str, int]]:
        return self.dice.get("attack", {}).get(str(color).lower(), [])

    def defense_faces(self, color: str) -> list[dict[str, int]]:
        return self.dice.get("defense", {}).get(str(color).lower(), [])

    def get_ability(self, ability_id: str) -> dict[str, Any] | None:
        return self.abilities.get(ability_id)

    @classmethod
    def builtin(cls) -> StaticData:
        """Dice tables plus a small demo card pool and map."""
        from .builtin import build_builtin_data
        return build_builtin_data()

    @classmethod
    def from_directory(cls, path: str | Path) -> StaticData:
        """
        Load rule data from a directory of JSON files.

        Every file is optional; missing files leave that table empty
        (dice fall back to the built-in tables).
        """
        root = Path(path)
        if not root.is_dir():
            raise DataIntegrityError(f"Data directory not found: {root}")

        def load(filename: str) -> dict[str, Any]:
            file_path = root / filename
            if not file_path.exists():
                return {}
            with file_path.open("r", encoding="utf-8") as fh:
                return json.load(fh)

        dc_raw = load("dc_stats.json")
        cc_raw = load("cc_effects.json")
        cc_raw = cc_raw.get("cards", cc_raw)
        dice_raw = load("dice.json")
        abilities_raw = load("abilities.json")
        abilities_raw = abilities_raw.get("abilities", abilities_raw)
        maps_raw = load("maps.json")
        tokens_raw = load("map_tokens.json")
        zones_raw = load("deployment_zones.json")
        missions_raw = load("missions.json")

        if not dice_raw:
            from .builtin import BUILTIN_DICE
            dice_raw = BUILTIN_DICE

        missions: dict[str, MissionRules] = {}
        for map_id, variants in missions_raw.items():
            for variant, rules in variants.items():
                missions[f"{map_id}:{variant}"] = MissionRules.from_dict(rules)

        data = cls(
            dc_stats={name: DeploymentCardStats.from_dict(name, raw) for name, raw in dc_raw.items()},
            cc_effects={name: CommandCardData.from_dict(name, raw) for name, raw in cc_raw.items()},
            dice=dice_raw,
            abilities=abilities_raw,
            maps={
                map_id: MapGeometry.from_dict(
                    map_id, raw, tokens_raw.get(map_id), zones_raw.get(map_id)
                )
                for map_id, raw in maps_raw.items()
            },
            missions=missions,
        )
        logger.info(
            "Loaded static data from %s: %d deployment cards, %d command cards, %d maps",
            root, len(data.dc_stats), len(data.cc_effects), len(data.maps),
        )
        return data
