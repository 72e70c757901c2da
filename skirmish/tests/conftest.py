"""
Pytest fixtures for Skirmish tests.
"""

import dataclasses

import pytest

from ..data import StaticData, MapGeometry
from ..engine_core.rounds import (
    select_squad,
    select_map_mission,
    determine_initiative,
    choose_deployment_zone,
    deploy_figure,
    mark_deployed,
)
from ..engine_core.reducer import Reducer
from ..engine_core.state import Game, Squad
from ..session import InMemoryGameStore


LEGAL_CC_LIST = [
    "Planning", "Deadly Precision", "Take Cover", "Spinning Kick", "Second Chance",
    "Fleet Footed", "Recovery", "Dirty Trick", "Smoke Grenade", "Covering Fire",
    "Change of Plans", "Jam Communications", "Celebration", "Take Initiative", "Force Push",
]
IMPERIAL_DC_LIST = ["Darth Vader", "Rancor", "Nexu"]
REBEL_DC_LIST = ["Stormtrooper", "E-Web Engineer", "Rebel Trooper", "Luke Skywalker", "Nexu"]


class ScriptedRng:
    """
    Stand-in for random.Random.

    choice() returns scripted values in order, then the first element;
    shuffle() leaves the order alone.
    """

    def __init__(self, values=None):
        self.values = list(values or [])

    def choice(self, seq):
        if self.values:
            return self.values.pop(0)
        return seq[0]

    def shuffle(self, seq):
        pass


class FlakyStore(InMemoryGameStore):
    """In-memory store whose writes can be made to fail."""

    def __init__(self):
        super().__init__()
        self.fail = False

    def save_all_games(self, games):
        if self.fail:
            raise OSError("disk full")
        super().save_all_games(games)


@pytest.fixture
def data() -> StaticData:
    """Built-in rule data."""
    return StaticData.builtin()


@pytest.fixture
def grid_data(data) -> StaticData:
    """Built-in data plus a 4x4 open map."""
    grid = MapGeometry.open_grid("grid4", 4, 4)
    return dataclasses.replace(data, maps={**data.maps, "grid4": grid})


@pytest.fixture
def new_game() -> Game:
    return Game.create("g1", "p1", "p2", seed=7)


def start_match(game: Game, data: StaticData, variant: str = "a") -> Game:
    """
    Drive a game to round 1.

    p1 (initiative, red zone): Stormtrooper-1 (3 figures), Darth Vader-2
    p2 (blue zone): Luke Skywalker-1, Nexu-2 (2 figures)
    """
    select_squad(game, data, "p1", Squad("Imperials", ["Stormtrooper", "Darth Vader"], ["Planning", "Focus"]))
    select_squad(game, data, "p2", Squad("Rebels", ["Luke Skywalker", "Nexu"], ["Take Cover", "Celebration"]))
    select_map_mission(game, data, "training_grounds", variant)
    determine_initiative(game, ScriptedRng())
    choose_deployment_zone(game, "p1", "red")

    deploy_figure(game, data, "p1", "Stormtrooper-1-0", "a1")
    deploy_figure(game, data, "p1", "Stormtrooper-1-1", "b1")
    deploy_figure(game, data, "p1", "Stormtrooper-1-2", "c1")
    deploy_figure(game, data, "p1", "Darth Vader-2-0", "a2")
    mark_deployed(game, data, "p1")

    deploy_figure(game, data, "p2", "Luke Skywalker-1-0", "l10")
    deploy_figure(game, data, "p2", "Nexu-2-0", "k10")
    deploy_figure(game, data, "p2", "Nexu-2-1", "j10")
    mark_deployed(game, data, "p2")
    return game


@pytest.fixture
def match(new_game, data) -> Game:
    """A game in round 1, p1 to act."""
    return start_match(new_game, data)


def place(game: Game, figure_key: str, cell: str):
    """Move a deployed figure directly (test setup only)."""
    owner = game.owner_of(figure_key)
    game.figure_positions[owner][figure_key] = cell


def run_actions(data: StaticData, game: Game, *actions, rng=None) -> Game:
    """Apply actions in order, failing on the first rejected one."""
    reducer = Reducer(data, rng=rng)
    for action in actions:
        result = reducer.apply(game, action)
        assert result.success, f"{action.kind.value}: {result.error}"
        game = result.new_state
    return game
