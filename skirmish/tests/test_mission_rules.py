"""
Tests for mission scoring and interact options.

Tests:
- Space, area and terminal control
- Mission A: Command Post and launch panels
- Mission B: contraband and the objective-token count
- Interact options and their effects
"""

import pytest

from ..engine_core.action import Action, ActionKind
from ..engine_core.interact import apply_interact, get_legal_interact_options
from ..engine_core.errors import ValidationError
from ..engine_core.mission_rules import (
    count_terminals_controlled,
    get_named_area_controller,
    get_space_controller,
    run_end_of_round_rules,
    run_start_of_round_rules,
)
from ..engine_core.movement import figure_speed
from .conftest import place, run_actions, start_match


@pytest.fixture
def match_b(new_game, data):
    """A round-1 game on mission B."""
    return start_match(new_game, data, variant="b")


def option_ids(game, data, figure_key):
    return [o.option_id for o in get_legal_interact_options(game, data, figure_key)]


class TestControl:
    """Tests for control of spaces and areas."""

    def test_sole_player_nearby_controls(self, match, data):
        place(match, "Stormtrooper-1-0", "c5")
        assert get_space_controller(match, data, "d5") == "p1"

    def test_contested_space(self, match, data):
        place(match, "Stormtrooper-1-0", "c5")
        place(match, "Luke Skywalker-1-0", "e5")
        assert get_space_controller(match, data, "d5") is None

    def test_empty_space(self, match, data):
        assert get_space_controller(match, data, "f5") is None

    def test_area_majority(self, match, data):
        """More figures in the area wins; a tie controls nothing."""
        place(match, "Darth Vader-2-0", "f5")
        assert get_named_area_controller(match, data, "Command Post") == "p1"

        place(match, "Luke Skywalker-1-0", "g6")
        assert get_named_area_controller(match, data, "Command Post") is None

        place(match, "Stormtrooper-1-0", "g5")
        assert get_named_area_controller(match, data, "Command Post") == "p1"

    def test_terminals(self, match, data):
        place(match, "Stormtrooper-1-0", "c7")
        place(match, "Stormtrooper-1-1", "j4")
        assert count_terminals_controlled(match, data, "p1") == 2
        assert count_terminals_controlled(match, data, "p2") == 0


class TestMissionA:
    """Tests for the Command Post mission."""

    def test_command_post_scores(self, match, data):
        place(match, "Darth Vader-2-0", "f5")
        changes = run_end_of_round_rules(match, data)

        vp = match.get_player("p1").vp
        assert vp.objectives == 5
        assert vp.total == 5
        assert any("Command Post" in c for c in changes)

    def test_launch_panels_score_for_controller(self, match, data):
        """Colored panels are worth 5, gray panels 2."""
        match.launch_panel_state = {"d5": "colored", "i6": "gray"}
        place(match, "Stormtrooper-1-0", "c5")
        place(match, "Luke Skywalker-1-0", "i7")
        run_end_of_round_rules(match, data)

        assert match.get_player("p1").vp.objectives == 5
        assert match.get_player("p2").vp.objectives == 2

    def test_unflipped_panels_score_nothing(self, match, data):
        place(match, "Stormtrooper-1-0", "c5")
        run_end_of_round_rules(match, data)
        assert match.get_player("p1").vp.total == 0

    def test_scoring_stops_at_forty(self, match, data):
        """Reaching 40 VP ends the game during scoring."""
        match.get_player("p1").vp.add_kills(35)
        place(match, "Darth Vader-2-0", "f5")
        run_end_of_round_rules(match, data)

        assert match.ended
        assert match.winner_id == "p1"
        assert match.end_reason == "vp"


class TestMissionB:
    """Tests for the contraband mission."""

    def test_contraband_delivered_in_own_zone(self, match_b, data):
        match_b.figure_contraband["Stormtrooper-1-0"] = True
        run_end_of_round_rules(match_b, data)

        assert match_b.get_player("p1").vp.objectives == 15
        assert "Stormtrooper-1-0" not in match_b.figure_contraband

    def test_contraband_outside_zone(self, match_b, data):
        match_b.figure_contraband["Stormtrooper-1-0"] = True
        place(match_b, "Stormtrooper-1-0", "f8")
        run_end_of_round_rules(match_b, data)

        assert match_b.get_player("p1").vp.total == 0
        assert match_b.figure_contraband["Stormtrooper-1-0"]

    def test_contraband_slows_carrier(self, match_b, data):
        assert figure_speed(match_b, data, "Stormtrooper-1-0") == 4
        match_b.figure_contraband["Stormtrooper-1-0"] = True
        assert figure_speed(match_b, data, "Stormtrooper-1-0") == 2

    def test_token_count_from_initiative_hand(self, match_b, data):
        """At the start of a round the count is the initiative player's hand size."""
        match_b.get_player("p1").hand = ["Planning", "Focus"]
        run_start_of_round_rules(match_b, data)
        assert match_b.mission_tokens["objective_tokens"] == 2

    def test_tokens_score_for_controller(self, match_b, data):
        match_b.mission_tokens["objective_tokens"] = 3
        place(match_b, "Stormtrooper-1-0", "f4")
        run_end_of_round_rules(match_b, data)

        assert match_b.get_player("p1").vp.objectives == 6
        assert match_b.mission_tokens["objective_tokens"] == 0

    def test_tokens_reset_without_controller(self, match_b, data):
        match_b.mission_tokens["objective_tokens"] = 3
        run_end_of_round_rules(match_b, data)

        assert match_b.get_player("p1").vp.total == 0
        assert match_b.get_player("p2").vp.total == 0
        assert match_b.mission_tokens["objective_tokens"] == 0


class TestInteract:
    """Tests for interact options."""

    def test_no_options_in_open_space(self, match, data):
        assert option_ids(match, data, "Stormtrooper-1-0") == []

    def test_launch_panel_options(self, match, data):
        place(match, "Stormtrooper-1-0", "c5")
        assert option_ids(match, data, "Stormtrooper-1-0") == [
            "launch_panel_d5_colored", "launch_panel_d5_gray",
        ]

    def test_one_panel_flip_per_round(self, match, data):
        place(match, "Stormtrooper-1-0", "c5")
        apply_interact(match, data, "Stormtrooper-1-0", "launch_panel_d5_gray")

        assert match.launch_panel_state == {"d5": "gray"}
        assert option_ids(match, data, "Stormtrooper-1-0") == []

    def test_retrieve_contraband(self, match_b, data):
        place(match_b, "Stormtrooper-1-0", "f8")
        assert "retrieve_contraband" in option_ids(match_b, data, "Stormtrooper-1-0")

        apply_interact(match_b, data, "Stormtrooper-1-0", "retrieve_contraband")
        assert match_b.figure_contraband["Stormtrooper-1-0"]
        assert "retrieve_contraband" not in option_ids(match_b, data, "Stormtrooper-1-0")

    def test_terminal(self, match, data):
        place(match, "Stormtrooper-1-0", "c7")
        assert option_ids(match, data, "Stormtrooper-1-0") == ["use_terminal"]

    def test_open_door(self, match, data):
        place(match, "Stormtrooper-1-0", "e7")
        assert "open_door_e6|f6" in option_ids(match, data, "Stormtrooper-1-0")

        apply_interact(match, data, "Stormtrooper-1-0", "open_door_e6|f6")
        assert match.opened_doors == ["e6|f6"]
        assert "open_door_e6|f6" not in option_ids(match, data, "Stormtrooper-1-0")

    def test_unavailable_option(self, match, data):
        with pytest.raises(ValidationError):
            apply_interact(match, data, "Stormtrooper-1-0", "use_terminal")

    def test_interact_spends_an_action(self, match, data):
        place(match, "Stormtrooper-1-0", "c7")
        game = run_actions(
            data, match,
            Action.activate("p1", "Stormtrooper-1"),
            Action.create(ActionKind.INTERACT, "p1", "Stormtrooper-1-0", option_id="use_terminal"),
        )
        assert game.card_actions["Stormtrooper-1"] == 1
