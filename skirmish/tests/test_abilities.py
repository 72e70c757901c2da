"""
Tests for the ability resolver.

Tests:
- Applied effects (draw, VP, conditions, movement, actions)
- Effects that need a choice or a space
- Manual effects
"""

from ..engine_core.abilities import AbilityContext, AbilityResolver, lookup_effect, resolve_ability
from ..engine_core.rounds import activate_card


def resolve(data, game, card_name, player_id="p1", **kwargs):
    context = AbilityContext(game=game, player_id=player_id, data=data, card_name=card_name, **kwargs)
    return AbilityResolver(data=data).resolve(card_name, context)


class TestAppliedEffects:
    """Tests for effects that apply straight away."""

    def test_draw_cards(self, match, data):
        """Planning draws two cards from the top of the deck."""
        player = match.get_player("p1")
        player.deck = ["Focus", "Urgency", "Recovery"]
        outcome = resolve(data, match, "Planning")

        assert outcome.applied
        assert outcome.drew_cards == ["Focus", "Urgency"]
        assert player.hand == ["Focus", "Urgency"]
        assert player.deck == ["Recovery"]

    def test_draw_from_short_deck(self, match, data):
        match.get_player("p1").deck = ["Focus"]
        outcome = resolve(data, match, "Planning")
        assert outcome.drew_cards == ["Focus"]

    def test_gain_vp(self, match, data):
        """Scored VP counts as objectives."""
        outcome = resolve(data, match, "Celebration", player_id="p2")

        vp = match.get_player("p2").vp
        assert outcome.applied
        assert vp.objectives == 1
        assert vp.total == 1

    def test_cancel_next_draw(self, match, data):
        resolve(data, match, "Jam Communications")
        assert match.get_player("p2").no_draw_next_status

    def test_discard_hand_and_draw(self, match, data):
        player = match.get_player("p1")
        player.hand = ["Focus", "Urgency"]
        player.deck = ["Recovery", "Planning", "Celebration"]
        resolve(data, match, "Change of Plans")

        assert player.hand == ["Recovery", "Planning"]
        assert player.discard == ["Focus", "Urgency"]

    def test_gain_actions(self, match, data):
        activate_card(match, "p1", "Darth Vader-2")
        outcome = resolve(data, match, "Urgency")

        assert outcome.applied
        assert match.card_actions["Darth Vader-2"] == 3

    def test_gain_movement_opens_session(self, match, data):
        """Fleet Footed banks MP for the activating figure."""
        activate_card(match, "p1", "Darth Vader-2")
        outcome = resolve(data, match, "Fleet Footed")

        assert outcome.applied
        assert match.move_in_progress["Darth Vader-2-0"].mp_remaining == 2

    def test_self_condition(self, match, data):
        activate_card(match, "p1", "Darth Vader-2")
        resolve(data, match, "Focus")
        assert match.conditions["Darth Vader-2-0"] == ["Focus"]

    def test_library_ability(self, match, data):
        """Abilities not on a command card come from the ability library."""
        effect_type, params, _ = lookup_effect("focus_self", data)
        assert effect_type == "apply_condition"

        context = AbilityContext(game=match, player_id="p1", data=data, figure_key="Darth Vader-2-0")
        outcome = resolve_ability("focus_self", context)
        assert outcome.applied
        assert "Focus" in match.conditions["Darth Vader-2-0"]

    def test_recover_acting_figure(self, match, data):
        activate_card(match, "p1", "Darth Vader-2")
        match.figure_health("Darth Vader-2-0")[0] = 10
        resolve(data, match, "Recovery")
        assert match.figure_health("Darth Vader-2-0") == [12, 16]


class TestChoices:
    """Tests for effects that need more input."""

    def test_hostile_condition_lists_targets(self, match, data):
        """Dirty Trick first asks for a hostile figure."""
        outcome = resolve(data, match, "Dirty Trick")

        assert outcome.requires_choice
        assert outcome.choice_options == ["Luke Skywalker-1-0", "Nexu-2-0", "Nexu-2-1"]

        outcome = resolve(data, match, "Dirty Trick", choice="Nexu-2-1")
        assert outcome.applied
        assert match.conditions["Nexu-2-1"] == ["Weaken"]

    def test_hostile_condition_rejects_friendly(self, match, data):
        outcome = resolve(data, match, "Dirty Trick", choice="Stormtrooper-1-0")
        assert outcome.is_manual
        assert "Stormtrooper-1-0" not in match.conditions

    def test_choose_one(self, match, data):
        """Covering Fire offers two options, then resolves the chosen one."""
        outcome = resolve(data, match, "Covering Fire")
        assert outcome.choice_options == ["Gain 2 MP", "Draw 1"]

        match.get_player("p1").deck = ["Urgency"]
        outcome = resolve(data, match, "Covering Fire", choice="Draw 1")
        assert outcome.applied
        assert match.get_player("p1").hand == ["Urgency"]

    def test_choose_one_by_index(self, match, data):
        match.get_player("p1").deck = ["Urgency"]
        outcome = resolve(data, match, "Covering Fire", choice="1")
        assert outcome.drew_cards == ["Urgency"]

    def test_place_token(self, match, data):
        """Tokens go on an empty, non-blocking space."""
        outcome = resolve(data, match, "Smoke Grenade")
        assert outcome.requires_space_choice
        assert "a1" not in outcome.valid_spaces
        assert "f2" not in outcome.valid_spaces
        assert "d4" in outcome.valid_spaces

        outcome = resolve(data, match, "Smoke Grenade", space="D4")
        assert outcome.applied
        assert match.placed_tokens == {"d4": "smoke"}

    def test_place_token_on_bad_space(self, match, data):
        outcome = resolve(data, match, "Smoke Grenade", space="a1")
        assert outcome.needs_input
        assert match.placed_tokens == {}


class TestManualEffects:
    """Tests for effects the engine cannot script."""

    def test_card_without_effect(self, match, data):
        outcome = resolve(data, match, "Take Initiative")

        assert outcome.is_manual
        assert not outcome.applied
        assert outcome.manual_message == "Claim the initiative token."

    def test_attack_bonus_outside_attack(self, match, data):
        outcome = resolve(data, match, "Deadly Precision")
        assert outcome.is_manual

    def test_unknown_card(self, match, data):
        outcome = resolve(data, match, "Nonexistent Card")
        assert outcome.is_manual
        assert "Nonexistent Card" in outcome.manual_message
