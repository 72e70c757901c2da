"""
Ability Resolver - Scripted command-card and ability effects.

Effect specs are data: an `effect_type` plus `params`, drawn from the
command-card table or the ability library. Resolving one yields one of
three outcome shapes:

- applied: the effect changed the game
- needs a choice: an option list or a list of valid spaces; the caller
  re-invokes with `choice` or `space` set
- manual: the engine cannot script it; the caller offers "play anyway"
  or "unplay"

The resolver mutates the Game in the context. Callers hand it a copy.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Callable
import logging

from .combat import (
    parse_surge_effect,
    surge_cost,
    surge_label,
    apply_recover,
    check_win_conditions,
    SurgeEffect,
)
from .coords import coord_sort_key, normalize_coord
from .movement import occupied_cells
from .state import Game, MoveInProgress, card_key_of

logger = logging.getLogger(__name__)


@dataclass
class AbilityOutcome:
    """What happened when an ability was resolved."""
    applied: bool = False
    requires_choice: bool = False
    choice_options: list[str] = field(default_factory=list)
    requires_space_choice: bool = False
    valid_spaces: list[str] = field(default_factory=list)
    drew_cards: list[str] = field(default_factory=list)
    log_message: str | None = None
    manual_message: str | None = None
    refresh_hand: bool = False
    refresh_discard: bool = False
    refresh_board: bool = False
    reveal_to_player: str | None = None

    @property
    def is_manual(self) -> bool:
        return not self.applied and not self.needs_input and self.manual_message is not None

    @property
    def needs_input(self) -> bool:
        return self.requires_choice or self.requires_space_choice

    @classmethod
    def manual(cls, message: str) -> AbilityOutcome:
        return cls(manual_message=message)

    def to_dict(self) -> dict[str, Any]:
        return {
            "applied": self.applied,
            "requires_choice": self.requires_choice,
            "choice_options": list(self.choice_options),
            "requires_space_choice": self.requires_space_choice,
            "valid_spaces": list(self.valid_spaces),
            "drew_cards": list(self.drew_cards),
            "log_message": self.log_message,
            "manual_message": self.manual_message,
        }


@dataclass
class AbilityContext:
    """
    Everything an effect may need.

    `figure_key` is the acting figure, if any. `choice` and `space` are set
    when re-invoking after a needs-choice outcome.
    """
    game: Game
    player_id: str
    data: Any = None
    rng: Any = None
    card_name: str | None = None
    figure_key: str | None = None
    choice: str | None = None
    space: str | None = None


def resolve_surge_ability(ability_id: str) -> SurgeEffect:
    return parse_surge_effect(ability_id)


def get_surge_ability_label(data: Any, ability_id: str) -> str:
    return surge_label(data, ability_id)


def get_surge_ability_cost(data: Any, ability_id: str) -> int:
    return surge_cost(data, ability_id)


def lookup_effect(ability_id: str, data: Any) -> tuple[str | None, dict[str, Any], str]:
    """Return (effect_type, params, printed text) for a command card or library ability."""
    card = data.get_cc(ability_id) if data is not None else None
    if card is not None:
        if card.ability_id:
            entry = data.get_ability(card.ability_id) or {}
            if entry.get("effect_type"):
                return entry["effect_type"], dict(entry.get("params", {})), card.effect
        return card.effect_type, dict(card.params), card.effect
    entry = data.get_ability(ability_id) if data is not None else None
    if entry and entry.get("effect_type"):
        return entry["effect_type"], dict(entry.get("params", {})), entry.get("label", ability_id)
    return None, {}, ""


@dataclass
class AbilityResolver:
    """
    Resolves effects by type.

    Each `_effect_*` method receives the context and the effect params and
    returns an AbilityOutcome.
    """
    data: Any = None

    def resolve(self, ability_id: str, context: AbilityContext) -> AbilityOutcome:
        effect_type, params, text = lookup_effect(ability_id, self.data)
        if not effect_type:
            return AbilityOutcome.manual(
                text or f"{ability_id}: resolve manually."
            )
        outcome = self.resolve_effect(effect_type, params, context, text)
        logger.debug("Resolved %s (%s): applied=%s", ability_id, effect_type, outcome.applied)
        return outcome

    def resolve_effect(
        self,
        effect_type: str,
        params: dict[str, Any],
        context: AbilityContext,
        text: str = "",
    ) -> AbilityOutcome:
        handlers: dict[str, Callable[[AbilityContext, dict[str, Any]], AbilityOutcome]] = {
            "draw_cards": self._effect_draw_cards,
            "gain_vp": self._effect_gain_vp,
            "recover": self._effect_recover,
            "bonus_pierce": self._effect_attack_bonus,
            "bonus_hits": self._effect_attack_bonus,
            "bonus_accuracy": self._effect_attack_bonus,
            "bonus_block": self._effect_defense_bonus,
            "bonus_evade": self._effect_defense_bonus,
            "add_surge_ability": self._effect_add_surge_ability,
            "reroll_budget": self._effect_reroll_budget,
            "gain_actions": self._effect_gain_actions,
            "gain_movement": self._effect_gain_movement,
            "apply_condition": self._effect_apply_condition,
            "place_token": self._effect_place_token,
            "choose_one": self._effect_choose_one,
            "discard_hand_draw": self._effect_discard_hand_draw,
            "cancel_draw_next_status": self._effect_cancel_draw_next_status,
        }
        handler = handlers.get(effect_type)
        if handler is None:
            return AbilityOutcome.manual(text or f"Resolve manually ({effect_type}).")
        params = dict(params)
        params.setdefault("_effect_type", effect_type)
        return handler(context, params)

    # ------------------------------------------------------------------
    # Cards and VP
    # ------------------------------------------------------------------

    def _draw(self, game: Game, player_id: str, count: int) -> list[str]:
        player = game.get_player(player_id)
        drawn = []
        for _ in range(max(0, count)):
            if not player.deck:
                break
            drawn.append(player.deck.pop(0))
        player.hand.extend(drawn)
        return drawn

    def _effect_draw_cards(self, context: AbilityContext, params: dict[str, Any]) -> AbilityOutcome:
        count = int(params.get("count", 1))
        drawn = self._draw(context.game, context.player_id, count)
        return AbilityOutcome(
            applied=True,
            drew_cards=drawn,
            log_message=f"{context.player_id} drew {len(drawn)} command card(s)",
            refresh_hand=True,
            reveal_to_player=context.player_id,
        )

    def _effect_gain_vp(self, context: AbilityContext, params: dict[str, Any]) -> AbilityOutcome:
        vp = int(params.get("vp", 1))
        context.game.get_player(context.player_id).vp.add_objectives(vp)
        check_win_conditions(context.game)
        return AbilityOutcome(applied=True, log_message=f"{context.player_id} gained {vp} VP")

    def _effect_discard_hand_draw(self, context: AbilityContext, params: dict[str, Any]) -> AbilityOutcome:
        player = context.game.get_player(context.player_id)
        count = len(player.hand)
        player.discard.extend(player.hand)
        player.hand = []
        drawn = self._draw(context.game, context.player_id, count)
        return AbilityOutcome(
            applied=True,
            drew_cards=drawn,
            log_message=f"{context.player_id} discarded {count} and drew {len(drawn)}",
            refresh_hand=True,
            refresh_discard=True,
            reveal_to_player=context.player_id,
        )

    def _effect_cancel_draw_next_status(self, context: AbilityContext, params: dict[str, Any]) -> AbilityOutcome:
        opponent = context.game.get_player(context.game.opponent_id(context.player_id))
        opponent.no_draw_next_status = True
        return AbilityOutcome(
            applied=True,
            log_message=f"{opponent.player_id} will not draw in the next status phase",
        )

    # ------------------------------------------------------------------
    # Figures
    # ------------------------------------------------------------------

    def _acting_figure(self, context: AbilityContext) -> str | None:
        if context.figure_key:
            return context.figure_key
        game = context.game
        if game.active_card_key and game.current_activation_turn_player_id == context.player_id:
            positions = game.figure_positions.get(context.player_id, {})
            for figure_key in game.figure_keys_for_card(game.active_card_key):
                if figure_key in positions:
                    return figure_key
        return None

    def _effect_recover(self, context: AbilityContext, params: dict[str, Any]) -> AbilityOutcome:
        game = context.game
        amount = int(params.get("amount", 1))
        target = context.choice or self._acting_figure(context)
        if target is None:
            options = sorted(
                fk for fk in game.figure_positions.get(context.player_id, {})
                if (game.figure_health(fk) or [0, 0])[0] < (game.figure_health(fk) or [0, 0])[1]
            )
            if not options:
                return AbilityOutcome.manual("No damaged friendly figure to recover.")
            return AbilityOutcome(requires_choice=True, choice_options=options)
        if game.owner_of(target) != context.player_id or not game.position_of(target):
            return AbilityOutcome.manual(f"{target} is not a friendly figure on the map.")
        healed = apply_recover(game, target, amount)
        return AbilityOutcome(
            applied=True,
            log_message=f"{target} recovered {healed} damage",
            refresh_board=True,
        )

    def _effect_apply_condition(self, context: AbilityContext, params: dict[str, Any]) -> AbilityOutcome:
        game = context.game
        condition = params.get("condition", "")
        side = params.get("target", "hostile")
        if side == "self" and context.choice is None:
            target = self._acting_figure(context)
            if target is None:
                options = sorted(game.figure_positions.get(context.player_id, {}))
                return AbilityOutcome(requires_choice=True, choice_options=options)
        elif context.choice is None:
            opponent = game.opponent_id(context.player_id)
            options = sorted(game.figure_positions.get(opponent, {}))
            if not options:
                return AbilityOutcome.manual("No hostile figure to target.")
            return AbilityOutcome(requires_choice=True, choice_options=options)
        else:
            target = context.choice
            if side == "hostile" and game.owner_of(target) == context.player_id:
                return AbilityOutcome.manual(f"{target} is not a hostile figure.")
        if not game.position_of(target):
            return AbilityOutcome.manual(f"{target} is not on the map.")
        existing = game.conditions.setdefault(target, [])
        if condition not in existing:
            existing.append(condition)
        return AbilityOutcome(
            applied=True,
            log_message=f"{target} gains {condition}",
            refresh_board=True,
        )

    # ------------------------------------------------------------------
    # Attack modifiers
    # ------------------------------------------------------------------

    def _effect_attack_bonus(self, context: AbilityContext, params: dict[str, Any]) -> AbilityOutcome:
        combat = context.game.pending_combat
        if combat is None or combat.attacker_player_id != context.player_id:
            return AbilityOutcome.manual("Play while attacking.")
        amount = int(params.get("amount", 1))
        field_name = params["_effect_type"]
        setattr(combat, field_name, getattr(combat, field_name) + amount)
        return AbilityOutcome(applied=True, log_message=f"Attack gains {field_name.replace('_', ' ')} {amount}")

    def _effect_defense_bonus(self, context: AbilityContext, params: dict[str, Any]) -> AbilityOutcome:
        combat = context.game.pending_combat
        if combat is None or combat.defender_player_id != context.player_id:
            return AbilityOutcome.manual("Play while defending.")
        amount = int(params.get("amount", 1))
        field_name = params["_effect_type"]
        setattr(combat, field_name, getattr(combat, field_name) + amount)
        return AbilityOutcome(applied=True, log_message=f"Defense gains {field_name.replace('_', ' ')} {amount}")

    def _effect_add_surge_ability(self, context: AbilityContext, params: dict[str, Any]) -> AbilityOutcome:
        combat = context.game.pending_combat
        if combat is None or combat.attacker_player_id != context.player_id:
            return AbilityOutcome.manual("Play while attacking.")
        ability = params.get("ability", "")
        combat.bonus_surge_abilities.append(ability)
        return AbilityOutcome(
            applied=True,
            log_message=f"Attack gains surge ability: {surge_label(self.data, ability)}",
        )

    def _effect_reroll_budget(self, context: AbilityContext, params: dict[str, Any]) -> AbilityOutcome:
        combat = context.game.pending_combat
        if combat is None:
            return AbilityOutcome.manual("Play during an attack.")
        count = int(params.get("count", 1))
        if combat.attacker_player_id == context.player_id:
            combat.attacker_rerolls += count
        elif combat.defender_player_id == context.player_id:
            combat.defender_rerolls += count
        else:
            return AbilityOutcome.manual("Play during an attack you are part of.")
        return AbilityOutcome(applied=True, log_message=f"{context.player_id} gains {count} reroll(s)")

    # ------------------------------------------------------------------
    # Activation
    # ------------------------------------------------------------------

    def _active_card(self, context: AbilityContext) -> str | None:
        game = context.game
        if game.active_card_key and game.current_activation_turn_player_id == context.player_id:
            return game.active_card_key
        return None

    def _effect_gain_actions(self, context: AbilityContext, params: dict[str, Any]) -> AbilityOutcome:
        card_key = self._active_card(context)
        if card_key is None:
            return AbilityOutcome.manual("Play during one of your activations.")
        count = int(params.get("count", 1))
        context.game.card_actions[card_key] = context.game.card_actions.get(card_key, 0) + count
        return AbilityOutcome(applied=True, log_message=f"{card_key} gains {count} action(s)")

    def _effect_gain_movement(self, context: AbilityContext, params: dict[str, Any]) -> AbilityOutcome:
        card_key = self._active_card(context)
        figure_key = self._acting_figure(context)
        if card_key is None or figure_key is None or card_key_of(figure_key) != card_key:
            return AbilityOutcome.manual("Play during one of your activations.")
        mp = int(params.get("mp", 1))
        session = context.game.move_in_progress.setdefault(
            figure_key, MoveInProgress(figure_key=figure_key)
        )
        session.mp_remaining += mp
        return AbilityOutcome(
            applied=True,
            log_message=f"{figure_key} gains {mp} movement points ({session.mp_remaining} MP)",
        )

    # ------------------------------------------------------------------
    # Choices
    # ------------------------------------------------------------------

    def _effect_place_token(self, context: AbilityContext, params: dict[str, Any]) -> AbilityOutcome:
        game = context.game
        token = params.get("token", "token")
        geometry = self.data.get_map(game.selected_map)
        occupied = occupied_cells(game, self.data)
        blocking = set(geometry.blocking)
        valid = sorted(
            (
                s for s in geometry.spaces
                if s not in occupied and s not in blocking and s not in game.placed_tokens
            ),
            key=coord_sort_key,
        )
        if context.space is None:
            if not valid:
                return AbilityOutcome.manual("No empty space for the token.")
            return AbilityOutcome(requires_space_choice=True, valid_spaces=valid)
        space = normalize_coord(context.space)
        if space not in valid:
            return AbilityOutcome(requires_space_choice=True, valid_spaces=valid,
                                  log_message=f"{space.upper()} is not a valid space")
        game.placed_tokens[space] = token
        return AbilityOutcome(
            applied=True,
            log_message=f"Placed {token} token at {space.upper()}",
            refresh_board=True,
        )

    def _effect_choose_one(self, context: AbilityContext, params: dict[str, Any]) -> AbilityOutcome:
        options = params.get("options", [])
        labels = [str(o.get("label", i)) for i, o in enumerate(options)]
        if context.choice is None:
            return AbilityOutcome(requires_choice=True, choice_options=labels)
        chosen = None
        if context.choice in labels:
            chosen = options[labels.index(context.choice)]
        elif str(context.choice).isdigit() and int(context.choice) < len(options):
            chosen = options[int(context.choice)]
        if chosen is None:
            return AbilityOutcome(requires_choice=True, choice_options=labels,
                                  log_message=f"Unknown option: {context.choice}")
        sub_context = AbilityContext(
            game=context.game,
            player_id=context.player_id,
            data=context.data,
            rng=context.rng,
            card_name=context.card_name,
            figure_key=context.figure_key,
        )
        return self.resolve_effect(chosen.get("effect_type", ""), chosen.get("params", {}), sub_context)


def resolve_ability(ability_id: str, context: AbilityContext) -> AbilityOutcome:
    """Convenience wrapper around AbilityResolver."""
    return AbilityResolver(data=context.data).resolve(ability_id, context)
