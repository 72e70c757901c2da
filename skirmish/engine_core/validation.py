"""
Validation - squad legality and command-card play legality.

Squad rules: deployment cards total exactly 40 points; the command deck is
exactly 15 cards whose costs total exactly 15.

Card play: a card's `timing` is matched against the play context derived
from game state; its `playable_by` restriction is matched against the
squad's card names and keywords.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any

from .state import Game, GamePhase

DC_POINTS_LEGAL = 40
CC_CARDS_LEGAL = 15
CC_COST_LEGAL = 15

SPECIAL_ACTION_TIMINGS = {"specialaction", "doubleactionspecial"}

# Timings resolved on the honor system: the trigger is not tracked, so they
# are playable whenever the owner is taking a turn.
_HONOR_ACTIVATION_TIMINGS = {
    "startofactivation",
    "endofactivation",
    "beforeyoudeclareattack",
    "whenyoudeclareattack",
    "whenyouhavesuffereddamageequaltoyourhealth",
    "whenhostilefigureentersspacewithin3spaces",
    "whenhostilefigureentersadjacentspace",
    "whenfriendlyfigurewithin2spacessuffers3plusdamage",
    "whenfriendlyfigurewithin3spaceswouldbedefeated",
    "whenyouendmovementinspaceswithotherfigures",
    "whenyoudeclarelightsaberthrow",
    "afterdamage",
    "whenattackdeclaredtargetingfriendlysmallfigurecost10orlesswithin3spaces",
    "afteractivationresolves",
    "whenattackdeclaredonadjacentfriendly",
    "afteryouresolvegroupsactivation",
    "usewhenyouusegambit",
    "beforedeclaringrangedattack",
    "other",
}
_ATTACK_TIMINGS = {
    "duringattack",
    "afterattack",
    "afterattackdice",
    "afteryouresolveattackthatdidnotmissduetoaccuracy",
}
_DEFENDER_TIMINGS = {
    "whiledefending",
    "whenattackdeclaredonyou",
    "afterattacktargetingyouresolved",
    "whenhostilefigureinyourlineofsightattacking",
}
_ATTACKER_TIMINGS = {"whileattacking"}


@dataclass
class SquadValidation:
    legal: bool
    errors: list[str] = field(default_factory=list)
    dc_total: int = 0
    cc_count: int = 0
    cc_cost: int = 0


def validate_squad(dc_list: list[str], cc_list: list[str], data: Any) -> SquadValidation:
    """Check a squad against the deck-building rules."""
    errors = []
    dc_total = 0
    for name in dc_list:
        if not data.has_dc(name):
            errors.append(f'Unknown Deployment Card: "{name}" (cost not found).')
            continue
        dc_total += data.get_dc(name).cost
    if dc_total != DC_POINTS_LEGAL:
        errors.append(
            f"Deployment total is {dc_total} points. Legal total is exactly {DC_POINTS_LEGAL}."
        )

    cc_cost = 0
    unknown = []
    for name in cc_list:
        card = data.get_cc(name)
        if card is None:
            unknown.append(name)
        else:
            cc_cost += card.cost
    if unknown:
        suffix = "..." if len(unknown) > 5 else ""
        errors.append(f"Unknown Command Card(s): {', '.join(unknown[:5])}{suffix}.")
    if len(cc_list) != CC_CARDS_LEGAL:
        errors.append(
            f"Command deck has {len(cc_list)} cards. Legal deck is exactly {CC_CARDS_LEGAL} cards."
        )
    if cc_cost != CC_COST_LEGAL:
        errors.append(
            f"Command deck total cost is {cc_cost}. Legal total cost is exactly {CC_COST_LEGAL}."
        )
    return SquadValidation(
        legal=not errors,
        errors=errors,
        dc_total=dc_total,
        cc_count=len(cc_list),
        cc_cost=cc_cost,
    )


@dataclass
class CcPlayContext:
    start_of_round: bool = False
    during_activation: bool = False
    end_of_round: bool = False
    during_attack: bool = False
    is_attacker: bool = False
    is_defender: bool = False


def get_cc_play_context(game: Game, player_id: str) -> CcPlayContext:
    """Derive when-can-I-play flags for a player from the game state."""
    in_round = game.phase == GamePhase.ACTIVATION
    combat = game.pending_combat
    during_attack = combat is not None
    return CcPlayContext(
        start_of_round=(
            in_round
            and game.current_round > 0
            and not game.activated_cards
            and game.active_card_key is None
        ),
        during_activation=(
            in_round
            and game.current_activation_turn_player_id == player_id
            and game.end_of_round_whose_turn is None
        ),
        end_of_round=game.end_of_round_whose_turn == player_id,
        during_attack=during_attack,
        is_attacker=during_attack and combat.attacker_player_id == player_id,
        is_defender=during_attack and combat.defender_player_id == player_id,
    )


def is_cc_playable_now(game: Game, player_id: str, card: Any) -> bool:
    """True if the card's timing matches the current context. Special actions never are."""
    if card is None or not card.timing:
        return False
    timing = card.timing.lower().strip()
    if timing in SPECIAL_ACTION_TIMINGS:
        return False
    ctx = get_cc_play_context(game, player_id)

    if timing in ("startofround", "startofstatusphase"):
        return ctx.start_of_round
    if timing == "duringactivation" or timing in _HONOR_ACTIVATION_TIMINGS:
        return ctx.during_activation
    if timing == "endofround":
        return ctx.end_of_round
    if timing in _ATTACK_TIMINGS:
        return ctx.during_attack
    if timing in _ATTACKER_TIMINGS:
        return ctx.during_attack and ctx.is_attacker
    if timing in _DEFENDER_TIMINGS:
        return ctx.during_attack and ctx.is_defender
    return False


def playable_cards(game: Game, player_id: str, data: Any) -> list[str]:
    player = game.get_player(player_id)
    if player is None:
        return []
    return [name for name in player.hand if is_cc_playable_now(game, player_id, data.get_cc(name))]


def check_playable_by(game: Game, player_id: str, card: Any, data: Any) -> tuple[bool, str]:
    """Match a card's "playable by" restriction against the player's squad."""
    restriction = (card.playable_by or "").strip() if card else ""
    if not restriction or restriction.lower() == "any figure":
        return True, ""
    wanted = restriction.lower()
    player = game.get_player(player_id)
    dc_list = player.squad.dc_list if player and player.squad else []
    for name in dc_list:
        lower = name.lower()
        if wanted in lower or lower in wanted:
            return True, ""
        if data.get_dc(name).has_keyword(wanted):
            return True, ""
    return False, f'No figure matches "playable by: {restriction}" in your army.'
